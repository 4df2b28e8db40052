"""Outcome verification endpoint."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.api.dependencies import get_db
from linesentry.services.errors import RecommendationNotFoundError
from linesentry.services.verification import OutcomeVerifier

router = APIRouter(prefix="/api/verify", tags=["verification"])


class VerifyRequest(BaseModel):
    recommendation_id: int
    actual_result: str
    verified_at: datetime | None = None


class VerifyResponse(BaseModel):
    """``applied`` is false when the recommendation was already settled."""

    recommendation_id: int
    applied: bool
    actual_result: str | None
    is_correct: bool | None
    verified_at: datetime | None


@router.post("", response_model=VerifyResponse)
async def verify(
    request: VerifyRequest,
    db: AsyncSession = Depends(get_db),
):
    verifier = OutcomeVerifier(db)
    try:
        result = await verifier.verify(
            request.recommendation_id, request.actual_result, request.verified_at
        )
    except RecommendationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    await db.commit()

    return VerifyResponse(
        recommendation_id=result.recommendation_id,
        applied=result.applied,
        actual_result=result.actual_result,
        is_correct=result.is_correct,
        verified_at=result.verified_at,
    )
