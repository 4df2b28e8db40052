"""Recommendation endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.api.dependencies import get_db
from linesentry.api.routes.snapshots import MarketKeyIn
from linesentry.models.domain import ScoredRecommendation, SignalConfigVersion
from linesentry.services.ingestion import MarketKeyData, SnapshotStore
from linesentry.services.scoring import ScoringPipeline

router = APIRouter(prefix="/api/recommendations", tags=["recommendations"])


class RecommendationResponse(BaseModel):
    """Scored recommendation."""

    id: int
    market_key_id: int
    scored_at: datetime
    sharp_score: float
    trap_score: float
    composite_score: float
    classification: str
    confidence: float
    signal_config_id: int
    signal_config_version: int
    signals_detected: list[dict[str, Any]]
    magnitude: float
    magnitude_bucket: str
    time_bucket: str
    books_reporting: int
    verified_at: datetime | None = None
    actual_result: str | None = None
    is_correct: bool | None = None

    class Config:
        from_attributes = True


async def _with_version(
    db: AsyncSession, rec: ScoredRecommendation
) -> RecommendationResponse:
    version = await db.scalar(
        select(SignalConfigVersion.version).where(
            SignalConfigVersion.id == rec.signal_config_id
        )
    )
    return RecommendationResponse(
        id=rec.id,
        market_key_id=rec.market_key_id,
        scored_at=rec.scored_at,
        sharp_score=rec.sharp_score,
        trap_score=rec.trap_score,
        composite_score=rec.composite_score,
        classification=rec.classification,
        confidence=rec.confidence,
        signal_config_id=rec.signal_config_id,
        signal_config_version=version,
        signals_detected=rec.signals_detected or [],
        magnitude=rec.magnitude,
        magnitude_bucket=rec.magnitude_bucket,
        time_bucket=rec.time_bucket,
        books_reporting=rec.books_reporting,
        verified_at=rec.verified_at,
        actual_result=rec.actual_result,
        is_correct=rec.is_correct,
    )


@router.get("", response_model=RecommendationResponse)
async def get_recommendation(
    event_id: str,
    sport: str,
    bookmaker: str,
    market_type: str,
    outcome_name: str,
    player_name: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    """Latest recommendation for a market key."""
    key = await SnapshotStore(db).find_market_key(
        MarketKeyData(
            event_id=event_id,
            sport=sport,
            bookmaker=bookmaker,
            market_type=market_type,
            outcome_name=outcome_name,
            player_name=player_name,
        )
    )
    if key is None:
        raise HTTPException(status_code=404, detail="Market key not found")

    rec = await ScoringPipeline(db).latest_recommendation(key.id)
    if rec is None:
        raise HTTPException(status_code=404, detail="No recommendation for market key")
    return await _with_version(db, rec)


@router.get("/{recommendation_id}", response_model=RecommendationResponse)
async def get_recommendation_by_id(
    recommendation_id: int,
    db: AsyncSession = Depends(get_db),
):
    rec = await db.get(ScoredRecommendation, recommendation_id)
    if rec is None:
        raise HTTPException(status_code=404, detail="Recommendation not found")
    return await _with_version(db, rec)


@router.post("/score", response_model=RecommendationResponse)
async def score_now(
    market_key: MarketKeyIn,
    db: AsyncSession = Depends(get_db),
):
    """Score a market key immediately instead of waiting for the next pass."""
    key = await SnapshotStore(db).find_market_key(market_key.to_data())
    if key is None:
        raise HTTPException(status_code=404, detail="Market key not found")

    rec = await ScoringPipeline(db).score_market_key(key.id)
    if rec is None:
        raise HTTPException(status_code=409, detail="Fewer than two snapshots for market key")
    await db.commit()
    return await _with_version(db, rec)
