"""Calibration endpoints."""

from typing import Any

import redis.asyncio as redis
import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.api.dependencies import get_db, get_redis, require_admin
from linesentry.config import get_settings
from linesentry.services.calibration import (
    CalibrationEngine,
    CalibrationLedger,
    CalibrationParams,
    calibration_lock,
)
from linesentry.services.calibration.ledger import stats_from_row
from linesentry.services.errors import CalibrationInProgressError

router = APIRouter(prefix="/api/calibration", tags=["calibration"])
logger = structlog.get_logger(__name__)


class BucketResponse(BaseModel):
    range: list[float]
    sample_size: int
    hit_count: int
    empirical_hit_rate: float
    mean_confidence: float
    brier_score: float
    calibration_error: float
    calibration_factor: float | None
    low_sample: bool


class CalibrationResponse(BaseModel):
    sport: str
    sample_size: int
    brier_score: float
    buckets: list[BucketResponse]


@router.get("", response_model=CalibrationResponse)
async def get_calibration(
    sport: str,
    db: AsyncSession = Depends(get_db),
):
    """Current bucket aggregates for a sport."""
    sport = sport.upper()
    params = CalibrationParams.from_defaults()
    rows = await CalibrationLedger(db, params).buckets(sport)
    stats = [stats_from_row(row) for row in rows]

    sample_size = sum(s.sample_size for s in stats)
    brier_total = sum(s.brier_sum for s in stats)
    return CalibrationResponse(
        sport=sport,
        sample_size=sample_size,
        brier_score=round(brier_total / sample_size, 4) if sample_size else 0.0,
        buckets=[BucketResponse(**s.to_dict(params.min_bucket_samples)) for s in stats],
    )


@router.post("/{sport}/run", dependencies=[Depends(require_admin)])
async def run_calibration(
    sport: str,
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis),
) -> dict[str, Any]:
    """Run a calibration pass now. 409 while another pass holds the sport's lock."""
    settings = get_settings()
    engine = CalibrationEngine(
        db,
        lock=calibration_lock(redis_client, sport, settings.calibration_lock_timeout),
    )
    try:
        report = await engine.run(sport)
    except CalibrationInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info("calibration_triggered_manually", sport=sport.upper())
    return report.to_dict()
