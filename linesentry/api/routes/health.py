"""Health check endpoints."""

from datetime import datetime, timedelta, timezone

import redis.asyncio as redis
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.api.dependencies import get_db, get_redis
from linesentry.config import get_settings
from linesentry.models.domain import OddsSnapshot
from linesentry.services.ingestion import OddsFeedClient
from linesentry.services.timing import ensure_utc

router = APIRouter(tags=["health"])

# Two missed capture cycles
SNAPSHOT_STALE_AFTER = timedelta(minutes=15)


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime


class ReadyCheck(BaseModel):
    """Individual readiness check."""

    status: str
    message: str | None = None


class ReadyResponse(BaseModel):
    ready: bool
    checks: dict[str, ReadyCheck]


@router.get("/health", response_model=HealthResponse)
async def health():
    """Liveness: healthy whenever the process serves requests."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
    )


async def _snapshot_freshness(db: AsyncSession) -> ReadyCheck:
    latest = ensure_utc(await db.scalar(select(func.max(OddsSnapshot.captured_at))))
    if latest is None:
        return ReadyCheck(status="warning", message="No snapshots recorded yet")

    age = datetime.now(timezone.utc) - latest
    if age > SNAPSHOT_STALE_AFTER:
        return ReadyCheck(
            status="warning",
            message=f"Latest snapshot is {int(age.total_seconds() // 60)} minutes old",
        )
    return ReadyCheck(status="ok", message=f"Latest snapshot at {latest.isoformat()}")


@router.get("/ready", response_model=ReadyResponse)
async def ready(
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis),
):
    """
    Readiness check for all dependencies.

    Database and Redis failures mark the service not ready. A missing odds
    feed key and stale snapshots only warn, since snapshots can still be
    posted directly.
    """
    checks = {}
    all_ready = True

    try:
        await db.execute(text("SELECT 1"))
        checks["db"] = ReadyCheck(status="ok")
        checks["snapshots"] = await _snapshot_freshness(db)
    except Exception as e:
        checks["db"] = ReadyCheck(status="error", message=str(e))
        all_ready = False

    try:
        await redis_client.ping()
        checks["redis"] = ReadyCheck(status="ok")
    except Exception as e:
        checks["redis"] = ReadyCheck(status="error", message=str(e))
        all_ready = False

    if get_settings().odds_api_configured:
        checks["odds_feed"] = ReadyCheck(status="ok", message="API key configured")
    else:
        checks["odds_feed"] = ReadyCheck(status="warning", message="API key not configured")

    return ReadyResponse(ready=all_ready, checks=checks)


@router.get("/health/odds-feed")
async def odds_feed_health():
    """Probe the odds feed's sports listing (does not use request quota)."""
    async with OddsFeedClient() as feed:
        is_healthy = await feed.health_check()
    return {
        "status": "healthy" if is_healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc),
    }
