"""Per-sport single-writer lock for calibration passes."""

from contextlib import asynccontextmanager

import redis.asyncio as redis
import structlog
from redis.exceptions import LockError

from linesentry.services.errors import CalibrationInProgressError

logger = structlog.get_logger(__name__)


def lock_name(sport: str) -> str:
    return f"calibration:{sport.upper()}"


@asynccontextmanager
async def calibration_lock(redis_client: redis.Redis, sport: str, timeout: int):
    """
    Hold ``calibration:{sport}`` for the duration of a pass.

    Does not wait: a held lock raises CalibrationInProgressError. The lock
    expires after ``timeout`` seconds so a killed worker cannot wedge a sport.
    """
    lock = redis_client.lock(lock_name(sport), timeout=timeout, blocking=False)
    if not await lock.acquire():
        raise CalibrationInProgressError(sport.upper())
    try:
        yield lock
    finally:
        try:
            await lock.release()
        except LockError as e:
            logger.warning("calibration_lock_release_failed", sport=sport, error=str(e))
