"""Calibration task.

Runs one calibration pass per tracked sport. Sports run independently: a
held lock or a failure for one sport never stops the others.
"""

from datetime import datetime, timezone

import redis.asyncio as redis
import structlog

from linesentry.config import get_settings
from linesentry.models.base import get_task_session
from linesentry.models.domain import JobRun
from linesentry.services.calibration import CalibrationEngine, calibration_lock
from linesentry.services.errors import CalibrationInProgressError
from linesentry.tasks import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(bind=True, soft_time_limit=1740, time_limit=1800)
def run_calibration(self, sports: list[str] | None = None):
    """
    Scheduled: Daily at 06:15 UTC
    Timeout: 30 minutes

    For each sport:
    1. Take the calibration:{sport} Redis lock (skip if held)
    2. Rebuild confidence buckets from verified outcomes
    3. Write a new SignalConfig version when adjustments are warranted
    """
    import asyncio

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_run_calibration_async(self, sports))
    finally:
        loop.close()


async def _run_calibration_async(task, sports: list[str] | None = None):
    """Async implementation of calibration."""
    settings = get_settings()
    started_at = datetime.now(timezone.utc)
    job_status = "running"
    error_message = None
    stats = {"sports": {}, "versions_written": 0, "skipped_locked": 0, "failed": 0}

    async with get_task_session() as session:
        job_run = JobRun(
            job_name="run_calibration",
            started_at=started_at,
            status="running",
        )
        session.add(job_run)
        await session.commit()

        redis_client = redis.from_url(settings.redis_url)
        try:
            for sport in sports or settings.tracked_sports:
                sport = sport.upper()
                engine = CalibrationEngine(
                    session,
                    lock=calibration_lock(
                        redis_client, sport, settings.calibration_lock_timeout
                    ),
                )
                try:
                    report = await engine.run(sport)
                except CalibrationInProgressError:
                    stats["skipped_locked"] += 1
                    logger.info("calibration_skipped_locked", sport=sport)
                    continue
                except Exception as e:
                    await session.rollback()
                    stats["failed"] += 1
                    stats["sports"][sport] = {"error": str(e)}
                    logger.error("calibration_sport_failed", sport=sport, error=str(e))
                    continue

                stats["sports"][sport] = {
                    "sample_size": report.sample_size,
                    "low_confidence": report.low_confidence,
                    "changes": len(report.changes),
                    "config_version": report.config_version_written,
                }
                if report.config_version_written is not None:
                    stats["versions_written"] += 1

            job_status = "failed" if stats["failed"] else "success"
            if stats["failed"]:
                error_message = f"{stats['failed']} sport(s) failed"

            logger.info(
                "calibration_task_complete",
                versions_written=stats["versions_written"],
                skipped_locked=stats["skipped_locked"],
                failed=stats["failed"],
                duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
            )

        except Exception as e:
            await session.rollback()
            job_status = "failed"
            error_message = str(e)
            logger.error(
                "calibration_task_failed",
                error=str(e),
                task_id=task.request.id,
            )

        finally:
            await redis_client.aclose()
            job_run.completed_at = datetime.now(timezone.utc)
            job_run.status = job_status
            job_run.error_message = error_message
            job_run.records_processed = stats["versions_written"]
            job_run.job_metadata = stats
            await session.commit()

    return stats
