"""Market scoring task.

Re-scores every market key that received snapshots within the lookback
window. Keys with no new snapshot since their last recommendation are
skipped.
"""

from datetime import datetime, timezone

import structlog

from linesentry.config import get_settings
from linesentry.models.base import get_task_session
from linesentry.models.domain import JobRun
from linesentry.services.scoring import ScoringPipeline
from linesentry.tasks import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(bind=True, soft_time_limit=240, time_limit=270)
def score_markets(self, lookback_hours: int | None = None):
    """
    Scheduled: Every 5 minutes
    Timeout: 4 minutes
    """
    import asyncio

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_score_markets_async(self, lookback_hours))
    finally:
        loop.close()


async def _score_markets_async(task, lookback_hours: int | None = None):
    """Async implementation of market scoring."""
    settings = get_settings()
    started_at = datetime.now(timezone.utc)
    job_status = "running"
    error_message = None
    stats = {}

    async with get_task_session() as session:
        job_run = JobRun(
            job_name="score_markets",
            started_at=started_at,
            status="running",
        )
        session.add(job_run)
        await session.commit()

        try:
            pipeline = ScoringPipeline(session)
            stats = await pipeline.score_active(
                lookback_hours or settings.scoring_lookback_hours
            )
            job_status = "success"

            logger.info(
                "scoring_task_complete",
                keys=stats["keys_considered"],
                recommendations=stats["recommendations_created"],
                errors=stats["errors"],
                duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
            )

        except Exception as e:
            await session.rollback()
            job_status = "failed"
            error_message = str(e)
            logger.error(
                "scoring_task_failed",
                error=str(e),
                task_id=task.request.id,
            )

        finally:
            job_run.completed_at = datetime.now(timezone.utc)
            job_run.status = job_status
            job_run.error_message = error_message
            job_run.records_processed = stats.get("recommendations_created", 0)
            job_run.job_metadata = stats
            await session.commit()

    return stats
