"""Recommendation settlement task."""

from datetime import datetime, timezone

import structlog

from linesentry.models.base import get_task_session
from linesentry.models.domain import JobRun
from linesentry.services.verification import settle_pending
from linesentry.tasks import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(bind=True, soft_time_limit=600, time_limit=660)
def settle_recommendations(self, limit: int = 500):
    """
    Scheduled: Every 15 minutes
    Timeout: 10 minutes

    Verifies unsettled recommendations whose event has a final score and
    feeds each settled outcome into the calibration buckets.
    """
    import asyncio

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_settle_recommendations_async(self, limit))
    finally:
        loop.close()


async def _settle_recommendations_async(task, limit: int = 500):
    started_at = datetime.now(timezone.utc)
    job_status = "running"
    error_message = None
    stats = {}

    async with get_task_session() as session:
        job_run = JobRun(
            job_name="settle_recommendations",
            started_at=started_at,
            status="running",
        )
        session.add(job_run)
        await session.commit()

        try:
            stats = await settle_pending(session, limit=limit)
            job_status = "success"

        except Exception as e:
            await session.rollback()
            job_status = "failed"
            error_message = str(e)
            logger.error(
                "settlement_task_failed",
                error=str(e),
                task_id=task.request.id,
            )

        finally:
            job_run.completed_at = datetime.now(timezone.utc)
            job_run.status = job_status
            job_run.error_message = error_message
            job_run.records_processed = stats.get("applied", 0)
            job_run.job_metadata = stats
            await session.commit()

    return stats
