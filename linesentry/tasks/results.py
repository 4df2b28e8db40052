"""Event results capture task.

Fetches game scores for recent events so unsettled recommendations can be
resolved by the settlement task.
"""

from datetime import datetime, timezone

import structlog

from linesentry.config import get_settings
from linesentry.models.base import get_task_session
from linesentry.models.domain import JobRun
from linesentry.services.errors import OddsFeedError
from linesentry.services.ingestion import OddsFeedClient, store_event_results
from linesentry.tasks import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(bind=True, soft_time_limit=240, time_limit=270)
def capture_event_results(self, sports: list[str] | None = None):
    """
    Scheduled: Every 30 minutes
    Timeout: 4 minutes
    """
    import asyncio

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_capture_event_results_async(self, sports))
    finally:
        loop.close()


async def _capture_event_results_async(task, sports: list[str] | None = None):
    """Async implementation of event result capture."""
    settings = get_settings()
    started_at = datetime.now(timezone.utc)
    job_status = "running"
    error_message = None
    stats = {"events": 0, "final": 0, "feed_errors": 0}

    async with get_task_session() as session:
        job_run = JobRun(
            job_name="capture_event_results",
            started_at=started_at,
            status="running",
        )
        session.add(job_run)
        await session.commit()

        try:
            if not settings.odds_api_configured:
                raise OddsFeedError("ODDS_API_KEY not configured")

            async with OddsFeedClient() as feed:
                for sport in sports or settings.tracked_sports:
                    try:
                        records = await feed.fetch_scores(sport)
                    except OddsFeedError as e:
                        stats["feed_errors"] += 1
                        logger.warning("scores_fetch_failed", sport=sport, error=str(e))
                        continue

                    sport_stats = await store_event_results(session, records)
                    await session.commit()
                    stats["events"] += sport_stats["received"]
                    stats["final"] += sport_stats["final"]

            job_status = "success"
            logger.info(
                "event_results_task_complete",
                events=stats["events"],
                final=stats["final"],
                duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
            )

        except Exception as e:
            await session.rollback()
            job_status = "failed"
            error_message = str(e)
            logger.error(
                "event_results_task_failed",
                error=str(e),
                task_id=task.request.id,
            )

        finally:
            job_run.completed_at = datetime.now(timezone.utc)
            job_run.status = job_status
            job_run.error_message = error_message
            job_run.records_processed = stats["events"]
            job_run.job_metadata = stats
            await session.commit()

    return stats
