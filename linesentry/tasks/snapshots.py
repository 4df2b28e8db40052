"""Odds snapshot capture task.

Polls the odds feed for every tracked sport and appends snapshots.
"""

from datetime import datetime, timezone

import structlog

from linesentry.config import get_settings
from linesentry.models.base import get_task_session
from linesentry.models.domain import JobRun
from linesentry.services.errors import OddsFeedError
from linesentry.services.ingestion import OddsFeedClient, SnapshotStore
from linesentry.tasks import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(bind=True, soft_time_limit=240, time_limit=270)
def capture_snapshots(self, sports: list[str] | None = None):
    """
    Scheduled: Every 5 minutes
    Timeout: 4 minutes

    For each tracked sport:
    1. Fetch current odds (h2h, spreads, totals) from the feed
    2. Append one snapshot per bookmaker outcome
       (duplicates by captured_at are dropped)
    3. Commit per sport so a feed failure for one sport keeps the others
    """
    import asyncio

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_capture_snapshots_async(self, sports))
    finally:
        loop.close()


async def _capture_snapshots_async(task, sports: list[str] | None = None):
    """Async implementation of snapshot capture."""
    settings = get_settings()
    started_at = datetime.now(timezone.utc)
    job_status = "running"
    error_message = None
    stats = {"sports": {}, "inserted": 0, "feed_errors": 0}

    async with get_task_session() as session:
        job_run = JobRun(
            job_name="capture_snapshots",
            started_at=started_at,
            status="running",
        )
        session.add(job_run)
        await session.commit()

        try:
            if not settings.odds_api_configured:
                raise OddsFeedError("ODDS_API_KEY not configured")

            store = SnapshotStore(session)
            async with OddsFeedClient() as feed:
                for sport in sports or settings.tracked_sports:
                    try:
                        snapshots = await feed.fetch_odds(sport)
                    except OddsFeedError as e:
                        stats["feed_errors"] += 1
                        logger.warning("odds_fetch_failed", sport=sport, error=str(e))
                        continue

                    sport_stats = await store.record_many(snapshots)
                    await session.commit()
                    stats["sports"][sport] = sport_stats
                    stats["inserted"] += sport_stats["inserted"]

            job_status = "success"
            logger.info(
                "snapshot_task_complete",
                snapshots=stats["inserted"],
                feed_errors=stats["feed_errors"],
                duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
            )

        except Exception as e:
            await session.rollback()
            job_status = "failed"
            error_message = str(e)
            logger.error(
                "snapshot_task_failed",
                error=str(e),
                task_id=task.request.id,
            )

        finally:
            job_run.completed_at = datetime.now(timezone.utc)
            job_run.status = job_status
            job_run.error_message = error_message
            job_run.records_processed = stats["inserted"]
            job_run.job_metadata = stats
            await session.commit()

    return stats
