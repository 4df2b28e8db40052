"""Persist event results reported by the odds feed."""

from typing import Any

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.models.base import dialect_insert
from linesentry.models.domain import EventResult
from linesentry.services.ingestion.odds_feed import ScoreRecord
from linesentry.services.timing import utcnow

logger = structlog.get_logger(__name__)


def result_status(record: ScoreRecord) -> str:
    if record.completed and record.home_score is not None and record.away_score is not None:
        return "final"
    if record.home_score is not None or record.away_score is not None:
        return "in_progress"
    return "scheduled"


async def store_event_results(
    session: AsyncSession, records: list[ScoreRecord]
) -> dict[str, Any]:
    """
    Upsert event results.

    A final result is never downgraded by a later, stale feed response.
    """
    stats = {"received": len(records), "final": 0, "updated": 0}

    for record in records:
        status = result_status(record)
        values = {
            "event_id": record.event_id,
            "sport": record.sport,
            "home_team": record.home_team,
            "away_team": record.away_team,
            "status": status,
            "home_score": record.home_score,
            "away_score": record.away_score,
            "completed_at": utcnow() if status == "final" else None,
            "source": "the_odds_api",
            "raw_data": record.raw,
        }
        stmt = dialect_insert(session, EventResult).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["event_id"],
            set_={
                **{k: stmt.excluded[k] for k in values if k != "event_id"},
                "updated_at": func.now(),
            },
            where=EventResult.status != "final",
        )
        await session.execute(stmt)

        stats["updated"] += 1
        if status == "final":
            stats["final"] += 1

    logger.info("event_results_stored", **stats)
    return stats
