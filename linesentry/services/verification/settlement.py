"""Automatic settlement of recommendations from final event results."""

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.models.domain import EventResult, MarketKey, ScoredRecommendation
from linesentry.services.verification.outcomes import resolve_outcome
from linesentry.services.verification.verifier import OutcomeVerifier

logger = structlog.get_logger(__name__)


async def settle_pending(
    session: AsyncSession,
    verifier: OutcomeVerifier | None = None,
    limit: int = 500,
) -> dict[str, Any]:
    """
    Verify unsettled recommendations whose event has a final score.

    Each recommendation is committed on its own. Already-settled rows lose
    the compare-and-set and are counted, not re-applied.
    """
    verifier = verifier or OutcomeVerifier(session)
    stats = {
        "candidates": 0,
        "applied": 0,
        "already_settled": 0,
        "unresolvable": 0,
        "errors": 0,
    }

    result = await session.execute(
        select(ScoredRecommendation.id, ScoredRecommendation.latest_point, MarketKey, EventResult)
        .join(MarketKey, MarketKey.id == ScoredRecommendation.market_key_id)
        .join(EventResult, EventResult.event_id == MarketKey.event_id)
        .where(
            ScoredRecommendation.verified_at.is_(None),
            EventResult.status == "final",
        )
        .order_by(ScoredRecommendation.id)
        .limit(limit)
    )
    # Resolve before any commit/rollback expires the loaded rows
    resolved = [
        (
            recommendation_id,
            resolve_outcome(market_key.market_type, market_key.outcome_name, point, event_result),
        )
        for recommendation_id, point, market_key, event_result in result.all()
    ]

    for recommendation_id, outcome in resolved:
        stats["candidates"] += 1
        if outcome is None:
            stats["unresolvable"] += 1
            continue

        try:
            verification = await verifier.verify(recommendation_id, outcome)
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            stats["errors"] += 1
            logger.error(
                "settlement_failed",
                recommendation_id=recommendation_id,
                error=str(e),
            )
            continue

        if verification.applied:
            stats["applied"] += 1
        else:
            stats["already_settled"] += 1

    logger.info("settlement_complete", **stats)
    return stats
