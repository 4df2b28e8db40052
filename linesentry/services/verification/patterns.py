"""Trap pattern learning from wrong PICKs."""

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.models.base import dialect_insert
from linesentry.models.domain import MarketKey, ScoredRecommendation, TrapPattern
from linesentry.services.timing import utcnow

logger = structlog.get_logger(__name__)


def pattern_signature(
    sport: str, market_type: str, time_bucket: str, magnitude_bucket: str
) -> str:
    return f"{sport.lower()}_{market_type}_{time_bucket}_{magnitude_bucket}"


async def record_trap_pattern(
    session: AsyncSession,
    recommendation: ScoredRecommendation,
    market_key: MarketKey,
) -> str:
    """Count one more wrong PICK against its movement signature."""
    signature = pattern_signature(
        market_key.sport,
        market_key.market_type,
        recommendation.time_bucket,
        recommendation.magnitude_bucket,
    )
    now = utcnow()

    stmt = dialect_insert(session, TrapPattern).values(
        pattern_signature=signature,
        sport=market_key.sport,
        market_type=market_key.market_type,
        time_bucket=recommendation.time_bucket,
        magnitude_bucket=recommendation.magnitude_bucket,
        occurrences=0,
        last_seen_at=now,
    )
    await session.execute(stmt.on_conflict_do_nothing(index_elements=["pattern_signature"]))
    await session.execute(
        update(TrapPattern)
        .where(TrapPattern.pattern_signature == signature)
        .values(
            occurrences=TrapPattern.occurrences + 1,
            last_recommendation_id=recommendation.id,
            last_seen_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    logger.info(
        "trap_pattern_recorded",
        pattern=signature,
        recommendation_id=recommendation.id,
    )
    return signature
