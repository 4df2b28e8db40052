"""Persistent calibration buckets.

Outcomes are accumulated into ``calibration_buckets`` as they are verified
(``record``). A full rebuild (``rebuild_bucket``) locks one bucket row and
re-aggregates it from settled recommendations in the same transaction, so a
verification committed while a calibration pass runs is never overwritten.
Rows are never deleted.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.models.base import dialect_insert
from linesentry.models.domain import CalibrationBucket, MarketKey, ScoredRecommendation
from linesentry.services.calibration.metrics import (
    BucketStats,
    CalibrationParams,
    Outcome,
    bucket_bounds,
    bucket_index,
)

SETTLED_RESULTS = ("WON", "LOST")

# Float slack around bucket edges; bucket_index decides membership
BOUND_SLACK = 1e-6


def stats_from_row(row: CalibrationBucket) -> BucketStats:
    return BucketStats(
        low=row.bucket_low,
        high=row.bucket_high,
        sample_size=row.sample_size,
        hit_count=row.hit_count,
        confidence_sum=row.confidence_sum,
        brier_sum=row.brier_sum,
    )


def apply_derived(row: CalibrationBucket, stats: BucketStats, min_samples: int) -> None:
    row.empirical_hit_rate = stats.empirical_hit_rate
    row.mean_confidence = stats.mean_confidence
    row.brier_score = stats.brier_score
    row.calibration_error = stats.calibration_error
    row.calibration_factor = stats.calibration_factor(min_samples)
    row.low_sample = stats.is_low_sample(min_samples)


class CalibrationLedger:
    """Reads and writes calibration bucket rows for one session."""

    def __init__(self, session: AsyncSession, params: CalibrationParams | None = None):
        self.session = session
        self.params = params or CalibrationParams.from_defaults()

    async def _ensure_row(self, sport: str, low: float, high: float) -> None:
        stmt = dialect_insert(self.session, CalibrationBucket).values(
            sport=sport,
            bucket_low=low,
            bucket_high=high,
            sample_size=0,
            hit_count=0,
            confidence_sum=0.0,
            brier_sum=0.0,
            empirical_hit_rate=0.0,
            mean_confidence=0.0,
            brier_score=0.0,
            calibration_error=0.0,
            low_sample=True,
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=["sport", "bucket_low", "bucket_high"]
        )
        await self.session.execute(stmt)

    async def _get_row(
        self, sport: str, low: float, high: float, for_update: bool = False
    ) -> CalibrationBucket:
        stmt = select(CalibrationBucket).where(
            CalibrationBucket.sport == sport,
            CalibrationBucket.bucket_low == low,
            CalibrationBucket.bucket_high == high,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def record(self, sport: str, outcome: Outcome) -> CalibrationBucket:
        """
        Add one verified outcome to its bucket.

        The counters are incremented in SQL so concurrent verifications in
        other transactions are not lost; derived columns are then refreshed
        from the updated sums.
        """
        low, high = bucket_bounds(
            bucket_index(outcome.confidence, self.params.bucket_count),
            self.params.bucket_count,
        )
        await self._ensure_row(sport, low, high)

        hit = 1 if outcome.hit else 0
        await self.session.execute(
            update(CalibrationBucket)
            .where(
                CalibrationBucket.sport == sport,
                CalibrationBucket.bucket_low == low,
                CalibrationBucket.bucket_high == high,
            )
            .values(
                sample_size=CalibrationBucket.sample_size + 1,
                hit_count=CalibrationBucket.hit_count + hit,
                confidence_sum=CalibrationBucket.confidence_sum + outcome.confidence,
                brier_sum=CalibrationBucket.brier_sum + (outcome.confidence - hit) ** 2,
            )
            .execution_options(synchronize_session=False)
        )

        row = await self._get_row(sport, low, high)
        await self.session.refresh(row)
        apply_derived(row, stats_from_row(row), self.params.min_bucket_samples)
        await self.session.flush()
        return row

    async def _settled_outcomes(self, sport: str, low: float, high: float) -> list[Outcome]:
        result = await self.session.execute(
            select(ScoredRecommendation.confidence, ScoredRecommendation.side_won)
            .join(MarketKey, MarketKey.id == ScoredRecommendation.market_key_id)
            .where(
                MarketKey.sport == sport,
                ScoredRecommendation.verified_at.is_not(None),
                ScoredRecommendation.actual_result.in_(SETTLED_RESULTS),
                ScoredRecommendation.confidence >= low - BOUND_SLACK,
                ScoredRecommendation.confidence <= high + BOUND_SLACK,
            )
        )
        return [Outcome(confidence, bool(side_won)) for confidence, side_won in result.all()]

    async def rebuild_bucket(self, sport: str, index: int) -> BucketStats:
        """
        Recompute one bucket from settled recommendations.

        The bucket row is locked before reading, so verifications either
        commit before the read (and are counted in it) or wait on the row
        and increment the rebuilt sums afterwards. The caller commits.
        """
        low, high = bucket_bounds(index, self.params.bucket_count)
        await self._ensure_row(sport, low, high)
        row = await self._get_row(sport, low, high, for_update=True)

        stats = BucketStats(low, high)
        for outcome in await self._settled_outcomes(sport, low, high):
            if bucket_index(outcome.confidence, self.params.bucket_count) == index:
                stats.add(outcome)

        row.sample_size = stats.sample_size
        row.hit_count = stats.hit_count
        row.confidence_sum = stats.confidence_sum
        row.brier_sum = stats.brier_sum
        apply_derived(row, stats, self.params.min_bucket_samples)
        await self.session.flush()
        return stats

    async def buckets(self, sport: str) -> list[CalibrationBucket]:
        result = await self.session.execute(
            select(CalibrationBucket)
            .where(CalibrationBucket.sport == sport)
            .order_by(CalibrationBucket.bucket_low)
        )
        return list(result.scalars().all())
