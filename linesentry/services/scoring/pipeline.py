"""Scoring pipeline: detect -> score -> classify -> persist.

Each market key is processed inside the caller's transaction with its
market_keys row locked, so scoring never observes a half-written latest
snapshot for that key. Keys are independent and can be scored in parallel
sessions.
"""

from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.models.domain import ScoredRecommendation
from linesentry.services.ingestion.snapshots import SnapshotStore
from linesentry.services.movement.detector import MovementDetector
from linesentry.services.scoring.classifier import classify
from linesentry.services.scoring.engine import SignalScorer
from linesentry.services.signals.config import SignalConfigRepository
from linesentry.services.timing import ensure_utc, utcnow

logger = structlog.get_logger(__name__)


class ScoringPipeline:
    """Produces ScoredRecommendations for market keys."""

    def __init__(
        self,
        session: AsyncSession,
        scorer: SignalScorer | None = None,
        config_repo: SignalConfigRepository | None = None,
    ):
        self.session = session
        self.store = SnapshotStore(session)
        self.detector = MovementDetector(session, self.store)
        self.scorer = scorer or SignalScorer()
        self.config_repo = config_repo or SignalConfigRepository(session)

    async def latest_recommendation(self, market_key_id: int) -> ScoredRecommendation | None:
        result = await self.session.execute(
            select(ScoredRecommendation)
            .where(ScoredRecommendation.market_key_id == market_key_id)
            .order_by(ScoredRecommendation.scored_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _unchanged_since_last_pass(
        self, market_key_id: int, newest_snapshot_id: int | None
    ) -> bool:
        """True when no snapshot was inserted for the key after its last recommendation."""
        previous = await self.latest_recommendation(market_key_id)
        if previous is None or previous.last_snapshot_id is None:
            return False
        return newest_snapshot_id is not None and newest_snapshot_id <= previous.last_snapshot_id

    async def score_market_key(
        self,
        market_key_id: int,
        scored_at: datetime | None = None,
        skip_unchanged: bool = False,
    ) -> ScoredRecommendation | None:
        """
        Score one market key.

        Returns None (without raising) when the key does not exist, has
        fewer than two snapshots, or has not changed since its last
        recommendation and ``skip_unchanged`` is set.
        """
        market_key = await self.store.lock_market_key(market_key_id)
        if market_key is None:
            return None

        newest_snapshot_id = await self.store.newest_snapshot_id(market_key_id)
        if skip_unchanged and await self._unchanged_since_last_pass(
            market_key_id, newest_snapshot_id
        ):
            return None

        config = await self.config_repo.get_active(market_key.sport)
        movement = await self.detector.detect(market_key, config)
        if movement is None:
            return None

        context = await self.detector.gather_context(market_key, movement, config)
        result = self.scorer.score(movement, context, config)
        classification = classify(
            result.sharp_score, result.trap_score, context.books_reporting, config
        )

        recommendation = ScoredRecommendation(
            market_key_id=market_key.id,
            scored_at=ensure_utc(scored_at) or utcnow(),
            signal_config_id=config.config_id,
            sharp_score=result.sharp_score,
            trap_score=result.trap_score,
            composite_score=round(result.composite_score, 4),
            classification=classification.recommendation.value,
            confidence=round(classification.confidence, 6),
            signals_detected=[s.to_dict() for s in result.signals],
            opening_price=movement.opening_price,
            latest_price=movement.latest_price,
            opening_point=movement.opening_point,
            latest_point=movement.latest_point,
            price_delta=movement.price_delta,
            point_delta=movement.point_delta,
            magnitude=movement.magnitude,
            magnitude_bucket=movement.magnitude_bucket,
            time_bucket=movement.time_bucket,
            books_reporting=context.books_reporting,
            last_snapshot_id=newest_snapshot_id,
        )
        self.session.add(recommendation)
        await self.session.flush()

        logger.info(
            "recommendation_scored",
            recommendation_id=recommendation.id,
            market_key_id=market_key.id,
            sport=market_key.sport,
            classification=recommendation.classification,
            confidence=recommendation.confidence,
            sharp_score=recommendation.sharp_score,
            trap_score=recommendation.trap_score,
            config_version=config.version,
            reason=classification.reason,
        )
        return recommendation

    async def score_active(self, lookback_hours: int = 12) -> dict[str, Any]:
        """
        Score every market key with a recent snapshot.

        Commits per key so one failure never discards other keys' work.
        """
        stats = {
            "keys_considered": 0,
            "recommendations_created": 0,
            "skipped": 0,
            "errors": 0,
        }
        since = utcnow() - timedelta(hours=lookback_hours)
        keys = await self.store.active_market_keys(since)
        key_ids = [k.id for k in keys]
        await self.session.commit()

        for key_id in key_ids:
            stats["keys_considered"] += 1
            try:
                recommendation = await self.score_market_key(key_id, skip_unchanged=True)
                await self.session.commit()
            except Exception as e:
                await self.session.rollback()
                stats["errors"] += 1
                logger.error("market_key_scoring_failed", market_key_id=key_id, error=str(e))
                continue

            if recommendation is None:
                stats["skipped"] += 1
            else:
                stats["recommendations_created"] += 1

        return stats

