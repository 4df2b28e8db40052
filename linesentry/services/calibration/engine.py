"""Calibration engine.

Periodic, per-sport batch:

1. Load every verified WON/LOST recommendation for the sport.
2. Rebuild the fixed-width confidence buckets, committing each bucket on
   its own so an aborted run leaves finished buckets intact.
3. Report Brier score, log loss, reliability, per-signal and
   per-classification accuracy.
4. If there are enough samples, derive bounded adjustments and append a new
   SignalConfig version. With too few samples nothing is written and the
   report is flagged low-confidence; the live config is never reset.

Must not run concurrently with itself for one sport: callers pass a lock
(the Celery task uses a Redis lock named ``calibration:{sport}``).
"""

from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.models.domain import MarketKey, ScoredRecommendation
from linesentry.services.calibration.adjustments import ConfigChange, derive_adjustment
from linesentry.services.calibration.ledger import SETTLED_RESULTS, CalibrationLedger
from linesentry.services.calibration.metrics import (
    BucketStats,
    CalibrationParams,
    Outcome,
    SignalStats,
    brier_score,
    log_loss,
    reliability,
    signal_stats,
)
from linesentry.services.errors import InsufficientSampleError
from linesentry.services.odds import safe_div
from linesentry.services.signals.config import SignalConfigRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VerifiedRecord:
    confidence: float
    side_won: bool
    is_correct: bool | None
    classification: str
    signals: list[dict[str, Any]]


@dataclass
class CalibrationReport:
    """Result of one calibration pass for a sport."""

    sport: str
    sample_size: int
    buckets: list[BucketStats]
    min_bucket_samples: int
    brier_score: float = 0.0
    log_loss: float = 0.0
    reliability: float = 0.0
    signal_stats: dict[str, SignalStats] = field(default_factory=dict)
    classification_accuracy: dict[str, dict[str, Any]] = field(default_factory=dict)
    low_confidence: bool = False
    skipped_reason: str | None = None
    changes: list[ConfigChange] = field(default_factory=list)
    config_version_written: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sport": self.sport,
            "sample_size": self.sample_size,
            "brier_score": round(self.brier_score, 4),
            "log_loss": round(self.log_loss, 4),
            "reliability": round(self.reliability, 4),
            "calibration_error": round(self.reliability ** 0.5, 4),
            "low_confidence": self.low_confidence,
            "skipped_reason": self.skipped_reason,
            "buckets": [b.to_dict(self.min_bucket_samples) for b in self.buckets],
            "signals": [s.to_dict() for s in self.signal_stats.values()],
            "classification_accuracy": self.classification_accuracy,
            "changes": [c.to_dict() for c in self.changes],
            "config_version_written": self.config_version_written,
        }


def classification_accuracy(records: list[VerifiedRecord]) -> dict[str, dict[str, Any]]:
    """Hit rate of PICK and FADE calls (CAUTION has no correctness)."""
    summary: dict[str, dict[str, Any]] = {}
    for label in ("PICK", "FADE"):
        graded = [r for r in records if r.classification == label and r.is_correct is not None]
        correct = sum(1 for r in graded if r.is_correct)
        summary[label] = {
            "sample_size": len(graded),
            "accuracy": round(safe_div(correct, len(graded), 0.0), 4),
        }
    return summary


class CalibrationEngine:
    """Runs calibration passes for one sport at a time."""

    def __init__(
        self,
        session: AsyncSession,
        params: CalibrationParams | None = None,
        config_repo: SignalConfigRepository | None = None,
        lock: AbstractAsyncContextManager | None = None,
    ):
        self.session = session
        self.params = params or CalibrationParams.from_defaults()
        self.config_repo = config_repo or SignalConfigRepository(session)
        self.ledger = CalibrationLedger(session, self.params)
        self.lock = lock

    async def load_records(self, sport: str) -> list[VerifiedRecord]:
        result = await self.session.execute(
            select(ScoredRecommendation)
            .join(MarketKey, MarketKey.id == ScoredRecommendation.market_key_id)
            .where(
                MarketKey.sport == sport,
                ScoredRecommendation.verified_at.is_not(None),
                ScoredRecommendation.actual_result.in_(SETTLED_RESULTS),
            )
            .order_by(ScoredRecommendation.id)
        )
        return [
            VerifiedRecord(
                confidence=rec.confidence,
                side_won=bool(rec.side_won),
                is_correct=rec.is_correct,
                classification=rec.classification,
                signals=rec.signals_detected or [],
            )
            for rec in result.scalars().all()
        ]

    async def rebuild_buckets(self, sport: str) -> list[BucketStats]:
        """
        Recompute every bucket from scratch, one commit per bucket.

        Each bucket is aggregated inside its own locked transaction rather
        than from ``load_records``, so verifications landing mid-pass are kept.
        """
        buckets = []
        for index in range(self.params.bucket_count):
            buckets.append(await self.ledger.rebuild_bucket(sport, index))
            await self.session.commit()
        return buckets

    async def run(self, sport: str) -> CalibrationReport:
        sport = sport.upper()
        async with self.lock or nullcontext():
            return await self._run(sport)

    async def _run(self, sport: str) -> CalibrationReport:
        records = await self.load_records(sport)
        buckets = await self.rebuild_buckets(sport)
        outcomes = [Outcome(r.confidence, r.side_won) for r in records]

        report = CalibrationReport(
            sport=sport,
            sample_size=len(records),
            buckets=buckets,
            min_bucket_samples=self.params.min_bucket_samples,
            brier_score=brier_score(outcomes),
            log_loss=log_loss(outcomes),
            reliability=reliability(buckets),
            signal_stats=signal_stats((r.signals, r.side_won) for r in records),
            classification_accuracy=classification_accuracy(records),
        )

        try:
            self._check_sample(sport, len(records))
        except InsufficientSampleError as e:
            report.low_confidence = True
            report.skipped_reason = str(e)
            logger.info(
                "calibration_insufficient_sample",
                sport=sport,
                sample_size=e.sample_size,
                required=e.required,
            )
            return report

        config = await self.config_repo.get_active(sport)
        adjustment = derive_adjustment(config, buckets, report.signal_stats, self.params)
        report.changes = adjustment.changes

        if adjustment.changed:
            new_config = await self.config_repo.create_version(
                sport,
                adjustment.config_data,
                created_by="calibration",
                notes="; ".join(f"{c.path}: {c.old} -> {c.new}" for c in adjustment.changes),
            )
            await self.session.commit()
            report.config_version_written = new_config.version

        logger.info(
            "calibration_complete",
            sport=sport,
            sample_size=report.sample_size,
            brier_score=round(report.brier_score, 4),
            changes=len(report.changes),
            config_version=report.config_version_written,
        )
        return report

    def _check_sample(self, sport: str, sample_size: int) -> None:
        if sample_size < self.params.min_total_samples:
            raise InsufficientSampleError(sport, sample_size, self.params.min_total_samples)
