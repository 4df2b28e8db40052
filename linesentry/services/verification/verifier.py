"""Outcome verification.

Settles a recommendation exactly once. The unsettled -> settled transition is
a compare-and-set (``UPDATE ... WHERE verified_at IS NULL``); a second or
concurrent call matches zero rows, is logged as a double settlement and
reported as ``applied=False`` without touching the stored outcome or the
calibration buckets.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.models.domain import MarketKey, ScoredRecommendation
from linesentry.services.calibration.ledger import CalibrationLedger
from linesentry.services.calibration.metrics import Outcome
from linesentry.services.errors import DoubleSettlementError, RecommendationNotFoundError
from linesentry.services.timing import ensure_utc, utcnow
from linesentry.services.verification.patterns import record_trap_pattern

logger = structlog.get_logger(__name__)


class ActualResult(str, Enum):
    WON = "WON"
    LOST = "LOST"
    PUSH = "PUSH"
    VOID = "VOID"

    @classmethod
    def parse(cls, value: "str | ActualResult") -> "ActualResult":
        if isinstance(value, cls):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError as e:
            raise ValueError(f"Unknown result: {value}") from e


def evaluate_correctness(
    classification: str, result: ActualResult
) -> tuple[bool | None, bool | None]:
    """
    Map a settled result onto (side_won, is_correct).

    PUSH/VOID carry no side or correctness. A PICK is correct when the side
    won, a FADE when it lost; CAUTION is never graded.
    """
    if result not in (ActualResult.WON, ActualResult.LOST):
        return None, None
    side_won = result is ActualResult.WON
    if classification == "PICK":
        return side_won, side_won
    if classification == "FADE":
        return side_won, not side_won
    return side_won, None


@dataclass(frozen=True)
class VerificationResult:
    recommendation_id: int
    applied: bool
    actual_result: str | None
    side_won: bool | None
    is_correct: bool | None
    verified_at: datetime | None


class OutcomeVerifier:
    """Applies settlement results to recommendations."""

    def __init__(self, session: AsyncSession, ledger: CalibrationLedger | None = None):
        self.session = session
        self.ledger = ledger or CalibrationLedger(session)

    async def verify(
        self,
        recommendation_id: int,
        actual_result: str | ActualResult,
        verified_at: datetime | None = None,
    ) -> VerificationResult:
        """
        Settle a recommendation.

        Raises:
            RecommendationNotFoundError: if the id does not exist
            ValueError: if actual_result is not WON/LOST/PUSH/VOID
        """
        result = ActualResult.parse(actual_result)
        recommendation = await self.session.get(ScoredRecommendation, recommendation_id)
        if recommendation is None:
            raise RecommendationNotFoundError(recommendation_id)

        side_won, is_correct = evaluate_correctness(recommendation.classification, result)
        settled_at = ensure_utc(verified_at) or utcnow()

        try:
            await self._transition(recommendation_id, result, side_won, is_correct, settled_at)
        except DoubleSettlementError as e:
            await self.session.refresh(recommendation)
            logger.warning(
                "double_settlement_rejected",
                recommendation_id=recommendation_id,
                attempted_result=result.value,
                stored_result=recommendation.actual_result,
                error=str(e),
            )
            return self._result(recommendation, applied=False)
        await self.session.refresh(recommendation)

        market_key = await self.session.get(MarketKey, recommendation.market_key_id)
        if side_won is not None:
            await self.ledger.record(
                market_key.sport, Outcome(recommendation.confidence, side_won)
            )
        if recommendation.classification == "PICK" and is_correct is False:
            await record_trap_pattern(self.session, recommendation, market_key)

        logger.info(
            "recommendation_verified",
            recommendation_id=recommendation_id,
            classification=recommendation.classification,
            actual_result=result.value,
            is_correct=is_correct,
        )
        return self._result(recommendation, applied=True)

    async def _transition(
        self,
        recommendation_id: int,
        result: ActualResult,
        side_won: bool | None,
        is_correct: bool | None,
        settled_at: datetime,
    ) -> None:
        """Compare-and-set unsettled -> settled."""
        cas = await self.session.execute(
            update(ScoredRecommendation)
            .where(
                ScoredRecommendation.id == recommendation_id,
                ScoredRecommendation.verified_at.is_(None),
            )
            .values(
                verified_at=settled_at,
                actual_result=result.value,
                side_won=side_won,
                is_correct=is_correct,
            )
            .execution_options(synchronize_session=False)
        )
        if cas.rowcount != 1:
            raise DoubleSettlementError(recommendation_id)

    @staticmethod
    def _result(recommendation: ScoredRecommendation, applied: bool) -> VerificationResult:
        return VerificationResult(
            recommendation_id=recommendation.id,
            applied=applied,
            actual_result=recommendation.actual_result,
            side_won=recommendation.side_won,
            is_correct=recommendation.is_correct,
            verified_at=ensure_utc(recommendation.verified_at),
        )
