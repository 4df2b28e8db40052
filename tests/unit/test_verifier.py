"""Tests for outcome verification.

CRITICAL: a recommendation is settled exactly once. A repeated verify must
neither change the stored outcome nor count twice in calibration.
"""

import pytest
from sqlalchemy import select

from linesentry.models import CalibrationBucket, TrapPattern
from linesentry.services.errors import RecommendationNotFoundError
from linesentry.services.verification import ActualResult, OutcomeVerifier
from linesentry.services.verification.verifier import evaluate_correctness


class TestEvaluateCorrectness:
    @pytest.mark.parametrize(
        "classification,result,expected",
        [
            ("PICK", ActualResult.WON, (True, True)),
            ("PICK", ActualResult.LOST, (False, False)),
            ("FADE", ActualResult.WON, (True, False)),
            ("FADE", ActualResult.LOST, (False, True)),
            ("CAUTION", ActualResult.WON, (True, None)),
            ("PICK", ActualResult.PUSH, (None, None)),
            ("FADE", ActualResult.VOID, (None, None)),
        ],
    )
    def test_mapping(self, classification, result, expected):
        assert evaluate_correctness(classification, result) == expected

    def test_parse_is_case_insensitive(self):
        assert ActualResult.parse(" won ") is ActualResult.WON

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            ActualResult.parse("MAYBE")


class TestOutcomeVerifier:
    """Test the settle-once transition."""

    async def _buckets(self, session):
        result = await session.execute(
            select(CalibrationBucket).where(CalibrationBucket.sample_size > 0)
        )
        return result.scalars().all()

    @pytest.mark.asyncio
    async def test_first_verify_applies(
        self, session, market_key, nba_config, add_recommendation, now
    ):
        rec = await add_recommendation(market_key.id, nba_config.config_id, confidence=0.65)

        result = await OutcomeVerifier(session).verify(rec.id, "WON", verified_at=now)

        assert result.applied
        assert result.actual_result == "WON"
        assert result.is_correct is True
        assert result.verified_at == now

        buckets = await self._buckets(session)
        assert len(buckets) == 1
        assert (buckets[0].bucket_low, buckets[0].bucket_high) == (0.6, 0.7)
        assert buckets[0].sample_size == 1
        assert buckets[0].hit_count == 1

    @pytest.mark.asyncio
    async def test_second_verify_is_a_no_op(
        self, session, market_key, nba_config, add_recommendation, now
    ):
        rec = await add_recommendation(market_key.id, nba_config.config_id)
        verifier = OutcomeVerifier(session)

        first = await verifier.verify(rec.id, "WON", verified_at=now)
        second = await verifier.verify(rec.id, "LOST")

        assert first.applied
        assert not second.applied
        assert second.actual_result == "WON", "Stored outcome must not change"
        assert second.is_correct is True
        assert second.verified_at == now

        buckets = await self._buckets(session)
        assert sum(b.sample_size for b in buckets) == 1, "Outcome must be counted once"

    @pytest.mark.asyncio
    async def test_push_settles_without_calibration(
        self, session, market_key, nba_config, add_recommendation
    ):
        rec = await add_recommendation(market_key.id, nba_config.config_id)

        result = await OutcomeVerifier(session).verify(rec.id, ActualResult.PUSH)

        assert result.applied
        assert result.is_correct is None
        assert await self._buckets(session) == []

    @pytest.mark.asyncio
    async def test_unknown_recommendation(self, session):
        with pytest.raises(RecommendationNotFoundError):
            await OutcomeVerifier(session).verify(424242, "WON")

    @pytest.mark.asyncio
    async def test_wrong_pick_records_trap_pattern(
        self, session, market_key, nba_config, add_recommendation
    ):
        verifier = OutcomeVerifier(session)
        for _ in range(2):
            rec = await add_recommendation(market_key.id, nba_config.config_id)
            await verifier.verify(rec.id, "LOST")

        result = await session.execute(select(TrapPattern))
        patterns = result.scalars().all()

        assert len(patterns) == 1
        assert patterns[0].pattern_signature == "nba_spreads_late_moderate"
        assert patterns[0].occurrences == 2

    @pytest.mark.asyncio
    async def test_correct_fade_records_no_pattern(
        self, session, market_key, nba_config, add_recommendation
    ):
        rec = await add_recommendation(
            market_key.id, nba_config.config_id, classification="FADE", confidence=0.2
        )

        result = await OutcomeVerifier(session).verify(rec.id, "LOST")

        assert result.is_correct is True
        assert (await session.execute(select(TrapPattern))).scalars().all() == []
