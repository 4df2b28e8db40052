"""Tests for calibration metrics, adjustment rules and the engine."""

import pytest
from sqlalchemy import select

from linesentry.models import CalibrationBucket, ScoredRecommendation
from linesentry.services.calibration import CalibrationEngine, CalibrationParams
from linesentry.services.calibration.adjustments import (
    adjust_logistic_k,
    adjust_signal_weights,
    adjust_thresholds,
    derive_adjustment,
)
from linesentry.services.calibration.metrics import (
    BucketStats,
    Outcome,
    SignalStats,
    brier_score,
    bucket_index,
    build_buckets,
    log_loss,
    signal_stats,
)
from linesentry.services.signals import SignalConfigRepository
from linesentry.services.verification import OutcomeVerifier


@pytest.fixture
def params(defaults):
    return CalibrationParams.from_defaults(defaults)


def outcomes(confidence: float, n: int, hits: int) -> list[Outcome]:
    return [Outcome(confidence, i < hits) for i in range(n)]


class TestBuckets:
    """Test fixed-width bucketing."""

    @pytest.mark.parametrize(
        "confidence,expected",
        [(0.0, 0), (0.05, 0), (0.1, 1), (0.65, 6), (0.7, 7), (0.99, 9), (1.0, 9)],
    )
    def test_bucket_index(self, confidence, expected):
        assert bucket_index(confidence, 10) == expected

    def test_build_returns_every_bucket(self):
        buckets = build_buckets([], 10)

        assert len(buckets) == 10
        assert (buckets[0].low, buckets[-1].high) == (0.0, 1.0)
        assert all(b.empirical_hit_rate == 0.0 for b in buckets), "Empty buckets are not NaN"

    def test_factor_for_sampled_bucket(self):
        """12 outcomes at 0.65 with 8 hits: rate 0.667, factor 0.667 / 0.65."""
        bucket = build_buckets(outcomes(0.65, 12, 8), 10)[6]

        assert bucket.sample_size == 12
        assert bucket.empirical_hit_rate == pytest.approx(0.6667, abs=1e-4)
        assert bucket.calibration_factor(10) == pytest.approx(1.0256, abs=1e-4)
        assert not bucket.is_low_sample(10)

    def test_factor_not_computed_below_minimum(self):
        bucket = build_buckets(outcomes(0.65, 9, 9), 10)[6]

        assert bucket.calibration_factor(10) is None
        assert bucket.is_low_sample(10)
        assert bucket.to_dict(10)["calibration_factor"] is None

    def test_rates_stay_in_unit_interval(self):
        buckets = build_buckets(
            outcomes(0.95, 15, 15) + outcomes(0.15, 15, 0) + outcomes(0.45, 4, 2), 10
        )

        for b in buckets:
            assert 0.0 <= b.empirical_hit_rate <= 1.0
            assert 0.0 <= b.brier_score <= 1.0

    def test_calibration_error(self):
        bucket = build_buckets(outcomes(0.85, 12, 6), 10)[8]

        assert bucket.calibration_error == pytest.approx(0.35)


class TestScores:
    def test_brier(self):
        assert brier_score([Outcome(0.8, True), Outcome(0.8, False)]) == pytest.approx(
            (0.04 + 0.64) / 2
        )

    def test_brier_empty(self):
        assert brier_score([]) == 0.0

    def test_log_loss_clamps_extremes(self):
        loss = log_loss([Outcome(1.0, False)])

        assert loss > 30
        assert loss != float("inf")

    def test_signal_accuracy_by_kind(self):
        stats = signal_stats(
            [
                ([{"name": "steam_move", "kind": "sharp"}], True),
                ([{"name": "steam_move", "kind": "sharp"}], False),
                ([{"name": "single_book_only", "kind": "trap"}], False),
            ]
        )

        assert stats["steam_move"].sample_size == 2
        assert stats["steam_move"].accuracy == 0.5
        assert stats["single_book_only"].accuracy == 1.0, "A trap is right when the side loses"


class TestAdjustments:
    """Test bounded, step-limited feedback rules."""

    def test_overconfident_picks_raise_threshold(self, config, params):
        buckets = build_buckets(outcomes(0.65, 12, 8) + outcomes(0.85, 12, 6), 10)

        changes = {c.path: c for c in adjust_thresholds(config, buckets, params)}

        assert changes["pick_threshold"].old == 80
        assert changes["pick_threshold"].new == 85, "Step is capped"
        assert "fade_threshold" not in changes, "No sampled buckets below 0.5"

    def test_well_calibrated_buckets_change_nothing(self, config, params):
        buckets = build_buckets(outcomes(0.65, 20, 13) + outcomes(0.35, 20, 7), 10)

        assert adjust_thresholds(config, buckets, params) == []
        assert adjust_logistic_k(config, buckets, params) == []

    def test_low_sample_buckets_are_ignored(self, config, params):
        buckets = build_buckets(outcomes(0.85, 9, 0), 10)

        assert adjust_thresholds(config, buckets, params) == []
        assert adjust_logistic_k(config, buckets, params) == []

    def test_overconfidence_widens_logistic_k(self, config, params):
        buckets = build_buckets(outcomes(0.65, 12, 8) + outcomes(0.85, 12, 6), 10)

        [change] = adjust_logistic_k(config, buckets, params)

        assert change.old == 25
        assert change.new == pytest.approx(30.0), "Ratio capped at 0.2"

    def test_signal_weights(self, config, params):
        stats = {
            "steam_move": SignalStats("steam_move", "sharp", sample_size=10, side_won=3),
            "single_book_only": SignalStats("single_book_only", "trap", sample_size=10, side_won=1),
            "late_money": SignalStats("late_money", "sharp", sample_size=9, side_won=0),
            "clv_positive": SignalStats("clv_positive", "sharp", sample_size=10, side_won=5),
        }

        changes = {c.path: c.new for c in adjust_signal_weights(config, stats, params)}

        assert changes == {
            "sharp_weights.steam_move": 12.5,
            "trap_weights.single_book_only": 32.5,
        }

    def test_derive_applies_changes_to_copy(self, config, params):
        buckets = build_buckets(outcomes(0.65, 12, 8) + outcomes(0.85, 12, 6), 10)
        stats = {"steam_move": SignalStats("steam_move", "sharp", sample_size=10, side_won=3)}

        adjustment = derive_adjustment(config, buckets, stats, params)

        assert adjustment.changed
        assert adjustment.config_data["pick_threshold"] == 85
        assert adjustment.config_data["sharp_weights"]["steam_move"] == 12.5
        assert config.pick_threshold == 80, "Source config is not mutated"


class TestCalibrationEngine:
    """Test calibration passes against the database."""

    async def _settle(self, add_recommendation, market_key, config, confidence, n, hits, now):
        for i in range(n):
            won = i < hits
            await add_recommendation(
                market_key.id,
                config.config_id,
                confidence=confidence,
                verified_at=now,
                actual_result="WON" if won else "LOST",
                side_won=won,
                is_correct=won,
            )

    @pytest.mark.asyncio
    async def test_low_sample_writes_no_config(
        self, session, market_key, nba_config, add_recommendation, params, now
    ):
        await self._settle(add_recommendation, market_key, nba_config, 0.85, 12, 2, now)
        await session.commit()

        report = await CalibrationEngine(session, params).run("nba")

        assert report.low_confidence
        assert report.sample_size == 12
        assert report.config_version_written is None
        versions = await SignalConfigRepository(session).list_versions("NBA")
        assert [v.version for v in versions] == [1]

    @pytest.mark.asyncio
    async def test_pass_appends_new_version(
        self, session, market_key, nba_config, add_recommendation, params, now
    ):
        await self._settle(add_recommendation, market_key, nba_config, 0.65, 12, 8, now)
        await self._settle(add_recommendation, market_key, nba_config, 0.85, 12, 6, now)
        # Unverified and PUSH recommendations are not calibrated
        await add_recommendation(market_key.id, nba_config.config_id, confidence=0.85)
        await add_recommendation(
            market_key.id,
            nba_config.config_id,
            confidence=0.85,
            verified_at=now,
            actual_result="PUSH",
        )
        await session.commit()

        report = await CalibrationEngine(session, params).run("NBA")

        assert not report.low_confidence
        assert report.sample_size == 24
        assert report.config_version_written == 2

        repo = SignalConfigRepository(session)
        active = await repo.get_active("NBA")
        assert active.version == 2
        assert active.pick_threshold == 85
        assert active.logistic_k == pytest.approx(26.4)

        [row] = [v for v in await repo.list_versions("NBA") if v.version == 2]
        assert row.created_by == "calibration"
        assert row.parent_id == nba_config.config_id

        result = await session.execute(select(ScoredRecommendation.signal_config_id).distinct())
        assert result.scalars().all() == [nba_config.config_id], (
            "Past recommendations keep the version they were scored with"
        )

    @pytest.mark.asyncio
    async def test_buckets_rebuilt(
        self, session, market_key, nba_config, add_recommendation, params, now
    ):
        await self._settle(add_recommendation, market_key, nba_config, 0.65, 12, 8, now)
        await session.commit()

        report = await CalibrationEngine(session, params).run("NBA")

        assert report.buckets[6].sample_size == 12
        result = await session.execute(
            select(CalibrationBucket).where(CalibrationBucket.sport == "NBA")
        )
        rows = {(r.bucket_low, r.bucket_high): r for r in result.scalars().all()}
        assert len(rows) == 10
        assert rows[(0.6, 0.7)].hit_count == 8
        assert rows[(0.6, 0.7)].calibration_factor == pytest.approx(1.0256, abs=1e-4)
        assert rows[(0.8, 0.9)].calibration_factor is None

    @pytest.mark.asyncio
    async def test_lock_wraps_the_pass(self, session, params):
        events = []

        class RecordingLock:
            async def __aenter__(self):
                events.append("enter")

            async def __aexit__(self, *exc):
                events.append("exit")

        await CalibrationEngine(session, params, lock=RecordingLock()).run("NBA")

        assert events == ["enter", "exit"]

    @pytest.mark.asyncio
    async def test_verification_between_load_and_rebuild_is_kept(
        self, session, market_key, nba_config, add_recommendation, params, now
    ):
        first = await add_recommendation(market_key.id, nba_config.config_id, confidence=0.65)
        second = await add_recommendation(market_key.id, nba_config.config_id, confidence=0.65)
        await session.commit()

        verifier = OutcomeVerifier(session)
        await verifier.verify(first.id, "WON", verified_at=now)
        await session.commit()

        engine = CalibrationEngine(session, params)
        records = await engine.load_records("NBA")
        assert len(records) == 1

        await verifier.verify(second.id, "LOST", verified_at=now)
        await session.commit()

        buckets = await engine.rebuild_buckets("NBA")

        assert buckets[6].sample_size == 2
        result = await session.execute(
            select(CalibrationBucket).where(
                CalibrationBucket.sport == "NBA",
                CalibrationBucket.bucket_low == 0.6,
            )
        )
        row = result.scalar_one()
        assert row.sample_size == 2, "Rebuild must not drop a verification committed mid-pass"
        assert row.hit_count == 1
