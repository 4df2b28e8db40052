"""Tests for the scoring pipeline against a real (SQLite) store."""

from datetime import timedelta

import pytest

from linesentry.services.ingestion import SnapshotStore
from linesentry.services.scoring import ScoringPipeline
from linesentry.services.timing import utcnow

BOOKS = ("draftkings", "fanduel", "betmgm", "caesars")


async def _steam(store, key_data, at):
    """Four books move -110/3.5 to -128/5.0 between 30 and 0 minutes before ``at``."""
    for i, book in enumerate(BOOKS):
        key = key_data(bookmaker=book, commence_time=at + timedelta(hours=2))
        await store.record_snapshot(key, -110, 3.5, at - timedelta(hours=4))
        await store.record_snapshot(key, -128, 5.0, at - timedelta(minutes=30 - 10 * i))
    target = key_data(bookmaker="draftkings", commence_time=at + timedelta(hours=2))
    result = await store.record_snapshot(target, -128, 5.0, at, public_ticket_pct=0.35)
    return result.market_key_id


class TestScoringPipeline:
    """Test detect -> score -> classify -> persist."""

    @pytest.mark.asyncio
    async def test_steam_move_persisted_as_pick(self, session, key_data, nba_config, now):
        store = SnapshotStore(session)
        key_id = await _steam(store, key_data, now)

        rec = await ScoringPipeline(session).score_market_key(key_id)

        assert rec.classification == "PICK"
        assert rec.sharp_score == pytest.approx(130)
        assert rec.trap_score == pytest.approx(7)
        assert rec.books_reporting == 4
        assert rec.time_bucket == "late"
        assert rec.signal_config_id == nba_config.config_id, (
            "Recommendation must reference the config version it was scored with"
        )
        names = {s["name"] for s in rec.signals_detected}
        assert {"steam_move", "reverse_line_movement", "multi_book_consensus"} <= names
        assert 0.99 < rec.confidence <= 1.0

    @pytest.mark.asyncio
    async def test_single_snapshot_is_not_scored(self, session, key_data, now):
        store = SnapshotStore(session)
        result = await store.record_snapshot(key_data(), -110, -3.5, now)

        rec = await ScoringPipeline(session).score_market_key(result.market_key_id)

        assert rec is None

    @pytest.mark.asyncio
    async def test_unknown_key_is_not_scored(self, session):
        assert await ScoringPipeline(session).score_market_key(9999) is None

    @pytest.mark.asyncio
    async def test_unknown_sport_scores_with_default(self, session, key_data, now):
        store = SnapshotStore(session)
        key = key_data(sport="CFL")
        await store.record_snapshot(key, -110, -3.5, now - timedelta(hours=1))
        result = await store.record_snapshot(key, -130, -3.5, now)

        rec = await ScoringPipeline(session).score_market_key(result.market_key_id)

        assert rec is not None, "A missing sport config must never block scoring"

    @pytest.mark.asyncio
    async def test_score_active_skips_unchanged_keys(self, session, key_data):
        store = SnapshotStore(session)
        await _steam(store, key_data, utcnow())
        await session.commit()
        pipeline = ScoringPipeline(session)

        first = await pipeline.score_active(lookback_hours=12)
        second = await pipeline.score_active(lookback_hours=12)

        assert first["recommendations_created"] == 4
        assert first["errors"] == 0
        assert second["recommendations_created"] == 0
        assert second["skipped"] == 4

    @pytest.mark.asyncio
    async def test_snapshot_right_after_scoring_is_rescored(self, session, key_data, nba_config):
        """A snapshot written in the same instant as a pass is still picked up."""
        store = SnapshotStore(session)
        at = utcnow()
        key = key_data(commence_time=at + timedelta(hours=2))
        await store.record_snapshot(key, -110, 3.5, at - timedelta(hours=1))
        result = await store.record_snapshot(key, -120, 3.5, at - timedelta(minutes=1))
        await session.commit()
        pipeline = ScoringPipeline(session)

        first = await pipeline.score_market_key(result.market_key_id, skip_unchanged=True)
        await session.commit()
        await store.record_snapshot(key, -140, 4.5, at)
        await session.commit()
        second = await pipeline.score_market_key(result.market_key_id, skip_unchanged=True)
        await session.commit()
        third = await pipeline.score_market_key(result.market_key_id, skip_unchanged=True)

        assert first.latest_price == -120
        assert second is not None, "New snapshot must not be treated as unchanged"
        assert second.latest_price == -140
        assert second.last_snapshot_id > first.last_snapshot_id
        assert third is None

    @pytest.mark.asyncio
    async def test_late_arriving_older_snapshot_triggers_rescore(
        self, session, key_data, nba_config, now
    ):
        store = SnapshotStore(session)
        key = key_data()
        await store.record_snapshot(key, -110, 3.5, now - timedelta(hours=2))
        result = await store.record_snapshot(key, -125, 3.5, now)
        pipeline = ScoringPipeline(session)
        first = await pipeline.score_market_key(result.market_key_id, scored_at=now)

        await store.record_snapshot(key, -115, 3.5, now - timedelta(hours=1))
        second = await pipeline.score_market_key(
            result.market_key_id, scored_at=now + timedelta(seconds=1), skip_unchanged=True
        )

        assert first is not None
        assert second is not None
        assert second.latest_price == -125, "Latest stays the newest captured_at"
