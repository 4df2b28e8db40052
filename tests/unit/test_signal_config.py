"""Tests for versioned signal configuration."""

import pytest

from linesentry.services.errors import ConfigNotFoundError, InvalidConfigError
from linesentry.services.signals import DEFAULT_SPORT, SignalConfigRepository
from linesentry.services.signals.config import build_config, load_seed_data, merge_config


class TestSeedData:
    """Test building seed configs from defaults.yaml."""

    def test_merge_is_deep(self):
        base = {"a": 1, "nested": {"x": 1, "y": 2}}
        merged = merge_config(base, {"nested": {"y": 3}})

        assert merged == {"a": 1, "nested": {"x": 1, "y": 3}}
        assert base["nested"]["y"] == 2, "Base must not be mutated"

    def test_sport_override_inherits_default(self, defaults):
        nba = build_config(load_seed_data("NBA", defaults), sport="NBA")

        assert nba.logistic_k == 22
        assert nba.params.steam_window_minutes == 45
        assert nba.pick_threshold == 80, "Unlisted keys inherit DEFAULT"
        assert nba.sharp_weights["steam_move"] == 25

    def test_unknown_sport_has_no_seed(self, defaults):
        with pytest.raises(ConfigNotFoundError):
            load_seed_data("CRICKET", defaults)

    def test_missing_bucket_weight_rejected(self, defaults):
        data = load_seed_data(DEFAULT_SPORT, defaults)
        del data["time_weights"]["closing"]

        with pytest.raises(InvalidConfigError):
            build_config(data)

    def test_negative_weight_rejected(self, defaults):
        data = load_seed_data(DEFAULT_SPORT, defaults)
        data["trap_weights"]["early_morning"] = -1

        with pytest.raises(InvalidConfigError):
            build_config(data)


class TestSignalConfigRepository:
    """Test config versioning and fallback."""

    @pytest.mark.asyncio
    async def test_sport_seeded_on_first_use(self, session, defaults):
        repo = SignalConfigRepository(session, defaults)

        config = await repo.get_active("nba")

        assert config.sport == "NBA"
        assert config.version == 1
        assert config.config_id is not None
        assert config.logistic_k == 22

    @pytest.mark.asyncio
    async def test_unknown_sport_falls_back_to_default(self, session, defaults):
        repo = SignalConfigRepository(session, defaults)

        config = await repo.get_active("CRICKET")

        assert config.sport == DEFAULT_SPORT
        assert config.logistic_k == 25
        assert await repo.latest_row("CRICKET") is None, "Fallback must not seed the sport"

    @pytest.mark.asyncio
    async def test_create_version_appends(self, session, defaults):
        repo = SignalConfigRepository(session, defaults)
        v1 = await repo.get_active("NFL")

        data = v1.to_config_data()
        data["pick_threshold"] = 90
        v2 = await repo.create_version("NFL", data, created_by="operator", notes="tighter")

        assert v2.version == 2
        assert v2.pick_threshold == 90
        assert (await repo.get_active("NFL")).config_id == v2.config_id

        old = await repo.get_version(v1.config_id)
        assert old.pick_threshold == v1.pick_threshold, "Old versions are never modified"

        rows = await repo.list_versions("NFL")
        assert [r.version for r in rows] == [2, 1]
        assert rows[0].parent_id == rows[1].id

    @pytest.mark.asyncio
    async def test_invalid_version_not_written(self, session, defaults):
        repo = SignalConfigRepository(session, defaults)
        v1 = await repo.get_active("MLB")

        data = v1.to_config_data()
        data["logistic_k"] = 0

        with pytest.raises(InvalidConfigError):
            await repo.create_version("MLB", data, created_by="operator")
        assert (await repo.get_active("MLB")).version == 1
