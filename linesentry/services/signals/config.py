"""Versioned, sport-scoped signal configuration.

A SignalConfig is an immutable value object handed to the detector, scorer
and classifier. It is loaded from the latest ``signal_config_versions`` row
for a sport; if none exists the sport is seeded from defaults.yaml (DEFAULT
deep-merged with the sport's overrides), and sports without overrides fall
back to the DEFAULT config.
"""

import copy
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from linesentry.config import get_settings
from linesentry.models.base import dialect_insert
from linesentry.models.domain import SignalConfigVersion
from linesentry.services.errors import ConfigNotFoundError, InvalidConfigError

logger = structlog.get_logger(__name__)

DEFAULT_SPORT = "DEFAULT"

MAGNITUDE_BUCKETS = ("minimal", "small", "moderate", "large", "extreme")
TIME_BUCKETS = ("early", "mid", "late", "closing", "unknown")


class MagnitudeThresholds(BaseModel):
    """Lower bounds (in cents) of each magnitude bucket above minimal."""

    model_config = ConfigDict(frozen=True)

    small: float = 10
    moderate: float = 15
    large: float = 30
    extreme: float = 50

    @model_validator(mode="after")
    def _ordered(self) -> "MagnitudeThresholds":
        if not (0 < self.small < self.moderate < self.large < self.extreme):
            raise ValueError("magnitude thresholds must be positive and increasing")
        return self


class TimeThresholds(BaseModel):
    """Hours-before-commence boundaries for early/mid/late."""

    model_config = ConfigDict(frozen=True)

    early_hours: float = 6
    mid_hours: float = 3
    late_hours: float = 1

    @model_validator(mode="after")
    def _ordered(self) -> "TimeThresholds":
        if not (0 <= self.late_hours < self.mid_hours < self.early_hours):
            raise ValueError("time thresholds must be increasing")
        return self


class IndicatorParams(BaseModel):
    """Tunable constants read by individual indicators."""

    model_config = ConfigDict(frozen=True)

    book_move_min_cents: float = 10
    steam_min_cents: float = 15
    steam_min_books: int = 3
    steam_window_minutes: float = 60
    consensus_min_ratio: float = 0.6
    point_move_min: float = 0.5
    price_only_min_cents: float = 8
    line_juice_min_cents: float = 10
    insignificant_cents: float = 8
    insignificant_implied_delta: float = 0.015
    favorite_price: int = -130
    early_morning_hours: float = 8
    early_morning_utc_start: int = 9
    early_morning_utc_end: int = 15
    opposite_min_cents: float = 5
    public_majority_pct: float = 0.5
    rlm_proxy_cents: float = 10


class SignalConfig(BaseModel):
    """Weights, bucket multipliers and thresholds for one sport and version."""

    model_config = ConfigDict(frozen=True)

    sport: str = DEFAULT_SPORT
    version: int = 0
    config_id: int | None = None

    base_move_sharp: float = 20
    base_noise: float = 20
    magnitude_thresholds: MagnitudeThresholds = Field(default_factory=MagnitudeThresholds)
    time_thresholds: TimeThresholds = Field(default_factory=TimeThresholds)
    movement_weights: dict[str, float] = Field(default_factory=dict)
    time_weights: dict[str, float] = Field(default_factory=dict)
    noise_weights: dict[str, float] = Field(default_factory=dict)
    sharp_weights: dict[str, float] = Field(default_factory=dict)
    trap_weights: dict[str, float] = Field(default_factory=dict)

    pick_threshold: float = 80
    fade_threshold: float = 50
    min_consensus_books: int = 2
    logistic_k: float = Field(default=25, gt=0)

    params: IndicatorParams = Field(default_factory=IndicatorParams)

    @model_validator(mode="after")
    def _complete_bucket_weights(self) -> "SignalConfig":
        for name, buckets in (
            ("movement_weights", MAGNITUDE_BUCKETS),
            ("time_weights", TIME_BUCKETS),
            ("noise_weights", MAGNITUDE_BUCKETS),
        ):
            missing = [b for b in buckets if b not in getattr(self, name)]
            if missing:
                raise ValueError(f"{name} missing buckets: {missing}")
        for name in ("sharp_weights", "trap_weights"):
            negative = [k for k, v in getattr(self, name).items() if v < 0]
            if negative:
                raise ValueError(f"{name} must be non-negative: {negative}")
        return self

    def weight_for(self, kind: str, signal: str) -> float:
        weights = self.sharp_weights if kind == "sharp" else self.trap_weights
        return weights.get(signal, 0.0)

    def to_config_data(self) -> dict[str, Any]:
        """Serializable body stored in signal_config_versions.config_data."""
        return self.model_dump(exclude={"sport", "version", "config_id"})

    @classmethod
    def from_row(cls, row: SignalConfigVersion) -> "SignalConfig":
        return build_config(
            row.config_data, sport=row.sport, version=row.version, config_id=row.id
        )


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def build_config(data: dict[str, Any], **identity: Any) -> SignalConfig:
    """Validate raw config data into a SignalConfig."""
    try:
        return SignalConfig(**{**data, **identity})
    except ValidationError as e:
        raise InvalidConfigError(str(e)) from e


def load_seed_data(sport: str, defaults: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Seed config data for a sport from defaults.yaml.

    Raises:
        ConfigNotFoundError: if the sport has no overrides and is not DEFAULT
    """
    if defaults is None:
        defaults = get_settings().load_defaults_config()
    signal_configs = defaults.get("signal_config", {})
    base = signal_configs.get(DEFAULT_SPORT)
    if base is None:
        base = SignalConfig(**_fallback_weights()).to_config_data()
    if sport == DEFAULT_SPORT:
        return copy.deepcopy(base)
    if sport not in signal_configs:
        raise ConfigNotFoundError(sport)
    return merge_config(base, signal_configs[sport])


def _fallback_weights() -> dict[str, Any]:
    """Bucket weights used if defaults.yaml is missing entirely."""
    return {
        "movement_weights": {
            "minimal": 0.2, "small": 0.5, "moderate": 0.8, "large": 1.0, "extreme": 0.6,
        },
        "time_weights": {
            "early": 0.6, "mid": 1.0, "late": 1.25, "closing": 1.0, "unknown": 1.0,
        },
        "noise_weights": {
            "minimal": 1.0, "small": 0.9, "moderate": 0.7, "large": 0.5, "extreme": 0.3,
        },
        "sharp_weights": {
            "reverse_line_movement": 25,
            "steam_move": 25,
            "late_money": 15,
            "multi_book_consensus": 20,
            "clv_positive": 10,
            "line_and_juice": 15,
        },
        "trap_weights": {
            "single_book_only": 25,
            "price_only_move": 20,
            "early_morning": 15,
            "both_sides_moved": 25,
            "insignificant_move": 15,
            "favorite_shortening": 15,
            "market_adjustment": 15,
            "steam_no_consensus": 10,
        },
    }


class SignalConfigRepository:
    """
    Reads and writes versioned signal configs.

    Versions are append-only. ``get_active`` never raises for an unknown
    sport: it falls back to DEFAULT so scoring is never blocked.
    """

    def __init__(self, session: AsyncSession, defaults: dict[str, Any] | None = None):
        self.session = session
        self._defaults = defaults

    @property
    def defaults(self) -> dict[str, Any]:
        if self._defaults is None:
            self._defaults = get_settings().load_defaults_config()
        return self._defaults

    async def latest_row(self, sport: str) -> SignalConfigVersion | None:
        result = await self.session.execute(
            select(SignalConfigVersion)
            .where(SignalConfigVersion.sport == sport)
            .order_by(SignalConfigVersion.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_active(self, sport: str) -> SignalConfig:
        """Latest config for ``sport``, seeding or falling back to DEFAULT."""
        sport = sport.upper()
        row = await self.latest_row(sport)
        if row is not None:
            return SignalConfig.from_row(row)

        try:
            return await self._seed(sport)
        except ConfigNotFoundError:
            logger.info("signal_config_fallback_default", sport=sport)

        row = await self.latest_row(DEFAULT_SPORT)
        if row is not None:
            return SignalConfig.from_row(row)
        return await self._seed(DEFAULT_SPORT)

    async def get_version(self, config_id: int) -> SignalConfig | None:
        row = await self.session.get(SignalConfigVersion, config_id)
        return SignalConfig.from_row(row) if row else None

    async def list_versions(self, sport: str | None = None) -> list[SignalConfigVersion]:
        query = select(SignalConfigVersion).order_by(
            SignalConfigVersion.sport, SignalConfigVersion.version.desc()
        )
        if sport:
            query = query.where(SignalConfigVersion.sport == sport.upper())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_version(
        self,
        sport: str,
        config_data: dict[str, Any],
        created_by: str,
        notes: str | None = None,
    ) -> SignalConfig:
        """
        Append a new version for ``sport``.

        The body is validated first; prior versions are never touched so
        recommendations keep pointing at the config they were scored with.
        """
        sport = sport.upper()
        config = build_config(config_data, sport=sport)

        parent = await self.latest_row(sport)
        next_version = (parent.version + 1) if parent else 1

        row = SignalConfigVersion(
            sport=sport,
            version=next_version,
            config_data=config.to_config_data(),
            parent_id=parent.id if parent else None,
            created_by=created_by,
            notes=notes,
        )
        self.session.add(row)
        await self.session.flush()

        logger.info(
            "signal_config_version_created",
            sport=sport,
            version=next_version,
            config_id=row.id,
            created_by=created_by,
        )
        return SignalConfig.from_row(row)

    async def _seed(self, sport: str) -> SignalConfig:
        """Insert version 1 from defaults.yaml (no-op if another writer won)."""
        data = build_config(load_seed_data(sport, self.defaults), sport=sport).to_config_data()
        stmt = dialect_insert(self.session, SignalConfigVersion).values(
            sport=sport,
            version=1,
            config_data=data,
            created_by="seed",
            notes="Seeded from defaults.yaml",
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["sport", "version"])
        await self.session.execute(stmt)
        await self.session.flush()

        row = await self.latest_row(sport)
        logger.info("signal_config_seeded", sport=sport, config_id=row.id)
        return SignalConfig.from_row(row)

