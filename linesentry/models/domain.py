"""Domain models for LineSentry.

This module defines all database models for the odds-movement signal engine.
Snapshots and config versions are append-only; a scored recommendation is
immutable after creation except for its outcome columns, which are written
exactly once.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from linesentry.models.base import BigIntPK, Base, JSONType, TimestampMixin


class MarketKey(Base, TimestampMixin):
    """
    A unique bettable line.

    Identified by (event, sport, bookmaker, market type, outcome, player).
    player_name is stored as an empty string for non-player markets so the
    natural key stays unique under NULL semantics.
    """

    __tablename__ = "market_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sport: Mapped[str] = mapped_column(String(20), nullable=False)
    bookmaker: Mapped[str] = mapped_column(String(50), nullable=False)
    market_type: Mapped[str] = mapped_column(
        String(50), nullable=False, doc="h2h, spreads, totals, player_points, ..."
    )
    outcome_name: Mapped[str] = mapped_column(String(200), nullable=False)
    player_name: Mapped[str] = mapped_column(
        String(200), nullable=False, default="", server_default=""
    )
    description: Mapped[str | None] = mapped_column(String(300), nullable=True)
    commence_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    snapshots: Mapped[list["OddsSnapshot"]] = relationship(back_populates="market_key")
    recommendations: Mapped[list["ScoredRecommendation"]] = relationship(
        back_populates="market_key"
    )

    __table_args__ = (
        UniqueConstraint(
            "event_id",
            "sport",
            "bookmaker",
            "market_type",
            "outcome_name",
            "player_name",
            name="uq_market_keys_natural",
        ),
        Index("idx_market_keys_event_market", "event_id", "market_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<MarketKey {self.event_id} {self.bookmaker} "
            f"{self.market_type}:{self.outcome_name}>"
        )


class OddsSnapshot(Base):
    """
    Point-in-time price/line observation for a market key.

    Append-only. Opening and latest are defined by captured_at ordering,
    never by insertion order.
    """

    __tablename__ = "odds_snapshots"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    market_key_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("market_keys.id"), nullable=False
    )
    price: Mapped[int] = mapped_column(
        Integer, nullable=False, doc="American odds, e.g. -110 or +150"
    )
    point: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 2), nullable=True, doc="Spread/total line, NULL for moneylines"
    )
    public_ticket_pct: Mapped[float | None] = mapped_column(
        Float, nullable=True, doc="Share of public tickets on this outcome (0-1)"
    )
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    market_key: Mapped["MarketKey"] = relationship(back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint(
            "market_key_id", "captured_at", name="uq_odds_snapshots_key_time"
        ),
        Index("idx_odds_snapshots_captured", "captured_at"),
    )

    def __repr__(self) -> str:
        return f"<OddsSnapshot key={self.market_key_id} {self.price} @ {self.captured_at}>"


class SignalConfigVersion(Base):
    """
    Versioned, sport-scoped signal weights and classifier thresholds.

    Rows are never updated: calibration and operators write a new version.
    Recommendations reference the row they were scored with.
    """

    __tablename__ = "signal_config_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sport: Mapped[str] = mapped_column(
        String(20), nullable=False, doc="Sport code or DEFAULT"
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    config_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("signal_config_versions.id"), nullable=True
    )
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("sport", "version", name="uq_signal_config_sport_version"),
    )

    def __repr__(self) -> str:
        return f"<SignalConfigVersion {self.sport} v{self.version}>"


class ScoredRecommendation(Base):
    """
    Output of one scoring pass for a market key.

    Outcome columns (verified_at, actual_result, side_won, is_correct) are
    written once by the verifier's compare-and-set; everything else is
    immutable after insert.
    """

    __tablename__ = "scored_recommendations"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    market_key_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("market_keys.id"), nullable=False
    )
    scored_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    signal_config_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("signal_config_versions.id"), nullable=False
    )

    sharp_score: Mapped[float] = mapped_column(Float, nullable=False)
    trap_score: Mapped[float] = mapped_column(Float, nullable=False)
    composite_score: Mapped[float] = mapped_column(
        Float, nullable=False, doc="sharp_score - trap_score"
    )
    classification: Mapped[str] = mapped_column(
        String(10), nullable=False, doc="PICK, FADE, CAUTION"
    )
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    signals_detected: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    # Movement inputs, kept for audit and outcome resolution
    opening_price: Mapped[int] = mapped_column(Integer, nullable=False)
    latest_price: Mapped[int] = mapped_column(Integer, nullable=False)
    opening_point: Mapped[float | None] = mapped_column(Float, nullable=True)
    latest_point: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    point_delta: Mapped[float | None] = mapped_column(Float, nullable=True)
    magnitude: Mapped[float] = mapped_column(Float, nullable=False)
    magnitude_bucket: Mapped[str] = mapped_column(String(20), nullable=False)
    time_bucket: Mapped[str] = mapped_column(String(20), nullable=False)
    books_reporting: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_snapshot_id: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True, doc="Newest odds_snapshots.id for the key when scored"
    )

    # Outcome (set exactly once)
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    actual_result: Mapped[str | None] = mapped_column(
        String(10), nullable=True, doc="WON, LOST, PUSH, VOID"
    )
    side_won: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_correct: Mapped[bool | None] = mapped_column(
        Boolean, nullable=True, doc="NULL for CAUTION and for PUSH/VOID"
    )

    market_key: Mapped["MarketKey"] = relationship(back_populates="recommendations")
    signal_config: Mapped["SignalConfigVersion"] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "market_key_id", "scored_at", name="uq_scored_recommendations_key_time"
        ),
        Index(
            "idx_scored_recommendations_unverified",
            "market_key_id",
            postgresql_where=text("verified_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ScoredRecommendation {self.id} {self.classification} "
            f"conf={self.confidence:.3f}>"
        )


class CalibrationBucket(Base, TimestampMixin):
    """
    Aggregated verified outcomes for one confidence range of one sport.

    Raw sums are accumulated as outcomes arrive; derived columns are
    recomputed from the sums. Rows are never deleted, only accumulated or
    rebuilt in place.
    """

    __tablename__ = "calibration_buckets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sport: Mapped[str] = mapped_column(String(20), nullable=False)
    bucket_low: Mapped[float] = mapped_column(Float, nullable=False)
    bucket_high: Mapped[float] = mapped_column(Float, nullable=False)

    sample_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confidence_sum: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    brier_sum: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    empirical_hit_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    mean_confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    brier_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    calibration_error: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    calibration_factor: Mapped[float | None] = mapped_column(
        Float, nullable=True, doc="NULL while sample_size is below the minimum"
    )
    low_sample: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "sport", "bucket_low", "bucket_high", name="uq_calibration_buckets_range"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<CalibrationBucket {self.sport} [{self.bucket_low}, {self.bucket_high}) "
            f"n={self.sample_size}>"
        )


class EventResult(Base):
    """
    Final score for an event, used to settle recommendations automatically.
    """

    __tablename__ = "event_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    sport: Mapped[str] = mapped_column(String(20), nullable=False)
    home_team: Mapped[str] = mapped_column(String(200), nullable=False)
    away_team: Mapped[str] = mapped_column(String(200), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="scheduled",
        doc="scheduled, in_progress, final"
    )
    home_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    away_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    source: Mapped[str] = mapped_column(
        String(50), nullable=False, default="the_odds_api"
    )
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index(
            "idx_event_results_final",
            "event_id",
            postgresql_where=text("status = 'final'"),
        ),
    )

    @property
    def is_final(self) -> bool:
        return (
            self.status == "final"
            and self.home_score is not None
            and self.away_score is not None
        )

    def __repr__(self) -> str:
        return (
            f"<EventResult {self.event_id} {self.home_score}-{self.away_score} "
            f"{self.status}>"
        )


class TrapPattern(Base):
    """
    Signature of movements that produced wrong PICKs.

    Keyed by sport, market type, time bucket and magnitude bucket so
    recurring losing shapes are visible to operators.
    """

    __tablename__ = "trap_patterns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    pattern_signature: Mapped[str] = mapped_column(
        String(200), nullable=False, unique=True
    )
    sport: Mapped[str] = mapped_column(String(20), nullable=False)
    market_type: Mapped[str] = mapped_column(String(50), nullable=False)
    time_bucket: Mapped[str] = mapped_column(String(20), nullable=False)
    magnitude_bucket: Mapped[str] = mapped_column(String(20), nullable=False)
    occurrences: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_recommendation_id: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return f"<TrapPattern {self.pattern_signature} x{self.occurrences}>"


class JobRun(Base):
    """
    Task execution audit log.

    One row per scheduled task run, with status and processed counts.
    """

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, doc="'running', 'success', 'failed'"
    )
    records_processed: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONType, nullable=True
    )

    __table_args__ = (Index("idx_job_runs_name_started", "job_name", "started_at"),)

    def __repr__(self) -> str:
        return f"<JobRun {self.job_name} status={self.status}>"
