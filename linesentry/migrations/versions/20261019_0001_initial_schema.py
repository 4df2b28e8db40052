"""Initial schema for LineSentry.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates the signal engine tables:
- MarketKeys and OddsSnapshots (append-only price history)
- SignalConfigVersions (append-only, per sport)
- ScoredRecommendations (outcome columns written once)
- CalibrationBuckets, EventResults, TrapPatterns
- JobRuns for task audit logging
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "market_keys",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(length=64), nullable=False),
        sa.Column("sport", sa.String(length=20), nullable=False),
        sa.Column("bookmaker", sa.String(length=50), nullable=False),
        sa.Column("market_type", sa.String(length=50), nullable=False),
        sa.Column("outcome_name", sa.String(length=200), nullable=False),
        sa.Column("player_name", sa.String(length=200), server_default="", nullable=False),
        sa.Column("description", sa.String(length=300), nullable=True),
        sa.Column("commence_time", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "event_id",
            "sport",
            "bookmaker",
            "market_type",
            "outcome_name",
            "player_name",
            name="uq_market_keys_natural",
        ),
    )
    op.create_index(
        "idx_market_keys_event_market", "market_keys", ["event_id", "market_type"]
    )

    op.create_table(
        "odds_snapshots",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("market_key_id", sa.Integer(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("point", sa.Numeric(precision=7, scale=2), nullable=True),
        sa.Column("public_ticket_pct", sa.Float(), nullable=True),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["market_key_id"], ["market_keys.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "market_key_id", "captured_at", name="uq_odds_snapshots_key_time"
        ),
    )
    op.create_index("idx_odds_snapshots_captured", "odds_snapshots", ["captured_at"])

    op.create_table(
        "signal_config_versions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sport", sa.String(length=20), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("config_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["parent_id"], ["signal_config_versions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sport", "version", name="uq_signal_config_sport_version"),
    )

    op.create_table(
        "scored_recommendations",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("market_key_id", sa.Integer(), nullable=False),
        sa.Column("scored_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("signal_config_id", sa.Integer(), nullable=False),
        sa.Column("sharp_score", sa.Float(), nullable=False),
        sa.Column("trap_score", sa.Float(), nullable=False),
        sa.Column("composite_score", sa.Float(), nullable=False),
        sa.Column("classification", sa.String(length=10), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column(
            "signals_detected", postgresql.JSONB(astext_type=sa.Text()), nullable=False
        ),
        sa.Column("opening_price", sa.Integer(), nullable=False),
        sa.Column("latest_price", sa.Integer(), nullable=False),
        sa.Column("opening_point", sa.Float(), nullable=True),
        sa.Column("latest_point", sa.Float(), nullable=True),
        sa.Column("price_delta", sa.Integer(), nullable=False),
        sa.Column("point_delta", sa.Float(), nullable=True),
        sa.Column("magnitude", sa.Float(), nullable=False),
        sa.Column("magnitude_bucket", sa.String(length=20), nullable=False),
        sa.Column("time_bucket", sa.String(length=20), nullable=False),
        sa.Column("books_reporting", sa.Integer(), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_result", sa.String(length=10), nullable=True),
        sa.Column("side_won", sa.Boolean(), nullable=True),
        sa.Column("is_correct", sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(["market_key_id"], ["market_keys.id"]),
        sa.ForeignKeyConstraint(["signal_config_id"], ["signal_config_versions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "market_key_id", "scored_at", name="uq_scored_recommendations_key_time"
        ),
    )
    op.create_index(
        "idx_scored_recommendations_unverified",
        "scored_recommendations",
        ["market_key_id"],
        postgresql_where=sa.text("verified_at IS NULL"),
    )

    op.create_table(
        "calibration_buckets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sport", sa.String(length=20), nullable=False),
        sa.Column("bucket_low", sa.Float(), nullable=False),
        sa.Column("bucket_high", sa.Float(), nullable=False),
        sa.Column("sample_size", sa.Integer(), nullable=False),
        sa.Column("hit_count", sa.Integer(), nullable=False),
        sa.Column("confidence_sum", sa.Float(), nullable=False),
        sa.Column("brier_sum", sa.Float(), nullable=False),
        sa.Column("empirical_hit_rate", sa.Float(), nullable=False),
        sa.Column("mean_confidence", sa.Float(), nullable=False),
        sa.Column("brier_score", sa.Float(), nullable=False),
        sa.Column("calibration_error", sa.Float(), nullable=False),
        sa.Column("calibration_factor", sa.Float(), nullable=True),
        sa.Column("low_sample", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "sport", "bucket_low", "bucket_high", name="uq_calibration_buckets_range"
        ),
    )

    op.create_table(
        "event_results",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.String(length=64), nullable=False),
        sa.Column("sport", sa.String(length=20), nullable=False),
        sa.Column("home_team", sa.String(length=200), nullable=False),
        sa.Column("away_team", sa.String(length=200), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("home_score", sa.Integer(), nullable=True),
        sa.Column("away_score", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("raw_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id"),
    )
    op.create_index(
        "idx_event_results_final",
        "event_results",
        ["event_id"],
        postgresql_where=sa.text("status = 'final'"),
    )

    op.create_table(
        "trap_patterns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("pattern_signature", sa.String(length=200), nullable=False),
        sa.Column("sport", sa.String(length=20), nullable=False),
        sa.Column("market_type", sa.String(length=50), nullable=False),
        sa.Column("time_bucket", sa.String(length=20), nullable=False),
        sa.Column("magnitude_bucket", sa.String(length=20), nullable=False),
        sa.Column("occurrences", sa.Integer(), nullable=False),
        sa.Column("last_recommendation_id", sa.BigInteger(), nullable=True),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pattern_signature"),
    )

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("records_processed", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_job_runs_name_started", "job_runs", ["job_name", "started_at"])


def downgrade() -> None:
    op.drop_table("job_runs")
    op.drop_table("trap_patterns")
    op.drop_table("event_results")
    op.drop_table("calibration_buckets")
    op.drop_table("scored_recommendations")
    op.drop_table("signal_config_versions")
    op.drop_table("odds_snapshots")
    op.drop_table("market_keys")
