"""Add last_snapshot_id to scored_recommendations.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

The periodic scoring pass skips keys with no new snapshot since their last
recommendation. Comparing insertion timestamps missed snapshots written in
the same second (SQLite) or inside a long ingestion transaction (now() is
the transaction start on PostgreSQL); snapshot ids do not.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002'
down_revision = '0001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        'scored_recommendations',
        sa.Column(
            'last_snapshot_id', sa.BigInteger(), nullable=True,
            comment='Newest odds_snapshots.id for the key when scored'
        )
    )


def downgrade() -> None:
    op.drop_column('scored_recommendations', 'last_snapshot_id')
