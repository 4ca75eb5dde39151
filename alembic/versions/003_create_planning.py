"""create goals, journal_entries and market_events tables

Revision ID: 003_create_planning
Revises: 002_create_snapshots
Create Date: 2026-10-01 00:02:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "003_create_planning"
down_revision: Union[str, None] = "002_create_snapshots"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "goals",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("portfolio_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("target_value", sa.NUMERIC(20, 8), nullable=False),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("color", sa.String(16), nullable=False, server_default="#22c55e"),
        sa.Column("icon", sa.String(50), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["portfolio_id"], ["portfolios.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("target_value > 0", name="ck_goals_target_positive"),
    )
    op.create_index("ix_goals_user_id", "goals", ["user_id"])
    op.create_index("ix_goals_portfolio_id", "goals", ["portfolio_id"])

    op.create_table(
        "journal_entries",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("portfolio_id", sa.UUID(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("mood", sa.String(10), nullable=False, server_default="neutral"),
        sa.Column("tags", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["portfolio_id"], ["portfolios.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        # Una entrada por portfolio y día
        sa.UniqueConstraint("portfolio_id", "date", name="uq_journal_entries_portfolio_date"),
        sa.CheckConstraint("mood IN ('bullish', 'bearish', 'neutral')", name="ck_journal_entries_mood"),
    )
    op.create_index("ix_journal_entries_user_id", "journal_entries", ["user_id"])

    # Eventos de mercado: del tenant, no de un portfolio
    op.create_table(
        "market_events",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("impact", sa.String(10), nullable=False),
        sa.Column("coins", JSONB(), nullable=True),
        sa.Column("source", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "type IN ('news', 'halving', 'crash', 'ath', 'regulation', 'hack', 'launch', 'other')",
            name="ck_market_events_type",
        ),
        sa.CheckConstraint("impact IN ('positive', 'negative', 'neutral')", name="ck_market_events_impact"),
    )
    op.create_index("ix_market_events_user_id", "market_events", ["user_id"])
    op.create_index("ix_market_events_date", "market_events", ["date"])


def downgrade() -> None:
    op.drop_index("ix_market_events_date", table_name="market_events")
    op.drop_index("ix_market_events_user_id", table_name="market_events")
    op.drop_table("market_events")
    op.drop_index("ix_journal_entries_user_id", table_name="journal_entries")
    op.drop_table("journal_entries")
    op.drop_index("ix_goals_portfolio_id", table_name="goals")
    op.drop_index("ix_goals_user_id", table_name="goals")
    op.drop_table("goals")
