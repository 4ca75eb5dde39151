"""create daily_snapshots and monthly_snapshots tables

Revision ID: 002_create_snapshots
Revises: 001_create_portfolios_wallets
Create Date: 2026-10-01 00:01:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "002_create_snapshots"
down_revision: Union[str, None] = "001_create_portfolios_wallets"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "daily_snapshots",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("portfolio_id", sa.UUID(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        # [{"wallet_id": ..., "value_usd": ...}]; sin FK a wallets
        sa.Column("wallet_balances", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        # NUMERIC(20,8): valores en USD; NUMERIC(10,4): porcentajes
        sa.Column("total_usd", sa.NUMERIC(20, 8), nullable=False),
        sa.Column("variation_usd", sa.NUMERIC(20, 8), nullable=False, server_default="0"),
        sa.Column("variation_percent", sa.NUMERIC(10, 4), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(["portfolio_id"], ["portfolios.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        # Clave del upsert: on_conflict=portfolio_id,date
        sa.UniqueConstraint("portfolio_id", "date", name="uq_daily_snapshots_portfolio_date"),
    )
    op.create_index("ix_daily_snapshots_user_id", "daily_snapshots", ["user_id"])

    op.create_table(
        "monthly_snapshots",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("portfolio_id", sa.UUID(), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("total_usd", sa.NUMERIC(20, 8), nullable=False),
        sa.Column("delta_usd", sa.NUMERIC(20, 8), nullable=False, server_default="0"),
        sa.Column("delta_percent", sa.NUMERIC(10, 4), nullable=False, server_default="0"),
        sa.Column("btc_price", sa.NUMERIC(20, 8), nullable=True),
        sa.Column("eth_price", sa.NUMERIC(20, 8), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(["portfolio_id"], ["portfolios.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("portfolio_id", "month", name="uq_monthly_snapshots_portfolio_month"),
        sa.CheckConstraint("month ~ '^[0-9]{4}-(0[1-9]|1[0-2])$'", name="ck_monthly_snapshots_month"),
    )
    op.create_index("ix_monthly_snapshots_user_id", "monthly_snapshots", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_monthly_snapshots_user_id", table_name="monthly_snapshots")
    op.drop_table("monthly_snapshots")
    op.drop_index("ix_daily_snapshots_user_id", table_name="daily_snapshots")
    op.drop_table("daily_snapshots")
