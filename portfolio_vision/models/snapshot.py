"""
Modelos: daily_snapshots y monthly_snapshots.
Una fila como máximo por (portfolio_id, date) y por (portfolio_id, month).
"""

import datetime as dt
import uuid
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_vision.models.base import JSONType, Base, Money, Percent, TenantMixin, TimestampMixin


class DailySnapshotRow(TenantMixin, TimestampMixin, Base):
    __tablename__ = "daily_snapshots"

    __table_args__ = (
        sa.UniqueConstraint("portfolio_id", "date", name="uq_daily_snapshots_portfolio_date"),
    )

    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False)
    # [{"wallet_id": "...", "value_usd": "1000.00"}]; no se borra al borrar la wallet
    wallet_balances: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    total_usd: Mapped[Decimal] = mapped_column(Money, nullable=False)
    variation_usd: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    variation_percent: Mapped[Decimal] = mapped_column(Percent, nullable=False, default=Decimal("0"))


class MonthlySnapshotRow(TenantMixin, TimestampMixin, Base):
    __tablename__ = "monthly_snapshots"

    __table_args__ = (
        sa.UniqueConstraint("portfolio_id", "month", name="uq_monthly_snapshots_portfolio_month"),
    )

    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False
    )
    month: Mapped[str] = mapped_column(sa.String(7), nullable=False)  # "YYYY-MM"
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    total_usd: Mapped[Decimal] = mapped_column(Money, nullable=False)
    delta_usd: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    delta_percent: Mapped[Decimal] = mapped_column(Percent, nullable=False, default=Decimal("0"))
    btc_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    eth_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
