"""
Modelos: goals, journal_entries y market_events.
Los market events pertenecen al tenant, no a un portfolio.
"""

import datetime as dt
import uuid
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_vision.models.base import JSONType, Base, Money, TenantMixin, TimestampMixin

MOODS = ("bullish", "bearish", "neutral")
EVENT_TYPES = ("news", "halving", "crash", "ath", "regulation", "hack", "launch", "other")
IMPACTS = ("positive", "negative", "neutral")


class GoalRow(TenantMixin, TimestampMixin, Base):
    __tablename__ = "goals"

    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    target_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    deadline: Mapped[dt.date | None] = mapped_column(sa.Date, nullable=True)
    color: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="#22c55e")
    icon: Mapped[str | None] = mapped_column(sa.String(50), nullable=True)
    # Se fija una única vez con complete_goal; nunca se sobreescribe
    completed_at: Mapped[dt.datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)


class JournalEntryRow(TenantMixin, TimestampMixin, Base):
    __tablename__ = "journal_entries"

    __table_args__ = (
        sa.UniqueConstraint("portfolio_id", "date", name="uq_journal_entries_portfolio_date"),
        sa.CheckConstraint(f"mood IN {MOODS}", name="ck_journal_entries_mood"),
    )

    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False)
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    content: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")
    mood: Mapped[str] = mapped_column(sa.String(10), nullable=False, default="neutral")
    tags: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    updated_at: Mapped[dt.datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)


class MarketEventRow(TenantMixin, TimestampMixin, Base):
    __tablename__ = "market_events"

    __table_args__ = (
        sa.CheckConstraint(f"type IN {EVENT_TYPES}", name="ck_market_events_type"),
        sa.CheckConstraint(f"impact IN {IMPACTS}", name="ck_market_events_impact"),
    )

    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False, index=True)
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    type: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    impact: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    coins: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    source: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
