"""
Modelos: portfolios y wallets.
Borrar un portfolio borra en cascada wallets, snapshots, goals y entradas de diario.
"""

import uuid

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_vision.models.base import Base, TenantMixin, TimestampMixin

DEFAULT_PORTFOLIO_COLOR = "#a855f7"
DEFAULT_WALLET_COLOR = "#3b82f6"


class PortfolioRow(TenantMixin, TimestampMixin, Base):
    __tablename__ = "portfolios"

    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    color: Mapped[str] = mapped_column(sa.String(16), nullable=False, default=DEFAULT_PORTFOLIO_COLOR)


class WalletRow(TenantMixin, TimestampMixin, Base):
    __tablename__ = "wallets"

    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    # Metadatos libres: no se validan contra ninguna red
    address: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    chain: Mapped[str | None] = mapped_column(sa.String(50), nullable=True)
    color: Mapped[str] = mapped_column(sa.String(16), nullable=False, default=DEFAULT_WALLET_COLOR)
