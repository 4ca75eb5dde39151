"""
Modelos SQLAlchemy. Importar aquí para que Alembic los detecte en autogenerate.
"""

from portfolio_vision.models.planning import GoalRow, JournalEntryRow, MarketEventRow
from portfolio_vision.models.portfolio import PortfolioRow, WalletRow
from portfolio_vision.models.snapshot import DailySnapshotRow, MonthlySnapshotRow

__all__ = [
    "DailySnapshotRow",
    "GoalRow",
    "JournalEntryRow",
    "MarketEventRow",
    "MonthlySnapshotRow",
    "PortfolioRow",
    "WalletRow",
]
