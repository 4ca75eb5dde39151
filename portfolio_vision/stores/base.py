"""
Contratos de persistencia. Dos implementaciones intercambiables:
- SqlStore     → almacén embebido (SQLAlchemy async, SQLite por defecto)
- RemoteStore  → almacén remoto multi-tenant (PostgREST sobre httpx)

El orquestador y la analítica solo conocen estos Protocols; nunca preguntan
qué backend está activo. Todas las operaciones exigen un tenant (Unauthenticated).

Semántica común:
- upsert_* → una fila por clave natural; si existe se sobreescribe y conserva el id
- update_* → NotFound si no existe, Conflict si el cambio de clave colisiona
- delete_* → no-op si no existe
- insert_if_absent → import aditivo: nunca sobreescribe (ni por id ni por clave natural)
"""

import datetime as dt
import uuid
from enum import Enum
from typing import Protocol

from pydantic import BaseModel

from portfolio_vision.schemas.domain import (
    DailySnapshot,
    DailySnapshotPatch,
    Goal,
    GoalCreate,
    GoalPatch,
    JournalEntry,
    JournalEntryCreate,
    JournalEntryPatch,
    MarketEvent,
    MarketEventCreate,
    MarketEventPatch,
    MonthlySnapshot,
    MonthlySnapshotPatch,
    Portfolio,
    PortfolioCreate,
    PortfolioPatch,
    Wallet,
    WalletCreate,
    WalletPatch,
)


class EntityKind(str, Enum):
    """Colecciones persistidas; el valor es el nombre de la tabla en ambos backends."""

    PORTFOLIO = "portfolios"
    WALLET = "wallets"
    DAILY_SNAPSHOT = "daily_snapshots"
    MONTHLY_SNAPSHOT = "monthly_snapshots"
    GOAL = "goals"
    JOURNAL_ENTRY = "journal_entries"
    MARKET_EVENT = "market_events"


# Tablas que dependen de un portfolio, en orden de borrado en cascada
PORTFOLIO_DEPENDENTS: tuple[EntityKind, ...] = (
    EntityKind.WALLET,
    EntityKind.DAILY_SNAPSHOT,
    EntityKind.MONTHLY_SNAPSHOT,
    EntityKind.GOAL,
    EntityKind.JOURNAL_ENTRY,
)


class SnapshotStore(Protocol):
    async def list_daily(self, portfolio_id: uuid.UUID) -> list[DailySnapshot]: ...

    async def get_daily_by_date(self, portfolio_id: uuid.UUID, date: dt.date) -> DailySnapshot | None: ...

    async def upsert_daily(self, snapshot: DailySnapshot) -> uuid.UUID: ...

    async def update_daily(self, snapshot_id: uuid.UUID, patch: DailySnapshotPatch) -> DailySnapshot: ...

    async def delete_daily(self, snapshot_id: uuid.UUID) -> None: ...

    async def list_monthly(self, portfolio_id: uuid.UUID) -> list[MonthlySnapshot]: ...

    async def get_monthly_by_month(self, portfolio_id: uuid.UUID, month: str) -> MonthlySnapshot | None: ...

    async def upsert_monthly(self, snapshot: MonthlySnapshot) -> uuid.UUID: ...

    async def update_monthly(self, snapshot_id: uuid.UUID, patch: MonthlySnapshotPatch) -> MonthlySnapshot: ...

    async def delete_monthly(self, snapshot_id: uuid.UUID) -> None: ...


class EntityStore(Protocol):
    # Portfolios
    async def list_portfolios(self) -> list[Portfolio]: ...

    async def get_portfolio(self, portfolio_id: uuid.UUID) -> Portfolio: ...

    async def create_portfolio(self, data: PortfolioCreate) -> Portfolio: ...

    async def update_portfolio(self, portfolio_id: uuid.UUID, patch: PortfolioPatch) -> Portfolio: ...

    async def delete_portfolio(self, portfolio_id: uuid.UUID) -> None: ...

    # Wallets
    async def list_wallets(self, portfolio_id: uuid.UUID | None = None) -> list[Wallet]: ...

    async def get_wallet(self, wallet_id: uuid.UUID) -> Wallet: ...

    async def create_wallet(self, data: WalletCreate) -> Wallet: ...

    async def update_wallet(self, wallet_id: uuid.UUID, patch: WalletPatch) -> Wallet: ...

    async def delete_wallet(self, wallet_id: uuid.UUID) -> None: ...

    # Goals
    async def list_goals(self, portfolio_id: uuid.UUID) -> list[Goal]: ...

    async def create_goal(self, data: GoalCreate) -> Goal: ...

    async def update_goal(self, goal_id: uuid.UUID, patch: GoalPatch) -> Goal: ...

    async def complete_goal(self, goal_id: uuid.UUID) -> Goal: ...

    async def delete_goal(self, goal_id: uuid.UUID) -> None: ...

    # Diario
    async def list_journal_entries(
        self,
        portfolio_id: uuid.UUID,
        start: dt.date | None = None,
        end: dt.date | None = None,
    ) -> list[JournalEntry]: ...

    async def create_journal_entry(self, data: JournalEntryCreate) -> JournalEntry: ...

    async def update_journal_entry(self, entry_id: uuid.UUID, patch: JournalEntryPatch) -> JournalEntry: ...

    async def delete_journal_entry(self, entry_id: uuid.UUID) -> None: ...

    # Eventos de mercado (por tenant, no por portfolio)
    async def list_market_events(
        self,
        start: dt.date | None = None,
        end: dt.date | None = None,
        event_type: str | None = None,
    ) -> list[MarketEvent]: ...

    async def create_market_event(self, data: MarketEventCreate) -> MarketEvent: ...

    async def update_market_event(self, event_id: uuid.UUID, patch: MarketEventPatch) -> MarketEvent: ...

    async def delete_market_event(self, event_id: uuid.UUID) -> None: ...

    # Import aditivo de backups
    async def insert_if_absent(self, kind: EntityKind, entity: BaseModel) -> bool: ...


class PortfolioStore(SnapshotStore, EntityStore, Protocol):
    """Un backend completo: ambos contratos sobre la misma conexión."""

    async def close(self) -> None:
        """Libera los recursos propios del almacén (cliente HTTP). Puede no tener nada que liberar."""
        ...


# Columnas opcionales: en un patch, None explícito significa "borrar el valor"
NULLABLE_FIELDS = frozenset(
    {"address", "chain", "deadline", "icon", "description", "coins", "source", "btc_price", "eth_price"}
)


def patch_values(patch: BaseModel, *, json_mode: bool = False) -> dict:
    """
    Cambios explícitos de un patch. Un None en una columna obligatoria se ignora
    (no se puede "borrar" el nombre de un portfolio).
    """
    changes = patch.model_dump(exclude_unset=True, mode="json" if json_mode else "python")
    return {k: v for k, v in changes.items() if v is not None or k in NULLABLE_FIELDS}
