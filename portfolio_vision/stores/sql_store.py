"""
Almacén embebido sobre SQLAlchemy async (SQLite vía aiosqlite; Postgres vía asyncpg).

Reglas:
- Cada operación es una única transacción: o se escribe todo o nada
- Upsert atómico en BD (INSERT ... ON CONFLICT DO UPDATE), nunca check-then-act en cliente
- delete_portfolio borra dependientes y portfolio en la misma transacción (rollback real)
- Toda consulta filtra por user_id del tenant activo
"""

import datetime as dt
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portfolio_vision.core.exceptions import Conflict, NotFound, StorageUnavailable
from portfolio_vision.core.identity import IdentityContext, require_tenant
from portfolio_vision.models import (
    DailySnapshotRow,
    GoalRow,
    JournalEntryRow,
    MarketEventRow,
    MonthlySnapshotRow,
    PortfolioRow,
    WalletRow,
)
from portfolio_vision.models.base import Base, new_uuid, utcnow
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
    WalletBalance,
    WalletCreate,
    WalletPatch,
)
from portfolio_vision.stores.base import PORTFOLIO_DEPENDENTS, EntityKind, patch_values

logger = structlog.get_logger(__name__)

ROW_CLASSES: dict[EntityKind, type[Base]] = {
    EntityKind.PORTFOLIO: PortfolioRow,
    EntityKind.WALLET: WalletRow,
    EntityKind.DAILY_SNAPSHOT: DailySnapshotRow,
    EntityKind.MONTHLY_SNAPSHOT: MonthlySnapshotRow,
    EntityKind.GOAL: GoalRow,
    EntityKind.JOURNAL_ENTRY: JournalEntryRow,
    EntityKind.MARKET_EVENT: MarketEventRow,
}


def _balances_json(balances: list[WalletBalance]) -> list[dict]:
    """Serializa los balances para la columna JSON (Decimal como string, sin pérdida)."""
    return [{"wallet_id": str(b.wallet_id), "value_usd": str(b.value_usd)} for b in balances]


class SqlStore:
    """
    Implementación embebida de SnapshotStore + EntityStore.

    Uso:
        store = SqlStore(AsyncSessionLocal, identity)
        snapshot_id = await store.upsert_daily(snapshot)

    La fábrica de sesiones es inyectable para tests (SQLite temporal).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity: IdentityContext,
    ) -> None:
        self._session_factory = session_factory
        self._identity = identity

    async def close(self) -> None:
        """Sin recursos propios: el engine pertenece al proceso y se libera en el lifespan."""

    # -----------------------------------------------------------------------
    # Infraestructura: tenant, transacción y traducción de errores
    # -----------------------------------------------------------------------

    def _tenant(self) -> str:
        return require_tenant(self._identity)

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Sesión con commit al salir; traduce errores de SQLAlchemy a la taxonomía del motor."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except IntegrityError as exc:
                logger.warning("store.integrity_error", operation=operation, error=str(exc.orig))
                raise Conflict(operation, str(exc.orig)) from exc
            except (OperationalError, InterfaceError) as exc:
                logger.error("store.unavailable", operation=operation, error=str(exc.orig))
                raise StorageUnavailable(operation, str(exc.orig)) from exc

    @staticmethod
    def _insert(session: AsyncSession, row_cls: type[Base]):
        """INSERT con soporte ON CONFLICT según el dialecto activo."""
        if session.get_bind().dialect.name == "postgresql":
            return pg_insert(row_cls)
        return sqlite_insert(row_cls)

    @staticmethod
    async def _get_owned(session: AsyncSession, row_cls, row_id: uuid.UUID, tenant: str):
        result = await session.execute(
            select(row_cls).where(row_cls.id == row_id, row_cls.user_id == tenant)
        )
        return result.scalar_one_or_none()

    async def _require_owned(self, session: AsyncSession, row_cls, row_id: uuid.UUID, tenant: str, entity: str):
        row = await self._get_owned(session, row_cls, row_id, tenant)
        if row is None:
            raise NotFound(entity, row_id)
        return row

    async def _delete_owned(self, row_cls, row_id: uuid.UUID, operation: str) -> None:
        tenant = self._tenant()
        async with self._transaction(operation) as session:
            result = await session.execute(
                delete(row_cls).where(row_cls.id == row_id, row_cls.user_id == tenant)
            )
            deleted = result.rowcount
        logger.debug("store.delete", table=row_cls.__tablename__, id=str(row_id), deleted=deleted)

    @staticmethod
    def _apply(row, changes: dict) -> None:
        for key, value in changes.items():
            setattr(row, key, value)

    # -----------------------------------------------------------------------
    # Snapshots diarios
    # -----------------------------------------------------------------------

    async def list_daily(self, portfolio_id: uuid.UUID) -> list[DailySnapshot]:
        tenant = self._tenant()
        async with self._transaction("list_daily") as session:
            result = await session.execute(
                select(DailySnapshotRow)
                .where(DailySnapshotRow.portfolio_id == portfolio_id, DailySnapshotRow.user_id == tenant)
                .order_by(DailySnapshotRow.date.asc())
            )
            return [DailySnapshot.model_validate(row) for row in result.scalars()]

    async def get_daily_by_date(self, portfolio_id: uuid.UUID, date: dt.date) -> DailySnapshot | None:
        tenant = self._tenant()
        async with self._transaction("get_daily_by_date") as session:
            result = await session.execute(
                select(DailySnapshotRow).where(
                    DailySnapshotRow.portfolio_id == portfolio_id,
                    DailySnapshotRow.date == date,
                    DailySnapshotRow.user_id == tenant,
                )
            )
            row = result.scalar_one_or_none()
            return DailySnapshot.model_validate(row) if row is not None else None

    async def upsert_daily(self, snapshot: DailySnapshot) -> uuid.UUID:
        """Inserta o sobreescribe la fila de (portfolio_id, date). Conserva el id existente."""
        tenant = self._tenant()
        values = {
            "wallet_balances": _balances_json(snapshot.wallet_balances),
            "total_usd": snapshot.total_usd,
            "variation_usd": snapshot.variation_usd,
            "variation_percent": snapshot.variation_percent,
        }
        async with self._transaction("upsert_daily") as session:
            await self._require_owned(session, PortfolioRow, snapshot.portfolio_id, tenant, "Portfolio")
            stmt = self._insert(session, DailySnapshotRow).values(
                id=new_uuid(),
                user_id=tenant,
                portfolio_id=snapshot.portfolio_id,
                date=snapshot.date,
                created_at=utcnow(),
                **values,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["portfolio_id", "date"],
                set_=values,
            ).returning(DailySnapshotRow.id)
            snapshot_id = (await session.execute(stmt)).scalar_one()

        logger.info(
            "store.upsert_daily",
            portfolio_id=str(snapshot.portfolio_id),
            date=snapshot.date.isoformat(),
            snapshot_id=str(snapshot_id),
        )
        return snapshot_id

    async def update_daily(self, snapshot_id: uuid.UUID, patch: DailySnapshotPatch) -> DailySnapshot:
        tenant = self._tenant()
        changes = patch_values(patch)
        if patch.wallet_balances is not None:
            changes["wallet_balances"] = _balances_json(patch.wallet_balances)

        async with self._transaction("update_daily") as session:
            row = await self._require_owned(session, DailySnapshotRow, snapshot_id, tenant, "DailySnapshot")
            new_date = changes.get("date")
            if new_date is not None and new_date != row.date:
                clash = await session.execute(
                    select(DailySnapshotRow.id).where(
                        DailySnapshotRow.portfolio_id == row.portfolio_id,
                        DailySnapshotRow.date == new_date,
                        DailySnapshotRow.id != row.id,
                    )
                )
                if clash.first() is not None:
                    raise Conflict("DailySnapshot", f"{row.portfolio_id}/{new_date.isoformat()}")
            self._apply(row, changes)
            await session.flush()
            return DailySnapshot.model_validate(row)

    async def delete_daily(self, snapshot_id: uuid.UUID) -> None:
        await self._delete_owned(DailySnapshotRow, snapshot_id, "delete_daily")

    # -----------------------------------------------------------------------
    # Snapshots mensuales
    # -----------------------------------------------------------------------

    async def list_monthly(self, portfolio_id: uuid.UUID) -> list[MonthlySnapshot]:
        tenant = self._tenant()
        async with self._transaction("list_monthly") as session:
            result = await session.execute(
                select(MonthlySnapshotRow)
                .where(MonthlySnapshotRow.portfolio_id == portfolio_id, MonthlySnapshotRow.user_id == tenant)
                .order_by(MonthlySnapshotRow.month.asc())
            )
            return [MonthlySnapshot.model_validate(row) for row in result.scalars()]

    async def get_monthly_by_month(self, portfolio_id: uuid.UUID, month: str) -> MonthlySnapshot | None:
        tenant = self._tenant()
        async with self._transaction("get_monthly_by_month") as session:
            result = await session.execute(
                select(MonthlySnapshotRow).where(
                    MonthlySnapshotRow.portfolio_id == portfolio_id,
                    MonthlySnapshotRow.month == month,
                    MonthlySnapshotRow.user_id == tenant,
                )
            )
            row = result.scalar_one_or_none()
            return MonthlySnapshot.model_validate(row) if row is not None else None

    async def upsert_monthly(self, snapshot: MonthlySnapshot) -> uuid.UUID:
        tenant = self._tenant()
        values = {
            "year": snapshot.year,
            "total_usd": snapshot.total_usd,
            "delta_usd": snapshot.delta_usd,
            "delta_percent": snapshot.delta_percent,
            "btc_price": snapshot.btc_price,
            "eth_price": snapshot.eth_price,
        }
        async with self._transaction("upsert_monthly") as session:
            await self._require_owned(session, PortfolioRow, snapshot.portfolio_id, tenant, "Portfolio")
            stmt = self._insert(session, MonthlySnapshotRow).values(
                id=new_uuid(),
                user_id=tenant,
                portfolio_id=snapshot.portfolio_id,
                month=snapshot.month,
                created_at=utcnow(),
                **values,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["portfolio_id", "month"],
                set_=values,
            ).returning(MonthlySnapshotRow.id)
            snapshot_id = (await session.execute(stmt)).scalar_one()

        logger.info(
            "store.upsert_monthly",
            portfolio_id=str(snapshot.portfolio_id),
            month=snapshot.month,
            snapshot_id=str(snapshot_id),
        )
        return snapshot_id

    async def update_monthly(self, snapshot_id: uuid.UUID, patch: MonthlySnapshotPatch) -> MonthlySnapshot:
        tenant = self._tenant()
        changes = patch_values(patch)
        async with self._transaction("update_monthly") as session:
            row = await self._require_owned(session, MonthlySnapshotRow, snapshot_id, tenant, "MonthlySnapshot")
            new_month = changes.get("month")
            if new_month is not None and new_month != row.month:
                clash = await session.execute(
                    select(MonthlySnapshotRow.id).where(
                        MonthlySnapshotRow.portfolio_id == row.portfolio_id,
                        MonthlySnapshotRow.month == new_month,
                        MonthlySnapshotRow.id != row.id,
                    )
                )
                if clash.first() is not None:
                    raise Conflict("MonthlySnapshot", f"{row.portfolio_id}/{new_month}")
                changes["year"] = int(new_month[:4])
            self._apply(row, changes)
            await session.flush()
            return MonthlySnapshot.model_validate(row)

    async def delete_monthly(self, snapshot_id: uuid.UUID) -> None:
        await self._delete_owned(MonthlySnapshotRow, snapshot_id, "delete_monthly")

    # -----------------------------------------------------------------------
    # Portfolios
    # -----------------------------------------------------------------------

    async def list_portfolios(self) -> list[Portfolio]:
        tenant = self._tenant()
        async with self._transaction("list_portfolios") as session:
            result = await session.execute(
                select(PortfolioRow).where(PortfolioRow.user_id == tenant).order_by(PortfolioRow.created_at.asc())
            )
            return [Portfolio.model_validate(row) for row in result.scalars()]

    async def get_portfolio(self, portfolio_id: uuid.UUID) -> Portfolio:
        tenant = self._tenant()
        async with self._transaction("get_portfolio") as session:
            row = await self._require_owned(session, PortfolioRow, portfolio_id, tenant, "Portfolio")
            return Portfolio.model_validate(row)

    async def create_portfolio(self, data: PortfolioCreate) -> Portfolio:
        tenant = self._tenant()
        async with self._transaction("create_portfolio") as session:
            row = PortfolioRow(id=new_uuid(), user_id=tenant, created_at=utcnow(), **data.model_dump())
            session.add(row)
            await session.flush()
            portfolio = Portfolio.model_validate(row)
        logger.info("store.create_portfolio", portfolio_id=str(portfolio.id))
        return portfolio

    async def update_portfolio(self, portfolio_id: uuid.UUID, patch: PortfolioPatch) -> Portfolio:
        tenant = self._tenant()
        async with self._transaction("update_portfolio") as session:
            row = await self._require_owned(session, PortfolioRow, portfolio_id, tenant, "Portfolio")
            self._apply(row, patch_values(patch))
            await session.flush()
            return Portfolio.model_validate(row)

    async def delete_portfolio(self, portfolio_id: uuid.UUID) -> None:
        """Borrado en cascada dentro de una única transacción. No-op si no existe."""
        tenant = self._tenant()
        deleted: dict[str, int] = {}
        async with self._transaction("delete_portfolio") as session:
            if await self._get_owned(session, PortfolioRow, portfolio_id, tenant) is None:
                return
            for kind in PORTFOLIO_DEPENDENTS:
                row_cls = ROW_CLASSES[kind]
                result = await session.execute(
                    delete(row_cls).where(row_cls.portfolio_id == portfolio_id, row_cls.user_id == tenant)
                )
                deleted[kind.value] = result.rowcount
            await session.execute(
                delete(PortfolioRow).where(PortfolioRow.id == portfolio_id, PortfolioRow.user_id == tenant)
            )
        logger.info("store.delete_portfolio", portfolio_id=str(portfolio_id), **deleted)

    # -----------------------------------------------------------------------
    # Wallets
    # -----------------------------------------------------------------------

    async def list_wallets(self, portfolio_id: uuid.UUID | None = None) -> list[Wallet]:
        tenant = self._tenant()
        stmt = select(WalletRow).where(WalletRow.user_id == tenant)
        if portfolio_id is not None:
            stmt = stmt.where(WalletRow.portfolio_id == portfolio_id)
        async with self._transaction("list_wallets") as session:
            result = await session.execute(stmt.order_by(WalletRow.created_at.asc()))
            return [Wallet.model_validate(row) for row in result.scalars()]

    async def get_wallet(self, wallet_id: uuid.UUID) -> Wallet:
        tenant = self._tenant()
        async with self._transaction("get_wallet") as session:
            row = await self._require_owned(session, WalletRow, wallet_id, tenant, "Wallet")
            return Wallet.model_validate(row)

    async def create_wallet(self, data: WalletCreate) -> Wallet:
        tenant = self._tenant()
        async with self._transaction("create_wallet") as session:
            await self._require_owned(session, PortfolioRow, data.portfolio_id, tenant, "Portfolio")
            row = WalletRow(id=new_uuid(), user_id=tenant, created_at=utcnow(), **data.model_dump())
            session.add(row)
            await session.flush()
            return Wallet.model_validate(row)

    async def update_wallet(self, wallet_id: uuid.UUID, patch: WalletPatch) -> Wallet:
        tenant = self._tenant()
        async with self._transaction("update_wallet") as session:
            row = await self._require_owned(session, WalletRow, wallet_id, tenant, "Wallet")
            self._apply(row, patch_values(patch))
            await session.flush()
            return Wallet.model_validate(row)

    async def delete_wallet(self, wallet_id: uuid.UUID) -> None:
        # Los balances embebidos en snapshots se conservan (se mostrarán como "Unknown")
        await self._delete_owned(WalletRow, wallet_id, "delete_wallet")

    # -----------------------------------------------------------------------
    # Goals
    # -----------------------------------------------------------------------

    async def list_goals(self, portfolio_id: uuid.UUID) -> list[Goal]:
        tenant = self._tenant()
        async with self._transaction("list_goals") as session:
            result = await session.execute(
                select(GoalRow)
                .where(GoalRow.portfolio_id == portfolio_id, GoalRow.user_id == tenant)
                .order_by(GoalRow.created_at.asc())
            )
            return [Goal.model_validate(row) for row in result.scalars()]

    async def create_goal(self, data: GoalCreate) -> Goal:
        tenant = self._tenant()
        async with self._transaction("create_goal") as session:
            await self._require_owned(session, PortfolioRow, data.portfolio_id, tenant, "Portfolio")
            row = GoalRow(id=new_uuid(), user_id=tenant, created_at=utcnow(), **data.model_dump())
            session.add(row)
            await session.flush()
            return Goal.model_validate(row)

    async def update_goal(self, goal_id: uuid.UUID, patch: GoalPatch) -> Goal:
        tenant = self._tenant()
        async with self._transaction("update_goal") as session:
            row = await self._require_owned(session, GoalRow, goal_id, tenant, "Goal")
            self._apply(row, patch_values(patch))
            await session.flush()
            return Goal.model_validate(row)

    async def complete_goal(self, goal_id: uuid.UUID) -> Goal:
        """Fija completed_at una sola vez; llamadas repetidas devuelven la fecha original."""
        tenant = self._tenant()
        async with self._transaction("complete_goal") as session:
            row = await self._require_owned(session, GoalRow, goal_id, tenant, "Goal")
            if row.completed_at is None:
                row.completed_at = utcnow()
                await session.flush()
                logger.info("store.complete_goal", goal_id=str(goal_id))
            return Goal.model_validate(row)

    async def delete_goal(self, goal_id: uuid.UUID) -> None:
        await self._delete_owned(GoalRow, goal_id, "delete_goal")

    # -----------------------------------------------------------------------
    # Diario
    # -----------------------------------------------------------------------

    async def _journal_date_taken(
        self, session: AsyncSession, portfolio_id: uuid.UUID, date: dt.date, exclude_id: uuid.UUID | None = None
    ) -> bool:
        stmt = select(JournalEntryRow.id).where(
            JournalEntryRow.portfolio_id == portfolio_id, JournalEntryRow.date == date
        )
        if exclude_id is not None:
            stmt = stmt.where(JournalEntryRow.id != exclude_id)
        return (await session.execute(stmt)).first() is not None

    async def list_journal_entries(
        self,
        portfolio_id: uuid.UUID,
        start: dt.date | None = None,
        end: dt.date | None = None,
    ) -> list[JournalEntry]:
        tenant = self._tenant()
        stmt = select(JournalEntryRow).where(
            JournalEntryRow.portfolio_id == portfolio_id, JournalEntryRow.user_id == tenant
        )
        if start is not None:
            stmt = stmt.where(JournalEntryRow.date >= start)
        if end is not None:
            stmt = stmt.where(JournalEntryRow.date <= end)
        async with self._transaction("list_journal_entries") as session:
            result = await session.execute(stmt.order_by(JournalEntryRow.date.asc()))
            return [JournalEntry.model_validate(row) for row in result.scalars()]

    async def create_journal_entry(self, data: JournalEntryCreate) -> JournalEntry:
        tenant = self._tenant()
        async with self._transaction("create_journal_entry") as session:
            await self._require_owned(session, PortfolioRow, data.portfolio_id, tenant, "Portfolio")
            if await self._journal_date_taken(session, data.portfolio_id, data.date):
                raise Conflict("JournalEntry", f"{data.portfolio_id}/{data.date.isoformat()}")
            row = JournalEntryRow(id=new_uuid(), user_id=tenant, created_at=utcnow(), **data.model_dump())
            session.add(row)
            await session.flush()
            return JournalEntry.model_validate(row)

    async def update_journal_entry(self, entry_id: uuid.UUID, patch: JournalEntryPatch) -> JournalEntry:
        tenant = self._tenant()
        changes = patch_values(patch)
        async with self._transaction("update_journal_entry") as session:
            row = await self._require_owned(session, JournalEntryRow, entry_id, tenant, "JournalEntry")
            new_date = changes.get("date")
            if new_date is not None and new_date != row.date:
                if await self._journal_date_taken(session, row.portfolio_id, new_date, exclude_id=row.id):
                    raise Conflict("JournalEntry", f"{row.portfolio_id}/{new_date.isoformat()}")
            self._apply(row, changes)
            row.updated_at = utcnow()
            await session.flush()
            return JournalEntry.model_validate(row)

    async def delete_journal_entry(self, entry_id: uuid.UUID) -> None:
        await self._delete_owned(JournalEntryRow, entry_id, "delete_journal_entry")

    # -----------------------------------------------------------------------
    # Eventos de mercado
    # -----------------------------------------------------------------------

    async def list_market_events(
        self,
        start: dt.date | None = None,
        end: dt.date | None = None,
        event_type: str | None = None,
    ) -> list[MarketEvent]:
        tenant = self._tenant()
        stmt = select(MarketEventRow).where(MarketEventRow.user_id == tenant)
        if start is not None:
            stmt = stmt.where(MarketEventRow.date >= start)
        if end is not None:
            stmt = stmt.where(MarketEventRow.date <= end)
        if event_type is not None:
            stmt = stmt.where(MarketEventRow.type == event_type)
        async with self._transaction("list_market_events") as session:
            result = await session.execute(stmt.order_by(MarketEventRow.date.desc()))
            return [MarketEvent.model_validate(row) for row in result.scalars()]

    async def create_market_event(self, data: MarketEventCreate) -> MarketEvent:
        tenant = self._tenant()
        async with self._transaction("create_market_event") as session:
            row = MarketEventRow(id=new_uuid(), user_id=tenant, created_at=utcnow(), **data.model_dump())
            session.add(row)
            await session.flush()
            return MarketEvent.model_validate(row)

    async def update_market_event(self, event_id: uuid.UUID, patch: MarketEventPatch) -> MarketEvent:
        tenant = self._tenant()
        async with self._transaction("update_market_event") as session:
            row = await self._require_owned(session, MarketEventRow, event_id, tenant, "MarketEvent")
            self._apply(row, patch_values(patch))
            await session.flush()
            return MarketEvent.model_validate(row)

    async def delete_market_event(self, event_id: uuid.UUID) -> None:
        await self._delete_owned(MarketEventRow, event_id, "delete_market_event")

    # -----------------------------------------------------------------------
    # Import aditivo
    # -----------------------------------------------------------------------

    async def insert_if_absent(self, kind: EntityKind, entity: BaseModel) -> bool:
        """
        Inserta la entidad con su id original salvo que ya exista (por id o por clave natural).
        Devuelve True si se insertó. Nunca sobreescribe.
        Los dependientes solo entran si su portfolio existe y es del tenant activo.
        """
        tenant = self._tenant()
        row_cls = ROW_CLASSES[kind]
        values = entity.model_dump()
        if isinstance(entity, DailySnapshot):
            values["wallet_balances"] = _balances_json(entity.wallet_balances)
        values["id"] = values.get("id") or new_uuid()
        values["created_at"] = values.get("created_at") or utcnow()
        values["user_id"] = tenant

        async with self._transaction(f"insert_if_absent:{kind.value}") as session:
            if kind in PORTFOLIO_DEPENDENTS:
                parent = await self._get_owned(session, PortfolioRow, values["portfolio_id"], tenant)
                if parent is None:
                    logger.warning(
                        "store.insert_if_absent.orphan",
                        kind=kind.value,
                        portfolio_id=str(values["portfolio_id"]),
                    )
                    return False
            stmt = self._insert(session, row_cls).values(**values).on_conflict_do_nothing()
            result = await session.execute(stmt)
            inserted = result.rowcount > 0
        return inserted
