"""
Orquestador del portafolio: une almacén (local o remoto) y motor de analítica.

Reglas:
- No sabe qué backend tiene debajo: recibe un PortfolioStore ya construido
- Totales y variaciones se calculan AQUÍ antes de persistir; el almacén no recalcula
- "Calcular variación con el snapshot anterior y luego escribir" son dos pasos
  separados: se asume un único escritor por portfolio (limitación documentada)
- Las colecciones derivadas (wallets activas, etc.) se consultan bajo demanda,
  nunca se cachean
- Los imports acumulan errores por fila y nunca abortan en la primera fila mala
"""

import datetime as dt
import re
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

import structlog

from portfolio_vision.core.exceptions import Conflict, NotFound, ValidationError
from portfolio_vision.models.portfolio import DEFAULT_PORTFOLIO_COLOR
from portfolio_vision.schemas.domain import (
    MONTH_PATTERN,
    BackupPayload,
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
from portfolio_vision.services.analytics import (
    UNKNOWN_WALLET_NAME,
    ZERO,
    ChartPoint,
    DrawdownResult,
    MonthlyDelta,
    MonthlyPoint,
    PerformanceMetrics,
    Variation,
    WalletAllocation,
    YearlyStats,
    build_monthly_series,
    calculate_goal_progress,
    calculate_monthly_delta,
    calculate_performance_metrics,
    calculate_variation,
    calculate_wallet_allocations,
    calculate_yearly_stats,
    compute_drawdown,
    get_chart_data,
    get_sparkline_data,
    month_over_month_delta,
    previous_month,
)
from portfolio_vision.services.import_validator import (
    ImportedSnapshot,
    generate_csv,
    validate_imported_snapshots,
)
from portfolio_vision.services.price_feed import CoinGeckoPriceFeed
from portfolio_vision.stores.base import EntityKind, PortfolioStore

logger = structlog.get_logger(__name__)

_MONTH_RE = re.compile(MONTH_PATTERN)


# ---------------------------------------------------------------------------
# Tipos de retorno
# ---------------------------------------------------------------------------


@dataclass
class ImportCounts:
    portfolios: int = 0
    wallets: int = 0
    snapshots: int = 0
    monthly_snapshots: int = 0
    goals: int = 0
    journal_entries: int = 0
    market_events: int = 0
    skipped: int = 0     # ya existían (por id o por clave natural)


@dataclass
class RowImportResult:
    imported_count: int
    warnings: list[str] = field(default_factory=list)


@dataclass
class GoalProgress:
    goal: Goal
    progress_pct: Decimal
    achieved: bool


# Orden de import: padres antes que hijos
_BACKUP_SECTIONS: tuple[tuple[str, EntityKind], ...] = (
    ("portfolios", EntityKind.PORTFOLIO),
    ("wallets", EntityKind.WALLET),
    ("snapshots", EntityKind.DAILY_SNAPSHOT),
    ("monthly_snapshots", EntityKind.MONTHLY_SNAPSHOT),
    ("goals", EntityKind.GOAL),
    ("journal_entries", EntityKind.JOURNAL_ENTRY),
    ("market_events", EntityKind.MARKET_EVENT),
)


class PortfolioService:
    """
    Uso (uno por petición / tenant):
        service = PortfolioService(store)
        snapshot = await service.upsert_daily_snapshot(portfolio_id, date, balances)
    """

    def __init__(self, store: PortfolioStore, price_feed: CoinGeckoPriceFeed | None = None) -> None:
        self.store = store
        self.price_feed = price_feed

    # -----------------------------------------------------------------------
    # Portfolios y wallets
    # -----------------------------------------------------------------------

    async def list_portfolios(self) -> list[Portfolio]:
        return await self.store.list_portfolios()

    async def get_portfolio(self, portfolio_id: uuid.UUID) -> Portfolio:
        return await self.store.get_portfolio(portfolio_id)

    async def create_portfolio(self, name: str, color: str = DEFAULT_PORTFOLIO_COLOR) -> Portfolio:
        return await self.store.create_portfolio(PortfolioCreate(name=name, color=color))

    async def update_portfolio(self, portfolio_id: uuid.UUID, patch: PortfolioPatch) -> Portfolio:
        return await self.store.update_portfolio(portfolio_id, patch)

    async def delete_portfolio(self, portfolio_id: uuid.UUID) -> None:
        await self.store.delete_portfolio(portfolio_id)

    async def list_wallets(self, portfolio_id: uuid.UUID) -> list[Wallet]:
        """Wallets activas del portfolio, consultadas en el momento."""
        return await self.store.list_wallets(portfolio_id)

    async def create_wallet(self, data: WalletCreate) -> Wallet:
        return await self.store.create_wallet(data)

    async def update_wallet(self, wallet_id: uuid.UUID, patch: WalletPatch) -> Wallet:
        return await self.store.update_wallet(wallet_id, patch)

    async def delete_wallet(self, wallet_id: uuid.UUID) -> None:
        await self.store.delete_wallet(wallet_id)

    # -----------------------------------------------------------------------
    # Snapshots
    # -----------------------------------------------------------------------

    async def upsert_daily_snapshot(
        self,
        portfolio_id: uuid.UUID,
        date: dt.date,
        wallet_balances: Sequence[WalletBalance],
    ) -> DailySnapshot:
        """
        total = suma de balances; variación contra el snapshot más reciente con fecha anterior.
        Sin snapshot anterior la variación es 0.
        """
        balances = list(wallet_balances)
        total = sum((b.value_usd for b in balances), ZERO)

        history = await self.store.list_daily(portfolio_id)
        previous = next((s for s in reversed(history) if s.date < date), None)
        if previous is None:
            variation = Variation(amount=ZERO, percent=ZERO)
        else:
            variation = calculate_variation(total, previous.total_usd)

        snapshot = DailySnapshot(
            portfolio_id=portfolio_id,
            date=date,
            wallet_balances=balances,
            total_usd=total,
            variation_usd=variation.amount,
            variation_percent=variation.percent,
        )
        snapshot_id = await self.store.upsert_daily(snapshot)
        return snapshot.model_copy(update={"id": snapshot_id})

    async def upsert_monthly_snapshot(
        self,
        portfolio_id: uuid.UUID,
        month: str,
        total_usd: Decimal,
        btc_price: Decimal | None = None,
        eth_price: Decimal | None = None,
    ) -> MonthlySnapshot:
        """
        Delta contra el snapshot del mes natural anterior ("2024-01" → "2023-12").
        Sin precios explícitos se rellenan con la referencia de CoinGecko (si hay feed).
        """
        if not _MONTH_RE.match(month):
            raise ValidationError(f"Invalid month: {month!r} (expected YYYY-MM)")

        previous = await self.store.get_monthly_by_month(portfolio_id, previous_month(month))
        delta = month_over_month_delta(total_usd, previous)

        if btc_price is None and eth_price is None and self.price_feed is not None:
            prices = await self.price_feed.get_reference_prices()
            if prices.btc > ZERO:
                btc_price, eth_price = prices.btc, prices.eth

        snapshot = MonthlySnapshot(
            portfolio_id=portfolio_id,
            month=month,
            year=int(month[:4]),
            total_usd=total_usd,
            delta_usd=delta.amount,
            delta_percent=delta.percent,
            btc_price=btc_price,
            eth_price=eth_price,
        )
        snapshot_id = await self.store.upsert_monthly(snapshot)
        return snapshot.model_copy(update={"id": snapshot_id})

    async def list_daily_snapshots(self, portfolio_id: uuid.UUID) -> list[DailySnapshot]:
        return await self.store.list_daily(portfolio_id)

    async def list_monthly_snapshots(self, portfolio_id: uuid.UUID) -> list[MonthlySnapshot]:
        return await self.store.list_monthly(portfolio_id)

    async def update_daily_snapshot(self, snapshot_id: uuid.UUID, patch: DailySnapshotPatch) -> DailySnapshot:
        return await self.store.update_daily(snapshot_id, patch)

    async def delete_daily_snapshot(self, snapshot_id: uuid.UUID) -> None:
        await self.store.delete_daily(snapshot_id)

    async def update_monthly_snapshot(self, snapshot_id: uuid.UUID, patch: MonthlySnapshotPatch) -> MonthlySnapshot:
        return await self.store.update_monthly(snapshot_id, patch)

    async def delete_monthly_snapshot(self, snapshot_id: uuid.UUID) -> None:
        await self.store.delete_monthly(snapshot_id)

    # -----------------------------------------------------------------------
    # Analítica
    # -----------------------------------------------------------------------

    async def get_performance_metrics(self, portfolio_id: uuid.UUID) -> PerformanceMetrics:
        return calculate_performance_metrics(await self.store.list_daily(portfolio_id))

    async def get_allocations(self, portfolio_id: uuid.UUID) -> list[WalletAllocation]:
        """Reparto del snapshot diario más reciente."""
        history = await self.store.list_daily(portfolio_id)
        if not history:
            return []
        latest = max(history, key=lambda s: s.date)
        wallets = await self.store.list_wallets(portfolio_id)
        return calculate_wallet_allocations(latest, wallets)

    async def get_monthly_series(self, portfolio_id: uuid.UUID, year: int) -> list[MonthlyPoint]:
        return build_monthly_series(await self.store.list_monthly(portfolio_id), year)

    async def get_yearly_stats(self, portfolio_id: uuid.UUID, year: int) -> YearlyStats:
        return calculate_yearly_stats(await self.get_monthly_series(portfolio_id, year))

    async def get_chart_data(self, portfolio_id: uuid.UUID, limit: int | None = None) -> list[ChartPoint]:
        return get_chart_data(await self.store.list_daily(portfolio_id), limit)

    async def get_sparkline(self, portfolio_id: uuid.UUID, points: int = 30) -> list[Decimal]:
        return get_sparkline_data(await self.store.list_daily(portfolio_id), points)

    async def get_drawdown(self, portfolio_id: uuid.UUID) -> DrawdownResult:
        return compute_drawdown(await self.store.list_daily(portfolio_id))

    async def get_monthly_delta(self, portfolio_id: uuid.UUID, year: int, month: int) -> MonthlyDelta:
        """Inicio / fin del mes a partir de los snapshots diarios (sin mensual registrado)."""
        return calculate_monthly_delta(await self.store.list_daily(portfolio_id), year, month)

    # -----------------------------------------------------------------------
    # Goals, diario y eventos de mercado
    # -----------------------------------------------------------------------

    async def list_goals(self, portfolio_id: uuid.UUID) -> list[Goal]:
        return await self.store.list_goals(portfolio_id)

    async def get_goal_progress(self, portfolio_id: uuid.UUID) -> list[GoalProgress]:
        goals = await self.store.list_goals(portfolio_id)
        history = await self.store.list_daily(portfolio_id)
        result = []
        for goal in goals:
            progress = calculate_goal_progress(goal, history)
            result.append(GoalProgress(goal=goal, progress_pct=progress, achieved=progress >= Decimal("100")))
        return result

    async def create_goal(self, data: GoalCreate) -> Goal:
        return await self.store.create_goal(data)

    async def update_goal(self, goal_id: uuid.UUID, patch: GoalPatch) -> Goal:
        return await self.store.update_goal(goal_id, patch)

    async def complete_goal(self, goal_id: uuid.UUID) -> Goal:
        return await self.store.complete_goal(goal_id)

    async def delete_goal(self, goal_id: uuid.UUID) -> None:
        await self.store.delete_goal(goal_id)

    async def list_journal_entries(
        self,
        portfolio_id: uuid.UUID,
        start: dt.date | None = None,
        end: dt.date | None = None,
    ) -> list[JournalEntry]:
        return await self.store.list_journal_entries(portfolio_id, start, end)

    async def create_journal_entry(self, data: JournalEntryCreate) -> JournalEntry:
        return await self.store.create_journal_entry(data)

    async def update_journal_entry(self, entry_id: uuid.UUID, patch: JournalEntryPatch) -> JournalEntry:
        return await self.store.update_journal_entry(entry_id, patch)

    async def delete_journal_entry(self, entry_id: uuid.UUID) -> None:
        await self.store.delete_journal_entry(entry_id)

    async def list_market_events(
        self,
        start: dt.date | None = None,
        end: dt.date | None = None,
        event_type: str | None = None,
    ) -> list[MarketEvent]:
        return await self.store.list_market_events(start, end, event_type)

    async def create_market_event(self, data: MarketEventCreate) -> MarketEvent:
        return await self.store.create_market_event(data)

    async def update_market_event(self, event_id: uuid.UUID, patch: MarketEventPatch) -> MarketEvent:
        return await self.store.update_market_event(event_id, patch)

    async def delete_market_event(self, event_id: uuid.UUID) -> None:
        await self.store.delete_market_event(event_id)

    # -----------------------------------------------------------------------
    # Import / export
    # -----------------------------------------------------------------------

    async def import_backup(self, payload: BackupPayload) -> ImportCounts:
        """
        Import aditivo: lo que ya existe (por id o clave natural) se salta, nunca se sobreescribe.
        Re-ejecutar el mismo backup es idempotente.
        """
        counts = ImportCounts()
        for section, kind in _BACKUP_SECTIONS:
            for entity in getattr(payload, section):
                if await self.store.insert_if_absent(kind, entity):
                    setattr(counts, section, getattr(counts, section) + 1)
                else:
                    counts.skipped += 1

        logger.info(
            "import.backup",
            version=payload.version,
            portfolios=counts.portfolios,
            wallets=counts.wallets,
            snapshots=counts.snapshots,
            skipped=counts.skipped,
        )
        return counts

    async def import_rows(
        self,
        portfolio_id: uuid.UUID,
        rows: Sequence[ImportedSnapshot],
        create_missing_wallets: bool = True,
    ) -> RowImportResult:
        """
        Importa filas {fecha, {wallet: valor}} al portfolio vía upsert diario.
        Los nombres de wallet se resuelven sin distinguir mayúsculas; los desconocidos
        se crean (o se ignoran con aviso si create_missing_wallets=False).
        """
        await self.store.get_portfolio(portfolio_id)
        validation = validate_imported_snapshots(rows)
        warnings = list(validation.errors)

        wallets = {w.name.strip().lower(): w for w in await self.store.list_wallets(portfolio_id)}
        imported = 0

        # Orden cronológico: cada variación se calcula contra la fila anterior ya importada
        for row in sorted(validation.valid, key=lambda r: r.date):
            balances: list[WalletBalance] = []
            for name, value in row.wallets.items():
                key = name.strip().lower()
                wallet = wallets.get(key)
                if wallet is None:
                    if not create_missing_wallets:
                        warnings.append(f"{row.date.isoformat()}: Unknown wallet \"{name}\" skipped")
                        continue
                    wallet = await self.store.create_wallet(WalletCreate(portfolio_id=portfolio_id, name=name.strip()))
                    wallets[key] = wallet
                    warnings.append(f"Wallet \"{wallet.name}\" created")
                balances.append(WalletBalance(wallet_id=wallet.id, value_usd=value))

            if not balances:
                warnings.append(f"{row.date.isoformat()}: No known wallets")
                continue
            try:
                await self.upsert_daily_snapshot(portfolio_id, row.date, balances)
            except (Conflict, NotFound, ValidationError) as exc:
                warnings.append(f"{row.date.isoformat()}: {exc.message}")
                continue
            imported += 1

        logger.info("import.rows", portfolio_id=str(portfolio_id), imported=imported, warnings=len(warnings))
        return RowImportResult(imported_count=imported, warnings=warnings)

    async def export_all(self) -> BackupPayload:
        """Backup completo del tenant. Solo lectura."""
        portfolios = await self.store.list_portfolios()
        payload = BackupPayload(
            exported_at=dt.datetime.now(dt.timezone.utc),
            portfolios=portfolios,
            wallets=await self.store.list_wallets(),
            market_events=await self.store.list_market_events(),
        )
        for portfolio in portfolios:
            payload.snapshots.extend(await self.store.list_daily(portfolio.id))
            payload.monthly_snapshots.extend(await self.store.list_monthly(portfolio.id))
            payload.goals.extend(await self.store.list_goals(portfolio.id))
            payload.journal_entries.extend(await self.store.list_journal_entries(portfolio.id))
        return payload

    async def export_csv(self, portfolio_id: uuid.UUID) -> str:
        """Snapshots diarios del portfolio en CSV (Date, wallets..., Total)."""
        history = await self.store.list_daily(portfolio_id)
        names = {w.id: w.name for w in await self.store.list_wallets(portfolio_id)}
        rows = []
        for snap in history:
            values: dict[str, Decimal] = {}
            for balance in snap.wallet_balances:
                name = names.get(balance.wallet_id) or f"{UNKNOWN_WALLET_NAME} {str(balance.wallet_id)[:8]}"
                values[name] = values.get(name, ZERO) + balance.value_usd
            rows.append((snap.date, values, snap.total_usd))
        return generate_csv(rows)
