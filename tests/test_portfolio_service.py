"""
Tests del orquestador PortfolioService contra el almacén SQLite temporal.
Cubren el flujo completo: alta de portfolio y wallets, snapshots, analítica,
import y export.
"""

import json
import uuid
from datetime import date
from decimal import Decimal

import pytest

from portfolio_vision.core.exceptions import NotFound, ValidationError
from portfolio_vision.schemas.domain import (
    BackupPayload,
    GoalCreate,
    PortfolioCreate,
    Wallet,
    WalletBalance,
    WalletCreate,
    legacy_uuid,
)
from portfolio_vision.services.import_validator import ImportedSnapshot, parse_csv, parse_json
from portfolio_vision.services.portfolio_service import PortfolioService
from portfolio_vision.services.price_feed import ReferencePrices

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Export JSON de la app de navegador (v1): camelCase e ids de texto libre
V1_EXPORT = {
    "portfolios": [{"id": "default", "name": "Main", "color": "#3b82f6", "createdAt": "2024-01-01T00:00:00.000Z"}],
    "wallets": [{"id": "w-cold", "portfolioId": "default", "name": "Cold", "color": "#22c55e"}],
    "snapshots": [
        {
            "id": "s-1",
            "portfolioId": "default",
            "date": "2024-01-01",
            "walletBalances": [{"walletId": "w-cold", "valueUsd": 1000}],
            "totalUsd": 1000,
            "variationPercent": 0,
            "variationUsd": 0,
        }
    ],
    "exportedAt": "2024-01-02T10:00:00.000Z",
    "version": "1.0",
}


class FakePriceFeed:
    def __init__(self, prices: ReferencePrices) -> None:
        self.prices = prices
        self.calls = 0

    async def get_reference_prices(self) -> ReferencePrices:
        self.calls += 1
        return self.prices


@pytest.fixture
def service(store) -> PortfolioService:
    return PortfolioService(store)


async def seed_portfolio(service: PortfolioService):
    portfolio = await service.create_portfolio("Main")
    wallet = await service.create_wallet(WalletCreate(portfolio_id=portfolio.id, name="Cold", color="#3b82f6"))
    await service.upsert_daily_snapshot(
        portfolio.id, date(2024, 1, 1), [WalletBalance(wallet_id=wallet.id, value_usd=Decimal("1000"))]
    )
    await service.upsert_daily_snapshot(
        portfolio.id, date(2024, 1, 2), [WalletBalance(wallet_id=wallet.id, value_usd=Decimal("1100"))]
    )
    return portfolio, wallet


# ===========================================================================
# Tests: snapshots diarios y métricas
# ===========================================================================


class TestDailySnapshots:
    async def test_first_snapshot_has_zero_variation(self, service):
        portfolio = await service.create_portfolio("Main")
        wallet = await service.create_wallet(WalletCreate(portfolio_id=portfolio.id, name="Cold"))

        snapshot = await service.upsert_daily_snapshot(
            portfolio.id, date(2024, 1, 1), [WalletBalance(wallet_id=wallet.id, value_usd=Decimal("1000"))]
        )

        assert snapshot.id is not None
        assert snapshot.total_usd == Decimal("1000")
        assert snapshot.variation_usd == Decimal("0")
        assert snapshot.variation_percent == Decimal("0")

    async def test_total_is_sum_of_balances(self, service):
        portfolio = await service.create_portfolio("Main")
        hot = await service.create_wallet(WalletCreate(portfolio_id=portfolio.id, name="Hot"))
        cold = await service.create_wallet(WalletCreate(portfolio_id=portfolio.id, name="Cold"))

        snapshot = await service.upsert_daily_snapshot(
            portfolio.id,
            date(2024, 1, 1),
            [
                WalletBalance(wallet_id=hot.id, value_usd=Decimal("250.5")),
                WalletBalance(wallet_id=cold.id, value_usd=Decimal("749.5")),
            ],
        )

        assert snapshot.total_usd == Decimal("1000.0")

    async def test_variation_against_previous_day(self, service):
        portfolio, _ = await seed_portfolio(service)

        history = await service.list_daily_snapshots(portfolio.id)

        assert [s.date for s in history] == [date(2024, 1, 1), date(2024, 1, 2)]
        assert history[1].variation_usd == Decimal("100")
        assert history[1].variation_percent == Decimal("10.0000")

    async def test_upsert_same_date_keeps_single_row(self, service):
        portfolio, wallet = await seed_portfolio(service)

        again = await service.upsert_daily_snapshot(
            portfolio.id, date(2024, 1, 2), [WalletBalance(wallet_id=wallet.id, value_usd=Decimal("1200"))]
        )

        history = await service.list_daily_snapshots(portfolio.id)
        assert len(history) == 2
        assert history[1].id == again.id
        assert history[1].total_usd == Decimal("1200")
        assert history[1].variation_usd == Decimal("200")

    async def test_performance_metrics(self, service):
        portfolio, _ = await seed_portfolio(service)

        metrics = await service.get_performance_metrics(portfolio.id)

        assert metrics.total == Decimal("1100")
        assert metrics.change_24h == Decimal("100")
        assert metrics.change_24h_percent == Decimal("10.0000")
        assert metrics.ath == Decimal("1100")
        assert metrics.ath_date == "2024-01-02"

    async def test_metrics_without_snapshots_are_zero(self, service):
        portfolio = await service.create_portfolio("Empty")

        metrics = await service.get_performance_metrics(portfolio.id)

        assert metrics.total == Decimal("0")
        assert metrics.ath_date == ""

    async def test_allocations_use_latest_snapshot(self, service):
        portfolio, wallet = await seed_portfolio(service)

        allocations = await service.get_allocations(portfolio.id)

        assert len(allocations) == 1
        assert allocations[0].wallet_id == wallet.id
        assert allocations[0].wallet_name == "Cold"
        assert allocations[0].color == "#3b82f6"
        assert allocations[0].value == Decimal("1100")
        assert allocations[0].percentage == Decimal("100.0000")

    async def test_monthly_delta_from_daily_snapshots(self, service):
        portfolio, _ = await seed_portfolio(service)

        delta = await service.get_monthly_delta(portfolio.id, 2024, 1)

        assert delta.start == Decimal("1000")
        assert delta.end == Decimal("1100")
        assert delta.delta_percent == Decimal("10.0000")

    async def test_drawdown_without_decline_is_zero(self, service):
        portfolio, _ = await seed_portfolio(service)

        result = await service.get_drawdown(portfolio.id)

        assert result.max_drawdown_pct == Decimal("0")


# ===========================================================================
# Tests: snapshots mensuales
# ===========================================================================


class TestMonthlySnapshots:
    async def test_delta_against_previous_calendar_month(self, service):
        portfolio = await service.create_portfolio("Main")

        await service.upsert_monthly_snapshot(portfolio.id, "2023-12", Decimal("1000"))
        january = await service.upsert_monthly_snapshot(portfolio.id, "2024-01", Decimal("1250"))

        assert january.year == 2024
        assert january.delta_usd == Decimal("250")
        assert january.delta_percent == Decimal("25.0000")

    async def test_without_previous_month_delta_is_zero(self, service):
        portfolio = await service.create_portfolio("Main")

        snapshot = await service.upsert_monthly_snapshot(portfolio.id, "2024-03", Decimal("500"))

        assert snapshot.delta_usd == Decimal("0")
        assert snapshot.delta_percent == Decimal("0")

    async def test_invalid_month_raises(self, service):
        portfolio = await service.create_portfolio("Main")
        with pytest.raises(ValidationError):
            await service.upsert_monthly_snapshot(portfolio.id, "2024-13", Decimal("500"))

    async def test_price_feed_fills_missing_prices(self, store):
        feed = FakePriceFeed(ReferencePrices(btc=Decimal("65000"), eth=Decimal("3200")))
        service = PortfolioService(store, price_feed=feed)
        portfolio = await service.create_portfolio("Main")

        snapshot = await service.upsert_monthly_snapshot(portfolio.id, "2024-01", Decimal("500"))

        assert snapshot.btc_price == Decimal("65000")
        assert snapshot.eth_price == Decimal("3200")

    async def test_explicit_prices_skip_price_feed(self, store):
        feed = FakePriceFeed(ReferencePrices(btc=Decimal("65000"), eth=Decimal("3200")))
        service = PortfolioService(store, price_feed=feed)
        portfolio = await service.create_portfolio("Main")

        snapshot = await service.upsert_monthly_snapshot(
            portfolio.id, "2024-01", Decimal("500"), btc_price=Decimal("42000")
        )

        assert snapshot.btc_price == Decimal("42000")
        assert feed.calls == 0

    async def test_zero_reference_prices_are_not_stored(self, store):
        feed = FakePriceFeed(ReferencePrices(btc=Decimal("0"), eth=Decimal("0")))
        service = PortfolioService(store, price_feed=feed)
        portfolio = await service.create_portfolio("Main")

        snapshot = await service.upsert_monthly_snapshot(portfolio.id, "2024-01", Decimal("500"))

        assert snapshot.btc_price is None
        assert snapshot.eth_price is None

    async def test_yearly_stats_from_series(self, service):
        portfolio = await service.create_portfolio("Main")
        await service.upsert_monthly_snapshot(portfolio.id, "2024-01", Decimal("1000"))
        await service.upsert_monthly_snapshot(portfolio.id, "2024-02", Decimal("1200"))

        series = await service.get_monthly_series(portfolio.id, 2024)
        stats = await service.get_yearly_stats(portfolio.id, 2024)

        assert len(series) == 12
        assert series[2].has_data is False
        assert series[2].total_usd is None
        assert stats.has_data is True
        assert stats.end_value == Decimal("1200")


# ===========================================================================
# Tests: goals
# ===========================================================================


class TestGoalProgress:
    async def test_progress_against_latest_total(self, service):
        portfolio, _ = await seed_portfolio(service)
        await service.create_goal(GoalCreate(portfolio_id=portfolio.id, name="2K", target_value=Decimal("2200")))
        await service.create_goal(GoalCreate(portfolio_id=portfolio.id, name="1K", target_value=Decimal("1000")))

        progress = {p.goal.name: p for p in await service.get_goal_progress(portfolio.id)}

        assert progress["2K"].progress_pct == Decimal("50.0000")
        assert progress["2K"].achieved is False
        assert progress["1K"].progress_pct == Decimal("100")
        assert progress["1K"].achieved is True


# ===========================================================================
# Tests: import por filas
# ===========================================================================


class TestImportRows:
    async def test_creates_missing_wallets_and_reports_bad_rows(self, service):
        portfolio = await service.create_portfolio("Main")
        await service.create_wallet(WalletCreate(portfolio_id=portfolio.id, name="Cold"))
        rows = parse_csv("Date,cold,Hot\n2024-01-01,600,400\n2024-01-02,700,400\nnot-a-date,1,1\n")

        result = await service.import_rows(portfolio.id, rows)

        assert result.imported_count == 2
        assert "Row 3: Invalid date" in result.warnings
        assert 'Wallet "Hot" created' in result.warnings
        # "cold" se resuelve contra la wallet existente sin distinguir mayúsculas
        names = sorted(w.name for w in await service.list_wallets(portfolio.id))
        assert names == ["Cold", "Hot"]

        history = await service.list_daily_snapshots(portfolio.id)
        assert [s.total_usd for s in history] == [Decimal("1000"), Decimal("1100")]
        assert history[1].variation_usd == Decimal("100")

    async def test_unknown_wallets_skipped_when_creation_disabled(self, service):
        portfolio = await service.create_portfolio("Main")
        rows = [ImportedSnapshot(date=date(2024, 1, 1), wallets={"Ghost": Decimal("10")}, total=Decimal("10"))]

        result = await service.import_rows(portfolio.id, rows, create_missing_wallets=False)

        assert result.imported_count == 0
        assert result.warnings == [
            '2024-01-01: Unknown wallet "Ghost" skipped',
            "2024-01-01: No known wallets",
        ]
        assert await service.list_wallets(portfolio.id) == []

    async def test_unknown_portfolio_raises(self, service):
        with pytest.raises(NotFound):
            await service.import_rows(uuid.uuid4(), [])


# ===========================================================================
# Tests: backup y export
# ===========================================================================


class TestBackup:
    async def test_export_all_collects_every_section(self, service):
        portfolio, _ = await seed_portfolio(service)
        await service.upsert_monthly_snapshot(portfolio.id, "2024-01", Decimal("1100"))
        await service.create_goal(GoalCreate(portfolio_id=portfolio.id, name="2K", target_value=Decimal("2000")))

        payload = await service.export_all()

        assert payload.exported_at is not None
        assert len(payload.portfolios) == 1
        assert len(payload.wallets) == 1
        assert len(payload.snapshots) == 2
        assert len(payload.monthly_snapshots) == 1
        assert len(payload.goals) == 1
        assert payload.journal_entries == []

    async def test_import_restores_and_is_idempotent(self, service):
        portfolio, _ = await seed_portfolio(service)
        payload = await service.export_all()
        await service.delete_portfolio(portfolio.id)

        first = await service.import_backup(payload)
        second = await service.import_backup(payload)

        assert (first.portfolios, first.wallets, first.snapshots, first.skipped) == (1, 1, 2, 0)
        assert (second.portfolios, second.wallets, second.snapshots) == (0, 0, 0)
        assert second.skipped == 4

        restored = await service.list_daily_snapshots(portfolio.id)
        assert [s.total_usd for s in restored] == [Decimal("1000"), Decimal("1100")]

    async def test_export_csv(self, service):
        portfolio, _ = await seed_portfolio(service)

        content = await service.export_csv(portfolio.id)

        assert content.split("\n") == [
            "Date,Cold,Total",
            "2024-01-01,1000.00,1000.00",
            "2024-01-02,1100.00,1100.00",
        ]

    async def test_export_csv_names_deleted_wallets_unknown(self, service):
        portfolio, wallet = await seed_portfolio(service)
        await service.delete_wallet(wallet.id)

        content = await service.export_csv(portfolio.id)

        header = content.split("\n")[0]
        assert header == f"Date,Unknown {str(wallet.id)[:8]},Total"

    async def test_import_skips_dependents_without_own_portfolio(self, service, other_store):
        theirs = await other_store.create_portfolio(PortfolioCreate(name="Theirs"))
        payload = BackupPayload(
            wallets=[
                Wallet(id=uuid.uuid4(), portfolio_id=theirs.id, name="into-theirs"),
                Wallet(id=uuid.uuid4(), portfolio_id=uuid.uuid4(), name="no-root"),
            ]
        )

        counts = await service.import_backup(payload)

        assert counts.wallets == 0
        assert counts.skipped == 2
        assert await other_store.list_wallets(theirs.id) == []

    async def test_import_v1_browser_export(self, service):
        content = json.dumps(V1_EXPORT)

        counts = await service.import_backup(parse_json(content).backup)

        assert (counts.portfolios, counts.wallets, counts.snapshots) == (1, 1, 1)
        portfolio_id = legacy_uuid("default")
        assert (await service.get_portfolio(portfolio_id)).name == "Main"
        content = await service.export_csv(portfolio_id)
        assert content.split("\n") == ["Date,Cold,Total", "2024-01-01,1000.00,1000.00"]
