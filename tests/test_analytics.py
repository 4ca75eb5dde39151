"""
Tests del motor de analítica (funciones puras).
No requieren base de datos.
Todas las aserciones usan Decimal para evitar errores de precisión.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal

from portfolio_vision.schemas.domain import DailySnapshot, Goal, MonthlySnapshot, Wallet, WalletBalance
from portfolio_vision.services.analytics import (
    UNKNOWN_WALLET_COLOR,
    UNKNOWN_WALLET_NAME,
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
    performance_trend,
    previous_month,
)

PORTFOLIO_ID = uuid.uuid4()

# ---------------------------------------------------------------------------
# Helpers de fixtures
# ---------------------------------------------------------------------------


def make_daily(day: date, total: str, balances: list[tuple[uuid.UUID, str]] | None = None) -> DailySnapshot:
    return DailySnapshot(
        portfolio_id=PORTFOLIO_ID,
        date=day,
        wallet_balances=[WalletBalance(wallet_id=w, value_usd=Decimal(v)) for w, v in (balances or [])],
        total_usd=Decimal(total),
    )


def make_monthly(month: str, total: str, delta: str = "0", delta_pct: str = "0") -> MonthlySnapshot:
    return MonthlySnapshot(
        portfolio_id=PORTFOLIO_ID,
        month=month,
        year=int(month[:4]),
        total_usd=Decimal(total),
        delta_usd=Decimal(delta),
        delta_percent=Decimal(delta_pct),
    )


def make_goal(target: str) -> Goal:
    return Goal(id=uuid.uuid4(), portfolio_id=PORTFOLIO_ID, name="1M", target_value=Decimal(target))


# ===========================================================================
# Tests: variaciones
# ===========================================================================


class TestCalculateVariation:
    def test_positive_variation(self):
        result = calculate_variation(Decimal("1100"), Decimal("1000"))
        assert result.amount == Decimal("100")
        assert result.percent == Decimal("10.0000")

    def test_previous_zero_and_current_positive_is_100_percent(self):
        result = calculate_variation(Decimal("50"), Decimal("0"))
        assert result.amount == Decimal("50")
        assert result.percent == Decimal("100")

    def test_both_zero_is_zero_percent(self):
        result = calculate_variation(Decimal("0"), Decimal("0"))
        assert result.amount == Decimal("0")
        assert result.percent == Decimal("0")

    def test_percent_rounded_half_up_to_four_decimals(self):
        result = calculate_variation(Decimal("1"), Decimal("3"))
        assert result.percent == Decimal("-66.6667")


class TestMonthOverMonth:
    def test_previous_month_wraps_year(self):
        assert previous_month("2024-01") == "2023-12"

    def test_previous_month_keeps_zero_padding(self):
        assert previous_month("2024-10") == "2024-09"

    def test_delta_against_previous_month(self):
        delta = month_over_month_delta(Decimal("1100"), make_monthly("2023-12", "1000"))
        assert delta.amount == Decimal("100")
        assert delta.percent == Decimal("10.0000")

    def test_no_previous_month_is_zero(self):
        delta = month_over_month_delta(Decimal("1100"), None)
        assert delta.amount == Decimal("0")
        assert delta.percent == Decimal("0")

    def test_previous_month_with_zero_total_is_zero(self):
        delta = month_over_month_delta(Decimal("1100"), make_monthly("2023-12", "0"))
        assert delta.amount == Decimal("0")


# ===========================================================================
# Tests: calculate_performance_metrics
# ===========================================================================


class TestPerformanceMetrics:
    def test_empty_series_returns_zeros(self):
        metrics = calculate_performance_metrics([])
        assert metrics.total == Decimal("0")
        assert metrics.change_24h == Decimal("0")
        assert metrics.ath == Decimal("0")
        assert metrics.ath_date == ""

    def test_single_snapshot_has_no_changes(self):
        metrics = calculate_performance_metrics([make_daily(date(2024, 1, 1), "1000")])
        assert metrics.total == Decimal("1000")
        assert metrics.change_24h == Decimal("0")
        assert metrics.change_7d == Decimal("0")
        assert metrics.change_30d_percent == Decimal("0")
        assert metrics.ath == Decimal("1000")
        assert metrics.ath_date == "2024-01-01"

    def test_two_consecutive_days(self):
        metrics = calculate_performance_metrics(
            [make_daily(date(2024, 1, 1), "1000"), make_daily(date(2024, 1, 2), "1100")]
        )
        assert metrics.total == Decimal("1100")
        assert metrics.change_24h == Decimal("100")
        assert metrics.change_24h_percent == Decimal("10.0000")
        assert metrics.ath == Decimal("1100")
        assert metrics.ath_date == "2024-01-02"

    def test_short_history_falls_back_to_oldest_for_7d_and_30d(self):
        metrics = calculate_performance_metrics(
            [make_daily(date(2024, 1, 1), "1000"), make_daily(date(2024, 1, 2), "1100")]
        )
        assert metrics.change_7d == Decimal("100")
        assert metrics.change_30d == Decimal("100")

    def test_7d_uses_closest_snapshot_at_or_before_boundary(self):
        snaps = [
            make_daily(date(2024, 1, 1), "1000"),
            make_daily(date(2024, 1, 5), "1200"),
            make_daily(date(2024, 1, 10), "1500"),
        ]
        metrics = calculate_performance_metrics(snaps)
        # 24h: contra el anterior cronológico, sin importar el hueco de días
        assert metrics.change_24h == Decimal("300")
        assert metrics.change_24h_percent == Decimal("25.0000")
        # 7d: límite 2024-01-03 → el 01-05 queda fuera, se usa el 01-01
        assert metrics.change_7d == Decimal("500")
        assert metrics.change_7d_percent == Decimal("50.0000")

    def test_30d_uses_closest_snapshot_at_or_before_boundary(self):
        start = date(2024, 1, 1)
        snaps = [
            make_daily(start, "1000"),
            make_daily(start + timedelta(days=20), "1200"),
            make_daily(start + timedelta(days=45), "1500"),
            make_daily(start + timedelta(days=60), "1800"),
        ]
        metrics = calculate_performance_metrics(snaps)
        # 30d: límite = día 30 → el día 20, ni el más antiguo ni la referencia de 7d
        assert metrics.change_30d == Decimal("600")
        assert metrics.change_30d_percent == Decimal("50.0000")
        # 7d: límite = día 53 → el día 45
        assert metrics.change_7d == Decimal("300")
        assert metrics.change_7d_percent == Decimal("20.0000")

    def test_unsorted_input_is_sorted_by_date(self):
        snaps = [make_daily(date(2024, 1, 2), "1100"), make_daily(date(2024, 1, 1), "1000")]
        metrics = calculate_performance_metrics(snaps)
        assert metrics.total == Decimal("1100")
        assert metrics.change_24h == Decimal("100")

    def test_ath_tie_keeps_first_in_input_order(self):
        snaps = [make_daily(date(2024, 1, 5), "500"), make_daily(date(2024, 1, 1), "500")]
        metrics = calculate_performance_metrics(snaps)
        assert metrics.ath_date == "2024-01-05"

    def test_input_is_not_mutated(self):
        snaps = [make_daily(date(2024, 1, 2), "1100"), make_daily(date(2024, 1, 1), "1000")]
        calculate_performance_metrics(snaps)
        assert snaps[0].date == date(2024, 1, 2)


# ===========================================================================
# Tests: compute_drawdown
# ===========================================================================


class TestComputeDrawdown:
    def test_simple_peak_and_trough(self):
        snaps = [
            make_daily(date(2024, 1, 1), "100"),
            make_daily(date(2024, 1, 2), "120"),
            make_daily(date(2024, 1, 3), "90"),
            make_daily(date(2024, 1, 4), "110"),
        ]
        result = compute_drawdown(snaps)
        assert result.max_drawdown_pct == Decimal("-25.0000")
        assert result.peak_date == date(2024, 1, 2)
        assert result.trough_date == date(2024, 1, 3)
        assert result.peak_value_usd == Decimal("120")
        assert result.trough_value_usd == Decimal("90")

    def test_monotone_rising_has_zero_drawdown(self):
        snaps = [make_daily(date(2024, 1, d), str(100 * d)) for d in range(1, 5)]
        assert compute_drawdown(snaps).max_drawdown_pct == Decimal("0")

    def test_empty_series(self):
        result = compute_drawdown([])
        assert result.max_drawdown_pct == Decimal("0")
        assert result.peak_date is None


# ===========================================================================
# Tests: calculate_wallet_allocations
# ===========================================================================


class TestWalletAllocations:
    def test_known_and_deleted_wallets(self):
        main_id, deleted_id, empty_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        wallets = [Wallet(id=main_id, portfolio_id=PORTFOLIO_ID, name="Main", color="#3b82f6")]
        snap = make_daily(
            date(2024, 1, 1),
            "1000",
            balances=[(main_id, "750"), (deleted_id, "250"), (empty_id, "0")],
        )

        allocations = calculate_wallet_allocations(snap, wallets)

        assert len(allocations) == 2
        assert allocations[0].wallet_name == "Main"
        assert allocations[0].color == "#3b82f6"
        assert allocations[0].percentage == Decimal("75.0000")
        assert allocations[1].wallet_name == UNKNOWN_WALLET_NAME
        assert allocations[1].color == UNKNOWN_WALLET_COLOR
        assert allocations[1].percentage == Decimal("25.0000")

    def test_zero_total_returns_empty(self):
        snap = make_daily(date(2024, 1, 1), "0", balances=[(uuid.uuid4(), "0")])
        assert calculate_wallet_allocations(snap, []) == []

    def test_no_snapshot_returns_empty(self):
        assert calculate_wallet_allocations(None, []) == []


# ===========================================================================
# Tests: series mensuales y resumen anual
# ===========================================================================


class TestMonthlySeries:
    def test_always_twelve_months(self):
        series = build_monthly_series(
            [make_monthly("2024-01", "1000"), make_monthly("2024-03", "1500"), make_monthly("2023-12", "900")],
            2024,
        )
        assert len(series) == 12
        assert series[0].has_data is True
        assert series[0].total_usd == Decimal("1000")
        assert series[0].label == "Jan"

    def test_missing_month_is_none_not_zero(self):
        series = build_monthly_series([make_monthly("2024-01", "1000")], 2024)
        assert series[1].month == "2024-02"
        assert series[1].label == "Feb"
        assert series[1].total_usd is None
        assert series[1].has_data is False

    def test_monthly_delta_from_daily_snapshots(self):
        snaps = [
            make_daily(date(2024, 1, 5), "1000"),
            make_daily(date(2024, 1, 20), "1200"),
            make_daily(date(2024, 2, 1), "5000"),
        ]
        delta = calculate_monthly_delta(snaps, 2024, 1)
        assert delta.start == Decimal("1000")
        assert delta.end == Decimal("1200")
        assert delta.delta_usd == Decimal("200")
        assert delta.delta_percent == Decimal("20.0000")

    def test_monthly_delta_without_data_is_zero(self):
        delta = calculate_monthly_delta([], 2024, 1)
        assert delta.delta_usd == Decimal("0")
        assert delta.start == Decimal("0")


class TestYearlyStats:
    def test_stats_over_months_with_data(self):
        series = build_monthly_series(
            [
                make_monthly("2024-01", "1000"),
                make_monthly("2024-02", "1200", "200", "20"),
                make_monthly("2024-03", "900", "-300", "-25"),
            ],
            2024,
        )
        stats = calculate_yearly_stats(series)

        assert stats.has_data is True
        assert stats.start_value == Decimal("1000")
        assert stats.end_value == Decimal("900")
        assert stats.delta_usd == Decimal("-100")
        assert stats.delta_percent == Decimal("-10.0000")
        assert stats.ath_value == Decimal("1200")
        assert stats.ath_month == "Feb"
        assert stats.atl_month == "Mar"
        assert stats.best_month.month == "Feb"
        assert stats.worst_month.month == "Mar"
        assert stats.positive_months == 1
        assert stats.negative_months == 1
        assert stats.total_months == 3
        assert stats.avg_monthly_change == Decimal("-33.33")
        assert stats.avg_monthly_change_percent == Decimal("-1.6667")

    def test_year_without_data(self):
        stats = calculate_yearly_stats(build_monthly_series([], 2024))
        assert stats.has_data is False
        assert stats.total_months == 0
        assert stats.best_month is None


# ===========================================================================
# Tests: gráficas, objetivos y tendencia
# ===========================================================================


class TestChartViews:
    def test_chart_is_sorted_and_labelled(self):
        snaps = [make_daily(date(2024, 1, 3), "300"), make_daily(date(2024, 1, 2), "200")]
        points = get_chart_data(snaps)
        assert [p.date for p in points] == [date(2024, 1, 2), date(2024, 1, 3)]
        assert points[0].label == "Jan 2"

    def test_chart_limit_keeps_latest_points(self):
        snaps = [make_daily(date(2024, 1, d), str(d)) for d in range(1, 11)]
        points = get_chart_data(snaps, limit=3)
        assert [p.value for p in points] == [Decimal("8"), Decimal("9"), Decimal("10")]

    def test_sparkline_last_n_totals(self):
        snaps = [make_daily(date(2024, 1, d), str(d)) for d in range(1, 6)]
        assert get_sparkline_data(snaps, points=2) == [Decimal("4"), Decimal("5")]

    def test_sparkline_non_positive_points_is_empty(self):
        assert get_sparkline_data([make_daily(date(2024, 1, 1), "1")], points=0) == []


class TestGoalProgress:
    def test_progress_against_latest_total(self):
        snaps = [make_daily(date(2024, 1, 1), "500"), make_daily(date(2024, 1, 2), "1100")]
        assert calculate_goal_progress(make_goal("2000"), snaps) == Decimal("55.0000")

    def test_progress_is_capped_at_100(self):
        snaps = [make_daily(date(2024, 1, 1), "5000")]
        assert calculate_goal_progress(make_goal("2000"), snaps) == Decimal("100")

    def test_no_snapshots_is_zero(self):
        assert calculate_goal_progress(make_goal("2000"), []) == Decimal("0")

    def test_non_positive_target_is_zero(self):
        snaps = [make_daily(date(2024, 1, 1), "5000")]
        assert calculate_goal_progress(make_goal("0"), snaps) == Decimal("0")


def test_performance_trend():
    assert performance_trend(Decimal("1")) == "positive"
    assert performance_trend(Decimal("-0.01")) == "negative"
    assert performance_trend(Decimal("0")) == "neutral"
