"""
Motor de analítica del portafolio: funciones puras sobre la serie de snapshots.

Reglas críticas:
- NUNCA float para datos de negocio: siempre Decimal
- Ninguna función lanza excepciones: "sin datos" se expresa con ceros o listas vacías
- Ninguna función muta su entrada: se ordena sobre copias
- Porcentajes redondeados a 4 decimales (ROUND_HALF_UP), igual que NUMERIC(10,4)
- Un mes sin snapshot es "sin datos" (total None), NUNCA un cero real
"""

import datetime as dt
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from portfolio_vision.schemas.domain import DailySnapshot, Goal, MonthlySnapshot, Wallet

# ---------------------------------------------------------------------------
# Constantes
# ---------------------------------------------------------------------------

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PCT_PRECISION = Decimal("0.0001")   # 4 decimales para porcentajes

UNKNOWN_WALLET_NAME = "Unknown"
UNKNOWN_WALLET_COLOR = "#888888"

MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

SPARKLINE_POINTS = 30


# ---------------------------------------------------------------------------
# Tipos de retorno
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Variation:
    amount: Decimal
    percent: Decimal


@dataclass(frozen=True)
class PerformanceMetrics:
    total: Decimal
    change_24h: Decimal
    change_24h_percent: Decimal
    change_7d: Decimal
    change_7d_percent: Decimal
    change_30d: Decimal
    change_30d_percent: Decimal
    ath: Decimal
    ath_date: str               # "" si no hay datos


@dataclass(frozen=True)
class WalletAllocation:
    wallet_id: uuid.UUID
    wallet_name: str
    color: str
    value: Decimal
    percentage: Decimal         # % sobre total_usd del snapshot


@dataclass(frozen=True)
class MonthlyPoint:
    month: str                  # "YYYY-MM"
    label: str                  # "Jan".."Dec"
    total_usd: Decimal | None   # None = mes sin snapshot
    delta_usd: Decimal | None
    delta_percent: Decimal | None
    btc_price: Decimal | None
    eth_price: Decimal | None
    has_data: bool


@dataclass(frozen=True)
class MonthlyDelta:
    start: Decimal
    end: Decimal
    delta_usd: Decimal
    delta_percent: Decimal


@dataclass(frozen=True)
class MonthHighlight:
    month: str
    delta_usd: Decimal
    delta_percent: Decimal


@dataclass(frozen=True)
class YearlyStats:
    has_data: bool
    start_value: Decimal
    end_value: Decimal
    delta_usd: Decimal
    delta_percent: Decimal
    ath_value: Decimal
    ath_month: str
    atl_value: Decimal
    atl_month: str
    best_month: MonthHighlight | None
    worst_month: MonthHighlight | None
    avg_monthly_change: Decimal
    avg_monthly_change_percent: Decimal
    positive_months: int
    negative_months: int
    total_months: int


@dataclass(frozen=True)
class ChartPoint:
    date: dt.date
    value: Decimal
    label: str                  # "Jan 2"


@dataclass(frozen=True)
class DrawdownResult:
    max_drawdown_pct: Decimal    # negativo: -25.34 = caída del 25.34%
    peak_date: dt.date | None
    trough_date: dt.date | None
    peak_value_usd: Decimal
    trough_value_usd: Decimal


# ---------------------------------------------------------------------------
# Variaciones
# ---------------------------------------------------------------------------


def _pct(value: Decimal) -> Decimal:
    return value.quantize(PCT_PRECISION, ROUND_HALF_UP)


def calculate_variation(current: Decimal, previous: Decimal) -> Variation:
    """
    amount = current - previous; percent = amount / previous * 100.

    previous == 0 es una política, no un valor derivado: 100% si current > 0, si no 0%.
    Así nunca hay división por cero ni infinitos.
    """
    amount = current - previous
    if previous == ZERO:
        return Variation(amount=amount, percent=HUNDRED if current > ZERO else ZERO)
    return Variation(amount=amount, percent=_pct(amount / previous * HUNDRED))


def month_over_month_delta(total_usd: Decimal, previous: MonthlySnapshot | None) -> Variation:
    """Delta contra el mes natural anterior. Sin mes anterior (o con total 0) el delta es 0."""
    if previous is None or previous.total_usd <= ZERO:
        return Variation(amount=ZERO, percent=ZERO)
    return calculate_variation(total_usd, previous.total_usd)


def previous_month(month: str) -> str:
    """ "2024-01" → "2023-12" """
    year, mon = int(month[:4]), int(month[5:7])
    if mon == 1:
        return f"{year - 1}-12"
    return f"{year}-{mon - 1:02d}"


# ---------------------------------------------------------------------------
# Métricas de rendimiento
# ---------------------------------------------------------------------------


def _sorted_by_date(snapshots: Sequence[DailySnapshot]) -> list[DailySnapshot]:
    return sorted(snapshots, key=lambda s: s.date)


def _reference_snapshot(ordered: list[DailySnapshot], days: int) -> DailySnapshot:
    """
    Snapshot más cercano con fecha <= (última - days), excluyendo el último.
    Si no hay ninguno tan antiguo, el más antiguo de la serie.
    Requiere len(ordered) >= 2.
    """
    boundary = ordered[-1].date - timedelta(days=days)
    candidates = ordered[:-1]
    for snap in reversed(candidates):
        if snap.date <= boundary:
            return snap
    return candidates[0]


def calculate_performance_metrics(snapshots: Sequence[DailySnapshot]) -> PerformanceMetrics:
    """
    total       → total_usd del snapshot con la fecha más reciente
    24h         → contra el snapshot cronológicamente anterior (sin importar el hueco)
    7d / 30d    → contra el snapshot más cercano <= última - N días (o el más antiguo)
    ath         → máximo de toda la serie; en empate gana el primero en orden de entrada
    """
    if not snapshots:
        return PerformanceMetrics(
            total=ZERO,
            change_24h=ZERO,
            change_24h_percent=ZERO,
            change_7d=ZERO,
            change_7d_percent=ZERO,
            change_30d=ZERO,
            change_30d_percent=ZERO,
            ath=ZERO,
            ath_date="",
        )

    ordered = _sorted_by_date(snapshots)
    latest = ordered[-1]
    total = latest.total_usd

    ath_snap = snapshots[0]
    for snap in snapshots[1:]:
        if snap.total_usd > ath_snap.total_usd:
            ath_snap = snap

    if len(ordered) < 2:
        flat = Variation(amount=ZERO, percent=ZERO)
        v24, v7, v30 = flat, flat, flat
    else:
        v24 = calculate_variation(total, ordered[-2].total_usd)
        v7 = calculate_variation(total, _reference_snapshot(ordered, 7).total_usd)
        v30 = calculate_variation(total, _reference_snapshot(ordered, 30).total_usd)

    return PerformanceMetrics(
        total=total,
        change_24h=v24.amount,
        change_24h_percent=v24.percent,
        change_7d=v7.amount,
        change_7d_percent=v7.percent,
        change_30d=v30.amount,
        change_30d_percent=v30.percent,
        ath=ath_snap.total_usd,
        ath_date=ath_snap.date.isoformat(),
    )


def compute_drawdown(snapshots: Sequence[DailySnapshot]) -> DrawdownResult:
    """
    Drawdown máximo sobre la serie diaria.
    Para cada día: (valor - max_histórico) / max_histórico
    Retorna el mínimo (peor caída).
    """
    if not snapshots:
        return DrawdownResult(
            max_drawdown_pct=ZERO,
            peak_date=None,
            trough_date=None,
            peak_value_usd=ZERO,
            trough_value_usd=ZERO,
        )

    ordered = _sorted_by_date(snapshots)
    running_max = ZERO
    running_max_snap = ordered[0]

    worst_drawdown = ZERO
    worst_peak_snap = ordered[0]
    worst_trough_snap = ordered[0]

    for snap in ordered:
        if snap.total_usd > running_max:
            running_max = snap.total_usd
            running_max_snap = snap

        if running_max > ZERO:
            dd = (snap.total_usd - running_max) / running_max
            if dd < worst_drawdown:
                worst_drawdown = dd
                worst_peak_snap = running_max_snap
                worst_trough_snap = snap

    return DrawdownResult(
        max_drawdown_pct=_pct(worst_drawdown * HUNDRED),
        peak_date=worst_peak_snap.date,
        trough_date=worst_trough_snap.date,
        peak_value_usd=worst_peak_snap.total_usd,
        trough_value_usd=worst_trough_snap.total_usd,
    )


# ---------------------------------------------------------------------------
# Asignación por wallet
# ---------------------------------------------------------------------------


def calculate_wallet_allocations(
    snapshot: DailySnapshot | None,
    wallets: Sequence[Wallet],
) -> list[WalletAllocation]:
    """
    Reparto del snapshot por wallet. Las wallets borradas después del snapshot
    aparecen como "Unknown" (los balances embebidos no se borran en cascada).
    Se excluyen valores <= 0; total 0 → lista vacía.
    """
    if snapshot is None or snapshot.total_usd == ZERO:
        return []

    by_id = {w.id: w for w in wallets}
    allocations: list[WalletAllocation] = []
    for balance in snapshot.wallet_balances:
        if balance.value_usd <= ZERO:
            continue
        wallet = by_id.get(balance.wallet_id)
        allocations.append(
            WalletAllocation(
                wallet_id=balance.wallet_id,
                wallet_name=wallet.name if wallet else UNKNOWN_WALLET_NAME,
                color=wallet.color if wallet else UNKNOWN_WALLET_COLOR,
                value=balance.value_usd,
                percentage=_pct(balance.value_usd / snapshot.total_usd * HUNDRED),
            )
        )
    return allocations


# ---------------------------------------------------------------------------
# Series mensuales
# ---------------------------------------------------------------------------


def build_monthly_series(monthly_snapshots: Sequence[MonthlySnapshot], year: int) -> list[MonthlyPoint]:
    """Siempre 12 entradas (Jan..Dec). Los meses sin snapshot llevan total None y has_data False."""
    by_month = {s.month: s for s in monthly_snapshots}
    series: list[MonthlyPoint] = []
    for month_number in range(1, 13):
        key = f"{year}-{month_number:02d}"
        snap = by_month.get(key)
        series.append(
            MonthlyPoint(
                month=key,
                label=MONTH_LABELS[month_number - 1],
                total_usd=snap.total_usd if snap else None,
                delta_usd=snap.delta_usd if snap else None,
                delta_percent=snap.delta_percent if snap else None,
                btc_price=snap.btc_price if snap else None,
                eth_price=snap.eth_price if snap else None,
                has_data=snap is not None,
            )
        )
    return series


def calculate_monthly_delta(snapshots: Sequence[DailySnapshot], year: int, month: int) -> MonthlyDelta:
    """Primer y último snapshot diario del mes → inicio, fin y delta. Sin datos → ceros."""
    in_month = [s for s in snapshots if s.date.year == year and s.date.month == month]
    if not in_month:
        return MonthlyDelta(start=ZERO, end=ZERO, delta_usd=ZERO, delta_percent=ZERO)

    ordered = _sorted_by_date(in_month)
    start = ordered[0].total_usd
    end = ordered[-1].total_usd
    variation = calculate_variation(end, start)
    return MonthlyDelta(start=start, end=end, delta_usd=variation.amount, delta_percent=variation.percent)


def calculate_yearly_stats(series: Sequence[MonthlyPoint]) -> YearlyStats:
    """Resumen anual sobre los meses CON datos; los meses vacíos no cuentan como cero."""
    with_data = [m for m in series if m.has_data and m.total_usd is not None]
    if not with_data:
        return YearlyStats(
            has_data=False,
            start_value=ZERO,
            end_value=ZERO,
            delta_usd=ZERO,
            delta_percent=ZERO,
            ath_value=ZERO,
            ath_month="",
            atl_value=ZERO,
            atl_month="",
            best_month=None,
            worst_month=None,
            avg_monthly_change=ZERO,
            avg_monthly_change_percent=ZERO,
            positive_months=0,
            negative_months=0,
            total_months=0,
        )

    start_value = with_data[0].total_usd
    end_value = with_data[-1].total_usd
    delta_usd = end_value - start_value
    delta_percent = _pct(delta_usd / start_value * HUNDRED) if start_value > ZERO else ZERO

    ath = max(with_data, key=lambda m: m.total_usd)
    atl = min(with_data, key=lambda m: m.total_usd)

    best: MonthHighlight | None = None
    worst: MonthHighlight | None = None
    positive = negative = 0
    total_delta = ZERO
    total_delta_pct = ZERO
    for point in with_data:
        delta = point.delta_usd or ZERO
        pct = point.delta_percent or ZERO
        if delta > ZERO:
            positive += 1
        elif delta < ZERO:
            negative += 1
        total_delta += delta
        total_delta_pct += pct
        if best is None or delta > best.delta_usd:
            best = MonthHighlight(month=point.label, delta_usd=delta, delta_percent=pct)
        if worst is None or delta < worst.delta_usd:
            worst = MonthHighlight(month=point.label, delta_usd=delta, delta_percent=pct)

    count = Decimal(len(with_data))
    return YearlyStats(
        has_data=True,
        start_value=start_value,
        end_value=end_value,
        delta_usd=delta_usd,
        delta_percent=delta_percent,
        ath_value=ath.total_usd,
        ath_month=ath.label,
        atl_value=atl.total_usd,
        atl_month=atl.label,
        best_month=best,
        worst_month=worst,
        avg_monthly_change=(total_delta / count).quantize(Decimal("0.01"), ROUND_HALF_UP),
        avg_monthly_change_percent=_pct(total_delta_pct / count),
        positive_months=positive,
        negative_months=negative,
        total_months=len(with_data),
    )


# ---------------------------------------------------------------------------
# Vistas para gráficas
# ---------------------------------------------------------------------------


def get_chart_data(snapshots: Sequence[DailySnapshot], limit: int | None = None) -> list[ChartPoint]:
    """Serie ordenada ascendente; con limit, solo los últimos `limit` puntos."""
    points = [
        ChartPoint(date=s.date, value=s.total_usd, label=f"{MONTH_LABELS[s.date.month - 1]} {s.date.day}")
        for s in _sorted_by_date(snapshots)
    ]
    if limit and len(points) > limit:
        return points[-limit:]
    return points


def get_sparkline_data(snapshots: Sequence[DailySnapshot], points: int = SPARKLINE_POINTS) -> list[Decimal]:
    if points <= 0:
        return []
    return [s.total_usd for s in _sorted_by_date(snapshots)[-points:]]


# ---------------------------------------------------------------------------
# Goals y presentación
# ---------------------------------------------------------------------------


def calculate_goal_progress(goal: Goal, snapshots: Sequence[DailySnapshot]) -> Decimal:
    """Último total / objetivo * 100, con tope en 100. Objetivo <= 0 → 0."""
    if goal.target_value <= ZERO or not snapshots:
        return ZERO
    current = _sorted_by_date(snapshots)[-1].total_usd
    progress = _pct(current / goal.target_value * HUNDRED)
    return min(progress, HUNDRED)


def performance_trend(value: Decimal) -> str:
    if value > ZERO:
        return "positive"
    if value < ZERO:
        return "negative"
    return "neutral"
