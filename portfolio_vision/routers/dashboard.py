"""
Router: /api/v1/dashboard
GET /{portfolio_id}/metrics                → total, cambios 24h / 7d / 30d y ATH
GET /{portfolio_id}/allocations            → reparto por wallet del último snapshot
GET /{portfolio_id}/monthly?year=          → 12 meses (los vacíos con has_data=false)
GET /{portfolio_id}/monthly-delta?year=&month= → inicio / fin de un mes desde los diarios
GET /{portfolio_id}/yearly-stats?year=     → resumen anual
GET /{portfolio_id}/chart?limit=           → serie para la gráfica principal
GET /{portfolio_id}/sparkline?points=      → últimos N totales
GET /{portfolio_id}/drawdown               → máxima caída pico → valle
GET /{portfolio_id}/goals-progress         → progreso de cada objetivo
"""

import datetime as dt
import uuid

from fastapi import APIRouter, Depends, Query

from portfolio_vision.core.dependencies import get_service
from portfolio_vision.core.responses import ok
from portfolio_vision.services.analytics import SPARKLINE_POINTS, performance_trend
from portfolio_vision.services.portfolio_service import PortfolioService

router = APIRouter()


def _current_year() -> int:
    return dt.date.today().year


@router.get("/{portfolio_id}/metrics")
async def get_metrics(portfolio_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    metrics = await service.get_performance_metrics(portfolio_id)
    return ok(
        data=metrics,
        meta={
            "trend_24h": performance_trend(metrics.change_24h),
            "trend_7d": performance_trend(metrics.change_7d),
            "trend_30d": performance_trend(metrics.change_30d),
        },
    )


@router.get("/{portfolio_id}/allocations")
async def get_allocations(portfolio_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    allocations = await service.get_allocations(portfolio_id)
    return ok(data=allocations, meta={"total": len(allocations)})


@router.get("/{portfolio_id}/monthly")
async def get_monthly(
    portfolio_id: uuid.UUID,
    year: int | None = Query(None, ge=1970, le=9999),
    service: PortfolioService = Depends(get_service),
) -> dict:
    year = year or _current_year()
    series = await service.get_monthly_series(portfolio_id, year)
    return ok(data=series, meta={"year": year, "months_with_data": sum(1 for m in series if m.has_data)})


@router.get("/{portfolio_id}/monthly-delta")
async def get_monthly_delta(
    portfolio_id: uuid.UUID,
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    service: PortfolioService = Depends(get_service),
) -> dict:
    delta = await service.get_monthly_delta(portfolio_id, year, month)
    return ok(data=delta, meta={"trend": performance_trend(delta.delta_usd)})


@router.get("/{portfolio_id}/yearly-stats")
async def get_yearly_stats(
    portfolio_id: uuid.UUID,
    year: int | None = Query(None, ge=1970, le=9999),
    service: PortfolioService = Depends(get_service),
) -> dict:
    year = year or _current_year()
    stats = await service.get_yearly_stats(portfolio_id, year)
    return ok(data=stats, meta={"year": year, "trend": performance_trend(stats.delta_usd)})


@router.get("/{portfolio_id}/chart")
async def get_chart(
    portfolio_id: uuid.UUID,
    limit: int | None = Query(None, ge=1),
    service: PortfolioService = Depends(get_service),
) -> dict:
    points = await service.get_chart_data(portfolio_id, limit)
    return ok(data=points, meta={"total": len(points)})


@router.get("/{portfolio_id}/sparkline")
async def get_sparkline(
    portfolio_id: uuid.UUID,
    points: int = Query(SPARKLINE_POINTS, ge=1, le=365),
    service: PortfolioService = Depends(get_service),
) -> dict:
    return ok(data=await service.get_sparkline(portfolio_id, points))


@router.get("/{portfolio_id}/drawdown")
async def get_drawdown(portfolio_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    return ok(data=await service.get_drawdown(portfolio_id))


@router.get("/{portfolio_id}/goals-progress")
async def get_goals_progress(portfolio_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    progress = await service.get_goal_progress(portfolio_id)
    return ok(data=progress, meta={"achieved": sum(1 for p in progress if p.achieved)})
