"""
Router: /api/v1/snapshots
GET    /daily?portfolio_id=        → serie diaria ascendente
PUT    /daily                      → upsert por (portfolio, fecha); total y variación se calculan
PATCH  /daily/{snapshot_id}        → edición parcial (409 si la nueva fecha ya existe)
DELETE /daily/{snapshot_id}
GET    /monthly?portfolio_id=      → serie mensual ascendente
PUT    /monthly                    → upsert por (portfolio, mes); delta contra el mes anterior
PATCH  /monthly/{snapshot_id}
DELETE /monthly/{snapshot_id}
"""

import datetime as dt
import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from portfolio_vision.core.dependencies import get_service
from portfolio_vision.core.responses import ok
from portfolio_vision.schemas.domain import (
    MONTH_PATTERN,
    DailySnapshotPatch,
    MonthlySnapshotPatch,
    WalletBalance,
)
from portfolio_vision.services.portfolio_service import PortfolioService

router = APIRouter()


class DailyUpsertBody(BaseModel):
    portfolio_id: uuid.UUID
    date: dt.date
    wallet_balances: list[WalletBalance] = Field(min_length=1)


class MonthlyUpsertBody(BaseModel):
    portfolio_id: uuid.UUID
    month: str = Field(pattern=MONTH_PATTERN)
    total_usd: Decimal = Field(ge=0)
    btc_price: Decimal | None = None
    eth_price: Decimal | None = None


# ---------------------------------------------------------------------------
# Diarios
# ---------------------------------------------------------------------------


@router.get("/daily")
async def list_daily(
    portfolio_id: uuid.UUID = Query(...),
    service: PortfolioService = Depends(get_service),
) -> dict:
    snapshots = await service.list_daily_snapshots(portfolio_id)
    return ok(data=snapshots, meta={"total": len(snapshots)})


@router.put("/daily")
async def upsert_daily(body: DailyUpsertBody, service: PortfolioService = Depends(get_service)) -> dict:
    snapshot = await service.upsert_daily_snapshot(body.portfolio_id, body.date, body.wallet_balances)
    return ok(data=snapshot)


@router.patch("/daily/{snapshot_id}")
async def update_daily(
    snapshot_id: uuid.UUID,
    body: DailySnapshotPatch,
    service: PortfolioService = Depends(get_service),
) -> dict:
    return ok(data=await service.update_daily_snapshot(snapshot_id, body))


@router.delete("/daily/{snapshot_id}")
async def delete_daily(snapshot_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    await service.delete_daily_snapshot(snapshot_id)
    return ok(data={"deleted": str(snapshot_id)})


# ---------------------------------------------------------------------------
# Mensuales
# ---------------------------------------------------------------------------


@router.get("/monthly")
async def list_monthly(
    portfolio_id: uuid.UUID = Query(...),
    service: PortfolioService = Depends(get_service),
) -> dict:
    snapshots = await service.list_monthly_snapshots(portfolio_id)
    return ok(data=snapshots, meta={"total": len(snapshots)})


@router.put("/monthly")
async def upsert_monthly(body: MonthlyUpsertBody, service: PortfolioService = Depends(get_service)) -> dict:
    snapshot = await service.upsert_monthly_snapshot(
        body.portfolio_id, body.month, body.total_usd, body.btc_price, body.eth_price
    )
    return ok(data=snapshot)


@router.patch("/monthly/{snapshot_id}")
async def update_monthly(
    snapshot_id: uuid.UUID,
    body: MonthlySnapshotPatch,
    service: PortfolioService = Depends(get_service),
) -> dict:
    return ok(data=await service.update_monthly_snapshot(snapshot_id, body))


@router.delete("/monthly/{snapshot_id}")
async def delete_monthly(snapshot_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    await service.delete_monthly_snapshot(snapshot_id)
    return ok(data={"deleted": str(snapshot_id)})
