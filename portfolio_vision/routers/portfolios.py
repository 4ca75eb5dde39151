"""
Router: /api/v1/portfolios
GET    ""                          → portfolios del tenant
POST   ""                          → crear portfolio
GET    /{portfolio_id}             → detalle (404 si no existe)
PUT    /{portfolio_id}             → actualizar nombre / color
DELETE /{portfolio_id}             → borrar en cascada (wallets, snapshots, goals, diario)
GET    /{portfolio_id}/wallets     → wallets activas del portfolio
POST   /{portfolio_id}/wallets     → crear wallet
PUT    /wallets/{wallet_id}        → actualizar wallet
DELETE /wallets/{wallet_id}        → borrar wallet (los snapshots conservan sus balances)
"""

import uuid

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from portfolio_vision.core.dependencies import get_service
from portfolio_vision.core.responses import ok
from portfolio_vision.models.portfolio import DEFAULT_WALLET_COLOR
from portfolio_vision.schemas.domain import PortfolioCreate, PortfolioPatch, WalletCreate, WalletPatch
from portfolio_vision.services.portfolio_service import PortfolioService

router = APIRouter()


class WalletBody(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    address: str | None = None
    chain: str | None = None
    color: str = DEFAULT_WALLET_COLOR


@router.get("")
async def list_portfolios(service: PortfolioService = Depends(get_service)) -> dict:
    portfolios = await service.list_portfolios()
    return ok(data=portfolios, meta={"total": len(portfolios)})


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_portfolio(body: PortfolioCreate, service: PortfolioService = Depends(get_service)) -> dict:
    return ok(data=await service.create_portfolio(body.name, body.color))


@router.get("/{portfolio_id}")
async def get_portfolio(portfolio_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    return ok(data=await service.get_portfolio(portfolio_id))


@router.put("/{portfolio_id}")
async def update_portfolio(
    portfolio_id: uuid.UUID,
    body: PortfolioPatch,
    service: PortfolioService = Depends(get_service),
) -> dict:
    return ok(data=await service.update_portfolio(portfolio_id, body))


@router.delete("/{portfolio_id}")
async def delete_portfolio(portfolio_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    await service.delete_portfolio(portfolio_id)
    return ok(data={"deleted": str(portfolio_id)})


# ---------------------------------------------------------------------------
# Wallets
# ---------------------------------------------------------------------------


@router.get("/{portfolio_id}/wallets")
async def list_wallets(portfolio_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    wallets = await service.list_wallets(portfolio_id)
    return ok(data=wallets, meta={"total": len(wallets)})


@router.post("/{portfolio_id}/wallets", status_code=status.HTTP_201_CREATED)
async def create_wallet(
    portfolio_id: uuid.UUID,
    body: WalletBody,
    service: PortfolioService = Depends(get_service),
) -> dict:
    wallet = await service.create_wallet(WalletCreate(portfolio_id=portfolio_id, **body.model_dump()))
    return ok(data=wallet)


@router.put("/wallets/{wallet_id}")
async def update_wallet(
    wallet_id: uuid.UUID,
    body: WalletPatch,
    service: PortfolioService = Depends(get_service),
) -> dict:
    return ok(data=await service.update_wallet(wallet_id, body))


@router.delete("/wallets/{wallet_id}")
async def delete_wallet(wallet_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    await service.delete_wallet(wallet_id)
    return ok(data={"deleted": str(wallet_id)})
