"""
Router: /api/v1/backup
GET  /export                           → backup JSON completo del tenant (versión 2.0)
GET  /export/{portfolio_id}/csv        → snapshots diarios como CSV (Date, wallets..., Total)
POST /import                           → import aditivo de un backup completo
POST /import/{portfolio_id}/rows       → import de filas CSV / JSON al portfolio
"""

import datetime as dt
import uuid
from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from portfolio_vision.core.dependencies import get_service
from portfolio_vision.core.responses import ok
from portfolio_vision.schemas.domain import BackupPayload
from portfolio_vision.services.import_validator import parse_csv, parse_json
from portfolio_vision.services.portfolio_service import PortfolioService

router = APIRouter()


class RowImportBody(BaseModel):
    content: str = Field(min_length=1)
    format: Literal["csv", "json"] = "csv"
    date_format: str | None = None      # strptime explícito; por defecto ISO o día primero
    create_missing_wallets: bool = True


@router.get("/export")
async def export_backup(service: PortfolioService = Depends(get_service)) -> dict:
    payload = await service.export_all()
    return ok(
        data=payload,
        meta={
            "portfolios": len(payload.portfolios),
            "snapshots": len(payload.snapshots),
            "monthly_snapshots": len(payload.monthly_snapshots),
        },
    )


@router.get("/export/{portfolio_id}/csv")
async def export_csv(portfolio_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> StreamingResponse:
    """CSV de los snapshots diarios; las wallets borradas aparecen como "Unknown <id>"."""
    await service.get_portfolio(portfolio_id)
    content = await service.export_csv(portfolio_id)
    filename = f"portfolio_{portfolio_id}_{dt.date.today()}.csv"
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/import")
async def import_backup(body: BackupPayload, service: PortfolioService = Depends(get_service)) -> dict:
    counts = await service.import_backup(body)
    return ok(data=counts)


@router.post("/import/{portfolio_id}/rows")
async def import_rows(
    portfolio_id: uuid.UUID,
    body: RowImportBody,
    service: PortfolioService = Depends(get_service),
) -> dict:
    """
    CSV → filas {fecha, wallets}. JSON → lista de snapshots o, si trae la forma
    de un backup completo, se delega en el import aditivo.
    """
    if body.format == "csv":
        rows = parse_csv(body.content, body.date_format)
    else:
        parsed = parse_json(body.content, body.date_format)
        if parsed.kind == "full":
            counts = await service.import_backup(parsed.backup)
            return ok(data=counts, meta={"kind": "full"})
        rows = parsed.snapshots

    result = await service.import_rows(portfolio_id, rows, body.create_missing_wallets)
    return ok(data=result, meta={"kind": "snapshots", "rows": len(rows)})
