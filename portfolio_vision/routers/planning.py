"""
Router: /api/v1/planning
GET    /goals?portfolio_id=                → objetivos del portfolio
POST   /goals                              → crear objetivo
PUT    /goals/{goal_id}
POST   /goals/{goal_id}/complete           → marcar como conseguido (idempotente)
DELETE /goals/{goal_id}
GET    /journal?portfolio_id=&start=&end=  → entradas del diario (una por día)
POST   /journal                            → 409 si ya hay entrada ese día
PUT    /journal/{entry_id}
DELETE /journal/{entry_id}
GET    /events?start=&end=&type=           → eventos de mercado (más recientes primero)
POST   /events
PUT    /events/{event_id}
DELETE /events/{event_id}
"""

import datetime as dt
import uuid

from fastapi import APIRouter, Depends, Query, status

from portfolio_vision.core.dependencies import get_service
from portfolio_vision.core.responses import ok
from portfolio_vision.schemas.domain import (
    EventType,
    GoalCreate,
    GoalPatch,
    JournalEntryCreate,
    JournalEntryPatch,
    MarketEventCreate,
    MarketEventPatch,
)
from portfolio_vision.services.portfolio_service import PortfolioService

router = APIRouter()


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------


@router.get("/goals")
async def list_goals(
    portfolio_id: uuid.UUID = Query(...),
    service: PortfolioService = Depends(get_service),
) -> dict:
    goals = await service.list_goals(portfolio_id)
    return ok(data=goals, meta={"total": len(goals)})


@router.post("/goals", status_code=status.HTTP_201_CREATED)
async def create_goal(body: GoalCreate, service: PortfolioService = Depends(get_service)) -> dict:
    return ok(data=await service.create_goal(body))


@router.put("/goals/{goal_id}")
async def update_goal(goal_id: uuid.UUID, body: GoalPatch, service: PortfolioService = Depends(get_service)) -> dict:
    return ok(data=await service.update_goal(goal_id, body))


@router.post("/goals/{goal_id}/complete")
async def complete_goal(goal_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    return ok(data=await service.complete_goal(goal_id))


@router.delete("/goals/{goal_id}")
async def delete_goal(goal_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    await service.delete_goal(goal_id)
    return ok(data={"deleted": str(goal_id)})


# ---------------------------------------------------------------------------
# Diario
# ---------------------------------------------------------------------------


@router.get("/journal")
async def list_journal(
    portfolio_id: uuid.UUID = Query(...),
    start: dt.date | None = Query(None),
    end: dt.date | None = Query(None),
    service: PortfolioService = Depends(get_service),
) -> dict:
    entries = await service.list_journal_entries(portfolio_id, start, end)
    return ok(data=entries, meta={"total": len(entries)})


@router.post("/journal", status_code=status.HTTP_201_CREATED)
async def create_journal_entry(body: JournalEntryCreate, service: PortfolioService = Depends(get_service)) -> dict:
    return ok(data=await service.create_journal_entry(body))


@router.put("/journal/{entry_id}")
async def update_journal_entry(
    entry_id: uuid.UUID,
    body: JournalEntryPatch,
    service: PortfolioService = Depends(get_service),
) -> dict:
    return ok(data=await service.update_journal_entry(entry_id, body))


@router.delete("/journal/{entry_id}")
async def delete_journal_entry(entry_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    await service.delete_journal_entry(entry_id)
    return ok(data={"deleted": str(entry_id)})


# ---------------------------------------------------------------------------
# Eventos de mercado
# ---------------------------------------------------------------------------


@router.get("/events")
async def list_events(
    start: dt.date | None = Query(None),
    end: dt.date | None = Query(None),
    event_type: EventType | None = Query(None, alias="type"),
    service: PortfolioService = Depends(get_service),
) -> dict:
    events = await service.list_market_events(start, end, event_type)
    return ok(data=events, meta={"total": len(events)})


@router.post("/events", status_code=status.HTTP_201_CREATED)
async def create_event(body: MarketEventCreate, service: PortfolioService = Depends(get_service)) -> dict:
    return ok(data=await service.create_market_event(body))


@router.put("/events/{event_id}")
async def update_event(
    event_id: uuid.UUID,
    body: MarketEventPatch,
    service: PortfolioService = Depends(get_service),
) -> dict:
    return ok(data=await service.update_market_event(event_id, body))


@router.delete("/events/{event_id}")
async def delete_event(event_id: uuid.UUID, service: PortfolioService = Depends(get_service)) -> dict:
    await service.delete_market_event(event_id)
    return ok(data={"deleted": str(event_id)})
