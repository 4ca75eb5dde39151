"""
Entidades de dominio (pydantic v2) compartidas por ambos backends.

Los almacenes devuelven siempre estos modelos, nunca filas ORM ni JSON crudo,
para que la analítica y el orquestador no sepan qué backend hay debajo.
Importes en Decimal: NUNCA float.
"""

import datetime as dt
import uuid
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_snake

from portfolio_vision.models.portfolio import DEFAULT_PORTFOLIO_COLOR, DEFAULT_WALLET_COLOR

Mood = Literal["bullish", "bearish", "neutral"]
EventType = Literal["news", "halving", "crash", "ath", "regulation", "hack", "launch", "other"]
Impact = Literal["positive", "negative", "neutral"]

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
ZERO = Decimal("0")


class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")


# ---------------------------------------------------------------------------
# Portfolios y wallets
# ---------------------------------------------------------------------------


class Portfolio(DomainModel):
    id: uuid.UUID
    name: str
    color: str = DEFAULT_PORTFOLIO_COLOR
    created_at: dt.datetime | None = None


class PortfolioCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: str = DEFAULT_PORTFOLIO_COLOR


class PortfolioPatch(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    color: str | None = None


class Wallet(DomainModel):
    id: uuid.UUID
    portfolio_id: uuid.UUID
    name: str
    address: str | None = None
    chain: str | None = None
    color: str = DEFAULT_WALLET_COLOR
    created_at: dt.datetime | None = None


class WalletCreate(BaseModel):
    portfolio_id: uuid.UUID
    name: str = Field(min_length=1, max_length=100)
    address: str | None = None
    chain: str | None = None
    color: str = DEFAULT_WALLET_COLOR


class WalletPatch(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    address: str | None = None
    chain: str | None = None
    color: str | None = None


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class WalletBalance(DomainModel):
    wallet_id: uuid.UUID
    value_usd: Decimal


class DailySnapshot(DomainModel):
    # id None = todavía no persistido (upsert decide si inserta o reutiliza)
    id: uuid.UUID | None = None
    portfolio_id: uuid.UUID
    date: dt.date
    wallet_balances: list[WalletBalance] = Field(default_factory=list)
    total_usd: Decimal
    variation_usd: Decimal = ZERO
    variation_percent: Decimal = ZERO
    created_at: dt.datetime | None = None


class DailySnapshotPatch(BaseModel):
    date: dt.date | None = None
    wallet_balances: list[WalletBalance] | None = None
    total_usd: Decimal | None = None
    variation_usd: Decimal | None = None
    variation_percent: Decimal | None = None


class MonthlySnapshot(DomainModel):
    id: uuid.UUID | None = None
    portfolio_id: uuid.UUID
    month: str = Field(pattern=MONTH_PATTERN)
    year: int
    total_usd: Decimal
    delta_usd: Decimal = ZERO
    delta_percent: Decimal = ZERO
    btc_price: Decimal | None = None
    eth_price: Decimal | None = None
    created_at: dt.datetime | None = None


class MonthlySnapshotPatch(BaseModel):
    month: str | None = Field(default=None, pattern=MONTH_PATTERN)
    total_usd: Decimal | None = None
    delta_usd: Decimal | None = None
    delta_percent: Decimal | None = None
    btc_price: Decimal | None = None
    eth_price: Decimal | None = None


# ---------------------------------------------------------------------------
# Goals, diario y eventos de mercado
# ---------------------------------------------------------------------------


class Goal(DomainModel):
    id: uuid.UUID
    portfolio_id: uuid.UUID
    name: str
    target_value: Decimal
    deadline: dt.date | None = None
    color: str = "#22c55e"
    icon: str | None = None
    created_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None


class GoalCreate(BaseModel):
    portfolio_id: uuid.UUID
    name: str = Field(min_length=1, max_length=100)
    target_value: Decimal = Field(gt=0)
    deadline: dt.date | None = None
    color: str = "#22c55e"
    icon: str | None = None


class GoalPatch(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    target_value: Decimal | None = Field(default=None, gt=0)
    deadline: dt.date | None = None
    color: str | None = None
    icon: str | None = None


class JournalEntry(DomainModel):
    id: uuid.UUID
    portfolio_id: uuid.UUID
    date: dt.date
    title: str
    content: str = ""
    mood: Mood = "neutral"
    tags: list[str] = Field(default_factory=list)
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class JournalEntryCreate(BaseModel):
    portfolio_id: uuid.UUID
    date: dt.date
    title: str = Field(min_length=1, max_length=200)
    content: str = ""
    mood: Mood = "neutral"
    tags: list[str] = Field(default_factory=list)


class JournalEntryPatch(BaseModel):
    date: dt.date | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = None
    mood: Mood | None = None
    tags: list[str] | None = None


class MarketEvent(DomainModel):
    id: uuid.UUID
    date: dt.date
    title: str
    description: str | None = None
    type: EventType
    impact: Impact
    coins: list[str] | None = None
    source: str | None = None
    created_at: dt.datetime | None = None


class MarketEventCreate(BaseModel):
    date: dt.date
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    type: EventType = "news"
    impact: Impact = "neutral"
    coins: list[str] | None = None
    source: str | None = None

    @field_validator("coins")
    @classmethod
    def normalize_coins(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        return [coin.strip().upper() for coin in v if coin.strip()]


class MarketEventPatch(BaseModel):
    date: dt.date | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    type: EventType | None = None
    impact: Impact | None = None
    coins: list[str] | None = None
    source: str | None = None


# ---------------------------------------------------------------------------
# Backup completo (export / import aditivo)
# ---------------------------------------------------------------------------

BACKUP_VERSION = "2.0"

# Los exports v1 (app de navegador) usan camelCase e ids de texto libre.
# Un id que no es UUID se traduce de forma determinista: el mismo texto da
# siempre el mismo UUID, así las referencias portfolioId / walletId siguen casando.
LEGACY_ID_NAMESPACE = uuid.UUID("6f1c9a52-3d0e-5b8a-9c47-2e5d8b1f0a63")
_ID_FIELDS = frozenset({"id", "portfolio_id", "wallet_id"})


def legacy_uuid(value: object) -> object:
    if not isinstance(value, str):
        return value
    try:
        return uuid.UUID(value)
    except ValueError:
        return uuid.uuid5(LEGACY_ID_NAMESPACE, value)


def _from_legacy(value: object) -> object:
    if isinstance(value, list):
        return [_from_legacy(item) for item in value]
    if not isinstance(value, dict):
        return value
    converted = {}
    for key, item in value.items():
        name = to_snake(key)
        item = _from_legacy(item)
        converted[name] = legacy_uuid(item) if name in _ID_FIELDS else item
    return converted


class BackupPayload(BaseModel):
    version: str = BACKUP_VERSION
    exported_at: dt.datetime | None = None
    portfolios: list[Portfolio] = Field(default_factory=list)
    wallets: list[Wallet] = Field(default_factory=list)
    # "snapshots" = diarios (misma clave en v1 y v2)
    snapshots: list[DailySnapshot] = Field(default_factory=list)
    monthly_snapshots: list[MonthlySnapshot] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    journal_entries: list[JournalEntry] = Field(default_factory=list)
    market_events: list[MarketEvent] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_v1_export(cls, data: object) -> object:
        """Normaliza claves camelCase e ids no-UUID; un payload v2 pasa sin cambios."""
        if isinstance(data, dict):
            return _from_legacy(data)
        return data
