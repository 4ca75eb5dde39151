"""
Almacén remoto multi-tenant sobre la API REST de PostgREST (Supabase).

Reglas:
- Toda petición filtra por user_id=eq.<tenant> además de las políticas RLS del servidor
- Upsert atómico en servidor: POST ?on_conflict=<clave natural> + resolution=merge-duplicates
  (el payload no lleva id, así que una fila existente conserva el suyo)
- delete_portfolio es escalonado: dependientes primero, el portfolio el ÚLTIMO;
  si falla a mitad, el portfolio sigue visible y el borrado se puede reintentar
- Timeouts, errores de red y 5xx se reintentan con backoff exponencial y
  terminan en StorageUnavailable; los inserts simples (POST sin on_conflict) no se
  reintentan salvo en 429
"""

import asyncio
import datetime as dt
import uuid
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from portfolio_vision.core.exceptions import (
    Conflict,
    NotFound,
    StorageUnavailable,
    Unauthenticated,
    ValidationError,
)
from portfolio_vision.core.identity import IdentityContext, require_tenant
from portfolio_vision.schemas.domain import (
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
    WalletCreate,
    WalletPatch,
)
from portfolio_vision.stores.base import PORTFOLIO_DEPENDENTS, EntityKind, patch_values

logger = structlog.get_logger(__name__)

# Código SQLSTATE de unique_violation que PostgREST devuelve en el cuerpo del 409
UNIQUE_VIOLATION = "23505"

RETURN_ROWS = "return=representation"


def _eq(value: object) -> str:
    return f"eq.{value}"


def _error_body(response: httpx.Response) -> dict:
    """Cuerpo de error de PostgREST; un proxy o gateway puede devolver HTML o nada."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class RemoteStore:
    """
    Implementación remota de SnapshotStore + EntityStore.

    Uso:
        async with RemoteStore(base_url, api_key, identity, access_token=jwt) as store:
            portfolios = await store.list_portfolios()

    El http_client es inyectable para facilitar tests unitarios.
    NUNCA loguear api_key ni access_token.
    """

    MAX_RETRIES: int = 3
    BASE_BACKOFF: float = 2.0  # segundos

    def __init__(
        self,
        base_url: str,
        api_key: str,
        identity: IdentityContext,
        access_token: str | None = None,
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._identity = identity
        self._base_url = base_url.rstrip("/")
        # Con el JWT del usuario las políticas RLS (auth.uid() = user_id) aplican en servidor
        self._client = http_client or httpx.AsyncClient(
            base_url=f"{self._base_url}/rest/v1",
            timeout=httpx.Timeout(timeout),
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
                "Content-Type": "application/json",
            },
        )

    async def __aenter__(self) -> "RemoteStore":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    def _tenant(self) -> str:
        return require_tenant(self._identity)

    # -----------------------------------------------------------------------
    # Request base con retry
    # -----------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
        idempotent: bool | None = None,
    ) -> Any:
        """
        Ejecuta una petición contra /rest/v1/<table> con:
        - Retry con backoff exponencial en errores de red, timeouts, 429 y 5xx
          (un POST sin clave de conflicto solo reintenta el 429: el servidor pudo haber escrito)
        - Traducción de códigos HTTP a la taxonomía del motor
        Devuelve el JSON de la respuesta, o None si el servidor responde 204.
        """
        headers = {"Prefer": prefer} if prefer else None
        operation = f"{method} {table}"
        last_error = ""
        if idempotent is None:
            idempotent = method != "POST"

        for attempt in range(self.MAX_RETRIES):
            try:
                response = await self._client.request(
                    method, f"/{table}", params=params, json=json, headers=headers
                )
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                if not idempotent:
                    logger.error("remote.unavailable", table=table, method=method, error=last_error)
                    raise StorageUnavailable(operation, last_error) from exc
                backoff = self.BASE_BACKOFF ** (attempt + 1)
                logger.warning(
                    "remote.network_error",
                    table=table,
                    method=method,
                    attempt=attempt,
                    backoff=backoff,
                    error=str(exc),
                )
                if attempt < self.MAX_RETRIES - 1:
                    await asyncio.sleep(backoff)
                continue

            status = response.status_code

            # Saturación o caída del servidor: reintentable
            if status == 429 or status >= 500:
                last_error = f"HTTP {status}"
                if status != 429 and not idempotent:
                    logger.error("remote.unavailable", table=table, method=method, error=last_error)
                    raise StorageUnavailable(operation, last_error)
                backoff = self.BASE_BACKOFF ** (attempt + 1)
                logger.warning("remote.server_error", table=table, status=status, attempt=attempt, backoff=backoff)
                if attempt < self.MAX_RETRIES - 1:
                    await asyncio.sleep(backoff)
                continue

            if status in (401, 403):
                raise Unauthenticated(f"El almacén remoto rechazó la sesión (HTTP {status})")

            if status == 409:
                body = _error_body(response)
                detail = body.get("details") or body.get("message") or "unique violation"
                raise Conflict(table, detail)

            if status >= 400:
                body = _error_body(response)
                if body.get("code") == UNIQUE_VIOLATION:
                    raise Conflict(table, body.get("details") or body.get("message", ""))
                raise ValidationError(f"{operation}: {body.get('message', f'HTTP {status}')}")

            if status == 204:
                return None
            return response.json()

        logger.error("remote.unavailable", table=table, method=method, error=last_error)
        raise StorageUnavailable(operation, last_error)

    async def _select(self, table: str, filters: dict[str, Any], order: str | None = None) -> list[dict]:
        params = {"select": "*", "user_id": _eq(self._tenant()), **filters}
        if order:
            params["order"] = order
        return await self._request("GET", table, params=params) or []

    async def _select_one(self, table: str, row_id: uuid.UUID, entity: str) -> dict:
        rows = await self._select(table, {"id": _eq(row_id)})
        if not rows:
            raise NotFound(entity, row_id)
        return rows[0]

    async def _insert(self, table: str, payload: dict) -> dict:
        body = {**payload, "user_id": self._tenant()}
        rows = await self._request("POST", table, json=body, prefer=RETURN_ROWS)
        return rows[0]

    async def _upsert(self, table: str, payload: dict, on_conflict: str) -> dict:
        body = {**payload, "user_id": self._tenant()}
        rows = await self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=body,
            prefer=f"resolution=merge-duplicates,{RETURN_ROWS}",
            idempotent=True,
        )
        return rows[0]

    async def _patch(self, table: str, row_id: uuid.UUID, changes: dict, entity: str) -> dict:
        rows = await self._request(
            "PATCH",
            table,
            params={"id": _eq(row_id), "user_id": _eq(self._tenant())},
            json=changes,
            prefer=RETURN_ROWS,
        )
        if not rows:
            raise NotFound(entity, row_id)
        return rows[0]

    async def _delete(self, table: str, filters: dict[str, Any]) -> None:
        params = {"user_id": _eq(self._tenant()), **filters}
        await self._request("DELETE", table, params=params)

    async def _natural_key_taken(
        self, table: str, portfolio_id: uuid.UUID, key: str, value: str, exclude_id: uuid.UUID
    ) -> bool:
        rows = await self._select(
            table,
            {"portfolio_id": _eq(portfolio_id), key: _eq(value), "id": f"neq.{exclude_id}"},
        )
        return bool(rows)

    # -----------------------------------------------------------------------
    # Snapshots diarios
    # -----------------------------------------------------------------------

    async def list_daily(self, portfolio_id: uuid.UUID) -> list[DailySnapshot]:
        rows = await self._select("daily_snapshots", {"portfolio_id": _eq(portfolio_id)}, order="date.asc")
        return [DailySnapshot.model_validate(row) for row in rows]

    async def get_daily_by_date(self, portfolio_id: uuid.UUID, date: dt.date) -> DailySnapshot | None:
        rows = await self._select(
            "daily_snapshots", {"portfolio_id": _eq(portfolio_id), "date": _eq(date.isoformat())}
        )
        return DailySnapshot.model_validate(rows[0]) if rows else None

    async def upsert_daily(self, snapshot: DailySnapshot) -> uuid.UUID:
        payload = snapshot.model_dump(mode="json", exclude={"id", "created_at"})
        row = await self._upsert("daily_snapshots", payload, on_conflict="portfolio_id,date")
        logger.info(
            "remote.upsert_daily",
            portfolio_id=str(snapshot.portfolio_id),
            date=snapshot.date.isoformat(),
            snapshot_id=row["id"],
        )
        return uuid.UUID(str(row["id"]))

    async def update_daily(self, snapshot_id: uuid.UUID, patch: DailySnapshotPatch) -> DailySnapshot:
        changes = patch_values(patch, json_mode=True)
        if "date" in changes:
            current = DailySnapshot.model_validate(await self._select_one("daily_snapshots", snapshot_id, "DailySnapshot"))
            if await self._natural_key_taken("daily_snapshots", current.portfolio_id, "date", changes["date"], snapshot_id):
                raise Conflict("DailySnapshot", f"{current.portfolio_id}/{changes['date']}")
        row = await self._patch("daily_snapshots", snapshot_id, changes, "DailySnapshot")
        return DailySnapshot.model_validate(row)

    async def delete_daily(self, snapshot_id: uuid.UUID) -> None:
        await self._delete("daily_snapshots", {"id": _eq(snapshot_id)})

    # -----------------------------------------------------------------------
    # Snapshots mensuales
    # -----------------------------------------------------------------------

    async def list_monthly(self, portfolio_id: uuid.UUID) -> list[MonthlySnapshot]:
        rows = await self._select("monthly_snapshots", {"portfolio_id": _eq(portfolio_id)}, order="month.asc")
        return [MonthlySnapshot.model_validate(row) for row in rows]

    async def get_monthly_by_month(self, portfolio_id: uuid.UUID, month: str) -> MonthlySnapshot | None:
        rows = await self._select("monthly_snapshots", {"portfolio_id": _eq(portfolio_id), "month": _eq(month)})
        return MonthlySnapshot.model_validate(rows[0]) if rows else None

    async def upsert_monthly(self, snapshot: MonthlySnapshot) -> uuid.UUID:
        payload = snapshot.model_dump(mode="json", exclude={"id", "created_at"})
        row = await self._upsert("monthly_snapshots", payload, on_conflict="portfolio_id,month")
        logger.info(
            "remote.upsert_monthly",
            portfolio_id=str(snapshot.portfolio_id),
            month=snapshot.month,
            snapshot_id=row["id"],
        )
        return uuid.UUID(str(row["id"]))

    async def update_monthly(self, snapshot_id: uuid.UUID, patch: MonthlySnapshotPatch) -> MonthlySnapshot:
        changes = patch_values(patch, json_mode=True)
        if "month" in changes:
            current = MonthlySnapshot.model_validate(
                await self._select_one("monthly_snapshots", snapshot_id, "MonthlySnapshot")
            )
            if await self._natural_key_taken(
                "monthly_snapshots", current.portfolio_id, "month", changes["month"], snapshot_id
            ):
                raise Conflict("MonthlySnapshot", f"{current.portfolio_id}/{changes['month']}")
            changes["year"] = int(changes["month"][:4])
        row = await self._patch("monthly_snapshots", snapshot_id, changes, "MonthlySnapshot")
        return MonthlySnapshot.model_validate(row)

    async def delete_monthly(self, snapshot_id: uuid.UUID) -> None:
        await self._delete("monthly_snapshots", {"id": _eq(snapshot_id)})

    # -----------------------------------------------------------------------
    # Portfolios
    # -----------------------------------------------------------------------

    async def list_portfolios(self) -> list[Portfolio]:
        rows = await self._select("portfolios", {}, order="created_at.asc")
        return [Portfolio.model_validate(row) for row in rows]

    async def get_portfolio(self, portfolio_id: uuid.UUID) -> Portfolio:
        return Portfolio.model_validate(await self._select_one("portfolios", portfolio_id, "Portfolio"))

    async def create_portfolio(self, data: PortfolioCreate) -> Portfolio:
        row = await self._insert("portfolios", data.model_dump(mode="json"))
        logger.info("remote.create_portfolio", portfolio_id=row["id"])
        return Portfolio.model_validate(row)

    async def update_portfolio(self, portfolio_id: uuid.UUID, patch: PortfolioPatch) -> Portfolio:
        row = await self._patch("portfolios", portfolio_id, patch_values(patch, json_mode=True), "Portfolio")
        return Portfolio.model_validate(row)

    async def delete_portfolio(self, portfolio_id: uuid.UUID) -> None:
        """
        Borrado escalonado: no hay transacciones multi-tabla en PostgREST.
        El portfolio se borra el último para que un fallo intermedio sea reintentable.
        """
        log = logger.bind(portfolio_id=str(portfolio_id))
        if not await self._select("portfolios", {"id": _eq(portfolio_id)}):
            return
        for kind in PORTFOLIO_DEPENDENTS:
            await self._delete(kind.value, {"portfolio_id": _eq(portfolio_id)})
            log.debug("remote.delete_portfolio.step", table=kind.value)
        await self._delete("portfolios", {"id": _eq(portfolio_id)})
        log.info("remote.delete_portfolio")

    # -----------------------------------------------------------------------
    # Wallets
    # -----------------------------------------------------------------------

    async def list_wallets(self, portfolio_id: uuid.UUID | None = None) -> list[Wallet]:
        filters = {"portfolio_id": _eq(portfolio_id)} if portfolio_id is not None else {}
        rows = await self._select("wallets", filters, order="created_at.asc")
        return [Wallet.model_validate(row) for row in rows]

    async def get_wallet(self, wallet_id: uuid.UUID) -> Wallet:
        return Wallet.model_validate(await self._select_one("wallets", wallet_id, "Wallet"))

    async def create_wallet(self, data: WalletCreate) -> Wallet:
        return Wallet.model_validate(await self._insert("wallets", data.model_dump(mode="json")))

    async def update_wallet(self, wallet_id: uuid.UUID, patch: WalletPatch) -> Wallet:
        row = await self._patch("wallets", wallet_id, patch_values(patch, json_mode=True), "Wallet")
        return Wallet.model_validate(row)

    async def delete_wallet(self, wallet_id: uuid.UUID) -> None:
        await self._delete("wallets", {"id": _eq(wallet_id)})

    # -----------------------------------------------------------------------
    # Goals
    # -----------------------------------------------------------------------

    async def list_goals(self, portfolio_id: uuid.UUID) -> list[Goal]:
        rows = await self._select("goals", {"portfolio_id": _eq(portfolio_id)}, order="created_at.asc")
        return [Goal.model_validate(row) for row in rows]

    async def create_goal(self, data: GoalCreate) -> Goal:
        return Goal.model_validate(await self._insert("goals", data.model_dump(mode="json")))

    async def update_goal(self, goal_id: uuid.UUID, patch: GoalPatch) -> Goal:
        row = await self._patch("goals", goal_id, patch_values(patch, json_mode=True), "Goal")
        return Goal.model_validate(row)

    async def complete_goal(self, goal_id: uuid.UUID) -> Goal:
        """Idempotente: el PATCH solo aplica si completed_at sigue siendo NULL."""
        rows = await self._request(
            "PATCH",
            "goals",
            params={"id": _eq(goal_id), "user_id": _eq(self._tenant()), "completed_at": "is.null"},
            json={"completed_at": dt.datetime.now(dt.timezone.utc).isoformat()},
            prefer=RETURN_ROWS,
        )
        if rows:
            logger.info("remote.complete_goal", goal_id=str(goal_id))
            return Goal.model_validate(rows[0])
        # Ya estaba completado (o no existe): devolver el estado actual
        return Goal.model_validate(await self._select_one("goals", goal_id, "Goal"))

    async def delete_goal(self, goal_id: uuid.UUID) -> None:
        await self._delete("goals", {"id": _eq(goal_id)})

    # -----------------------------------------------------------------------
    # Diario
    # -----------------------------------------------------------------------

    async def list_journal_entries(
        self,
        portfolio_id: uuid.UUID,
        start: dt.date | None = None,
        end: dt.date | None = None,
    ) -> list[JournalEntry]:
        filters: dict[str, Any] = {"portfolio_id": _eq(portfolio_id)}
        # PostgREST no admite dos claves iguales en un dict: el rango va en and=(...)
        bounds = []
        if start is not None:
            bounds.append(f"date.gte.{start.isoformat()}")
        if end is not None:
            bounds.append(f"date.lte.{end.isoformat()}")
        if bounds:
            filters["and"] = f"({','.join(bounds)})"
        rows = await self._select("journal_entries", filters, order="date.asc")
        return [JournalEntry.model_validate(row) for row in rows]

    async def create_journal_entry(self, data: JournalEntryCreate) -> JournalEntry:
        return JournalEntry.model_validate(await self._insert("journal_entries", data.model_dump(mode="json")))

    async def update_journal_entry(self, entry_id: uuid.UUID, patch: JournalEntryPatch) -> JournalEntry:
        changes = patch_values(patch, json_mode=True)
        if "date" in changes:
            current = JournalEntry.model_validate(await self._select_one("journal_entries", entry_id, "JournalEntry"))
            if await self._natural_key_taken("journal_entries", current.portfolio_id, "date", changes["date"], entry_id):
                raise Conflict("JournalEntry", f"{current.portfolio_id}/{changes['date']}")
        changes["updated_at"] = dt.datetime.now(dt.timezone.utc).isoformat()
        row = await self._patch("journal_entries", entry_id, changes, "JournalEntry")
        return JournalEntry.model_validate(row)

    async def delete_journal_entry(self, entry_id: uuid.UUID) -> None:
        await self._delete("journal_entries", {"id": _eq(entry_id)})

    # -----------------------------------------------------------------------
    # Eventos de mercado
    # -----------------------------------------------------------------------

    async def list_market_events(
        self,
        start: dt.date | None = None,
        end: dt.date | None = None,
        event_type: str | None = None,
    ) -> list[MarketEvent]:
        filters: dict[str, Any] = {}
        bounds = []
        if start is not None:
            bounds.append(f"date.gte.{start.isoformat()}")
        if end is not None:
            bounds.append(f"date.lte.{end.isoformat()}")
        if bounds:
            filters["and"] = f"({','.join(bounds)})"
        if event_type is not None:
            filters["type"] = _eq(event_type)
        rows = await self._select("market_events", filters, order="date.desc")
        return [MarketEvent.model_validate(row) for row in rows]

    async def create_market_event(self, data: MarketEventCreate) -> MarketEvent:
        return MarketEvent.model_validate(await self._insert("market_events", data.model_dump(mode="json")))

    async def update_market_event(self, event_id: uuid.UUID, patch: MarketEventPatch) -> MarketEvent:
        row = await self._patch("market_events", event_id, patch_values(patch, json_mode=True), "MarketEvent")
        return MarketEvent.model_validate(row)

    async def delete_market_event(self, event_id: uuid.UUID) -> None:
        await self._delete("market_events", {"id": _eq(event_id)})

    # -----------------------------------------------------------------------
    # Import aditivo
    # -----------------------------------------------------------------------

    async def insert_if_absent(self, kind: EntityKind, entity: BaseModel) -> bool:
        """
        POST con resolution=ignore-duplicates: si el id ya existe el servidor no devuelve fila.
        Una colisión de clave natural (409) también cuenta como "ya existe".
        Un dependiente cuyo portfolio no existe (o es de otro tenant) no se inserta.
        El id viaja en el payload, así que reintentar tras un 5xx no duplica.
        """
        payload = entity.model_dump(mode="json", exclude_none=True)
        if kind in PORTFOLIO_DEPENDENTS and not await self._select("portfolios", {"id": _eq(payload["portfolio_id"])}):
            logger.warning("remote.insert_if_absent.orphan", table=kind.value, portfolio_id=payload["portfolio_id"])
            return False
        payload["user_id"] = self._tenant()
        try:
            rows = await self._request(
                "POST",
                kind.value,
                json=payload,
                prefer=f"resolution=ignore-duplicates,{RETURN_ROWS}",
                idempotent=True,
            )
        except Conflict:
            logger.debug("remote.insert_if_absent.natural_key_exists", table=kind.value)
            return False
        return bool(rows)
