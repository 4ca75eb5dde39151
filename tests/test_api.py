"""
Tests de la capa HTTP: routers, envelope { data, error, meta } y traducción de errores.
El servicio se sustituye por uno montado sobre el SQLite temporal del test.
"""

import uuid

import httpx
import pytest

from portfolio_vision.core.dependencies import get_service
from portfolio_vision.main import app
from portfolio_vision.services.portfolio_service import PortfolioService


@pytest.fixture
async def client(store):
    app.dependency_overrides[get_service] = lambda: PortfolioService(store)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


async def create_portfolio_with_wallet(client: httpx.AsyncClient) -> tuple[str, str]:
    resp = await client.post("/api/v1/portfolios", json={"name": "Main"})
    portfolio_id = resp.json()["data"]["id"]
    resp = await client.post(f"/api/v1/portfolios/{portfolio_id}/wallets", json={"name": "Cold"})
    return portfolio_id, resp.json()["data"]["id"]


# ===========================================================================
# Tests: envelope y errores
# ===========================================================================


class TestEnvelope:
    async def test_health_without_auth(self, client):
        resp = await client.get("/health")

        assert resp.status_code == 200
        assert resp.json()["storage_mode"] == "local"

    async def test_create_portfolio_returns_201(self, client):
        resp = await client.post("/api/v1/portfolios", json={"name": "Main"})

        assert resp.status_code == 201
        body = resp.json()
        assert body["error"] is None
        assert body["data"]["name"] == "Main"
        uuid.UUID(body["data"]["id"])

    async def test_unknown_portfolio_is_404(self, client):
        resp = await client.get(f"/api/v1/portfolios/{uuid.uuid4()}")

        assert resp.status_code == 404
        body = resp.json()
        assert body["data"] is None
        assert body["error"]
        assert body["meta"] == {"retryable": False}

    async def test_invalid_body_is_422(self, client):
        resp = await client.post("/api/v1/portfolios", json={"name": ""})

        assert resp.status_code == 422
        assert resp.json()["data"] is None
        assert [p["field"] for p in resp.json()["meta"]["problems"]] == ["name"]

    async def test_invalid_month_is_422(self, client):
        portfolio_id, _ = await create_portfolio_with_wallet(client)

        resp = await client.put(
            "/api/v1/snapshots/monthly",
            json={"portfolio_id": portfolio_id, "month": "2024-1", "total_usd": "100"},
        )

        assert resp.status_code == 422


# ===========================================================================
# Tests: flujo snapshot → dashboard → export
# ===========================================================================


class TestSnapshotFlow:
    async def test_daily_upsert_feeds_dashboard(self, client):
        portfolio_id, wallet_id = await create_portfolio_with_wallet(client)

        for day, value in (("2024-01-01", "1000"), ("2024-01-02", "1100")):
            resp = await client.put(
                "/api/v1/snapshots/daily",
                json={
                    "portfolio_id": portfolio_id,
                    "date": day,
                    "wallet_balances": [{"wallet_id": wallet_id, "value_usd": value}],
                },
            )
            assert resp.status_code == 200

        resp = await client.get(f"/api/v1/dashboard/{portfolio_id}/metrics")

        data = resp.json()["data"]
        assert float(data["total"]) == 1100
        assert float(data["change_24h"]) == 100
        assert data["ath_date"] == "2024-01-02"

    async def test_daily_upsert_requires_balances(self, client):
        portfolio_id, _ = await create_portfolio_with_wallet(client)

        resp = await client.put(
            "/api/v1/snapshots/daily",
            json={"portfolio_id": portfolio_id, "date": "2024-01-01", "wallet_balances": []},
        )

        assert resp.status_code == 422

    async def test_monthly_series_has_twelve_months(self, client):
        portfolio_id, _ = await create_portfolio_with_wallet(client)

        resp = await client.get(f"/api/v1/dashboard/{portfolio_id}/monthly", params={"year": 2024})

        body = resp.json()
        assert len(body["data"]) == 12
        assert body["meta"] == {"year": 2024, "months_with_data": 0}

    async def test_csv_import_then_export(self, client):
        portfolio_id, _ = await create_portfolio_with_wallet(client)

        resp = await client.post(
            f"/api/v1/backup/import/{portfolio_id}/rows",
            json={"content": "Date,Cold\n2024-01-01,600\n2024-01-02,700\n", "format": "csv"},
        )
        assert resp.json()["data"]["imported_count"] == 2

        resp = await client.get(f"/api/v1/backup/export/{portfolio_id}/csv")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "attachment" in resp.headers["content-disposition"]
        assert resp.text.split("\n")[0] == "Date,Cold,Total"

    async def test_delete_portfolio_cascades(self, client):
        portfolio_id, _ = await create_portfolio_with_wallet(client)

        resp = await client.delete(f"/api/v1/portfolios/{portfolio_id}")
        assert resp.status_code == 200

        resp = await client.get(f"/api/v1/portfolios/{portfolio_id}/wallets")
        assert resp.json()["data"] == []
