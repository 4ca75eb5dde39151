"""
Tests del feed de precios de referencia (CoinGecko).
El httpx.AsyncClient se inyecta como mock para aislar la red.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx

from portfolio_vision.services.price_feed import ZERO_PRICES, CoinGeckoPriceFeed

BASE_URL = "https://api.coingecko.com/api/v3"
PRICES_BODY = {"bitcoin": {"usd": 65000.5}, "ethereum": {"usd": 3200}}


def make_mock_response(json_body: object, status_code: int = 200) -> MagicMock:
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_body
    if status_code >= 400:
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            f"HTTP {status_code}", request=MagicMock(), response=resp
        )
    return resp


def make_feed(mock_responses: list) -> tuple[CoinGeckoPriceFeed, AsyncMock]:
    mock_http = AsyncMock(spec=httpx.AsyncClient)
    mock_http.get = AsyncMock(side_effect=mock_responses)
    mock_http.aclose = AsyncMock()
    return CoinGeckoPriceFeed(base_url=BASE_URL, cache_seconds=60, http_client=mock_http), mock_http


class TestCoinGeckoPriceFeed:
    async def test_parses_prices_as_decimal(self):
        feed, mock_http = make_feed([make_mock_response(PRICES_BODY)])

        prices = await feed.get_reference_prices()

        assert prices.btc == Decimal("65000.5")
        assert prices.eth == Decimal("3200")
        call = mock_http.get.call_args
        assert call.args[0] == f"{BASE_URL}/simple/price"
        assert call.kwargs["params"] == {"ids": "bitcoin,ethereum", "vs_currencies": "usd"}

    async def test_second_call_within_ttl_uses_cache(self):
        feed, mock_http = make_feed([make_mock_response(PRICES_BODY)])

        await feed.get_reference_prices()
        await feed.get_reference_prices()

        assert mock_http.get.call_count == 1

    async def test_expired_cache_refetches(self):
        feed, mock_http = make_feed([make_mock_response(PRICES_BODY), make_mock_response(PRICES_BODY)])

        await feed.get_reference_prices()
        feed._cached_at -= 120   # simular que ha pasado el TTL
        await feed.get_reference_prices()

        assert mock_http.get.call_count == 2

    async def test_failure_without_cache_returns_zero_prices(self):
        feed, _ = make_feed([httpx.ConnectError("connection refused")])
        assert await feed.get_reference_prices() == ZERO_PRICES

    async def test_failure_with_cache_returns_last_value(self):
        feed, _ = make_feed([make_mock_response(PRICES_BODY), make_mock_response({}, 429)])

        first = await feed.get_reference_prices()
        feed._cached_at -= 120
        second = await feed.get_reference_prices()

        assert second == first

    async def test_incomplete_body_returns_zero_prices(self):
        feed, _ = make_feed([make_mock_response({"bitcoin": {"usd": 65000}})])
        assert await feed.get_reference_prices() == ZERO_PRICES
