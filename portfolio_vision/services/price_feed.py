"""
Precios de referencia BTC/ETH en USD (CoinGecko free tier, /simple/price).

Solo se usan para enriquecer snapshots mensuales cuando el usuario no los indica;
NUNCA entran en el cálculo de totales. Caché en proceso con TTL >= 60 s.
Si CoinGecko falla se devuelve el último valor cacheado o ceros: nunca bloquea una escritura.
"""

import time
from dataclasses import dataclass
from decimal import Decimal

import httpx
import structlog

logger = structlog.get_logger(__name__)

COINGECKO_URL = "https://api.coingecko.com/api/v3"
_TIMEOUT = httpx.Timeout(6.0)


@dataclass(frozen=True)
class ReferencePrices:
    btc: Decimal
    eth: Decimal


ZERO_PRICES = ReferencePrices(btc=Decimal("0"), eth=Decimal("0"))


class CoinGeckoPriceFeed:
    """
    Uso:
        feed = CoinGeckoPriceFeed(cache_seconds=60)
        prices = await feed.get_reference_prices()

    El http_client es inyectable para facilitar tests unitarios.
    """

    def __init__(
        self,
        base_url: str = COINGECKO_URL,
        cache_seconds: int = 60,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._cache_seconds = cache_seconds
        self._client = http_client or httpx.AsyncClient(timeout=_TIMEOUT)
        self._cached: ReferencePrices | None = None
        self._cached_at: float = 0.0

    async def __aenter__(self) -> "CoinGeckoPriceFeed":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    def _is_fresh(self) -> bool:
        return self._cached is not None and (time.monotonic() - self._cached_at) < self._cache_seconds

    async def _fetch(self) -> ReferencePrices | None:
        resp = await self._client.get(
            f"{self._base_url}/simple/price",
            params={"ids": "bitcoin,ethereum", "vs_currencies": "usd"},
        )
        resp.raise_for_status()
        data = resp.json()
        btc = data.get("bitcoin", {}).get("usd")
        eth = data.get("ethereum", {}).get("usd")
        if btc is None or eth is None:
            return None
        return ReferencePrices(btc=Decimal(str(btc)), eth=Decimal(str(eth)))

    async def get_reference_prices(self) -> ReferencePrices:
        if self._is_fresh():
            return self._cached

        try:
            prices = await self._fetch()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("prices.fetch_failed", source="coingecko", error=str(exc))
            prices = None

        if prices is None:
            return self._cached or ZERO_PRICES

        self._cached = prices
        self._cached_at = time.monotonic()
        logger.debug("prices.refreshed", btc=str(prices.btc), eth=str(prices.eth))
        return prices
