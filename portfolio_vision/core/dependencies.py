"""
Dependencias inyectables de FastAPI.
Uso: añadir como parámetro en la firma del endpoint con Depends().
"""

from collections.abc import AsyncIterator
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from portfolio_vision.core.config import settings
from portfolio_vision.core.identity import StaticIdentity
from portfolio_vision.core.security import verify_token
from portfolio_vision.services.portfolio_service import PortfolioService
from portfolio_vision.services.price_feed import CoinGeckoPriceFeed
from portfolio_vision.stores.base import PortfolioStore
from portfolio_vision.stores.factory import build_store

_bearer = HTTPBearer()


# ---------------------------------------------------------------------------
# Autenticación JWT → identidad del tenant
# ---------------------------------------------------------------------------


async def get_credentials(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer),
) -> HTTPAuthorizationCredentials:
    return credentials


async def get_identity(
    credentials: HTTPAuthorizationCredentials = Depends(get_credentials),
) -> StaticIdentity:
    """
    Valida el Bearer token JWT y construye la identidad (tenant + backend activo).
    Lanza 401 si el token es inválido o expirado.
    """
    try:
        tenant_id = verify_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return StaticIdentity(tenant_id=tenant_id, mode=settings.STORAGE_MODE)


# ---------------------------------------------------------------------------
# Almacén y servicio
# ---------------------------------------------------------------------------


async def get_store(
    identity: StaticIdentity = Depends(get_identity),
    credentials: HTTPAuthorizationCredentials = Depends(get_credentials),
) -> AsyncIterator[PortfolioStore]:
    """Un almacén por petición; el remoto reenvía el JWT del usuario para que aplique RLS."""
    store = build_store(identity, settings, access_token=credentials.credentials)
    try:
        yield store
    finally:
        await store.close()


@lru_cache
def get_price_feed() -> CoinGeckoPriceFeed:
    """Feed compartido por proceso: la caché de 60 s vale para todos los tenants."""
    return CoinGeckoPriceFeed(base_url=settings.PRICE_FEED_URL, cache_seconds=settings.PRICE_CACHE_SECONDS)


async def get_service(
    store: PortfolioStore = Depends(get_store),
    price_feed: CoinGeckoPriceFeed = Depends(get_price_feed),
) -> PortfolioService:
    return PortfolioService(store, price_feed=price_feed)
