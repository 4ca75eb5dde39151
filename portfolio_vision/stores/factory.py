"""
Selección del backend activo (patrón strategy).
Es el ÚNICO sitio que conoce ambas implementaciones; el resto del código
recibe un PortfolioStore ya construido.
"""

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portfolio_vision.core.config import Settings
from portfolio_vision.core.identity import IdentityContext, StorageMode
from portfolio_vision.stores.base import PortfolioStore
from portfolio_vision.stores.remote_store import RemoteStore
from portfolio_vision.stores.sql_store import SqlStore

logger = structlog.get_logger(__name__)


def build_store(
    identity: IdentityContext,
    settings: Settings,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    access_token: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> PortfolioStore:
    """Construye el almacén correspondiente a identity.storage_mode()."""
    mode = identity.storage_mode()

    if mode is StorageMode.REMOTE:
        logger.debug("store.selected", mode=mode.value)
        return RemoteStore(
            base_url=settings.REMOTE_URL,
            api_key=settings.REMOTE_API_KEY,
            identity=identity,
            access_token=access_token,
            timeout=settings.REMOTE_TIMEOUT_SECONDS,
            http_client=http_client,
        )

    if session_factory is None:
        # Import diferido: el engine global solo se crea si de verdad se usa el modo local
        from portfolio_vision.core.database import AsyncSessionLocal

        session_factory = AsyncSessionLocal
    logger.debug("store.selected", mode=mode.value)
    return SqlStore(session_factory, identity)
