"""
Configuración del motor SQLAlchemy async y fábrica de sesiones del almacén embebido.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from portfolio_vision.core.config import settings
from portfolio_vision.models.base import Base


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # SQLite no aplica las FOREIGN KEY salvo que se active por conexión
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Crea el engine; el pool solo se dimensiona en servidores (SQLite usa su pool por defecto)."""
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,   # detecta conexiones muertas
        pool_size=5,
        max_overflow=10,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.LOCAL_DATABASE_URL, echo=settings.APP_ENV == "development")

AsyncSessionLocal = build_session_factory(engine)


async def init_local_schema(bind: AsyncEngine) -> None:
    """Crea las tablas del almacén embebido si no existen (en Postgres manda Alembic)."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
