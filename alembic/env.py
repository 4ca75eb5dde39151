"""
Alembic: esquema del backend remoto (Postgres detrás de PostgREST).
El almacén embebido no pasa por aquí: init_local_schema crea sus tablas al arrancar.

Conexión síncrona (psycopg2) tomada de DATABASE_SYNC_URL.
"""

import structlog
from alembic import context
from sqlalchemy import create_engine, pool

import portfolio_vision.models  # noqa: F401  registra todas las tablas en Base.metadata
from portfolio_vision.core.config import settings
from portfolio_vision.core.logging import setup_logging
from portfolio_vision.models.base import Base

setup_logging(settings.LOG_LEVEL, settings.json_logs)
logger = structlog.get_logger("alembic.env")

target_metadata = Base.metadata
OWNED_TABLES = frozenset(target_metadata.tables)


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """
    El proyecto remoto comparte base de datos con el proveedor de identidad
    (schemas auth, storage...). Autogenerate solo compara nuestras tablas.
    """
    if type_ == "table":
        return name in OWNED_TABLES
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emite el SQL sin conectar (revisión manual antes de aplicarlo en el proyecto remoto)."""
    _configure(url=settings.DATABASE_SYNC_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(settings.DATABASE_SYNC_URL, poolclass=pool.NullPool)
    logger.info("migrations.start", tables=len(OWNED_TABLES))
    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
