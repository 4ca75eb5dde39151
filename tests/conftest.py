"""
Fixtures compartidas.
El almacén embebido se prueba contra un SQLite temporal por test (aiosqlite),
así que los tests no necesitan servicios externos.
"""

import os

# Antes de importar cualquier módulo que lea Settings
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402

from portfolio_vision.core.database import build_engine, build_session_factory, init_local_schema  # noqa: E402
from portfolio_vision.core.identity import StaticIdentity  # noqa: E402
from portfolio_vision.stores.sql_store import SqlStore  # noqa: E402

TENANT = "user-1"
OTHER_TENANT = "user-2"


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_local_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory) -> SqlStore:
    return SqlStore(session_factory, StaticIdentity(tenant_id=TENANT))


@pytest.fixture
def other_store(session_factory) -> SqlStore:
    """Mismo fichero SQLite, otro tenant."""
    return SqlStore(session_factory, StaticIdentity(tenant_id=OTHER_TENANT))

