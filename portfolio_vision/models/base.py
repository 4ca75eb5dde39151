"""
Base declarativa de SQLAlchemy. Todos los modelos heredan de aquí.
Tipos genéricos (Uuid, JSON) para que el mismo esquema funcione en SQLite y Postgres.
"""

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB en Postgres, JSON (texto) en SQLite
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")

# NUMERIC(20,8) para valores en USD, NUMERIC(10,4) para porcentajes
Money = sa.Numeric(20, 8)
Percent = sa.Numeric(10, 4)


class Base(DeclarativeBase):
    pass


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TenantMixin:
    """Toda fila pertenece a un tenant; ninguna consulta se ejecuta sin filtrar por él."""

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)


class TimestampMixin:
    """Añade created_at con valor por defecto al momento de inserción."""

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
