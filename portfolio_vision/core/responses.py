"""
Helpers para la estructura de respuesta estándar { data, error, meta }.
Todos los endpoints de la API deben usar estas funciones para garantizar
coherencia en el formato de respuesta.
"""

import dataclasses
import datetime as dt
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel


def to_json(value: Any) -> Any:
    """
    Convierte modelos pydantic, dataclasses y tipos de dominio a JSON plano.
    Decimal SIEMPRE como string para no perder precisión en el cliente.
    """
    if isinstance(value, BaseModel):
        return to_json(value.model_dump())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_json(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def ok(data: Any = None, meta: dict | None = None) -> dict:
    """Respuesta exitosa."""
    return {"data": to_json(data), "error": None, "meta": meta or {}}


def err(message: str, meta: dict | None = None) -> dict:
    """Respuesta de error (para exception handlers globales)."""
    return {"data": None, "error": message, "meta": meta or {}}
