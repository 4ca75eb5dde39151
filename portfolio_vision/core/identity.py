"""
Contexto de identidad: quién es el tenant activo y qué backend usa.
La autenticación en sí es externa; aquí solo se consume el resultado.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from portfolio_vision.core.exceptions import Unauthenticated


class StorageMode(str, Enum):
    """Backend activo para la sesión: exactamente uno a la vez, sin sincronización."""

    LOCAL = "local"
    REMOTE = "remote"


class IdentityContext(Protocol):
    def current_tenant_id(self) -> str | None: ...

    def storage_mode(self) -> StorageMode: ...


@dataclass(frozen=True)
class StaticIdentity:
    """Identidad fija por petición (la API la construye a partir del JWT)."""

    tenant_id: str | None
    mode: StorageMode = StorageMode.LOCAL

    def current_tenant_id(self) -> str | None:
        return self.tenant_id

    def storage_mode(self) -> StorageMode:
        return self.mode


def require_tenant(identity: IdentityContext) -> str:
    """Devuelve el tenant activo o lanza Unauthenticated si no hay sesión."""
    tenant_id = identity.current_tenant_id()
    if not tenant_id:
        raise Unauthenticated()
    return tenant_id
