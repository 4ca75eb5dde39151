"""
Capa de seguridad: JWT HS256 emitido por el proveedor de identidad.
El claim `sub` es el id del tenant; todas las filas se filtran por él.

NUNCA loguear ni exponer SECRET_KEY ni los tokens completos.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from portfolio_vision.core.config import settings

ALGORITHM = "HS256"


def create_access_token(tenant_id: str, expires_minutes: int | None = None) -> str:
    """Genera un JWT para el tenant con expiración ACCESS_TOKEN_EXPIRE_MINUTES."""
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"sub": tenant_id, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> str:
    """
    Valida el JWT y retorna el tenant (claim sub).
    Lanza ValueError si el token es inválido, expirado o no tiene subject.
    """
    try:
        # Los tokens de Supabase llevan aud="authenticated"; no se valida aquí
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise ValueError(f"Token inválido: {exc}") from exc

    sub = payload.get("sub")
    if not sub or not isinstance(sub, str):
        raise ValueError("Token sin subject")
    return sub
