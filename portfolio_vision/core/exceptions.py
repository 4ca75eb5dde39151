"""
Taxonomía de errores del motor de persistencia.

- Unauthenticated     → no hay tenant activo (HTTP 401)
- NotFound            → id inexistente en lectura/actualización (HTTP 404)
- Conflict            → colisión de clave natural en un update (HTTP 409)
- ValidationError     → fila/fecha/importe mal formado (HTTP 422)
- StorageUnavailable  → fallo de E/S del backend, reintentable (HTTP 503)

Los deletes de ids inexistentes NO lanzan: son no-ops.
La analítica nunca lanza: la ausencia de datos se expresa con ceros/listas vacías.
"""


class PortfolioVisionError(Exception):
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class Unauthenticated(PortfolioVisionError):
    status_code = 401

    def __init__(self, message: str = "No hay un tenant autenticado en la sesión") -> None:
        super().__init__(message)


class NotFound(PortfolioVisionError):
    status_code = 404

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} no encontrado")


class Conflict(PortfolioVisionError):
    status_code = 409

    def __init__(self, entity: str, key: str) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity}: ya existe un registro con la clave {key}")


class ValidationError(PortfolioVisionError):
    status_code = 422


class StorageUnavailable(PortfolioVisionError):
    status_code = 503
    retryable = True

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Almacenamiento no disponible en {operation}{suffix}")
