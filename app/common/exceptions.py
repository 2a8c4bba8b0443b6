"""
Jerarquía de excepciones tipadas del motor de facturación.

Cada excepción lleva un ``code`` legible por máquina, un mensaje que nombra
la regla violada y un diccionario ``details`` con datos estructurados. Los
handlers registrados en ``app.main`` las traducen a respuestas JSON:

    BillingError
    +-- ValidationError        (400)
    |   +-- FiscalValidationError
    +-- NotFoundError          (404)
    +-- ConflictError          (409)
    |   +-- IllegalTransitionError
    |   +-- ConcurrentModificationError
    +-- DependencyError        (503)
    +-- AuditWriteFailure      (nunca llega al cliente, se degrada a warning)
"""

from typing import Any, Dict, List, Optional


class BillingError(Exception):
    """Base de todos los errores de dominio."""

    code: str = "BILLING_ERROR"
    http_status: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(BillingError):
    """Entrada malformada o que viola una regla de negocio."""

    code = "VALIDATION_ERROR"
    http_status = 400


class FiscalValidationError(ValidationError):
    """El documento no cumple los requisitos de factura electrónica.

    ``issues`` enumera todos los problemas encontrados, no solo el primero.
    """

    code = "FISCAL_VALIDATION_ERROR"

    def __init__(self, issues: List[str]):
        self.issues = list(issues)
        super().__init__(
            f"El documento no puede enviarse a Hacienda: {len(self.issues)} problema(s)",
            {"issues": self.issues},
        )


class NotFoundError(BillingError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} no encontrado",
            {"entity": entity, "id": str(entity_id)},
        )


class ConflictError(BillingError):
    """Modificación concurrente o estado incompatible con la operación."""

    code = "CONFLICT"
    http_status = 409


class IllegalTransitionError(ConflictError):
    code = "ILLEGAL_TRANSITION"

    def __init__(self, current: str, requested: str, reason: Optional[str] = None):
        self.current = current
        self.requested = requested
        message = f"Transición no permitida: {current} -> {requested}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, {"current": current, "requested": requested})


class ConcurrentModificationError(ConflictError):
    """Otra transacción cambió la versión del documento entre la lectura y la escritura."""

    code = "CONCURRENT_MODIFICATION"


class DependencyError(BillingError):
    """Base de datos, inventario o gateway fiscal no disponible."""

    code = "DEPENDENCY_UNAVAILABLE"
    http_status = 503

    def __init__(self, dependency: str, message: str):
        self.dependency = dependency
        super().__init__(message, {"dependency": dependency})


class AuditWriteFailure(BillingError):
    code = "AUDIT_WRITE_FAILURE"
