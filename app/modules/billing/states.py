"""
Máquina de estados de documentos de cobro y pago.

Estados: pending, partial, paid, overdue, annulled. Aplica por igual a
facturas de venta (cuentas por cobrar) y facturas de proveedor (cuentas por
pagar); la familia solo cambia el signo del inventario y la forma de
calcular impuestos.

``overdue`` es una clasificación por fecha: ``effective_status`` la deriva al
momento de lectura y la copia persistida la mantiene el job de
reconciliación (``OverdueReconciler``).
"""
from datetime import date
from decimal import Decimal
from typing import Optional
import enum

from app.common.exceptions import IllegalTransitionError, ValidationError
from app.core.config import settings


class DocumentStatus(enum.Enum):
    PENDING = "pending"      # Pendiente
    PARTIAL = "partial"      # Parcial
    PAID = "paid"            # Pagada
    OVERDUE = "overdue"      # Vencida
    ANNULLED = "annulled"    # Anulada


class DocumentFamily(enum.Enum):
    RECEIVABLE = "receivable"  # Facturas de venta
    PAYABLE = "payable"        # Facturas de proveedor


class FiscalStatus(enum.Enum):
    """Estado del envío a Hacienda, independiente del estado de pago."""
    NOT_SUBMITTED = "not_submitted"
    SUBMITTED = "submitted"   # Enviado, esperando respuesta
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"         # Gateway no disponible


ALLOWED_TRANSITIONS = {
    DocumentStatus.PENDING: {DocumentStatus.PARTIAL, DocumentStatus.PAID, DocumentStatus.OVERDUE, DocumentStatus.ANNULLED},
    DocumentStatus.PARTIAL: {DocumentStatus.PAID, DocumentStatus.OVERDUE, DocumentStatus.ANNULLED},
    DocumentStatus.OVERDUE: {DocumentStatus.PARTIAL, DocumentStatus.PAID, DocumentStatus.ANNULLED},
    DocumentStatus.PAID: {DocumentStatus.ANNULLED},
    DocumentStatus.ANNULLED: set(),
}

# Estados que todavía aceptan pagos
OPEN_STATUSES = (DocumentStatus.PENDING, DocumentStatus.PARTIAL, DocumentStatus.OVERDUE)

# Pasos que solo el job de reconciliación ejecuta (la fecha de vencimiento cambió)
_RECONCILIATION_TRANSITIONS = {
    (DocumentStatus.OVERDUE, DocumentStatus.PENDING),
}


class BillingStateMachine:
    """Clasifica documentos por saldo y fecha y valida transiciones."""

    def __init__(self, epsilon: Optional[Decimal] = None):
        self.epsilon = Decimal(str(epsilon)) if epsilon is not None else settings.PAID_BALANCE_EPSILON

    def is_settled(self, balance: Decimal) -> bool:
        return Decimal(balance) <= self.epsilon

    def classify(
        self,
        total: Decimal,
        balance: Decimal,
        due_date: Optional[date] = None,
        today: Optional[date] = None
    ) -> DocumentStatus:
        """Estado que corresponde a un documento no anulado."""
        if Decimal(balance) < 0:
            raise ValidationError("El saldo pendiente no puede ser negativo", {"balance": str(balance)})
        if self.is_settled(balance):
            return DocumentStatus.PAID
        if due_date is not None and today is not None and due_date < today:
            return DocumentStatus.OVERDUE
        if Decimal(balance) < Decimal(total):
            return DocumentStatus.PARTIAL
        return DocumentStatus.PENDING

    def can_transition(self, current: DocumentStatus, target: DocumentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[current]

    def transition(
        self,
        current: DocumentStatus,
        target: DocumentStatus,
        reason: Optional[str] = None,
        reconciliation: bool = False
    ) -> DocumentStatus:
        """
        Valida el paso ``current -> target`` y devuelve el nuevo estado.

        Quedarse en el mismo estado es válido. Anular un documento pagado es
        una corrección administrativa y exige motivo.
        """
        if current == target:
            return current
        if reconciliation and (current, target) in _RECONCILIATION_TRANSITIONS:
            return target
        if not self.can_transition(current, target):
            raise IllegalTransitionError(current.value, target.value)
        if current == DocumentStatus.PAID and target == DocumentStatus.ANNULLED and not (reason and reason.strip()):
            raise IllegalTransitionError(
                current.value, target.value, "anular un documento pagado requiere un motivo"
            )
        return target

    def effective_status(self, status: DocumentStatus, due_date: Optional[date], today: Optional[date] = None) -> DocumentStatus:
        """Estado visible: pending/partial vencidos se muestran como overdue."""
        today = today or date.today()
        if status in (DocumentStatus.PENDING, DocumentStatus.PARTIAL) and due_date is not None and due_date < today:
            return DocumentStatus.OVERDUE
        return status
