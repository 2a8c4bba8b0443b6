"""
Libro de pagos.

Es el único punto que disminuye el saldo pendiente de un documento. Cada
pago bloquea la fila del documento (SELECT ... FOR UPDATE) y además depende
de la columna ``version``: dos escritores concurrentes no pueden aplicar
pagos sobre el mismo saldo.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.common.exceptions import ConflictError, IllegalTransitionError, NotFoundError, ValidationError
from app.common.transactions import atomic
from app.dependencies.userDependencies import Actor
from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditRecorder, snapshot
from app.modules.billing.models import PaymentMethod
from app.modules.billing.states import BillingStateMachine, DocumentFamily, DocumentStatus
from app.modules.bills.models import Bill, BillPayment
from app.modules.invoices.models import Invoice, Payment

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

BALANCE_FIELDS = ("status", "total", "outstanding_balance", "version")


@dataclass(frozen=True)
class LedgerBinding:
    """Tablas involucradas en los pagos de una familia de documentos."""
    document_model: type
    payment_model: type
    document_fk: str
    table_name: str
    entity_name: str


BINDINGS = {
    DocumentFamily.RECEIVABLE: LedgerBinding(Invoice, Payment, "invoice_id", "invoices", "Factura"),
    DocumentFamily.PAYABLE: LedgerBinding(Bill, BillPayment, "bill_id", "bills", "Factura de proveedor"),
}


@dataclass
class PaymentResult:
    payment: object
    new_balance: Decimal
    new_status: DocumentStatus
    warnings: List[str] = field(default_factory=list)


class PaymentLedger:
    def __init__(
        self,
        db: Session,
        family: DocumentFamily,
        audit: Optional[AuditRecorder] = None,
        state_machine: Optional[BillingStateMachine] = None
    ):
        self.db = db
        self.family = family
        self.binding = BINDINGS[family]
        self.audit = audit or AuditRecorder(db)
        self.state_machine = state_machine or BillingStateMachine()

    def lock_document(self, document_id: UUID):
        model = self.binding.document_model
        document = (
            self.db.query(model)
            .filter(model.id == document_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if document is None:
            raise NotFoundError(self.binding.entity_name, document_id)
        return document

    def apply_payment(
        self,
        document_id: UUID,
        amount: Decimal,
        actor: Actor,
        payment_date: Optional[date] = None,
        method: PaymentMethod = PaymentMethod.CASH,
        currency: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None
    ) -> PaymentResult:
        """
        Registra un pago y reclasifica el documento.

        Raises:
            ValidationError: monto <= 0, mayor al saldo o en otra moneda
            ConflictError: documento anulado/pagado o modificado en paralelo
        """
        amount = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
        if amount <= 0:
            raise ValidationError("El monto del pago debe ser mayor a 0", {"amount": str(amount)})

        today = today or date.today()
        with atomic(self.db, "apply_payment"):
            document = self.lock_document(document_id)

            if document.status == DocumentStatus.ANNULLED:
                raise IllegalTransitionError(
                    document.status.value, DocumentStatus.PAID.value, "no se pueden registrar pagos en un documento anulado"
                )
            balance = Decimal(document.outstanding_balance)
            if document.status == DocumentStatus.PAID or self.state_machine.is_settled(balance):
                raise ConflictError(
                    "El documento ya está pagado",
                    {"document_id": str(document_id), "outstanding_balance": str(balance)}
                )
            if amount > balance:
                raise ValidationError(
                    f"El pago de {amount} excede el saldo pendiente de {balance}",
                    {"amount": str(amount), "outstanding_balance": str(balance)}
                )
            currency = currency or document.currency
            if currency != document.currency:
                raise ValidationError(
                    f"El pago debe registrarse en la moneda del documento ({document.currency})",
                    {"currency": currency, "document_currency": document.currency}
                )

            before = snapshot(document, BALANCE_FIELDS)
            new_balance = balance - amount
            target = self.state_machine.classify(document.total, new_balance, document.due_date, today)
            new_status = self.state_machine.transition(document.status, target)

            payment = self.binding.payment_model(
                amount=amount,
                method=method,
                currency=currency,
                reference=reference,
                payment_date=payment_date or today,
                notes=notes,
                created_by=actor.user_id,
                **{self.binding.document_fk: document.id}
            )
            self.db.add(payment)
            document.outstanding_balance = new_balance
            document.status = new_status
            self.db.flush()

        logger.info(
            f"Pago de {amount} aplicado a {self.binding.table_name}/{document_id}: "
            f"saldo {balance} -> {new_balance}, estado {new_status.value}"
        )
        after = snapshot(document, BALANCE_FIELDS)
        after["payment_id"] = str(payment.id)
        after["amount"] = str(amount)
        warning = self.audit.record(actor, AuditAction.PAYMENT, self.binding.table_name, document.id, before, after)
        return PaymentResult(payment, new_balance, new_status, [warning] if warning else [])

    def record_full_payment(self, document, actor: Actor, method: PaymentMethod = PaymentMethod.CASH):
        """
        Pago implícito de un documento de contado.

        Se ejecuta dentro de la transacción de creación; no hace commit.
        """
        total = Decimal(document.total)
        payment = None
        if total > 0:
            payment = self.binding.payment_model(
                amount=total,
                method=method,
                currency=document.currency,
                payment_date=document.issue_date,
                notes="Pago de contado",
                is_automatic=True,
                created_by=actor.user_id,
                **{self.binding.document_fk: document.id}
            )
            self.db.add(payment)
        document.outstanding_balance = Decimal("0")
        document.status = self.state_machine.transition(document.status, DocumentStatus.PAID)
        return payment

    def list_payments(self, document_id: UUID) -> list:
        model = self.binding.payment_model
        fk = getattr(model, self.binding.document_fk)
        return self.db.query(model).filter(fk == document_id).order_by(model.payment_date, model.created_at).all()
