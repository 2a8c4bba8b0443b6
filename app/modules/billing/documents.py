"""
Operaciones compartidas por facturas de venta y facturas de proveedor.

Cada servicio concreto fija la familia (``DocumentFamily``) y construye sus
líneas; el resto del ciclo de vida (condiciones de pago, contado, pagos,
edición de líneas, anulación y auditoría) vive aquí.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.common.exceptions import ConflictError, NotFoundError
from app.common.transactions import atomic, retry_on_conflict
from app.dependencies.userDependencies import Actor
from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditRecorder, AuditSink, snapshot
from app.modules.billing.ledger import BINDINGS, PaymentLedger, PaymentResult
from app.modules.billing.models import PaymentMethod, PaymentTerm
from app.modules.billing.schemas import PaymentCreate
from app.modules.billing.service import PaymentTermService
from app.modules.billing.states import BillingStateMachine, DocumentFamily, DocumentStatus
from app.modules.inventory.reconciler import StockEffect, StockReconciler, StockReconciliationResult
from app.modules.taxes.calculator import DocumentDraft, LineItemCalculator

logger = logging.getLogger(__name__)

DOCUMENT_FIELDS = (
    "status", "issue_date", "due_date", "currency", "tax_rate",
    "subtotal", "tax_amount", "total", "outstanding_balance", "version",
)
LINE_FIELDS = ("product_id", "description", "quantity", "unit_price", "base_amount", "line_subtotal")


@dataclass
class DocumentResult:
    document: Any
    stock: Optional[StockReconciliationResult] = None
    warnings: List[str] = field(default_factory=list)


def apply_status_filter(query, model, status: DocumentStatus, today: date):
    """Filtra por estado visible (overdue incluye pending/partial vencidos)."""
    open_statuses = [DocumentStatus.PENDING, DocumentStatus.PARTIAL]
    if status == DocumentStatus.OVERDUE:
        return query.filter(or_(
            model.status == DocumentStatus.OVERDUE,
            and_(model.status.in_(open_statuses), model.due_date < today)
        ))
    if status in open_statuses:
        return query.filter(model.status == status, or_(model.due_date.is_(None), model.due_date >= today))
    return query.filter(model.status == status)


class DocumentService:
    family: DocumentFamily

    def __init__(self, db: Session, audit_sink: Optional[AuditSink] = None):
        self.db = db
        self.binding = BINDINGS[self.family]
        self.state_machine = BillingStateMachine()
        self.calculator = LineItemCalculator(self.family)
        self.stock = StockReconciler(db)
        self.audit = AuditRecorder(db, audit_sink)
        self.ledger = PaymentLedger(db, self.family, audit=self.audit, state_machine=self.state_machine)
        self.terms = PaymentTermService(db)

    # ===== Lectura =====

    def get_document(self, document_id: UUID):
        model = self.binding.document_model
        document = self.db.query(model).filter(model.id == document_id).first()
        if not document:
            raise NotFoundError(self.binding.entity_name, document_id)
        return document

    def count_by_status(self, query, today: Optional[date] = None) -> Dict[str, int]:
        today = today or date.today()
        model = self.binding.document_model
        return {
            status.value: apply_status_filter(query, model, status, today).count()
            for status in DocumentStatus
        }

    def list_payments(self, document_id: UUID) -> list:
        self.get_document(document_id)
        return self.ledger.list_payments(document_id)

    # ===== Creación =====

    def resolve_terms(self, payment_term_id: Optional[UUID], issue_date: date, due_date: Optional[date]) -> Tuple[Optional[PaymentTerm], Optional[date]]:
        return self.terms.resolve(payment_term_id, issue_date, due_date)

    def apply_draft(self, document, draft: DocumentDraft) -> None:
        document.tax_rate = draft.tax_rate
        document.subtotal = draft.subtotal
        document.tax_amount = draft.tax_amount
        document.total = draft.total

    def finish_creation(
        self,
        document,
        term: Optional[PaymentTerm],
        actor: Actor,
        method: PaymentMethod = PaymentMethod.CASH
    ) -> StockReconciliationResult:
        """Descarga/ingresa inventario y, si es contado, registra el pago implícito."""
        document.outstanding_balance = document.total
        document.status = DocumentStatus.PENDING
        self.db.flush()

        stock = self.stock.apply_stock_delta(
            self.family, document.line_items, StockEffect.CONSUME,
            reference=self.stock_reference(document), user_id=actor.user_id
        )
        if term is not None and term.is_cash:
            self.ledger.record_full_payment(document, actor, method)
        return stock

    def record_creation(self, document, actor: Actor) -> List[str]:
        after = snapshot(document, DOCUMENT_FIELDS)
        after["lines"] = [snapshot(line, LINE_FIELDS) for line in document.line_items]
        warning = self.audit.record(actor, AuditAction.INSERT, self.binding.table_name, document.id, None, after)
        return [warning] if warning else []

    def stock_reference(self, document) -> str:
        return f"{self.binding.table_name}:{document.number}"

    # ===== Pagos =====

    def add_payment(self, document_id: UUID, payment_data: PaymentCreate, actor: Actor) -> PaymentResult:
        return retry_on_conflict(
            self.ledger.apply_payment,
            document_id,
            payment_data.amount,
            actor,
            payment_date=payment_data.payment_date,
            method=payment_data.method,
            currency=payment_data.currency,
            reference=payment_data.reference,
            notes=payment_data.notes
        )

    # ===== Edición de líneas =====

    def build_lines(self, document, items) -> Tuple[DocumentDraft, list]:
        raise NotImplementedError

    def replace_lines(self, document_id: UUID, items, actor: Actor, today: Optional[date] = None) -> DocumentResult:
        """
        Reemplaza las líneas de un documento sin pagos.

        El saldo vuelve a ser el nuevo total; el inventario de las líneas
        anteriores se restituye y se aplica el de las nuevas.
        """
        today = today or date.today()
        with atomic(self.db, "replace_lines"):
            document = self.ledger.lock_document(document_id)
            if document.status not in (DocumentStatus.PENDING, DocumentStatus.OVERDUE) or document.payments:
                raise ConflictError(
                    "Solo se pueden editar las líneas de documentos pendientes sin pagos",
                    {"status": document.status.value, "payments": len(document.payments)}
                )

            before = snapshot(document, DOCUMENT_FIELDS)
            before["lines"] = [snapshot(line, LINE_FIELDS) for line in document.line_items]
            reference = self.stock_reference(document)

            stock = self.stock.apply_stock_delta(
                self.family, list(document.line_items), StockEffect.RESTORE,
                reference=reference, user_id=actor.user_id
            )

            draft, new_lines = self.build_lines(document, items)
            document.line_items.clear()
            self.db.flush()
            document.line_items.extend(new_lines)
            self.apply_draft(document, draft)
            document.outstanding_balance = document.total
            target = self.state_machine.classify(document.total, document.outstanding_balance, document.due_date, today)
            document.status = self.state_machine.transition(document.status, target)
            self.db.flush()

            consumed = self.stock.apply_stock_delta(
                self.family, new_lines, StockEffect.CONSUME,
                reference=reference, user_id=actor.user_id
            )
            stock.outcomes.extend(consumed.outcomes)

        logger.info(f"Líneas reemplazadas en {self.binding.table_name}/{document_id}: nuevo total {document.total}")
        after = snapshot(document, DOCUMENT_FIELDS)
        after["lines"] = [snapshot(line, LINE_FIELDS) for line in document.line_items]
        warning = self.audit.record(actor, AuditAction.UPDATE, self.binding.table_name, document.id, before, after)
        return DocumentResult(document, stock, [warning] if warning else [])

    # ===== Anulación =====

    def annul(self, document_id: UUID, reason: str, actor: Actor) -> DocumentResult:
        """
        Anula el documento: saldo en cero y reversión de inventario.

        Anular un documento ya anulado no tiene efecto.
        """
        with atomic(self.db, "annul_document"):
            document = self.ledger.lock_document(document_id)
            if document.status == DocumentStatus.ANNULLED:
                logger.info(f"{self.binding.table_name}/{document_id} ya estaba anulado")
                return DocumentResult(document, None, [])

            before = snapshot(document, DOCUMENT_FIELDS)
            new_status = self.state_machine.transition(document.status, DocumentStatus.ANNULLED, reason)

            stock = self.stock.apply_stock_delta(
                self.family, list(document.line_items), StockEffect.RESTORE,
                reference=self.stock_reference(document), user_id=actor.user_id
            )
            document.status = new_status
            document.outstanding_balance = Decimal("0")
            document.annulment_reason = reason
            document.annulled_at = datetime.now(timezone.utc)
            self.db.flush()

        logger.info(f"{self.binding.table_name}/{document_id} anulado: {reason}")
        after = snapshot(document, DOCUMENT_FIELDS)
        after["annulment_reason"] = reason
        warning = self.audit.record(actor, AuditAction.ANNUL, self.binding.table_name, document.id, before, after)
        return DocumentResult(document, stock, [warning] if warning else [])
