"""
Servicios de negocio para el módulo de Gastos (Bills)

- BillService: registro de facturas de proveedor con ingreso de inventario,
  pagos, edición de líneas, anulación y notas débito.
"""

from sqlalchemy.orm import Session
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID
from datetime import date
import logging

from app.common.exceptions import ConflictError, ValidationError
from app.common.transactions import atomic
from app.core.config import settings
from app.dependencies.userDependencies import Actor
from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditSink, snapshot
from app.modules.billing.documents import DOCUMENT_FIELDS, DocumentResult, DocumentService, apply_status_filter
from app.modules.billing.states import DocumentFamily, OPEN_STATUSES
from app.modules.bills.models import Bill, BillLineItem, BillDocumentKind, DebitNote
from app.modules.bills.schemas import BillCreate, BillFilters, BillLineItemCreate, BillList, DebitNoteCreate
from app.modules.contacts.service import ContactService
from app.modules.products.service import ProductService
from app.modules.taxes.calculator import DocumentDraft, quantize_money

logger = logging.getLogger(__name__)


class BillService(DocumentService):
    """Servicio para facturas de proveedor"""

    family = DocumentFamily.PAYABLE

    def __init__(self, db: Session, audit_sink: Optional[AuditSink] = None):
        super().__init__(db, audit_sink)
        self.contacts = ContactService(db)
        self.products = ProductService(db)

    def build_lines(self, bill: Bill, items: List[BillLineItemCreate]) -> Tuple[DocumentDraft, List[BillLineItem]]:
        draft = self.calculator.new_draft(bill.tax_rate)
        bonus_flags = []

        for item in items:
            if item.product_id is not None:
                product = self.products.get_product_by_id(item.product_id)
                unit_price = item.unit_price if item.unit_price is not None else product.price_base
                description = item.description or product.name
            else:
                unit_price = item.unit_price or Decimal("0")
                description = item.description
            if item.is_bonus:
                unit_price = Decimal("0")

            self.calculator.add_line(draft, item.product_id, item.quantity, unit_price, description=description)
            bonus_flags.append(item.is_bonus)

        self.calculator.finalize(draft)

        lines = [
            BillLineItem(
                position=position,
                product_id=line.product_id,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                is_bonus=is_bonus,
                base_amount=line.base_amount,
                line_subtotal=line.line_subtotal
            )
            for position, (line, is_bonus) in enumerate(zip(draft.lines, bonus_flags))
        ]
        return draft, lines

    def create_bill(self, bill_data: BillCreate, actor: Actor) -> DocumentResult:
        """
        Registrar factura de proveedor

        Un Recibo sin condición de pago se considera de contado.
        """
        self.contacts.require_provider(bill_data.supplier_id)

        duplicate = self.db.query(Bill).filter(
            Bill.supplier_id == bill_data.supplier_id,
            Bill.number == bill_data.number
        ).first()
        if duplicate:
            raise ConflictError(
                f"Ya existe la factura {bill_data.number} de este proveedor",
                {"bill_id": str(duplicate.id)}
            )

        payment_term_id = bill_data.payment_term_id
        if payment_term_id is None and bill_data.document_kind == BillDocumentKind.RECEIPT:
            payment_term_id = self.terms.cash_term().id
        term, due_date = self.resolve_terms(payment_term_id, bill_data.issue_date, bill_data.due_date)

        with atomic(self.db, "create_bill"):
            bill = Bill(
                supplier_id=bill_data.supplier_id,
                payment_term_id=term.id if term else None,
                created_by=actor.user_id,
                number=bill_data.number,
                document_kind=bill_data.document_kind,
                purchase_order_ref=bill_data.purchase_order_ref,
                issue_date=bill_data.issue_date,
                due_date=due_date,
                currency=bill_data.currency,
                tax_rate=bill_data.tax_rate,
                description=bill_data.description
            )
            draft, lines = self.build_lines(bill, bill_data.items)
            bill.line_items = lines
            self.apply_draft(bill, draft)
            self.db.add(bill)
            stock = self.finish_creation(bill, term, actor, bill_data.payment_method)

        logger.info(f"Factura de proveedor {bill.number} registrada: total {bill.total}, estado {bill.status.value}")
        warnings = self.record_creation(bill, actor)
        return DocumentResult(bill, stock, warnings)

    def get_bill_by_id(self, bill_id: UUID) -> Bill:
        return self.get_document(bill_id)

    def get_bills(
        self,
        filters: BillFilters,
        limit: int = 100,
        offset: int = 0,
        today: Optional[date] = None
    ) -> BillList:
        today = today or date.today()
        query = self.db.query(Bill)
        if filters.supplier_id:
            query = query.filter(Bill.supplier_id == filters.supplier_id)
        if filters.start_date:
            query = query.filter(Bill.issue_date >= filters.start_date)
        if filters.end_date:
            query = query.filter(Bill.issue_date <= filters.end_date)

        counts = self.count_by_status(query, today)
        if filters.status:
            query = apply_status_filter(query, Bill, filters.status, today)

        total = query.count()
        bills = query.order_by(Bill.issue_date.desc(), Bill.created_at.desc()).offset(offset).limit(limit).all()
        return BillList(bills=bills, total=total, limit=limit, offset=offset, counts_by_status=counts)

    def update_bill_lines(self, bill_id: UUID, items: List[BillLineItemCreate], actor: Actor) -> DocumentResult:
        bill = self.get_bill_by_id(bill_id)
        if bill.debit_notes:
            raise ConflictError(
                "La factura tiene notas débito asociadas; sus líneas no se pueden reemplazar",
                {"debit_notes": len(bill.debit_notes)}
            )
        return self.replace_lines(bill_id, items, actor)

    def annul_bill(self, bill_id: UUID, reason: str, actor: Actor) -> DocumentResult:
        return self.annul(bill_id, reason, actor)

    # ===== DEBIT NOTES =====

    def create_debit_note(self, note_data: DebitNoteCreate, actor: Actor, today: Optional[date] = None) -> DocumentResult:
        """
        Registrar nota débito del proveedor

        Si referencia una factura abierta, su total y saldo aumentan en el
        total de la nota. Una factura pagada o anulada no la acepta.
        """
        today = today or date.today()
        self.contacts.require_provider(note_data.supplier_id)

        duplicate = self.db.query(DebitNote).filter(
            DebitNote.supplier_id == note_data.supplier_id,
            DebitNote.number == note_data.number
        ).first()
        if duplicate:
            raise ConflictError(f"Ya existe la nota débito {note_data.number} de este proveedor")

        before = None
        with atomic(self.db, "create_debit_note"):
            bill = None
            if note_data.bill_id:
                bill = self.ledger.lock_document(note_data.bill_id)
                if bill.supplier_id != note_data.supplier_id:
                    raise ValidationError(
                        "La factura no pertenece al proveedor de la nota débito",
                        {"bill_id": str(bill.id)}
                    )
                if bill.status not in OPEN_STATUSES:
                    raise ConflictError(
                        f"No se puede aplicar una nota débito a una factura en estado {bill.status.value}",
                        {"bill_id": str(bill.id), "status": bill.status.value}
                    )
                before = snapshot(bill, DOCUMENT_FIELDS)

            if note_data.tax_rate is not None:
                rate = note_data.tax_rate
            elif bill is not None:
                rate = Decimal(bill.tax_rate)
            else:
                rate = settings.DEFAULT_TAX_RATE
            subtotal = quantize_money(note_data.subtotal)
            tax_amount = quantize_money(subtotal * rate / Decimal("100"))

            note = DebitNote(
                supplier_id=note_data.supplier_id,
                bill_id=bill.id if bill else None,
                number=note_data.number,
                reason=note_data.reason,
                note_date=note_data.note_date,
                subtotal=subtotal,
                tax_amount=tax_amount,
                total=subtotal + tax_amount,
                created_by=actor.user_id
            )
            self.db.add(note)

            if bill is not None:
                bill.subtotal = Decimal(bill.subtotal) + subtotal
                bill.tax_amount = Decimal(bill.tax_amount) + tax_amount
                bill.total = Decimal(bill.total) + note.total
                bill.outstanding_balance = Decimal(bill.outstanding_balance) + note.total
                target = self.state_machine.classify(bill.total, bill.outstanding_balance, bill.due_date, today)
                bill.status = self.state_machine.transition(bill.status, target)
            self.db.flush()

        logger.info(f"Nota débito {note.number} registrada por {note.total}" + (f" sobre factura {bill.number}" if bill else ""))
        warnings = []
        warning = self.audit.record(
            actor, AuditAction.INSERT, "debit_notes", note.id, None,
            snapshot(note, ("bill_id", "number", "reason", "subtotal", "tax_amount", "total"))
        )
        if warning:
            warnings.append(warning)
        if bill is not None:
            after = snapshot(bill, DOCUMENT_FIELDS)
            after["debit_note_id"] = str(note.id)
            warning = self.audit.record(actor, AuditAction.UPDATE, "bills", bill.id, before, after)
            if warning:
                warnings.append(warning)
        return DocumentResult(note, None, warnings)

    def get_debit_notes(self, bill_id: Optional[UUID] = None, supplier_id: Optional[UUID] = None) -> List[DebitNote]:
        query = self.db.query(DebitNote)
        if bill_id:
            query = query.filter(DebitNote.bill_id == bill_id)
        if supplier_id:
            query = query.filter(DebitNote.supplier_id == supplier_id)
        return query.order_by(DebitNote.note_date.desc()).all()
