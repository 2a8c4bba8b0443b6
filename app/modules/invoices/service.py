from sqlalchemy.orm import Session
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID
from datetime import date
import logging

from app.common.exceptions import ValidationError
from app.common.transactions import atomic
from app.core.config import settings
from app.dependencies.userDependencies import Actor
from app.modules.audit.service import AuditSink
from app.modules.billing.documents import DocumentResult, DocumentService, apply_status_filter
from app.modules.billing.states import DocumentFamily
from app.modules.contacts.service import ContactService
from app.modules.fiscal.clave import build_consecutive
from app.modules.invoices.models import Invoice, InvoiceLineItem, InvoiceSequence
from app.modules.invoices.schemas import InvoiceCreate, InvoiceFilters, InvoiceLineItemCreate, InvoiceList
from app.modules.pricing.models import DiscountKind
from app.modules.pricing.service import PricingResolver
from app.modules.products.service import ProductService
from app.modules.taxes.calculator import DocumentDraft

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "FE-"


class InvoiceService(DocumentService):
    family = DocumentFamily.RECEIVABLE

    def __init__(self, db: Session, audit_sink: Optional[AuditSink] = None):
        super().__init__(db, audit_sink)
        self.pricing = PricingResolver(db)
        self.contacts = ContactService(db)
        self.products = ProductService(db)

    def generate_invoice_number(self) -> Tuple[str, str]:
        """Siguiente número interno (FE-000001) y su consecutivo de Hacienda"""
        sequence = self.db.query(InvoiceSequence).filter(
            InvoiceSequence.prefix == INVOICE_PREFIX
        ).with_for_update().first()

        if not sequence:
            sequence = InvoiceSequence(prefix=INVOICE_PREFIX, current_number=0)
            self.db.add(sequence)

        sequence.current_number += 1
        self.db.flush()
        number = sequence.current_number
        return f"{INVOICE_PREFIX}{number:06d}", build_consecutive(number)

    def build_lines(self, invoice: Invoice, items: List[InvoiceLineItemCreate]) -> Tuple[DocumentDraft, List[InvoiceLineItem]]:
        """
        Resuelve precio, tarifa y snapshot de producto de cada línea y
        calcula los totales del documento.
        """
        draft = self.calculator.new_draft(invoice.tax_rate)
        snapshots = []

        for index, item in enumerate(items):
            catalog_price = None
            discount_kind = DiscountKind.NONE
            fiscal_code = None
            unit_of_measure = "Unid"
            tax_rate = item.tax_rate

            if item.product_id is not None:
                product = self.products.get_product_by_id(item.product_id)
                catalog_price = Decimal(product.price_sale)
                if item.unit_price is None:
                    unit_price, discount_kind = self.pricing.resolve_price(
                        invoice.customer_id, product.id, catalog_price
                    )
                else:
                    unit_price = item.unit_price
                if tax_rate is None:
                    tax_rate = product.tax_rate
                description = item.description or product.name
                fiscal_code = product.fiscal_code
                unit_of_measure = product.unit_of_measure
            else:
                if item.unit_price is None or not item.description:
                    raise ValidationError(
                        "Las líneas sin producto requieren descripción y precio unitario",
                        {"line_index": index}
                    )
                unit_price = item.unit_price
                description = item.description

            self.calculator.add_line(draft, item.product_id, item.quantity, unit_price, tax_rate, description)
            snapshots.append((catalog_price, discount_kind, fiscal_code, unit_of_measure))

        self.calculator.finalize(draft)

        lines = []
        for position, (line, (catalog_price, discount_kind, fiscal_code, unit_of_measure)) in enumerate(zip(draft.lines, snapshots)):
            lines.append(InvoiceLineItem(
                position=position,
                product_id=line.product_id,
                description=line.description,
                fiscal_code=fiscal_code,
                unit_of_measure=unit_of_measure,
                catalog_price=catalog_price,
                discount_kind=discount_kind.value,
                quantity=line.quantity,
                unit_price=line.unit_price,
                tax_rate=line.tax_rate,
                base_amount=line.base_amount,
                tax_amount=line.tax_amount,
                line_subtotal=line.line_subtotal
            ))
        return draft, lines

    def create_invoice(self, invoice_data: InvoiceCreate, actor: Actor) -> DocumentResult:
        """
        Registrar una factura de venta

        Documento, líneas, inventario y (si es contado) el pago implícito se
        escriben en una sola transacción; la auditoría va después del commit.
        """
        self.contacts.require_client(invoice_data.customer_id)
        term, due_date = self.resolve_terms(
            invoice_data.payment_term_id, invoice_data.issue_date, invoice_data.due_date
        )

        with atomic(self.db, "create_invoice"):
            number, consecutive = self.generate_invoice_number()
            invoice = Invoice(
                customer_id=invoice_data.customer_id,
                payment_term_id=term.id if term else None,
                created_by=actor.user_id,
                number=number,
                consecutive=consecutive,
                issue_date=invoice_data.issue_date,
                due_date=due_date,
                currency=invoice_data.currency,
                payment_method=invoice_data.payment_method,
                tax_rate=invoice_data.tax_rate if invoice_data.tax_rate is not None else settings.DEFAULT_TAX_RATE,
                description=invoice_data.description
            )
            draft, lines = self.build_lines(invoice, invoice_data.items)
            invoice.line_items = lines
            self.apply_draft(invoice, draft)
            self.db.add(invoice)
            stock = self.finish_creation(invoice, term, actor, invoice_data.payment_method)

        logger.info(
            f"Factura {invoice.number} creada: total {invoice.total} {invoice.currency}, estado {invoice.status.value}"
        )
        warnings = self.record_creation(invoice, actor)
        return DocumentResult(invoice, stock, warnings)

    def get_invoice_by_id(self, invoice_id: UUID) -> Invoice:
        return self.get_document(invoice_id)

    def get_invoices(
        self,
        filters: InvoiceFilters,
        limit: int = 100,
        offset: int = 0,
        today: Optional[date] = None
    ) -> InvoiceList:
        today = today or date.today()
        query = self.db.query(Invoice)
        if filters.customer_id:
            query = query.filter(Invoice.customer_id == filters.customer_id)
        if filters.start_date:
            query = query.filter(Invoice.issue_date >= filters.start_date)
        if filters.end_date:
            query = query.filter(Invoice.issue_date <= filters.end_date)

        counts = self.count_by_status(query, today)
        if filters.status:
            query = apply_status_filter(query, Invoice, filters.status, today)

        total = query.count()
        invoices = query.order_by(Invoice.issue_date.desc(), Invoice.number.desc()).offset(offset).limit(limit).all()
        return InvoiceList(invoices=invoices, total=total, limit=limit, offset=offset, counts_by_status=counts)

    def update_invoice_lines(self, invoice_id: UUID, items: List[InvoiceLineItemCreate], actor: Actor) -> DocumentResult:
        return self.replace_lines(invoice_id, items, actor)

    def annul_invoice(self, invoice_id: UUID, reason: str, actor: Actor) -> DocumentResult:
        return self.annul(invoice_id, reason, actor)
