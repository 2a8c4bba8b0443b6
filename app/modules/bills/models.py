"""
Modelos SQLAlchemy para el módulo de Gastos (Bills)

- Facturas de proveedor (Bills)
- Pagos de facturas (BillPayments)
- Notas débito (DebitNotes)

Integración con inventario:
- Bills registradas → incrementan stock + movimientos IN
- Bills anuladas → movimientos OUT por las mismas cantidades
"""

from app.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Numeric, Enum, Date, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from app.common.mixins import TimestampMixin, VersionedMixin
from app.modules.billing.states import BillingStateMachine, DocumentStatus
from app.modules.billing.models import PaymentMethod
import enum


class BillDocumentKind(enum.Enum):
    """Tipo de documento del proveedor"""
    INVOICE = "Factura"
    RECEIPT = "Recibo"     # Contado
    CREDIT = "Crédito"


class Bill(Base, TimestampMixin, VersionedMixin):
    """
    Factura de proveedor

    El impuesto se calcula una sola vez sobre el subtotal con tax_rate.
    """
    __tablename__ = "bills"

    id = Column(Uuid, primary_key=True, default=uuid4)
    supplier_id = Column(Uuid, ForeignKey("contacts.id"), nullable=False, index=True)
    payment_term_id = Column(Uuid, ForeignKey("payment_terms.id"), nullable=True)
    created_by = Column(String(100), nullable=False)

    number = Column(String(50), nullable=False)  # Número del documento del proveedor
    document_kind = Column(Enum(BillDocumentKind), nullable=False, default=BillDocumentKind.INVOICE)
    purchase_order_ref = Column(String(50), nullable=True)
    status = Column(Enum(DocumentStatus), nullable=False, default=DocumentStatus.PENDING, index=True)

    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True, index=True)

    description = Column(Text, nullable=True)
    currency = Column(String(3), nullable=False, default="CRC")
    tax_rate = Column(Numeric(5, 2), nullable=False, default=13)  # porcentaje_impuesto

    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    outstanding_balance = Column(Numeric(15, 2), nullable=False, default=0)

    annulment_reason = Column(Text, nullable=True)
    annulled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    supplier = relationship("Contact")
    payment_term = relationship("PaymentTerm")
    line_items = relationship(
        "BillLineItem", back_populates="bill",
        cascade="all, delete-orphan", order_by="BillLineItem.position"
    )
    payments = relationship("BillPayment", back_populates="bill", order_by="BillPayment.created_at")
    debit_notes = relationship("DebitNote", back_populates="bill")

    __table_args__ = (
        UniqueConstraint("supplier_id", "number", name="uq_bill_supplier_number"),
    )

    @property
    def paid_amount(self):
        return sum((payment.amount for payment in self.payments), 0)

    @property
    def effective_status(self) -> DocumentStatus:
        """Estado visible hoy: pending/partial vencidos se muestran como overdue"""
        return BillingStateMachine().effective_status(self.status, self.due_date)


class BillLineItem(Base, TimestampMixin):
    __tablename__ = "bill_line_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    bill_id = Column(Uuid, ForeignKey("bills.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=True)

    description = Column(String(200), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    is_bonus = Column(Boolean, nullable=False, default=False)  # es_bonificacion: precio 0
    base_amount = Column(Numeric(15, 2), nullable=False)
    line_subtotal = Column(Numeric(15, 2), nullable=False)  # quantity * unit_price, sin impuesto

    bill = relationship("Bill", back_populates="line_items")
    product = relationship("Product")


class BillPayment(Base, TimestampMixin):
    __tablename__ = "bill_payments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    bill_id = Column(Uuid, ForeignKey("bills.id"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False)
    currency = Column(String(3), nullable=False, default="CRC")
    reference = Column(String(100), nullable=True)
    payment_date = Column(Date, nullable=False, default=date.today)
    notes = Column(Text, nullable=True)
    is_automatic = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(100), nullable=True)

    bill = relationship("Bill", back_populates="payments")


class DebitNote(Base, TimestampMixin):
    """
    Nota débito del proveedor

    Si está asociada a una factura, aumenta su total y su saldo pendiente.
    """
    __tablename__ = "debit_notes"

    id = Column(Uuid, primary_key=True, default=uuid4)
    bill_id = Column(Uuid, ForeignKey("bills.id"), nullable=True, index=True)
    supplier_id = Column(Uuid, ForeignKey("contacts.id"), nullable=False, index=True)
    number = Column(String(50), nullable=False)  # Consecutivo del proveedor
    reason = Column(Text, nullable=False)
    note_date = Column(Date, nullable=False, default=date.today)

    subtotal = Column(Numeric(15, 2), nullable=False)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False)
    created_by = Column(String(100), nullable=True)

    bill = relationship("Bill", back_populates="debit_notes")
    supplier = relationship("Contact")

    __table_args__ = (
        UniqueConstraint("supplier_id", "number", name="uq_debit_note_supplier_number"),
    )
