from app.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Numeric, Enum, Date, Text, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from app.common.mixins import TimestampMixin, VersionedMixin
from app.modules.billing.states import BillingStateMachine, DocumentStatus, FiscalStatus
from app.modules.billing.models import PaymentMethod


class Invoice(Base, TimestampMixin, VersionedMixin):
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid4)

    # References
    customer_id = Column(Uuid, ForeignKey("contacts.id"), nullable=False, index=True)
    payment_term_id = Column(Uuid, ForeignKey("payment_terms.id"), nullable=True)
    created_by = Column(String(100), nullable=False)

    # Invoice data
    number = Column(String(50), nullable=False, unique=True)  # FE-000001
    consecutive = Column(String(20), nullable=False, unique=True)  # Consecutivo de Hacienda
    clave = Column(String(50), nullable=True, unique=True)
    status = Column(Enum(DocumentStatus), nullable=False, default=DocumentStatus.PENDING, index=True)

    # Dates
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True, index=True)

    # Content
    description = Column(Text, nullable=True)
    currency = Column(String(3), nullable=False, default="CRC")
    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=13)  # Tarifa por defecto de las líneas

    # Totals (calculated)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    outstanding_balance = Column(Numeric(15, 2), nullable=False, default=0)

    # Annulment
    annulment_reason = Column(Text, nullable=True)
    annulled_at = Column(DateTime(timezone=True), nullable=True)

    # Electronic invoicing (independiente del estado de pago)
    fiscal_status = Column(Enum(FiscalStatus), nullable=False, default=FiscalStatus.NOT_SUBMITTED)
    fiscal_submitted_at = Column(DateTime(timezone=True), nullable=True)
    fiscal_reference = Column(String(100), nullable=True)
    fiscal_message = Column(Text, nullable=True)

    # Relationships
    customer = relationship("Contact")
    payment_term = relationship("PaymentTerm")
    line_items = relationship(
        "InvoiceLineItem", back_populates="invoice",
        cascade="all, delete-orphan", order_by="InvoiceLineItem.position"
    )
    payments = relationship("Payment", back_populates="invoice", order_by="Payment.created_at")

    @property
    def paid_amount(self):
        """Calcular monto pagado"""
        return sum((payment.amount for payment in self.payments), 0)

    @property
    def effective_status(self) -> DocumentStatus:
        """Estado visible hoy: pending/partial vencidos se muestran como overdue"""
        return BillingStateMachine().effective_status(self.status, self.due_date)


class InvoiceLineItem(Base, TimestampMixin):
    __tablename__ = "invoice_line_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=True)  # Null para líneas de texto libre

    # Snapshot data (para preservar información si el producto cambia)
    description = Column(String(200), nullable=False)
    fiscal_code = Column(String(13), nullable=True)
    unit_of_measure = Column(String(10), nullable=False, default="Unid")

    # Pricing decision
    catalog_price = Column(Numeric(15, 2), nullable=True)
    discount_kind = Column(String(30), nullable=False, default="none")

    # Line calculations
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)  # Precio sin impuestos
    tax_rate = Column(Numeric(5, 2), nullable=False)
    base_amount = Column(Numeric(15, 2), nullable=False)  # quantity * unit_price
    tax_amount = Column(Numeric(15, 2), nullable=False)
    line_subtotal = Column(Numeric(15, 2), nullable=False)  # base + impuesto

    invoice = relationship("Invoice", back_populates="line_items")
    product = relationship("Product")


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False)
    currency = Column(String(3), nullable=False, default="CRC")
    reference = Column(String(100), nullable=True)  # Número de referencia, cheque, etc.
    payment_date = Column(Date, nullable=False, default=date.today)
    notes = Column(Text, nullable=True)
    is_automatic = Column(Boolean, nullable=False, default=False)  # Pago implícito de contado
    created_by = Column(String(100), nullable=True)

    invoice = relationship("Invoice", back_populates="payments")


class InvoiceSequence(Base):
    """Secuencia de numeración de facturas"""
    __tablename__ = "invoice_sequences"

    id = Column(Uuid, primary_key=True, default=uuid4)
    prefix = Column(String(10), nullable=False, unique=True)  # Ej: "FE-"
    current_number = Column(Integer, nullable=False, default=0)
