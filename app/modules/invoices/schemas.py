from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime

from app.core.config import settings
from app.modules.billing.models import PaymentMethod
from app.modules.billing.states import DocumentStatus, FiscalStatus
from app.modules.inventory.schemas import StockReconciliationOut


# Invoice Line Item Schemas
class InvoiceLineItemCreate(BaseModel):
    product_id: Optional[UUID] = Field(None, description="Null para líneas de texto libre")
    description: Optional[str] = Field(None, max_length=200)
    quantity: Decimal = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    unit_price: Optional[Decimal] = Field(
        None, ge=0, description="Precio sin impuestos; si se omite se usa el precio del cliente o de catálogo"
    )
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="IVA %; por defecto el del producto")

    @model_validator(mode='after')
    def validate_free_text_line(self):
        if self.product_id is None:
            if not self.description:
                raise ValueError('Las líneas sin producto requieren descripción')
            if self.unit_price is None:
                raise ValueError('Las líneas sin producto requieren precio unitario')
        return self


class InvoiceLineItemOut(BaseModel):
    id: UUID
    position: int
    product_id: Optional[UUID] = None
    description: str
    fiscal_code: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    catalog_price: Optional[Decimal] = None
    discount_kind: str
    tax_rate: Decimal
    base_amount: Decimal
    tax_amount: Decimal
    line_subtotal: Decimal

    class Config:
        from_attributes = True


# Invoice Schemas
class InvoiceCreate(BaseModel):
    customer_id: UUID  # Contact ID (type must include 'client')
    payment_term_id: Optional[UUID] = Field(None, description="Condición de pago; Contado crea la factura pagada")
    issue_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    payment_method: PaymentMethod = PaymentMethod.CASH
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    description: Optional[str] = None
    items: List[InvoiceLineItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un item")

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        v = v.upper()
        if v not in settings.SUPPORTED_CURRENCIES:
            raise ValueError(f'Moneda no soportada. Use una de {settings.SUPPORTED_CURRENCIES}')
        return v

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de emisión')
        return self


class InvoiceLinesUpdate(BaseModel):
    items: List[InvoiceLineItemCreate] = Field(..., min_length=1)


class InvoiceOut(BaseModel):
    id: UUID
    number: str
    consecutive: str
    clave: Optional[str] = None
    customer_id: UUID
    payment_term_id: Optional[UUID] = None
    status: DocumentStatus
    effective_status: DocumentStatus
    issue_date: date
    due_date: Optional[date] = None
    currency: str
    payment_method: PaymentMethod
    tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    outstanding_balance: Decimal
    description: Optional[str] = None
    annulment_reason: Optional[str] = None
    fiscal_status: FiscalStatus
    version: int
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceOut):
    line_items: List[InvoiceLineItemOut]
    paid_amount: Decimal
    fiscal_reference: Optional[str] = None
    fiscal_message: Optional[str] = None
    fiscal_submitted_at: Optional[datetime] = None


class InvoiceOperationOut(BaseModel):
    invoice: InvoiceDetail
    stock: Optional[StockReconciliationOut] = None
    warnings: List[str] = []


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    limit: int
    offset: int
    counts_by_status: Dict[str, int]


class InvoiceFilters(BaseModel):
    status: Optional[DocumentStatus] = None
    customer_id: Optional[UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
