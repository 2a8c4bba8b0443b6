"""
Esquemas Pydantic para el módulo de Gastos (Bills)
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime

from app.core.config import settings
from app.modules.billing.models import PaymentMethod
from app.modules.billing.states import DocumentStatus
from app.modules.bills.models import BillDocumentKind
from app.modules.inventory.schemas import StockReconciliationOut


# ===== BILL LINE ITEMS =====

class BillLineItemCreate(BaseModel):
    product_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=200)
    quantity: Decimal = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Costo unitario; por defecto el precio de compra del producto")
    is_bonus: bool = Field(False, description="Bonificación: ingresa inventario sin costo")

    @model_validator(mode='after')
    def validate_free_text_line(self):
        if self.product_id is None and not self.description:
            raise ValueError('Las líneas sin producto requieren descripción')
        if self.product_id is None and self.unit_price is None and not self.is_bonus:
            raise ValueError('Las líneas sin producto requieren costo unitario')
        return self


class BillLineItemOut(BaseModel):
    id: UUID
    position: int
    product_id: Optional[UUID] = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    is_bonus: bool
    base_amount: Decimal
    line_subtotal: Decimal

    class Config:
        from_attributes = True


# ===== BILLS =====

class BillCreate(BaseModel):
    supplier_id: UUID  # Contact ID (type must include 'provider')
    number: str = Field(..., min_length=1, max_length=50, description="Número del documento del proveedor")
    document_kind: BillDocumentKind = BillDocumentKind.INVOICE
    payment_term_id: Optional[UUID] = None
    issue_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    payment_method: PaymentMethod = PaymentMethod.CASH
    tax_rate: Decimal = Field(default_factory=lambda: settings.DEFAULT_TAX_RATE, ge=0, le=100, description="porcentaje_impuesto")
    purchase_order_ref: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    items: List[BillLineItemCreate] = Field(..., min_length=1)

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


class BillLinesUpdate(BaseModel):
    items: List[BillLineItemCreate] = Field(..., min_length=1)


class BillOut(BaseModel):
    id: UUID
    number: str
    supplier_id: UUID
    document_kind: BillDocumentKind
    payment_term_id: Optional[UUID] = None
    purchase_order_ref: Optional[str] = None
    status: DocumentStatus
    effective_status: DocumentStatus
    issue_date: date
    due_date: Optional[date] = None
    currency: str
    tax_rate: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    outstanding_balance: Decimal
    description: Optional[str] = None
    annulment_reason: Optional[str] = None
    version: int
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class BillDetail(BillOut):
    line_items: List[BillLineItemOut]
    paid_amount: Decimal


class BillOperationOut(BaseModel):
    bill: BillDetail
    stock: Optional[StockReconciliationOut] = None
    warnings: List[str] = []


class BillList(BaseModel):
    bills: List[BillOut]
    total: int
    limit: int
    offset: int
    counts_by_status: Dict[str, int]


class BillFilters(BaseModel):
    status: Optional[DocumentStatus] = None
    supplier_id: Optional[UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# ===== DEBIT NOTES =====

class DebitNoteCreate(BaseModel):
    supplier_id: UUID
    bill_id: Optional[UUID] = Field(None, description="Factura afectada (opcional)")
    number: str = Field(..., min_length=1, max_length=50, description="Consecutivo de la nota")
    reason: str = Field(..., min_length=3, description="Motivo")
    note_date: date = Field(default_factory=date.today)
    subtotal: Decimal = Field(..., gt=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Por defecto el de la factura afectada")


class DebitNoteOut(BaseModel):
    id: UUID
    supplier_id: UUID
    bill_id: Optional[UUID] = None
    number: str
    reason: str
    note_date: date
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DebitNoteOperationOut(BaseModel):
    debit_note: DebitNoteOut
    warnings: List[str] = []
