from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime

from app.modules.billing.models import PaymentMethod
from app.modules.billing.states import DocumentStatus


# Payment Terms
class PaymentTermCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)
    name: str = Field(..., min_length=1, max_length=100)
    sale_condition: str = Field("02", min_length=2, max_length=2)
    credit_days: int = Field(0, ge=0, le=365)
    is_cash: bool = False


class PaymentTermOut(BaseModel):
    id: UUID
    code: str
    name: str
    sale_condition: str
    credit_days: int
    is_cash: bool
    is_active: bool

    class Config:
        from_attributes = True


# Payments
class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Monto a pagar (no puede exceder el saldo)")
    method: PaymentMethod = PaymentMethod.CASH
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="Por defecto la moneda del documento")
    reference: Optional[str] = Field(None, max_length=100)
    payment_date: Optional[date] = None
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    id: UUID
    amount: Decimal
    method: PaymentMethod
    currency: str
    reference: Optional[str] = None
    payment_date: date
    notes: Optional[str] = None
    is_automatic: bool
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentResultOut(BaseModel):
    payment: PaymentOut
    new_balance: Decimal
    new_status: DocumentStatus
    warnings: List[str] = []


class AnnulRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500, description="Motivo de la anulación")


class OverdueReconciliationOut(BaseModel):
    run_date: date
    moved_to_overdue: Dict[str, int]
    moved_from_overdue: Dict[str, int]
