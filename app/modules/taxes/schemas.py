from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from app.modules.billing.states import DocumentFamily


class CalculationLineIn(BaseModel):
    product_id: Optional[UUID] = None
    description: Optional[str] = None
    quantity: Decimal = Field(..., description="Cantidad (> 0)")
    unit_price: Decimal = Field(..., ge=0, description="Precio unitario sin impuestos")
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="IVA % (solo ventas)")


class CalculationPreviewRequest(BaseModel):
    family: DocumentFamily = DocumentFamily.RECEIVABLE
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Tarifa por defecto / del documento")
    lines: List[CalculationLineIn] = Field(..., min_length=1)


class CalculationLineOut(BaseModel):
    product_id: Optional[UUID] = None
    description: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    base_amount: Decimal
    tax_amount: Decimal
    line_subtotal: Decimal

    class Config:
        from_attributes = True


class CalculationPreviewOut(BaseModel):
    family: DocumentFamily
    tax_rate: Decimal
    lines: List[CalculationLineOut]
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal

    class Config:
        from_attributes = True
