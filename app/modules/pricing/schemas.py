from pydantic import BaseModel, Field, model_validator
from decimal import Decimal
from typing import Optional
from uuid import UUID
from datetime import datetime

from app.modules.pricing.models import DiscountKind


class PriceOverrideCreate(BaseModel):
    client_id: UUID
    product_id: UUID
    fixed_price: Optional[Decimal] = Field(None, ge=0)
    discount_pct: Optional[Decimal] = Field(None, ge=0, le=100)

    @model_validator(mode='after')
    def validate_has_value(self):
        if not self.fixed_price and not self.discount_pct:
            raise ValueError('Debe indicar un precio fijo o un porcentaje de descuento')
        return self


class PriceOverrideUpdate(BaseModel):
    fixed_price: Optional[Decimal] = Field(None, ge=0)
    discount_pct: Optional[Decimal] = Field(None, ge=0, le=100)


class PriceOverrideOut(BaseModel):
    id: UUID
    client_id: UUID
    product_id: UUID
    fixed_price: Optional[Decimal] = None
    discount_pct: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PriceResolveRequest(BaseModel):
    client_id: UUID
    product_id: UUID
    catalog_price: Optional[Decimal] = Field(None, ge=0, description="Por defecto el precio de venta del producto")


class PriceResolveOut(BaseModel):
    client_id: UUID
    product_id: UUID
    catalog_price: Decimal
    unit_price: Decimal
    discount_kind: DiscountKind
