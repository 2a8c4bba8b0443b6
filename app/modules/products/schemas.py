from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    sku: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=255)
    fiscal_code: Optional[str] = Field(None, description="Código CABYS de 13 dígitos")
    unit_of_measure: str = Field("Unid", max_length=10)
    price_sale: Decimal = Field(..., ge=0)
    price_base: Decimal = Field(Decimal("0"), ge=0)
    tax_rate: Decimal = Field(Decimal("13"), ge=0, le=100)

    @field_validator('fiscal_code')
    @classmethod
    def validate_fiscal_code(cls, v):
        if v is None or v == "":
            return None
        if not v.isdigit():
            raise ValueError('El código CABYS debe ser numérico')
        return v


class ProductCreate(ProductBase):
    initial_stock: Decimal = Field(Decimal("0"), ge=0)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)
    fiscal_code: Optional[str] = None
    price_sale: Optional[Decimal] = Field(None, ge=0)
    price_base: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None


class ProductOut(ProductBase):
    id: UUID
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ProductList(BaseModel):
    products: List[ProductOut]
    total: int
    limit: int
    offset: int
