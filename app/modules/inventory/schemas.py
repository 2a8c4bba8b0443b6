from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class StockOut(BaseModel):
    product_id: UUID
    product_name: str
    sku: str
    quantity: Decimal


class StockAdjust(BaseModel):
    quantity: Decimal = Field(..., description="Nueva cantidad absoluta")
    notes: Optional[str] = Field(None, max_length=255)


class InventoryMovementOut(BaseModel):
    id: UUID
    product_id: UUID
    quantity: Decimal
    movement_type: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StockLineOutcomeOut(BaseModel):
    line_index: int
    product_id: Optional[UUID] = None
    delta: Decimal
    status: str
    error: Optional[str] = None


class StockReconciliationOut(BaseModel):
    partial: bool
    outcomes: List[StockLineOutcomeOut]
