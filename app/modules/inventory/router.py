from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.inventory.service import InventoryService
from app.modules.inventory.schemas import StockOut, StockAdjust, InventoryMovementOut

stock_router = APIRouter(prefix="/stock", tags=["Inventory"])
movements_router = APIRouter(prefix="/movements", tags=["Inventory"])


@stock_router.get("/{product_id}", response_model=StockOut)
def get_product_stock(
    product_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return InventoryService(db).get_stock_out(product_id)


@stock_router.put("/{product_id}", response_model=StockOut)
def adjust_stock(
    product_id: UUID,
    data: StockAdjust,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Ajuste manual de inventario (genera movimiento ADJ/IN/OUT)."""
    return InventoryService(db).set_stock(product_id, data, actor.user_id)


@movements_router.get("/", response_model=List[InventoryMovementOut])
def get_movements(
    product_id: Optional[UUID] = None,
    reference: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return InventoryService(db).get_movements(product_id=product_id, reference=reference, limit=limit, offset=offset)
