from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.pricing.service import PricingResolver, PriceOverrideService
from app.modules.pricing.schemas import (
    PriceOverrideCreate, PriceOverrideUpdate, PriceOverrideOut,
    PriceResolveRequest, PriceResolveOut
)
from app.modules.products.service import ProductService

pricing_router = APIRouter(prefix="/pricing", tags=["Pricing"])


@pricing_router.post("/overrides", response_model=PriceOverrideOut, status_code=status.HTTP_201_CREATED)
def create_override(
    data: PriceOverrideCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Crear precio especial (precio fijo o % de descuento) para un cliente"""
    return PriceOverrideService(db).create_override(data)


@pricing_router.get("/overrides", response_model=List[PriceOverrideOut])
def list_overrides(
    client_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return PriceOverrideService(db).list_overrides(client_id)


@pricing_router.patch("/overrides/{override_id}", response_model=PriceOverrideOut)
def update_override(
    override_id: UUID,
    data: PriceOverrideUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return PriceOverrideService(db).update_override(override_id, data)


@pricing_router.delete("/overrides/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_override(
    override_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    PriceOverrideService(db).delete_override(override_id)


@pricing_router.post("/resolve", response_model=PriceResolveOut)
def resolve_price(
    data: PriceResolveRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Vista previa del precio que se aplicaría en una factura"""
    catalog_price = data.catalog_price
    if catalog_price is None:
        catalog_price = ProductService(db).get_product_by_id(data.product_id).price_sale
    resolved = PricingResolver(db).resolve_price(data.client_id, data.product_id, catalog_price)
    return PriceResolveOut(
        client_id=data.client_id,
        product_id=data.product_id,
        catalog_price=catalog_price,
        unit_price=resolved.unit_price,
        discount_kind=resolved.discount_kind
    )
