from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.products.service import ProductService
from app.modules.products.schemas import ProductCreate, ProductUpdate, ProductOut, ProductList

product_router = APIRouter(prefix="/products", tags=["Products"])


@product_router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    product: ProductCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return ProductService(db).create_product(product, actor.user_id)


@product_router.get("/", response_model=ProductList)
def get_products(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return ProductService(db).get_products(limit=limit, offset=offset, search=search)


@product_router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return ProductService(db).get_product_by_id(product_id)


@product_router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: UUID,
    product: ProductUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return ProductService(db).update_product(product_id, product)
