from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import Optional
from uuid import UUID
import logging

from app.common.exceptions import ConflictError, NotFoundError
from app.common.transactions import atomic
from app.modules.products.models import Product, Stock, InventoryMovement, MovementType
from app.modules.products.schemas import ProductCreate, ProductUpdate, ProductList

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def create_product(self, product_data: ProductCreate, user_id: Optional[str] = None) -> Product:
        """Crear producto con su registro de stock inicial."""
        existing = self.db.query(Product).filter(Product.sku == product_data.sku).first()
        if existing:
            raise ConflictError(f"Ya existe un producto con SKU {product_data.sku}", {"sku": product_data.sku})

        data = product_data.model_dump(exclude={"initial_stock"})
        product = Product(**data)

        with atomic(self.db, "create_product"):
            self.db.add(product)
            self.db.flush()
            self.db.add(Stock(product_id=product.id, quantity=product_data.initial_stock))
            if product_data.initial_stock > 0:
                self.db.add(InventoryMovement(
                    product_id=product.id,
                    quantity=product_data.initial_stock,
                    movement_type=MovementType.IN.value,
                    reference="STOCK_INICIAL",
                    created_by=user_id
                ))
        self.db.refresh(product)
        logger.info(f"Producto creado: {product.sku} (stock inicial {product_data.initial_stock})")
        return product

    def get_product_by_id(self, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError("Producto", product_id)
        return product

    def get_products(self, limit: int = 100, offset: int = 0, search: Optional[str] = None) -> ProductList:
        query = self.db.query(Product).filter(Product.is_active == True)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
        total = query.count()
        products = query.order_by(Product.name).offset(offset).limit(limit).all()
        return ProductList(products=products, total=total, limit=limit, offset=offset)

    def update_product(self, product_id: UUID, product_data: ProductUpdate) -> Product:
        product = self.get_product_by_id(product_id)
        with atomic(self.db, "update_product"):
            for field, value in product_data.model_dump(exclude_unset=True).items():
                setattr(product, field, value)
        self.db.refresh(product)
        return product
