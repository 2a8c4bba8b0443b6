from sqlalchemy.orm import Session
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from app.common.exceptions import NotFoundError
from app.common.transactions import atomic
from app.modules.products.models import Product, Stock, InventoryMovement, MovementType
from app.modules.inventory.schemas import StockOut, StockAdjust, InventoryMovementOut

logger = logging.getLogger(__name__)


class InventoryService:
    """Colaborador de inventario: existencias y movimientos por producto."""

    def __init__(self, db: Session):
        self.db = db

    def _get_product(self, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError("Producto", product_id)
        return product

    def get_stock(self, product_id: UUID) -> Decimal:
        """Existencia actual; cero si el producto aún no tiene registro de stock."""
        self._get_product(product_id)
        stock = self.db.query(Stock).filter(Stock.product_id == product_id).first()
        return Decimal(stock.quantity) if stock else Decimal("0")

    def adjust_stock(
        self,
        product_id: UUID,
        delta: Decimal,
        reference: Optional[str] = None,
        user_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Stock:
        """
        Suma ``delta`` (positivo o negativo) a la existencia del producto y
        registra el movimiento. No hace commit: participa en la transacción
        del documento que lo invoca.
        """
        self._get_product(product_id)
        stock = self.db.query(Stock).filter(Stock.product_id == product_id).first()
        if stock is None:
            stock = Stock(product_id=product_id, quantity=Decimal("0"))
            self.db.add(stock)

        old_quantity = Decimal(stock.quantity or 0)
        stock.quantity = old_quantity + Decimal(delta)

        if delta > 0:
            movement_type = MovementType.IN
        elif delta < 0:
            movement_type = MovementType.OUT
        else:
            movement_type = MovementType.ADJ

        self.db.add(InventoryMovement(
            product_id=product_id,
            quantity=Decimal(delta),
            movement_type=movement_type.value,
            reference=reference,
            notes=notes,
            created_by=user_id
        ))
        self.db.flush()

        if stock.quantity < 0:
            logger.warning(f"Stock negativo para producto {product_id}: {stock.quantity}")
        logger.info(f"Stock actualizado producto {product_id}: {old_quantity} -> {stock.quantity} ({reference})")
        return stock

    def set_stock(self, product_id: UUID, data: StockAdjust, user_id: Optional[str] = None) -> StockOut:
        """Ajuste manual a una cantidad absoluta."""
        current = self.get_stock(product_id)
        with atomic(self.db, "set_stock"):
            self.adjust_stock(
                product_id,
                data.quantity - current,
                reference="AJUSTE_MANUAL",
                user_id=user_id,
                notes=data.notes
            )
        return self.get_stock_out(product_id)

    def get_stock_out(self, product_id: UUID) -> StockOut:
        product = self._get_product(product_id)
        return StockOut(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            quantity=self.get_stock(product_id)
        )

    def get_movements(
        self,
        product_id: Optional[UUID] = None,
        reference: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[InventoryMovementOut]:
        query = self.db.query(InventoryMovement)
        if product_id:
            query = query.filter(InventoryMovement.product_id == product_id)
        if reference:
            query = query.filter(InventoryMovement.reference == reference)
        movements = query.order_by(InventoryMovement.created_at.desc()).offset(offset).limit(limit).all()
        return [InventoryMovementOut.model_validate(m) for m in movements]
