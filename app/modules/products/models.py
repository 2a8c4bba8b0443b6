from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


class MovementType(enum.Enum):
    IN = "IN"      # Entrada (compras, reversión de ventas)
    OUT = "OUT"    # Salida (ventas, reversión de compras)
    ADJ = "ADJ"    # Ajuste manual


class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    sku = Column(String(50), nullable=False, unique=True)
    description = Column(String(255), nullable=True)
    fiscal_code = Column(String(13), nullable=True)  # Código CABYS
    unit_of_measure = Column(String(10), nullable=False, default="Unid")
    is_active = Column(Boolean, default=True)
    price_sale = Column(Numeric(15, 2), nullable=False, default=0)  # Precio de venta
    price_base = Column(Numeric(15, 2), nullable=False, default=0)  # Precio de compra/costo
    tax_rate = Column(Numeric(5, 2), nullable=False, default=13)  # IVA %

    # Relationships
    stock = relationship("Stock", back_populates="product", uselist=False, cascade="all, delete-orphan")
    movements = relationship("InventoryMovement", back_populates="product")


class Stock(Base, TimestampMixin):
    """Existencia actual por producto (una sola bodega)."""
    __tablename__ = "stocks"

    id = Column(Uuid, primary_key=True, default=uuid4)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, unique=True)
    quantity = Column(Numeric(12, 3), nullable=False, default=0)
    min_quantity = Column(Numeric(12, 3), nullable=False, default=0)  # Cantidad mínima para alertas

    product = relationship("Product", back_populates="stock")


class InventoryMovement(Base, TimestampMixin):
    __tablename__ = "inventory_movements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, index=True)

    quantity = Column(Numeric(12, 3), nullable=False)  # Positivo o negativo
    movement_type = Column(String(20), nullable=False)  # IN, OUT, ADJ
    reference = Column(String(100), nullable=True)  # Factura, gasto, etc.
    notes = Column(String(255), nullable=True)
    created_by = Column(String(100), nullable=True)

    product = relationship("Product", back_populates="movements")
