from app.database.database import Base
from sqlalchemy import Column, ForeignKey, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TimestampMixin
import enum


class DiscountKind(enum.Enum):
    FIXED_PRICE = "fixed_price"                   # Precio fijo pactado con el cliente
    PERCENTAGE_DISCOUNT = "percentage_discount"   # Descuento % sobre precio de catálogo
    NONE = "none"                                 # Precio de catálogo


class PriceOverride(Base, TimestampMixin):
    """Precio especial por cliente y producto (cliente_producto)."""
    __tablename__ = "client_product_prices"

    id = Column(Uuid, primary_key=True, default=uuid4)
    client_id = Column(Uuid, ForeignKey("contacts.id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)

    fixed_price = Column(Numeric(15, 2), nullable=True)
    discount_pct = Column(Numeric(5, 2), nullable=True)

    client = relationship("Contact")
    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("client_id", "product_id", name="uq_price_override_client_product"),
    )
