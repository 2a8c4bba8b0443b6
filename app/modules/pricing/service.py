"""
Resolución de precios por cliente.

Precedencia: precio fijo > descuento porcentual > precio de catálogo.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, NamedTuple, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.common.exceptions import ConflictError, NotFoundError
from app.common.transactions import atomic
from app.modules.pricing.models import PriceOverride, DiscountKind
from app.modules.pricing.schemas import PriceOverrideCreate, PriceOverrideUpdate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class ResolvedPrice(NamedTuple):
    unit_price: Decimal
    discount_kind: DiscountKind


class PricingResolver:
    """Consulta de solo lectura sobre los precios especiales."""

    def __init__(self, db: Session):
        self.db = db

    def resolve_price(self, client_id: Optional[UUID], product_id: UUID, catalog_price: Decimal) -> ResolvedPrice:
        catalog_price = Decimal(catalog_price)
        override = None
        if client_id is not None:
            override = self.db.query(PriceOverride).filter(
                PriceOverride.client_id == client_id,
                PriceOverride.product_id == product_id
            ).first()

        if override is None:
            return ResolvedPrice(catalog_price, DiscountKind.NONE)

        if override.fixed_price is not None and override.fixed_price > 0:
            return ResolvedPrice(Decimal(override.fixed_price), DiscountKind.FIXED_PRICE)

        if override.discount_pct is not None and override.discount_pct > 0:
            factor = Decimal("1") - Decimal(override.discount_pct) / Decimal("100")
            price = (catalog_price * factor).quantize(CENT, rounding=ROUND_HALF_UP)
            return ResolvedPrice(price, DiscountKind.PERCENTAGE_DISCOUNT)

        return ResolvedPrice(catalog_price, DiscountKind.NONE)


class PriceOverrideService:
    def __init__(self, db: Session):
        self.db = db

    def create_override(self, data: PriceOverrideCreate) -> PriceOverride:
        from app.modules.contacts.service import ContactService
        from app.modules.products.service import ProductService

        ContactService(self.db).require_client(data.client_id)
        ProductService(self.db).get_product_by_id(data.product_id)

        existing = self.db.query(PriceOverride).filter(
            PriceOverride.client_id == data.client_id,
            PriceOverride.product_id == data.product_id
        ).first()
        if existing:
            raise ConflictError(
                "Ya existe un precio especial para este cliente y producto",
                {"override_id": str(existing.id)}
            )

        override = PriceOverride(**data.model_dump())
        with atomic(self.db, "create_price_override"):
            self.db.add(override)
        self.db.refresh(override)
        logger.info(f"Precio especial creado: cliente={data.client_id} producto={data.product_id}")
        return override

    def get_override(self, override_id: UUID) -> PriceOverride:
        override = self.db.query(PriceOverride).filter(PriceOverride.id == override_id).first()
        if not override:
            raise NotFoundError("Precio especial", override_id)
        return override

    def list_overrides(self, client_id: Optional[UUID] = None) -> List[PriceOverride]:
        query = self.db.query(PriceOverride)
        if client_id:
            query = query.filter(PriceOverride.client_id == client_id)
        return query.order_by(PriceOverride.created_at).all()

    def update_override(self, override_id: UUID, data: PriceOverrideUpdate) -> PriceOverride:
        override = self.get_override(override_id)
        with atomic(self.db, "update_price_override"):
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(override, key, value)
        self.db.refresh(override)
        return override

    def delete_override(self, override_id: UUID) -> None:
        override = self.get_override(override_id)
        with atomic(self.db, "delete_price_override"):
            self.db.delete(override)
