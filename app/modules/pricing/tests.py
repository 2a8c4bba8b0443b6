"""
Tests de resolución de precios por cliente
"""
import pytest
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import ConflictError, ValidationError
from app.modules.pricing.models import DiscountKind
from app.modules.pricing.schemas import PriceOverrideCreate, PriceOverrideUpdate
from app.modules.pricing.service import PricingResolver, PriceOverrideService


@pytest.fixture
def overrides(db_session):
    return PriceOverrideService(db_session)


@pytest.fixture
def resolver(db_session):
    return PricingResolver(db_session)


class TestPricingResolver:
    def test_catalog_price_without_override(self, resolver, customer, coffee):
        price, kind = resolver.resolve_price(customer.id, coffee.id, Decimal("1000"))
        assert price == Decimal("1000")
        assert kind == DiscountKind.NONE

    def test_catalog_price_without_client(self, resolver, coffee):
        assert resolver.resolve_price(None, coffee.id, Decimal("1000")).discount_kind == DiscountKind.NONE

    def test_percentage_discount(self, overrides, resolver, customer, coffee):
        overrides.create_override(PriceOverrideCreate(
            client_id=customer.id, product_id=coffee.id, discount_pct=Decimal("12.5")
        ))
        price, kind = resolver.resolve_price(customer.id, coffee.id, Decimal("999.99"))
        assert price == Decimal("874.99")
        assert kind == DiscountKind.PERCENTAGE_DISCOUNT

    def test_fixed_price_wins_over_percentage(self, overrides, resolver, customer, coffee):
        overrides.create_override(PriceOverrideCreate(
            client_id=customer.id, product_id=coffee.id,
            fixed_price=Decimal("850"), discount_pct=Decimal("50")
        ))
        price, kind = resolver.resolve_price(customer.id, coffee.id, Decimal("1000"))
        assert price == Decimal("850.00")
        assert kind == DiscountKind.FIXED_PRICE

    def test_zero_values_fall_back_to_catalog(self, db_session, overrides, resolver, customer, coffee):
        override = overrides.create_override(PriceOverrideCreate(
            client_id=customer.id, product_id=coffee.id, fixed_price=Decimal("500")
        ))
        overrides.update_override(override.id, PriceOverrideUpdate(fixed_price=Decimal("0")))

        price, kind = resolver.resolve_price(customer.id, coffee.id, Decimal("1000"))
        assert price == Decimal("1000")
        assert kind == DiscountKind.NONE

    def test_override_is_per_client(self, overrides, resolver, customer, supplier, coffee):
        overrides.create_override(PriceOverrideCreate(
            client_id=customer.id, product_id=coffee.id, fixed_price=Decimal("700")
        ))
        assert resolver.resolve_price(supplier.id, coffee.id, Decimal("1000")).unit_price == Decimal("1000")


class TestPriceOverrideService:
    def test_duplicate_override(self, overrides, customer, coffee):
        data = PriceOverrideCreate(client_id=customer.id, product_id=coffee.id, fixed_price=Decimal("700"))
        overrides.create_override(data)
        with pytest.raises(ConflictError):
            overrides.create_override(data)

    def test_override_requires_client_contact(self, overrides, supplier, coffee):
        with pytest.raises(ValidationError):
            overrides.create_override(PriceOverrideCreate(
                client_id=supplier.id, product_id=coffee.id, fixed_price=Decimal("700")
            ))

    def test_needs_price_or_discount(self, customer, coffee):
        with pytest.raises(ValueError):
            PriceOverrideCreate(client_id=customer.id, product_id=coffee.id)

    def test_delete_override(self, overrides, customer, coffee):
        override = overrides.create_override(PriceOverrideCreate(
            client_id=customer.id, product_id=coffee.id, fixed_price=Decimal("700")
        ))
        overrides.delete_override(override.id)
        assert overrides.list_overrides(customer.id) == []


class TestPricingEndpoints:
    def test_resolve_uses_product_catalog_price(self, api_client, auth_headers, customer, coffee):
        api_client.post("/pricing/overrides", headers=auth_headers, json={
            "client_id": str(customer.id), "product_id": str(coffee.id), "discount_pct": "10"
        })
        response = api_client.post("/pricing/resolve", headers=auth_headers, json={
            "client_id": str(customer.id), "product_id": str(coffee.id)
        })
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["catalog_price"]) == Decimal("1000")
        assert Decimal(body["unit_price"]) == Decimal("900")
        assert body["discount_kind"] == "percentage_discount"

    def test_resolve_unknown_product(self, api_client, auth_headers, customer):
        response = api_client.post("/pricing/resolve", headers=auth_headers, json={
            "client_id": str(customer.id), "product_id": str(uuid4())
        })
        assert response.status_code == 404
