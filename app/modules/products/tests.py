"""
Tests del catálogo de productos
"""
import pytest
from decimal import Decimal

from app.common.exceptions import ConflictError
from app.modules.inventory.service import InventoryService
from app.modules.products.schemas import ProductCreate, ProductUpdate
from app.modules.products.service import ProductService


class TestProductService:
    def test_initial_stock_creates_movement(self, db_session, coffee):
        movements = InventoryService(db_session).get_movements(product_id=coffee.id)
        assert len(movements) == 1
        assert movements[0].reference == "STOCK_INICIAL"
        assert movements[0].quantity == Decimal("10")

    def test_duplicate_sku(self, db_session, coffee):
        with pytest.raises(ConflictError):
            ProductService(db_session).create_product(ProductCreate(
                name="Otro café", sku=coffee.sku, price_sale=Decimal("1")
            ))

    def test_update_and_search(self, db_session, coffee, sugar):
        service = ProductService(db_session)
        service.update_product(coffee.id, ProductUpdate(price_sale=Decimal("1100")))

        assert service.get_product_by_id(coffee.id).price_sale == Decimal("1100.00")
        assert [p.sku for p in service.get_products(search="azú").products] == ["AZU-1000"]

    def test_fiscal_code_must_be_numeric(self):
        with pytest.raises(ValueError):
            ProductCreate(name="X", sku="X", price_sale=Decimal("1"), fiscal_code="ABC")


class TestProductEndpoints:
    def test_create_and_list(self, api_client, auth_headers):
        response = api_client.post("/products/", headers=auth_headers, json={
            "name": "Té verde", "sku": "TE-01", "price_sale": "1500", "fiscal_code": "2391300000000"
        })
        assert response.status_code == 201
        assert response.json()["unit_of_measure"] == "Unid"

        listing = api_client.get("/products/", headers=auth_headers).json()
        assert listing["total"] == 1
