"""
Tests de inventario y de la reconciliación de stock por documento
"""
import pytest
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from app.common.exceptions import NotFoundError
from app.modules.billing.states import DocumentFamily
from app.modules.inventory.reconciler import StockEffect, StockReconciler, stock_sign
from app.modules.inventory.service import InventoryService


def line(product_id, quantity):
    return SimpleNamespace(product_id=product_id, quantity=Decimal(quantity))


@pytest.mark.parametrize("family,effect,sign", [
    (DocumentFamily.RECEIVABLE, StockEffect.CONSUME, -1),
    (DocumentFamily.RECEIVABLE, StockEffect.RESTORE, 1),
    (DocumentFamily.PAYABLE, StockEffect.CONSUME, 1),
    (DocumentFamily.PAYABLE, StockEffect.RESTORE, -1),
])
def test_stock_sign(family, effect, sign):
    assert stock_sign(family, effect) == sign


class TestStockReconciler:
    def test_sale_consumes_stock(self, db_session, coffee, sugar):
        result = StockReconciler(db_session).apply_stock_delta(
            DocumentFamily.RECEIVABLE, [line(coffee.id, "3"), line(sugar.id, "1.5")],
            StockEffect.CONSUME, reference="invoices:FE-000001"
        )
        db_session.commit()

        inventory = InventoryService(db_session)
        assert not result.partial
        assert inventory.get_stock(coffee.id) == Decimal("7")
        assert inventory.get_stock(sugar.id) == Decimal("18.5")

    def test_free_text_line_is_skipped(self, db_session, coffee):
        result = StockReconciler(db_session).apply_stock_delta(
            DocumentFamily.PAYABLE, [line(None, "1"), line(coffee.id, "2")], StockEffect.CONSUME
        )
        assert [o.status for o in result.outcomes] == ["skipped", "applied"]
        assert InventoryService(db_session).get_stock(coffee.id) == Decimal("12")

    def test_unknown_product_does_not_block_other_lines(self, db_session, coffee, sugar):
        missing = uuid4()
        result = StockReconciler(db_session).apply_stock_delta(
            DocumentFamily.RECEIVABLE,
            [line(coffee.id, "1"), line(missing, "1"), line(sugar.id, "2")],
            StockEffect.CONSUME, reference="invoices:FE-000002"
        )
        db_session.commit()

        assert result.partial
        assert [o.status for o in result.outcomes] == ["applied", "failed", "applied"]
        assert result.failed[0].product_id == missing
        assert result.to_dict()["partial"] is True
        inventory = InventoryService(db_session)
        assert inventory.get_stock(coffee.id) == Decimal("9")
        assert inventory.get_stock(sugar.id) == Decimal("18")

    def test_stock_may_go_negative(self, db_session, coffee):
        StockReconciler(db_session).apply_stock_delta(
            DocumentFamily.RECEIVABLE, [line(coffee.id, "12")], StockEffect.CONSUME
        )
        assert InventoryService(db_session).get_stock(coffee.id) == Decimal("-2")

    def test_movements_carry_reference(self, db_session, coffee):
        StockReconciler(db_session).apply_stock_delta(
            DocumentFamily.PAYABLE, [line(coffee.id, "4")], StockEffect.RESTORE,
            reference="bills:FP-1", user_id="user-1"
        )
        db_session.commit()

        movements = InventoryService(db_session).get_movements(reference="bills:FP-1")
        assert len(movements) == 1
        assert movements[0].quantity == Decimal("-4")
        assert movements[0].movement_type == "OUT"
        assert movements[0].created_by == "user-1"


class TestInventoryService:
    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            InventoryService(db_session).get_stock(uuid4())

    def test_manual_adjust_endpoint(self, api_client, auth_headers, coffee):
        response = api_client.put(f"/stock/{coffee.id}", headers=auth_headers, json={"quantity": "25", "notes": "Conteo físico"})
        assert response.status_code == 200
        assert Decimal(response.json()["quantity"]) == Decimal("25")

        movements = api_client.get("/movements/", headers=auth_headers, params={"reference": "AJUSTE_MANUAL"}).json()
        assert Decimal(movements[0]["quantity"]) == Decimal("15")
