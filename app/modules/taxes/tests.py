"""
Tests del calculador de líneas y totales
"""
import pytest
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import ValidationError
from app.modules.billing.states import DocumentFamily
from app.modules.taxes.calculator import LineItemCalculator, TaxMode


@pytest.fixture
def sales():
    return LineItemCalculator(DocumentFamily.RECEIVABLE)


@pytest.fixture
def purchases():
    return LineItemCalculator(DocumentFamily.PAYABLE)


class TestPerLineTax:
    def test_single_line_total(self, sales):
        draft = sales.new_draft(Decimal("13"))
        sales.add_line(draft, uuid4(), Decimal("2"), Decimal("1000"))

        line = draft.lines[0]
        assert line.base_amount == Decimal("2000.00")
        assert line.tax_amount == Decimal("260.00")
        assert line.line_subtotal == Decimal("2260.00")
        assert draft.subtotal == Decimal("2000.00")
        assert draft.tax_amount == Decimal("260.00")
        assert draft.total == Decimal("2260.00")

    def test_mixed_rates_sum_line_taxes(self, sales):
        draft = sales.new_draft()
        sales.add_line(draft, None, Decimal("1"), Decimal("1000"), Decimal("13"))
        sales.add_line(draft, None, Decimal("3"), Decimal("850"), Decimal("1"))

        assert draft.subtotal == Decimal("3550.00")
        assert draft.tax_amount == Decimal("155.50")
        assert draft.total == Decimal("3705.50")

    def test_rounding_happens_on_aggregate(self, sales):
        # 3 lineas de 0.333 x 1.00 al 13%: cada impuesto redondeado daría 0.04 x 3 = 0.12
        draft = sales.new_draft(Decimal("13"))
        for _ in range(3):
            sales.add_line(draft, None, Decimal("0.333"), Decimal("1.00"))

        assert draft.subtotal == Decimal("1.00")
        assert draft.tax_amount == Decimal("0.13")
        assert draft.total == draft.subtotal + draft.tax_amount

    def test_remove_line_recomputes_everything(self, sales):
        draft = sales.new_draft(Decimal("13"))
        sales.add_line(draft, None, Decimal("2"), Decimal("1000"))
        sales.add_line(draft, None, Decimal("1"), Decimal("500"))
        sales.remove_line(draft, 0)

        assert len(draft.lines) == 1
        assert draft.subtotal == Decimal("500.00")
        assert draft.tax_amount == Decimal("65.00")
        assert draft.total == Decimal("565.00")

    def test_remove_line_out_of_range(self, sales):
        draft = sales.new_draft()
        with pytest.raises(ValidationError):
            sales.remove_line(draft, 3)


class TestDocumentTax:
    def test_tax_computed_once_on_subtotal(self, purchases):
        assert purchases.mode == TaxMode.DOCUMENT
        draft = purchases.new_draft(Decimal("13"))
        purchases.add_line(draft, uuid4(), Decimal("10"), Decimal("600"))
        purchases.add_line(draft, uuid4(), Decimal("5"), Decimal("0"))

        assert [line.line_subtotal for line in draft.lines] == [Decimal("6000.00"), Decimal("0.00")]
        assert all(line.tax_amount == 0 for line in draft.lines)
        assert draft.subtotal == Decimal("6000.00")
        assert draft.tax_amount == Decimal("780.00")
        assert draft.total == Decimal("6780.00")


class TestValidation:
    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1")])
    def test_rejects_non_positive_quantity(self, sales, quantity):
        draft = sales.new_draft()
        with pytest.raises(ValidationError):
            sales.add_line(draft, None, quantity, Decimal("10"))
        assert draft.lines == []

    def test_rejects_negative_price(self, sales):
        with pytest.raises(ValidationError):
            sales.add_line(sales.new_draft(), None, Decimal("1"), Decimal("-5"))

    def test_rejects_rate_out_of_range(self, sales):
        with pytest.raises(ValidationError):
            sales.new_draft(Decimal("101"))

    def test_placeholder_excluded_from_totals(self, sales):
        draft = sales.new_draft(Decimal("13"))
        sales.add_line(draft, None, Decimal("1"), Decimal("100"))
        sales.add_placeholder(draft)

        assert draft.total == Decimal("113.00")
        assert len(draft.billable_lines) == 1

    def test_finalize_rejects_placeholders(self, sales):
        draft = sales.new_draft()
        sales.add_placeholder(draft)
        with pytest.raises(ValidationError) as exc:
            sales.finalize(draft)
        assert exc.value.details["line_indexes"] == [0]

    def test_finalize_rejects_empty_draft(self, sales):
        with pytest.raises(ValidationError):
            sales.finalize(sales.new_draft())


class TestPreviewEndpoint:
    def test_preview_receivable(self, api_client, auth_headers):
        response = api_client.post("/taxes/preview", headers=auth_headers, json={
            "family": "receivable",
            "tax_rate": "13",
            "lines": [{"quantity": "2", "unit_price": "1000"}]
        })
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["total"]) == Decimal("2260.00")
        assert Decimal(body["lines"][0]["line_subtotal"]) == Decimal("2260.00")

    def test_preview_invalid_quantity_returns_400(self, api_client, auth_headers):
        response = api_client.post("/taxes/preview", headers=auth_headers, json={
            "lines": [{"quantity": "0", "unit_price": "1000"}]
        })
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_preview_requires_actor(self, api_client):
        response = api_client.post("/taxes/preview", json={"lines": [{"quantity": "1", "unit_price": "1"}]})
        assert response.status_code == 401
