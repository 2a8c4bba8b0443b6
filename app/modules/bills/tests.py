"""
Tests del módulo de Gastos: facturas de proveedor y notas débito
"""
import pytest
from decimal import Decimal

from app.common.exceptions import ConflictError, ValidationError
from app.modules.audit.models import AuditLogEntry
from app.modules.billing.schemas import PaymentCreate
from app.modules.billing.states import DocumentStatus
from app.modules.bills.models import BillDocumentKind
from app.modules.bills.schemas import BillCreate, BillFilters, BillLineItemCreate, DebitNoteCreate
from app.modules.bills.service import BillService
from app.modules.inventory.service import InventoryService


@pytest.fixture
def service(db_session):
    return BillService(db_session)


@pytest.fixture
def open_bill(service, actor, supplier, coffee, credit_term):
    """5 unidades de café a costo 600, IVA 13% sobre el subtotal: total 3390."""
    return service.create_bill(BillCreate(
        supplier_id=supplier.id,
        number="FP-1001",
        payment_term_id=credit_term.id,
        items=[{"product_id": coffee.id, "quantity": "5"}]
    ), actor).document


class TestCreateBill:
    def test_bill_increases_stock_and_taxes_subtotal(self, db_session, open_bill, coffee):
        assert open_bill.subtotal == Decimal("3000.00")
        assert open_bill.tax_amount == Decimal("390.00")
        assert open_bill.total == Decimal("3390.00")
        assert open_bill.outstanding_balance == open_bill.total
        assert open_bill.status == DocumentStatus.PENDING
        assert InventoryService(db_session).get_stock(coffee.id) == Decimal("15")

    def test_bonus_line_has_zero_cost(self, db_session, service, actor, supplier, coffee, sugar, credit_term):
        bill = service.create_bill(BillCreate(
            supplier_id=supplier.id,
            number="FP-2001",
            payment_term_id=credit_term.id,
            items=[
                {"product_id": sugar.id, "quantity": "10", "unit_price": "450"},
                {"product_id": coffee.id, "quantity": "2", "is_bonus": True},
            ]
        ), actor).document

        paid_line, bonus_line = bill.line_items
        assert paid_line.unit_price == Decimal("450.00")
        assert bonus_line.is_bonus
        assert bonus_line.unit_price == Decimal("0")
        assert bill.subtotal == Decimal("4500.00")
        assert InventoryService(db_session).get_stock(coffee.id) == Decimal("12")

    def test_receipt_without_term_is_paid(self, service, actor, supplier, payment_terms):
        bill = service.create_bill(BillCreate(
            supplier_id=supplier.id,
            number="R-77",
            document_kind=BillDocumentKind.RECEIPT,
            tax_rate=Decimal("0"),
            items=[{"description": "Fletes", "quantity": "1", "unit_price": "15000"}]
        ), actor).document

        assert bill.status == DocumentStatus.PAID
        assert bill.outstanding_balance == Decimal("0")
        assert bill.payments[0].is_automatic

    def test_duplicate_supplier_number(self, service, actor, supplier, open_bill):
        with pytest.raises(ConflictError):
            service.create_bill(BillCreate(
                supplier_id=supplier.id,
                number=open_bill.number,
                items=[{"description": "Otro", "quantity": "1", "unit_price": "10"}]
            ), actor)

    def test_client_only_contact_rejected(self, service, actor, customer):
        with pytest.raises(ValidationError):
            service.create_bill(BillCreate(
                supplier_id=customer.id,
                number="X-1",
                items=[{"description": "Otro", "quantity": "1", "unit_price": "10"}]
            ), actor)


class TestBillLifecycle:
    def test_annul_reverses_stock(self, db_session, service, actor, open_bill, coffee):
        result = service.annul_bill(open_bill.id, "Mercadería devuelta", actor)

        assert result.document.status == DocumentStatus.ANNULLED
        assert result.document.outstanding_balance == Decimal("0")
        assert InventoryService(db_session).get_stock(coffee.id) == Decimal("10")

    def test_payment_reduces_balance(self, service, actor, open_bill):
        result = service.add_payment(open_bill.id, PaymentCreate(amount=Decimal("390")), actor)

        assert result.new_balance == Decimal("3000.00")
        assert result.new_status == DocumentStatus.PARTIAL

    def test_replace_lines(self, db_session, service, actor, open_bill, coffee):
        result = service.update_bill_lines(open_bill.id, [
            BillLineItemCreate(product_id=coffee.id, quantity=Decimal("2"), unit_price=Decimal("650"))
        ], actor)

        assert result.document.subtotal == Decimal("1300.00")
        assert result.document.total == Decimal("1469.00")
        assert InventoryService(db_session).get_stock(coffee.id) == Decimal("12")

    def test_list_counts(self, service, open_bill):
        bills = service.get_bills(BillFilters(status=DocumentStatus.PENDING))
        assert bills.total == 1
        assert bills.counts_by_status["pending"] == 1
        assert bills.counts_by_status["paid"] == 0


class TestDebitNotes:
    def test_note_increases_bill_total_and_balance(self, db_session, service, actor, supplier, open_bill):
        result = service.create_debit_note(DebitNoteCreate(
            supplier_id=supplier.id,
            bill_id=open_bill.id,
            number="ND-1",
            reason="Flete no facturado",
            subtotal=Decimal("1000")
        ), actor)

        note = result.document
        assert note.tax_amount == Decimal("130.00")
        assert note.total == Decimal("1130.00")

        bill = service.get_bill_by_id(open_bill.id)
        assert bill.total == Decimal("4520.00")
        assert bill.outstanding_balance == Decimal("4520.00")
        assert bill.status == DocumentStatus.PENDING
        actions = {
            (entry.table_name, entry.action)
            for entry in db_session.query(AuditLogEntry).filter(AuditLogEntry.action == "UPDATE")
        }
        assert ("bills", "UPDATE") in actions

    def test_note_on_partial_bill_keeps_it_partial(self, service, actor, supplier, open_bill):
        service.add_payment(open_bill.id, PaymentCreate(amount=Decimal("1000")), actor)
        service.create_debit_note(DebitNoteCreate(
            supplier_id=supplier.id, bill_id=open_bill.id, number="ND-2",
            reason="Ajuste de precio", subtotal=Decimal("100"), tax_rate=Decimal("0")
        ), actor)

        bill = service.get_bill_by_id(open_bill.id)
        assert bill.outstanding_balance == Decimal("2490.00")
        assert bill.status == DocumentStatus.PARTIAL

    def test_note_on_paid_bill_conflicts(self, service, actor, supplier, open_bill):
        service.add_payment(open_bill.id, PaymentCreate(amount=Decimal("3390")), actor)

        with pytest.raises(ConflictError):
            service.create_debit_note(DebitNoteCreate(
                supplier_id=supplier.id, bill_id=open_bill.id, number="ND-3",
                reason="Tarde", subtotal=Decimal("100")
            ), actor)

    def test_standalone_note(self, service, actor, supplier):
        note = service.create_debit_note(DebitNoteCreate(
            supplier_id=supplier.id, number="ND-4", reason="Intereses", subtotal=Decimal("200")
        ), actor).document

        assert note.bill_id is None
        assert note.total == Decimal("226.00")
        assert service.get_debit_notes(supplier_id=supplier.id)[0].id == note.id

    def test_lines_locked_once_note_exists(self, service, actor, supplier, open_bill):
        service.create_debit_note(DebitNoteCreate(
            supplier_id=supplier.id, bill_id=open_bill.id, number="ND-5",
            reason="Flete", subtotal=Decimal("100")
        ), actor)

        with pytest.raises(ConflictError):
            service.update_bill_lines(open_bill.id, [
                BillLineItemCreate(description="Otro", quantity=Decimal("1"), unit_price=Decimal("10"))
            ], actor)

    def test_duplicate_note_number(self, service, actor, supplier):
        data = DebitNoteCreate(supplier_id=supplier.id, number="ND-6", reason="Intereses", subtotal=Decimal("10"))
        service.create_debit_note(data, actor)
        with pytest.raises(ConflictError):
            service.create_debit_note(data, actor)


class TestBillEndpoints:
    def test_create_and_pay(self, api_client, auth_headers, supplier, coffee, credit_term):
        response = api_client.post("/bills/", headers=auth_headers, json={
            "supplier_id": str(supplier.id),
            "number": "FP-9",
            "payment_term_id": str(credit_term.id),
            "items": [{"product_id": str(coffee.id), "quantity": "1"}]
        })
        assert response.status_code == 201
        bill = response.json()["bill"]
        assert Decimal(bill["total"]) == Decimal("678.00")

        response = api_client.post(f"/bills/{bill['id']}/payments", headers=auth_headers, json={"amount": "678"})
        assert response.status_code == 201
        assert response.json()["new_status"] == "paid"

        payments = api_client.get(f"/bills/{bill['id']}/payments", headers=auth_headers).json()
        assert len(payments) == 1

    def test_debit_note_endpoint(self, api_client, auth_headers, supplier, open_bill):
        response = api_client.post("/debit-notes/", headers=auth_headers, json={
            "supplier_id": str(supplier.id),
            "bill_id": str(open_bill.id),
            "number": "ND-10",
            "reason": "Flete",
            "subtotal": "100"
        })
        assert response.status_code == 201
        assert Decimal(response.json()["debit_note"]["total"]) == Decimal("113.00")

        notes = api_client.get("/debit-notes/", headers=auth_headers, params={"bill_id": str(open_bill.id)}).json()
        assert [n["number"] for n in notes] == ["ND-10"]
