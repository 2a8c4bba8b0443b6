"""
Tests del módulo de Facturas de venta

- Creación: precios, impuestos, consecutivo, inventario y contado
- Edición de líneas y anulación con reversión de inventario
- Auditoría no bloqueante
- Endpoints
"""
import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import AuditWriteFailure, ConflictError, NotFoundError, ValidationError
from app.modules.audit.models import AuditLogEntry
from app.modules.billing.schemas import PaymentCreate
from app.modules.billing.states import DocumentStatus, FiscalStatus
from app.modules.inventory.service import InventoryService
from app.modules.invoices.schemas import InvoiceCreate, InvoiceFilters, InvoiceLineItemCreate
from app.modules.invoices.service import InvoiceService
from app.modules.pricing.schemas import PriceOverrideCreate
from app.modules.pricing.service import PriceOverrideService


class FailingSink:
    def __init__(self):
        self.calls = 0

    def write(self, entry):
        self.calls += 1
        raise AuditWriteFailure("bitácora fuera de línea")


class OfflineStreamSink:
    """Stream externo caído: lanza un error que no es de la jerarquía propia."""

    def write(self, entry):
        raise ConnectionError("collector:5140 connection refused")


def stock_of(db, product):
    return InventoryService(db).get_stock(product.id)


@pytest.fixture
def service(db_session):
    return InvoiceService(db_session)


class TestCreateInvoice:
    def test_credit_invoice_totals_and_stock(self, db_session, service, actor, customer, coffee, credit_term):
        result = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"product_id": coffee.id, "quantity": "2"}]
        ), actor)
        invoice = result.document

        assert invoice.number == "FE-000001"
        assert len(invoice.consecutive) == 20
        assert invoice.consecutive.endswith("0000000001")
        assert invoice.total == Decimal("2260.00")
        assert invoice.outstanding_balance == Decimal("2260.00")
        assert invoice.status == DocumentStatus.PENDING
        assert invoice.fiscal_status == FiscalStatus.NOT_SUBMITTED
        assert invoice.clave is None
        assert invoice.due_date == invoice.issue_date + timedelta(days=30)
        assert stock_of(db_session, coffee) == Decimal("8")
        assert [o.status for o in result.stock.outcomes] == ["applied"]
        assert result.warnings == []

    def test_line_snapshot_from_product(self, service, actor, customer, coffee, credit_term):
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"product_id": coffee.id, "quantity": "1"}]
        ), actor).document

        line = invoice.line_items[0]
        assert line.description == coffee.name
        assert line.fiscal_code == coffee.fiscal_code
        assert line.catalog_price == Decimal("1000.00")
        assert line.discount_kind == "none"
        assert line.tax_rate == Decimal("13.00")

    def test_numbers_are_sequential(self, service, actor, customer, credit_term):
        numbers = [
            service.create_invoice(InvoiceCreate(
                customer_id=customer.id,
                payment_term_id=credit_term.id,
                items=[{"description": "Servicio", "quantity": "1", "unit_price": "10"}]
            ), actor).document.number
            for _ in range(3)
        ]
        assert numbers == ["FE-000001", "FE-000002", "FE-000003"]

    def test_cash_invoice_is_paid_with_implicit_payment(self, service, actor, customer, coffee, cash_term):
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=cash_term.id,
            due_date=None,
            items=[{"product_id": coffee.id, "quantity": "1"}]
        ), actor).document

        assert invoice.status == DocumentStatus.PAID
        assert invoice.outstanding_balance == Decimal("0")
        assert invoice.due_date is None
        assert len(invoice.payments) == 1
        payment = invoice.payments[0]
        assert payment.is_automatic
        assert payment.amount == Decimal("1130.00")

    def test_client_price_override_applies(self, db_session, service, actor, customer, coffee, credit_term):
        PriceOverrideService(db_session).create_override(PriceOverrideCreate(
            client_id=customer.id, product_id=coffee.id, discount_pct=Decimal("10")
        ))
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[
                {"product_id": coffee.id, "quantity": "1"},
                {"product_id": coffee.id, "quantity": "1", "unit_price": "1000"},
            ]
        ), actor).document

        discounted, explicit = invoice.line_items
        assert discounted.unit_price == Decimal("900.00")
        assert discounted.discount_kind == "percentage_discount"
        assert explicit.unit_price == Decimal("1000.00")
        assert explicit.discount_kind == "none"

    def test_provider_only_contact_rejected(self, service, actor, supplier):
        with pytest.raises(ValidationError):
            service.create_invoice(InvoiceCreate(
                customer_id=supplier.id,
                items=[{"description": "Servicio", "quantity": "1", "unit_price": "10"}]
            ), actor)

    def test_unknown_product_rolls_back_everything(self, db_session, service, actor, customer, coffee):
        with pytest.raises(NotFoundError):
            service.create_invoice(InvoiceCreate(
                customer_id=customer.id,
                items=[
                    {"product_id": coffee.id, "quantity": "1"},
                    {"product_id": uuid4(), "quantity": "1"},
                ]
            ), actor)
        assert service.get_invoices(InvoiceFilters()).total == 0
        assert stock_of(db_session, coffee) == Decimal("10")

    def test_free_text_line_requires_price(self):
        with pytest.raises(ValueError):
            InvoiceLineItemCreate(description="Servicio", quantity=Decimal("1"))

    def test_audit_entry_written_after_commit(self, db_session, service, actor, customer, credit_term):
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"description": "Servicio", "quantity": "1", "unit_price": "10"}]
        ), actor).document

        entry = db_session.query(AuditLogEntry).filter(AuditLogEntry.record_id == str(invoice.id)).one()
        assert entry.action == "INSERT"
        assert entry.user_id == actor.user_id
        assert entry.old_values is None
        assert entry.new_values["total"] == "11.30"
        assert len(entry.new_values["lines"]) == 1


class TestAuditFailure:
    def test_payment_survives_audit_failure(self, db_session, actor, customer, credit_term):
        sink = FailingSink()
        service = InvoiceService(db_session, audit_sink=sink)
        result = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"description": "Servicio", "quantity": "1", "unit_price": "1000", "tax_rate": "0"}]
        ), actor)
        assert len(result.warnings) == 1

        payment = service.add_payment(result.document.id, PaymentCreate(amount=Decimal("400")), actor)

        assert sink.calls == 2
        assert len(payment.warnings) == 1
        assert "Auditoría no registrada" in payment.warnings[0]
        invoice = InvoiceService(db_session).get_invoice_by_id(result.document.id)
        db_session.refresh(invoice)
        assert invoice.outstanding_balance == Decimal("600.00")
        assert invoice.status == DocumentStatus.PARTIAL
        assert len(invoice.payments) == 1

    def test_payment_survives_unexpected_sink_error(self, db_session, actor, customer, credit_term):
        invoice = InvoiceService(db_session).create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"description": "Servicio", "quantity": "1", "unit_price": "1000", "tax_rate": "0"}]
        ), actor).document

        service = InvoiceService(db_session, audit_sink=OfflineStreamSink())
        payment = service.add_payment(invoice.id, PaymentCreate(amount=Decimal("400")), actor)

        assert payment.new_balance == Decimal("600.00")
        assert "ConnectionError" in payment.warnings[0]
        db_session.refresh(invoice)
        assert invoice.outstanding_balance == Decimal("600.00")
        assert len(invoice.payments) == 1


class TestUpdateLines:
    def test_replace_lines_moves_stock_and_resets_balance(self, db_session, service, actor, customer, coffee, sugar, credit_term):
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"product_id": coffee.id, "quantity": "2"}]
        ), actor).document

        result = service.update_invoice_lines(invoice.id, [
            InvoiceLineItemCreate(product_id=sugar.id, quantity=Decimal("4"))
        ], actor)

        updated = result.document
        assert len(updated.line_items) == 1
        assert updated.subtotal == Decimal("3400.00")
        assert updated.tax_amount == Decimal("34.00")
        assert updated.total == Decimal("3434.00")
        assert updated.outstanding_balance == updated.total
        assert stock_of(db_session, coffee) == Decimal("10")
        assert stock_of(db_session, sugar) == Decimal("16")

    def test_cannot_edit_after_payment(self, service, actor, customer, credit_term):
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"description": "Servicio", "quantity": "1", "unit_price": "1000"}]
        ), actor).document
        service.add_payment(invoice.id, PaymentCreate(amount=Decimal("100")), actor)

        with pytest.raises(ConflictError):
            service.update_invoice_lines(invoice.id, [
                InvoiceLineItemCreate(description="Otro", quantity=Decimal("1"), unit_price=Decimal("5"))
            ], actor)


class TestAnnulInvoice:
    def test_annul_restores_stock_and_zeroes_balance(self, db_session, service, actor, customer, coffee, credit_term):
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"product_id": coffee.id, "quantity": "3"}]
        ), actor).document
        assert stock_of(db_session, coffee) == Decimal("7")

        result = service.annul_invoice(invoice.id, "Factura emitida por error", actor)

        assert result.document.status == DocumentStatus.ANNULLED
        assert result.document.outstanding_balance == Decimal("0")
        assert result.document.annulment_reason == "Factura emitida por error"
        assert stock_of(db_session, coffee) == Decimal("10")

    def test_annul_is_idempotent(self, db_session, service, actor, customer, coffee, credit_term):
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"product_id": coffee.id, "quantity": "3"}]
        ), actor).document

        service.annul_invoice(invoice.id, "Duplicada", actor)
        second = service.annul_invoice(invoice.id, "Duplicada", actor)

        assert second.stock is None
        assert stock_of(db_session, coffee) == Decimal("10")
        annul_entries = db_session.query(AuditLogEntry).filter(
            AuditLogEntry.record_id == str(invoice.id),
            AuditLogEntry.action == "ANNUL"
        ).count()
        assert annul_entries == 1

    def test_paid_invoice_can_be_annulled_with_reason(self, service, actor, customer, cash_term):
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=cash_term.id,
            items=[{"description": "Servicio", "quantity": "1", "unit_price": "100"}]
        ), actor).document
        assert invoice.status == DocumentStatus.PAID

        result = service.annul_invoice(invoice.id, "Corrección administrativa", actor)
        assert result.document.status == DocumentStatus.ANNULLED


class TestInvoiceList:
    def test_overdue_filter_includes_unreconciled(self, service, actor, customer, credit_term, last_month):
        service.create_invoice(InvoiceCreate(
            customer_id=customer.id, payment_term_id=credit_term.id, issue_date=last_month,
            items=[{"description": "Vencida", "quantity": "1", "unit_price": "10"}]
        ), actor)
        service.create_invoice(InvoiceCreate(
            customer_id=customer.id, payment_term_id=credit_term.id,
            items=[{"description": "Al día", "quantity": "1", "unit_price": "10"}]
        ), actor)

        overdue = service.get_invoices(InvoiceFilters(status=DocumentStatus.OVERDUE))
        pending = service.get_invoices(InvoiceFilters(status=DocumentStatus.PENDING))

        assert overdue.total == 1
        assert overdue.invoices[0].effective_status == DocumentStatus.OVERDUE
        assert pending.total == 1
        assert overdue.counts_by_status["overdue"] == 1
        assert overdue.counts_by_status["pending"] == 1


class TestInvoiceEndpoints:
    def test_create_pay_and_read_history(self, api_client, auth_headers, customer, coffee, credit_term):
        response = api_client.post("/invoices/", headers=auth_headers, json={
            "customer_id": str(customer.id),
            "payment_term_id": str(credit_term.id),
            "items": [{"product_id": str(coffee.id), "quantity": "2"}]
        })
        assert response.status_code == 201
        body = response.json()
        invoice_id = body["invoice"]["id"]
        assert Decimal(body["invoice"]["total"]) == Decimal("2260.00")
        assert body["invoice"]["status"] == "pending"
        assert body["stock"]["partial"] is False

        response = api_client.post(f"/invoices/{invoice_id}/payments", headers=auth_headers, json={"amount": "2260"})
        assert response.status_code == 201
        assert response.json()["new_status"] == "paid"

        response = api_client.post(f"/invoices/{invoice_id}/payments", headers=auth_headers, json={"amount": "1"})
        assert response.status_code == 409

        history = api_client.get(f"/invoices/{invoice_id}/history", headers=auth_headers).json()
        assert sorted(entry["action"] for entry in history) == ["INSERT", "PAYMENT"]

    def test_overpayment_returns_400_with_balance(self, api_client, auth_headers, customer, credit_term):
        invoice_id = api_client.post("/invoices/", headers=auth_headers, json={
            "customer_id": str(customer.id),
            "payment_term_id": str(credit_term.id),
            "items": [{"description": "Servicio", "quantity": "1", "unit_price": "100", "tax_rate": "0"}]
        }).json()["invoice"]["id"]

        response = api_client.post(f"/invoices/{invoice_id}/payments", headers=auth_headers, json={"amount": "150"})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["outstanding_balance"] == "100.00"

    def test_unknown_invoice_returns_404(self, api_client, auth_headers):
        response = api_client.get(f"/invoices/{uuid4()}", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_annul_endpoint(self, api_client, auth_headers, customer, credit_term):
        invoice_id = api_client.post("/invoices/", headers=auth_headers, json={
            "customer_id": str(customer.id),
            "payment_term_id": str(credit_term.id),
            "items": [{"description": "Servicio", "quantity": "1", "unit_price": "100"}]
        }).json()["invoice"]["id"]

        response = api_client.post(f"/invoices/{invoice_id}/annul", headers=auth_headers, json={"reason": "Error"})
        assert response.status_code == 200
        assert response.json()["invoice"]["status"] == "annulled"
        assert Decimal(response.json()["invoice"]["outstanding_balance"]) == Decimal("0")
