"""
Tests del ciclo de cobro y pago

- Máquina de estados (clasificación y transiciones)
- Libro de pagos: saldo, estados, sobrepago, documentos anulados
- Bloqueo optimista y reintento único ante escrituras concurrentes
- Condiciones de pago y contado
- Reconciliación de vencidos
"""
import pytest
from datetime import date, timedelta
from decimal import Decimal

from app.common.exceptions import ConcurrentModificationError, ConflictError, IllegalTransitionError, ValidationError
from app.common.transactions import retry_on_conflict
from app.modules.billing.ledger import PaymentLedger
from app.modules.billing.models import PaymentMethod
from app.modules.billing.reconciliation import OverdueReconciler
from app.modules.billing.schemas import PaymentCreate
from app.modules.billing.service import PaymentTermService
from app.modules.billing.states import BillingStateMachine, DocumentFamily, DocumentStatus
from app.modules.invoices.models import Invoice
from app.modules.invoices.schemas import InvoiceCreate
from app.modules.invoices.service import InvoiceService


def create_invoice(db, actor, customer, items, **kwargs):
    data = InvoiceCreate(customer_id=customer.id, items=items, **kwargs)
    return InvoiceService(db).create_invoice(data, actor).document


@pytest.fixture
def machine():
    return BillingStateMachine()


class TestClassification:
    def test_settled_balance_is_paid(self, machine):
        assert machine.classify(Decimal("100"), Decimal("0")) == DocumentStatus.PAID
        assert machine.classify(Decimal("100"), Decimal("0.01")) == DocumentStatus.PAID

    def test_partial_and_pending(self, machine):
        assert machine.classify(Decimal("100"), Decimal("0.02")) == DocumentStatus.PARTIAL
        assert machine.classify(Decimal("100"), Decimal("100")) == DocumentStatus.PENDING

    def test_past_due_is_overdue(self, machine):
        today = date(2024, 6, 1)
        assert machine.classify(Decimal("100"), Decimal("40"), date(2024, 5, 1), today) == DocumentStatus.OVERDUE
        assert machine.classify(Decimal("100"), Decimal("0"), date(2024, 5, 1), today) == DocumentStatus.PAID

    def test_negative_balance_rejected(self, machine):
        with pytest.raises(ValidationError):
            machine.classify(Decimal("100"), Decimal("-1"))

    def test_effective_status_derives_overdue(self, machine):
        yesterday = date.today() - timedelta(days=1)
        assert machine.effective_status(DocumentStatus.PARTIAL, yesterday) == DocumentStatus.OVERDUE
        assert machine.effective_status(DocumentStatus.PAID, yesterday) == DocumentStatus.PAID
        assert machine.effective_status(DocumentStatus.PENDING, None) == DocumentStatus.PENDING


class TestTransitions:
    @pytest.mark.parametrize("current,target", [
        (DocumentStatus.PENDING, DocumentStatus.PARTIAL),
        (DocumentStatus.PENDING, DocumentStatus.PAID),
        (DocumentStatus.PARTIAL, DocumentStatus.OVERDUE),
        (DocumentStatus.OVERDUE, DocumentStatus.PAID),
        (DocumentStatus.OVERDUE, DocumentStatus.ANNULLED),
    ])
    def test_allowed(self, machine, current, target):
        assert machine.transition(current, target) == target

    @pytest.mark.parametrize("current,target", [
        (DocumentStatus.PAID, DocumentStatus.PENDING),
        (DocumentStatus.PAID, DocumentStatus.PARTIAL),
        (DocumentStatus.ANNULLED, DocumentStatus.PENDING),
        (DocumentStatus.PARTIAL, DocumentStatus.PENDING),
        (DocumentStatus.OVERDUE, DocumentStatus.PENDING),
    ])
    def test_illegal(self, machine, current, target):
        with pytest.raises(IllegalTransitionError) as exc:
            machine.transition(current, target)
        assert exc.value.details == {"current": current.value, "requested": target.value}

    def test_paid_to_annulled_requires_reason(self, machine):
        with pytest.raises(IllegalTransitionError):
            machine.transition(DocumentStatus.PAID, DocumentStatus.ANNULLED)
        assert machine.transition(DocumentStatus.PAID, DocumentStatus.ANNULLED, "Error de digitación") == DocumentStatus.ANNULLED

    def test_overdue_back_to_pending_only_by_reconciliation(self, machine):
        assert machine.transition(
            DocumentStatus.OVERDUE, DocumentStatus.PENDING, reconciliation=True
        ) == DocumentStatus.PENDING

    def test_same_state_is_noop(self, machine):
        assert machine.transition(DocumentStatus.ANNULLED, DocumentStatus.ANNULLED) == DocumentStatus.ANNULLED


class TestPaymentTerms:
    def test_defaults_seeded_once(self, db_session):
        service = PaymentTermService(db_session)
        service.ensure_defaults()
        service.ensure_defaults()
        codes = [term.code for term in service.list_terms()]
        assert codes.count("01") == 1
        assert service.cash_term().is_cash

    def test_credit_due_date_defaults_from_days(self, db_session, credit_term):
        issue = date(2024, 3, 1)
        term, due = PaymentTermService(db_session).resolve(credit_term.id, issue, None)
        assert term.id == credit_term.id
        assert due == date(2024, 3, 31)

    def test_cash_term_has_no_due_date(self, db_session, cash_term):
        _, due = PaymentTermService(db_session).resolve(cash_term.id, date(2024, 3, 1), date(2024, 4, 1))
        assert due is None

    def test_due_before_issue_rejected(self, db_session):
        with pytest.raises(ValidationError):
            PaymentTermService(db_session).resolve(None, date(2024, 3, 1), date(2024, 2, 1))

    def test_list_and_create_via_api(self, api_client, auth_headers, payment_terms):
        response = api_client.post("/billing/payment-terms", headers=auth_headers, json={
            "code": "02-90", "name": "Crédito 90 días", "credit_days": 90
        })
        assert response.status_code == 201
        codes = [t["code"] for t in api_client.get("/billing/payment-terms", headers=auth_headers).json()]
        assert "02-90" in codes and "01" in codes


class TestPaymentLedger:
    @pytest.fixture
    def invoice(self, db_session, actor, customer, credit_term):
        # 5000 + 13% = 5650
        return create_invoice(db_session, actor, customer, [
            {"description": "Servicio de consultoría", "quantity": "1", "unit_price": "5000", "tax_rate": "13"}
        ], payment_term_id=credit_term.id)

    @pytest.fixture
    def untaxed_invoice(self, db_session, actor, customer, credit_term):
        return create_invoice(db_session, actor, customer, [
            {"description": "Servicio exento", "quantity": "1", "unit_price": "5000", "tax_rate": "0"}
        ], payment_term_id=credit_term.id)

    def test_full_payment_marks_paid(self, db_session, actor, untaxed_invoice):
        ledger = PaymentLedger(db_session, DocumentFamily.RECEIVABLE)
        result = ledger.apply_payment(untaxed_invoice.id, Decimal("5000"), actor)

        assert result.new_balance == Decimal("0.00")
        assert result.new_status == DocumentStatus.PAID
        db_session.refresh(untaxed_invoice)
        assert untaxed_invoice.status == DocumentStatus.PAID
        assert untaxed_invoice.outstanding_balance == Decimal("0.00")

    def test_two_payments_partial_then_paid(self, db_session, actor, untaxed_invoice):
        ledger = PaymentLedger(db_session, DocumentFamily.RECEIVABLE)

        first = ledger.apply_payment(untaxed_invoice.id, Decimal("3000"), actor)
        assert first.new_status == DocumentStatus.PARTIAL
        assert first.new_balance == Decimal("2000.00")

        second = ledger.apply_payment(untaxed_invoice.id, Decimal("2000"), actor, method=PaymentMethod.TRANSFER)
        assert second.new_status == DocumentStatus.PAID
        assert second.new_balance == Decimal("0.00")

        payments = ledger.list_payments(untaxed_invoice.id)
        assert sum(p.amount for p in payments) == Decimal("5000.00")

    def test_overpayment_rejected_and_balance_unchanged(self, db_session, actor, invoice):
        ledger = PaymentLedger(db_session, DocumentFamily.RECEIVABLE)
        with pytest.raises(ValidationError) as exc:
            ledger.apply_payment(invoice.id, Decimal("5650.01"), actor)
        assert exc.value.details["outstanding_balance"] == "5650.00"

        db_session.refresh(invoice)
        assert invoice.outstanding_balance == Decimal("5650.00")
        assert invoice.status == DocumentStatus.PENDING
        assert ledger.list_payments(invoice.id) == []

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_non_positive_amount_rejected(self, db_session, actor, invoice, amount):
        with pytest.raises(ValidationError):
            PaymentLedger(db_session, DocumentFamily.RECEIVABLE).apply_payment(invoice.id, amount, actor)

    def test_payment_on_paid_document_is_conflict(self, db_session, actor, untaxed_invoice):
        ledger = PaymentLedger(db_session, DocumentFamily.RECEIVABLE)
        ledger.apply_payment(untaxed_invoice.id, Decimal("5000"), actor)
        with pytest.raises(ConflictError):
            ledger.apply_payment(untaxed_invoice.id, Decimal("1"), actor)

    def test_payment_on_annulled_document_is_conflict(self, db_session, actor, invoice):
        InvoiceService(db_session).annul_invoice(invoice.id, "Cliente canceló el pedido", actor)
        with pytest.raises(ConflictError):
            PaymentLedger(db_session, DocumentFamily.RECEIVABLE).apply_payment(invoice.id, Decimal("10"), actor)

    def test_currency_must_match(self, db_session, actor, invoice):
        with pytest.raises(ValidationError):
            PaymentLedger(db_session, DocumentFamily.RECEIVABLE).apply_payment(
                invoice.id, Decimal("10"), actor, currency="USD"
            )

    def test_payment_on_overdue_document(self, db_session, actor, customer, last_month, credit_term):
        invoice = create_invoice(db_session, actor, customer, [
            {"description": "Servicio", "quantity": "1", "unit_price": "1000", "tax_rate": "0"}
        ], payment_term_id=credit_term.id, issue_date=last_month)
        OverdueReconciler(db_session).run()
        db_session.refresh(invoice)
        assert invoice.status == DocumentStatus.OVERDUE

        result = PaymentLedger(db_session, DocumentFamily.RECEIVABLE).apply_payment(invoice.id, Decimal("400"), actor)
        assert result.new_status == DocumentStatus.OVERDUE
        result = PaymentLedger(db_session, DocumentFamily.RECEIVABLE).apply_payment(invoice.id, Decimal("600"), actor)
        assert result.new_status == DocumentStatus.PAID

    def test_add_payment_via_service(self, db_session, actor, invoice):
        result = InvoiceService(db_session).add_payment(
            invoice.id, PaymentCreate(amount=Decimal("650"), reference="TRX-1"), actor
        )
        assert result.new_balance == Decimal("5000.00")
        assert result.payment.reference == "TRX-1"
        assert result.warnings == []


class InterleavedWriter(BillingStateMachine):
    """
    Otra transacción sube la versión del documento justo después de que el
    libro lo leyó, en las primeras ``collisions`` llamadas.
    """

    def __init__(self, db, document_id, collisions=1):
        super().__init__()
        self.db = db
        self.document_id = document_id
        self.collisions = collisions
        self.calls = 0

    def classify(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.collisions:
            table = Invoice.__table__
            self.db.execute(
                table.update()
                .where(table.c.id == self.document_id)
                .values(version=table.c.version + 1)
            )
        return super().classify(*args, **kwargs)


class TestConcurrentPayments:
    @pytest.fixture
    def invoice(self, db_session, actor, customer, credit_term):
        return create_invoice(db_session, actor, customer, [
            {"description": "Servicio exento", "quantity": "1", "unit_price": "1000", "tax_rate": "0"}
        ], payment_term_id=credit_term.id)

    def test_stale_version_is_rejected(self, db_session, actor, invoice):
        version = invoice.version
        writer = InterleavedWriter(db_session, invoice.id)
        ledger = PaymentLedger(db_session, DocumentFamily.RECEIVABLE, state_machine=writer)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            ledger.apply_payment(invoice.id, Decimal("400"), actor)
        assert exc_info.value.http_status == 409

        db_session.refresh(invoice)
        assert invoice.version == version
        assert invoice.outstanding_balance == Decimal("1000.00")
        assert ledger.list_payments(invoice.id) == []

    def test_single_retry_applies_payment_once(self, db_session, actor, invoice):
        writer = InterleavedWriter(db_session, invoice.id, collisions=1)
        ledger = PaymentLedger(db_session, DocumentFamily.RECEIVABLE, state_machine=writer)

        result = retry_on_conflict(ledger.apply_payment, invoice.id, Decimal("400"), actor)

        assert writer.calls == 2
        assert result.new_balance == Decimal("600.00")
        assert result.new_status == DocumentStatus.PARTIAL
        assert len(ledger.list_payments(invoice.id)) == 1

    def test_gives_up_after_one_retry(self, db_session, actor, invoice):
        writer = InterleavedWriter(db_session, invoice.id, collisions=5)
        ledger = PaymentLedger(db_session, DocumentFamily.RECEIVABLE, state_machine=writer)

        with pytest.raises(ConcurrentModificationError):
            retry_on_conflict(ledger.apply_payment, invoice.id, Decimal("400"), actor)

        assert writer.calls == 2
        db_session.refresh(invoice)
        assert invoice.outstanding_balance == Decimal("1000.00")
        assert ledger.list_payments(invoice.id) == []

    def test_service_retries_and_never_overpays(self, db_session, actor, invoice):
        service = InvoiceService(db_session)
        writer = InterleavedWriter(db_session, invoice.id, collisions=1)
        service.ledger.state_machine = writer

        service.add_payment(invoice.id, PaymentCreate(amount=Decimal("1000")), actor)
        with pytest.raises(ConflictError):
            service.add_payment(invoice.id, PaymentCreate(amount=Decimal("1000")), actor)

        db_session.refresh(invoice)
        assert invoice.outstanding_balance == Decimal("0.00")
        assert invoice.status == DocumentStatus.PAID
        assert len(service.list_payments(invoice.id)) == 1

    def test_state_conflict_is_not_retried(self, db_session, actor, invoice):
        ledger = PaymentLedger(db_session, DocumentFamily.RECEIVABLE)
        ledger.apply_payment(invoice.id, Decimal("1000"), actor)
        attempts = []

        def pay(*args):
            attempts.append(args)
            return ledger.apply_payment(*args)

        with pytest.raises(ConflictError) as exc_info:
            retry_on_conflict(pay, invoice.id, Decimal("1"), actor)
        assert not isinstance(exc_info.value, ConcurrentModificationError)
        assert len(attempts) == 1


class TestOverdueReconciler:
    def test_moves_past_due_documents(self, db_session, actor, customer, credit_term, last_month):
        overdue = create_invoice(db_session, actor, customer, [
            {"description": "Vencida", "quantity": "1", "unit_price": "100"}
        ], payment_term_id=credit_term.id, issue_date=last_month)
        current = create_invoice(db_session, actor, customer, [
            {"description": "Al día", "quantity": "1", "unit_price": "100"}
        ], payment_term_id=credit_term.id)

        result = OverdueReconciler(db_session).run()

        assert result.moved_to_overdue == {"receivable": 1, "payable": 0}
        db_session.refresh(overdue)
        db_session.refresh(current)
        assert overdue.status == DocumentStatus.OVERDUE
        assert current.status == DocumentStatus.PENDING

    def test_second_run_is_stable(self, db_session, actor, customer, credit_term, last_month):
        create_invoice(db_session, actor, customer, [
            {"description": "Vencida", "quantity": "1", "unit_price": "100"}
        ], payment_term_id=credit_term.id, issue_date=last_month)
        OverdueReconciler(db_session).run()
        result = OverdueReconciler(db_session).run()
        assert result.moved_to_overdue["receivable"] == 0
        assert result.moved_from_overdue["receivable"] == 0

    def test_moves_back_when_due_date_no_longer_applies(self, db_session, actor, customer, credit_term, last_month):
        invoice = create_invoice(db_session, actor, customer, [
            {"description": "Vencida", "quantity": "1", "unit_price": "100"}
        ], payment_term_id=credit_term.id, issue_date=last_month)
        OverdueReconciler(db_session).run()

        # Corrida con fecha de corte anterior al vencimiento
        result = OverdueReconciler(db_session).run(invoice.due_date - timedelta(days=1))
        assert result.moved_from_overdue["receivable"] == 1
        db_session.refresh(invoice)
        assert invoice.status == DocumentStatus.PENDING

    def test_endpoint(self, api_client, auth_headers, db_session, actor, customer, credit_term, last_month):
        create_invoice(db_session, actor, customer, [
            {"description": "Vencida", "quantity": "1", "unit_price": "100"}
        ], payment_term_id=credit_term.id, issue_date=last_month)

        response = api_client.post("/billing/reconcile-overdue", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["moved_to_overdue"]["receivable"] == 1
        assert db_session.query(Invoice).one().status == DocumentStatus.OVERDUE
