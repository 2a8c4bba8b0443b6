"""
Tests de facturación electrónica

- Consecutivo y clave numérica
- Validación y armado del comprobante
- Interpretación de respuestas de Hacienda
- Gateway HTTP (httpx.MockTransport)
- Envío de facturas y estado fiscal
"""
import base64
import json
import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import httpx

from app.common.exceptions import (
    ConflictError, DependencyError, FiscalValidationError, ValidationError
)
from app.modules.billing.models import PaymentMethod
from app.modules.billing.states import DocumentStatus, FiscalStatus
from app.modules.fiscal.adapter import (
    ACCEPTED, PENDING, REJECTED, amount5, interpret_response, prepare_submission
)
from app.modules.fiscal.clave import build_consecutive, generate_clave
from app.modules.fiscal.gateway import HaciendaGateway
from app.modules.fiscal.schemas import EmitterProfileIn, FiscalCodeCreate
from app.modules.fiscal.service import FiscalCatalogService, FiscalSubmissionService
from app.modules.invoices.schemas import InvoiceCreate
from app.modules.invoices.service import InvoiceService


EMITTER = {
    "name": "Tostadora Ally S.A.",
    "commercial_name": "Café Ally",
    "id_type": "02",
    "id_number": "3101555666",
    "economic_activity_code": "155401",
    "province": "1",
    "canton": "01",
    "district": "01",
    "email": "facturacion@ally.cr",
}


class FakeGateway:
    """Gateway en memoria que devuelve respuestas predefinidas."""

    def __init__(self, response=None, status=None, error=None):
        self.response = response or {"status_code": 202}
        self.status = status or {"status_code": 200, "ind-estado": "aceptado"}
        self.error = error
        self.sent = []

    def send(self, payload, signed_document):
        self.sent.append((payload, signed_document))
        if self.error:
            raise self.error
        return dict(self.response, clave=payload["clave"])

    def query_status(self, clave):
        return dict(self.status, clave=clave)


def fiscal_line(**overrides):
    values = dict(
        fiscal_code="2391201000000", quantity=Decimal("2"), unit_price=Decimal("1000"),
        tax_rate=Decimal("13"), description="Café molido 500g", unit_of_measure="Unid"
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def fiscal_invoice(**overrides):
    values = dict(
        number="FE-000007", status=DocumentStatus.PENDING, clave=None,
        issue_date=date(2024, 3, 5), consecutive=build_consecutive(7),
        payment_term=None, payment_method=PaymentMethod.CASH, currency="CRC"
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def known_codes(code):
    return object() if code in ("2391201000000", "2351000000100") else None


@pytest.fixture
def receiver():
    return SimpleNamespace(name="Distribuidora La Sabana S.A.", id_type="02",
                           id_number="3101123456", email="compras@lasabana.cr")


@pytest.fixture
def emitter():
    return SimpleNamespace(other_signs=None, phone=None, **EMITTER)


@pytest.fixture
def fiscal_setup(db_session):
    catalog = FiscalCatalogService(db_session)
    catalog.save_emitter_profile(EmitterProfileIn(**EMITTER))
    catalog.create_fiscal_code(FiscalCodeCreate(code="2391201000000", description="Café tostado y molido"))
    catalog.create_fiscal_code(FiscalCodeCreate(code="2351000000100", description="Azúcar"))
    return catalog


@pytest.fixture
def invoice(db_session, actor, customer, coffee, credit_term):
    return InvoiceService(db_session).create_invoice(InvoiceCreate(
        customer_id=customer.id,
        payment_term_id=credit_term.id,
        items=[{"product_id": coffee.id, "quantity": "2"}]
    ), actor).document


# ===== CLAVE =====

class TestClave:
    def test_consecutive_layout(self):
        assert build_consecutive(7) == "00100001010000000007"
        assert build_consecutive(42, branch="2", terminal="3") == "00200003010000000042"

    def test_clave_layout(self):
        clave = generate_clave(date(2024, 3, 5), "3-101-123456", build_consecutive(7), security_code="12345678")

        assert len(clave) == 50
        assert clave[:3] == "506"
        assert clave[3:9] == "050324"
        assert clave[9:21] == "003101123456"
        assert clave[21:41] == "00100001010000000007"
        assert clave[41] == "1"
        assert clave[42:] == "12345678"

    def test_security_code_is_random_by_default(self):
        first = generate_clave(date(2024, 3, 5), "3101123456", build_consecutive(1))
        assert len(first) == 50
        assert first.isdigit()


# ===== PREPARE SUBMISSION =====

class TestPrepareSubmission:
    def test_payload_amounts_have_five_decimals(self, emitter, receiver):
        payload = prepare_submission(
            fiscal_invoice(), emitter, receiver, [fiscal_line()], known_codes,
            security_code="00000001"
        )

        line = payload.lines[0]
        assert line["unit_price"] == "1000.00000"
        assert line["subtotal"] == "2000.00000"
        assert line["tax"] == {"code": "01", "rate": "13.00", "amount": "260.00000"}
        assert line["line_total"] == "2260.00000"
        assert payload.summary["total_taxed"] == "2000.00000"
        assert payload.summary["document_total"] == "2260.00000"
        assert payload.sale_condition == "01"
        assert payload.credit_term == 0
        assert payload.clave.endswith("00000001")
        assert payload.emitter["phone_country_code"] == "506"

    def test_exempt_line_goes_to_exempt_totals(self, emitter, receiver):
        payload = prepare_submission(
            fiscal_invoice(), emitter, receiver,
            [fiscal_line(), fiscal_line(fiscal_code="2351000000100", tax_rate=Decimal("0"), quantity=Decimal("1"))],
            known_codes
        )
        assert payload.summary["total_exempt"] == "1000.00000"
        assert payload.summary["total_sale"] == "3000.00000"
        assert payload.summary["total_tax"] == "260.00000"

    def test_credit_term_in_payload(self, emitter, receiver):
        term = SimpleNamespace(sale_condition="02", credit_days=30, is_cash=False)
        payload = prepare_submission(fiscal_invoice(payment_term=term), emitter, receiver, [fiscal_line()], known_codes)
        assert payload.sale_condition == "02"
        assert payload.credit_term == 30

    def test_existing_clave_is_reused(self, emitter, receiver):
        clave = "5" * 50
        payload = prepare_submission(fiscal_invoice(clave=clave), emitter, receiver, [fiscal_line()], known_codes)
        assert payload.clave == clave

    def test_every_issue_is_reported(self, receiver):
        receiver.email = None
        lines = [
            fiscal_line(fiscal_code=None),
            fiscal_line(fiscal_code="12345"),
            fiscal_line(fiscal_code="9999999999999"),
        ]

        with pytest.raises(FiscalValidationError) as exc_info:
            prepare_submission(fiscal_invoice(status=DocumentStatus.ANNULLED), None, receiver, lines, known_codes)

        issues = exc_info.value.issues
        assert len(issues) == 6
        assert any("anulada" in issue for issue in issues)
        assert any(issue.startswith("Emisor") for issue in issues)
        assert "Receptor: falta correo electrónico" in issues
        assert "Línea 1: falta el código CABYS" in issues
        assert "Línea 2: el código CABYS 12345 debe tener 13 dígitos" in issues
        assert "Línea 3: el código CABYS 9999999999999 no existe en el catálogo" in issues
        assert exc_info.value.to_dict()["details"]["issues"] == issues

    def test_invalid_emitter_identification(self, emitter, receiver):
        emitter.id_number = "123"
        with pytest.raises(FiscalValidationError) as exc_info:
            prepare_submission(fiscal_invoice(), emitter, receiver, [fiscal_line()], known_codes)
        assert exc_info.value.issues == ["Emisor: identificación 123 inválida para el tipo 02"]

    def test_amount5_rounds_half_up(self):
        assert amount5(Decimal("0.000005")) == "0.00001"
        assert amount5(3) == "3.00000"


# ===== INTERPRET RESPONSE =====

class TestInterpretResponse:
    def test_authority_states(self):
        assert interpret_response({"ind-estado": "aceptado"}).status == ACCEPTED
        assert interpret_response({"ind-estado": "RECHAZADO", "detalle": "Firma inválida"}).message == "Firma inválida"
        assert interpret_response({"ind-estado": "rechazado"}).status == REJECTED
        assert interpret_response({"ind-estado": "procesando"}).status == PENDING
        assert interpret_response({"ind-estado": "recibido"}).status == PENDING

    def test_http_codes(self):
        received = interpret_response({"status_code": 202, "location": "https://hacienda/recepcion/506"})
        assert received.status == PENDING
        assert received.authority_reference == "https://hacienda/recepcion/506"

        rejected = interpret_response({"status_code": 400, "x-error-cause": "Clave duplicada"})
        assert rejected.status == REJECTED
        assert rejected.message == "Clave duplicada"

        assert interpret_response({"status_code": 404}).status == PENDING

    def test_reference_falls_back_to_clave(self):
        assert interpret_response({"status_code": 200, "clave": "506"}).authority_reference == "506"


# ===== GATEWAY =====

class TestHaciendaGateway:
    def payload(self, emitter, receiver):
        return prepare_submission(fiscal_invoice(), emitter, receiver, [fiscal_line()], known_codes).to_dict()

    def gateway(self, handler, **kwargs):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return HaciendaGateway(base_url="https://hacienda.test/recepcion/", access_token="token-1", client=client, **kwargs)

    def test_send_posts_reception_body(self, emitter, receiver):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["auth"] = request.headers.get("Authorization")
            captured["body"] = json.loads(request.content)
            return httpx.Response(202, headers={"Location": "https://hacienda.test/recepcion/abc"})

        payload = self.payload(emitter, receiver)
        raw = self.gateway(handler).send(payload, b"<FacturaElectronica/>")

        assert captured["url"] == "https://hacienda.test/recepcion"
        assert captured["auth"] == "Bearer token-1"
        body = captured["body"]
        assert body["clave"] == payload["clave"]
        assert body["emisor"] == {"tipoIdentificacion": "02", "numeroIdentificacion": "3101555666"}
        assert body["receptor"]["numeroIdentificacion"] == "3101123456"
        assert base64.b64decode(body["comprobanteXml"]) == b"<FacturaElectronica/>"
        assert raw["status_code"] == 202
        assert raw["location"] == "https://hacienda.test/recepcion/abc"
        assert interpret_response(raw).status == PENDING

    def test_rejection_is_returned_not_raised(self, emitter, receiver):
        def handler(request):
            return httpx.Response(400, headers={"X-Error-Cause": "Comprobante duplicado"})

        raw = self.gateway(handler).send(self.payload(emitter, receiver), b"doc")
        response = interpret_response(raw)
        assert response.status == REJECTED
        assert response.message == "Comprobante duplicado"

    def test_query_status(self):
        def handler(request):
            assert request.method == "GET"
            assert str(request.url).endswith("/recepcion/" + "1" * 50)
            return httpx.Response(200, json={"clave": "1" * 50, "ind-estado": "aceptado"})

        raw = self.gateway(handler).query_status("1" * 50)
        assert interpret_response(raw).status == ACCEPTED

    def test_timeout_is_dependency_error(self, emitter, receiver):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(DependencyError) as exc_info:
            self.gateway(handler, timeout=1).send(self.payload(emitter, receiver), b"doc")
        assert exc_info.value.dependency == "hacienda"

    def test_server_error_is_dependency_error(self):
        with pytest.raises(DependencyError):
            self.gateway(lambda request: httpx.Response(503)).query_status("1" * 50)


# ===== SUBMISSION SERVICE =====

class TestFiscalSubmission:
    def test_accepted_submission(self, db_session, actor, fiscal_setup, invoice):
        gateway = FakeGateway(response={"status_code": 200, "ind-estado": "aceptado"})
        submitted, warnings = FiscalSubmissionService(db_session, gateway=gateway).submit(invoice.id, actor)

        assert warnings == []
        assert submitted.fiscal_status == FiscalStatus.ACCEPTED
        assert len(submitted.clave) == 50
        assert submitted.clave[21:41] == submitted.consecutive
        assert submitted.fiscal_submitted_at is not None
        assert submitted.status == DocumentStatus.PENDING
        assert submitted.outstanding_balance == Decimal("2260.00")

        payload, signed = gateway.sent[0]
        assert payload["summary"]["document_total"] == "2260.00000"
        assert json.loads(signed)["clave"] == submitted.clave

    def test_accepted_invoice_cannot_be_resubmitted(self, db_session, actor, fiscal_setup, invoice):
        service = FiscalSubmissionService(db_session, gateway=FakeGateway(response={"ind-estado": "aceptado"}))
        service.submit(invoice.id, actor)
        with pytest.raises(ConflictError):
            service.submit(invoice.id, actor)

    def test_invoice_awaiting_answer_cannot_be_resubmitted(self, db_session, actor, fiscal_setup, invoice):
        gateway = FakeGateway()
        service = FiscalSubmissionService(db_session, gateway=gateway)
        submitted, _ = service.submit(invoice.id, actor)
        assert submitted.fiscal_status == FiscalStatus.SUBMITTED

        with pytest.raises(ConflictError) as exc_info:
            service.submit(invoice.id, actor)
        assert exc_info.value.details["fiscal_status"] == "submitted"
        assert len(gateway.sent) == 1

    def test_failed_submission_can_be_retried_with_same_clave(self, db_session, actor, fiscal_setup, invoice):
        offline = FakeGateway(error=DependencyError("hacienda", "Hacienda no respondió"))
        with pytest.raises(DependencyError):
            FiscalSubmissionService(db_session, gateway=offline).submit(invoice.id, actor)
        clave = invoice.clave

        gateway = FakeGateway(response={"ind-estado": "aceptado"})
        accepted, _ = FiscalSubmissionService(db_session, gateway=gateway).submit(invoice.id, actor)

        assert accepted.fiscal_status == FiscalStatus.ACCEPTED
        assert accepted.clave == clave
        assert len(gateway.sent) == 1

    def test_pending_then_refresh(self, db_session, actor, fiscal_setup, invoice):
        service = FiscalSubmissionService(db_session, gateway=FakeGateway())
        submitted, _ = service.submit(invoice.id, actor)
        assert submitted.fiscal_status == FiscalStatus.SUBMITTED
        clave = submitted.clave

        refreshed, _ = service.refresh_status(invoice.id, actor)
        assert refreshed.fiscal_status == FiscalStatus.ACCEPTED
        assert refreshed.clave == clave

    def test_rejected_keeps_payment_status(self, db_session, actor, fiscal_setup, customer, coffee, cash_term):
        paid = InvoiceService(db_session).create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=cash_term.id,
            items=[{"product_id": coffee.id, "quantity": "1"}]
        ), actor).document

        gateway = FakeGateway(response={"status_code": 400, "x-error-cause": "Receptor no registrado"})
        rejected, _ = FiscalSubmissionService(db_session, gateway=gateway).submit(paid.id, actor)

        assert rejected.fiscal_status == FiscalStatus.REJECTED
        assert rejected.fiscal_message == "Receptor no registrado"
        assert rejected.status == DocumentStatus.PAID
        assert rejected.outstanding_balance == Decimal("0")

    def test_free_text_line_is_not_sent(self, db_session, actor, fiscal_setup, customer, credit_term):
        invoice = InvoiceService(db_session).create_invoice(InvoiceCreate(
            customer_id=customer.id,
            payment_term_id=credit_term.id,
            items=[{"description": "Servicio", "quantity": "1", "unit_price": "100"}]
        ), actor).document

        gateway = FakeGateway()
        with pytest.raises(FiscalValidationError) as exc_info:
            FiscalSubmissionService(db_session, gateway=gateway).submit(invoice.id, actor)
        assert exc_info.value.issues == ["Línea 1: falta el código CABYS"]
        assert gateway.sent == []
        assert invoice.fiscal_status == FiscalStatus.NOT_SUBMITTED
        assert invoice.clave is None

    def test_gateway_failure_marks_failed(self, db_session, actor, fiscal_setup, invoice):
        gateway = FakeGateway(error=DependencyError("hacienda", "Hacienda no respondió"))
        service = FiscalSubmissionService(db_session, gateway=gateway)

        with pytest.raises(DependencyError):
            service.submit(invoice.id, actor)

        failed = service.get_invoice(invoice.id)
        assert failed.fiscal_status == FiscalStatus.FAILED
        assert failed.fiscal_message == "Hacienda no respondió"
        assert failed.status == DocumentStatus.PENDING

    def test_missing_emitter_profile(self, db_session, actor, invoice):
        gateway = FakeGateway()
        with pytest.raises(FiscalValidationError) as exc_info:
            FiscalSubmissionService(db_session, gateway=gateway).submit(invoice.id, actor)
        assert "Emisor: no hay un perfil de emisor configurado" in exc_info.value.issues
        assert gateway.sent == []

    def test_refresh_requires_submission(self, db_session, actor, invoice):
        with pytest.raises(ValidationError):
            FiscalSubmissionService(db_session, gateway=FakeGateway()).refresh_status(invoice.id, actor)

    def test_disabled_without_gateway(self, db_session, actor, invoice):
        with pytest.raises(DependencyError):
            FiscalSubmissionService(db_session).submit(invoice.id, actor)


# ===== CATALOG AND ENDPOINTS =====

class TestFiscalCatalog:
    def test_duplicate_code(self, fiscal_setup):
        with pytest.raises(ConflictError):
            fiscal_setup.create_fiscal_code(FiscalCodeCreate(code="2391201000000", description="Otro"))

    def test_search_codes(self, fiscal_setup):
        assert [c.code for c in fiscal_setup.get_fiscal_codes(search="239")] == ["2391201000000"]
        assert [c.code for c in fiscal_setup.get_fiscal_codes(search="azúcar")] == ["2351000000100"]

    def test_emitter_profile_is_replaced(self, fiscal_setup):
        fiscal_setup.save_emitter_profile(EmitterProfileIn(**dict(EMITTER, name="Tostadora Ally Dos S.A.")))
        assert fiscal_setup.require_emitter_profile().name == "Tostadora Ally Dos S.A."


class TestFiscalEndpoints:
    def test_emitter_profile(self, api_client, auth_headers):
        assert api_client.get("/fiscal/emitter-profile", headers=auth_headers).status_code == 404

        response = api_client.put("/fiscal/emitter-profile", headers=auth_headers, json=EMITTER)
        assert response.status_code == 200
        assert response.json()["id_number"] == "3101555666"

        assert api_client.get("/fiscal/emitter-profile", headers=auth_headers).json()["name"] == EMITTER["name"]

    def test_codes(self, api_client, auth_headers):
        response = api_client.post("/fiscal/codes", headers=auth_headers,
                                   json={"code": "2391201000000", "description": "Café"})
        assert response.status_code == 201
        assert api_client.get("/fiscal/codes/2391201000000", headers=auth_headers).status_code == 200
        assert api_client.get("/fiscal/codes/2391201000001", headers=auth_headers).status_code == 404

        bad = api_client.post("/fiscal/codes", headers=auth_headers, json={"code": "123", "description": "x"})
        assert bad.status_code == 422

    def test_status_and_disabled_submission(self, api_client, auth_headers, invoice):
        response = api_client.get(f"/fiscal/invoices/{invoice.id}/status", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["fiscal_status"] == "not_submitted"
        assert response.json()["consecutive"] == invoice.consecutive

        response = api_client.post(f"/fiscal/invoices/{invoice.id}/submit", headers=auth_headers)
        assert response.status_code == 503
        assert response.json()["details"]["dependency"] == "hacienda"
