"""
Adaptador de envío electrónico.

``prepare_submission`` valida una factura contra los requisitos de Hacienda y
arma el comprobante; ``interpret_response`` traduce la respuesta del API a
``accepted | rejected | pending``. No hace I/O: el catálogo CABYS llega como
función de búsqueda y el envío lo hace ``HaciendaGateway``.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional

from app.common.exceptions import FiscalValidationError
from app.common.validators import validate_costa_rica_id, validate_email, validate_fiscal_code
from app.core.config import settings
from app.modules.billing.models import SaleCondition
from app.modules.billing.states import DocumentStatus
from app.modules.fiscal.clave import generate_clave

FIVE_PLACES = Decimal("0.00001")
HUNDRED = Decimal("100")

EMITTER_REQUIRED_FIELDS = {
    "name": "nombre",
    "id_type": "tipo de identificación",
    "id_number": "número de identificación",
    "economic_activity_code": "código de actividad económica",
    "province": "provincia",
    "canton": "cantón",
    "district": "distrito",
    "email": "correo electrónico",
}
RECEIVER_REQUIRED_FIELDS = {
    "name": "nombre",
    "id_type": "tipo de identificación",
    "id_number": "número de identificación",
    "email": "correo electrónico",
}

ACCEPTED = "accepted"
REJECTED = "rejected"
PENDING = "pending"

_AUTHORITY_STATES = {
    "aceptado": ACCEPTED,
    "rechazado": REJECTED,
    "recibido": PENDING,
    "procesando": PENDING,
}


def amount5(value) -> str:
    """Monto con 5 decimales, como lo exige el comprobante."""
    return str(Decimal(value).quantize(FIVE_PLACES, rounding=ROUND_HALF_UP))


@dataclass
class SubmissionPayload:
    clave: str
    consecutive: str
    issue_datetime: str
    emitter: Dict[str, Any]
    receiver: Dict[str, Any]
    sale_condition: str
    credit_term: int
    payment_method: str
    currency: str
    lines: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AuthorityResponse:
    status: str
    authority_reference: Optional[str] = None
    message: Optional[str] = None


def _missing(profile, required: Dict[str, str], label: str) -> List[str]:
    issues = []
    for attr, name in required.items():
        value = getattr(profile, attr, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            issues.append(f"{label}: falta {name}")
    return issues


def validate_emitter(emitter) -> List[str]:
    if emitter is None:
        return ["Emisor: no hay un perfil de emisor configurado"]
    issues = _missing(emitter, EMITTER_REQUIRED_FIELDS, "Emisor")
    if emitter.id_number and not validate_costa_rica_id(emitter.id_type, emitter.id_number):
        issues.append(f"Emisor: identificación {emitter.id_number} inválida para el tipo {emitter.id_type}")
    if emitter.email and not validate_email(emitter.email):
        issues.append(f"Emisor: correo electrónico {emitter.email} inválido")
    return issues


def validate_receiver(receiver) -> List[str]:
    if receiver is None:
        return ["Receptor: la factura no tiene cliente"]
    issues = _missing(receiver, RECEIVER_REQUIRED_FIELDS, "Receptor")
    if receiver.id_number and receiver.id_type and not validate_costa_rica_id(receiver.id_type, receiver.id_number):
        issues.append(f"Receptor: identificación {receiver.id_number} inválida para el tipo {receiver.id_type}")
    if receiver.email and not validate_email(receiver.email):
        issues.append(f"Receptor: correo electrónico {receiver.email} inválido")
    return issues


def validate_lines(line_items, lookup_fiscal_code: Callable[[str], Any]) -> List[str]:
    if not line_items:
        return ["Detalle: la factura no tiene líneas"]
    issues = []
    for number, line in enumerate(line_items, start=1):
        code = line.fiscal_code
        if not code:
            issues.append(f"Línea {number}: falta el código CABYS")
        elif not validate_fiscal_code(code, settings.FISCAL_CODE_LENGTH):
            issues.append(f"Línea {number}: el código CABYS {code} debe tener {settings.FISCAL_CODE_LENGTH} dígitos")
        elif lookup_fiscal_code(code) is None:
            issues.append(f"Línea {number}: el código CABYS {code} no existe en el catálogo")
    return issues


def build_lines(line_items) -> List[Dict[str, Any]]:
    lines = []
    for number, line in enumerate(line_items, start=1):
        quantity = Decimal(line.quantity)
        unit_price = Decimal(line.unit_price)
        rate = Decimal(line.tax_rate)
        amount = quantity * unit_price
        tax = amount * rate / HUNDRED
        lines.append({
            "line_number": number,
            "fiscal_code": line.fiscal_code,
            "quantity": str(quantity.quantize(Decimal("0.001"))),
            "unit_of_measure": line.unit_of_measure or "Unid",
            "detail": line.description,
            "unit_price": amount5(unit_price),
            "total_amount": amount5(amount),
            "subtotal": amount5(amount),
            "tax": {"code": "01", "rate": str(rate.quantize(Decimal("0.01"))), "amount": amount5(tax)},
            "line_total": amount5(amount + tax),
        })
    return lines


def build_summary(line_items, currency: str) -> Dict[str, str]:
    """Resumen del comprobante; todas las líneas se tratan como mercancías."""
    taxed = exempt = tax_total = Decimal("0")
    for line in line_items:
        amount = Decimal(line.quantity) * Decimal(line.unit_price)
        rate = Decimal(line.tax_rate)
        tax_total += amount * rate / HUNDRED
        if rate > 0:
            taxed += amount
        else:
            exempt += amount
    total_sale = taxed + exempt
    discounts = Decimal("0")
    net_sale = total_sale - discounts
    return {
        "currency": currency,
        "exchange_rate": "1.00",
        "taxed_services": amount5(0),
        "exempt_services": amount5(0),
        "taxed_goods": amount5(taxed),
        "exempt_goods": amount5(exempt),
        "total_taxed": amount5(taxed),
        "total_exempt": amount5(exempt),
        "total_sale": amount5(total_sale),
        "total_discounts": amount5(discounts),
        "net_sale": amount5(net_sale),
        "total_tax": amount5(tax_total),
        "document_total": amount5(net_sale + tax_total),
    }


def _profile(profile, fields) -> Dict[str, Any]:
    return {attr: getattr(profile, attr, None) for attr in fields}


def prepare_submission(
    invoice,
    emitter_profile,
    receiver_profile,
    line_items,
    lookup_fiscal_code: Callable[[str], Any],
    issued_at: Optional[datetime] = None,
    security_code: Optional[str] = None
) -> SubmissionPayload:
    """
    Valida y arma el comprobante electrónico de una factura.

    Raises:
        FiscalValidationError: con la lista completa de problemas encontrados
    """
    issues = []
    if invoice.status == DocumentStatus.ANNULLED:
        issues.append(f"Factura {invoice.number}: está anulada")
    issues.extend(validate_emitter(emitter_profile))
    issues.extend(validate_receiver(receiver_profile))
    issues.extend(validate_lines(line_items, lookup_fiscal_code))
    if issues:
        raise FiscalValidationError(issues)

    issued_at = issued_at or datetime.now(timezone.utc)
    clave = invoice.clave or generate_clave(
        invoice.issue_date,
        emitter_profile.id_number,
        invoice.consecutive,
        security_code=security_code
    )

    term = invoice.payment_term
    sale_condition = term.sale_condition if term is not None else SaleCondition.CASH.value
    credit_term = term.credit_days if term is not None and not term.is_cash else 0

    emitter = _profile(emitter_profile, (
        "name", "commercial_name", "id_type", "id_number", "economic_activity_code",
        "province", "canton", "district", "other_signs", "phone", "email",
    ))
    emitter["phone_country_code"] = settings.HACIENDA_COUNTRY_CODE

    return SubmissionPayload(
        clave=clave,
        consecutive=invoice.consecutive,
        issue_datetime=issued_at.isoformat(timespec="seconds"),
        emitter=emitter,
        receiver=_profile(receiver_profile, ("name", "id_type", "id_number", "email")),
        sale_condition=sale_condition,
        credit_term=credit_term,
        payment_method=invoice.payment_method.value,
        currency=invoice.currency,
        lines=build_lines(line_items),
        summary=build_summary(line_items, invoice.currency),
    )


def interpret_response(raw: Dict[str, Any]) -> AuthorityResponse:
    """
    Traduce la respuesta del API de recepción/consulta.

    ``raw`` trae el código HTTP (``status_code``) y, si lo hay, el cuerpo
    JSON (``ind-estado``, ``respuesta-xml``) y el encabezado
    ``x-error-cause``.
    """
    reference = raw.get("location") or raw.get("clave")
    state = (raw.get("ind-estado") or "").strip().lower()
    if state in _AUTHORITY_STATES:
        message = raw.get("detalle") or raw.get("x-error-cause")
        return AuthorityResponse(_AUTHORITY_STATES[state], reference, message)

    status_code = raw.get("status_code")
    if status_code in (200, 201, 202):
        return AuthorityResponse(PENDING, reference, "Comprobante recibido, pendiente de procesar")
    if status_code == 400:
        return AuthorityResponse(REJECTED, reference, raw.get("x-error-cause") or "Comprobante rechazado por Hacienda")
    return AuthorityResponse(PENDING, reference, raw.get("x-error-cause"))
