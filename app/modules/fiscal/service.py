"""
Servicios de negocio para facturación electrónica

- FiscalCatalogService: catálogo CABYS y perfil del emisor
- FiscalSubmissionService: envío de facturas a Hacienda y seguimiento de estado
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID
import json
import logging

from sqlalchemy.orm import Session

from app.common.exceptions import ConflictError, DependencyError, NotFoundError, ValidationError
from app.common.transactions import atomic
from app.core.config import settings
from app.dependencies.userDependencies import Actor
from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditRecorder, AuditSink, snapshot
from app.modules.billing.states import FiscalStatus
from app.modules.fiscal.adapter import ACCEPTED, REJECTED, AuthorityResponse, interpret_response, prepare_submission
from app.modules.fiscal.gateway import HaciendaGateway
from app.modules.fiscal.models import EmitterProfile, FiscalCode
from app.modules.fiscal.schemas import EmitterProfileIn, FiscalCodeCreate
from app.modules.invoices.models import Invoice

logger = logging.getLogger(__name__)

FISCAL_FIELDS = ("clave", "fiscal_status", "fiscal_submitted_at", "fiscal_reference", "fiscal_message")

# Solo se reenvía lo que Hacienda no tiene o rechazó
RESUBMITTABLE = (FiscalStatus.NOT_SUBMITTED, FiscalStatus.REJECTED, FiscalStatus.FAILED)

Signer = Callable[[Dict[str, Any]], bytes]


def unsigned_document(payload: Dict[str, Any]) -> bytes:
    """Firmador por defecto: el comprobante serializado sin firma."""
    return json.dumps(payload, ensure_ascii=False, sort_keys=True).encode("utf-8")


class FiscalCatalogService:
    def __init__(self, db: Session):
        self.db = db

    def lookup_fiscal_code(self, code: str) -> Optional[FiscalCode]:
        return self.db.query(FiscalCode).filter(
            FiscalCode.code == code,
            FiscalCode.is_active == True
        ).first()

    def create_fiscal_code(self, data: FiscalCodeCreate) -> FiscalCode:
        if self.db.query(FiscalCode).filter(FiscalCode.code == data.code).first():
            raise ConflictError(f"El código CABYS {data.code} ya existe")
        with atomic(self.db, "create_fiscal_code"):
            fiscal_code = FiscalCode(code=data.code, description=data.description, is_taxed=data.is_taxed)
            self.db.add(fiscal_code)
        self.db.refresh(fiscal_code)
        return fiscal_code

    def get_fiscal_codes(self, search: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[FiscalCode]:
        query = self.db.query(FiscalCode).filter(FiscalCode.is_active == True)
        if search:
            query = query.filter(
                (FiscalCode.code.like(f"{search}%")) | (FiscalCode.description.ilike(f"%{search}%"))
            )
        return query.order_by(FiscalCode.code).offset(offset).limit(limit).all()

    def get_emitter_profile(self) -> Optional[EmitterProfile]:
        return self.db.query(EmitterProfile).filter(EmitterProfile.is_active == True).first()

    def require_emitter_profile(self) -> EmitterProfile:
        profile = self.get_emitter_profile()
        if profile is None:
            raise NotFoundError("Perfil de emisor", "activo")
        return profile

    def save_emitter_profile(self, data: EmitterProfileIn) -> EmitterProfile:
        """Crea o reemplaza los datos del perfil de emisor activo"""
        values = data.model_dump()
        values["id_type"] = data.id_type.value
        with atomic(self.db, "save_emitter_profile"):
            profile = self.get_emitter_profile()
            if profile is None:
                profile = EmitterProfile(**values)
                self.db.add(profile)
            else:
                for attr, value in values.items():
                    setattr(profile, attr, value)
        self.db.refresh(profile)
        logger.info(f"Perfil de emisor actualizado: {profile.name} ({profile.id_number})")
        return profile


class FiscalSubmissionService:
    """
    Envío de facturas a Hacienda.

    El estado ``submitted`` se guarda antes de llamar al gateway, de modo que
    un envío interrumpido queda visible. El estado fiscal nunca modifica el
    estado de pago de la factura.
    """

    _STATUS_BY_RESPONSE = {
        ACCEPTED: FiscalStatus.ACCEPTED,
        REJECTED: FiscalStatus.REJECTED,
    }

    def __init__(
        self,
        db: Session,
        gateway: Optional[HaciendaGateway] = None,
        signer: Optional[Signer] = None,
        audit_sink: Optional[AuditSink] = None
    ):
        self.db = db
        self.catalog = FiscalCatalogService(db)
        self.gateway = gateway
        self.signer = signer or unsigned_document
        self.audit = AuditRecorder(db, audit_sink)

    def _gateway(self) -> HaciendaGateway:
        if self.gateway is None:
            if not settings.HACIENDA_ENABLED:
                raise DependencyError("hacienda", "El envío a Hacienda está deshabilitado (HACIENDA_ENABLED)")
            self.gateway = HaciendaGateway()
        return self.gateway

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.db.query(Invoice).filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise NotFoundError("Factura", invoice_id)
        return invoice

    def submit(self, invoice_id: UUID, actor: Optional[Actor] = None) -> Tuple[Invoice, List[str]]:
        """
        Valida, firma y envía una factura

        Raises:
            FiscalValidationError: la factura no cumple los requisitos (sin cambios de estado)
            ConflictError: la factura ya fue aceptada o espera respuesta (usar refresh_status)
            DependencyError: Hacienda no disponible (queda en ``failed``)
        """
        actor = actor or Actor.system()
        gateway = self._gateway()
        invoice = self.get_invoice(invoice_id)
        if invoice.fiscal_status not in RESUBMITTABLE:
            raise ConflictError(
                f"La factura {invoice.number} ya fue enviada a Hacienda ({invoice.fiscal_status.value})",
                {"clave": invoice.clave, "fiscal_status": invoice.fiscal_status.value}
            )

        payload = prepare_submission(
            invoice,
            self.catalog.get_emitter_profile(),
            invoice.customer,
            list(invoice.line_items),
            self.catalog.lookup_fiscal_code
        )
        before = snapshot(invoice, FISCAL_FIELDS)

        with atomic(self.db, "fiscal_submit"):
            invoice.clave = payload.clave
            invoice.fiscal_status = FiscalStatus.SUBMITTED
            invoice.fiscal_submitted_at = datetime.now(timezone.utc)
            invoice.fiscal_message = None

        document = payload.to_dict()
        try:
            raw = gateway.send(document, self.signer(document))
        except DependencyError as e:
            with atomic(self.db, "fiscal_submit_failed"):
                invoice.fiscal_status = FiscalStatus.FAILED
                invoice.fiscal_message = e.message
            self._audit(actor, invoice, before)
            raise

        self._apply_response(invoice, interpret_response(raw))
        warnings = self._audit(actor, invoice, before)
        return invoice, warnings

    def refresh_status(self, invoice_id: UUID, actor: Optional[Actor] = None) -> Tuple[Invoice, List[str]]:
        """Consulta el estado de una factura ya enviada"""
        actor = actor or Actor.system()
        gateway = self._gateway()
        invoice = self.get_invoice(invoice_id)
        if not invoice.clave:
            raise ValidationError(f"La factura {invoice.number} no ha sido enviada a Hacienda")

        before = snapshot(invoice, FISCAL_FIELDS)
        self._apply_response(invoice, interpret_response(gateway.query_status(invoice.clave)))
        return invoice, self._audit(actor, invoice, before)

    def _apply_response(self, invoice: Invoice, response: AuthorityResponse) -> None:
        with atomic(self.db, "fiscal_response"):
            invoice.fiscal_status = self._STATUS_BY_RESPONSE.get(response.status, FiscalStatus.SUBMITTED)
            if response.authority_reference:
                invoice.fiscal_reference = response.authority_reference
            invoice.fiscal_message = response.message
        logger.info(f"Factura {invoice.number} ({invoice.clave}): estado fiscal {invoice.fiscal_status.value}")

    def _audit(self, actor: Actor, invoice: Invoice, before: Dict[str, Any]) -> List[str]:
        warning = self.audit.record(
            actor, AuditAction.UPDATE, "invoices", invoice.id, before, snapshot(invoice, FISCAL_FIELDS)
        )
        return [warning] if warning else []
