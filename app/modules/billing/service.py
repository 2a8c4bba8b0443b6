from sqlalchemy.orm import Session
from datetime import date, timedelta
from typing import List, Optional, Tuple
from uuid import UUID
import logging

from app.common.exceptions import ConflictError, NotFoundError, ValidationError
from app.common.transactions import atomic
from app.core.config import settings
from app.modules.billing.models import PaymentTerm, DEFAULT_PAYMENT_TERMS
from app.modules.billing.schemas import PaymentTermCreate

logger = logging.getLogger(__name__)


class PaymentTermService:
    def __init__(self, db: Session):
        self.db = db

    def ensure_defaults(self) -> None:
        """Crea Contado y los créditos estándar si no existen."""
        existing = {code for (code,) in self.db.query(PaymentTerm.code).all()}
        missing = [term for term in DEFAULT_PAYMENT_TERMS if term["code"] not in existing]
        if not missing:
            return
        with atomic(self.db, "seed_payment_terms"):
            for term in missing:
                self.db.add(PaymentTerm(**term))
        logger.info(f"Condiciones de pago creadas: {[t['code'] for t in missing]}")

    def list_terms(self) -> List[PaymentTerm]:
        return self.db.query(PaymentTerm).filter(PaymentTerm.is_active == True).order_by(PaymentTerm.credit_days).all()

    def get_term(self, term_id: UUID) -> PaymentTerm:
        term = self.db.query(PaymentTerm).filter(PaymentTerm.id == term_id).first()
        if not term:
            raise NotFoundError("Condición de pago", term_id)
        return term

    def get_by_code(self, code: str) -> PaymentTerm:
        term = self.db.query(PaymentTerm).filter(PaymentTerm.code == code).first()
        if not term:
            raise NotFoundError("Condición de pago", code)
        return term

    def cash_term(self) -> PaymentTerm:
        return self.get_by_code(settings.CASH_TERM_CODE)

    def create_term(self, data: PaymentTermCreate) -> PaymentTerm:
        if self.db.query(PaymentTerm).filter(PaymentTerm.code == data.code).first():
            raise ConflictError(f"Ya existe la condición de pago {data.code}", {"code": data.code})
        if data.is_cash and data.credit_days:
            raise ValidationError("Una condición de contado no puede tener días de crédito")
        term = PaymentTerm(**data.model_dump())
        with atomic(self.db, "create_payment_term"):
            self.db.add(term)
        self.db.refresh(term)
        return term

    def resolve(
        self,
        payment_term_id: Optional[UUID],
        issue_date: date,
        due_date: Optional[date]
    ) -> Tuple[Optional[PaymentTerm], Optional[date]]:
        """
        Condición de pago y fecha de vencimiento efectivas.

        - Contado: sin vencimiento.
        - Crédito: la fecha indicada o emisión + días de crédito.
        """
        term = self.get_term(payment_term_id) if payment_term_id else None

        if term is not None and term.is_cash:
            return term, None

        if due_date is None and term is not None:
            due_date = issue_date + timedelta(days=term.credit_days)

        if due_date is not None and due_date < issue_date:
            raise ValidationError(
                "La fecha de vencimiento no puede ser anterior a la fecha de emisión",
                {"issue_date": str(issue_date), "due_date": str(due_date)}
            )
        return term, due_date
