"""
Reconciliación periódica del estado ``overdue``.

La lectura ya deriva el vencimiento con ``effective_status``; este job
mantiene la copia persistida que usan los filtros y reportes.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional
import logging

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.common.transactions import atomic
from app.dependencies.userDependencies import Actor
from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditRecorder
from app.modules.billing.ledger import BINDINGS
from app.modules.billing.states import BillingStateMachine, DocumentStatus

logger = logging.getLogger(__name__)


@dataclass
class OverdueReconciliationResult:
    run_date: date
    moved_to_overdue: Dict[str, int] = field(default_factory=dict)
    moved_from_overdue: Dict[str, int] = field(default_factory=dict)
    warnings: list = field(default_factory=list)


class OverdueReconciler:
    def __init__(self, db: Session, state_machine: Optional[BillingStateMachine] = None):
        self.db = db
        self.state_machine = state_machine or BillingStateMachine()
        self.audit = AuditRecorder(db)

    def run(self, today: Optional[date] = None) -> OverdueReconciliationResult:
        """
        Mueve a ``overdue`` los documentos pendientes/parciales vencidos y
        devuelve a pending/partial los ``overdue`` cuyo vencimiento ya no aplica.
        """
        today = today or date.today()
        result = OverdueReconciliationResult(run_date=today)
        actor = Actor.system()

        for family, binding in BINDINGS.items():
            model = binding.document_model
            changes = []

            with atomic(self.db, f"reconcile_overdue_{family.value}"):
                candidates = self.db.query(model).filter(or_(
                    and_(
                        model.status.in_([DocumentStatus.PENDING, DocumentStatus.PARTIAL]),
                        model.due_date < today
                    ),
                    and_(
                        model.status == DocumentStatus.OVERDUE,
                        or_(model.due_date.is_(None), model.due_date >= today)
                    )
                )).with_for_update().all()

                to_overdue = from_overdue = 0
                for document in candidates:
                    target = self.state_machine.classify(
                        document.total, document.outstanding_balance, document.due_date, today
                    )
                    if target == document.status:
                        continue
                    previous = document.status
                    document.status = self.state_machine.transition(previous, target, reconciliation=True)
                    changes.append((document.id, previous, document.status))
                    if document.status == DocumentStatus.OVERDUE:
                        to_overdue += 1
                    elif previous == DocumentStatus.OVERDUE:
                        from_overdue += 1

            result.moved_to_overdue[family.value] = to_overdue
            result.moved_from_overdue[family.value] = from_overdue
            if changes:
                logger.info(
                    f"Reconciliación {binding.table_name} ({today}): "
                    f"{to_overdue} a overdue, {from_overdue} fuera de overdue"
                )

            for document_id, previous, current in changes:
                warning = self.audit.record(
                    actor, AuditAction.UPDATE, binding.table_name, document_id,
                    {"status": previous.value}, {"status": current.value, "reconciled_on": today.isoformat()}
                )
                if warning:
                    result.warnings.append(warning)

        return result
