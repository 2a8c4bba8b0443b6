"""
Tareas periódicas de Celery del ciclo de cobro y pago.
"""
import logging
from datetime import date

from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.billing.reconciliation import OverdueReconciler

logger = logging.getLogger(__name__)


@celery_app.task
def reclassify_overdue_documents():
    """Reconciliación diaria/horaria del estado overdue (Celery beat)."""
    db = SessionLocal()
    try:
        result = OverdueReconciler(db).run(date.today())
        logger.info(
            f"Reconciliación de vencidos {result.run_date}: "
            f"a overdue {result.moved_to_overdue}, fuera de overdue {result.moved_from_overdue}"
        )
        return {
            "run_date": result.run_date.isoformat(),
            "moved_to_overdue": result.moved_to_overdue,
            "moved_from_overdue": result.moved_from_overdue,
        }
    finally:
        db.close()
