"""
Tareas asíncronas de Celery para el envío de facturas a Hacienda.
"""
import logging
from uuid import UUID

from app.common.exceptions import DependencyError, FiscalValidationError, NotFoundError
from app.core.celery import celery_app
from app.core.config import settings
from app.database.database import SessionLocal
from app.modules.fiscal.service import FiscalSubmissionService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=settings.HACIENDA_MAX_RETRIES)
def submit_invoice_task(self, invoice_id: str):
    """
    Envía una factura a Hacienda.

    Solo los errores de disponibilidad se reintentan; una factura inválida
    se reporta de inmediato.
    """
    db = SessionLocal()
    try:
        invoice, warnings = FiscalSubmissionService(db).submit(UUID(invoice_id))
        return {
            "status": invoice.fiscal_status.value,
            "invoice_id": invoice_id,
            "clave": invoice.clave,
            "warnings": warnings
        }
    except (FiscalValidationError, NotFoundError) as exc:
        logger.error(f"Factura {invoice_id} no enviada: {exc.message}")
        return {"status": "invalid", "invoice_id": invoice_id, "error": exc.to_dict()}
    except DependencyError as exc:
        logger.error(f"Hacienda no disponible para la factura {invoice_id}: {exc.message}")

        # Retry with exponential backoff
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        return {"status": "failed", "invoice_id": invoice_id, "error": exc.to_dict()}
    finally:
        db.close()
