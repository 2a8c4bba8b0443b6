"""
Helpers transaccionales compartidos por los servicios de documentos.
"""
from contextlib import contextmanager
from typing import Callable, TypeVar
import logging

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.common.exceptions import BillingError, ConcurrentModificationError, ConflictError, DependencyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def atomic(db: Session, operation: str):
    """
    Ejecuta un bloque de escrituras como una sola transacción.

    Hace commit al salir sin errores y rollback ante cualquier excepción.
    Los errores de SQLAlchemy se traducen a la jerarquía de dominio:
    versión obsoleta -> ConcurrentModificationError, restricción única ->
    ConflictError, base de datos inalcanzable -> DependencyError.
    """
    try:
        yield
        db.commit()
    except BillingError:
        db.rollback()
        raise
    except StaleDataError as e:
        db.rollback()
        logger.warning(f"{operation}: modificación concurrente detectada ({e})")
        raise ConcurrentModificationError(
            f"{operation}: el documento fue modificado por otra operación, reintente",
            {"operation": operation},
        ) from e
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"{operation}: violación de integridad ({e.orig})")
        raise ConflictError(f"{operation}: violación de integridad de datos", {"operation": operation}) from e
    except (OperationalError, DBAPIError) as e:
        db.rollback()
        logger.error(f"{operation}: base de datos no disponible", exc_info=True)
        raise DependencyError("database", f"{operation}: base de datos no disponible") from e
    except Exception:
        db.rollback()
        logger.error(f"{operation}: error inesperado, transacción revertida", exc_info=True)
        raise


def retry_on_conflict(func: Callable[..., T], *args, **kwargs) -> T:
    """Reintenta exactamente una vez cuando la operación choca con otra escritura.

    Solo el bloqueo optimista se reintenta; los conflictos de estado (documento
    pagado, transición ilegal) se propagan tal cual.
    """
    try:
        return func(*args, **kwargs)
    except ConcurrentModificationError as e:
        logger.info(f"Conflicto de concurrencia, reintentando una vez: {e.message}")
        return func(*args, **kwargs)
