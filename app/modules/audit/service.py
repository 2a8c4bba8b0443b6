"""
Registro de auditoría.

Se invoca después del commit de la operación de negocio. Si la escritura
falla, el error se registra en el log y se devuelve como advertencia: la
operación ya confirmada no se revierte.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol
from uuid import UUID
import enum
import logging

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.exceptions import AuditWriteFailure
from app.dependencies.userDependencies import Actor
from app.modules.audit.models import AuditLogEntry, AuditAction
from app.modules.audit.schemas import AuditLogList

logger = logging.getLogger(__name__)

# Montos como texto para no perder precisión en el JSON
MONEY_ENCODER = {Decimal: str}


def snapshot(obj: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Copia serializable de los atributos indicados de un modelo."""
    values = {}
    for name in fields:
        value = getattr(obj, name, None)
        if isinstance(value, enum.Enum):
            value = value.value
        values[name] = value
    return jsonable_encoder(values, custom_encoder=MONEY_ENCODER)


class AuditSink(Protocol):
    """Destino de la bitácora: la tabla audit_log u otro stream externo."""

    def write(self, entry: Dict[str, Any]) -> None:
        ...


class DatabaseAuditSink:
    """Escribe en la tabla audit_log en una transacción propia."""

    def __init__(self, db: Session):
        self.db = db

    def write(self, entry: Dict[str, Any]) -> None:
        try:
            self.db.add(AuditLogEntry(**entry))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise AuditWriteFailure(f"No se pudo escribir la bitácora: {e}") from e


class AuditRecorder:
    def __init__(self, db: Session, sink: Optional[AuditSink] = None):
        self.db = db
        self.sink = sink or DatabaseAuditSink(db)

    def record(
        self,
        actor: Actor,
        action: AuditAction,
        table_name: str,
        record_id: Any,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """
        Escribe una entrada de auditoría.

        Nunca lanza: la operación auditada ya hizo commit, así que cualquier
        error del sink o de la serialización se registra como ERROR y se
        devuelve como advertencia.

        Returns:
            None si se escribió; el texto de la advertencia si falló.
        """
        try:
            entry = {
                "user_id": actor.user_id,
                "user_email": actor.email,
                "action": action.value,
                "table_name": table_name,
                "record_id": str(record_id),
                "old_values": jsonable_encoder(before, custom_encoder=MONEY_ENCODER) if before is not None else None,
                "new_values": jsonable_encoder(after, custom_encoder=MONEY_ENCODER) if after is not None else None,
            }
            self.sink.write(entry)
        except Exception as e:
            reason = e.message if isinstance(e, AuditWriteFailure) else f"{type(e).__name__}: {e}"
            logger.error(
                f"AUDITORÍA NO REGISTRADA {action.value} {table_name}/{record_id} "
                f"por {actor.user_id}: {reason}",
                exc_info=not isinstance(e, AuditWriteFailure)
            )
            return f"Auditoría no registrada para {table_name}/{record_id}: {reason}"
        return None


class AuditLogService:
    def __init__(self, db: Session):
        self.db = db

    def get_entries(
        self,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        user_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 100,
        offset: int = 0
    ) -> AuditLogList:
        query = self.db.query(AuditLogEntry)
        if table_name:
            query = query.filter(AuditLogEntry.table_name == table_name)
        if record_id:
            query = query.filter(AuditLogEntry.record_id == str(record_id))
        if user_id:
            query = query.filter(AuditLogEntry.user_id == user_id)
        if action:
            query = query.filter(AuditLogEntry.action == action.value)
        if start_date:
            query = query.filter(AuditLogEntry.timestamp >= datetime.combine(start_date, datetime.min.time()))
        if end_date:
            query = query.filter(AuditLogEntry.timestamp <= datetime.combine(end_date, datetime.max.time()))

        total = query.count()
        entries = query.order_by(AuditLogEntry.timestamp.desc()).offset(offset).limit(limit).all()
        return AuditLogList(entries=entries, total=total, limit=limit, offset=offset)

    def get_history(self, table_name: str, record_id: UUID) -> List[AuditLogEntry]:
        return self.db.query(AuditLogEntry).filter(
            AuditLogEntry.table_name == table_name,
            AuditLogEntry.record_id == str(record_id)
        ).order_by(AuditLogEntry.timestamp).all()
