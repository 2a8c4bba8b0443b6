from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from app.database.database import get_db
from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.audit.models import AuditAction
from app.modules.audit.schemas import AuditLogList
from app.modules.audit.service import AuditLogService

audit_router = APIRouter(prefix="/audit-log", tags=["Audit"])


@audit_router.get("/", response_model=AuditLogList)
def get_audit_log(
    table_name: Optional[str] = None,
    record_id: Optional[str] = None,
    user_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """Consultar la bitácora de cambios (solo lectura)"""
    return AuditLogService(db).get_entries(
        table_name=table_name,
        record_id=record_id,
        user_id=user_id,
        action=action,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset
    )
