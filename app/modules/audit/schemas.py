from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime


class AuditLogOut(BaseModel):
    id: UUID
    user_id: str
    user_email: Optional[str] = None
    action: str
    table_name: str
    record_id: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditLogList(BaseModel):
    entries: List[AuditLogOut]
    total: int
    limit: int
    offset: int
