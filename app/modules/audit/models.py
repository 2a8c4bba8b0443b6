from app.database.database import Base
from sqlalchemy import Column, String, DateTime, JSON, Uuid
from sqlalchemy.sql import func
from uuid import uuid4
import enum


class AuditAction(enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    PAYMENT = "PAYMENT"
    ANNUL = "ANNUL"
    DELETE = "DELETE"


class AuditLogEntry(Base):
    """Bitácora append-only: nunca se actualiza ni se borra."""
    __tablename__ = "audit_log"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(String(100), nullable=False, index=True)
    user_email = Column(String(100), nullable=True)
    action = Column(String(20), nullable=False, index=True)
    table_name = Column(String(100), nullable=False, index=True)
    record_id = Column(String(100), nullable=False, index=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
