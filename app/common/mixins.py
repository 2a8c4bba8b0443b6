"""
Mixins comunes para los modelos de facturación
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class VersionedMixin:
    """
    Bloqueo optimista para documentos con saldo.

    Cada UPDATE incluye ``WHERE version = <leída>`` y la incrementa; si otra
    transacción ya la cambió, SQLAlchemy lanza StaleDataError.
    """

    version = Column(Integer, nullable=False)

    @declared_attr
    def __mapper_args__(cls):
        return {"version_id_col": cls.version}


class SoftDeleteMixin:
    """Mixin for soft delete functionality (requiere columna is_active)"""

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self):
        self.deleted_at = datetime.now(timezone.utc)
        self.is_active = False

    def restore(self):
        self.deleted_at = None
        self.is_active = True
