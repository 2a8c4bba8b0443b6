from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Text, Uuid
from uuid import uuid4
from app.common.mixins import TimestampMixin


class FiscalCode(Base, TimestampMixin):
    """Catálogo de bienes y servicios (CABYS)"""
    __tablename__ = "fiscal_codes"

    id = Column(Uuid, primary_key=True, default=uuid4)
    code = Column(String(13), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False)
    is_taxed = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)


class EmitterProfile(Base, TimestampMixin):
    """
    Datos fiscales del emisor (la empresa que factura)

    Se mantiene un único perfil activo.
    """
    __tablename__ = "emitter_profiles"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    commercial_name = Column(String(200), nullable=True)
    id_type = Column(String(2), nullable=False)
    id_number = Column(String(20), nullable=False)
    economic_activity_code = Column(String(6), nullable=True)

    province = Column(String(1), nullable=True)
    canton = Column(String(2), nullable=True)
    district = Column(String(2), nullable=True)
    other_signs = Column(Text, nullable=True)

    phone = Column(String(20), nullable=True)
    email = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
