"""
Modelos SQLAlchemy para el módulo de Contactos

Este módulo centraliza la gestión de clientes y proveedores en una única entidad Contact:
- Clasificación por tipo: client, provider, o ambos
- Identificación fiscal costarricense (física, jurídica, DIMEX, NITE)
- Ubicación requerida por el comprobante electrónico
- Soft delete para auditabilidad
"""

from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Integer, Text, JSON, Uuid
from uuid import uuid4
from app.common.mixins import TimestampMixin, SoftDeleteMixin
import enum


class ContactType(enum.Enum):
    """Tipos de contacto"""
    CLIENT = "client"      # Cliente (facturas de venta)
    PROVIDER = "provider"  # Proveedor (facturas de compra)


class Contact(Base, TimestampMixin, SoftDeleteMixin):
    """
    Contactos unificados (Clientes y Proveedores)

    - Clientes: type contiene 'client'
    - Proveedores: type contiene 'provider'
    - Mixtos: type contiene ambos
    """
    __tablename__ = "contacts"

    id = Column(Uuid, primary_key=True, default=uuid4)

    name = Column(String(200), nullable=False, index=True)
    commercial_name = Column(String(200), nullable=True)
    type = Column(JSON, nullable=False, default=list)  # ['client'], ['provider'], o ambos
    email = Column(String(100), nullable=True, index=True)
    phone = Column(String(50), nullable=True)

    # Identificación fiscal
    id_type = Column(String(2), nullable=True)
    id_number = Column(String(20), nullable=True, index=True)

    # Ubicación (códigos de Hacienda)
    province = Column(String(1), nullable=True)
    canton = Column(String(2), nullable=True)
    district = Column(String(2), nullable=True)
    other_signs = Column(Text, nullable=True)

    payment_terms_days = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(String(100), nullable=True)

    def is_client(self) -> bool:
        """Verificar si el contacto es cliente"""
        return ContactType.CLIENT.value in (self.type or [])

    def is_provider(self) -> bool:
        """Verificar si el contacto es proveedor"""
        return ContactType.PROVIDER.value in (self.type or [])

    def is_active_contact(self) -> bool:
        return self.is_active and self.deleted_at is None
