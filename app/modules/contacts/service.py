"""
Servicios de negocio para el módulo de Contactos

- CRUD de contactos con validaciones fiscales
- Soft delete para auditabilidad
- Resolución de clientes (facturas) y proveedores (gastos)
"""

from sqlalchemy.orm import Session
from sqlalchemy import or_, cast, String
from typing import Optional
from uuid import UUID
import logging

from app.common.exceptions import NotFoundError, ConflictError, ValidationError
from app.common.transactions import atomic
from app.modules.contacts.models import Contact, ContactType
from app.modules.contacts.schemas import ContactCreate, ContactUpdate, ContactList

logger = logging.getLogger(__name__)


class ContactService:
    """Servicio principal para gestión de contactos"""

    def __init__(self, db: Session):
        self.db = db

    def create_contact(self, contact_data: ContactCreate, user_id: Optional[str] = None) -> Contact:
        """Crear un nuevo contacto"""
        if contact_data.id_number:
            existing = self.db.query(Contact).filter(
                Contact.id_number == contact_data.id_number,
                Contact.deleted_at.is_(None)
            ).first()
            if existing:
                raise ConflictError(
                    f"Ya existe un contacto con la identificación {contact_data.id_number}",
                    {"id_number": contact_data.id_number}
                )

        data = contact_data.model_dump()
        data["type"] = [t.value for t in contact_data.type]
        data["id_type"] = contact_data.id_type.value if contact_data.id_type else None
        contact = Contact(**data, created_by=user_id)

        with atomic(self.db, "create_contact"):
            self.db.add(contact)
        self.db.refresh(contact)
        logger.info(f"Contacto creado: {contact.id} ({contact.name})")
        return contact

    def get_contact_by_id(self, contact_id: UUID, include_deleted: bool = False) -> Contact:
        query = self.db.query(Contact).filter(Contact.id == contact_id)
        if not include_deleted:
            query = query.filter(Contact.deleted_at.is_(None))
        contact = query.first()
        if not contact:
            raise NotFoundError("Contacto", contact_id)
        return contact

    def get_contacts(
        self,
        limit: int = 100,
        offset: int = 0,
        contact_type: Optional[ContactType] = None,
        search: Optional[str] = None
    ) -> ContactList:
        query = self.db.query(Contact).filter(Contact.deleted_at.is_(None))

        if contact_type:
            # JSON serializado: '["client", "provider"]'
            query = query.filter(cast(Contact.type, String).like(f'%"{contact_type.value}"%'))

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Contact.name.ilike(pattern),
                Contact.email.ilike(pattern),
                Contact.id_number.ilike(pattern)
            ))

        total = query.count()
        contacts = query.order_by(Contact.name).offset(offset).limit(limit).all()
        return ContactList(contacts=contacts, total=total, limit=limit, offset=offset)

    def update_contact(self, contact_id: UUID, contact_data: ContactUpdate) -> Contact:
        contact = self.get_contact_by_id(contact_id)
        with atomic(self.db, "update_contact"):
            for field, value in contact_data.model_dump(exclude_unset=True).items():
                setattr(contact, field, value)
        self.db.refresh(contact)
        return contact

    def delete_contact(self, contact_id: UUID) -> Contact:
        """Soft delete: el contacto sigue referenciado por documentos históricos"""
        contact = self.get_contact_by_id(contact_id)
        with atomic(self.db, "delete_contact"):
            contact.soft_delete()
        logger.info(f"Contacto eliminado (soft): {contact_id}")
        return contact

    def require_client(self, contact_id: UUID) -> Contact:
        """Contacto activo de tipo client, o error de validación."""
        contact = self.get_contact_by_id(contact_id)
        if not contact.is_client() or not contact.is_active:
            raise ValidationError(
                "El contacto especificado no es un cliente activo",
                {"contact_id": str(contact_id)}
            )
        return contact

    def require_provider(self, contact_id: UUID) -> Contact:
        contact = self.get_contact_by_id(contact_id)
        if not contact.is_provider() or not contact.is_active:
            raise ValidationError(
                "El contacto especificado no es un proveedor activo",
                {"contact_id": str(contact_id)}
            )
        return contact
