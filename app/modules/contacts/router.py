"""
Router para el módulo de Contactos
"""

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.dependencies.userDependencies import get_current_actor, Actor
from app.modules.contacts.service import ContactService
from app.modules.contacts.models import ContactType
from app.modules.contacts.schemas import ContactCreate, ContactUpdate, ContactOut, ContactList

router = APIRouter(
    prefix="/contacts",
    tags=["Contacts"],
    responses={404: {"description": "Not found"}}
)


@router.post("/", response_model=ContactOut, status_code=status.HTTP_201_CREATED)
def create_contact(
    contact_data: ContactCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    """
    Crear un nuevo contacto

    - **type**: Array con tipos [client, provider]
    - **id_type**: 01 física, 02 jurídica, 03 DIMEX, 04 NITE
    """
    return ContactService(db).create_contact(contact_data, actor.user_id)


@router.get("/", response_model=ContactList)
def get_contacts(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    type: Optional[str] = Query(None, pattern="^(client|provider)$"),
    search: Optional[str] = Query(None, description="Buscar por nombre, email o identificación"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    contact_type = ContactType(type) if type else None
    return ContactService(db).get_contacts(limit=limit, offset=offset, contact_type=contact_type, search=search)


@router.get("/{contact_id}", response_model=ContactOut)
def get_contact(
    contact_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return ContactService(db).get_contact_by_id(contact_id)


@router.patch("/{contact_id}", response_model=ContactOut)
def update_contact(
    contact_id: UUID,
    contact_data: ContactUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    return ContactService(db).update_contact(contact_id, contact_data)


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_contact(
    contact_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor)
):
    ContactService(db).delete_contact(contact_id)
