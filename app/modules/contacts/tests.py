"""
Tests para el módulo de Contactos

Cubren:
- Validaciones de identificación y teléfono costarricenses
- CRUD con soft delete
- Resolución de clientes y proveedores para documentos
- Búsquedas y filtros
"""

import pytest
from uuid import uuid4

from app.common.exceptions import ConflictError, NotFoundError, ValidationError
from app.common.validators import (
    format_costa_rica_phone, validate_costa_rica_id, validate_costa_rica_phone
)
import app.modules.contacts as contacts_package
from app.database.database import Base
from app.modules.contacts.models import Contact, ContactType
from app.modules.contacts.schemas import ContactCreate, ContactUpdate
from app.modules.contacts.service import ContactService


# ===== FIXTURES =====

@pytest.fixture
def sample_contact_data():
    """Datos de ejemplo para un contacto cliente y proveedor"""
    return {
        "name": "Importadora Central S.A.",
        "type": ["client", "provider"],
        "email": "facturas@importadoracentral.cr",
        "phone": "2222-4455",
        "id_type": "02",
        "id_number": "3-101-987654",
        "province": "1",
        "canton": "01",
        "district": "01",
        "payment_terms_days": 30
    }


class TestContactPackage:
    def test_models_registered_once(self):
        """El paquete no reexporta modelos: importarlo no vuelve a declarar la tabla"""
        assert Base.metadata.tables["contacts"] is Contact.__table__
        assert not hasattr(contacts_package, "Contact")
        assert not hasattr(contacts_package, "ContactService")


# ===== TESTS DE VALIDACIONES =====

class TestCostaRicaValidators:
    def test_id_lengths_by_type(self):
        assert validate_costa_rica_id("01", "112340567")
        assert validate_costa_rica_id("02", "3101123456")
        assert validate_costa_rica_id("03", "155812345678")
        assert not validate_costa_rica_id("01", "3101123456")
        assert not validate_costa_rica_id("99", "112340567")
        assert not validate_costa_rica_id("01", "ABC340567")

    def test_id_without_type(self):
        assert validate_costa_rica_id(None, "112340567")
        assert not validate_costa_rica_id(None, "1234")

    def test_phone(self):
        assert validate_costa_rica_phone("8888-1234")
        assert validate_costa_rica_phone("+506 2222 3333")
        assert not validate_costa_rica_phone("1234-5678")
        assert format_costa_rica_phone("8888-1234") == "+50688881234"
        assert format_costa_rica_phone("50688881234") == "+50688881234"


class TestContactSchemas:
    def test_id_number_is_cleaned(self, sample_contact_data):
        contact = ContactCreate(**sample_contact_data)
        assert contact.id_number == "3101987654"
        assert contact.phone == "+50622224455"

    def test_invalid_id_for_type(self, sample_contact_data):
        sample_contact_data["id_type"] = "01"
        with pytest.raises(ValueError):
            ContactCreate(**sample_contact_data)

    def test_type_defaults_to_client(self):
        contact = ContactCreate(name="Consumidor final")
        assert [t.value for t in contact.type] == ["client"]

    def test_invalid_email(self, sample_contact_data):
        sample_contact_data["email"] = "no-es-correo"
        with pytest.raises(ValueError):
            ContactCreate(**sample_contact_data)


# ===== TESTS DE SERVICIOS =====

class TestContactService:
    def test_create_contact_success(self, db_session, actor, sample_contact_data):
        """Creación exitosa con ambos tipos"""
        contact = ContactService(db_session).create_contact(ContactCreate(**sample_contact_data), actor.user_id)

        assert contact.id is not None
        assert contact.type == ["client", "provider"]
        assert contact.id_type == "02"
        assert contact.is_client() and contact.is_provider()
        assert contact.created_by == actor.user_id
        assert contact.is_active

    def test_duplicate_identification(self, db_session, sample_contact_data):
        service = ContactService(db_session)
        service.create_contact(ContactCreate(**sample_contact_data))
        with pytest.raises(ConflictError):
            service.create_contact(ContactCreate(**sample_contact_data))

    def test_update_contact(self, db_session, customer):
        contact = ContactService(db_session).update_contact(
            customer.id, ContactUpdate(email="pagos@lasabana.cr", payment_terms_days=15)
        )
        assert contact.email == "pagos@lasabana.cr"
        assert contact.payment_terms_days == 15
        assert contact.name == "Distribuidora La Sabana S.A."

    def test_soft_delete(self, db_session, customer):
        service = ContactService(db_session)
        service.delete_contact(customer.id)

        with pytest.raises(NotFoundError):
            service.get_contact_by_id(customer.id)
        deleted = service.get_contact_by_id(customer.id, include_deleted=True)
        assert deleted.deleted_at is not None
        assert not deleted.is_active

    def test_require_client_and_provider(self, db_session, customer, supplier):
        service = ContactService(db_session)
        assert service.require_client(customer.id).id == customer.id
        assert service.require_provider(supplier.id).id == supplier.id
        with pytest.raises(ValidationError):
            service.require_client(supplier.id)
        with pytest.raises(ValidationError):
            service.require_provider(customer.id)

    def test_deleted_client_cannot_be_invoiced(self, db_session, customer):
        service = ContactService(db_session)
        service.delete_contact(customer.id)
        with pytest.raises(NotFoundError):
            service.require_client(customer.id)

    def test_filter_by_type_and_search(self, db_session, customer, supplier):
        service = ContactService(db_session)

        clients = service.get_contacts(contact_type=ContactType.CLIENT)
        assert [c.id for c in clients.contacts] == [customer.id]

        providers = service.get_contacts(contact_type=ContactType.PROVIDER)
        assert [c.id for c in providers.contacts] == [supplier.id]

        assert service.get_contacts(search="3102654321").total == 1
        assert service.get_contacts(search="sabana").contacts[0].id == customer.id


# ===== TESTS DE ENDPOINTS =====

class TestContactEndpoints:
    def test_create_and_get(self, api_client, auth_headers, sample_contact_data):
        response = api_client.post("/contacts/", headers=auth_headers, json=sample_contact_data)
        assert response.status_code == 201
        contact_id = response.json()["id"]

        response = api_client.get(f"/contacts/{contact_id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["id_number"] == "3101987654"

    def test_invalid_payload(self, api_client, auth_headers, sample_contact_data):
        sample_contact_data["id_number"] = "123"
        response = api_client.post("/contacts/", headers=auth_headers, json=sample_contact_data)
        assert response.status_code == 422

    def test_list_by_type(self, api_client, auth_headers, customer, supplier):
        response = api_client.get("/contacts/", headers=auth_headers, params={"type": "provider"})
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_not_found(self, api_client, auth_headers):
        response = api_client.get(f"/contacts/{uuid4()}", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["details"]["entity"] == "Contacto"

    def test_requires_actor(self, api_client):
        assert api_client.get("/contacts/").status_code == 401
