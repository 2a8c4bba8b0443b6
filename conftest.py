"""
Fixtures compartidas por los tests de los módulos.

Base de datos SQLite en memoria (una sola conexión compartida) recreada en
cada test; el TestClient usa la misma sesión que el test.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["HACIENDA_ENABLED"] = "false"

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.database.database import Base, SessionLocal, get_db, sync_engine
from app.dependencies.userDependencies import Actor
from app.main import app
from app.modules.billing.service import PaymentTermService
from app.modules.contacts.schemas import ContactCreate
from app.modules.contacts.service import ContactService
from app.modules.products.schemas import ProductCreate
from app.modules.products.service import ProductService


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=sync_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def actor():
    return Actor(user_id="user-1", email="cajero@ally.cr")


@pytest.fixture
def auth_headers(actor):
    return {"X-User-ID": actor.user_id, "X-User-Email": actor.email}


@pytest.fixture
def api_client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def payment_terms(db_session):
    service = PaymentTermService(db_session)
    service.ensure_defaults()
    return {term.code: term for term in service.list_terms()}


@pytest.fixture
def cash_term(payment_terms):
    return payment_terms["01"]


@pytest.fixture
def credit_term(payment_terms):
    return payment_terms["02-30"]


@pytest.fixture
def customer(db_session, actor):
    return ContactService(db_session).create_contact(ContactCreate(
        name="Distribuidora La Sabana S.A.",
        type=["client"],
        email="compras@lasabana.cr",
        phone="22223333",
        id_type="02",
        id_number="3101123456",
        province="1",
        canton="01",
        district="08",
        payment_terms_days=30
    ), user_id=actor.user_id)


@pytest.fixture
def supplier(db_session, actor):
    return ContactService(db_session).create_contact(ContactCreate(
        name="Café del Valle Ltda.",
        type=["provider"],
        email="ventas@cafedelvalle.cr",
        id_type="02",
        id_number="3102654321"
    ), user_id=actor.user_id)


@pytest.fixture
def coffee(db_session, actor):
    """Producto con precio de venta 1000 y 10 unidades en inventario."""
    return ProductService(db_session).create_product(ProductCreate(
        name="Café molido 500g",
        sku="CAF-500",
        fiscal_code="2391201000000",
        price_sale=Decimal("1000"),
        price_base=Decimal("600"),
        tax_rate=Decimal("13"),
        initial_stock=Decimal("10")
    ), user_id=actor.user_id)


@pytest.fixture
def sugar(db_session, actor):
    return ProductService(db_session).create_product(ProductCreate(
        name="Azúcar 1kg",
        sku="AZU-1000",
        fiscal_code="2351000000100",
        price_sale=Decimal("850"),
        price_base=Decimal("500"),
        tax_rate=Decimal("1"),
        initial_stock=Decimal("20")
    ), user_id=actor.user_id)


@pytest.fixture
def today():
    return date.today()


@pytest.fixture
def last_month(today):
    return today - timedelta(days=40)
