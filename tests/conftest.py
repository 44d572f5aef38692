import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from database import get_session, make_engine
from models import Base, Invoice, InvoiceStatus, Tenant, User
from tests.fakes import FakeMpesaClient
from utils.auth import create_access_token


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def staff_user(db):
    user = User(email="manager@example.com", first_name="Mary", last_name="Manager", role="manager")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def tenant(db):
    user = User(email="jane@example.com", first_name="Jane", last_name="Wanjiku", role="tenant")
    db.add(user)
    db.flush()
    tenant = Tenant(
        user_id=user.id,
        first_name="Jane",
        last_name="Wanjiku",
        email="jane@example.com",
        contact_number="0712 345 678",
    )
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def other_tenant(db):
    tenant = Tenant(first_name="Otieno", last_name="Ochieng", email="otieno@example.com", contact_number="0722000111")
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def invoice(db, tenant):
    invoice = Invoice(
        tenant_id=tenant.tenant_id,
        invoice_number="INV-2024-001",
        amount=Decimal("1500.00"),
        due_date=date(2024, 1, 31),
        status=InvoiceStatus.PENDING,
    )
    db.add(invoice)
    db.commit()
    return invoice


@pytest.fixture
def fake_client():
    return FakeMpesaClient()


@pytest.fixture
def app(db, fake_client):
    from main import app
    from routers.mpesa import get_mpesa_client

    def override_get_session():
        yield db

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_mpesa_client] = lambda: fake_client
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def staff_headers(staff_user):
    return {"Authorization": f"Bearer {create_access_token({'id': staff_user.id, 'role': 'manager'})}"}


@pytest.fixture
def tenant_headers(tenant):
    return {"Authorization": f"Bearer {create_access_token({'id': tenant.user_id, 'role': 'tenant'})}"}
