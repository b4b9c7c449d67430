"""
Shared fixtures: in-memory SQLite database, API client and bearer tokens.

The environment is set before the application is imported so the engine is
built against SQLite and no tables are created at import time.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

import pytest
from datetime import date, timedelta
from fastapi.testclient import TestClient

from factory_erp.main import app
from factory_erp.database.database import Base, SessionLocal, engine
from factory_erp.modules.auth.utils import create_access_token
from factory_erp.modules.customers.models import Customer
from factory_erp.modules.taxes.models import HSNCode


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def auth_headers(role: str = "ADMIN", user_id: str = "user-1") -> dict:
    token = create_access_token({"sub": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return auth_headers("ADMIN", "admin-1")


@pytest.fixture
def accountant_headers():
    return auth_headers("ACCOUNTANT", "accountant-1")


@pytest.fixture
def employee_headers():
    return auth_headers("EMPLOYEE", "employee-1")


@pytest.fixture
def customer(db_session):
    customer = Customer(
        code="CUST001",
        name="Sri Lakshmi Textiles",
        email="accounts@srilakshmi.example",
        phone="+91 98450 12345",
        address="12 Mill Road",
        city="Tiruppur",
        state="Tamil Nadu",
        pincode="641601",
        gst_number="33AABCS1234F1Z5",
        payment_terms_days=30,
        is_active=True,
    )
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture
def inactive_customer(db_session):
    customer = Customer(code="CUST999", name="Closed Account", is_active=False)
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture
def hsn_codes(db_session):
    codes = [
        HSNCode(code="6109", description="T-Shirts", tax_rate=5),
        HSNCode(code="9988", description="Stitching/Job Work", tax_rate=18),
    ]
    db_session.add_all(codes)
    db_session.commit()
    return codes


@pytest.fixture
def invoice_payload(customer):
    issue = date(2024, 1, 15)
    return {
        "customer_id": str(customer.id),
        "issue_date": issue.isoformat(),
        "due_date": (issue + timedelta(days=30)).isoformat(),
        "status": "PENDING",
        "items": [
            {"description": "Cotton T-Shirt", "hsn_code": "6109", "quantity": "2", "unit_price": "500", "tax_rate": "18"}
        ],
    }
