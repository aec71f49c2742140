"""
Shared fixtures: in-memory SQLite, a capturing SMS gateway and a TestClient.
"""
import os
import re

# Must be set before naiyaksetu is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("OTP_SWEEP_INTERVAL_SECONDS", "0")

import pytest
from fastapi.testclient import TestClient

from naiyaksetu.database import Base, SessionLocal, engine
from naiyaksetu.services.identity.sms_gateway import SmsGateway


class CapturingGateway(SmsGateway):
    """Records messages instead of sending them."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send(self, phone, message):
        if self.fail:
            from naiyaksetu.errors import DeliveryFailed
            raise DeliveryFailed("Failed to send OTP")
        self.sent.append((phone, message))

    def last_code(self) -> str:
        _, message = self.sent[-1]
        return re.search(r"\b(\d{6})\b", message).group(1)


@pytest.fixture
def db():
    from naiyaksetu.models import db_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return CapturingGateway()


@pytest.fixture
def client(db, gateway):
    from naiyaksetu.main import app
    from naiyaksetu.services.identity.sms_gateway import get_sms_gateway

    app.dependency_overrides[get_sms_gateway] = lambda: gateway
    # No context manager: lifespan (init_db, sweeper) is not needed here
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_account(db):
    from naiyaksetu.models.db_models import AccountDB, Role
    from naiyaksetu.services.identity import hash_password

    account = AccountDB(
        id="11111111-1111-1111-1111-111111111111",
        email="officer@naiyaksetu.gov.in",
        name="Ward Officer",
        password_hash=hash_password("officerpass"),
        role=Role.ADMIN,
        is_verified=True,
        is_active=True,
    )
    db.add(account)
    db.commit()
    return account


@pytest.fixture
def citizen_account(db):
    from naiyaksetu.models.db_models import AccountDB, Role
    from naiyaksetu.services.identity import hash_password

    account = AccountDB(
        id="22222222-2222-2222-2222-222222222222",
        email="citizen@example.com",
        phone="+919876543210",
        name="Asha",
        password_hash=hash_password("citizenpass"),
        role=Role.CUSTOMER,
        is_verified=True,
        is_active=True,
    )
    db.add(account)
    db.commit()
    return account


@pytest.fixture
def admin_token(db, admin_account):
    from naiyaksetu.services.identity import TokenService
    return TokenService(db).issue(admin_account)


@pytest.fixture
def citizen_token(db, citizen_account):
    from naiyaksetu.services.identity import TokenService
    return TokenService(db).issue(citizen_account)


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
