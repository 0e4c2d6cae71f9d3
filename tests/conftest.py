import os

# Settings are read at import time, so the environment must be in place first.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ.setdefault("MAIL_USERNAME", "portal-mailer")
os.environ.setdefault("MAIL_PASSWORD", "not-a-real-password")
os.environ.setdefault("MAIL_FROM", "noreply@pmajay.gov.in")
os.environ["MAIL_SUPPRESS_SEND"] = "true"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient

import app.models  # noqa: F401 (registers every table on Base.metadata)
from app.core.exceptions import DeliveryFailure
from app.core.rate_limiter import limiter
from app.core.security import create_access_token, hash_password
from app.database import Base, SessionLocal, engine
from app.main import app as fastapi_app
from app.models.portal_user import PortalUser
from app.services.email_service import get_mailer
from app.services.notification_broker import NotificationBroker


class FakeMailer:
    """Records every OTP it is asked to deliver; can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def __call__(self, email_to, otp, purpose, name=""):
        if self.fail:
            raise DeliveryFailure(email_to, "SMTP connection refused")
        self.sent.append({"to": email_to, "otp": otp, "type": purpose, "name": name})

    def last_otp(self, email=None):
        for message in reversed(self.sent):
            if email is None or message["to"] == email:
                return message["otp"]
        raise AssertionError(f"no OTP sent to {email}")


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def broker():
    return NotificationBroker()


@pytest.fixture
def client(mailer):
    limiter.enabled = False
    fastapi_app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def make_user(db):
    def _make(email="citizen@pmajay.gov.in", user_type="citizen", password="Passw0rd123", name="Asha Devi"):
        user = PortalUser(
            name=name,
            email=email,
            password=hash_password(password),
            user_type=user_type,
            is_verified=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token(str(user.id), user.user_type)
        return {"Authorization": f"Bearer {token}"}

    return _headers
