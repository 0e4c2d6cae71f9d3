from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    CredentialsException,
    DuplicateAccountException,
    InvalidOTPException,
    PersistenceException,
)
from app.core.security import verify_password
from app.models.otp import OTPRecord
from app.models.portal_user import PortalUser
from app.services import auth_service, otp_service

pytestmark = pytest.mark.anyio


async def _register(db, mailer, email="a@x.com", role="citizen"):
    return await auth_service.initiate_registration(
        db, name="Asha Devi", email=email, password="Passw0rd123", role=role, mailer=mailer,
    )


async def test_registration_scenario_wrong_then_right_code(db, mailer, monkeypatch):
    monkeypatch.setattr(otp_service, "generate_otp", lambda: "123456")
    ack = await _register(db, mailer)
    assert ack.requires_otp is True
    assert ack.delivered is True
    assert mailer.sent[-1] == {"to": "a@x.com", "otp": "123456", "type": "registration", "name": "Asha Devi"}
    assert db.query(PortalUser).count() == 0

    with pytest.raises(InvalidOTPException):
        auth_service.verify_registration_otp(db, "a@x.com", "654321")

    result = auth_service.verify_registration_otp(db, "a@x.com", "123456")
    user = db.query(PortalUser).filter(PortalUser.email == "a@x.com").one()
    assert user.is_verified is True
    assert user.user_type == "citizen"
    assert verify_password("Passw0rd123", user.password)
    assert result.identity.email == "a@x.com"
    assert result.identity.role == "citizen"
    assert result.redirect_to == "/citizen-dashboard"
    assert result.access_token


async def test_registration_code_verifies_exactly_once(db, mailer):
    await _register(db, mailer)
    code = mailer.last_otp("a@x.com")

    auth_service.verify_registration_otp(db, "a@x.com", code)
    with pytest.raises(InvalidOTPException):
        auth_service.verify_registration_otp(db, "a@x.com", code)
    assert db.query(PortalUser).count() == 1


async def test_duplicate_registration_is_rejected(db, mailer, make_user):
    make_user(email="a@x.com")

    with pytest.raises(DuplicateAccountException):
        await _register(db, mailer)
    assert db.query(PortalUser).count() == 1
    assert db.query(OTPRecord).count() == 0
    assert mailer.sent == []


async def test_registration_email_is_normalised(db, mailer):
    await _register(db, mailer, email="  A@X.com ")
    result = auth_service.verify_registration_otp(db, "a@x.com", mailer.last_otp("a@x.com"))
    assert result.identity.email == "a@x.com"


async def test_registration_redirect_follows_role(db, mailer):
    await _register(db, mailer, email="officer@agency.gov.in", role="agency")
    result = auth_service.verify_registration_otp(db, "officer@agency.gov.in", mailer.last_otp())
    assert result.redirect_to == "/agency-dashboard"


async def test_login_with_wrong_password_issues_no_otp(db, mailer, make_user):
    make_user(email="a@x.com", password="Passw0rd123")

    with pytest.raises(CredentialsException):
        await auth_service.initiate_login(db, "a@x.com", "wrong-pass1", "citizen", mailer)
    assert db.query(OTPRecord).count() == 0
    assert mailer.sent == []


async def test_login_with_wrong_role_or_unknown_email_fails(db, mailer, make_user):
    make_user(email="a@x.com", user_type="citizen")

    with pytest.raises(CredentialsException):
        await auth_service.initiate_login(db, "a@x.com", "Passw0rd123", "agency", mailer)
    with pytest.raises(CredentialsException):
        await auth_service.initiate_login(db, "nobody@x.com", "Passw0rd123", "citizen", mailer)
    assert db.query(OTPRecord).count() == 0


async def test_login_scenario_code_expires_after_ten_minutes(db, mailer, make_user, monkeypatch):
    make_user(email="a@x.com")
    await auth_service.initiate_login(db, "a@x.com", "Passw0rd123", "citizen", mailer)
    code = mailer.last_otp("a@x.com")

    later = otp_service.utcnow() + timedelta(minutes=11)
    monkeypatch.setattr(otp_service, "utcnow", lambda: later)

    with pytest.raises(InvalidOTPException):
        auth_service.verify_login_otp(db, "a@x.com", code)


async def test_login_code_verifies_exactly_once(db, mailer, make_user):
    make_user(email="a@x.com")
    await auth_service.initiate_login(db, "a@x.com", "Passw0rd123", "citizen", mailer)
    code = mailer.last_otp("a@x.com")

    auth_service.verify_login_otp(db, "a@x.com", code)
    with pytest.raises(InvalidOTPException):
        auth_service.verify_login_otp(db, "a@x.com", code)


async def test_login_verification_stamps_last_login(db, mailer, make_user):
    user = make_user(email="admin@pmajay.gov.in", user_type="administrator")
    assert user.last_login is None

    await auth_service.initiate_login(db, "admin@pmajay.gov.in", "Passw0rd123", "administrator", mailer)
    result = auth_service.verify_login_otp(db, "admin@pmajay.gov.in", mailer.last_otp())

    db.refresh(user)
    assert user.last_login is not None
    assert result.redirect_to == "/admin-dashboard"
    assert result.identity.id == str(user.id)
    assert db.query(OTPRecord).filter(OTPRecord.is_used == True).count() == 1  # noqa: E712


async def test_delivery_failure_does_not_abort_the_flow(db, mailer, monkeypatch):
    monkeypatch.setattr(otp_service, "generate_otp", lambda: "482913")
    mailer.fail = True

    ack = await _register(db, mailer)
    assert ack.delivered is False

    result = auth_service.verify_registration_otp(db, "a@x.com", "482913")
    assert result.identity.email == "a@x.com"


async def test_resend_keeps_signup_payload_and_both_codes_live(db, mailer, monkeypatch):
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(otp_service, "generate_otp", lambda: next(codes))

    await _register(db, mailer)
    ack = await auth_service.resend_otp(db, "a@x.com", "registration", mailer)

    assert ack.delivered is True
    assert mailer.sent[-1]["name"] == "Asha Devi"
    assert db.query(OTPRecord).count() == 2

    result = auth_service.verify_registration_otp(db, "a@x.com", "222222")
    assert result.identity.name == "Asha Devi"
    # The older code is still live, but the account it would create now exists
    with pytest.raises(DuplicateAccountException):
        auth_service.verify_registration_otp(db, "a@x.com", "111111")


async def test_resend_invalidates_when_configured(db, mailer, monkeypatch):
    monkeypatch.setattr(auth_service.settings, "otp_invalidate_on_resend", True)
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(otp_service, "generate_otp", lambda: next(codes))

    await _register(db, mailer)
    await auth_service.resend_otp(db, "a@x.com", "registration", mailer)

    with pytest.raises(InvalidOTPException):
        auth_service.verify_registration_otp(db, "a@x.com", "111111")
    auth_service.verify_registration_otp(db, "a@x.com", "222222")


async def test_resend_without_pending_signup_cannot_create_account(db, mailer):
    await auth_service.resend_otp(db, "ghost@x.com", "registration", mailer)

    with pytest.raises(InvalidOTPException):
        auth_service.verify_registration_otp(db, "ghost@x.com", mailer.last_otp())
    assert db.query(PortalUser).count() == 0


async def test_storage_failure_surfaces_generic_error(db, mailer, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("INSERT INTO otp_store", {}, Exception("disk full"))

    monkeypatch.setattr(otp_service, "create_otp_record", broken)

    with pytest.raises(PersistenceException) as exc_info:
        await _register(db, mailer)
    assert exc_info.value.status_code == 500
    assert "disk full" not in exc_info.value.detail
    assert mailer.sent == []
