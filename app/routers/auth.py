"""
Auth router: OTP-gated registration and login.

Registration:
  1. POST /auth/register        → store pending signup + send OTP
  2. POST /auth/verify-register → verify OTP → create verified account → token

Login:
  1. POST /auth/login           → check email/password/user type + send OTP
  2. POST /auth/verify-login    → verify OTP → stamp last_login → token

POST /auth/resend-otp issues a fresh code for either flow.

Every step-1 response carries `delivered`; false means the email could not be
sent but the code was still issued.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.core.rate_limiter import (
    limiter, OTP_ISSUE_LIMIT, OTP_VERIFY_LIMIT, OTP_RESEND_LIMIT, LOGIN_LIMIT,
)
from app.schemas.auth import (
    RegisterRequest, LoginRequest, VerifyOTPRequest, ResendOTPRequest,
    OTPAcknowledgment, AuthResponse,
)
from app.services import auth_service
from app.services.auth_service import AuthResult
from app.services.email_service import get_mailer

router = APIRouter()


def _auth_response(result: AuthResult, message: str) -> AuthResponse:
    return AuthResponse(
        message=message,
        access_token=result.access_token,
        user=result.identity,
        redirect_to=result.redirect_to,
    )


# ── Register ──────────────────────────────────────────────────────────────────

@router.post("/register", response_model=OTPAcknowledgment, status_code=201)
@limiter.limit(OTP_ISSUE_LIMIT)
async def register(
    request: Request,
    body: RegisterRequest,
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
):
    """Step 1 of registration. No account exists until the OTP is verified."""
    return await auth_service.initiate_registration(
        db,
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.user_type,
        mailer=mailer,
    )


@router.post("/verify-register", response_model=AuthResponse)
@limiter.limit(OTP_VERIFY_LIMIT)
async def verify_register(
    request: Request,
    body: VerifyOTPRequest,
    db: Session = Depends(get_db),
):
    """Step 2 of registration: verify OTP and receive an access token."""
    result = auth_service.verify_registration_otp(db, email=body.email, otp=body.otp)
    return _auth_response(result, "Registration successful! Redirecting...")


# ── Login ─────────────────────────────────────────────────────────────────────

@router.post("/login", response_model=OTPAcknowledgment)
@limiter.limit(LOGIN_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
):
    """Step 1 of login. Credentials alone never yield a token."""
    return await auth_service.initiate_login(
        db,
        email=body.email,
        password=body.password,
        role=body.user_type,
        mailer=mailer,
    )


@router.post("/verify-login", response_model=AuthResponse)
@limiter.limit(OTP_VERIFY_LIMIT)
async def verify_login(
    request: Request,
    body: VerifyOTPRequest,
    db: Session = Depends(get_db),
):
    """Step 2 of login: verify OTP and receive an access token."""
    result = auth_service.verify_login_otp(db, email=body.email, otp=body.otp)
    return _auth_response(result, "Login successful! Redirecting...")


# ── OTP Resend ────────────────────────────────────────────────────────────────

@router.post("/resend-otp", response_model=OTPAcknowledgment)
@limiter.limit(OTP_RESEND_LIMIT)
async def resend_otp(
    request: Request,
    body: ResendOTPRequest,
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
):
    """Issue a fresh OTP. Earlier codes for the same email stay valid until used or expired."""
    return await auth_service.resend_otp(db, email=body.email, purpose=body.purpose, mailer=mailer)
