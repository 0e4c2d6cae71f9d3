"""
Auth schemas: request bodies and responses for the OTP-gated registration and
login handshake.
"""
from pydantic import BaseModel, EmailStr, field_validator, ConfigDict
from typing import Literal, Optional
import re

UserType = Literal["administrator", "agency", "citizen"]
OTPPurpose = Literal["registration", "login"]


def _normalise_email(v: str) -> str:
    return v.strip().lower()


def _otp_format(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("OTP cannot be empty")
    if not re.fullmatch(r"[0-9]+", v):
        raise ValueError("OTP must contain only numbers")
    if len(v) != 6:
        raise ValueError("OTP must be exactly 6 digits")
    return v


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    user_type: UserType

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2 or len(v) > 150:
            raise ValueError("Name must be between 2 and 150 characters")
        return v

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        if not re.search(r"\d", v) or not re.search(r"[A-Za-z]", v):
            raise ValueError("Password must contain letters and numbers")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    user_type: UserType

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return _normalise_email(v)


class VerifyOTPRequest(BaseModel):
    email: EmailStr
    otp: str

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("otp")
    @classmethod
    def otp_format(cls, v: str) -> str:
        return _otp_format(v)


class ResendOTPRequest(BaseModel):
    email: EmailStr
    purpose: OTPPurpose

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return _normalise_email(v)


class SessionIdentity(BaseModel):
    """
    Who is signed in. Returned after verification and persisted by the
    session store; never carries the password hash.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: UserType

    @classmethod
    def from_user(cls, user) -> "SessionIdentity":
        return cls(id=str(user.id), name=user.name, email=user.email, role=user.user_type)


class OTPAcknowledgment(BaseModel):
    """Returned by initiate/resend. delivered=False means the mail step failed."""
    message: str
    requires_otp: bool = True
    email: str
    delivered: bool


class AuthResponse(BaseModel):
    message: str
    access_token: str
    token_type: str = "bearer"
    user: SessionIdentity
    redirect_to: str


class MessageResponse(BaseModel):
    message: str
