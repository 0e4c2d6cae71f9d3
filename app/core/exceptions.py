"""
Centralised custom exceptions.
HTTP-facing errors subclass HTTPException so services can raise them directly
and FastAPI renders them. DeliveryFailure is internal only: the OTP flow
catches it and never lets it reach a response.
"""
from fastapi import HTTPException, status


class CredentialsException(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenException(HTTPException):
    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundException(HTTPException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class DuplicateAccountException(HTTPException):
    def __init__(self, detail: str = "Email already registered. Please login instead."):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidOTPException(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired OTP. Please try again.",
        )


class PersistenceException(HTTPException):
    """A database call failed. The detail is deliberately generic."""

    def __init__(self, detail: str = "Something went wrong. Please try again."):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
        )


class DeliveryFailure(Exception):
    """The mail collaborator could not hand the OTP to the SMTP server."""

    def __init__(self, email: str, reason: str = ""):
        self.email = email
        self.reason = reason
        super().__init__(f"OTP delivery to {email} failed: {reason}")
