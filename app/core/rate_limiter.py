"""
slowapi limiter shared by every router.

Limits are keyed on client IP. A rate-limited endpoint must accept
`request: Request`, and @limiter.limit sits below the @router decorator.

A 6-digit code has 900,000 possibilities, so the OTP steps carry the tightest
limits: issuing mail is capped harder than checking a code.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

OTP_ISSUE_LIMIT = "5/minute"
OTP_VERIFY_LIMIT = "10/minute"
OTP_RESEND_LIMIT = "3/minute"
LOGIN_LIMIT = "10/minute"

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],
)
