"""
Email service using fastapi-mail over SMTP.

Port 587 → MAIL_STARTTLS=True, MAIL_SSL_TLS=False
Port 465 → MAIL_SSL_TLS=True, MAIL_STARTTLS=False

MAIL_SUPPRESS_SEND=true makes fastapi-mail build the message without opening
an SMTP connection (local development).
"""
import logging
from datetime import datetime

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType
from fastapi_mail.errors import ConnectionErrors

from app.config import settings
from app.core.exceptions import DeliveryFailure

logger = logging.getLogger(__name__)

mail_config = ConnectionConfig(
    MAIL_USERNAME=settings.mail_username,
    MAIL_PASSWORD=settings.mail_password,
    MAIL_FROM=settings.mail_from,
    MAIL_PORT=settings.mail_port,
    MAIL_SERVER=settings.mail_server,
    MAIL_STARTTLS=settings.mail_port != 465,
    MAIL_SSL_TLS=settings.mail_port == 465,
    USE_CREDENTIALS=True,
    VALIDATE_CERTS=True,
    SUPPRESS_SEND=1 if settings.mail_suppress_send else 0,
)

fast_mail = FastMail(mail_config)

_PURPOSE_LABEL = {
    "registration": "Registration",
    "login": "Login",
}


def build_otp_message(email_to: str, otp: str, purpose: str, name: str = "") -> MessageSchema:
    label = _PURPOSE_LABEL.get(purpose, "Verification")
    body = f"""
    <html>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
          <div style="background: #1e40af; color: white; padding: 20px; text-align: center;">
            <h1 style="margin: 0;">PM-AJAY Portal</h1>
          </div>
          <div style="padding: 30px; background: #f9fafb;">
            <p>Hello {name or 'User'},</p>
            <p>Your One-Time Password (OTP) for {label.lower()} is:</p>
            <div style="background: white; border: 2px solid #1e40af; padding: 20px; text-align: center;">
              <h1 style="color: #1e40af; margin: 0; font-size: 36px; letter-spacing: 8px;">{otp}</h1>
            </div>
            <p>This OTP will expire in {settings.otp_expiry_minutes} minutes.</p>
            <p>If you didn't request this OTP, please ignore this email.</p>
          </div>
          <div style="padding: 20px; text-align: center; color: #64748b; font-size: 12px;">
            <p>This is an official communication from PM-AJAY Implementation Mapping Portal</p>
            <p>&copy; {datetime.now().year} PM-AJAY Portal</p>
          </div>
        </div>
      </body>
    </html>
    """
    return MessageSchema(
        subject=f"Your {label} OTP - PM-AJAY Portal",
        recipients=[email_to],
        body=body,
        subtype=MessageType.html,
    )


async def send_otp_email(email_to: str, otp: str, purpose: str, name: str = "") -> None:
    """
    Deliver an OTP. Raises DeliveryFailure when the SMTP hand-off fails;
    callers decide whether that is fatal (the OTP flow treats it as not).

    Args:
        email_to: recipient address
        otp: the raw 6-digit code (never stored raw)
        purpose: "registration" | "login"
        name: greeting name, may be empty
    """
    message = build_otp_message(email_to, otp, purpose, name)
    try:
        await fast_mail.send_message(message)
    except ConnectionErrors as exc:
        raise DeliveryFailure(email_to, str(exc)) from exc
    logger.info(f"OTP email sent: to={email_to}, purpose={purpose}")


def get_mailer():
    """FastAPI dependency for the mail collaborator; tests override it."""
    return send_otp_email
