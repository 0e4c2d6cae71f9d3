from app.schemas.auth import (
    RegisterRequest, LoginRequest, VerifyOTPRequest, ResendOTPRequest,
    SessionIdentity, OTPAcknowledgment, AuthResponse, MessageResponse,
)
from app.schemas.user import PortalUserOut
from app.schemas.notification import (
    NotificationOut, NotificationListResponse, UnreadCountResponse,
    MarkReadResponse, SendNotificationRequest,
)
