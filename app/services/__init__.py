from .auth_service import AuthService, OTPDeliveryResult
from .email_service import EmailService
from .otp_service import OTPService, OTPVerificationResult
from .profile_service import ProfileService

__all__ = [
    "AuthService",
    "EmailService",
    "OTPDeliveryResult",
    "OTPService",
    "OTPVerificationResult",
    "ProfileService",
]
