from .auth import ForgotPasswordRequest, OTPSendRequest, OTPVerifyRequest, ResetPasswordRequest
from .common import HealthStatus, OTPResponse

__all__ = [
    "ForgotPasswordRequest",
    "HealthStatus",
    "OTPResponse",
    "OTPSendRequest",
    "OTPVerifyRequest",
    "ResetPasswordRequest",
]
