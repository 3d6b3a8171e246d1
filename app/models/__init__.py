from .auth_log import AuthLog
from .base import Base
from .enums import AuthAction, OTPPurpose
from .otp_token import OTPToken
from .profile import Profile

__all__ = [
    "AuthLog",
    "Base",
    "OTPToken",
    "Profile",
    "AuthAction",
    "OTPPurpose",
]
