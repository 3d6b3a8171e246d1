from enum import Enum


class OTPPurpose(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    ACCOUNT_RECOVERY = "account_recovery"


class AuthAction(str, Enum):
    OTP_REQUEST = "OTP_REQUEST"
    OTP_RESEND = "OTP_RESEND"
    OTP_VERIFICATION = "OTP_VERIFICATION"
    OTP_VERIFICATION_FAILED = "OTP_VERIFICATION_FAILED"
    PASSWORD_RESET_REQUEST = "PASSWORD_RESET_REQUEST"
    PASSWORD_RESET = "PASSWORD_RESET"
    PASSWORD_RESET_FAILED = "PASSWORD_RESET_FAILED"
