"""Single account-disclosure policy shared by every OTP entry point."""

from app.models import OTPPurpose

GENERIC_CODE_SENT_MESSAGE = "If an account exists with this email, you will receive a code"
GENERIC_RESET_LINK_MESSAGE = "If an account exists with this email, you will receive a password reset link"
CODE_SENT_MESSAGE = "OTP code sent to your email"

_PROTECTED_PURPOSES = frozenset({OTPPurpose.PASSWORD_RESET, OTPPurpose.ACCOUNT_RECOVERY})


def is_protected_purpose(purpose: OTPPurpose | str) -> bool:
    """Codes for these purposes go to registered accounts only, and responses
    must look the same whether or not the account exists."""

    return OTPPurpose(purpose) in _PROTECTED_PURPOSES


def sent_message(purpose: OTPPurpose | str) -> str:
    return GENERIC_CODE_SENT_MESSAGE if is_protected_purpose(purpose) else CODE_SENT_MESSAGE
