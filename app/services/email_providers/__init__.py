from .base import BaseEmailProvider, EmailMessageResult
from .resend_provider import ResendEmailProvider

__all__ = [
    "BaseEmailProvider",
    "EmailMessageResult",
    "ResendEmailProvider",
]
