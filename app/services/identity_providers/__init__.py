from .base import BaseIdentityProvider
from .database_provider import DatabaseIdentityProvider

__all__ = [
    "BaseIdentityProvider",
    "DatabaseIdentityProvider",
]
