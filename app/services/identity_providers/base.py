from __future__ import annotations

from abc import ABC, abstractmethod


class BaseIdentityProvider(ABC):
    """Account operations delegated outside the OTP core."""

    name: str

    @abstractmethod
    def update_password(self, *, user_id: str, new_password: str) -> None:
        """Replace the password of the account; raise IdentityProviderError on failure."""
        raise NotImplementedError
