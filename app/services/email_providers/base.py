from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(slots=True)
class EmailMessageResult:
    """Normalized response returned by email providers."""

    to: str
    subject: str
    provider: str
    provider_message_id: Optional[str] = None
    meta: Optional[dict[str, Any]] = None


class BaseEmailProvider(ABC):
    """Interface all email providers must implement."""

    name: str

    @abstractmethod
    def send_html(self, *, to: str, subject: str, html: str) -> EmailMessageResult:
        """Send an HTML message; raise EmailDeliveryError when the provider rejects it."""
        raise NotImplementedError
