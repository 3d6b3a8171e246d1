from __future__ import annotations

import logging
from typing import Any

import httpx

from ..exceptions import EmailDeliveryError
from .base import BaseEmailProvider, EmailMessageResult

logger = logging.getLogger(__name__)


class ResendEmailProvider(BaseEmailProvider):
    """Resend HTTP API implementation of the email provider interface."""

    name = "resend"

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 20.0,
        client: httpx.Client | None = None,
    ):
        self._api_key = api_key
        self._sender = sender
        self._api_url = api_url
        self._timeout = timeout
        self._client = client

    def send_html(self, *, to: str, subject: str, html: str) -> EmailMessageResult:
        logger.debug("Sending Resend email | to=%s", to)
        payload = {"from": self._sender, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        try:
            if self._client is not None:
                response = self._client.post(self._api_url, json=payload, headers=headers, timeout=self._timeout)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(self._api_url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            logger.error("Resend timeout | to=%s", to)
            raise EmailDeliveryError("Email provider timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("Resend transport error | to=%s | error=%s", to, type(exc).__name__)
            raise EmailDeliveryError("Email provider is unreachable") from exc

        if response.status_code not in (200, 202):
            logger.error("Resend rejected email | to=%s | status=%s", to, response.status_code)
            raise EmailDeliveryError(f"Resend rejected email send request: HTTP {response.status_code}")

        data: dict[str, Any] = {}
        try:
            data = response.json() or {}
        except ValueError:
            logger.debug("Resend returned a non-JSON body | to=%s", to)

        return EmailMessageResult(
            to=to,
            subject=subject,
            provider=self.name,
            provider_message_id=data.get("id"),
            meta=data or None,
        )
