import json
import logging

import httpx
import pytest

from app.services import EmailService
from app.services.email_providers import BaseEmailProvider, EmailMessageResult, ResendEmailProvider
from app.services.exceptions import EmailDeliveryError


class _RecordingProvider(BaseEmailProvider):
    name = "recording"

    def __init__(self):
        self.sent = []

    def send_html(self, *, to: str, subject: str, html: str) -> EmailMessageResult:
        self.sent.append({"to": to, "subject": subject, "html": html})
        return EmailMessageResult(to=to, subject=subject, provider=self.name, provider_message_id="msg-1")


class _BrokenProvider(BaseEmailProvider):
    name = "broken"

    def send_html(self, *, to: str, subject: str, html: str) -> EmailMessageResult:
        raise EmailDeliveryError("provider down")


def test_dry_run_logs_instead_of_sending(caplog):
    service = EmailService()

    with caplog.at_level(logging.INFO, logger="app.email"):
        sent = service.send_otp_email(to="a@ncit.edu.np", subject="Code", otp="482913")

    assert sent is True
    assert "DRY-RUN" in caplog.text
    assert "482913" in caplog.text


def test_otp_email_renders_code_and_escapes_name():
    provider = _RecordingProvider()
    service = EmailService(provider=provider)

    assert service.send_otp_email(to="a@ncit.edu.np", subject="Code", otp="482913", user_name="<b>Ram</b>") is True

    message = provider.sent[0]
    assert message["to"] == "a@ncit.edu.np"
    assert "482913" in message["html"]
    assert "&lt;b&gt;Ram&lt;/b&gt;" in message["html"]
    assert "<b>Ram</b>" not in message["html"]


def test_password_reset_email_contains_link():
    provider = _RecordingProvider()
    service = EmailService(provider=provider)
    link = "http://localhost:3000/reset-password?email=a%40ncit.edu.np&code=482913"

    assert service.send_password_reset_email(to="a@ncit.edu.np", subject="Reset", reset_link=link) is True
    assert "code=482913" in provider.sent[0]["html"]


def test_provider_failure_returns_false():
    service = EmailService(provider=_BrokenProvider())

    assert service.send_otp_email(to="a@ncit.edu.np", subject="Code", otp="482913") is False


def test_missing_provider_outside_dry_run_returns_false(monkeypatch):
    service = EmailService()
    monkeypatch.setattr(service.settings, "EMAIL_DRY_RUN", False)

    assert service.send_otp_email(to="a@ncit.edu.np", subject="Code", otp="482913") is False


def test_resend_provider_posts_payload():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "re_123"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    provider = ResendEmailProvider(api_key="re_key", sender="Hub <no-reply@ncit.edu.np>", client=client)

    result = provider.send_html(to="a@ncit.edu.np", subject="Code", html="<p>482913</p>")

    assert result.provider == "resend"
    assert result.provider_message_id == "re_123"
    assert captured["auth"] == "Bearer re_key"
    assert captured["body"] == {
        "from": "Hub <no-reply@ncit.edu.np>",
        "to": ["a@ncit.edu.np"],
        "subject": "Code",
        "html": "<p>482913</p>",
    }


def _rejecting_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(422, json={"message": "invalid from"})


def _unreachable_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("refused", request=request)


@pytest.mark.parametrize("handler", [_rejecting_handler, _unreachable_handler], ids=["rejected", "unreachable"])
def test_resend_provider_raises_delivery_error(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    provider = ResendEmailProvider(api_key="re_key", sender="no-reply@ncit.edu.np", client=client)

    with pytest.raises(EmailDeliveryError):
        provider.send_html(to="a@ncit.edu.np", subject="Code", html="<p>x</p>")
