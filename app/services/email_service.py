from html import escape
import logging

from app.core.config import get_settings
from app.services.email_providers import BaseEmailProvider, ResendEmailProvider

from . import exceptions

logger = logging.getLogger(__name__)


def _wrap(title: str, body: str, brand: str) -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; background: #f4f4f7; padding: 24px;\">"
        "<div style=\"max-width: 560px; margin: 0 auto; background: #ffffff; border-radius: 8px; padding: 32px;\">"
        f"<h2 style=\"color: #1f2937; margin-top: 0;\">{escape(title)}</h2>"
        f"{body}"
        f"<p style=\"color: #9ca3af; font-size: 12px; margin-top: 32px;\">&copy; {escape(brand)}</p>"
        "</div></body></html>"
    )


def _greeting(user_name: str | None) -> str:
    name = escape(user_name.strip()) if user_name and user_name.strip() else "there"
    return f"<p style=\"color: #374151;\">Hi {name},</p>"


class EmailService:
    """Render OTP emails and hand them to the configured provider.

    Every send returns a boolean; delivery errors are logged, never raised.
    """

    def __init__(self, provider: BaseEmailProvider | None = None):
        self.settings = get_settings()
        self.email_logger = logging.getLogger("app.email")
        self._provider = provider
        if self._provider is None and not self.settings.EMAIL_DRY_RUN and self.settings.RESEND_API_KEY:
            self._provider = ResendEmailProvider(
                api_key=self.settings.RESEND_API_KEY,
                sender=self.settings.RESEND_FROM_EMAIL,
                api_url=self.settings.RESEND_API_URL,
            )

    def send_otp_email(self, *, to: str, subject: str, otp: str, user_name: str | None = None) -> bool:
        minutes = self.settings.OTP_EXPIRATION_MINUTES
        body = (
            f"{_greeting(user_name)}"
            "<p style=\"color: #374151;\">Use the following code to continue:</p>"
            "<div style=\"font-size: 32px; letter-spacing: 8px; font-weight: bold; text-align: center; "
            f"background: #f3f4f6; border-radius: 6px; padding: 16px; margin: 24px 0;\">{escape(otp)}</div>"
            f"<p style=\"color: #6b7280;\">The code expires in {minutes} minutes and can be used once. "
            "If you did not request it, you can ignore this email.</p>"
        )
        html = _wrap(subject, body, self.settings.EMAIL_BRAND_NAME)
        return self._deliver(to=to, subject=subject, html=html, code=otp)

    def send_password_reset_email(
        self,
        *,
        to: str,
        subject: str,
        reset_link: str,
        user_name: str | None = None,
    ) -> bool:
        minutes = self.settings.OTP_EXPIRATION_MINUTES
        link = escape(reset_link, quote=True)
        body = (
            f"{_greeting(user_name)}"
            "<p style=\"color: #374151;\">We received a request to reset your password.</p>"
            f"<p style=\"text-align: center; margin: 24px 0;\"><a href=\"{link}\" "
            "style=\"background: #2563eb; color: #ffffff; padding: 12px 24px; border-radius: 6px; "
            "text-decoration: none;\">Reset password</a></p>"
            f"<p style=\"color: #6b7280;\">The link expires in {minutes} minutes. "
            "If you did not request a reset, you can ignore this email.</p>"
        )
        html = _wrap(subject, body, self.settings.EMAIL_BRAND_NAME)
        return self._deliver(to=to, subject=subject, html=html, code=reset_link)

    def _deliver(self, *, to: str, subject: str, html: str, code: str) -> bool:
        if self.settings.EMAIL_DRY_RUN and self._provider is None:
            self.email_logger.info("DRY-RUN email | to=%s | subject=\"%s\" | code=%s", to, subject, code)
            return True

        if self._provider is None:
            self.email_logger.error("Email provider is not configured | to=%s", to)
            return False

        try:
            result = self._provider.send_html(to=to, subject=subject, html=html)
        except exceptions.EmailDeliveryError:
            self.email_logger.warning("Email delivery failed | to=%s | subject=\"%s\"", to, subject)
            return False

        self.email_logger.info(
            "Email sent | to=%s | subject=\"%s\" | provider=%s | provider_message_id=%s",
            to,
            subject,
            result.provider,
            result.provider_message_id,
        )
        return True
