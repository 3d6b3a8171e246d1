from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any
from urllib.parse import urlencode

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import normalize_email
from app.models import AuthAction, OTPPurpose

from . import exceptions
from .auth_log_service import count_recent_requests, log_auth_event
from .disclosure import GENERIC_CODE_SENT_MESSAGE, GENERIC_RESET_LINK_MESSAGE, is_protected_purpose, sent_message
from .email_service import EmailService
from .identity_providers import BaseIdentityProvider, DatabaseIdentityProvider
from .otp_service import OTPService, OTPVerificationResult
from .profile_service import ProfileService

logger = logging.getLogger(__name__)

PASSWORD_RESET_SUCCESS_MESSAGE = "Password reset successfully. You can now login with your new password."
PASSWORD_RESET_UNKNOWN_ACCOUNT_MESSAGE = "Could not identify user for password reset"
PASSWORD_UPDATE_FAILED_MESSAGE = "Failed to reset password. Your code has already been used, please request a new one."

_SUBJECTS = {
    OTPPurpose.EMAIL_VERIFICATION: "Email Verification Code",
    OTPPurpose.PASSWORD_RESET: "Password Reset Code",
    OTPPurpose.ACCOUNT_RECOVERY: "Account Recovery Code",
}


@dataclass(slots=True)
class OTPDeliveryResult:
    success: bool
    message: str
    expires_at: datetime | None = None


class AuthService:
    """OTP flows exposed over HTTP: send, resend, verify, forgot and reset password."""

    def __init__(
        self,
        db: Session,
        *,
        email_service: EmailService | None = None,
        identity_provider: BaseIdentityProvider | None = None,
    ):
        self.db = db
        self.settings = get_settings()
        self.otp_service = OTPService(db)
        self.profiles = ProfileService(db)
        self.email_service = email_service or EmailService()
        self.identity_provider = identity_provider or DatabaseIdentityProvider(db)

    def send_otp(
        self,
        *,
        email: str,
        purpose: OTPPurpose | str,
        user_name: str | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> OTPDeliveryResult:
        return self._deliver_code(
            email=email,
            purpose=OTPPurpose(purpose),
            user_name=user_name,
            ip=ip,
            user_agent=user_agent,
            supersede=False,
        )

    def resend_otp(
        self,
        *,
        email: str,
        purpose: OTPPurpose | str,
        user_name: str | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> OTPDeliveryResult:
        return self._deliver_code(
            email=email,
            purpose=OTPPurpose(purpose),
            user_name=user_name,
            ip=ip,
            user_agent=user_agent,
            supersede=True,
        )

    def _deliver_code(
        self,
        *,
        email: str,
        purpose: OTPPurpose,
        user_name: str | None,
        ip: str | None,
        user_agent: str | None,
        supersede: bool,
    ) -> OTPDeliveryResult:
        normalized_email = normalize_email(email)
        protected = is_protected_purpose(purpose)
        action = AuthAction.OTP_RESEND if supersede else AuthAction.OTP_REQUEST

        self._enforce_rate_limit(email=normalized_email, ip=ip)

        profile = self.profiles.get_by_email(normalized_email)
        if profile is None and protected:
            self._record(
                action=action,
                email=normalized_email,
                ip=ip,
                user_agent=user_agent,
                meta={"purpose": purpose.value, "issued": False},
            )
            return OTPDeliveryResult(success=True, message=GENERIC_CODE_SENT_MESSAGE)

        user_id = profile.id if profile else None
        issue = self.otp_service.resend if supersede else self.otp_service.issue
        otp = issue(email=normalized_email, purpose=purpose, user_id=user_id, ip=ip, user_agent=user_agent)
        if otp is None:
            if protected:
                self._record(
                    action=action,
                    email=normalized_email,
                    ip=ip,
                    user_agent=user_agent,
                    meta={"purpose": purpose.value, "issued": False},
                )
                return OTPDeliveryResult(success=True, message=GENERIC_CODE_SENT_MESSAGE)
            raise exceptions.StoreUnavailableError("Failed to generate OTP code")

        subject = f"{_SUBJECTS[purpose]} - {self.settings.EMAIL_BRAND_NAME}"
        sent = self.email_service.send_otp_email(
            to=normalized_email,
            subject=subject,
            otp=otp.code,
            user_name=user_name or (profile.full_name if profile else None),
        )
        self._record(
            action=action,
            actor_id=user_id,
            email=normalized_email,
            ip=ip,
            user_agent=user_agent,
            meta={"purpose": purpose.value, "otp_id": otp.id, "email_sent": sent},
        )

        if not sent:
            logger.warning("OTP email not delivered | email=%s | purpose=%s", normalized_email, purpose.value)
            return OTPDeliveryResult(success=True, message=GENERIC_CODE_SENT_MESSAGE)
        if protected:
            return OTPDeliveryResult(success=True, message=sent_message(purpose))
        return OTPDeliveryResult(success=True, message=sent_message(purpose), expires_at=otp.expires_at)

    def verify_otp(
        self,
        *,
        email: str,
        code: str,
        purpose: OTPPurpose | str,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> OTPVerificationResult:
        purpose = OTPPurpose(purpose)
        normalized_email = normalize_email(email)
        result = self.otp_service.verify(email=normalized_email, code=code, purpose=purpose)

        if result.success and purpose == OTPPurpose.EMAIL_VERIFICATION:
            try:
                self.profiles.mark_email_verified(user_id=result.user_id, email=normalized_email)
            except SQLAlchemyError:
                # The code is consumed either way
                self.db.rollback()
                logger.exception("Failed to update email verification status | email=%s", normalized_email)

        self._record(
            action=AuthAction.OTP_VERIFICATION if result.success else AuthAction.OTP_VERIFICATION_FAILED,
            actor_id=result.user_id,
            email=normalized_email,
            ip=ip,
            user_agent=user_agent,
            meta={"purpose": purpose.value},
        )
        return result

    def request_password_reset(
        self,
        *,
        email: str,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> OTPDeliveryResult:
        normalized_email = normalize_email(email)
        generic = OTPDeliveryResult(success=True, message=GENERIC_RESET_LINK_MESSAGE)

        self._enforce_rate_limit(email=normalized_email, ip=ip)

        profile = self.profiles.get_by_email(normalized_email)
        if profile is None:
            self._record(
                action=AuthAction.PASSWORD_RESET_REQUEST,
                email=normalized_email,
                ip=ip,
                user_agent=user_agent,
                meta={"issued": False},
            )
            return generic

        otp = self.otp_service.issue(
            email=normalized_email,
            purpose=OTPPurpose.PASSWORD_RESET,
            user_id=profile.id,
            ip=ip,
            user_agent=user_agent,
        )
        if otp is None:
            self._record(
                action=AuthAction.PASSWORD_RESET_REQUEST,
                email=normalized_email,
                ip=ip,
                user_agent=user_agent,
                meta={"issued": False},
            )
            return generic

        reset_link = self.build_reset_link(email=normalized_email, code=otp.code)
        sent = self.email_service.send_password_reset_email(
            to=normalized_email,
            subject=f"Reset Your Password - {self.settings.EMAIL_BRAND_NAME}",
            reset_link=reset_link,
            user_name=profile.full_name,
        )
        if not sent:
            logger.warning("Password reset email not delivered | email=%s", normalized_email)
        self._record(
            action=AuthAction.PASSWORD_RESET_REQUEST,
            actor_id=profile.id,
            email=normalized_email,
            ip=ip,
            user_agent=user_agent,
            meta={"issued": True, "otp_id": otp.id, "email_sent": sent},
        )
        return generic

    def build_reset_link(self, *, email: str, code: str) -> str:
        base_url = self.settings.APP_BASE_URL.rstrip("/")
        return f"{base_url}/reset-password?{urlencode({'email': email, 'code': code})}"

    def reset_password(
        self,
        *,
        email: str,
        code: str,
        new_password: str,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> OTPVerificationResult:
        """Verify the code, then update the password.

        The code is consumed by the first phase; when the password update
        fails the caller has to start over with a new code.
        """

        normalized_email = normalize_email(email)
        verification = self.otp_service.verify(
            email=normalized_email,
            code=code,
            purpose=OTPPurpose.PASSWORD_RESET,
        )
        if not verification.success:
            self._record(
                action=AuthAction.PASSWORD_RESET_FAILED,
                email=normalized_email,
                ip=ip,
                user_agent=user_agent,
                meta={"stage": "verify"},
            )
            return verification

        user_id = verification.user_id
        if user_id is None:
            profile = self.profiles.get_by_email(normalized_email)
            user_id = profile.id if profile else None
        if user_id is None:
            self._record(
                action=AuthAction.PASSWORD_RESET_FAILED,
                email=normalized_email,
                ip=ip,
                user_agent=user_agent,
                meta={"stage": "resolve_account"},
            )
            return OTPVerificationResult(success=False, message=PASSWORD_RESET_UNKNOWN_ACCOUNT_MESSAGE)

        try:
            self.identity_provider.update_password(user_id=user_id, new_password=new_password)
        except exceptions.IdentityProviderError as exc:
            self._record(
                action=AuthAction.PASSWORD_RESET_FAILED,
                actor_id=user_id,
                email=normalized_email,
                ip=ip,
                user_agent=user_agent,
                meta={"stage": "update_password"},
            )
            raise exceptions.PasswordUpdateFailed(PASSWORD_UPDATE_FAILED_MESSAGE) from exc

        self._record(
            action=AuthAction.PASSWORD_RESET,
            actor_id=user_id,
            email=normalized_email,
            ip=ip,
            user_agent=user_agent,
        )
        return OTPVerificationResult(success=True, message=PASSWORD_RESET_SUCCESS_MESSAGE, user_id=user_id)

    def _enforce_rate_limit(self, *, email: str, ip: str | None) -> None:
        window_minutes = self.settings.RATE_LIMIT_WINDOW_MINUTES
        limit = self.settings.OTP_RATE_LIMIT_PER_HOUR
        window_start = datetime.now(tz=timezone.utc) - timedelta(minutes=window_minutes)
        block_message = f"Too many requests, try again in {window_minutes} minutes."

        if count_recent_requests(db=self.db, email=email, since=window_start) >= limit:
            logger.info("OTP rate limit hit | email=%s", email)
            raise exceptions.RateLimitExceeded(block_message)
        if ip and count_recent_requests(db=self.db, ip=ip, since=window_start) >= limit:
            logger.info("OTP rate limit hit | ip=%s", ip)
            raise exceptions.RateLimitExceeded(block_message)

    def _record(self, *, action: AuthAction, meta: dict[str, Any] | None = None, **fields: Any) -> None:
        try:
            log_auth_event(db=self.db, action=action, meta=meta, **fields)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to write auth log | action=%s", action.value)
