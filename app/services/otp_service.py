from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import secrets
from typing import Callable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import codes_match, normalize_email
from app.models import OTPPurpose, OTPToken

from . import exceptions

logger = logging.getLogger(__name__)

INVALID_OR_EXPIRED_MESSAGE = "Invalid or expired code"
TOO_MANY_ATTEMPTS_MESSAGE = "Too many attempts, request a new code"
INCORRECT_CODE_MESSAGE = "Incorrect code, {remaining} attempts remaining"
VERIFIED_MESSAGE = "Code verified successfully"


@dataclass(slots=True)
class OTPVerificationResult:
    success: bool
    message: str
    user_id: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class OTPService:
    """Issue and verify one-time codes bound to (email, purpose).

    All state lives in the ``otp_tokens`` table of the injected session.
    ``issue``, ``verify``, ``resend`` and ``cleanup_expired`` each commit
    their own transaction.
    """

    # A verification that loses the compare-and-swap re-reads the token this many times
    VERIFY_MAX_ROUNDS = 3

    def __init__(self, db: Session, *, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self.settings = get_settings()
        self._clock = clock

    def _generate_code(self) -> str:
        if self.settings.OTP_STATIC_CODE:
            return self.settings.OTP_STATIC_CODE
        # 100000-999999 for six digits: codes with a leading zero are never drawn
        low = 10 ** (self.settings.OTP_LENGTH - 1)
        return str(low + secrets.randbelow(9 * low))

    def issue(
        self,
        *,
        email: str,
        purpose: OTPPurpose | str,
        user_id: str | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> OTPToken | None:
        now = self._clock()
        purpose_value = OTPPurpose(purpose).value
        otp = OTPToken(
            user_id=user_id,
            email=normalize_email(email),
            code=self._generate_code(),
            purpose=purpose_value,
            attempts=0,
            max_attempts=self.settings.OTP_MAX_ATTEMPTS,
            is_used=False,
            expires_at=now + timedelta(minutes=self.settings.OTP_EXPIRATION_MINUTES),
            created_at=now,
            updated_at=now,
            ip=ip,
            user_agent=(user_agent or "")[:255] or None,
        )
        try:
            self.db.add(otp)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to create OTP token | email=%s | purpose=%s", otp.email, purpose_value)
            return None

        logger.info("OTP token issued | id=%s | email=%s | purpose=%s", otp.id, otp.email, purpose_value)
        return otp

    def verify(self, *, email: str, code: str, purpose: OTPPurpose | str) -> OTPVerificationResult:
        normalized_email = normalize_email(email)
        purpose_value = OTPPurpose(purpose).value

        for _ in range(self.VERIFY_MAX_ROUNDS):
            try:
                result = self._verify_once(email=normalized_email, code=code, purpose=purpose_value)
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("OTP verification failed on store | email=%s | purpose=%s", normalized_email, purpose_value)
                raise exceptions.StoreUnavailableError("Verification is temporarily unavailable") from exc
            if result is not None:
                return result
            logger.info("OTP verification lost a concurrent update, retrying | email=%s", normalized_email)

        return OTPVerificationResult(success=False, message=INVALID_OR_EXPIRED_MESSAGE)

    def _verify_once(self, *, email: str, code: str, purpose: str) -> OTPVerificationResult | None:
        """One read-check-write round. Returns None when a concurrent writer changed the token first."""

        now = self._clock()
        otp = self.db.execute(
            select(OTPToken)
            .where(
                OTPToken.email == email,
                OTPToken.purpose == purpose,
                OTPToken.is_used.is_(False),
                OTPToken.expires_at > now,
            )
            .order_by(OTPToken.created_at.desc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if otp is None:
            self.db.rollback()
            return OTPVerificationResult(success=False, message=INVALID_OR_EXPIRED_MESSAGE)

        if otp.attempts >= otp.max_attempts:
            self.db.rollback()
            return OTPVerificationResult(success=False, message=TOO_MANY_ATTEMPTS_MESSAGE)

        if not codes_match(code, otp.code):
            if not self._apply(otp, now, attempts=OTPToken.attempts + 1):
                return None
            self.db.commit()
            remaining = max(otp.max_attempts - (otp.attempts + 1), 0)
            logger.info("OTP mismatch | id=%s | remaining=%s", otp.id, remaining)
            return OTPVerificationResult(
                success=False,
                message=INCORRECT_CODE_MESSAGE.format(remaining=remaining),
            )

        if not self._apply(otp, now, is_used=True, verified_at=now):
            return None
        self.db.commit()
        logger.info("OTP verified | id=%s | purpose=%s", otp.id, purpose)
        return OTPVerificationResult(success=True, message=VERIFIED_MESSAGE, user_id=otp.user_id)

    def _apply(self, otp: OTPToken, now: datetime, **values) -> bool:
        """Conditional update against the state that was read; rolls back when it no longer holds."""

        seen_attempts = otp.attempts
        result = self.db.execute(
            update(OTPToken)
            .where(
                OTPToken.id == otp.id,
                OTPToken.attempts == seen_attempts,
                OTPToken.is_used.is_(False),
                OTPToken.expires_at > now,
            )
            .values(updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            return False
        return True

    def resend(
        self,
        *,
        email: str,
        purpose: OTPPurpose | str,
        user_id: str | None = None,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> OTPToken | None:
        normalized_email = normalize_email(email)
        purpose_value = OTPPurpose(purpose).value
        try:
            superseded = self.db.execute(
                update(OTPToken)
                .where(
                    OTPToken.email == normalized_email,
                    OTPToken.purpose == purpose_value,
                    OTPToken.is_used.is_(False),
                )
                .values(is_used=True, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            ).rowcount
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to supersede OTP tokens | email=%s | purpose=%s", normalized_email, purpose_value)
            return None

        logger.info(
            "Superseded OTP tokens | email=%s | purpose=%s | count=%s",
            normalized_email,
            purpose_value,
            superseded,
        )
        return self.issue(email=normalized_email, purpose=purpose_value, user_id=user_id, ip=ip, user_agent=user_agent)

    def get_active_token(self, *, email: str, purpose: OTPPurpose | str) -> OTPToken | None:
        now = self._clock()
        return self.db.execute(
            select(OTPToken)
            .where(
                OTPToken.email == normalize_email(email),
                OTPToken.purpose == OTPPurpose(purpose).value,
                OTPToken.is_used.is_(False),
                OTPToken.expires_at > now,
            )
            .order_by(OTPToken.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def cleanup_expired(self) -> bool:
        now = self._clock()
        try:
            deleted = self.db.execute(
                delete(OTPToken)
                .where(OTPToken.expires_at < now)
                .execution_options(synchronize_session=False)
            ).rowcount
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to clean up expired OTP tokens")
            return False

        if deleted:
            logger.info("Removed expired OTP tokens | count=%s", deleted)
        return True
