import hmac
import re
from functools import lru_cache

from passlib.context import CryptContext

from .config import get_settings

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
OTP_PATTERN = re.compile(r"[0-9]{6}")


@lru_cache
def get_password_context() -> CryptContext:
    settings = get_settings()
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=settings.PASSWORD_HASHING_ROUNDS,
    )


def create_password_hash(password: str) -> str:
    return get_password_context().hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return get_password_context().verify(password, hashed_password)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def codes_match(submitted: str, stored: str) -> bool:
    """Exact string comparison in constant time."""

    return hmac.compare_digest(submitted.encode("utf-8"), stored.encode("utf-8"))
