from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    PROJECT_NAME: str = "NCIT Hub Auth"
    API_V1_PREFIX: str = "/api/v1"

    DATABASE_URL: str = Field(...)
    REDIS_URL: Optional[str] = Field(default=None)

    OTP_STATIC_CODE: Optional[str] = Field(default=None)
    OTP_LENGTH: int = Field(default=6, ge=6, le=6)
    OTP_EXPIRATION_MINUTES: int = Field(default=10, ge=1)
    OTP_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    OTP_RATE_LIMIT_PER_HOUR: int = Field(default=5, ge=1)
    RATE_LIMIT_WINDOW_MINUTES: int = Field(default=60, ge=1)
    OTP_CLEANUP_INTERVAL_SECONDS: int = Field(default=300, ge=1)

    EMAIL_DRY_RUN: bool = Field(default=True)
    RESEND_API_KEY: Optional[str] = Field(default=None)
    RESEND_FROM_EMAIL: str = Field(default="noreply@ncithub.com")
    RESEND_API_URL: str = Field(default="https://api.resend.com/emails")
    EMAIL_BRAND_NAME: str = Field(default="NCIT Hub")

    APP_BASE_URL: str = Field(default="http://localhost:3000")
    ALLOWED_EMAIL_DOMAIN: Optional[str] = Field(default=None)

    PASSWORD_MIN_LENGTH: int = Field(default=8, ge=6)
    PASSWORD_HASHING_ROUNDS: int = Field(default=12, ge=4)

    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE_PATH: Optional[str] = Field(default=None)
    ENVIRONMENT: str = Field(default="development")

    CORS_ORIGINS: str = Field(default="*")

    @property
    def cors_origins(self) -> list[str]:
        # Comma separated list, "*" allows all origins
        value = self.CORS_ORIGINS.strip().strip('"\'')
        if value == "*":
            return ["*"]
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @field_validator("ALLOWED_EMAIL_DOMAIN", mode="before")
    @classmethod
    def normalize_email_domain(cls, v: str | None) -> str | None:
        if v is None:
            return None
        value = v.strip().lstrip("@").lower()
        return value or None


load_dotenv(ENV_FILE)


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
