from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.config import get_settings
from app.core.security import OTP_PATTERN, is_valid_email, normalize_email
from app.models.enums import OTPPurpose


def _validate_email(value: str) -> str:
    if not isinstance(value, str):
        raise ValueError("Invalid email format")
    normalized = normalize_email(value)
    if not normalized:
        raise ValueError("Email is required")
    if not is_valid_email(normalized):
        raise ValueError("Invalid email format")
    return normalized


def _validate_college_domain(email: str) -> str:
    """Applied to sign-up and recovery sends; every password reset entry point accepts any address."""

    domain = get_settings().ALLOWED_EMAIL_DOMAIN
    if domain and not email.endswith(f"@{domain}"):
        raise ValueError(f"Please use your college email (@{domain})")
    return email


def _validate_purpose(value: str | OTPPurpose) -> OTPPurpose:
    try:
        return OTPPurpose(value)
    except ValueError as exc:
        raise ValueError("Invalid purpose") from exc


def _validate_otp(value: str) -> str:
    if not isinstance(value, str) or not OTP_PATTERN.fullmatch(value):
        raise ValueError("OTP must be 6 digits")
    return value


class OTPSendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    purpose: OTPPurpose
    user_name: Optional[str] = Field(default=None, alias="userName", max_length=150)

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("purpose", mode="before")
    @classmethod
    def validate_purpose(cls, value: str) -> OTPPurpose:
        return _validate_purpose(value)

    @model_validator(mode="after")
    def check_college_domain(self) -> "OTPSendRequest":
        if self.purpose != OTPPurpose.PASSWORD_RESET:
            _validate_college_domain(self.email)
        return self


class OTPVerifyRequest(BaseModel):
    email: str
    otp: str
    purpose: OTPPurpose

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("otp", mode="before")
    @classmethod
    def validate_otp(cls, value: str) -> str:
        return _validate_otp(value)

    @field_validator("purpose", mode="before")
    @classmethod
    def validate_purpose(cls, value: str) -> OTPPurpose:
        return _validate_purpose(value)


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    otp: str
    new_password: str = Field(alias="newPassword")
    confirm_password: Optional[str] = Field(default=None, alias="confirmPassword")

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("otp", mode="before")
    @classmethod
    def validate_otp(cls, value: str) -> str:
        return _validate_otp(value)

    @field_validator("new_password")
    @classmethod
    def validate_password_strength(cls, value: str) -> str:
        min_length = get_settings().PASSWORD_MIN_LENGTH
        if len(value) < min_length:
            raise ValueError(f"Password must be at least {min_length} characters long")
        return value

    @model_validator(mode="after")
    def check_passwords_match(self) -> "ResetPasswordRequest":
        if self.confirm_password is not None and self.confirm_password != self.new_password:
            raise ValueError("Passwords do not match")
        return self
