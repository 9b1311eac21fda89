"""
Authentication schemas for request validation and response serialization.

- Registration and its OTP confirmation
- Login, token refresh and logout
- OTP resend and status
- Password reset and change
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    field_validator,
)

from sgms.core.enums import OTPPurpose, UserRole, UserStatus

PasswordStr = Annotated[
    str,
    StringConstraints(min_length=8, max_length=128),
    Field(description="Password (8-128 characters, mixed case, digit and symbol)"),
]

OTPCodeStr = Annotated[
    str,
    StringConstraints(min_length=6, max_length=6, pattern=r"^\d{6}$"),
    Field(description="6-digit verification code"),
]

UsernameStr = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True, min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$"
    ),
    Field(description="3-30 letters, digits or underscores"),
]

NameStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
PhoneStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, pattern=r"^\+?[0-9\s\-()]{7,20}$"),
]


class _EmailModel(BaseModel):
    email: Annotated[EmailStr, Field(description="Email address")]

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class RegisterRequest(_EmailModel):
    """Request schema for starting a registration."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "bob@example.com",
                "username": "bob",
                "password": "Str0ng!Pass",
                "first_name": "Bob",
                "last_name": "Stone",
                "phone_number": "+2348012345678",
            }
        }
    )

    username: UsernameStr
    password: PasswordStr
    first_name: NameStr | None = None
    last_name: NameStr | None = None
    phone_number: PhoneStr | None = None


class RegisterResponse(BaseModel):
    email: EmailStr
    requires_verification: bool = True
    expires_in_minutes: int


class OTPVerifyRequest(_EmailModel):
    model_config = ConfigDict(
        json_schema_extra={"example": {"email": "bob@example.com", "otp_code": "123456"}}
    )

    otp_code: OTPCodeStr


class ResendOTPRequest(_EmailModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {"email": "bob@example.com", "purpose": "registration"}
        }
    )

    purpose: OTPPurpose = OTPPurpose.REGISTRATION


class OTPStatusResponse(BaseModel):
    has_active: bool
    attempts_left: int
    expires_in_seconds: int
    can_resend_in_seconds: int


class LoginRequest(BaseModel):
    """Request schema for login by email or username."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"identifier": "bob@example.com", "password": "Str0ng!Pass"}
        }
    )

    identifier: Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=3, max_length=255),
        Field(description="Email address or username"),
    ]
    password: Annotated[str, StringConstraints(min_length=1, max_length=128)]


class RefreshTokenRequest(BaseModel):
    """The refresh token may also arrive as a cookie, so the body is optional."""

    refresh_token: str | None = None


class ForgotPasswordRequest(_EmailModel):
    pass


class ResetPasswordRequest(_EmailModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "bob@example.com",
                "otp_code": "123456",
                "new_password": "N3w!Password",
            }
        }
    )

    otp_code: OTPCodeStr
    new_password: PasswordStr


class ChangePasswordRequest(BaseModel):
    current_password: Annotated[str, StringConstraints(min_length=1, max_length=128)]
    new_password: PasswordStr


class AuthUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: EmailStr
    username: str
    role: UserRole
    status: UserStatus
    email_verified: bool
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None
    last_login_at: datetime | None = None


class TokenResponse(BaseModel):
    """Tokens plus the authenticated user."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "refresh_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "token_type": "Bearer",
                "expires_in": 900,
                "refresh_expires_in": 2592000,
            }
        }
    )

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_expires_in: int
    user: AuthUser | None = None


__all__ = [
    "RegisterRequest",
    "RegisterResponse",
    "OTPVerifyRequest",
    "ResendOTPRequest",
    "OTPStatusResponse",
    "LoginRequest",
    "RefreshTokenRequest",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "ChangePasswordRequest",
    "AuthUser",
    "TokenResponse",
]
