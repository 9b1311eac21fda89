from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from sgms.core.enums import UserRole, UserStatus
from sgms.core.schemas.auth import NameStr, PhoneStr, UsernameStr


class UserProfile(BaseModel):
    """Public view of an account. The password hash is never included."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: EmailStr
    username: str
    full_name: str
    role: UserRole
    status: UserStatus
    email_verified: bool
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    date_of_birth: date | None = None
    address: str | None = None
    avatar_url: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class UpdateProfileRequest(BaseModel):
    """Only the fields sent are changed."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"first_name": "Robert", "phone_number": "+2348012345678"}
        }
    )

    email: EmailStr | None = None
    username: UsernameStr | None = None
    first_name: NameStr | None = None
    last_name: NameStr | None = None
    phone_number: PhoneStr | None = None
    date_of_birth: date | None = None
    address: Annotated[str, Field(max_length=500)] | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return v.strip().lower() if v else v

    @field_validator("date_of_birth")
    @classmethod
    def not_in_future(cls, v: date | None) -> date | None:
        if v is not None and v > date.today():
            raise ValueError("Date of birth cannot be in the future")
        return v


class UpdateRoleRequest(BaseModel):
    role: UserRole


class UpdateStatusRequest(BaseModel):
    status: UserStatus
    reason: Annotated[str, Field(max_length=500)] | None = None


class PermissionsResponse(BaseModel):
    role: UserRole
    level: int
    permissions: list[str]


__all__ = [
    "UserProfile",
    "UpdateProfileRequest",
    "UpdateRoleRequest",
    "UpdateStatusRequest",
    "PermissionsResponse",
]
