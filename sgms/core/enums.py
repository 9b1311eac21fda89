from enum import Enum


class OTPPurpose(str, Enum):
    """Purpose of the OTP record."""

    REGISTRATION = "registration"
    PASSWORD_RESET = "password_reset"


class UserRole(str, Enum):
    """Roles a gym account can hold, lowest privilege first."""

    CUSTOMER = "customer"
    TRAINER = "trainer"
    STAFF = "staff"
    MANAGER = "manager"
    OWNER = "owner"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """Account status. Only ACTIVE accounts may authenticate."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class TokenType(str, Enum):
    """Value of the `type` claim carried by issued JWTs."""

    ACCESS = "access"
    REFRESH = "refresh"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class UserSortField(str, Enum):
    """Columns the member listing can be sorted by."""

    CREATED_AT = "created_at"
    EMAIL = "email"
    USERNAME = "username"
    LAST_NAME = "last_name"
    LAST_LOGIN_AT = "last_login_at"
