from functools import lru_cache
import logging
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sgms.core.logger import setup_logger, init_sentry


class Settings(BaseSettings):
    # Application settings
    ENVIRONMENT: Literal["development", "staging", "test", "production"] = (
        "development"
    )
    APP_NAME: str = "SGMS"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = """
SGMS is the backend of a gym-management system.

## Key Capabilities

| Area | Description |
|------|-------------|
| **Authentication** | Registration confirmed by an emailed one-time code, login with lockout, JWT access/refresh tokens delivered as bearer tokens or HTTP-only cookies. |
| **Authorization** | Role hierarchy (customer, trainer, staff, manager, owner, admin) with per-role permission sets. |
| **Profiles** | Profile management, avatar upload, account deletion. |
| **Administration** | Member listing and search, role and status management. |
"""
    DEBUG: bool = False
    API_PREFIX: str = "/api"

    # CORS settings
    CORS_ALLOW_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:3001"]
    CORS_ALLOW_CREDENTIALS: bool = True

    # JWT settings
    JWT_SECRET_KEY: str = "another_supersecret_key"
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "sgms-backend"
    JWT_AUDIENCE: str = "sgms-frontend"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    # Cookie settings
    REFRESH_COOKIE_NAME: str = "refresh_token"
    ACCESS_COOKIE_NAME: str = "access_token"
    COOKIE_PATH: str = "/api"
    COOKIE_SAMESITE: Literal["lax", "strict", "none"] = "lax"
    COOKIE_SECURE: bool | None = None  # None = secure outside development/test
    STORE_ACCESS_TOKEN_IN_COOKIE: bool = False

    # Database settings
    DATABASE_URL: str
    TEST_DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    # Redis settings
    REDIS_URL: str = "redis://localhost:6379/0"

    # Rate limiting settings
    RATE_LIMIT_BACKEND: Literal["memory", "redis"] = "memory"
    RATE_LIMIT_DEFAULT_REQUESTS: int = 100
    RATE_LIMIT_DEFAULT_WINDOW: int = 900  # seconds
    RATE_LIMIT_AUTH_REQUESTS: int = 5

    # OTP settings
    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 10
    OTP_HMAC_SECRET: str = "otp_hmac_secret_key_change_in_production"
    OTP_MAX_ATTEMPTS: int = 5
    OTP_MAX_ACTIVE_CODES: int = 3
    OTP_RESEND_COOLDOWN_SECONDS: int = 60

    # Login lockout settings
    LOGIN_MAX_ATTEMPTS: int = 5
    LOGIN_LOCK_MINUTES: int = 120

    # Cloudinary settings
    CLOUDINARY_CLOUD_NAME: str = "your_cloudinary_cloud_name"
    CLOUDINARY_API_KEY: str = "your_cloudinary_api_key"
    CLOUDINARY_API_SECRET: str = "your_cloudinary_api_secret"
    CLOUDINARY_AVATAR_FOLDER: str = "sgms_avatars"
    AVATAR_MAX_BYTES: int = 5 * 1024 * 1024
    AVATAR_ALLOWED_EXTENSIONS: list[str] = ["jpg", "jpeg", "png", "gif"]

    # Brevo settings
    BREVO_API_KEY: str = "your_brevo_api_key"
    BREVO_BASE_URL: str = "https://api.brevo.com/v3"
    BREVO_SENDER_EMAIL: str = "your_brevo_sender_email"
    BREVO_SENDER_NAME: str = "your_brevo_sender_name"
    TEMPLATE_DIR: str = str(Path(__file__).resolve().parent.parent / "templates")

    # Scheduler settings
    ENABLE_SCHEDULER: bool = True
    OTP_CLEANUP_INTERVAL_MINUTES: int = 30
    REFRESH_TOKEN_RETENTION_DAYS: int = 7

    # Sentry settings
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    model_config: SettingsConfigDict = SettingsConfigDict(  # type: ignore
        env_file=".env",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def cookie_secure(self) -> bool:
        if self.COOKIE_SECURE is not None:
            return self.COOKIE_SECURE
        return self.ENVIRONMENT in ("production", "staging")

    @model_validator(mode="after")
    def _validate_production_secrets(self) -> "Settings":
        """Ensure insecure default secrets are overridden in production."""
        if self.ENVIRONMENT != "production":
            return self

        insecure_defaults: dict[str, str] = {
            "JWT_SECRET_KEY": "another_supersecret_key",
            "OTP_HMAC_SECRET": "otp_hmac_secret_key_change_in_production",
        }

        still_default = [
            name
            for name, default_val in insecure_defaults.items()
            if getattr(self, name) == default_val
        ]

        if still_default:
            raise ValueError(
                f"ENVIRONMENT is 'production' but the following secrets still "
                f"have their insecure default values: {', '.join(still_default)}. "
                f"Set them via environment variables or .env file."
            )

        if len(self.JWT_SECRET_KEY) < 32:
            raise ValueError(
                "JWT_SECRET_KEY must be at least 32 characters long in production"
            )

        return self


@lru_cache()
def get_settings() -> Settings:
    return Settings()  # type: ignore


settings = get_settings()

if not settings.DEBUG:
    init_sentry(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )

# One logger (and log file) per component, tagged for Sentry filtering
app_logger = setup_logger(
    name="app_logger",
    log_file="logs/app.log",
    level=logging.INFO,
    sentry_tag="app",
)
database_logger = setup_logger(
    name="database_logger",
    log_file="logs/database.log",
    level=logging.INFO,
    sentry_tag="database",
)
request_logger = setup_logger(
    name="request_logger",
    log_file="logs/requests.log",
    level=logging.INFO,
    sentry_tag="request",
)
auth_logger = setup_logger(
    name="auth_logger",
    log_file="logs/auth.log",
    level=logging.INFO,
    sentry_tag="auth",
)
otp_logger = setup_logger(
    name="otp_logger",
    log_file="logs/otp.log",
    level=logging.INFO,
    sentry_tag="otp",
)
user_logger = setup_logger(
    name="user_logger",
    log_file="logs/user.log",
    level=logging.INFO,
    sentry_tag="user",
)
brevo_logger = setup_logger(
    name="brevo_logger",
    log_file="logs/brevo.log",
    level=logging.INFO,
    sentry_tag="email",
)
cloudinary_logger = setup_logger(
    name="cloudinary_logger",
    log_file="logs/cloudinary.log",
    level=logging.INFO,
    sentry_tag="cloudinary",
)
scheduler_logger = setup_logger(
    name="scheduler_logger",
    log_file="logs/scheduler.log",
    level=logging.INFO,
    sentry_tag="scheduler",
)
utils_logger = setup_logger(
    name="utils_logger",
    log_file="logs/utils.log",
    level=logging.INFO,
    sentry_tag="utils",
)
redis_logger = setup_logger(
    name="redis_logger",
    log_file="logs/redis.log",
    level=logging.INFO,
    sentry_tag="redis",
)
rate_limit_logger = setup_logger(
    name="rate_limit_logger",
    log_file="logs/rate_limit.log",
    level=logging.INFO,
    sentry_tag="rate_limit",
)

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "app_logger",
    "database_logger",
    "request_logger",
    "auth_logger",
    "otp_logger",
    "user_logger",
    "brevo_logger",
    "cloudinary_logger",
    "scheduler_logger",
    "utils_logger",
    "redis_logger",
    "rate_limit_logger",
]
