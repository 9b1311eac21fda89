"""
Service providers for dependency injection.

Tests swap collaborators (email transport, image host) through
``app.dependency_overrides`` on these functions.
"""

from typing import Annotated

from fastapi import Depends

from sgms.core.services.auth import AuthService
from sgms.core.services.email import EmailService
from sgms.core.services.otp import OTPService
from sgms.core.services.token import TokenService
from sgms.core.services.user import UserService


def get_token_service() -> TokenService:
    return TokenService()


def get_email_service() -> EmailService:
    return EmailService()


def get_otp_service(
    email_service: Annotated[EmailService, Depends(get_email_service)],
) -> OTPService:
    return OTPService(email_service=email_service)


def get_auth_service(
    token_service: Annotated[TokenService, Depends(get_token_service)],
    otp_service: Annotated[OTPService, Depends(get_otp_service)],
) -> AuthService:
    return AuthService(token_service=token_service, otp_service=otp_service)


def get_user_service() -> UserService:
    return UserService()


TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]


__all__ = [
    "get_token_service",
    "get_email_service",
    "get_otp_service",
    "get_auth_service",
    "get_user_service",
    "TokenServiceDep",
    "AuthServiceDep",
    "UserServiceDep",
]
