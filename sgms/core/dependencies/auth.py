"""
Authentication dependencies for FastAPI endpoints.

- Extracting the access token from the Authorization header or cookie
- Verifying it and loading the current user
- Ensuring the user is active

Example usage:
    from sgms.core.dependencies.auth import CurrentActiveUser

    @router.get("/me")
    async def get_profile(user: CurrentActiveUser):
        return user
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from sgms.core.config import auth_logger, settings
from sgms.core.db.crud import user_db
from sgms.core.db.models import User
from sgms.core.dependencies.db import get_async_session
from sgms.core.dependencies.services import get_token_service
from sgms.core.enums import TokenType, UserStatus
from sgms.core.exceptions.types import (
    AccountInactiveException,
    AuthenticationException,
)
from sgms.core.services.token import TokenService, extract_token

# auto_error=False so the cookie can be tried when the header is absent
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
) -> User:
    """
    Resolve the user behind the request's access token.

    This dependency:
    1. Takes the Bearer token from the Authorization header, or the access
       token cookie when there is no header
    2. Verifies it as an access token
    3. Loads the user, rejecting deleted accounts

    Raises:
        AuthenticationException: 401 if the token is missing, invalid or
            expired, or the user no longer exists.
    """
    token = extract_token(
        request,
        credentials.credentials if credentials else None,
        settings.ACCESS_COOKIE_NAME,
    )
    if not token:
        raise AuthenticationException("Authentication required.")

    claims = token_service.verify(token, expected_type=TokenType.ACCESS)

    try:
        user_id = UUID(claims["sub"])
    except ValueError:
        auth_logger.warning(f"Authentication failed: invalid user ID format '{claims['sub']}'")
        raise AuthenticationException("Invalid access token.")

    # Use a transaction to avoid leaving an implicit one open
    async with session.begin():
        user = await user_db.get_active_by_id(session, user_id)

    if user is None:
        auth_logger.warning(f"Authentication failed: user not found or deleted {user_id}")
        raise AuthenticationException("User not found.")

    auth_logger.debug(f"User authenticated: {user.email}")
    return user


async def get_current_active_user(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    """
    Ensure the current user is active.

    Raises:
        AccountInactiveException: 403 if the account is inactive or suspended.
    """
    if user.status != UserStatus.ACTIVE:
        auth_logger.warning(f"Access denied: user {user.status.value} {user.email}")
        raise AccountInactiveException(
            f"Account is {user.status.value}. Please contact support."
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentActiveUser = Annotated[User, Depends(get_current_active_user)]


__all__ = [
    "bearer_scheme",
    "get_current_user",
    "get_current_active_user",
    "CurrentUser",
    "CurrentActiveUser",
]
