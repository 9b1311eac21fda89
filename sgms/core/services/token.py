"""
JWT issuance and verification.

Access and refresh tokens are both HS256 JWTs carrying the user id (``sub``),
email and role, scoped by issuer and audience. The ``type`` claim keeps one
kind from being accepted in place of the other. Every token gets a unique
``jti`` so refresh tokens can be tracked server side.

Example usage:
    token_service = TokenService()
    pair = token_service.issue(user_id=user.id, email=user.email, role=user.role)
    claims = token_service.verify(pair.access_token)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
import uuid

from fastapi import Request, Response
import jwt

from sgms.core.config import Settings, auth_logger, settings as default_settings
from sgms.core.enums import TokenType, UserRole
from sgms.core.exceptions.types import (
    TokenExpiredException,
    TokenInvalidException,
    TokenSignatureException,
)


@dataclass
class TokenPair:
    """
    An access/refresh token pair.

    Attributes:
        access_token: Short-lived JWT access token.
        refresh_token: Long-lived JWT refresh token.
        refresh_jti: The refresh token's ``jti`` claim.
        refresh_expires_at: When the refresh token expires.
        token_type: Always "Bearer".
        expires_in: Access token lifetime in seconds.
        refresh_expires_in: Refresh token lifetime in seconds.
    """

    access_token: str
    refresh_token: str
    refresh_jti: str
    refresh_expires_at: datetime
    token_type: str = "Bearer"
    expires_in: int = 900
    refresh_expires_in: int = 30 * 24 * 3600


class TokenService:
    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self.config.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(days=self.config.REFRESH_TOKEN_EXPIRE_DAYS)

    def _encode(
        self,
        user_id: str,
        email: str,
        role: str,
        token_type: TokenType,
        lifetime: timedelta,
    ) -> tuple[str, str, datetime]:
        now = datetime.now(timezone.utc)
        expires_at = now + lifetime
        jti = uuid.uuid4().hex
        payload = {
            "sub": user_id,
            "email": email,
            "role": role,
            "type": token_type.value,
            "jti": jti,
            "iat": now,
            "exp": expires_at,
            "iss": self.config.JWT_ISSUER,
            "aud": self.config.JWT_AUDIENCE,
        }
        token = jwt.encode(
            payload, self.config.JWT_SECRET_KEY, algorithm=self.config.JWT_ALGORITHM
        )
        return token, jti, expires_at

    def issue(
        self, user_id: uuid.UUID | str, email: str, role: UserRole | str
    ) -> TokenPair:
        """
        Sign a fresh access/refresh pair for a user.

        Args:
            user_id: The user's id (``sub`` claim).
            email: The user's email.
            role: The user's role.

        Returns:
            TokenPair: Both tokens plus their lifetimes.
        """
        role_value = role.value if isinstance(role, UserRole) else str(role)
        access_token, _, _ = self._encode(
            str(user_id), email, role_value, TokenType.ACCESS, self.access_ttl
        )
        refresh_token, refresh_jti, refresh_expires_at = self._encode(
            str(user_id), email, role_value, TokenType.REFRESH, self.refresh_ttl
        )
        auth_logger.info(f"Token pair issued: user_id={user_id}")
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            refresh_jti=refresh_jti,
            refresh_expires_at=refresh_expires_at,
            expires_in=int(self.access_ttl.total_seconds()),
            refresh_expires_in=int(self.refresh_ttl.total_seconds()),
        )

    def verify(
        self, token: str | None, expected_type: TokenType = TokenType.ACCESS
    ) -> dict[str, Any]:
        """
        Check signature, expiry, issuer, audience and token type.

        Args:
            token: The encoded JWT.
            expected_type: Which kind of token the caller accepts.

        Returns:
            dict[str, Any]: The verified claims.

        Raises:
            TokenExpiredException: The token is past its ``exp``.
            TokenSignatureException: The signature does not match.
            TokenInvalidException: Malformed token, wrong issuer/audience,
                missing claims or wrong ``type``.
        """
        if not token:
            raise TokenInvalidException("Token is missing.")

        try:
            claims = jwt.decode(
                token,
                self.config.JWT_SECRET_KEY,
                algorithms=[self.config.JWT_ALGORITHM],
                audience=self.config.JWT_AUDIENCE,
                issuer=self.config.JWT_ISSUER,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError as e:
            auth_logger.info("Token verification failed: expired")
            raise TokenExpiredException() from e
        except jwt.InvalidSignatureError as e:
            auth_logger.warning("Token verification failed: bad signature")
            raise TokenSignatureException() from e
        except jwt.InvalidTokenError as e:
            auth_logger.warning(
                f"Token verification failed: {type(e).__name__} - {str(e)}"
            )
            raise TokenInvalidException() from e

        if claims.get("type") != expected_type.value:
            auth_logger.warning(
                f"Token verification failed: expected {expected_type.value} token, got {claims.get('type')}"
            )
            raise TokenInvalidException("Invalid token type.")

        return claims

    def refresh(
        self,
        refresh_token: str,
        email: str | None = None,
        role: UserRole | str | None = None,
    ) -> tuple[dict[str, Any], TokenPair]:
        """
        Verify a refresh token and sign a new pair for the same subject.

        Args:
            refresh_token: The presented refresh token.
            email: Current email of the user. Defaults to the token's claim.
            role: Current role of the user. Defaults to the token's claim, which
                may be stale after a role change.

        Returns:
            tuple[dict[str, Any], TokenPair]: The presented token's claims and
            the new pair.

        Raises:
            TokenExpiredException, TokenSignatureException, TokenInvalidException:
                As for :meth:`verify`.
        """
        claims = self.verify(refresh_token, expected_type=TokenType.REFRESH)
        pair = self.issue(
            claims["sub"],
            email if email is not None else claims.get("email", ""),
            role if role is not None else claims.get("role", ""),
        )
        return claims, pair


def extract_token(
    request: Request, bearer_token: str | None, cookie_name: str
) -> str | None:
    """The bearer header wins; otherwise fall back to the named cookie."""
    if bearer_token:
        return bearer_token
    return request.cookies.get(cookie_name) or None


def set_auth_cookies(
    response: Response, pair: TokenPair, config: Settings | None = None
) -> Response:
    """Set the refresh cookie, and the access cookie when enabled."""
    config = config or default_settings
    response.set_cookie(
        config.REFRESH_COOKIE_NAME,
        value=pair.refresh_token,
        httponly=True,
        secure=config.cookie_secure,
        samesite=config.COOKIE_SAMESITE,
        path=config.COOKIE_PATH,
        max_age=pair.refresh_expires_in,
    )
    if config.STORE_ACCESS_TOKEN_IN_COOKIE:
        response.set_cookie(
            config.ACCESS_COOKIE_NAME,
            value=pair.access_token,
            httponly=True,
            secure=config.cookie_secure,
            samesite=config.COOKIE_SAMESITE,
            path="/",
            max_age=pair.expires_in,
        )
    return response


def clear_auth_cookies(response: Response, config: Settings | None = None) -> Response:
    config = config or default_settings
    response.delete_cookie(
        config.REFRESH_COOKIE_NAME,
        path=config.COOKIE_PATH,
        secure=config.cookie_secure,
        httponly=True,
        samesite=config.COOKIE_SAMESITE,
    )
    response.delete_cookie(
        config.ACCESS_COOKIE_NAME,
        path="/",
        secure=config.cookie_secure,
        httponly=True,
        samesite=config.COOKIE_SAMESITE,
    )
    return response


__all__ = [
    "TokenPair",
    "TokenService",
    "extract_token",
    "set_auth_cookies",
    "clear_auth_cookies",
]
