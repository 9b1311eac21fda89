"""
Authentication flows.

``AuthService`` composes the user store, ``TokenService``, ``OTPService`` and
the refresh token store:

- Registration staged behind an emailed code, then account creation
- Login by email or username with lockout after repeated failures
- Refresh token rotation and logout
- Password reset by code, and password change

Every public method commits its own unit of work. Failed OTP and login
attempts must be persisted even though the request fails, so callers must
not wrap these methods in ``session.begin()``.

Example usage:
    auth_service = AuthService(token_service=TokenService(), otp_service=otp_service)
    user, tokens = await auth_service.login(session, "bob@example.com", "Str0ng!Pass")
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from sgms.core.config import Settings, auth_logger, settings as default_settings
from sgms.core.db.crud import (
    RefreshTokenDB,
    UserDB,
    refresh_token_db,
    user_db,
)
from sgms.core.db.models import OTPRecord, User
from sgms.core.enums import OTPPurpose, TokenType, UserRole, UserStatus
from sgms.core.exceptions.types import (
    AccountInactiveException,
    AccountLockedException,
    AuthenticationException,
    BadRequestException,
    ConflictException,
    InvalidCredentialsException,
    UserAlreadyExistsException,
    UserNotFoundException,
    ValidationException,
)
from sgms.core.services.otp import OTPService
from sgms.core.services.token import TokenPair, TokenService
from sgms.core.utils import (
    ensure_utc,
    hash_password,
    hash_token,
    validate_password_strength,
    verify_password,
)


def ensure_strong_password(password: str) -> None:
    """
    Raise ``ValidationException`` unless the password meets the policy.

    Raises:
        ValidationException: With the failed rules and strength label in details.
    """
    result = validate_password_strength(password)
    if not result["is_valid"]:
        raise ValidationException(
            "Password does not meet security requirements.",
            details={"errors": result["errors"], "strength": result["strength"]},
        )


class AuthService:
    def __init__(
        self,
        token_service: TokenService,
        otp_service: OTPService,
        config: Settings | None = None,
        users: UserDB = user_db,
        refresh_tokens: RefreshTokenDB = refresh_token_db,
    ):
        self.token_service = token_service
        self.otp_service = otp_service
        self.config = config or default_settings
        self.users = users
        self.refresh_tokens = refresh_tokens

    # =========================================================================
    # Tokens
    # =========================================================================

    async def _store_refresh_token(
        self,
        session: AsyncSession,
        user: User,
        pair: TokenPair,
        device_info: str | None,
    ) -> None:
        await self.refresh_tokens.create(
            session,
            {
                "user_id": user.id,
                "jti": pair.refresh_jti,
                "token_hash": hash_token(pair.refresh_token),
                "expires_at": pair.refresh_expires_at,
                "device_info": device_info,
            },
            commit_self=False,
        )

    async def _issue_tokens(
        self, session: AsyncSession, user: User, device_info: str | None
    ) -> TokenPair:
        """Sign a pair for ``user`` and record its refresh token (flush only)."""
        pair = self.token_service.issue(user.id, user.email, user.role)
        await self._store_refresh_token(session, user, pair, device_info)
        return pair

    # =========================================================================
    # Registration
    # =========================================================================

    async def start_registration(
        self, session: AsyncSession, data: dict[str, Any]
    ) -> OTPRecord:
        """
        Stage a registration and email a confirmation code.

        The password is hashed before staging; the plain value is never stored.

        Args:
            session: The database session.
            data: ``email``, ``username``, ``password`` and optional
                ``first_name``, ``last_name``, ``phone_number``.

        Returns:
            OTPRecord: The code record holding the staged registration.

        Raises:
            UserAlreadyExistsException: Email or username already taken.
            ValidationException: Weak password.
            TooManyRequestsException: Too many active codes for this email.
            EmailDeliveryException: The code could not be emailed.
        """
        email = data["email"].strip().lower()
        username = data["username"].strip()

        taken = await self.users.find_taken_field(session, email=email, username=username)
        if taken:
            auth_logger.info(f"Registration refused: {taken} already in use ({email})")
            raise UserAlreadyExistsException(f"User with this {taken} already exists.")

        ensure_strong_password(data["password"])

        payload = {
            "email": email,
            "username": username,
            "password_hash": hash_password(data["password"]),
            "first_name": data.get("first_name"),
            "last_name": data.get("last_name"),
            "phone_number": data.get("phone_number"),
        }
        try:
            record = await self.otp_service.create(
                session,
                email,
                OTPPurpose.REGISTRATION,
                payload=payload,
                name=data.get("first_name") or username,
                commit_self=False,
            )
        except Exception:
            await session.rollback()
            raise
        await session.commit()

        auth_logger.info(f"Registration staged: email={email}")
        return record

    async def complete_registration(
        self,
        session: AsyncSession,
        email: str,
        code: str,
        device_info: str | None = None,
    ) -> tuple[User, TokenPair]:
        """
        Confirm the code, create the account and sign the user in.

        Returns:
            tuple[User, TokenPair]: The new user and their tokens.

        Raises:
            OTPInvalidException, OTPExpiredException, OTPAlreadyUsedException,
            OTPMaxAttemptsException: The code was not accepted.
            UserAlreadyExistsException: Another registration claimed the email
                or username in the meantime.
        """
        email = email.strip().lower()
        payload = await self.otp_service.verify(
            session, email, code, OTPPurpose.REGISTRATION, commit_self=False
        )
        if not payload.get("password_hash") or not payload.get("username"):
            await session.rollback()
            raise BadRequestException("Registration data is missing. Please register again.")

        taken = await self.users.find_taken_field(
            session, email=payload.get("email", email), username=payload["username"]
        )
        if taken:
            await session.rollback()
            raise UserAlreadyExistsException(f"User with this {taken} already exists.")

        try:
            user = await self.users.create(
                session,
                {
                    "email": payload.get("email", email),
                    "username": payload["username"],
                    "password_hash": payload["password_hash"],
                    "first_name": payload.get("first_name"),
                    "last_name": payload.get("last_name"),
                    "phone_number": payload.get("phone_number"),
                    "role": UserRole.CUSTOMER,
                    "status": UserStatus.ACTIVE,
                    "email_verified": True,
                    "last_login_at": datetime.now(timezone.utc),
                },
                commit_self=False,
            )
        except ConflictException as e:
            await session.rollback()
            raise UserAlreadyExistsException() from e

        pair = await self._issue_tokens(session, user, device_info)
        await session.commit()

        auth_logger.info(f"Registration completed: user_id={user.id}, email={user.email}")
        return user, pair

    # =========================================================================
    # Login / refresh / logout
    # =========================================================================

    async def login(
        self,
        session: AsyncSession,
        identifier: str,
        password: str,
        device_info: str | None = None,
    ) -> tuple[User, TokenPair]:
        """
        Authenticate by email or username and password.

        Checks run in this order: unknown user (401), locked account (403),
        inactive or suspended account (403), wrong password (401, counted
        towards the lockout).

        Returns:
            tuple[User, TokenPair]: The user and their tokens.
        """
        user = await self.users.get_by_identifier(session, identifier)
        if user is None:
            auth_logger.warning(f"Login failed: unknown identifier {identifier}")
            raise InvalidCredentialsException()

        now = datetime.now(timezone.utc)
        lock_until = ensure_utc(user.lock_until)
        if lock_until is not None and lock_until > now:
            auth_logger.warning(f"Login refused: account locked user_id={user.id}")
            raise AccountLockedException()

        if user.status != UserStatus.ACTIVE:
            auth_logger.warning(
                f"Login refused: status={user.status.value} user_id={user.id}"
            )
            raise AccountInactiveException(
                f"Account is {user.status.value}. Please contact support."
            )

        if not verify_password(password, user.password_hash):
            attempts, locked_until = await self.users.register_failed_login(
                session,
                user.id,
                self.config.LOGIN_MAX_ATTEMPTS,
                self.config.LOGIN_LOCK_MINUTES,
                commit_self=True,
            )
            auth_logger.warning(
                f"Login failed: wrong password user_id={user.id} attempts={attempts}"
            )
            if locked_until is not None and ensure_utc(locked_until) > now:
                auth_logger.warning(f"Account locked until {locked_until}: user_id={user.id}")
            raise InvalidCredentialsException()

        user = await self.users.register_successful_login(
            session, user.id, commit_self=False
        ) or user
        pair = await self._issue_tokens(session, user, device_info)
        await session.commit()

        auth_logger.info(f"Login succeeded: user_id={user.id}")
        return user, pair

    async def refresh(
        self,
        session: AsyncSession,
        refresh_token: str | None,
        device_info: str | None = None,
    ) -> tuple[User, TokenPair]:
        """
        Rotate a refresh token.

        The presented token must verify and match a stored, unrevoked record.
        That record is revoked and the new refresh token is stored, so each
        refresh token works once.
        The new pair is signed with the user's current email and role.

        Raises:
            AuthenticationException: Missing, invalid, revoked or unknown token.
            AccountInactiveException: The user is no longer active.
        """
        if not refresh_token:
            raise AuthenticationException("Refresh token is required.")

        claims = self.token_service.verify(refresh_token, expected_type=TokenType.REFRESH)
        record = await self.refresh_tokens.get_by_jti(session, claims["jti"])
        if record is None or record.token_hash != hash_token(refresh_token):
            auth_logger.warning(f"Refresh refused: unknown token jti={claims['jti']}")
            raise AuthenticationException("Invalid refresh token.")
        if record.revoked_at is not None:
            auth_logger.warning(
                f"Refresh refused: revoked token reused jti={claims['jti']} user_id={record.user_id}"
            )
            raise AuthenticationException("Refresh token has been revoked.")

        user = await self.users.get_active_by_id(session, record.user_id)
        if user is None:
            raise AuthenticationException("User no longer exists.")
        if user.status != UserStatus.ACTIVE:
            raise AccountInactiveException()

        if not await self.refresh_tokens.revoke(session, record.jti, commit_self=False):
            # A concurrent refresh rotated this token first
            await session.rollback()
            raise AuthenticationException("Refresh token has been revoked.")

        _, pair = self.token_service.refresh(
            refresh_token, email=user.email, role=user.role
        )
        await self._store_refresh_token(session, user, pair, device_info)
        await session.commit()

        auth_logger.info(f"Tokens rotated: user_id={user.id}")
        return user, pair

    async def logout(self, session: AsyncSession, refresh_token: str | None) -> bool:
        """
        Revoke the given refresh token. Unknown or invalid tokens are ignored.

        Returns:
            bool: True if a live token was revoked.
        """
        if not refresh_token:
            return False
        try:
            claims = self.token_service.verify(refresh_token, expected_type=TokenType.REFRESH)
        except AuthenticationException:
            return False

        revoked = await self.refresh_tokens.revoke(session, claims["jti"], commit_self=True)
        auth_logger.info(f"Logout: user_id={claims.get('sub')} revoked={revoked}")
        return revoked

    # =========================================================================
    # Passwords
    # =========================================================================

    async def request_password_reset(self, session: AsyncSession, email: str) -> None:
        """
        Email a reset code if an active account exists for ``email``.

        Callers respond identically either way so the endpoint does not reveal
        which addresses are registered.
        """
        email = email.strip().lower()
        user = await self.users.get_by_email(session, email)
        if user is None or user.status != UserStatus.ACTIVE:
            auth_logger.info(f"Password reset requested for unknown or inactive {email}")
            return

        try:
            await self.otp_service.create(
                session,
                email,
                OTPPurpose.PASSWORD_RESET,
                payload={"user_id": str(user.id)},
                name=user.first_name or user.username,
                commit_self=False,
            )
        except Exception:
            await session.rollback()
            raise
        await session.commit()
        auth_logger.info(f"Password reset code sent: user_id={user.id}")

    async def reset_password(
        self, session: AsyncSession, email: str, code: str, new_password: str
    ) -> User:
        """
        Set a new password after confirming a reset code.

        Also clears any lockout and signs the user out everywhere.
        """
        ensure_strong_password(new_password)
        email = email.strip().lower()

        await self.otp_service.verify(
            session, email, code, OTPPurpose.PASSWORD_RESET, commit_self=False
        )
        user = await self.users.get_by_email(session, email)
        if user is None:
            await session.rollback()
            raise UserNotFoundException()

        user = await self.users.update(
            session,
            user.id,
            {
                "password_hash": hash_password(new_password),
                "login_attempts": 0,
                "lock_until": None,
            },
            commit_self=False,
        )
        revoked = await self.refresh_tokens.revoke_all_for_user(
            session, user.id, commit_self=False
        )
        await session.commit()

        auth_logger.info(f"Password reset: user_id={user.id}, sessions revoked={revoked}")
        return user

    async def change_password(
        self,
        session: AsyncSession,
        user: User,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Change the password of a signed-in user and revoke all their refresh tokens.

        Raises:
            InvalidCredentialsException: ``current_password`` is wrong.
            BadRequestException: The new password equals the current one.
            ValidationException: Weak new password.
        """
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsException("Current password is incorrect.")
        if current_password == new_password:
            raise BadRequestException(
                "New password must be different from the current password."
            )
        ensure_strong_password(new_password)

        await self.users.update(
            session,
            user.id,
            {"password_hash": hash_password(new_password)},
            commit_self=False,
        )
        revoked = await self.refresh_tokens.revoke_all_for_user(
            session, user.id, commit_self=False
        )
        await session.commit()
        auth_logger.info(f"Password changed: user_id={user.id}, sessions revoked={revoked}")

    # =========================================================================
    # OTP helpers
    # =========================================================================

    async def resend_otp(
        self, session: AsyncSession, email: str, purpose: OTPPurpose
    ) -> OTPRecord:
        email = email.strip().lower()
        try:
            record = await self.otp_service.resend(session, email, purpose, commit_self=False)
        except Exception:
            await session.rollback()
            raise
        await session.commit()
        return record

    async def otp_status(
        self, session: AsyncSession, email: str, purpose: OTPPurpose
    ) -> dict[str, Any]:
        return await self.otp_service.get_status(session, email.strip().lower(), purpose)


__all__ = ["AuthService", "ensure_strong_password"]
