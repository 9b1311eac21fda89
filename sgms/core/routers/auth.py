"""
Authentication router.

This module provides endpoints for:
- Registration confirmed by an emailed code
- Login, token refresh and logout
- OTP resend and status
- Password reset and change

All endpoints are prefixed with /auth when mounted in the main app. The
credential endpoints are rate-limited per client IP.

Auth services commit their own work (failed OTP and login attempts must be
persisted even when the request fails), so these handlers do not open
``session.begin()`` blocks.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from sgms.core.config import settings
from sgms.core.db.models import User
from sgms.core.dependencies.auth import CurrentActiveUser
from sgms.core.dependencies.db import get_async_session
from sgms.core.dependencies.services import AuthServiceDep
from sgms.core.enums import OTPPurpose
from sgms.core.schemas.auth import (
    AuthUser,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    OTPStatusResponse,
    OTPVerifyRequest,
    RefreshTokenRequest,
    RegisterRequest,
    RegisterResponse,
    ResendOTPRequest,
    ResetPasswordRequest,
    TokenResponse,
)
from sgms.core.schemas.common import ApiResponse, success_response
from sgms.core.services.rate_limit import rate_limit_by_email, rate_limit_by_ip
from sgms.core.services.token import TokenPair, clear_auth_cookies, set_auth_cookies
from sgms.core.utils import get_device_info


router = APIRouter()

SessionDep = Annotated[AsyncSession, Depends(get_async_session)]

auth_rate_limit = Depends(
    rate_limit_by_ip(
        limit=settings.RATE_LIMIT_AUTH_REQUESTS,
        window=settings.RATE_LIMIT_DEFAULT_WINDOW,
    )
)
check_email_rate_limit = rate_limit_by_email(
    limit=settings.RATE_LIMIT_AUTH_REQUESTS,
    window=settings.RATE_LIMIT_DEFAULT_WINDOW,
)


# =============================================================================
# Helper Functions
# =============================================================================


def _get_device_info_from_request(request: Request) -> str | None:
    client_ip = request.client.host if request.client else None
    return get_device_info(request.headers.get("User-Agent"), client_ip)


def _token_response(pair: TokenPair, user: User | None = None) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
        refresh_expires_in=pair.refresh_expires_in,
        user=AuthUser.model_validate(user) if user is not None else None,
    )


# =============================================================================
# Registration
# =============================================================================


@router.post(
    "/register",
    response_model=ApiResponse[RegisterResponse],
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start registration",
    dependencies=[auth_rate_limit],
    description="""
## Start a Registration

Stage a new account and email a **6-digit verification code**. The account
is only created once the code is confirmed with `POST /auth/register/verify`.

### Password Requirements

- **8 to 128** characters
- At least one **uppercase** letter, one **lowercase** letter, one **digit** and one **symbol**
- Not a commonly used password

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | Invalid input or weak password |
| `409 Conflict` | Email or username already registered |
| `429 Too Many Requests` | Too many active codes or rate limit hit |
| `500 Internal Server Error` | Verification email could not be sent |
""",
)
async def register(
    request_data: RegisterRequest,
    session: SessionDep,
    auth_service: AuthServiceDep,
) -> ApiResponse:
    await auth_service.start_registration(session, request_data.model_dump())
    return success_response(
        RegisterResponse(
            email=request_data.email,
            requires_verification=True,
            expires_in_minutes=settings.OTP_EXPIRY_MINUTES,
        ),
        message="Verification code sent to your email.",
    )


@router.post(
    "/register/verify",
    response_model=ApiResponse[TokenResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Confirm registration",
    dependencies=[auth_rate_limit],
    description="""
## Confirm a Registration

Confirm the emailed code. The account is created as an active, verified
**customer** and a token pair is returned. The refresh token is also set as
an HTTP-only cookie.

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | Wrong, expired or already used code |
| `409 Conflict` | Email or username claimed in the meantime |
| `429 Too Many Requests` | Code has no attempts left |
""",
)
async def verify_registration(
    request: Request,
    response: Response,
    request_data: OTPVerifyRequest,
    session: SessionDep,
    auth_service: AuthServiceDep,
) -> ApiResponse:
    user, pair = await auth_service.complete_registration(
        session,
        request_data.email,
        request_data.otp_code,
        device_info=_get_device_info_from_request(request),
    )
    set_auth_cookies(response, pair)
    return success_response(
        _token_response(pair, user), message="Registration completed successfully."
    )


# =============================================================================
# Login / refresh / logout
# =============================================================================


@router.post(
    "/login",
    response_model=ApiResponse[TokenResponse],
    summary="Log in",
    dependencies=[auth_rate_limit],
    description="""
## Log In

Authenticate with an **email or username** and password.

After **5** consecutive failed attempts the account is locked for a while.

### Error Responses

| Status | Reason |
|--------|--------|
| `401 Unauthorized` | Unknown account or wrong password |
| `403 Forbidden` | Account locked, inactive or suspended |
| `429 Too Many Requests` | Rate limit hit |
""",
)
async def login(
    request: Request,
    response: Response,
    request_data: LoginRequest,
    session: SessionDep,
    auth_service: AuthServiceDep,
) -> ApiResponse:
    user, pair = await auth_service.login(
        session,
        request_data.identifier,
        request_data.password,
        device_info=_get_device_info_from_request(request),
    )
    set_auth_cookies(response, pair)
    return success_response(_token_response(pair, user), message="Login successful.")


@router.post(
    "/refresh",
    response_model=ApiResponse[TokenResponse],
    summary="Rotate tokens",
    description="""
## Refresh Tokens

Exchange a refresh token for a new pair. The token is read from the request
body, or from the refresh cookie when the body has none. Each refresh token
works **once**; the presented token is revoked.

### Error Responses

| Status | Reason |
|--------|--------|
| `401 Unauthorized` | Missing, invalid, expired or revoked refresh token |
| `403 Forbidden` | Account no longer active |
""",
)
async def refresh_tokens(
    request: Request,
    response: Response,
    session: SessionDep,
    auth_service: AuthServiceDep,
    request_data: RefreshTokenRequest | None = None,
) -> ApiResponse:
    token = (request_data.refresh_token if request_data else None) or request.cookies.get(
        settings.REFRESH_COOKIE_NAME
    )
    user, pair = await auth_service.refresh(
        session, token, device_info=_get_device_info_from_request(request)
    )
    set_auth_cookies(response, pair)
    return success_response(_token_response(pair, user), message="Tokens refreshed.")


@router.post(
    "/logout",
    response_model=ApiResponse[None],
    summary="Log out",
    description="""
## Log Out

Revoke the refresh token (body or cookie) and clear the auth cookies.
Always succeeds, even when the token is unknown or already revoked.
""",
)
async def logout(
    request: Request,
    response: Response,
    session: SessionDep,
    auth_service: AuthServiceDep,
    request_data: RefreshTokenRequest | None = None,
) -> ApiResponse:
    token = (request_data.refresh_token if request_data else None) or request.cookies.get(
        settings.REFRESH_COOKIE_NAME
    )
    await auth_service.logout(session, token)
    clear_auth_cookies(response)
    return success_response(message="Logged out successfully.")


# =============================================================================
# OTP
# =============================================================================


@router.post(
    "/otp/resend",
    response_model=ApiResponse[OTPStatusResponse],
    summary="Resend a verification code",
    dependencies=[auth_rate_limit],
    description="""
## Resend a Code

Replace the pending code for `(email, purpose)` with a new one and email it.
The previous code stops working. Allowed once per cooldown window.

### Error Responses

| Status | Reason |
|--------|--------|
| `404 Not Found` | Nothing pending for this email and purpose |
| `429 Too Many Requests` | Cooldown not over yet (see `Retry-After`) |
""",
)
async def resend_otp(
    request: Request,
    request_data: ResendOTPRequest,
    session: SessionDep,
    auth_service: AuthServiceDep,
) -> ApiResponse:
    await check_email_rate_limit(request_data.email, request.url.path)
    await auth_service.resend_otp(session, request_data.email, request_data.purpose)
    otp_status = await auth_service.otp_status(
        session, request_data.email, request_data.purpose
    )
    return success_response(
        OTPStatusResponse(**otp_status), message="Verification code resent."
    )


@router.get(
    "/otp/status",
    response_model=ApiResponse[OTPStatusResponse],
    summary="Verification code status",
)
async def otp_status(
    session: SessionDep,
    auth_service: AuthServiceDep,
    email: Annotated[str, Query(min_length=3, max_length=255)],
    purpose: OTPPurpose = OTPPurpose.REGISTRATION,
) -> ApiResponse:
    """Report whether a code is pending, its remaining attempts and timers."""
    result = await auth_service.otp_status(session, email, purpose)
    return success_response(OTPStatusResponse(**result))


# =============================================================================
# Passwords
# =============================================================================


@router.post(
    "/password/forgot",
    response_model=ApiResponse[None],
    summary="Request a password reset code",
    dependencies=[auth_rate_limit],
    description="""
## Forgot Password

Email a reset code if an active account uses this address. The response is
the same whether or not the account exists.
""",
)
async def forgot_password(
    request: Request,
    request_data: ForgotPasswordRequest,
    session: SessionDep,
    auth_service: AuthServiceDep,
) -> ApiResponse:
    await check_email_rate_limit(request_data.email, request.url.path)
    await auth_service.request_password_reset(session, request_data.email)
    return success_response(
        message="If an account exists for this email, a reset code has been sent."
    )


@router.post(
    "/password/reset",
    response_model=ApiResponse[None],
    summary="Reset password with a code",
    dependencies=[auth_rate_limit],
    description="""
## Reset Password

Set a new password using the emailed reset code. Every existing session is
signed out.

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | Wrong, expired or used code, or weak password |
| `429 Too Many Requests` | Code has no attempts left |
""",
)
async def reset_password(
    response: Response,
    request_data: ResetPasswordRequest,
    session: SessionDep,
    auth_service: AuthServiceDep,
) -> ApiResponse:
    await auth_service.reset_password(
        session, request_data.email, request_data.otp_code, request_data.new_password
    )
    clear_auth_cookies(response)
    return success_response(message="Password reset successfully. Please log in.")


@router.post(
    "/password/change",
    response_model=ApiResponse[None],
    summary="Change password",
    dependencies=[auth_rate_limit],
    description="""
## Change Password

Change the password of the signed-in user. Every session, including the
current one, is signed out.

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | New password weak or equal to the current one |
| `401 Unauthorized` | Not signed in, or current password wrong |
""",
)
async def change_password(
    response: Response,
    request_data: ChangePasswordRequest,
    user: CurrentActiveUser,
    session: SessionDep,
    auth_service: AuthServiceDep,
) -> ApiResponse:
    await auth_service.change_password(
        session, user, request_data.current_password, request_data.new_password
    )
    clear_auth_cookies(response)
    return success_response(message="Password changed successfully. Please log in again.")


__all__ = ["router"]
