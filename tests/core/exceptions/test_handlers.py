"""
Tests for the failure envelope produced by the exception handlers.
"""

import json
from unittest.mock import MagicMock, patch

import pytest


def _request(method="POST", path="/api/auth/login"):
    request = MagicMock()
    request.method = method
    request.url.path = path
    return request


def _body(response):
    return json.loads(response.body)


class TestAppExceptionHandler:
    @pytest.mark.asyncio
    async def test_envelope(self):
        from sgms.core.exceptions.handlers import app_exception_handler
        from sgms.core.exceptions.types import UserNotFoundException

        response = await app_exception_handler(_request(), UserNotFoundException())

        body = _body(response)
        assert response.status_code == 404
        assert body["success"] is False
        assert body["message"] == "User not found."
        assert body["error"]["code"] == "USER_NOT_FOUND"
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_details_included(self):
        from sgms.core.exceptions.handlers import app_exception_handler
        from sgms.core.exceptions.types import ValidationException

        exc = ValidationException(details={"errors": ["too short"]})

        body = _body(await app_exception_handler(_request(), exc))

        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["details"] == {"errors": ["too short"]}

    @pytest.mark.asyncio
    async def test_stack_hidden_in_production(self):
        from sgms.core.exceptions.handlers import app_exception_handler
        from sgms.core.exceptions.types import BadRequestException

        with patch("sgms.core.exceptions.handlers.settings") as mock_settings:
            mock_settings.is_production = True
            body = _body(await app_exception_handler(_request(), BadRequestException()))

        assert "stack" not in body["error"]


class TestAuthenticationHandler:
    @pytest.mark.asyncio
    async def test_challenge_header(self):
        from sgms.core.exceptions.handlers import authentication_exception_handler
        from sgms.core.exceptions.types import TokenExpiredException

        response = await authentication_exception_handler(
            _request(), TokenExpiredException()
        )

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert _body(response)["message"] == "Token has expired."


class TestTooManyRequestsHandler:
    @pytest.mark.asyncio
    async def test_retry_after_header(self):
        from sgms.core.exceptions.handlers import too_many_requests_exception_handler
        from sgms.core.exceptions.types import RateLimitExceededException

        response = await too_many_requests_exception_handler(
            _request(), RateLimitExceededException(retry_after=42)
        )

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"
        assert _body(response)["error"]["code"] == "RATE_LIMIT_EXCEEDED"

    @pytest.mark.asyncio
    async def test_without_retry_after(self):
        from sgms.core.exceptions.handlers import too_many_requests_exception_handler
        from sgms.core.exceptions.types import OTPMaxAttemptsException

        response = await too_many_requests_exception_handler(
            _request(), OTPMaxAttemptsException()
        )

        assert "Retry-After" not in response.headers
        assert _body(response)["error"]["code"] == "OTP_MAX_ATTEMPTS"


class TestUnhandledExceptionHandler:
    @pytest.mark.asyncio
    async def test_message_in_development(self):
        from sgms.core.exceptions.handlers import unhandled_exception_handler

        response = await unhandled_exception_handler(_request(), RuntimeError("kaboom"))

        body = _body(response)
        assert response.status_code == 500
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert "kaboom" in body["message"]

    @pytest.mark.asyncio
    async def test_message_hidden_in_production(self):
        from sgms.core.exceptions.handlers import unhandled_exception_handler

        with patch("sgms.core.exceptions.handlers.settings") as mock_settings:
            mock_settings.is_production = True
            response = await unhandled_exception_handler(
                _request(), RuntimeError("secret detail")
            )

        body = _body(response)
        assert body["message"] == "An unexpected error occurred."
        assert "stack" not in body["error"]


class TestDatabaseHandlers:
    @pytest.mark.asyncio
    async def test_integrity_error(self):
        from sqlalchemy.exc import IntegrityError

        from sgms.core.exceptions.handlers import integrity_error_handler

        exc = IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed"))

        response = await integrity_error_handler(_request(), exc)

        assert response.status_code == 409
        assert _body(response)["error"]["code"] == "CONFLICT"

    @pytest.mark.asyncio
    async def test_sqlalchemy_error(self):
        from sqlalchemy.exc import SQLAlchemyError

        from sgms.core.exceptions.handlers import sqlalchemy_error_handler

        response = await sqlalchemy_error_handler(_request(), SQLAlchemyError("boom"))

        assert response.status_code == 500
        assert _body(response)["message"] == "A database error occurred."
