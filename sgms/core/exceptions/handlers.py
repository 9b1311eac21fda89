import traceback

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sgms.core.config import request_logger, settings
from sgms.core.exceptions.types import (
    AppException,
    AuthenticationException,
    TooManyRequestsException,
)
from sgms.core.schemas.common import error_payload


def _stack_for(exc: BaseException) -> list[str] | None:
    """Formatted traceback lines, or None in production."""
    if settings.is_production:
        return None
    return [
        line.rstrip("\n")
        for line in traceback.format_exception(type(exc), exc, exc.__traceback__)
    ]


def _log(request: Request, status_code: int, code: str, exc: BaseException) -> None:
    line = f"{request.method} {request.url.path} -> {status_code} {code}: {exc}"
    if status_code >= 500:
        request_logger.error(line)
    else:
        request_logger.warning(line)


def _app_error_response(
    request: Request,
    exc: AppException,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    _log(request, exc.status_code, exc.error_code, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(
            message=exc.message,
            code=exc.error_code,
            details=exc.details,
            stack=_stack_for(exc),
        ),
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException):
    """
    Serializes any AppException into the failure envelope.

    Args:
        request: The request object.
        exc (AppException): The exception instance.

    Returns:
        JSONResponse: Failure envelope with the exception's status code.
    """
    return _app_error_response(request, exc)


async def authentication_exception_handler(
    request: Request, exc: AuthenticationException
):
    """
    Handles 401s, adding the ``WWW-Authenticate`` challenge header.

    Args:
        request: The request object.
        exc (AuthenticationException): The authentication exception instance.

    Returns:
        JSONResponse: Failure envelope with status code 401.
    """
    return _app_error_response(
        request, exc, headers={"WWW-Authenticate": "Bearer"}
    )


async def too_many_requests_exception_handler(
    request: Request, exc: TooManyRequestsException
):
    """
    Handles 429s (OTP limits and request rate limits).

    Args:
        request: The request object.
        exc (TooManyRequestsException): The exception instance.

    Returns:
        JSONResponse: Failure envelope with status 429 and optional Retry-After header.
    """
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return _app_error_response(request, exc, headers=headers)


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
):
    """Reports body/query/path validation failures as 400 VALIDATION_ERROR."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    _log(request, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", exc)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_payload(
            message="Validation failed.",
            code="VALIDATION_ERROR",
            details={"errors": errors},
        ),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError):
    """Maps unique/foreign-key violations that escaped the CRUD layer to 409."""
    _log(request, status.HTTP_409_CONFLICT, "CONFLICT", exc)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_payload(
            message="Resource already exists or conflicts with existing data.",
            code="CONFLICT",
            stack=_stack_for(exc),
        ),
    )


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    _log(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(
            message="A database error occurred.",
            code="DATABASE_ERROR",
            stack=_stack_for(exc),
        ),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Last-resort handler. The original message is hidden in production.

    Args:
        request: The request object.
        exc (Exception): The exception instance.

    Returns:
        JSONResponse: Failure envelope with status code 500.
    """
    request_logger.exception(
        f"{request.method} {request.url.path} -> 500 INTERNAL_ERROR: {exc}"
    )
    message = (
        "An unexpected error occurred."
        if settings.is_production
        else f"An unexpected error occurred: {exc}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(
            message=message,
            code="INTERNAL_ERROR",
            stack=_stack_for(exc),
        ),
    )


def _example(message: str, code: str) -> dict:
    return {
        "success": False,
        "message": message,
        "error": {"code": code},
        "timestamp": "2025-01-01T00:00:00+00:00",
    }


exception_schema = {
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "description": "Internal Server Error",
        "content": {
            "application/json": {
                "example": _example("An unexpected error occurred.", "INTERNAL_ERROR"),
            }
        },
    },
    status.HTTP_401_UNAUTHORIZED: {
        "description": "Authentication Error",
        "content": {
            "application/json": {
                "example": _example("Authentication failed.", "UNAUTHORIZED"),
            }
        },
    },
    status.HTTP_429_TOO_MANY_REQUESTS: {
        "description": "Rate Limit Exceeded",
        "content": {
            "application/json": {
                "example": _example(
                    "Rate limit exceeded. Please try again later.",
                    "RATE_LIMIT_EXCEEDED",
                ),
            }
        },
    },
}


__all__ = [
    "app_exception_handler",
    "authentication_exception_handler",
    "too_many_requests_exception_handler",
    "request_validation_exception_handler",
    "integrity_error_handler",
    "sqlalchemy_error_handler",
    "unhandled_exception_handler",
    "exception_schema",
]
