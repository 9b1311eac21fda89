from fastapi import status


class AppException(Exception):
    """Base application exception."""

    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
        error_code: str | None = None,
    ):
        self.message = message
        self.status_code = status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
        self.details = details
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)


class DatabaseException(AppException):
    """Exception raised for database-related errors."""

    error_code = "DATABASE_ERROR"

    def __init__(self, message: str = "A database error occurred."):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class ExternalServiceException(AppException):
    """Exception raised when a downstream provider (email, image host) fails."""

    error_code = "SERVICE_UNAVAILABLE"

    def __init__(
        self,
        message: str = "An external service is unavailable.",
        status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE,
    ):
        super().__init__(message, status_code)


class EmailDeliveryException(AppException):
    """Exception raised when a transactional email could not be sent."""

    error_code = "EMAIL_DELIVERY_FAILED"

    def __init__(self, message: str = "Failed to send email. Please try again."):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


# -----------------------------------------------------------------------------
# 401
# -----------------------------------------------------------------------------


class AuthenticationException(AppException):
    """Exception raised for authentication-related errors."""

    error_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication failed."):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class InvalidCredentialsException(AuthenticationException):
    """Exception raised when provided credentials are invalid."""

    error_code = "INVALID_CREDENTIALS"

    def __init__(self, message: str = "Invalid email/username or password."):
        super().__init__(message)


class TokenExpiredException(AuthenticationException):
    """The token was well formed and correctly signed but is past its expiry."""

    error_code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Token has expired."):
        super().__init__(message)


class TokenInvalidException(AuthenticationException):
    """The token could not be decoded or carries the wrong claims."""

    error_code = "TOKEN_MALFORMED"

    def __init__(self, message: str = "Invalid token."):
        super().__init__(message)


class TokenSignatureException(AuthenticationException):
    """The token signature does not match the configured secret."""

    error_code = "TOKEN_SIGNATURE_INVALID"

    def __init__(self, message: str = "Invalid token signature."):
        super().__init__(message)


# -----------------------------------------------------------------------------
# 403
# -----------------------------------------------------------------------------


class ForbiddenException(AppException):
    """Exception raised when access is forbidden."""

    error_code = "FORBIDDEN"

    def __init__(self, message: str = "Access forbidden."):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class InsufficientRoleException(ForbiddenException):
    error_code = "INSUFFICIENT_ROLE"

    def __init__(self, required_roles: list[str]):
        super().__init__(
            f"Access denied. Required role(s): {', '.join(required_roles)}"
        )
        self.details = {"required_roles": required_roles}


class InsufficientPermissionException(ForbiddenException):
    error_code = "INSUFFICIENT_PERMISSION"

    def __init__(self, required_permissions: list[str]):
        super().__init__(
            f"Access denied. Required permission(s): {', '.join(required_permissions)}"
        )
        self.details = {"required_permissions": required_permissions}


class AccountInactiveException(ForbiddenException):
    error_code = "ACCOUNT_INACTIVE"

    def __init__(self, message: str = "This account is not active."):
        super().__init__(message)


class AccountLockedException(ForbiddenException):
    error_code = "ACCOUNT_LOCKED"

    def __init__(
        self,
        message: str = "Account is temporarily locked due to too many failed login attempts.",
    ):
        super().__init__(message)


# -----------------------------------------------------------------------------
# 404 / 409 / 400
# -----------------------------------------------------------------------------


class NotFoundException(AppException):
    """Exception raised when a resource is not found."""

    error_code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found."):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class UserNotFoundException(NotFoundException):
    error_code = "USER_NOT_FOUND"

    def __init__(self, message: str = "User not found."):
        super().__init__(message)


class OTPNotFoundException(NotFoundException):
    error_code = "OTP_NOT_FOUND"

    def __init__(self, message: str = "No pending verification code found."):
        super().__init__(message)


class ConflictException(AppException):
    """Exception raised when there's a conflict with existing resources."""

    error_code = "CONFLICT"

    def __init__(self, message: str = "Resource conflict."):
        super().__init__(message, status.HTTP_409_CONFLICT)


class UserAlreadyExistsException(ConflictException):
    error_code = "USER_ALREADY_EXISTS"

    def __init__(self, message: str = "User with this email already exists."):
        super().__init__(message)


class BadRequestException(AppException):
    """Exception raised for bad request errors."""

    error_code = "BAD_REQUEST"

    def __init__(self, message: str = "Bad request."):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ValidationException(BadRequestException):
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation failed.", details: dict | None = None):
        super().__init__(message)
        self.details = details


class OTPInvalidException(BadRequestException):
    """Exception raised when an OTP does not match."""

    error_code = "INVALID_OTP"

    def __init__(self, message: str = "Invalid OTP code."):
        super().__init__(message)


class OTPExpiredException(BadRequestException):
    """Exception raised when OTP has expired."""

    error_code = "OTP_EXPIRED"

    def __init__(self, message: str = "OTP has expired. Please request a new one."):
        super().__init__(message)


class OTPAlreadyUsedException(BadRequestException):
    error_code = "OTP_ALREADY_USED"

    def __init__(self, message: str = "OTP has already been used."):
        super().__init__(message)


# -----------------------------------------------------------------------------
# 429
# -----------------------------------------------------------------------------


class TooManyRequestsException(AppException):
    """Exception raised when a caller must wait before retrying."""

    error_code = "TOO_MANY_REQUESTS"

    def __init__(
        self,
        message: str = "Too many requests. Please try again later.",
        retry_after: int | None = None,
    ):
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS)
        self.retry_after = retry_after


class OTPMaxAttemptsException(TooManyRequestsException):
    """Exception raised when an OTP has exhausted its verification attempts."""

    error_code = "OTP_MAX_ATTEMPTS"

    def __init__(
        self, message: str = "Too many attempts. Please request a new OTP."
    ):
        super().__init__(message)


class RateLimitExceededException(TooManyRequestsException):
    """Exception raised when the per-client request rate limit is exceeded."""

    error_code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        retry_after: int | None = None,
    ):
        super().__init__(message, retry_after)


__all__ = [
    "AppException",
    "DatabaseException",
    "ExternalServiceException",
    "EmailDeliveryException",
    "AuthenticationException",
    "InvalidCredentialsException",
    "TokenExpiredException",
    "TokenInvalidException",
    "TokenSignatureException",
    "ForbiddenException",
    "InsufficientRoleException",
    "InsufficientPermissionException",
    "AccountInactiveException",
    "AccountLockedException",
    "NotFoundException",
    "UserNotFoundException",
    "OTPNotFoundException",
    "ConflictException",
    "UserAlreadyExistsException",
    "BadRequestException",
    "ValidationException",
    "OTPInvalidException",
    "OTPExpiredException",
    "OTPAlreadyUsedException",
    "TooManyRequestsException",
    "OTPMaxAttemptsException",
    "RateLimitExceededException",
]
