"""
Utility functions for the application.

- Password hashing and strength checks (bcrypt)
- One-time code generation, masking and HMAC hashing
- Token fingerprints for server-side storage
- Small datetime and request helpers
"""

from datetime import datetime, timezone
import hashlib
import hmac
import re
import secrets

import bcrypt

from sgms.core.config import settings, utils_logger

BCRYPT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
PASSWORD_SYMBOLS = re.compile(r"[!@#$%^&*()_+\-=\[\]{}|;:,.<>?]")

COMMON_PASSWORDS = frozenset(
    {
        "password",
        "123456",
        "12345678",
        "qwerty",
        "abc123",
        "password123",
        "admin",
        "letmein",
        "welcome",
        "monkey",
    }
)


def _password_bytes(password: str) -> bytes:
    password_bytes = password.encode("utf-8")
    # Bcrypt only reads the first 72 bytes
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        utils_logger.debug(
            f"Password exceeds {BCRYPT_MAX_BYTES} bytes ({len(password_bytes)} bytes), truncating"
        )
        password_bytes = password_bytes[:BCRYPT_MAX_BYTES]
    return password_bytes


def hash_password(password: str | None) -> str:
    """
    Hash a password using bcrypt (12 rounds, random salt).

    Args:
        password: The plain text password to hash. Cannot be None.

    Returns:
        str: The bcrypt hash, e.g. ``$2b$12$...`` (60 characters).

    Raises:
        ValueError: If password is None.
    """
    if password is None:
        utils_logger.error("Attempted to hash None password")
        raise ValueError("Password cannot be None")

    hashed = bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str | None, hashed_password: str | None) -> bool:
    """
    Verify a password against a bcrypt hash.

    Returns False for any invalid input (None values, malformed hash) instead
    of raising.

    Examples:
        >>> hashed = hash_password("MyPassword123!")
        >>> verify_password("MyPassword123!", hashed)
        True
        >>> verify_password(None, hashed)
        False
    """
    if password is None or hashed_password is None:
        utils_logger.warning(
            "Password verification attempted with None value(s): "
            f"password={'None' if password is None else 'provided'}, "
            f"hashed_password={'None' if hashed_password is None else 'provided'}"
        )
        return False

    try:
        return bcrypt.checkpw(_password_bytes(password), hashed_password.encode("utf-8"))
    except (ValueError, AttributeError) as e:
        utils_logger.warning(
            f"Password verification failed due to invalid hash format or encoding: {type(e).__name__}"
        )
        return False


def validate_password_strength(password: str) -> dict:
    """
    Check a candidate password against the password policy.

    Rules: 8-128 characters, at least one upper-case letter, one lower-case
    letter, one digit and one symbol, and not a well-known common password.

    Args:
        password: The candidate password.

    Returns:
        dict: ``{"is_valid": bool, "errors": list[str], "strength": str}``
        where strength is one of "very weak", "weak", "moderate", "strong",
        "very strong".
    """
    errors: list[str] = []
    score = 0

    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
        )

    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(
            f"Password must not exceed {PASSWORD_MAX_LENGTH} characters"
        )

    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    else:
        score += 1

    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    else:
        score += 1

    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    else:
        score += 1

    if not PASSWORD_SYMBOLS.search(password):
        errors.append("Password must contain at least one special character")
    else:
        score += 1

    if password.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common. Please choose a stronger password")

    return {
        "is_valid": not errors,
        "errors": errors,
        "strength": _strength_label(score),
    }


def _strength_label(score: int) -> str:
    """Label for the number of character classes present (0-4)."""
    if score >= 4:
        return "very strong"
    if score == 3:
        return "strong"
    if score == 2:
        return "moderate"
    if score == 1:
        return "weak"
    return "very weak"


def generate_otp_code(length: int = 6) -> str:
    """
    Generate a numeric one-time code of the given length.

    Digits come from the ``secrets`` module.
    """
    return "".join(secrets.choice("0123456789") for _ in range(length))


def mask_otp(otp: str | None) -> str:
    """
    Mask a one-time code for logging: the first two characters then ``****``.

    Examples:
        >>> mask_otp("123456")
        '12****'
        >>> mask_otp(None)
        '****'
    """
    if not otp:
        return "****"
    return f"{otp[:2]}****"


def is_valid_otp_format(code: str | None, length: int | None = None) -> bool:
    """True when ``code`` is exactly ``length`` ASCII digits."""
    expected = length or settings.OTP_LENGTH
    if not code or len(code) != expected:
        return False
    return all(ch in "0123456789" for ch in code)


def hmac_hash_otp(otp: str | None, secret: str | None) -> str:
    """
    Hash a one-time code with HMAC-SHA256 for queryable storage.

    The output is deterministic for a given secret, so a submitted code can be
    looked up by its hash.

    Args:
        otp: The code to hash. Cannot be None or empty.
        secret: The HMAC key. Cannot be None or empty.

    Returns:
        str: 64-character hex digest.

    Raises:
        ValueError: If otp or secret is None or empty.
    """
    if not otp:
        utils_logger.error("Attempted to hash None or empty OTP")
        raise ValueError("OTP cannot be None or empty")

    if not secret:
        utils_logger.error("Attempted to hash OTP with None or empty secret")
        raise ValueError("Secret cannot be None or empty")

    return hmac.new(
        secret.encode("utf-8"), otp.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def hmac_verify_otp(otp: str | None, hashed_otp: str | None, secret: str | None) -> bool:
    """Constant-time comparison of a code against a stored HMAC hash."""
    if not otp or not hashed_otp or not secret:
        return False
    return hmac.compare_digest(hmac_hash_otp(otp, secret), hashed_otp)


def hash_token(token: str) -> str:
    """SHA256 hex digest of an encoded token, for storage and lookup."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Attach UTC to naive datetimes.

    Some drivers (SQLite) return naive values even for timezone-aware columns;
    every timestamp in the database is written in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_device_info(user_agent: str | None, ip_address: str | None = None) -> str | None:
    """
    Summarize the client for refresh token records.

    Examples:
        >>> get_device_info("Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0", "10.0.0.1")
        'Windows, Chrome (10.0.0.1)'
    """
    if not user_agent and not ip_address:
        return None

    parts: list[str] = []
    ua = user_agent or ""

    if "Windows" in ua:
        parts.append("Windows")
    elif "iPhone" in ua or "iPad" in ua:
        parts.append("iOS")
    elif "Mac OS X" in ua or "Macintosh" in ua:
        parts.append("macOS")
    elif "Android" in ua:
        parts.append("Android")
    elif "Linux" in ua:
        parts.append("Linux")

    if "Edg/" in ua:
        parts.append("Edge")
    elif "Chrome" in ua:
        parts.append("Chrome")
    elif "Firefox" in ua:
        parts.append("Firefox")
    elif "Safari" in ua:
        parts.append("Safari")

    summary = ", ".join(parts) if parts else (ua[:100] or "Unknown device")
    if ip_address:
        summary = f"{summary} ({ip_address})"
    return summary


__all__ = [
    "hash_password",
    "verify_password",
    "validate_password_strength",
    "generate_otp_code",
    "mask_otp",
    "is_valid_otp_format",
    "hmac_hash_otp",
    "hmac_verify_otp",
    "hash_token",
    "ensure_utc",
    "get_device_info",
    "COMMON_PASSWORDS",
]
