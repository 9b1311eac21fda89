"""
Fixed-window rate limiting with in-memory or Redis backends.

The credential endpoints (login, registration, OTP and password routes) are
limited per client IP through the ``rate_limit_by_ip`` dependency, and the
email-sending ones additionally per target address.
"""

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal

from fastapi import Request

from sgms.core.config import rate_limit_logger, settings
from sgms.core.exceptions.types import RateLimitExceededException
from sgms.core.services.redis_service import RedisService


@dataclass
class RateLimitResult:
    """
    Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed.
        remaining: Number of remaining requests in the current window.
        limit: The maximum number of requests allowed.
        reset_at: When the rate limit window resets.
        retry_after: Seconds until the client can retry (only if not allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime
    retry_after: int | None = None


class RateLimitBackend(ABC):
    @abstractmethod
    async def check(self, key: str, limit: int, window: int) -> RateLimitResult:
        """
        Count a hit on ``key`` and report whether it fits in the window.

        Args:
            key: The rate limit key (e.g., "rate_limit:ip:1.2.3.4:/api/auth/login").
            limit: Maximum number of requests allowed in the window.
            window: Time window in seconds.
        """

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget all hits recorded for ``key``."""


class MemoryBackend(RateLimitBackend):
    """
    Dictionary-backed counters for a single process.

    Data is lost on restart and is not shared between workers; use
    ``RedisBackend`` for multi-instance deployments.
    """

    def __init__(self):
        self._store: dict[str, tuple[int, datetime]] = {}
        self._lock = asyncio.Lock()

    async def check(self, key: str, limit: int, window: int) -> RateLimitResult:
        now = datetime.now(timezone.utc)

        async with self._lock:
            count, reset_at = self._store.get(key, (0, now))

            if now >= reset_at:
                # Window expired, start fresh
                count, reset_at = 0, now + timedelta(seconds=window)

            if count >= limit:
                retry_after = max(1, int((reset_at - now).total_seconds()))
                rate_limit_logger.warning(
                    f"Rate limit exceeded for key: {key}, retry after: {retry_after}s"
                )
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    limit=limit,
                    reset_at=reset_at,
                    retry_after=retry_after,
                )

            self._store[key] = (count + 1, reset_at)

        remaining = limit - count - 1
        rate_limit_logger.debug(
            f"Rate limit check passed for key: {key}, remaining: {remaining}"
        )
        return RateLimitResult(
            allowed=True, remaining=remaining, limit=limit, reset_at=reset_at
        )

    async def reset(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()


class RedisBackend(RateLimitBackend):
    """
    Redis counters shared by every instance.

    Fails open: if Redis is unavailable the request is allowed and a warning
    is logged.
    """

    async def check(self, key: str, limit: int, window: int) -> RateLimitResult:
        now = datetime.now(timezone.utc)
        result = await RedisService.rate_limit_incr(key, window)

        if result is None:
            rate_limit_logger.warning(
                f"Redis error during rate limit check for key: {key}, allowing request"
            )
            return RateLimitResult(
                allowed=True,
                remaining=limit - 1,
                limit=limit,
                reset_at=now + timedelta(seconds=window),
            )

        count, ttl = result
        if ttl < 0:
            ttl = window
        reset_at = now + timedelta(seconds=ttl)

        if count > limit:
            rate_limit_logger.warning(
                f"Rate limit exceeded for key: {key}, count: {count}, retry after: {ttl}s"
            )
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=limit,
                reset_at=reset_at,
                retry_after=max(1, ttl),
            )

        return RateLimitResult(
            allowed=True, remaining=limit - count, limit=limit, reset_at=reset_at
        )

    async def reset(self, key: str) -> None:
        await RedisService.delete(key)


# One store per process so counts survive across requests
memory_backend = MemoryBackend()
redis_backend = RedisBackend()


def get_backend(
    backend: Literal["memory", "redis"] | None = None,
) -> RateLimitBackend:
    if (backend or settings.RATE_LIMIT_BACKEND) == "redis":
        return redis_backend
    return memory_backend


def format_rate_limit_key(
    key_type: Literal["ip", "email"],
    identifier: str,
    endpoint: str,
) -> str:
    """
    Example:
        >>> format_rate_limit_key("ip", "192.168.1.1", "/api/auth/login")
        'rate_limit:ip:192.168.1.1:/api/auth/login'
    """
    return f"rate_limit:{key_type}:{identifier}:{endpoint}"


def _raise_if_blocked(result: RateLimitResult) -> RateLimitResult:
    if not result.allowed:
        raise RateLimitExceededException(
            message=f"Rate limit exceeded. Try again in {result.retry_after} seconds.",
            retry_after=result.retry_after,
        )
    return result


def rate_limit_by_ip(
    limit: int | None = None,
    window: int | None = None,
    backend: Literal["memory", "redis"] | None = None,
) -> Callable:
    """
    Create a FastAPI dependency limiting requests per client IP and path.

    Args:
        limit: Maximum requests allowed. Defaults to settings.RATE_LIMIT_DEFAULT_REQUESTS.
        window: Time window in seconds. Defaults to settings.RATE_LIMIT_DEFAULT_WINDOW.
        backend: Backend type. Defaults to settings.RATE_LIMIT_BACKEND.

    Example:
        >>> @router.post("/login", dependencies=[Depends(rate_limit_by_ip(limit=5))])
    """
    _limit = limit if limit is not None else settings.RATE_LIMIT_DEFAULT_REQUESTS
    _window = window if window is not None else settings.RATE_LIMIT_DEFAULT_WINDOW

    async def dependency(request: Request) -> RateLimitResult:
        client_ip = request.client.host if request.client else "unknown"
        key = format_rate_limit_key("ip", client_ip, request.url.path)
        result = await get_backend(backend).check(key, _limit, _window)
        return _raise_if_blocked(result)

    return dependency


def rate_limit_by_email(
    limit: int | None = None,
    window: int | None = None,
    backend: Literal["memory", "redis"] | None = None,
) -> Callable:
    """
    Create a checker limiting requests per email address and path.

    The email lives in the request body, so the returned coroutine is called
    from inside the endpoint.

    Example:
        >>> check_email_limit = rate_limit_by_email(limit=3, window=3600)
        >>> await check_email_limit(data.email, request.url.path)
    """
    _limit = limit if limit is not None else settings.RATE_LIMIT_DEFAULT_REQUESTS
    _window = window if window is not None else settings.RATE_LIMIT_DEFAULT_WINDOW

    async def check(email: str, endpoint: str) -> RateLimitResult:
        key = format_rate_limit_key("email", email.strip().lower(), endpoint)
        result = await get_backend(backend).check(key, _limit, _window)
        return _raise_if_blocked(result)

    return check


__all__ = [
    "RateLimitResult",
    "RateLimitBackend",
    "MemoryBackend",
    "RedisBackend",
    "memory_backend",
    "redis_backend",
    "get_backend",
    "format_rate_limit_key",
    "rate_limit_by_ip",
    "rate_limit_by_email",
]
