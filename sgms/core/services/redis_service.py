"""
Redis client shared by the rate limiter.

Every operation degrades to a neutral result (``None``/``False``) and logs
when Redis is unavailable, so callers can fail open.
"""

from __future__ import annotations

from redis.asyncio import Redis

from sgms.core.config import redis_logger, settings


class RedisService:
    """
    Process-wide async Redis client.

    Example:
        >>> await RedisService.init("redis://localhost:6379/0")
        >>> await RedisService.rate_limit_incr("rate_limit:ip:1.2.3.4:/api/auth/login", 900)
        >>> await RedisService.aclose()
    """

    _client: Redis | None = None
    _url: str = settings.REDIS_URL

    # INCR + EXPIRE on first hit + TTL in one round trip. Returns [count, ttl]
    _RATE_LIMIT_SCRIPT = """
    local count = redis.call('INCR', KEYS[1])
    if count == 1 then
        redis.call('EXPIRE', KEYS[1], ARGV[1])
    end
    local ttl = redis.call('TTL', KEYS[1])
    return {count, ttl}
    """

    @classmethod
    async def init(cls, url: str | None = None) -> None:
        """
        Create the client, closing any previous one.

        Args:
            url: The Redis connection URL. Defaults to settings.REDIS_URL.
        """
        if url is not None:
            cls._url = url

        await cls.aclose()

        try:
            cls._client = Redis.from_url(
                cls._url,
                encoding="utf-8",
                decode_responses=False,
            )
            redis_logger.info(f"Redis client initialized with URL: {cls._url}")
        except Exception as e:
            redis_logger.error(f"Failed to initialize Redis client: {str(e)}")
            raise

    @classmethod
    async def aclose(cls) -> None:
        if cls._client is not None:
            try:
                await cls._client.aclose()
                redis_logger.info("Redis client closed successfully")
            except Exception as e:
                redis_logger.warning(f"Error closing Redis client: {str(e)}")
            finally:
                cls._client = None

    @classmethod
    def is_connected(cls) -> bool:
        return cls._client is not None

    @classmethod
    async def ping(cls) -> bool:
        if cls._client is None:
            redis_logger.warning("Redis ping attempted but client not initialized")
            return False

        try:
            result = await cls._client.ping()  # type: ignore[misc]
            return bool(result)
        except Exception as e:
            redis_logger.error(f"Redis ping failed: {str(e)}")
            return False

    @classmethod
    async def delete(cls, key: str) -> bool:
        """
        Delete a key.

        Returns:
            bool: True if the key existed and was deleted.
        """
        if cls._client is None:
            redis_logger.warning(
                f"Redis delete({key}) attempted but client not initialized"
            )
            return False

        try:
            result = await cls._client.delete(key)
            return result > 0
        except Exception as e:
            redis_logger.error(f"Redis delete({key}) failed: {str(e)}")
            return False

    @classmethod
    async def rate_limit_incr(
        cls, key: str, window_seconds: int = 60
    ) -> tuple[int, int] | None:
        """
        Atomically count a hit and read the window's remaining TTL.

        Returns:
            Tuple of (count, ttl), or None if Redis is unavailable.
        """
        if cls._client is None:
            redis_logger.warning(
                f"Redis rate_limit_incr({key}) attempted but client not initialized"
            )
            return None

        try:
            result = await cls._client.eval(  # type: ignore[misc]
                cls._RATE_LIMIT_SCRIPT,
                1,
                key,
                str(window_seconds),
            )
            count, ttl = int(result[0]), int(result[1])
            redis_logger.debug(f"Redis rate_limit_incr({key}) count={count}, ttl={ttl}")
            return (count, ttl)
        except Exception as e:
            redis_logger.error(f"Redis rate_limit_incr({key}) failed: {str(e)}")
            return None


__all__ = ["RedisService"]
