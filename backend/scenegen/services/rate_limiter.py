"""
Rate Limiting Service
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from scenegen.config.settings import settings
from scenegen.config.constants import (
    RATE_LIMIT_CLEANUP_INTERVAL_S,
    RATE_LIMIT_PER_MIN,
    RATE_LIMIT_WINDOW_S,
)
from scenegen.services.errors import AppError, ErrorCode
from scenegen.services.observability import logger


class RateLimiter:
    """
    Per-key request limiter interface

    Implementations return {"allowed", "remaining", "reset_at"} from
    check_rate_limit; enforce() raises instead.
    """

    def __init__(
        self,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        self.limit = limit or RATE_LIMIT_PER_MIN
        self.window_seconds = window_seconds or RATE_LIMIT_WINDOW_S

    def check_rate_limit(self, key: str) -> Dict[str, Any]:
        raise NotImplementedError

    def enforce(self, key: str, correlation_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Count a request and raise if key is over its limit

        Args:
            key: Limit key (user ID, or client IP when anonymous)
            correlation_id: Correlation id for the raised error

        Returns:
            Result of check_rate_limit when allowed

        Raises:
            AppError: RATE_LIMITED when the limit is exceeded
        """
        result = self.check_rate_limit(key)
        if not result["allowed"]:
            logger.warning("rate_limit_exceeded", key=key, reset_at=result["reset_at"])
            raise AppError(
                ErrorCode.RATE_LIMITED,
                "Too many requests. Please try again later.",
                detail={"reset_at": result["reset_at"]},
                correlation_id=correlation_id,
            )
        return result

    def reset(self, key: str) -> None:
        raise NotImplementedError


class InMemoryRateLimiter(RateLimiter):
    """
    Fixed window limiter kept in process memory

    Counts are not shared between processes; use RedisRateLimiter when
    running more than one instance.
    """

    def __init__(
        self,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
        cleanup_interval_s: int = RATE_LIMIT_CLEANUP_INTERVAL_S,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(limit, window_seconds)
        self.cleanup_interval_s = cleanup_interval_s
        self.clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}  # key -> (count, reset_at)
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def check_rate_limit(self, key: str) -> Dict[str, Any]:
        now = self.clock()
        with self._lock:
            self._cleanup(now)

            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + self.window_seconds

            if count >= self.limit:
                return {"allowed": False, "remaining": 0, "reset_at": int(reset_at)}

            count += 1
            self._windows[key] = (count, reset_at)
            return {
                "allowed": True,
                "remaining": self.limit - count,
                "reset_at": int(reset_at),
            }

    def _cleanup(self, now: float) -> None:
        """Drop expired windows every cleanup interval"""
        if now - self._last_cleanup < self.cleanup_interval_s:
            return
        expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]
        self._last_cleanup = now

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)


class RedisRateLimiter(RateLimiter):
    """
    Sliding window rate limiter using Redis
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        redis_client: Optional[redis.Redis] = None,
        limit: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        """
        Initialize rate limiter

        Args:
            redis_url: Redis connection URL (defaults to settings.redis_url)
            redis_client: Existing client to use instead of redis_url
        """
        super().__init__(limit, window_seconds)
        self.redis_url = redis_url or settings.redis_url
        self.redis_client = redis_client or redis.from_url(
            self.redis_url,
            decode_responses=True,
        )

    def check_rate_limit(self, key: str) -> Dict[str, Any]:
        """
        Check if request is within rate limit

        Args:
            key: Limit key

        Returns:
            Dict with {
                "allowed": bool,
                "remaining": int,
                "reset_at": int (unix timestamp)
            }
        """
        redis_key = f"ratelimit:{key}"
        now = time.time()
        window_start = now - self.window_seconds

        # Remove timestamps outside current window and count the rest
        pipe = self.redis_client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, window_start)
        pipe.zcard(redis_key)
        _, current_count = pipe.execute()

        if current_count < self.limit:
            pipe = self.redis_client.pipeline()
            pipe.zadd(redis_key, {str(now): now})
            pipe.expire(redis_key, self.window_seconds)
            pipe.execute()
            return {
                "allowed": True,
                "remaining": self.limit - (current_count + 1),
                "reset_at": int(now) + self.window_seconds,
            }

        oldest_request = self.redis_client.zrange(redis_key, 0, 0, withscores=True)
        reset_at = (
            int(oldest_request[0][1]) + self.window_seconds
            if oldest_request
            else int(now) + self.window_seconds
        )
        return {
            "allowed": False,
            "remaining": 0,
            "reset_at": reset_at,
        }

    def reset(self, key: str) -> None:
        """Reset rate limit counters for a key."""
        self.redis_client.delete(f"ratelimit:{key}")


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter for the configured backend"""
    global _rate_limiter
    if _rate_limiter is None:
        if settings.rate_limit_backend == "redis":
            _rate_limiter = RedisRateLimiter()
        else:
            _rate_limiter = InMemoryRateLimiter()
    return _rate_limiter
