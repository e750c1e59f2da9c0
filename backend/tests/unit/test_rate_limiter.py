"""
Unit Tests for Rate Limiters
"""

import pytest
from unittest.mock import Mock, patch

from scenegen.services.errors import AppError, ErrorCode
from scenegen.services.rate_limiter import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    get_rate_limiter,
)


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestInMemoryRateLimiter:
    """Test suite for InMemoryRateLimiter"""

    @pytest.fixture
    def clock(self):
        return _Clock()

    @pytest.fixture
    def limiter(self, clock):
        return InMemoryRateLimiter(limit=3, window_seconds=60, clock=clock)

    def test_allows_up_to_limit(self, limiter):
        results = [limiter.check_rate_limit("user:1") for _ in range(3)]

        assert all(result["allowed"] for result in results)
        assert [result["remaining"] for result in results] == [2, 1, 0]

    def test_blocks_over_limit(self, limiter):
        for _ in range(3):
            limiter.check_rate_limit("user:1")

        result = limiter.check_rate_limit("user:1")

        assert result["allowed"] is False
        assert result["reset_at"] == 1060

    def test_keys_are_independent(self, limiter):
        for _ in range(3):
            limiter.check_rate_limit("user:1")

        assert limiter.check_rate_limit("user:2")["allowed"] is True

    def test_window_resets(self, limiter, clock):
        for _ in range(3):
            limiter.check_rate_limit("user:1")

        clock.now += 60

        assert limiter.check_rate_limit("user:1")["allowed"] is True

    def test_enforce_raises_rate_limited(self, limiter):
        for _ in range(3):
            limiter.enforce("user:1")

        with pytest.raises(AppError) as exc_info:
            limiter.enforce("user:1", correlation_id="corr-1")

        assert exc_info.value.code == ErrorCode.RATE_LIMITED
        assert exc_info.value.status == 429
        assert exc_info.value.correlation_id == "corr-1"

    def test_cleanup_drops_expired_windows(self, clock):
        limiter = InMemoryRateLimiter(limit=3, window_seconds=60, cleanup_interval_s=300, clock=clock)
        limiter.check_rate_limit("user:1")

        clock.now += 301
        limiter.check_rate_limit("user:2")

        assert "user:1" not in limiter._windows
        assert "user:2" in limiter._windows

    def test_reset(self, limiter):
        for _ in range(3):
            limiter.check_rate_limit("user:1")

        limiter.reset("user:1")

        assert limiter.check_rate_limit("user:1")["allowed"] is True


class TestRedisRateLimiter:
    """Test suite for RedisRateLimiter"""

    @pytest.fixture
    def redis_client(self):
        """Mock Redis client"""
        client = Mock()
        client.pipeline.return_value = Mock()
        return client

    @pytest.fixture
    def limiter(self, redis_client):
        return RedisRateLimiter(redis_client=redis_client, limit=10, window_seconds=60)

    def test_within_limit_records_request(self, limiter, redis_client):
        pipe = redis_client.pipeline.return_value
        pipe.execute.side_effect = [[0, 4], [1, True]]

        result = limiter.check_rate_limit("user:1")

        assert result["allowed"] is True
        assert result["remaining"] == 5
        pipe.zadd.assert_called_once()
        pipe.expire.assert_called_once_with("ratelimit:user:1", 60)

    def test_limit_exceeded(self, limiter, redis_client):
        pipe = redis_client.pipeline.return_value
        pipe.execute.side_effect = [[0, 10]]
        redis_client.zrange.return_value = [("1000.0", 1000.0)]

        result = limiter.check_rate_limit("user:1")

        assert result["allowed"] is False
        assert result["reset_at"] == 1060
        pipe.zadd.assert_not_called()

    def test_enforce_raises(self, limiter, redis_client):
        pipe = redis_client.pipeline.return_value
        pipe.execute.side_effect = [[0, 10]]
        redis_client.zrange.return_value = []

        with pytest.raises(AppError) as exc_info:
            limiter.enforce("user:1")

        assert exc_info.value.code == ErrorCode.RATE_LIMITED

    def test_reset(self, limiter, redis_client):
        limiter.reset("user:1")

        redis_client.delete.assert_called_once_with("ratelimit:user:1")


def test_get_rate_limiter_uses_configured_backend():
    with patch("scenegen.services.rate_limiter._rate_limiter", None), \
         patch("scenegen.services.rate_limiter.settings") as mock_settings:
        mock_settings.rate_limit_backend = "memory"

        assert isinstance(get_rate_limiter(), InMemoryRateLimiter)
