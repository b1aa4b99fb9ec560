import os
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("API_RATE_LIMIT_ENABLED", "false")

import redis

from app.core.config import settings
from app.services import rate_limit
from app.services.rate_limit import MemoryRateLimiter, RedisRateLimiter, client_ip


class _Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class MemoryRateLimiterTests(unittest.TestCase):
    def test_counts_up_to_limit_per_key(self):
        limiter = MemoryRateLimiter()
        results = [limiter.hit("a", limit=2, window_seconds=60) for _ in range(3)]
        self.assertEqual([item.allowed for item in results], [True, True, False])
        self.assertEqual(results[-1].hits, 3)
        self.assertTrue(limiter.hit("b", limit=2, window_seconds=60).allowed)

    def test_retry_after_counts_down_the_window(self):
        clock = _Clock()
        limiter = MemoryRateLimiter(clock=clock)
        self.assertEqual(limiter.hit("a", limit=1, window_seconds=30).retry_after, 30)
        clock.now += 10
        decision = limiter.hit("a", limit=1, window_seconds=30)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.retry_after, 20)

    def test_new_window_resets_the_count(self):
        clock = _Clock()
        limiter = MemoryRateLimiter(clock=clock)
        limiter.hit("a", limit=1, window_seconds=30)
        self.assertFalse(limiter.hit("a", limit=1, window_seconds=30).allowed)
        clock.now += 31
        decision = limiter.hit("a", limit=1, window_seconds=30)
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.hits, 1)

    def test_expired_windows_are_evicted(self):
        clock = _Clock()
        limiter = MemoryRateLimiter(clock=clock)
        for index in range(50):
            limiter.hit(f"rate:api:10.0.0.{index}", limit=5, window_seconds=60)
        self.assertEqual(len(limiter), 50)

        clock.now += 61
        limiter.hit("rate:api:10.0.1.1", limit=5, window_seconds=60)
        self.assertEqual(len(limiter), 1)


class RedisRateLimiterTests(unittest.TestCase):
    def _client(self, hits: int, ttl: int):
        client = MagicMock()
        pipe = client.pipeline.return_value.__enter__.return_value
        pipe.execute.return_value = [True, hits, ttl]
        return client, pipe

    def test_window_is_opened_with_expiry_in_one_round_trip(self):
        client, pipe = self._client(1, 3600)
        decision = RedisRateLimiter(client).hit("rate:api:1.2.3.4", limit=100, window_seconds=3600)
        pipe.set.assert_called_once_with("rate:api:1.2.3.4", 0, ex=3600, nx=True)
        pipe.incr.assert_called_once_with("rate:api:1.2.3.4")
        pipe.execute.assert_called_once_with()
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.retry_after, 3600)

    def test_over_limit_without_ttl_falls_back_to_window(self):
        client, _ = self._client(101, -1)
        decision = RedisRateLimiter(client).hit("k", limit=100, window_seconds=60)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.hits, 101)
        self.assertEqual(decision.retry_after, 60)


class LimiterSelectionTests(unittest.TestCase):
    def setUp(self):
        self._redis_url = settings.REDIS_URL
        rate_limit.reset_rate_limiter_for_tests()

    def tearDown(self):
        settings.REDIS_URL = self._redis_url
        rate_limit.reset_rate_limiter_for_tests()

    def test_empty_redis_url_uses_memory(self):
        settings.REDIS_URL = ""
        self.assertIsInstance(rate_limit.get_rate_limiter(), MemoryRateLimiter)

    def test_unreachable_redis_falls_back_to_memory(self):
        settings.REDIS_URL = "redis://localhost:6399/0"
        client = Mock()
        client.ping.side_effect = redis.ConnectionError("refused")
        with patch("app.services.rate_limit.redis.Redis.from_url", return_value=client):
            self.assertIsInstance(rate_limit.get_rate_limiter(), MemoryRateLimiter)

    def test_reachable_redis_is_used(self):
        settings.REDIS_URL = "redis://localhost:6379/0"
        client = Mock()
        with patch("app.services.rate_limit.redis.Redis.from_url", return_value=client):
            limiter = rate_limit.get_rate_limiter()
        self.assertIsInstance(limiter, RedisRateLimiter)
        self.assertIs(rate_limit.get_rate_limiter(), limiter)


class ClientIpTests(unittest.TestCase):
    def _request(self, forwarded=None):
        headers = {"x-forwarded-for": forwarded} if forwarded else {}
        return SimpleNamespace(headers=headers, client=SimpleNamespace(host="192.0.2.10"))

    def test_forwarded_header_is_ignored_by_default(self):
        with patch.object(settings, "TRUST_PROXY_HEADERS", False):
            self.assertEqual(client_ip(self._request("203.0.113.7")), "192.0.2.10")

    def test_trusted_proxy_uses_first_forwarded_address(self):
        with patch.object(settings, "TRUST_PROXY_HEADERS", True):
            self.assertEqual(client_ip(self._request("203.0.113.7, 10.0.0.1")), "203.0.113.7")
            self.assertEqual(client_ip(self._request()), "192.0.2.10")

    def test_missing_client_is_unknown(self):
        request = SimpleNamespace(headers={}, client=None)
        self.assertEqual(client_ip(request), "unknown")


if __name__ == "__main__":
    unittest.main()
