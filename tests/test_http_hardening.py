import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("API_RATE_LIMIT_ENABLED", "false")

from app.main import app
from app.services.rate_limit import MemoryRateLimiter


class HttpHardeningTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()

    def test_health_has_security_headers_and_request_id(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)

        self.assertEqual(response.headers.get("x-content-type-options"), "nosniff")
        self.assertEqual(response.headers.get("x-frame-options"), "DENY")
        self.assertEqual(response.headers.get("referrer-policy"), "no-referrer")
        self.assertEqual(response.headers.get("cache-control"), "no-store")

        request_id = response.headers.get("x-request-id")
        self.assertIsNotNone(request_id)
        self.assertRegex(str(request_id), r"^[A-Za-z0-9._-]{1,128}$")

    def test_valid_request_id_is_preserved(self):
        external_request_id = "release-check-2026_10_19"
        response = self.client.get("/health", headers={"X-Request-ID": external_request_id})
        self.assertEqual(response.headers.get("x-request-id"), external_request_id)

    def test_invalid_request_id_is_replaced(self):
        bad_request_id = "bad id with spaces"
        response = self.client.get("/health", headers={"X-Request-ID": bad_request_id})
        self.assertNotEqual(response.headers.get("x-request-id"), bad_request_id)

    def test_error_response_keeps_security_headers(self):
        response = self.client.get("/api/v1/users/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.headers.get("x-content-type-options"), "nosniff")
        self.assertTrue(bool(response.headers.get("x-request-id")))


class ApiRateLimitTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(app)
        self.limiter = MemoryRateLimiter()

    def tearDown(self):
        self.client.close()

    def _limited(self, limit: int):
        return (
            patch("app.core.http_hardening.get_rate_limiter", return_value=self.limiter),
            patch("app.core.http_hardening.settings.API_RATE_LIMIT_ENABLED", True),
            patch("app.core.http_hardening.settings.API_RATE_LIMIT", limit),
        )

    def test_api_requests_over_the_limit_get_429(self):
        limiter, enabled, limit = self._limited(2)
        with limiter, enabled, limit:
            first = self.client.get("/api/v1/nothing")
            second = self.client.get("/api/v1/nothing")
            third = self.client.get("/api/v1/nothing")
        self.assertEqual(first.status_code, 404)
        self.assertEqual(second.status_code, 404)
        self.assertEqual(third.status_code, 429)
        self.assertEqual(
            third.json(),
            {"status": "fail", "message": "Too many requests from this IP, please try again in an hour!"},
        )
        self.assertTrue(third.headers.get("retry-after"))
        self.assertEqual(third.headers.get("x-content-type-options"), "nosniff")

    def test_non_api_paths_are_not_limited(self):
        limiter, enabled, limit = self._limited(1)
        with limiter, enabled, limit:
            statuses = [self.client.get("/health").status_code for _ in range(3)]
        self.assertEqual(statuses, [200, 200, 200])

    def test_limit_is_per_client_ip_behind_trusted_proxy(self):
        limiter, enabled, limit = self._limited(1)
        with limiter, enabled, limit, patch("app.services.rate_limit.settings.TRUST_PROXY_HEADERS", True):
            self.client.get("/api/v1/nothing", headers={"X-Forwarded-For": "10.0.0.1"})
            blocked = self.client.get("/api/v1/nothing", headers={"X-Forwarded-For": "10.0.0.1"})
            other = self.client.get("/api/v1/nothing", headers={"X-Forwarded-For": "10.0.0.2"})
        self.assertEqual(blocked.status_code, 429)
        self.assertEqual(other.status_code, 404)

    def test_spoofed_forwarded_header_does_not_reset_the_limit(self):
        limiter, enabled, limit = self._limited(1)
        with limiter, enabled, limit, patch("app.services.rate_limit.settings.TRUST_PROXY_HEADERS", False):
            self.client.get("/api/v1/nothing", headers={"X-Forwarded-For": "10.0.0.1"})
            spoofed = self.client.get("/api/v1/nothing", headers={"X-Forwarded-For": "10.0.0.2"})
        self.assertEqual(spoofed.status_code, 429)


if __name__ == "__main__":
    unittest.main()
