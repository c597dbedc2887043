"""Tests for the rate limiting pure function and middleware integration."""

import pytest

from docgate.core.config import settings
from docgate.middleware.request_context import _sweep_idle, check_rate_limit


class TestCheckRateLimit:
    """Unit tests for the pure function: no middleware, no HTTP."""

    def test_allows_within_limit(self):
        bucket: dict = {}
        allowed, retry = check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)
        assert allowed is True
        assert retry == 0.0

    def test_denies_after_exhaustion(self):
        bucket: dict = {}
        for _ in range(60):
            check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)

        allowed, retry = check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)
        assert allowed is False
        assert retry > 0

    def test_refills_over_time(self):
        bucket: dict = {}
        for _ in range(60):
            check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)

        # 2 seconds later: ~2 tokens back
        allowed, _ = check_rate_limit(bucket, "client-a", max_per_minute=60, now=2.0)
        assert allowed is True

    def test_separate_keys_independent(self):
        bucket: dict = {}
        for _ in range(60):
            check_rate_limit(bucket, "client-a", max_per_minute=60, now=0.0)

        allowed, _ = check_rate_limit(bucket, "client-b", max_per_minute=60, now=0.0)
        assert allowed is True

    def test_zero_limit_always_allows(self):
        bucket: dict = {}
        allowed, _ = check_rate_limit(bucket, "any", max_per_minute=0, now=0.0)
        assert allowed is True

    def test_sweep_drops_only_idle_keys(self):
        bucket = {"old:/api/auth/login": (3.0, 0.0), "new:/api/auth/login": (3.0, 200.0)}
        _sweep_idle(bucket, now=250.0)
        assert list(bucket) == ["new:/api/auth/login"]


class TestMiddleware:

    @pytest.fixture(autouse=True)
    def _tight_limit(self, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_per_minute", 2)

    def _login(self, client):
        return client.post("/api/auth/login", json={"email": "x@example.com", "password": "whatever1"})

    def test_login_throttled(self, client):
        assert self._login(client).status_code == 401
        assert self._login(client).status_code == 401

        resp = self._login(client)
        assert resp.status_code == 429
        assert resp.json()["error"] == "RATE_LIMITED"
        assert int(resp.headers["retry-after"]) >= 1

    def test_token_endpoint_has_its_own_bucket(self, client):
        for _ in range(3):
            self._login(client)
        resp = client.post("/api/oidc/token", data={"grant_type": "authorization_code", "code": "x"})
        assert resp.status_code == 400

    def test_reads_not_throttled(self, client):
        for _ in range(5):
            assert client.get("/health").status_code == 200
