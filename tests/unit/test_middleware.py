"""Unit tests for rate limiting and security headers middleware

Tests cover:
- Requests under limit allowed, with rate limit headers
- Minute and hour limit enforcement with {"error": ...} bodies
- Health endpoint bypass
- Per-IP isolation behind a trusted proxy
- Untrusted X-Forwarded-For ignored outside production
- Security headers, HSTS only in production
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from pslang.api.middleware import rate_limit
from pslang.api.middleware.rate_limit import RateLimitMiddleware
from pslang.api.middleware.security_headers import SecurityHeadersMiddleware


def create_app(requests_per_minute: int = 5, requests_per_hour: int = 20) -> FastAPI:
    test_app = FastAPI()
    test_app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=requests_per_minute,
        requests_per_hour=requests_per_hour,
    )

    @test_app.get("/api/test")
    async def test_endpoint():
        return {"status": "ok"}

    @test_app.get("/health")
    async def health():
        return {"status": "healthy"}

    return test_app


def test_requests_under_limit_allowed():
    client = TestClient(create_app())

    for remaining in (4, 3, 2):
        response = client.get("/api/test")
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit-Minute"] == "5"
        assert response.headers["X-RateLimit-Remaining-Minute"] == str(remaining)


def test_minute_limit_enforced():
    client = TestClient(create_app())
    for _ in range(5):
        assert client.get("/api/test").status_code == 200

    response = client.get("/api/test")

    assert response.status_code == 429
    assert response.json()["error"] == "Rate limit exceeded. Maximum 5 requests per minute."
    assert response.json()["retry_after"] == 60
    assert response.headers["Retry-After"] == "60"


def test_hour_limit_enforced():
    client = TestClient(create_app(requests_per_minute=100, requests_per_hour=3))
    for _ in range(3):
        assert client.get("/api/test").status_code == 200

    response = client.get("/api/test")

    assert response.status_code == 429
    assert "per hour" in response.json()["error"]
    assert response.headers["Retry-After"] == "3600"


def test_health_bypasses_rate_limit():
    client = TestClient(create_app())
    for _ in range(6):
        client.get("/api/test")

    response = client.get("/health")

    assert response.status_code == 200
    assert "X-RateLimit-Limit-Minute" not in response.headers


def test_per_ip_isolation_behind_proxy(monkeypatch):
    """Test that forwarded client IPs get separate buckets in production"""
    monkeypatch.setattr(rate_limit, "ENV", "production")
    client = TestClient(create_app())

    for _ in range(5):
        client.get("/api/test", headers={"X-Forwarded-For": "192.168.1.1, 10.0.0.1"})

    blocked = client.get("/api/test", headers={"X-Forwarded-For": "192.168.1.1"})
    other = client.get("/api/test", headers={"X-Forwarded-For": "192.168.1.2"})

    assert blocked.status_code == 429
    assert other.status_code == 200


def test_forwarded_header_untrusted_outside_production(monkeypatch):
    """Test that a spoofed header cannot dodge the limit in other environments"""
    monkeypatch.setattr(rate_limit, "ENV", "test")
    client = TestClient(create_app())

    for i in range(5):
        client.get("/api/test", headers={"X-Forwarded-For": f"10.0.0.{i}"})

    assert client.get("/api/test", headers={"X-Forwarded-For": "10.0.0.99"}).status_code == 429


def test_ip_validation():
    middleware = RateLimitMiddleware(FastAPI().router)

    assert middleware._is_valid_ip("203.0.113.1")
    assert not middleware._is_valid_ip("not-an-ip")


@pytest.mark.parametrize("is_production", [True, False])
def test_security_headers(is_production):
    test_app = FastAPI()
    test_app.add_middleware(SecurityHeadersMiddleware, is_production=is_production)

    @test_app.get("/api/test")
    async def test_endpoint():
        return {"status": "ok"}

    response = TestClient(test_app).get("/api/test")

    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "default-src 'none'" in response.headers["Content-Security-Policy"]
    assert ("Strict-Transport-Security" in response.headers) is is_production
