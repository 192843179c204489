from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
import pytest

from clinic_booking.ratelimit import config as rl_config
from clinic_booking.ratelimit.config import RateLimitSettings
from clinic_booking.ratelimit.dependency import rate_limit
from clinic_booking.ratelimit.fixed_window import RateLimiter
from clinic_booking.ratelimit.headers import rate_headers
from tests._utils.rate_limit_doubles import ManualClock, StubRedis


class _ExplodingLimiter:
    def check_rate_limit(self, endpoint_key, identity):
        raise AssertionError("limiter should not be consulted")


def _app(limiter, endpoint_key=None) -> FastAPI:
    app = FastAPI()

    @app.post("/payments", dependencies=[Depends(rate_limit(endpoint_key, limiter=limiter))])
    def pay():
        return {"ok": True}

    return app


@pytest.fixture
def limiter():
    return RateLimiter(redis_client=StubRedis(), clock=ManualClock())


@pytest.fixture(autouse=True)
def enabled(monkeypatch):
    monkeypatch.setattr(rl_config, "settings", RateLimitSettings(enabled=True))


def test_allowed_requests_carry_headers(limiter):
    client = TestClient(_app(limiter))

    res = client.post("/payments")

    assert res.status_code == 200
    assert res.headers["X-RateLimit-Limit"] == "5"
    assert res.headers["X-RateLimit-Remaining"] == "4"
    assert res.headers["X-RateLimit-Reset"] == "1750000020"
    assert "Retry-After" not in res.headers


def test_sixth_request_gets_429(limiter):
    client = TestClient(_app(limiter))

    statuses = [client.post("/payments").status_code for _ in range(6)]

    assert statuses == [200] * 5 + [429]
    res = client.post("/payments")
    assert res.status_code == 429
    assert res.headers["Retry-After"] == "20"
    assert res.headers["X-RateLimit-Remaining"] == "0"
    detail = res.json()["detail"]
    assert detail["code"] == "RATE_LIMITED"
    assert detail["retry_after"] == 20


def test_clients_are_counted_separately(limiter):
    client = TestClient(_app(limiter))
    for _ in range(5):
        client.post("/payments", headers={"X-Forwarded-For": "1.1.1.1"})

    assert client.post("/payments", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 429
    assert client.post("/payments", headers={"X-Forwarded-For": "2.2.2.2"}).status_code == 200


def test_explicit_endpoint_key(limiter):
    client = TestClient(_app(limiter, endpoint_key="POST /bookings"))

    res = client.post("/payments")
    assert res.headers["X-RateLimit-Limit"] == "10"
    assert res.headers["X-RateLimit-Remaining"] == "9"


def test_disabled_skips_limiting(monkeypatch):
    monkeypatch.setattr(rl_config, "settings", RateLimitSettings(enabled=False))
    client = TestClient(_app(_ExplodingLimiter()))

    res = client.post("/payments")

    assert res.status_code == 200
    assert "X-RateLimit-Limit" not in res.headers


def test_fails_open_without_stores():
    client = TestClient(_app(RateLimiter(clock=ManualClock())))

    assert all(client.post("/payments").status_code == 200 for _ in range(8))


def test_rate_headers_clamp_remaining():
    headers = rate_headers(-3, 10, 1750000020.9, 0)
    assert headers == {
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Limit": "10",
        "X-RateLimit-Reset": "1750000020",
    }
