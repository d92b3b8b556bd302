"""Tests for the sliding-window rate limiter and its HTTP middleware."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from resilience.rate_limit import (
    RATE_LIMIT_PRESETS,
    InMemoryRateLimitStore,
    SlidingWindowRateLimiter,
    WindowEntry,
    create_rate_limiter,
)
from server.middleware import RateLimitMiddleware


class TestSlidingWindow:
    def test_allows_up_to_limit_then_rejects(self, fake_clock) -> None:
        limiter = SlidingWindowRateLimiter(3, 60_000, clock=fake_clock)

        decisions = [limiter.check("10.0.0.1") for _ in range(3)]
        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [2, 1, 0]

        fake_clock.advance(10)
        rejected = limiter.check("10.0.0.1")
        assert not rejected.allowed
        assert rejected.remaining == 0
        assert rejected.limit == 3
        assert rejected.retry_after_s == 50

    def test_window_slides(self, fake_clock) -> None:
        limiter = SlidingWindowRateLimiter(2, 1000, clock=fake_clock)
        limiter.check("k")
        fake_clock.advance(0.5)
        limiter.check("k")
        assert not limiter.check("k").allowed

        # The first request leaves the window; room for exactly one more
        fake_clock.advance(0.6)
        assert limiter.check("k").allowed
        assert not limiter.check("k").allowed

    def test_rejected_requests_do_not_count(self, fake_clock) -> None:
        limiter = SlidingWindowRateLimiter(1, 1000, clock=fake_clock)
        limiter.check("k")
        for _ in range(5):
            fake_clock.advance(0.1)
            assert not limiter.check("k").allowed
        fake_clock.advance(0.5)
        assert limiter.check("k").allowed

    def test_keys_are_independent(self, fake_clock) -> None:
        limiter = SlidingWindowRateLimiter(1, 60_000, clock=fake_clock)
        assert limiter.check("a").allowed
        assert limiter.check("b").allowed
        assert not limiter.check("a").allowed

    def test_invalid_configuration(self) -> None:
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(0, 1000)
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(1, 0)


class TestInMemoryStore:
    def test_expired_entries_evicted_on_read(self) -> None:
        store = InMemoryRateLimitStore()
        store.set("k", WindowEntry(requests=[1.0], expires_at=100.0))
        assert store.get("k", now=99.0) is not None
        assert store.get("k", now=100.0) is None
        assert len(store) == 0

    def test_injected_store_is_shared_by_limiters(self, fake_clock) -> None:
        store = InMemoryRateLimitStore()
        first = SlidingWindowRateLimiter(1, 60_000, store=store, clock=fake_clock)
        second = SlidingWindowRateLimiter(1, 60_000, store=store, clock=fake_clock)
        assert first.check("k").allowed
        assert not second.check("k").allowed

        store.clear()
        assert second.check("k").allowed

    def test_limiter_entry_expires_after_window(self, fake_clock) -> None:
        store = InMemoryRateLimitStore()
        limiter = SlidingWindowRateLimiter(5, 1000, store=store, clock=fake_clock)
        limiter.check("k")
        fake_clock.advance(1.0)
        assert store.get("k", fake_clock()) is None


class TestPresets:
    def test_preset_values(self) -> None:
        assert RATE_LIMIT_PRESETS["STRICT"] == (10, 60_000)
        assert RATE_LIMIT_PRESETS["PUBLIC_API"] == (1000, 3_600_000)

    def test_create_from_preset(self) -> None:
        limiter = create_rate_limiter("heavy")
        assert limiter.max_requests == 5
        assert limiter.window_ms == 60_000

    def test_unknown_preset(self) -> None:
        with pytest.raises(ValueError):
            create_rate_limiter("LUDICROUS")


def _app(limiter: SlidingWindowRateLimiter) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=limiter)

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    return app


class TestRateLimitMiddleware:
    def test_third_request_gets_429(self) -> None:
        client = TestClient(_app(SlidingWindowRateLimiter(2, 60_000)))

        first = client.get("/ping")
        assert first.status_code == 200
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert client.get("/ping").status_code == 200

        blocked = client.get("/ping")
        assert blocked.status_code == 429
        assert blocked.json()["error"] == "Rate limit exceeded"
        assert blocked.json()["limit"] == 2
        assert int(blocked.headers["Retry-After"]) >= 1
        assert blocked.headers["X-RateLimit-Remaining"] == "0"

    def test_forwarded_for_is_the_key(self) -> None:
        client = TestClient(_app(SlidingWindowRateLimiter(1, 60_000)))
        assert client.get("/ping", headers={"x-forwarded-for": "1.1.1.1, 10.0.0.1"}).status_code == 200
        assert client.get("/ping", headers={"x-forwarded-for": "2.2.2.2"}).status_code == 200
        assert client.get("/ping", headers={"x-forwarded-for": "1.1.1.1"}).status_code == 429

    def test_health_check_is_exempt(self) -> None:
        client = TestClient(_app(SlidingWindowRateLimiter(1, 60_000)))
        for _ in range(3):
            assert client.get("/healthz").status_code == 200
