"""Tests for the rate limiting guard."""

from unittest.mock import Mock

import pytest

from conftest import build_request, response_json
from siwes_guard.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from siwes_guard.core.config import RateLimitSettings
from siwes_guard.core.pipeline import ContinueResponse
from siwes_guard.core.rate_limit import (
    RateLimitGuard,
    build_rate_limit_key,
    build_rate_limiter,
    get_client_id,
    get_rate_limit_status,
)


@pytest.fixture
def rate_settings() -> RateLimitSettings:
    return RateLimitSettings(max_requests=3, window_ms=60_000, sweep_probability=0.0)


@pytest.fixture
def limiter(clock, rate_settings) -> InMemoryFixedWindowRateLimiter:
    return build_rate_limiter(rate_settings, clock=clock)


@pytest.fixture
def guard(limiter, rate_settings) -> RateLimitGuard:
    return RateLimitGuard(limiter, rate_settings)


class TestClientId:
    def test_uses_first_forwarded_hop(self) -> None:
        request = build_request("/", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        assert get_client_id(request) == "203.0.113.7"

    def test_falls_back_to_real_ip(self) -> None:
        request = build_request("/", headers={"X-Real-IP": "198.51.100.2"})
        assert get_client_id(request) == "198.51.100.2"

    def test_forwarded_wins_over_real_ip(self) -> None:
        request = build_request(
            "/", headers={"X-Forwarded-For": "203.0.113.7", "X-Real-IP": "198.51.100.2"}
        )
        assert get_client_id(request) == "203.0.113.7"

    def test_unknown_without_proxy_headers(self) -> None:
        assert get_client_id(build_request("/")) == "unknown"

    def test_key_is_client_and_raw_path(self) -> None:
        assert build_rate_limit_key("1.2.3.4", "/supervisor/review/9") == "1.2.3.4:/supervisor/review/9"


class TestRateLimitGuard:
    def test_allowed_requests_are_annotated(self, guard, clock) -> None:
        request = build_request("/logbook/entry", headers={"X-Forwarded-For": "1.1.1.1"})

        response = guard(request, ContinueResponse())

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["X-RateLimit-Remaining"] == "2"
        assert response.headers["X-RateLimit-Reset"] == str(int((clock.now + 60) * 1000))

    def test_returns_the_response_it_was_given(self, guard) -> None:
        passed = ContinueResponse()
        assert guard(build_request("/x"), passed) is passed

    def test_limit_plus_one_is_rejected(self, guard) -> None:
        headers = {"X-Forwarded-For": "1.1.1.1"}
        for _ in range(3):
            assert guard(build_request("/x", headers=headers), ContinueResponse()).status_code == 200

        rejected = guard(build_request("/x", headers=headers), ContinueResponse())

        assert rejected.status_code == 429
        body = response_json(rejected)
        assert body["success"] is False
        assert "Too many requests" in body["error"]
        assert body["retryAfter"] == 60
        assert rejected.headers["Retry-After"] == "60"
        assert rejected.headers["X-RateLimit-Limit"] == "3"
        assert rejected.headers["X-RateLimit-Remaining"] == "0"
        assert "X-RateLimit-Reset" in rejected.headers

    def test_rejection_does_not_carry_previous_annotations(self, guard) -> None:
        for _ in range(3):
            guard(build_request("/x"), ContinueResponse())

        passed = ContinueResponse()
        passed.headers["X-Upstream"] = "kept-only-on-pass"
        rejected = guard(build_request("/x"), passed)

        assert rejected is not passed
        assert "X-Upstream" not in rejected.headers

    def test_counts_each_path_separately(self, guard) -> None:
        for _ in range(3):
            guard(build_request("/supervisor/review/1"), ContinueResponse())

        assert guard(build_request("/supervisor/review/1"), ContinueResponse()).status_code == 429
        assert guard(build_request("/supervisor/review/2"), ContinueResponse()).status_code == 200

    def test_counts_each_client_separately(self, guard) -> None:
        for _ in range(3):
            guard(build_request("/x", headers={"X-Real-IP": "a"}), ContinueResponse())

        assert guard(build_request("/x", headers={"X-Real-IP": "a"}), ContinueResponse()).status_code == 429
        assert guard(build_request("/x", headers={"X-Real-IP": "b"}), ContinueResponse()).status_code == 200

    def test_new_window_after_reset(self, guard, limiter, clock) -> None:
        for _ in range(4):
            guard(build_request("/x"), ContinueResponse())

        clock.advance(60)
        response = guard(build_request("/x"), ContinueResponse())

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == "2"
        assert limiter.get_entry("unknown:/x").count == 1

    def test_exempt_prefix_never_counted(self, guard, limiter) -> None:
        for _ in range(50):
            response = guard(build_request("/api/health"), ContinueResponse())
            assert response.status_code == 200
            assert "X-RateLimit-Limit" not in response.headers

        assert len(limiter) == 0

    def test_disabled_guard_passes_everything(self, limiter) -> None:
        guard = RateLimitGuard(limiter, RateLimitSettings(enabled=False, max_requests=1))

        for _ in range(5):
            assert guard(build_request("/x"), ContinueResponse()).status_code == 200
        assert len(limiter) == 0

    def test_guard_triggers_opportunistic_sweep(self, rate_settings) -> None:
        limiter = Mock()
        limiter.consume.side_effect = RuntimeError("unused")
        guard = RateLimitGuard(limiter, rate_settings)

        guard(build_request("/x"), ContinueResponse())

        limiter.maybe_sweep.assert_called_once()


class TestRateLimitFailurePolicy:
    def test_fails_open_by_default(self) -> None:
        limiter = Mock()
        limiter.consume.side_effect = RuntimeError("store down")
        guard = RateLimitGuard(limiter, RateLimitSettings())

        response = guard(build_request("/x"), ContinueResponse())

        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_fails_closed_when_configured(self) -> None:
        limiter = Mock()
        limiter.consume.side_effect = RuntimeError("store down")
        guard = RateLimitGuard(limiter, RateLimitSettings(fail_open=False))

        response = guard(build_request("/x"), ContinueResponse())

        assert response.status_code == 503
        assert response_json(response)["success"] is False


class TestScenario:
    def test_hundred_requests_then_429(self, clock) -> None:
        settings = RateLimitSettings(max_requests=100, window_ms=60_000, sweep_probability=0.0)
        guard = RateLimitGuard(build_rate_limiter(settings, clock=clock), settings)
        headers = {"X-Forwarded-For": "41.58.0.10"}

        remaining = []
        for _ in range(100):
            response = guard(build_request("/api/logbook/active", headers=headers), ContinueResponse())
            assert response.status_code == 200
            remaining.append(int(response.headers["X-RateLimit-Remaining"]))
            clock.advance(0.1)

        assert remaining == list(range(99, -1, -1))

        rejected = guard(build_request("/api/logbook/active", headers=headers), ContinueResponse())
        assert rejected.status_code == 429
        assert int(rejected.headers["Retry-After"]) > 0


def test_status_lookup_uses_caller_identity(guard, limiter) -> None:
    request = build_request("/x", headers={"X-Forwarded-For": "9.9.9.9"})
    guard(request, ContinueResponse())

    status = get_rate_limit_status(limiter, request, "/x")
    assert status.remaining == 2
    assert get_rate_limit_status(limiter, request, "/other").remaining == 3
