"""Tests for the AI call rate limiter."""

from datetime import datetime, timedelta

import pytest

from app.utils.rate_limiter import RateLimiter


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(max_total_calls=2, enabled=True, window=timedelta(hours=1))


def _age(limiter: RateLimiter, service: str, delta: timedelta):
    limiter.call_history[service] = [ts - delta for ts in limiter.call_history[service]]


class TestRateLimiter:

    def test_limit_is_shared_across_providers(self, limiter):
        limiter.record_call("gemini")
        assert limiter.can_make_call("openai") == (True, "OK")

        limiter.record_call("openai")
        allowed, reason = limiter.can_make_call("gemini")
        assert allowed is False
        assert "2/2" in reason

    def test_calls_outside_window_no_longer_count(self, limiter):
        limiter.record_call("gemini")
        limiter.record_call("gemini")
        assert limiter.can_make_call("gemini")[0] is False

        _age(limiter, "gemini", timedelta(hours=2))
        assert limiter.can_make_call("gemini") == (True, "OK")
        assert limiter.get_stats()["remaining_calls"] == 2

    def test_history_is_trimmed_on_record(self, limiter):
        for _ in range(5):
            limiter.record_call("openai")
        _age(limiter, "openai", timedelta(hours=2))

        limiter.record_call("gemini")
        assert "openai" not in limiter.call_history
        assert len(limiter.call_history["gemini"]) == 1

    def test_lifetime_totals_survive_the_window(self, limiter):
        limiter.record_call("gemini")
        _age(limiter, "gemini", timedelta(hours=2))

        stats = limiter.get_stats()
        assert stats["total_calls"] == 1
        assert stats["calls_by_service"] == {"gemini": 1}
        assert limiter.get_stats("gemini")["calls_in_window"] == 0

    def test_service_stats(self, limiter):
        limiter.record_call("gemini")
        stats = limiter.get_stats("gemini")

        assert stats["calls_last_minute"] == 1
        assert stats["calls_last_hour"] == 1
        assert stats["calls_in_window"] == 1

    def test_disabled_limiter_always_allows(self):
        limiter = RateLimiter(max_total_calls=0, enabled=False)
        limiter.record_call("gemini")
        assert limiter.can_make_call("gemini") == (True, "OK")

    def test_reset(self, limiter):
        limiter.record_call("gemini")
        limiter.reset()

        assert limiter.get_stats()["total_calls"] == 0
        assert limiter.call_history == {}
        assert limiter.start_time <= datetime.now()
