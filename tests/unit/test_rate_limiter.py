"""Tests for the sliding-window RateLimiter."""
from server.rate_limiter import RateLimiter


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_allows_up_to_budget(self):
        limiter = RateLimiter(max_requests=3, window_seconds=60)
        assert [limiter.check("1.2.3.4", now=t) for t in (0, 1, 2, 3)] == [True, True, True, False]
        assert limiter.remaining("1.2.3.4", now=3) == 0

    def test_window_slides(self):
        limiter = RateLimiter(max_requests=2, window_seconds=10)
        limiter.check("a", now=0)
        limiter.check("a", now=5)
        assert limiter.check("a", now=9) is False
        assert limiter.check("a", now=10.5) is True

    def test_identifiers_are_independent(self):
        limiter = RateLimiter(max_requests=1, window_seconds=60)
        assert limiter.check("a", now=0)
        assert limiter.check("b", now=0)
        assert not limiter.check("a", now=1)

    def test_retry_after(self):
        limiter = RateLimiter(max_requests=1, window_seconds=60)
        limiter.check("a", now=0)
        assert limiter.retry_after("a", now=20) == 41
        assert limiter.retry_after("unknown", now=20) == 0

    def test_cleanup_old_identifiers(self):
        limiter = RateLimiter(max_requests=5, window_seconds=10)
        limiter.check("old", now=0)
        limiter.check("new", now=15)
        assert limiter.cleanup_old_identifiers(now=15) == 1
        limiter.reset()
        assert limiter.remaining("new", now=15) == 5
