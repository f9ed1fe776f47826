"""
Unit tests for the fixed-window rate limiter.

Coverage:
  - allows exactly `limit` requests per window, rejects the next one
  - window rollover starts a fresh counter
  - identities and scopes are counted separately
  - two-tier ContactRateLimiter (IP first, then global)
  - fail-open / fail-closed behavior when the store is down
"""

import pytest

from portfolio_api.errors import StoreUnavailableError
from portfolio_api.services.rate_limiter import GLOBAL_IDENTITY, ContactRateLimiter, RateLimiter
from portfolio_api.services.store import MemoryStore

WINDOW = 600  # 10 minutes


class FakeClock:
    # Start exactly on a window boundary so reset_at is easy to reason about
    def __init__(self, now: float = 1000 * WINDOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


class DownStore:
    """Store whose every call fails like an unreachable backend."""

    def increment(self, key, ttl_seconds):
        raise StoreUnavailableError("store down")


def _make_limiter(store=None, clock=None, limit=5, scope="ip", **kwargs) -> RateLimiter:
    clock = clock or FakeClock()
    store = store if store is not None else MemoryStore(clock=clock)
    return RateLimiter(store, limit=limit, window_seconds=WINDOW, scope=scope, clock=clock, **kwargs)


class TestRateLimiterCounting:
    """Per-window counting."""

    def test_allows_up_to_limit_then_rejects(self):
        """With limit 5, the sixth request in the window is rejected."""
        limiter = _make_limiter()
        results = [limiter.check("1.2.3.4") for _ in range(6)]

        assert [r.allowed for r in results] == [True] * 5 + [False]
        assert [r.remaining for r in results] == [4, 3, 2, 1, 0, 0]

    def test_reset_at_is_end_of_window(self):
        """reset_at points at the next window boundary."""
        clock = FakeClock()
        result = _make_limiter(clock=clock).check("1.2.3.4")
        assert result.reset_at == clock.now + WINDOW
        assert result.retry_after(clock.now) == WINDOW

    def test_new_window_resets_counter(self):
        """After the window rolls over the caller is allowed again."""
        clock = FakeClock()
        limiter = _make_limiter(clock=clock)
        for _ in range(6):
            limiter.check("1.2.3.4")

        clock.now += WINDOW

        result = limiter.check("1.2.3.4")
        assert result.allowed is True
        assert result.remaining == 4

    def test_old_window_counters_are_dropped(self):
        """Counters from finished windows do not stay in the store."""
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        limiter = _make_limiter(store=store, clock=clock)
        for _ in range(1000):
            limiter.check("1.2.3.4")
            clock.now += WINDOW

        assert len(store._data) <= 2

    def test_rejected_attempts_still_count(self):
        """Attempts past the limit keep consuming the window."""
        limiter = _make_limiter(limit=1)
        limiter.check("ip")
        limiter.check("ip")
        assert limiter.check("ip").remaining == 0

    def test_identities_are_independent(self):
        """One IP exhausting its quota does not affect another."""
        limiter = _make_limiter(limit=1)
        assert limiter.check("a").allowed is True
        assert limiter.check("a").allowed is False
        assert limiter.check("b").allowed is True

    def test_key_layout(self):
        """Keys carry prefix, scope, identity and window index."""
        limiter = _make_limiter(prefix="portfolio")
        assert limiter.key_for("1.2.3.4", 7) == "portfolio:ratelimit:ip:1.2.3.4:7"

    def test_invalid_arguments(self):
        """Non-positive limit or window is rejected."""
        with pytest.raises(ValueError):
            RateLimiter(MemoryStore(), limit=0, window_seconds=60, scope="ip")
        with pytest.raises(ValueError):
            RateLimiter(MemoryStore(), limit=1, window_seconds=0, scope="ip")


class TestRateLimiterStoreOutage:
    """Fail-open and fail-closed policies."""

    def test_fail_open_allows_and_flags_degraded(self):
        """With fail_open the request goes through."""
        result = _make_limiter(store=DownStore(), fail_open=True).check("ip")
        assert result.allowed is True
        assert result.remaining == 5
        assert result.degraded is True

    def test_fail_closed_denies(self):
        """With fail_open=False the request is refused."""
        result = _make_limiter(store=DownStore(), fail_open=False).check("ip")
        assert result.allowed is False
        assert result.remaining == 0
        assert result.degraded is True


class TestContactRateLimiter:
    """IP tier first, global tier second."""

    def _make(self, ip_limit=5, global_limit=100):
        clock = FakeClock()
        store = MemoryStore(clock=clock)
        ip = RateLimiter(store, limit=ip_limit, window_seconds=WINDOW, scope="ip", clock=clock)
        glob = RateLimiter(store, limit=global_limit, window_seconds=86400, scope="global", clock=clock)
        return ContactRateLimiter(ip, glob), store, glob

    def test_both_tiers_checked_when_ip_allowed(self):
        """An allowed IP also consumes a global slot."""
        limiter, _store, _glob = self._make()
        ip_result, global_result = limiter.check("1.2.3.4")
        assert ip_result.allowed is True
        assert global_result is not None and global_result.remaining == 99

    def test_rejected_ip_does_not_touch_global_counter(self):
        """Global quota is untouched when the IP tier rejects."""
        limiter, store, glob = self._make(ip_limit=1)
        limiter.check("1.2.3.4")
        ip_result, global_result = limiter.check("1.2.3.4")

        assert ip_result.allowed is False
        assert global_result is None
        index = int(1000 * WINDOW // 86400)
        assert store.get(glob.key_for(GLOBAL_IDENTITY, index)) == "1"

    def test_global_ceiling_rejects_fresh_ips(self):
        """Once the global quota is spent, even new IPs are refused."""
        limiter, _store, _glob = self._make(ip_limit=5, global_limit=3)
        for i in range(3):
            assert limiter.check(f"10.0.0.{i}")[1].allowed is True

        ip_result, global_result = limiter.check("10.0.0.99")
        assert ip_result.allowed is True
        assert global_result.allowed is False
