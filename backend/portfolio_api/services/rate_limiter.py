"""
Fixed-window rate limiting over the shared store.

Counter key: "<prefix>:ratelimit:<scope>:<identity>:<window index>", where
window index = floor(now / window_seconds). A new window therefore starts a
fresh counter, and the old one expires with its TTL.

Counting policy: increment-then-check. Every attempt that reaches a limiter
consumes one slot, including attempts that end up rejected, so hammering a
blocked endpoint keeps the caller blocked instead of probing for free.
The contact pipeline checks IP first and stops there on failure, so a
rejected IP never touches the global counter.

Store outage policy is explicit per limiter (fail_open):
  True   - allow the request, remaining=limit, result.degraded=True
  False  - deny the request until the end of the current window
"""

import logging
import math
import time
from typing import Callable

from portfolio_api.errors import StoreUnavailableError
from portfolio_api.models.contact import RateLimitResult
from portfolio_api.services.store import KeyValueStore

logger = logging.getLogger(__name__)

GLOBAL_IDENTITY = "global"


class RateLimiter:
    def __init__(
        self,
        store: KeyValueStore,
        limit: int,
        window_seconds: float,
        scope: str,
        prefix: str = "portfolio",
        fail_open: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.scope = scope
        self.prefix = prefix
        self.fail_open = fail_open
        self._clock = clock

    def _window(self, now: float) -> tuple[int, float]:
        index = math.floor(now / self.window_seconds)
        return index, (index + 1) * self.window_seconds

    def key_for(self, identity: str, window_index: int) -> str:
        return f"{self.prefix}:ratelimit:{self.scope}:{identity}:{window_index}"

    def check(self, identity: str) -> RateLimitResult:
        """Count one attempt for identity and report whether it is allowed."""
        now = self._clock()
        index, reset_at = self._window(now)

        try:
            count = self.store.increment(self.key_for(identity, index), self.window_seconds)
        except StoreUnavailableError:
            if self.fail_open:
                logger.error(f"Rate limit store unavailable ({self.scope}); failing open")
                return RateLimitResult(
                    allowed=True, limit=self.limit, remaining=self.limit,
                    reset_at=reset_at, degraded=True,
                )
            logger.error(f"Rate limit store unavailable ({self.scope}); failing closed")
            return RateLimitResult(
                allowed=False, limit=self.limit, remaining=0,
                reset_at=reset_at, degraded=True,
            )

        allowed = count <= self.limit
        if not allowed:
            logger.warning(f"Rate limit exceeded for {self.scope} ({count}/{self.limit})")

        return RateLimitResult(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_at=reset_at,
        )


class ContactRateLimiter:
    """
    The two tiers the contact form uses: per-IP (tight) then global (loose).
    """

    def __init__(self, ip_limiter: RateLimiter, global_limiter: RateLimiter):
        self.ip_limiter = ip_limiter
        self.global_limiter = global_limiter

    def check(self, client_ip: str) -> tuple[RateLimitResult, RateLimitResult | None]:
        """
        Return (ip_result, global_result).

        global_result is None when the IP tier already rejected the request.
        """
        ip_result = self.ip_limiter.check(client_ip)
        if not ip_result.allowed:
            return ip_result, None
        return ip_result, self.global_limiter.check(GLOBAL_IDENTITY)
