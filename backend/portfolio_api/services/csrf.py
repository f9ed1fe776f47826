"""
CSRF token service.

Tokens are 32 random bytes (hex encoded) stored in the shared store under
"csrf:<token>" with a TTL. Verification is take-and-delete in one atomic
store call, so a token can be consumed at most once even when two requests
race on it; the loser sees "already consumed".

Lifecycle: issued -> valid -> consumed | expired
"""

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Callable

from portfolio_api.models.contact import CsrfToken
from portfolio_api.services.store import KeyValueStore

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "csrf:"
DEFAULT_TTL_SECONDS = 900  # 15 minutes


class CsrfService:
    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def create_token(self) -> CsrfToken:
        """
        Issue a new token and persist it with its expiry.

        Raises StoreUnavailableError if the store cannot be written; an
        unstored token would never verify, so there is no point returning it.
        """
        value = secrets.token_hex(32)
        issued = self._clock()
        expires = issued + self.ttl_seconds

        self.store.set(f"{TOKEN_PREFIX}{value}", str(int(expires)), self.ttl_seconds)

        return CsrfToken(
            value=value,
            issued_at=datetime.fromtimestamp(issued, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(expires, tz=timezone.utc),
        )

    def verify_and_consume(self, token: str | None) -> bool:
        """
        Return True exactly once for a live token, then never again.

        Missing, unknown, expired and already-consumed tokens all return
        False. StoreUnavailableError propagates to the caller.
        """
        if not token:
            return False
        consumed = self.store.delete(f"{TOKEN_PREFIX}{token}")
        if not consumed:
            logger.warning("CSRF token rejected: unknown, expired or already used")
        return consumed
