"""
Response-time padding for the contact endpoint.

Every outcome (validation error, CSRF failure, rate limit, success) is held
back until at least min_ms have passed since the request started, plus up
to jitter_ms of random delay, so rejection stages cannot be told apart by
how fast they answer.
"""

import asyncio
import random
import time


class ResponseTimeProtector:
    def __init__(self, min_ms: int = 500, jitter_ms: int = 100):
        self.min_ms = min_ms
        self.jitter_ms = jitter_ms
        self._start = time.monotonic()

    def remaining_delay(self) -> float:
        """Seconds still to wait; always includes a fresh random jitter."""
        elapsed_ms = (time.monotonic() - self._start) * 1000
        jitter = random.uniform(0, self.jitter_ms) if self.jitter_ms else 0
        return (max(0.0, self.min_ms - elapsed_ms) + jitter) / 1000

    async def wait(self) -> None:
        delay = self.remaining_delay()
        if delay > 0:
            await asyncio.sleep(delay)
