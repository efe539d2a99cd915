"""Pacing of outbound model calls using a token bucket algorithm."""

import asyncio
import time
from typing import Awaitable, Callable, Optional


class RateLimiter:
    """Token bucket shared by every extraction worker.

    The scheduler bounds how many extractions are in flight; this bounds
    how often a new model request may be sent, so a burst of fast failures
    cannot hammer the endpoint. When the model answers 429 with a
    ``Retry-After`` header, :meth:`hold_for` pauses all workers, not only
    the one that was refused.
    """

    def __init__(
        self,
        rate: float,
        period: float = 1.0,
        burst: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("requests per period must be positive")
        self.rate = rate
        self.period = period
        self.burst = burst or max(1, int(rate))
        self._clock = clock
        self._sleep = sleep
        self._tokens: float = float(self.burst)
        self._last_update = clock()
        self._resume_at = 0.0
        self._lock = asyncio.Lock()

    @classmethod
    def per_minute(cls, requests: float, burst: Optional[int] = None) -> "RateLimiter":
        return cls(rate=requests, period=60.0, burst=burst)

    @property
    def held_for(self) -> float:
        """Seconds left on the current server-requested pause."""
        return max(0.0, self._resume_at - self._clock())

    def hold_for(self, seconds: float) -> None:
        """Block new requests for ``seconds``; an earlier longer hold is kept."""
        self._resume_at = max(self._resume_at, self._clock() + max(0.0, seconds))

    async def acquire(self, tokens: int = 1) -> None:
        async with self._lock:
            while True:
                pause = self.held_for
                if pause > 0:
                    await self._sleep(pause)
                    continue
                now = self._clock()
                self._tokens = min(self.burst, self._tokens + (now - self._last_update) * (self.rate / self.period))
                self._last_update = now
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    return
                await self._sleep((tokens - self._tokens) * self.period / self.rate)
