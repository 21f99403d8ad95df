"""Sliding-window rate limiter for payout attempts."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass

from lightning_payouts.clock import Clock, now_ms
from lightning_payouts.errors import RateLimitExceededError

_MIN_RETRY_AFTER_MS = 100


@dataclass(frozen=True)
class RateLimitStatus:
    current: int
    limit: int
    window_ms: int
    remaining_ms: int


class RateLimiter:
    """At most ``limit`` attempts per ``window_ms``, checked under a lock.

    Every accepted ``check()`` counts as an attempt, whether or not the
    payment that follows succeeds.
    """

    def __init__(self, limit: int, window_ms: int, clock: Clock = now_ms) -> None:
        self._limit = limit
        self._window_ms = window_ms
        self._clock = clock
        self._attempts: deque[int] = deque()
        self._lock = asyncio.Lock()

    async def check(self) -> None:
        """Record an attempt, or raise RateLimitExceededError."""
        async with self._lock:
            now = self._clock()
            self._prune(now)

            if len(self._attempts) >= self._limit:
                retry_after = self._attempts[0] + self._window_ms - now
                raise RateLimitExceededError(
                    self._limit, self._window_ms, max(retry_after, _MIN_RETRY_AFTER_MS)
                )

            self._attempts.append(now)

    def status(self) -> RateLimitStatus:
        now = self._clock()
        window_start = now - self._window_ms
        in_window = [t for t in self._attempts if t >= window_start]
        remaining = (
            max(in_window[0] + self._window_ms - now, 0) if in_window else self._window_ms
        )
        return RateLimitStatus(
            current=len(in_window),
            limit=self._limit,
            window_ms=self._window_ms,
            remaining_ms=remaining,
        )

    def _prune(self, now: int) -> None:
        window_start = now - self._window_ms
        while self._attempts and self._attempts[0] < window_start:
            self._attempts.popleft()
