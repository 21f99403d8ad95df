"""Local spending limits with rolling hourly and daily windows.

A best-effort guard in front of the authorization service, which remains
authoritative. Checks and the reservation happen under one asyncio lock,
so concurrent payouts in this process cannot both squeeze under a ceiling.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass

from lightning_payouts.clock import Clock, now_ms
from lightning_payouts.config import PayoutLimits
from lightning_payouts.constants import ONE_DAY_MS, ONE_HOUR_MS
from lightning_payouts.errors import (
    DailyLimitExceededError,
    HourlyLimitExceededError,
    PerPaymentLimitExceededError,
)

logger = logging.getLogger(__name__)

_MIN_RETRY_AFTER_MS = 1_000


@dataclass(frozen=True)
class PaymentRecord:
    amount_sats: int
    timestamp: int  # ms


@dataclass(frozen=True)
class SpendingStats:
    hourly_spending: int
    daily_spending: int
    payments_in_last_hour: int
    payments_in_last_day: int


class LimitGuard:
    """Per-payment, rolling-hourly and rolling-daily spend ceilings.

    ``check_and_reserve()`` appends a :class:`PaymentRecord` on success; that
    append is the reservation. Call ``release()`` with the returned record's
    fields to roll it back if the payment later fails.
    """

    def __init__(self, limits: PayoutLimits, clock: Clock = now_ms) -> None:
        self._limits = limits
        self._clock = clock
        self._history: deque[PaymentRecord] = deque()
        self._lock = asyncio.Lock()

    @property
    def limits(self) -> PayoutLimits:
        return self._limits

    async def check_and_reserve(self, amount_sats: int) -> PaymentRecord:
        """Atomically check all ceilings and reserve ``amount_sats``.

        Raises PerPaymentLimitExceededError, HourlyLimitExceededError or
        DailyLimitExceededError without reserving anything.
        """
        async with self._lock:
            now = self._clock()
            self._prune(now)

            if amount_sats > self._limits.max_single_payment:
                raise PerPaymentLimitExceededError(self._limits.max_single_payment, amount_sats)

            hourly = self._spending_since(now - ONE_HOUR_MS)
            if hourly + amount_sats > self._limits.max_hourly:
                raise HourlyLimitExceededError(
                    self._limits.max_hourly,
                    hourly,
                    self._retry_after(now, ONE_HOUR_MS),
                )

            daily = self._spending_since(now - ONE_DAY_MS)
            if daily + amount_sats > self._limits.max_daily:
                raise DailyLimitExceededError(
                    self._limits.max_daily,
                    daily,
                    self._retry_after(now, ONE_DAY_MS),
                )

            record = PaymentRecord(amount_sats=amount_sats, timestamp=now)
            self._history.append(record)
            return record

    def release(self, amount_sats: int, timestamp: int) -> bool:
        """Remove one exactly-matching reservation. Returns True if found."""
        for record in self._history:
            if record.amount_sats == amount_sats and record.timestamp == timestamp:
                self._history.remove(record)
                logger.debug("Released %d sat reservation from %d.", amount_sats, timestamp)
                return True
        return False

    def stats(self) -> SpendingStats:
        now = self._clock()
        self._prune(now)
        hour_start = now - ONE_HOUR_MS
        hour_records = [r for r in self._history if r.timestamp >= hour_start]
        return SpendingStats(
            hourly_spending=sum(r.amount_sats for r in hour_records),
            daily_spending=sum(r.amount_sats for r in self._history),
            payments_in_last_hour=len(hour_records),
            payments_in_last_day=len(self._history),
        )

    # -- internals ------------------------------------------------------------

    def _prune(self, now: int) -> None:
        cutoff = now - ONE_DAY_MS
        while self._history and self._history[0].timestamp < cutoff:
            self._history.popleft()

    def _spending_since(self, window_start: int) -> int:
        return sum(r.amount_sats for r in self._history if r.timestamp >= window_start)

    def _retry_after(self, now: int, window_ms: int) -> int:
        window_start = now - window_ms
        oldest = next((r for r in self._history if r.timestamp >= window_start), None)
        if oldest is None:
            return window_ms
        return max(oldest.timestamp + window_ms - now, _MIN_RETRY_AFTER_MS)
