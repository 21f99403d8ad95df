"""Process-local idempotency cache for payout outcomes.

Both successes and failures are cached for 24h so a retried request replays
its first outcome instead of paying (or failing) again. Entries expire
lazily on lookup; ``cleanup_expired()`` sweeps explicitly.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from lightning_payouts.clock import Clock, now_ms
from lightning_payouts.constants import IDEMPOTENCY_TTL_MS
from lightning_payouts.models import PayoutResult

logger = logging.getLogger(__name__)


@dataclass
class CachedResult:
    result: PayoutResult
    timestamp: int  # ms


class IdempotencyStore:
    """Idempotency key → outcome map plus an in-progress marker set.

    Not persistent and not shared across processes.
    """

    def __init__(self, ttl_ms: int = IDEMPOTENCY_TTL_MS, clock: Clock = now_ms) -> None:
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._entries: dict[str, CachedResult] = {}
        self._in_progress: set[str] = set()

    def get(self, key: str) -> PayoutResult | None:
        """Return the cached outcome flagged ``cached=True``, or None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self._ttl_ms:
            del self._entries[key]
            return None
        return dataclasses.replace(entry.result, cached=True)

    def cache(self, key: str, result: PayoutResult) -> None:
        self._entries[key] = CachedResult(
            result=dataclasses.replace(result, cached=False), timestamp=self._clock()
        )

    def mark_in_progress(self, key: str) -> bool:
        """Claim a key. Returns False if another caller already holds it."""
        if key in self._in_progress:
            return False
        self._in_progress.add(key)
        return True

    def clear_in_progress(self, key: str) -> None:
        self._in_progress.discard(key)

    def is_in_progress(self, key: str) -> bool:
        return key in self._in_progress

    def cleanup_expired(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.timestamp >= self._ttl_ms]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Evicted %d expired idempotency entries.", len(expired))
        return len(expired)

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def in_progress_count(self) -> int:
        return len(self._in_progress)
