"""Request, preview and result types for payouts.

Pure data, no I/O.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Union

from lightning_payouts.constants import PayoutCurrency
from lightning_payouts.destination import DestinationType, RawDestination
from lightning_payouts.errors import PayoutError, PayoutErrorCode


# ---------------------------------------------------------------------------
# PayoutResult
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayoutResult:
    """Outcome of one logical payout request.

    ``cached`` flags a replay from the idempotency cache and is excluded from
    equality, so a replay compares equal to the original outcome.
    """

    success: bool
    payment_id: str | None = None
    amount_sats: int | None = None
    error: PayoutError | None = None
    cached: bool = field(default=False, compare=False)

    @classmethod
    def ok(cls, payment_id: str, amount_sats: int) -> PayoutResult:
        return cls(success=True, payment_id=payment_id, amount_sats=amount_sats)

    @classmethod
    def failed(cls, error: PayoutError) -> PayoutResult:
        return cls(success=False, error=error)

    @property
    def error_code(self) -> PayoutErrorCode | None:
        return self.error.code if self.error else None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.payment_id is not None:
            data["payment_id"] = self.payment_id
        if self.amount_sats is not None:
            data["amount_sats"] = self.amount_sats
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.cached:
            data["cached"] = True
        return data


# ---------------------------------------------------------------------------
# PayoutPreview
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayoutPreview:
    """What is about to be paid; handed to ``before_payout``."""

    destination_type: DestinationType
    destination: str
    amount_sats: int
    original_amount: Decimal | float | int
    original_currency: PayoutCurrency
    idempotency_key: str


BeforePayout = Callable[[PayoutPreview], Union[bool, Awaitable[bool]]]
AfterPayout = Callable[[PayoutResult], Union[None, Awaitable[None]]]


# ---------------------------------------------------------------------------
# PayoutRequest
# ---------------------------------------------------------------------------


@dataclass
class PayoutRequest:
    """Caller-owned description of a payout.

    ``idempotency_key`` is required: the same key within 24h returns the
    previous result, success or failure, without paying again.
    """

    destination: RawDestination
    amount: Decimal | float | int
    idempotency_key: str
    currency: PayoutCurrency | str = PayoutCurrency.SATS
    before_payout: BeforePayout | None = None
    after_payout: AfterPayout | None = None
