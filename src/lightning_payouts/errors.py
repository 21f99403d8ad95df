"""Structured payout errors.

Every failure the engine can report carries a stable ``code`` from
:class:`PayoutErrorCode`, a human-readable message with no secrets in it,
and an optional ``retry_after_ms`` hint.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class PayoutErrorCode(str, Enum):
    BROWSER_NOT_ALLOWED = "BROWSER_NOT_ALLOWED"
    INVALID_SECRET = "INVALID_SECRET"
    SECRET_EXPOSED = "SECRET_EXPOSED"
    INVALID_DESTINATION = "INVALID_DESTINATION"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    PER_PAYMENT_LIMIT_EXCEEDED = "PER_PAYMENT_LIMIT_EXCEEDED"
    HOURLY_LIMIT_EXCEEDED = "HOURLY_LIMIT_EXCEEDED"
    DAILY_LIMIT_EXCEEDED = "DAILY_LIMIT_EXCEEDED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    DESTINATION_NOT_ALLOWED = "DESTINATION_NOT_ALLOWED"
    INVOICE_AMOUNT_MISMATCH = "INVOICE_AMOUNT_MISMATCH"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    ABORTED_BY_CALLBACK = "ABORTED_BY_CALLBACK"
    CALLBACK_TIMEOUT = "CALLBACK_TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class PayoutError:
    """Plain-data view of a failure, safe to cache and serialize."""

    code: PayoutErrorCode
    message: str
    retry_after_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.retry_after_ms is not None:
            data["retry_after_ms"] = self.retry_after_ms
        return data


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class PayoutException(Exception):
    """Base exception for payout operations."""

    code: PayoutErrorCode = PayoutErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, retry_after_ms: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.retry_after_ms = retry_after_ms

    def to_payout_error(self) -> PayoutError:
        return PayoutError(
            code=self.code, message=self.message, retry_after_ms=self.retry_after_ms
        )

    @staticmethod
    def from_error(error: PayoutError, prefix: str = "") -> PayoutException:
        """Re-raise a cached :class:`PayoutError` as an exception with its code."""
        exc = PayoutException(prefix + error.message, error.retry_after_ms)
        exc.code = error.code
        return exc


class BrowserNotAllowedError(PayoutException):
    """Request appears to originate from a browser."""

    code = PayoutErrorCode.BROWSER_NOT_ALLOWED

    def __init__(self, message: str = "Payout operations are server-only; browser requests are rejected.") -> None:
        super().__init__(message)


class InvalidSecretError(PayoutException):
    """Payout secret missing or rejected by the authorization service."""

    code = PayoutErrorCode.INVALID_SECRET


class SecretExposedError(PayoutException):
    """Payout secret is configured under a client-bundled env prefix."""

    code = PayoutErrorCode.SECRET_EXPOSED


class InvalidDestinationError(PayoutException):
    code = PayoutErrorCode.INVALID_DESTINATION


class InvalidAmountError(PayoutException):
    code = PayoutErrorCode.INVALID_AMOUNT


class PerPaymentLimitExceededError(PayoutException):
    code = PayoutErrorCode.PER_PAYMENT_LIMIT_EXCEEDED

    def __init__(self, limit: int | None, requested: int | None) -> None:
        if limit is None or requested is None:
            message = "Payment exceeds the per-payment limit."
        else:
            message = (
                f"Payment of {requested} sats exceeds per-payment limit of {limit} sats"
            )
        super().__init__(message)
        self.limit = limit
        self.requested = requested


class HourlyLimitExceededError(PayoutException):
    code = PayoutErrorCode.HOURLY_LIMIT_EXCEEDED

    def __init__(
        self, limit: int | None, current_usage: int | None, retry_after_ms: int,
    ) -> None:
        if limit is None:
            message = "Hourly spending limit exceeded."
        else:
            message = (
                f"Hourly spending limit of {limit} sats exceeded. "
                f"Current usage: {current_usage} sats."
            )
        super().__init__(message, retry_after_ms)
        self.limit = limit
        self.current_usage = current_usage


class DailyLimitExceededError(PayoutException):
    code = PayoutErrorCode.DAILY_LIMIT_EXCEEDED

    def __init__(
        self, limit: int | None, current_usage: int | None, retry_after_ms: int,
    ) -> None:
        if limit is None:
            message = "Daily spending limit exceeded."
        else:
            message = (
                f"Daily spending limit of {limit} sats exceeded. "
                f"Current usage: {current_usage} sats."
            )
        super().__init__(message, retry_after_ms)
        self.limit = limit
        self.current_usage = current_usage


class RateLimitExceededError(PayoutException):
    code = PayoutErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(
        self, limit: int | None, window_ms: int | None, retry_after_ms: int,
    ) -> None:
        if limit is None or window_ms is None:
            message = "Payout rate limit exceeded."
        else:
            message = f"Rate limit of {limit} payments per {window_ms / 1000:g}s exceeded."
        super().__init__(message, retry_after_ms)
        self.limit = limit
        self.window_ms = window_ms


class InsufficientBalanceError(PayoutException):
    code = PayoutErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, available: int | None, required: int | None) -> None:
        if available is None or required is None:
            message = "Insufficient balance."
        else:
            message = (
                f"Insufficient balance. Available: {available} sats, "
                f"required: {required} sats."
            )
        super().__init__(message)
        self.available = available
        self.required = required


class DestinationNotAllowedError(PayoutException):
    code = PayoutErrorCode.DESTINATION_NOT_ALLOWED

    def __init__(self, destination: str) -> None:
        super().__init__(f"Destination not in allowlist: {destination}")
        self.destination = destination


class InvoiceAmountMismatchError(PayoutException):
    code = PayoutErrorCode.INVOICE_AMOUNT_MISMATCH

    def __init__(self, requested: int, invoice_amount: int) -> None:
        super().__init__(
            f"Invoice amount ({invoice_amount} sats) exceeds requested amount "
            f"({requested} sats)"
        )
        self.requested = requested
        self.invoice_amount = invoice_amount


class PaymentFailedError(PayoutException):
    """The Lightning payment itself failed."""

    code = PayoutErrorCode.PAYMENT_FAILED


class AbortedByCallbackError(PayoutException):
    code = PayoutErrorCode.ABORTED_BY_CALLBACK

    def __init__(self) -> None:
        super().__init__("Payment aborted by before_payout callback")


class CallbackTimeoutError(PayoutException):
    code = PayoutErrorCode.CALLBACK_TIMEOUT

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"before_payout callback timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class InternalError(PayoutException):
    code = PayoutErrorCode.INTERNAL_ERROR
