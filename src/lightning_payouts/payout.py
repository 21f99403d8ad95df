"""Payout executor: authorize, guard and execute one Lightning payment.

Lifecycle of :meth:`PayoutExecutor.payout`::

    validate request -> idempotency cache -> claim key
    -> parse destination -> allowlist -> convert currency -> invoice amount
    -> rate limit -> reserve local limits -> authorize remotely
    -> before_payout (5s) -> pay via node -> report completion
    -> cache result -> after_payout

``payout()`` never raises; every failure comes back as a structured
:class:`PayoutResult`, and every outcome past the request-shape checks is
cached under the idempotency key so replays never pay twice.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any

from lightning_payouts.auth_client import AuthorizationClient, AuthorizeResponse
from lightning_payouts.balance import ensure_sufficient_balance
from lightning_payouts.clock import Clock, now_ms
from lightning_payouts.config import PayoutConfig
from lightning_payouts.constants import (
    CALLBACK_TIMEOUT_MS,
    IN_PROGRESS_POLL_SECS,
    MSAT_PER_SAT,
    PLACEHOLDER_BTC_PRICE_USD,
    PLACEHOLDER_USD_EUR_RATE,
    SATS_PER_BTC,
    PayoutCurrency,
)
from lightning_payouts.destination import (
    Destination,
    DestinationType,
    parse_destination,
    validate_destination_allowlist,
)
from lightning_payouts.errors import (
    AbortedByCallbackError,
    CallbackTimeoutError,
    DailyLimitExceededError,
    DestinationNotAllowedError,
    HourlyLimitExceededError,
    InsufficientBalanceError,
    InternalError,
    InvalidAmountError,
    InvalidSecretError,
    InvoiceAmountMismatchError,
    PaymentFailedError,
    PayoutException,
    PerPaymentLimitExceededError,
    RateLimitExceededError,
)
from lightning_payouts.idempotency import IdempotencyStore
from lightning_payouts.l402 import decode_invoice_amount_sats
from lightning_payouts.limits import LimitGuard, PaymentRecord
from lightning_payouts.models import BeforePayout, PayoutPreview, PayoutRequest, PayoutResult
from lightning_payouts.node import LightningNode
from lightning_payouts.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

_SATS_PER_USD = Decimal(SATS_PER_BTC) / Decimal(PLACEHOLDER_BTC_PRICE_USD)
_SATS_PER_EUR = _SATS_PER_USD / Decimal(str(PLACEHOLDER_USD_EUR_RATE))


# ---------------------------------------------------------------------------
# Currency conversion
# ---------------------------------------------------------------------------


def convert_to_sats(amount: Decimal | float | int, currency: PayoutCurrency | str) -> int:
    """Convert ``amount`` to whole sats, truncating any fraction.

    USD and EUR use fixed placeholder rates; a real exchange-rate source is
    required before fiat payouts are trusted.
    """
    try:
        currency = PayoutCurrency(currency)
    except ValueError:
        raise InvalidAmountError(f"Unsupported currency: {currency}") from None

    value = Decimal(str(amount))
    if currency is PayoutCurrency.SATS:
        sats = value
    elif currency is PayoutCurrency.BTC:
        sats = value * SATS_PER_BTC
    elif currency is PayoutCurrency.USD:
        sats = value * _SATS_PER_USD
    else:
        sats = value * _SATS_PER_EUR
    return math.floor(sats)


def _validate_request(request: PayoutRequest) -> None:
    if not isinstance(request.idempotency_key, str) or not request.idempotency_key.strip():
        raise InvalidAmountError("idempotency_key is required")

    amount = request.amount
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        raise InvalidAmountError("amount must be a valid number")
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise InvalidAmountError("amount must be a valid number") from None
    if not value.is_finite():
        raise InvalidAmountError("amount must be a valid number")
    if value <= 0:
        raise InvalidAmountError("amount must be positive")

    try:
        PayoutCurrency(request.currency)
    except ValueError:
        raise InvalidAmountError(f"Unsupported currency: {request.currency}") from None


def _raise_for_denial(auth: AuthorizeResponse) -> None:
    """Map a denied authorization onto the matching local exception."""
    code = auth.error_code or "UNKNOWN"
    limits = auth.limits or {}

    if code == "PER_PAYMENT_LIMIT_EXCEEDED":
        raise PerPaymentLimitExceededError(limits.get("maxSinglePayment"), None)
    if code == "HOURLY_LIMIT_EXCEEDED":
        raise HourlyLimitExceededError(
            limits.get("hourlyLimit"), limits.get("hourlyUsed"), auth.retry_after_ms or 3_600_000
        )
    if code == "DAILY_LIMIT_EXCEEDED":
        raise DailyLimitExceededError(
            limits.get("dailyLimit"), limits.get("dailyUsed"), auth.retry_after_ms or 86_400_000
        )
    if code == "RATE_LIMIT_EXCEEDED":
        raise RateLimitExceededError(None, None, auth.retry_after_ms or 60_000)
    if code == "INVALID_SECRET":
        raise InvalidSecretError(auth.error_message or "Invalid MDK_PAYOUT_SECRET")
    if code == "INSUFFICIENT_BALANCE":
        raise InsufficientBalanceError(None, None)
    if code == "DESTINATION_NOT_ALLOWED":
        raise DestinationNotAllowedError(auth.error_message or "destination")
    raise InternalError(auth.error_message or "Authorization denied")


async def _run_before_payout(callback: BeforePayout, preview: PayoutPreview) -> bool:
    async def _invoke() -> Any:
        outcome = callback(preview)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    try:
        outcome = await asyncio.wait_for(_invoke(), timeout=CALLBACK_TIMEOUT_MS / 1000)
    except asyncio.TimeoutError:
        raise CallbackTimeoutError(CALLBACK_TIMEOUT_MS) from None
    return bool(outcome)


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class PayoutExecutor:
    """Owns all payout state for one process: idempotency cache, local
    limits, rate limiter and in-flight completion reports.

    Collaborators are injected; defaults are built from ``config``.
    """

    def __init__(
        self,
        config: PayoutConfig,
        node: LightningNode,
        *,
        auth_client: AuthorizationClient | None = None,
        idempotency: IdempotencyStore | None = None,
        limit_guard: LimitGuard | None = None,
        rate_limiter: RateLimiter | None = None,
        clock: Clock = now_ms,
    ) -> None:
        limits = config.limits.clamped()
        self._config = config
        self._node = node
        self._auth = auth_client or AuthorizationClient(config)
        self._idempotency = idempotency or IdempotencyStore(clock=clock)
        self._limits = limit_guard or LimitGuard(limits, clock=clock)
        self._rate_limiter = rate_limiter or RateLimiter(
            limits.rate_limit, limits.rate_limit_window_ms, clock=clock
        )
        self._clock = clock
        self._pending_reports: set[asyncio.Task[None]] = set()

    @property
    def idempotency(self) -> IdempotencyStore:
        return self._idempotency

    @property
    def limit_guard(self) -> LimitGuard:
        return self._limits

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def payout(self, request: PayoutRequest) -> PayoutResult:
        """Execute a payout. Never raises; see module docstring."""
        try:
            _validate_request(request)
        except PayoutException as e:
            return PayoutResult.failed(e.to_payout_error())

        key = request.idempotency_key

        cached = self._idempotency.get(key)
        if cached is not None:
            return cached

        if not self._idempotency.mark_in_progress(key):
            await asyncio.sleep(IN_PROGRESS_POLL_SECS)
            cached = self._idempotency.get(key)
            if cached is not None:
                return cached
            logger.warning("Payout %s still in progress after poll; proceeding.", key)

        try:
            result = await self._execute(request)
        finally:
            self._idempotency.clear_in_progress(key)

        await self._run_after_payout(request, result)
        return result

    async def _execute(self, request: PayoutRequest) -> PayoutResult:
        key = request.idempotency_key
        reservation: PaymentRecord | None = None
        authorization_id: str | None = None

        try:
            destination = parse_destination(request.destination)
            validate_destination_allowlist(destination, self._config.allowed_destinations)

            amount_sats = convert_to_sats(request.amount, request.currency)
            if amount_sats <= 0:
                raise InvalidAmountError("Amount converts to 0 sats")

            if destination.type is DestinationType.BOLT11:
                invoice_sats = decode_invoice_amount_sats(destination.address)
                if invoice_sats is not None and invoice_sats > amount_sats:
                    raise InvoiceAmountMismatchError(amount_sats, invoice_sats)

            await self._rate_limiter.check()
            reservation = await self._limits.check_and_reserve(amount_sats)

            if self._config.check_balance:
                await ensure_sufficient_balance(self._node, amount_sats)

            auth = await self._auth.authorize(amount_sats, key, destination.address)
            if not auth.authorized:
                logger.warning(
                    "Payout %s denied by authorization service: %s",
                    key, auth.error_code or "UNKNOWN",
                )
                _raise_for_denial(auth)
            authorization_id = auth.authorization_id

            if request.before_payout is not None:
                preview = PayoutPreview(
                    destination_type=destination.type,
                    destination=destination.address,
                    amount_sats=amount_sats,
                    original_amount=request.amount,
                    original_currency=PayoutCurrency(request.currency),
                    idempotency_key=key,
                )
                if not await _run_before_payout(request.before_payout, preview):
                    raise AbortedByCallbackError()

            try:
                payment_id = await self._send(destination, amount_sats)
            except PayoutException:
                raise
            except Exception as exc:
                raise PaymentFailedError(str(exc) or "Payment failed") from exc

        except Exception as exc:
            if isinstance(exc, PayoutException):
                error = exc
            else:
                logger.exception("Unexpected error during payout %s", key)
                error = InternalError(str(exc) or "Unknown error")
            if reservation is not None:
                self._limits.release(reservation.amount_sats, reservation.timestamp)
            if authorization_id:
                self._report_completion(authorization_id, False, error_message=error.message)
            logger.warning("Payout %s failed: %s %s", key, error.code.value, error.message)
            result = PayoutResult.failed(error.to_payout_error())
            self._idempotency.cache(key, result)
            return result

        if authorization_id:
            self._report_completion(authorization_id, True, payment_id=payment_id)
        logger.info(
            "Payout %s sent %d sats to %s (payment %s).",
            key, amount_sats, destination.type.value, payment_id,
        )
        result = PayoutResult.ok(payment_id, amount_sats)
        self._idempotency.cache(key, result)
        return result

    async def _send(self, destination: Destination, amount_sats: int) -> str:
        """Dispatch to the node by destination type; returns a payment id."""
        amount_msat = amount_sats * MSAT_PER_SAT

        if destination.type is DestinationType.BOLT12:
            return await self._node.pay_bolt12_offer(destination.address, amount_msat)
        if destination.type is DestinationType.BOLT11:
            # The invoice fixes its own amount.
            return await self._node.pay_bolt11(destination.address)
        # LNURL pays do not surface a payment id.
        await self._node.pay_lnurl(destination.address, amount_msat)
        return f"lnurl-{uuid.uuid4().hex}"

    async def _run_after_payout(self, request: PayoutRequest, result: PayoutResult) -> None:
        if request.after_payout is None:
            return
        try:
            outcome = request.after_payout(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.warning(
                "after_payout callback failed for %s; ignoring.",
                request.idempotency_key, exc_info=True,
            )

    # -- completion reporting ---------------------------------------------------

    def _report_completion(
        self,
        authorization_id: str,
        success: bool,
        payment_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Report the outcome in a detached task; failures are only logged."""
        task = asyncio.create_task(
            self._complete(authorization_id, success, payment_id, error_message)
        )
        self._pending_reports.add(task)
        task.add_done_callback(self._pending_reports.discard)

    async def _complete(
        self,
        authorization_id: str,
        success: bool,
        payment_id: str | None,
        error_message: str | None,
    ) -> None:
        try:
            await self._auth.complete(
                authorization_id, success, payment_id=payment_id, error_message=error_message
            )
        except Exception:
            logger.warning(
                "Failed to report completion for authorization %s (success=%s).",
                authorization_id, success, exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for outstanding completion reports."""
        if self._pending_reports:
            await asyncio.gather(*list(self._pending_reports))

    # -- lifecycle ------------------------------------------------------------

    def health(self) -> dict[str, object]:
        """Return executor state for monitoring."""
        stats = self._limits.stats()
        rate = self._rate_limiter.status()
        return {
            "cached_results": self._idempotency.size,
            "in_progress": self._idempotency.in_progress_count,
            "hourly_spending_sats": stats.hourly_spending,
            "daily_spending_sats": stats.daily_spending,
            "rate_limit_current": rate.current,
            "rate_limit": rate.limit,
            "pending_completion_reports": len(self._pending_reports),
        }

    async def close(self) -> None:
        """Flush completion reports and close the authorization client."""
        await self.drain()
        await self._auth.close()

    async def __aenter__(self) -> PayoutExecutor:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
