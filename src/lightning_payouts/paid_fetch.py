"""Auto-paying HTTP client for L402-gated APIs.

request -> 402 with invoice -> pay through the PayoutExecutor -> retry
once with the proof-of-payment headers.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import httpx

from lightning_payouts.clock import Clock, now_ms
from lightning_payouts.constants import (
    DOMAIN_HOURLY_LIMIT_SATS,
    ONE_HOUR_MS,
    PAYMENT_HASH_HEADER,
    PREIMAGE_HEADER,
    TOKEN_HEADER,
)
from lightning_payouts.errors import (
    InternalError,
    InvalidAmountError,
    PayoutException,
    PerPaymentLimitExceededError,
)
from lightning_payouts.l402 import (
    decode_invoice_amount_sats,
    extract_invoice,
    format_authorization,
    parse_challenge,
)
from lightning_payouts.models import PayoutRequest
from lightning_payouts.payout import PayoutExecutor

logger = logging.getLogger(__name__)


@dataclass
class DomainSpending:
    amount: int
    timestamp: int  # ms of the latest spend


class DomainSpendTracker:
    """Per-hostname spend cap for paid fetches.

    A host's running total resets once an hour passes without spending on
    it. Hosts with no spend in the current hour are not capped, so the
    first payment to a host is bounded only by ``max_sats`` and the
    executor's own limits.
    """

    def __init__(self, limit_sats: int = DOMAIN_HOURLY_LIMIT_SATS, clock: Clock = now_ms) -> None:
        self._limit = limit_sats
        self._clock = clock
        self._spending: dict[str, DomainSpending] = {}

    def check(self, host: str, amount_sats: int) -> None:
        """Raise PerPaymentLimitExceededError if ``amount_sats`` would exceed the cap."""
        entry = self._active(host)
        if entry is not None and entry.amount + amount_sats > self._limit:
            raise PerPaymentLimitExceededError(self._limit - entry.amount, amount_sats)

    def record(self, host: str, amount_sats: int) -> None:
        self._spending[host] = DomainSpending(
            amount=self.spent(host) + amount_sats, timestamp=self._clock()
        )

    def spent(self, host: str) -> int:
        entry = self._active(host)
        return entry.amount if entry is not None else 0

    def _active(self, host: str) -> DomainSpending | None:
        entry = self._spending.get(host)
        if entry is None or entry.timestamp <= self._clock() - ONE_HOUR_MS:
            return None
        return entry


def _idempotency_key_for(invoice: str) -> str:
    # One key per invoice: a BOLT11 invoice can only be settled once.
    return "l402-" + hashlib.sha256(invoice.encode()).hexdigest()[:32]


class PaidFetchClient:
    """httpx wrapper that pays L402 challenges up to a per-call ``max_sats``.

    Payments go through ``executor`` so they share its idempotency cache,
    local limits and remote authorization.
    """

    def __init__(
        self,
        executor: PayoutExecutor,
        *,
        client: httpx.AsyncClient | None = None,
        domain_limit_sats: int = DOMAIN_HOURLY_LIMIT_SATS,
        clock: Clock = now_ms,
    ) -> None:
        self._executor = executor
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=5.0, read=30.0, write=10.0, pool=5.0),
        )
        self._domains = DomainSpendTracker(domain_limit_sats, clock=clock)

    @property
    def domains(self) -> DomainSpendTracker:
        return self._domains

    async def request(
        self, method: str, url: str, *, max_sats: int, **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, paying at most ``max_sats`` if the server answers 402.

        Non-402 responses are returned untouched. Raises a PayoutException
        subclass when the challenge cannot be paid.
        """
        if isinstance(max_sats, bool) or not isinstance(max_sats, int) or max_sats <= 0:
            raise InvalidAmountError("max_sats must be a positive integer")

        host = urlsplit(url).hostname or ""
        self._domains.check(host, max_sats)

        response = await self._client.request(method, url, **kwargs)
        if response.status_code != 402:
            return response

        invoice = extract_invoice(response.headers)
        if not invoice:
            raise InternalError(
                "402 response did not include an invoice. "
                "Expected x-lightning-invoice or WWW-Authenticate: L402 header."
            )

        invoice_sats = decode_invoice_amount_sats(invoice)
        if invoice_sats is not None:
            if invoice_sats > max_sats:
                raise PerPaymentLimitExceededError(max_sats, invoice_sats)
            self._domains.check(host, invoice_sats)

        result = await self._executor.payout(
            PayoutRequest(
                destination={"type": "bolt11", "invoice": invoice},
                amount=invoice_sats if invoice_sats is not None else max_sats,
                idempotency_key=_idempotency_key_for(invoice),
            )
        )
        if not result.success:
            logger.warning("L402 payment for %s failed: %s", host, result.error_code)
            if result.error is None:
                raise InternalError("Payment failed: Unknown error")
            raise PayoutException.from_error(result.error, prefix="Payment failed: ")

        # A replay of an already-paid invoice spent nothing new.
        if result.amount_sats and not result.cached:
            self._domains.record(host, result.amount_sats)
        logger.info("Paid %s sats for %s %s; retrying.", result.amount_sats, method, url)

        headers = httpx.Headers(kwargs.pop("headers", None))
        preimage = result.payment_id or ""
        headers[PREIMAGE_HEADER] = preimage
        payment_hash = response.headers.get(PAYMENT_HASH_HEADER)
        if payment_hash:
            headers[PAYMENT_HASH_HEADER] = payment_hash
        token = response.headers.get(TOKEN_HEADER) or parse_challenge(
            response.headers.get("www-authenticate")
        ).get("token")
        if token:
            headers[TOKEN_HEADER] = token
            headers["Authorization"] = format_authorization(token, preimage)

        return await self._client.request(method, url, headers=headers, **kwargs)

    async def get(self, url: str, *, max_sats: int, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, max_sats=max_sats, **kwargs)

    async def post(self, url: str, *, max_sats: int, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, max_sats=max_sats, **kwargs)

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> PaidFetchClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
