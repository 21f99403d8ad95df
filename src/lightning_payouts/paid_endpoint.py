"""Starlette endpoints that charge a Lightning payment per call.

Flow:

1. A request without payment proof gets ``402`` plus a fresh invoice.
2. The client pays and retries with ``x-lightning-preimage`` and
   ``x-lightning-payment-hash``.
3. ``sha256(preimage) == payment_hash`` is checked, and, when a token
   secret is configured, the signed token issued with the invoice too.
4. The handler runs with a :class:`PaymentContext`.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, Union

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from lightning_payouts.browser_guard import assert_not_browser_request
from lightning_payouts.constants import (
    DEFAULT_TOKEN_TTL_SECS,
    INVOICE_HEADER,
    PAYMENT_HASH_HEADER,
    PREIMAGE_HEADER,
    TOKEN_HEADER,
)
from lightning_payouts.errors import BrowserNotAllowedError
from lightning_payouts.l402 import (
    PaymentTokenError,
    PaymentTokenExpired,
    format_challenge,
    issue_payment_token,
    parse_authorization,
    verify_payment_token,
    verify_preimage,
)
from lightning_payouts.node import LightningNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentContext:
    amount_sats: int
    preimage: str
    payment_hash: str


PaidHandler = Callable[[Request, PaymentContext], Union[Any, Awaitable[Any]]]
Endpoint = Callable[[Request], Awaitable[Response]]


def _resource(request: Request) -> str:
    return f"{request.method}:{request.url.path}"


def create_paid_endpoint(
    price_sats: int,
    handler: PaidHandler,
    node: LightningNode,
    *,
    token_secret: str | None = None,
    token_ttl_secs: int = DEFAULT_TOKEN_TTL_SECS,
    reject_browsers: bool = False,
    allowed_origins: Iterable[str] | None = None,
) -> Endpoint:
    """Wrap ``handler`` so each call must be paid ``price_sats``.

    The returned coroutine function can be mounted as a Starlette (or
    FastAPI) route endpoint. Non-Response handler results are returned as
    JSON with status 200; handler exceptions become a 500 JSON error.
    """
    if isinstance(price_sats, bool) or not isinstance(price_sats, int) or price_sats <= 0:
        raise ValueError("price_sats must be a positive integer")

    origins = tuple(allowed_origins or ())

    async def endpoint(request: Request) -> Response:
        if reject_browsers:
            try:
                assert_not_browser_request(request.headers, origins)
            except BrowserNotAllowedError as e:
                return JSONResponse({"error": e.message, "code": e.code.value}, status_code=403)

        preimage = request.headers.get(PREIMAGE_HEADER)
        payment_hash = request.headers.get(PAYMENT_HASH_HEADER)
        if not preimage or not payment_hash:
            return await _payment_required(request)

        if not verify_preimage(preimage, payment_hash):
            return JSONResponse({"error": "Invalid payment preimage"}, status_code=401)

        if token_secret:
            token = request.headers.get(TOKEN_HEADER)
            if not token:
                parsed = parse_authorization(request.headers.get("authorization"))
                token = parsed[0] if parsed else None
            if not token:
                return JSONResponse({"error": "Missing payment token"}, status_code=401)
            try:
                claims = verify_payment_token(token, token_secret)
            except PaymentTokenExpired:
                return await _payment_required(request)
            except PaymentTokenError as e:
                return JSONResponse({"error": str(e)}, status_code=401)
            if claims["payment_hash"] != payment_hash.lower():
                return JSONResponse({"error": "Token was not issued for this payment"}, status_code=401)
            if claims["resource"] != _resource(request):
                return JSONResponse({"error": "Token was not issued for this resource"}, status_code=403)

        context = PaymentContext(
            amount_sats=price_sats, preimage=preimage, payment_hash=payment_hash
        )
        try:
            result = handler(request, context)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, Response):
                return result
            return JSONResponse(result)
        except Exception as e:
            logger.warning("Paid handler for %s failed: %s", _resource(request), e)
            return JSONResponse({"error": str(e) or "Handler error"}, status_code=500)

    async def _payment_required(request: Request) -> Response:
        try:
            invoice = await node.create_invoice(price_sats)
        except Exception:
            logger.warning("Invoice creation failed for %s", _resource(request), exc_info=True)
            return JSONResponse({"error": "Failed to create invoice"}, status_code=500)

        headers = {
            INVOICE_HEADER: invoice.invoice,
            PAYMENT_HASH_HEADER: invoice.payment_hash,
        }
        token = None
        if token_secret:
            token = issue_payment_token(
                token_secret,
                payment_hash=invoice.payment_hash.lower(),
                amount_sats=price_sats,
                resource=_resource(request),
                ttl_secs=token_ttl_secs,
            )
            headers[TOKEN_HEADER] = token
        headers["WWW-Authenticate"] = format_challenge(invoice.invoice, token)

        logger.info("Issued %d sat invoice for %s", price_sats, _resource(request))
        return JSONResponse(
            {
                "message": "Payment required",
                "price_sats": price_sats,
                "invoice": invoice.invoice,
                "payment_hash": invoice.payment_hash,
                "expires_at": invoice.expires_at.isoformat(),
            },
            status_code=402,
            headers=headers,
        )

    return endpoint
