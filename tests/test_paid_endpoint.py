"""Tests for paid Starlette endpoints."""

import hashlib
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from lightning_payouts.l402 import issue_payment_token
from lightning_payouts.node import InvoiceData
from lightning_payouts.paid_endpoint import PaymentContext, create_paid_endpoint

PREIMAGE = "00" * 32
PAYMENT_HASH = hashlib.sha256(bytes(32)).hexdigest()
INVOICE = "lnbc1u1pexample"
TOKEN_SECRET = "endpoint-token-secret-at-least-32-bytes-long"


def _mock_node() -> AsyncMock:
    node = AsyncMock()
    node.create_invoice = AsyncMock(
        return_value=InvoiceData(
            invoice=INVOICE,
            payment_hash=PAYMENT_HASH,
            expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )
    )
    return node


def _premium(request: Request, payment: PaymentContext) -> dict:
    return {"data": "premium", "paid": payment.amount_sats}


def _app(handler=_premium, node=None, methods=("GET",), **options) -> TestClient:
    endpoint = create_paid_endpoint(100, handler, node or _mock_node(), **options)
    app = Starlette(routes=[Route("/premium", endpoint, methods=list(methods))])
    return TestClient(app)


def _paid_headers(preimage: str = PREIMAGE, payment_hash: str = PAYMENT_HASH) -> dict[str, str]:
    return {"x-lightning-preimage": preimage, "x-lightning-payment-hash": payment_hash}


# ---------------------------------------------------------------------------
# Challenge
# ---------------------------------------------------------------------------


class TestPaymentRequired:
    def test_no_proof_returns_402_with_invoice(self) -> None:
        node = _mock_node()
        response = _app(node=node).get("/premium")

        assert response.status_code == 402
        body = response.json()
        assert body["message"] == "Payment required"
        assert body["price_sats"] == 100
        assert body["invoice"] == INVOICE
        assert body["payment_hash"] == PAYMENT_HASH
        assert body["expires_at"].startswith("2030-01-01")
        assert response.headers["x-lightning-invoice"] == INVOICE
        assert response.headers["x-lightning-payment-hash"] == PAYMENT_HASH
        assert response.headers["www-authenticate"] == f'L402 invoice="{INVOICE}"'
        node.create_invoice.assert_awaited_once_with(100)

    def test_partial_proof_returns_402(self) -> None:
        response = _app().get("/premium", headers={"x-lightning-preimage": PREIMAGE})
        assert response.status_code == 402

    def test_invoice_failure_returns_500(self) -> None:
        node = _mock_node()
        node.create_invoice.side_effect = RuntimeError("node offline")
        response = _app(node=node).get("/premium")
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to create invoice"}

    def test_price_must_be_positive(self) -> None:
        for price in (0, -1, 1.5, True):
            with pytest.raises(ValueError):
                create_paid_endpoint(price, _premium, _mock_node())


# ---------------------------------------------------------------------------
# Proof of payment
# ---------------------------------------------------------------------------


class TestPaidAccess:
    def test_valid_preimage_runs_handler(self) -> None:
        response = _app().get("/premium", headers=_paid_headers())
        assert response.status_code == 200
        assert response.json() == {"data": "premium", "paid": 100}

    def test_invalid_preimage_rejected(self) -> None:
        response = _app().get("/premium", headers=_paid_headers(preimage="11" * 32))
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid payment preimage"}

    def test_async_handler(self) -> None:
        async def handler(request: Request, payment: PaymentContext) -> dict:
            return {"hash": payment.payment_hash}

        response = _app(handler=handler).get("/premium", headers=_paid_headers())
        assert response.json() == {"hash": PAYMENT_HASH}

    def test_response_returned_unchanged(self) -> None:
        def handler(request: Request, payment: PaymentContext) -> PlainTextResponse:
            return PlainTextResponse("raw", status_code=201)

        response = _app(handler=handler).get("/premium", headers=_paid_headers())
        assert response.status_code == 201
        assert response.text == "raw"

    def test_handler_error_returns_500(self) -> None:
        def handler(request: Request, payment: PaymentContext) -> dict:
            raise RuntimeError("database down")

        response = _app(handler=handler).get("/premium", headers=_paid_headers())
        assert response.status_code == 500
        assert response.json() == {"error": "database down"}

    def test_unserializable_result_returns_json_500(self) -> None:
        def handler(request: Request, payment: PaymentContext) -> dict:
            return {"when": object()}

        response = _app(handler=handler).get("/premium", headers=_paid_headers())
        assert response.status_code == 500
        assert "error" in response.json()


# ---------------------------------------------------------------------------
# Signed tokens
# ---------------------------------------------------------------------------


class TestTokenMode:
    def _token(self, **overrides) -> str:
        values = dict(
            payment_hash=PAYMENT_HASH,
            amount_sats=100,
            resource="GET:/premium",
            ttl_secs=900,
        )
        values.update(overrides)
        return issue_payment_token(TOKEN_SECRET, **values)

    def test_challenge_carries_token(self) -> None:
        response = _app(token_secret=TOKEN_SECRET).get("/premium")
        assert response.status_code == 402
        token = response.headers["x-lightning-token"]
        assert response.headers["www-authenticate"] == (
            f'L402 token="{token}", invoice="{INVOICE}"'
        )

    def test_token_from_challenge_unlocks(self) -> None:
        client = _app(token_secret=TOKEN_SECRET)
        token = client.get("/premium").headers["x-lightning-token"]
        response = client.get(
            "/premium", headers={**_paid_headers(), "x-lightning-token": token}
        )
        assert response.status_code == 200

    def test_token_in_authorization_header(self) -> None:
        response = _app(token_secret=TOKEN_SECRET).get(
            "/premium",
            headers={**_paid_headers(), "Authorization": f"L402 {self._token()}:{PREIMAGE}"},
        )
        assert response.status_code == 200

    def test_missing_token(self) -> None:
        response = _app(token_secret=TOKEN_SECRET).get("/premium", headers=_paid_headers())
        assert response.status_code == 401
        assert response.json() == {"error": "Missing payment token"}

    def test_expired_token_gets_fresh_challenge(self) -> None:
        expired = self._token(now=1_000_000_000)
        response = _app(token_secret=TOKEN_SECRET).get(
            "/premium", headers={**_paid_headers(), "x-lightning-token": expired}
        )
        assert response.status_code == 402

    def test_forged_token(self) -> None:
        forged = issue_payment_token(
            "another-secret-entirely-at-least-32-bytes",
            payment_hash=PAYMENT_HASH, amount_sats=100, resource="GET:/premium", ttl_secs=900,
        )
        response = _app(token_secret=TOKEN_SECRET).get(
            "/premium", headers={**_paid_headers(), "x-lightning-token": forged}
        )
        assert response.status_code == 401

    def test_token_for_other_payment(self) -> None:
        response = _app(token_secret=TOKEN_SECRET).get(
            "/premium",
            headers={**_paid_headers(), "x-lightning-token": self._token(payment_hash="ff" * 32)},
        )
        assert response.status_code == 401

    def test_token_for_other_resource(self) -> None:
        response = _app(token_secret=TOKEN_SECRET).get(
            "/premium",
            headers={**_paid_headers(), "x-lightning-token": self._token(resource="GET:/other")},
        )
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# Browser rejection
# ---------------------------------------------------------------------------


class TestBrowserRejection:
    def test_browser_request_blocked(self) -> None:
        response = _app(reject_browsers=True).get(
            "/premium", headers={"sec-fetch-mode": "cors"}
        )
        assert response.status_code == 403
        assert response.json()["code"] == "BROWSER_NOT_ALLOWED"

    def test_server_request_allowed(self) -> None:
        response = _app(reject_browsers=True).get("/premium")
        assert response.status_code == 402

    def test_browser_allowed_when_not_enabled(self) -> None:
        response = _app().get("/premium", headers={"sec-fetch-mode": "cors"})
        assert response.status_code == 402
