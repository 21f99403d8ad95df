"""Tests for the payout authorization HTTP client."""

import json

import httpx
import pytest

from lightning_payouts.auth_client import (
    AuthorizationClient,
    AuthorizeResponse,
    ServerLimitStatus,
)
from lightning_payouts.config import PayoutConfig
from lightning_payouts.errors import InternalError, InvalidSecretError, PayoutErrorCode

SECRET = "mdk_test_secret_value"


def _client(handler, **config_overrides) -> AuthorizationClient:
    config = PayoutConfig(secret=SECRET, **config_overrides)
    return AuthorizationClient(config, transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------------


class TestAuthorize:
    @pytest.mark.asyncio
    async def test_posts_to_payout_authorize_with_secret_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"authorized": True, "authorizationId": "auth_1"}
            )

        async with _client(handler) as client:
            resp = await client.authorize(500, "key-1", "winner@wallet.com")

        assert resp.authorized is True
        assert resp.authorization_id == "auth_1"
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://moneydevkit.com/payout/authorize"
        assert request.headers["x-payout-secret"] == SECRET
        assert json.loads(request.content) == {
            "amountSats": 500,
            "idempotencyKey": "key-1",
            "destination": "winner@wallet.com",
        }

    @pytest.mark.asyncio
    async def test_signet_base_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"authorized": True, "authorizationId": "a"})

        async with _client(handler, network="signet") as client:
            await client.authorize(1, "k")

        assert str(seen[0].url) == "https://staging.moneydevkit.com/payout/authorize"
        assert "destination" not in json.loads(seen[0].content)

    @pytest.mark.asyncio
    async def test_denial_is_returned_not_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "authorized": False,
                    "errorCode": "HOURLY_LIMIT_EXCEEDED",
                    "errorMessage": "Too much",
                    "retryAfterMs": 1234,
                    "limits": {"hourlyLimit": 50000, "hourlyUsed": 49000},
                },
            )

        async with _client(handler) as client:
            resp = await client.authorize(5000, "k")

        assert resp == AuthorizeResponse(
            authorized=False,
            error_code="HOURLY_LIMIT_EXCEEDED",
            error_message="Too much",
            retry_after_ms=1234,
            limits={"hourlyLimit": 50000, "hourlyUsed": 49000},
        )


class TestCompleteAndLimits:
    @pytest.mark.asyncio
    async def test_complete_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        async with _client(handler) as client:
            await client.complete("auth_1", True, payment_id="pay_1")
            await client.complete("auth_2", False, error_message="no route")

        assert seen[0].url.path == "/payout/complete"
        assert json.loads(seen[0].content) == {
            "authorizationId": "auth_1", "success": True, "paymentId": "pay_1",
        }
        assert json.loads(seen[1].content) == {
            "authorizationId": "auth_2", "success": False, "errorMessage": "no route",
        }

    @pytest.mark.asyncio
    async def test_limits(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/payout/limits"
            return httpx.Response(
                200,
                json={
                    "limits": {
                        "maxSinglePayment": 10000,
                        "maxHourly": 50000,
                        "maxDaily": 100000,
                        "rateLimit": 10,
                        "rateLimitWindow": 60000,
                    },
                    "usage": {"hourlyUsed": 1200, "dailyUsed": 3400},
                },
            )

        async with _client(handler) as client:
            status = await client.limits()

        assert isinstance(status, ServerLimitStatus)
        assert status.max_hourly == 50000
        assert status.rate_limit_window_ms == 60000
        assert status.hourly_used == 1200
        assert status.daily_used == 3400


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.asyncio
    async def test_missing_secret(self) -> None:
        client = AuthorizationClient(PayoutConfig(secret=None))
        with pytest.raises(InvalidSecretError, match="MDK_PAYOUT_SECRET"):
            await client.authorize(1, "k")

    @pytest.mark.asyncio
    async def test_401_is_invalid_secret(self) -> None:
        async with _client(lambda r: httpx.Response(401, text="nope")) as client:
            with pytest.raises(InvalidSecretError) as exc_info:
                await client.authorize(1, "k")
        assert exc_info.value.code is PayoutErrorCode.INVALID_SECRET

    @pytest.mark.asyncio
    async def test_500_is_internal(self) -> None:
        async with _client(lambda r: httpx.Response(500, text="boom")) as client:
            with pytest.raises(InternalError, match="500 boom") as exc_info:
                await client.authorize(1, "k")
        assert exc_info.value.code is PayoutErrorCode.INTERNAL_ERROR

    @pytest.mark.asyncio
    async def test_bad_json_is_internal(self) -> None:
        async with _client(lambda r: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(InternalError, match="invalid JSON"):
                await client.authorize(1, "k")

    @pytest.mark.asyncio
    async def test_network_error_is_internal(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(InternalError, match="unreachable"):
                await client.complete("auth", True)

    @pytest.mark.asyncio
    async def test_timeout_is_internal(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler) as client:
            with pytest.raises(InternalError, match="timed out"):
                await client.limits()
