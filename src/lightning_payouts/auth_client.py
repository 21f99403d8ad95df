"""Async HTTP client for the remote payout authorization service.

The service validates the payout secret and reserves spend atomically on its
side; it is the source of truth for limits. Payment execution stays local.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from lightning_payouts.config import PayoutConfig
from lightning_payouts.constants import PAYOUT_SECRET_HEADER
from lightning_payouts.errors import InternalError, InvalidSecretError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthorizeResponse:
    authorized: bool
    authorization_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    retry_after_ms: int | None = None
    limits: dict[str, int] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthorizeResponse:
        retry = data.get("retryAfterMs")
        limits = data.get("limits")
        return cls(
            authorized=bool(data.get("authorized", False)),
            authorization_id=data.get("authorizationId"),
            error_code=data.get("errorCode"),
            error_message=data.get("errorMessage"),
            retry_after_ms=int(retry) if retry is not None else None,
            limits=dict(limits) if isinstance(limits, dict) else None,
        )


@dataclass(frozen=True)
class ServerLimitStatus:
    max_single_payment: int
    max_hourly: int
    max_daily: int
    rate_limit: int
    rate_limit_window_ms: int
    hourly_used: int
    daily_used: int
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerLimitStatus:
        limits = data.get("limits") or {}
        usage = data.get("usage") or {}
        return cls(
            max_single_payment=int(limits.get("maxSinglePayment", 0)),
            max_hourly=int(limits.get("maxHourly", 0)),
            max_daily=int(limits.get("maxDaily", 0)),
            rate_limit=int(limits.get("rateLimit", 0)),
            rate_limit_window_ms=int(limits.get("rateLimitWindow", 0)),
            hourly_used=int(usage.get("hourlyUsed", 0)),
            daily_used=int(usage.get("dailyUsed", 0)),
            raw=data,
        )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AuthorizationClient:
    """Client for ``{base}/payout/authorize|complete|limits``.

    The secret and base URL are resolved on first use and the underlying
    ``httpx.AsyncClient`` is kept for the life of this instance. The secret
    travels in the ``x-payout-secret`` header.
    """

    def __init__(
        self,
        config: PayoutConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            if not self._config.secret:
                raise InvalidSecretError("MDK_PAYOUT_SECRET environment variable is required.")
            self._client = httpx.AsyncClient(
                base_url=self._config.payout_api_url,
                headers={PAYOUT_SECRET_HEADER: self._config.secret},
                timeout=httpx.Timeout(connect=5.0, read=15.0, write=10.0, pool=5.0),
                transport=self._transport,
            )
        return self._client

    # -- internal request dispatcher -----------------------------------------

    async def _post(self, endpoint: str, body: dict[str, Any]) -> Any:
        """POST JSON and map failures onto payout exceptions."""
        client = self._get_client()
        try:
            response = await client.post(endpoint, json=body)
        except httpx.TimeoutException as exc:
            raise InternalError(f"Payout API timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise InternalError(f"Payout API unreachable: {exc}") from exc

        if response.status_code == 401:
            raise InvalidSecretError("Invalid MDK_PAYOUT_SECRET")
        if not response.is_success:
            raise InternalError(f"Payout API error: {response.status_code} {response.text}")

        try:
            return response.json()
        except ValueError as exc:
            raise InternalError(f"Payout API returned invalid JSON: {response.text}") from exc

    # -- public API methods ---------------------------------------------------

    async def authorize(
        self, amount_sats: int, idempotency_key: str, destination: str | None = None,
    ) -> AuthorizeResponse:
        """POST /authorize: validate the secret and reserve spend server-side."""
        body: dict[str, Any] = {"amountSats": amount_sats, "idempotencyKey": idempotency_key}
        if destination is not None:
            body["destination"] = destination
        data = await self._post("/authorize", body)
        return AuthorizeResponse.from_dict(data if isinstance(data, dict) else {})

    async def complete(
        self,
        authorization_id: str,
        success: bool,
        payment_id: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """POST /complete: report the outcome of an authorized payout."""
        body: dict[str, Any] = {"authorizationId": authorization_id, "success": success}
        if payment_id is not None:
            body["paymentId"] = payment_id
        if error_message is not None:
            body["errorMessage"] = error_message
        await self._post("/complete", body)

    async def limits(self) -> ServerLimitStatus:
        """POST /limits: current server-side ceilings and usage."""
        data = await self._post("/limits", {})
        return ServerLimitStatus.from_dict(data if isinstance(data, dict) else {})

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client, if one was opened."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> AuthorizationClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
