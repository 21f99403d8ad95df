"""Payout configuration: plain frozen dataclasses, no pydantic.

The host application may construct :class:`PayoutConfig` directly or call
:meth:`PayoutConfig.from_env`. Local limits are a best-effort guard; the
authorization service remains the source of truth for spend ceilings.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from lightning_payouts.constants import (
    DEFAULT_MAX_DAILY_SATS,
    DEFAULT_MAX_HOURLY_SATS,
    DEFAULT_MAX_SINGLE_PAYMENT_SATS,
    DEFAULT_RATE_LIMIT,
    DEFAULT_RATE_LIMIT_WINDOW_MS,
    HARDCODED_MAX_DAILY_SATS,
    HARDCODED_MAX_SINGLE_PAYMENT_SATS,
    MAINNET_BASE_URL,
    SIGNET_BASE_URL,
)
from lightning_payouts.errors import SecretExposedError

logger = logging.getLogger(__name__)

SECRET_ENV = "MDK_PAYOUT_SECRET"

# Prefixes that front-end bundlers inline into client code.
_PUBLIC_ENV_PREFIXES = ("NEXT_PUBLIC_", "VITE_", "PUBLIC_", "REACT_APP_")


@dataclass(frozen=True)
class PayoutLimits:
    max_single_payment: int = DEFAULT_MAX_SINGLE_PAYMENT_SATS
    max_hourly: int = DEFAULT_MAX_HOURLY_SATS
    max_daily: int = DEFAULT_MAX_DAILY_SATS
    rate_limit: int = DEFAULT_RATE_LIMIT
    rate_limit_window_ms: int = DEFAULT_RATE_LIMIT_WINDOW_MS

    def clamped(self) -> PayoutLimits:
        """Return a copy with the single-payment and daily ceilings enforced."""
        return PayoutLimits(
            max_single_payment=min(self.max_single_payment, HARDCODED_MAX_SINGLE_PAYMENT_SATS),
            max_hourly=min(self.max_hourly, HARDCODED_MAX_DAILY_SATS),
            max_daily=min(self.max_daily, HARDCODED_MAX_DAILY_SATS),
            rate_limit=self.rate_limit,
            rate_limit_window_ms=self.rate_limit_window_ms,
        )


@dataclass(frozen=True)
class PayoutConfig:
    secret: str | None = None
    allowed_destinations: tuple[str, ...] | None = None
    network: str = "mainnet"
    api_base_url: str | None = None
    limits: PayoutLimits = field(default_factory=PayoutLimits)
    check_balance: bool = False

    @property
    def base_url(self) -> str:
        """Authorization service RPC root for the configured network."""
        if self.api_base_url:
            return self.api_base_url
        return SIGNET_BASE_URL if self.network == "signet" else MAINNET_BASE_URL

    @property
    def payout_api_url(self) -> str:
        """Root of the ``/payout`` endpoints (``/rpc`` suffix swapped out)."""
        base = self.base_url.rstrip("/")
        if base.endswith("/rpc"):
            base = base[: -len("/rpc")]
        return f"{base}/payout"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PayoutConfig:
        """Build a config from ``MDK_*`` environment variables.

        Raises SecretExposedError if the payout secret is also present under a
        prefix that client bundlers publish to browsers.
        """
        env = os.environ if environ is None else environ

        for prefix in _PUBLIC_ENV_PREFIXES:
            if env.get(prefix + SECRET_ENV):
                raise SecretExposedError(
                    f"{prefix}{SECRET_ENV} is set. The payout secret must never use a "
                    "public env prefix; rotate it and use MDK_PAYOUT_SECRET only."
                )

        return cls(
            secret=env.get(SECRET_ENV) or None,
            allowed_destinations=parse_allowlist(env.get("MDK_PAYOUT_ALLOWED_DESTINATIONS")),
            network=env.get("MDK_NETWORK") or "mainnet",
            api_base_url=env.get("MDK_API_BASE_URL") or None,
            limits=PayoutLimits(
                max_single_payment=_env_int(
                    env, "MDK_PAYOUT_MAX_SINGLE_PAYMENT", DEFAULT_MAX_SINGLE_PAYMENT_SATS
                ),
                max_hourly=_env_int(env, "MDK_PAYOUT_MAX_HOURLY", DEFAULT_MAX_HOURLY_SATS),
                max_daily=_env_int(env, "MDK_PAYOUT_MAX_DAILY", DEFAULT_MAX_DAILY_SATS),
                rate_limit=_env_int(env, "MDK_PAYOUT_RATE_LIMIT", DEFAULT_RATE_LIMIT),
                rate_limit_window_ms=_env_int(
                    env, "MDK_PAYOUT_RATE_LIMIT_WINDOW_MS", DEFAULT_RATE_LIMIT_WINDOW_MS
                ),
            ).clamped(),
            check_balance=env.get("MDK_PAYOUT_CHECK_BALANCE", "").lower() in ("1", "true", "yes"),
        )


def parse_allowlist(raw: str | None) -> tuple[str, ...] | None:
    """Split a comma-separated allowlist, dropping blanks. None when unset."""
    if not raw:
        return None
    entries = tuple(d.strip() for d in raw.split(",") if d.strip())
    return entries or None


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d.", key, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%d; using %d.", key, value, default)
        return default
    return value
