"""Constants for Lightning payout enforcement and L402 gating."""

from enum import Enum


SATS_PER_BTC = 100_000_000
MSAT_PER_SAT = 1_000

# Absolute ceilings; env overrides are clamped to these.
HARDCODED_MAX_SINGLE_PAYMENT_SATS = 100_000
HARDCODED_MAX_DAILY_SATS = 1_000_000

DEFAULT_MAX_SINGLE_PAYMENT_SATS = 10_000
DEFAULT_MAX_HOURLY_SATS = 50_000
DEFAULT_MAX_DAILY_SATS = 100_000
DEFAULT_RATE_LIMIT = 10  # payments per window
DEFAULT_RATE_LIMIT_WINDOW_MS = 60_000

ONE_HOUR_MS = 60 * 60 * 1000
ONE_DAY_MS = 24 * ONE_HOUR_MS

IDEMPOTENCY_TTL_MS = ONE_DAY_MS
IN_PROGRESS_POLL_SECS = 0.1
CALLBACK_TIMEOUT_MS = 5_000

# Placeholder fiat pricing until a real exchange-rate source is wired in.
PLACEHOLDER_BTC_PRICE_USD = 100_000
PLACEHOLDER_USD_EUR_RATE = 0.92

DOMAIN_HOURLY_LIMIT_SATS = 10_000  # per hostname, paid fetch only

INVOICE_HEADER = "x-lightning-invoice"
PAYMENT_HASH_HEADER = "x-lightning-payment-hash"
PREIMAGE_HEADER = "x-lightning-preimage"
TOKEN_HEADER = "x-lightning-token"
PAYOUT_SECRET_HEADER = "x-payout-secret"

DEFAULT_TOKEN_TTL_SECS = 900

MAINNET_BASE_URL = "https://moneydevkit.com/rpc"
SIGNET_BASE_URL = "https://staging.moneydevkit.com/rpc"


class PayoutCurrency(str, Enum):
    """Currencies a payout amount may be expressed in."""

    SATS = "sats"
    BTC = "btc"
    USD = "usd"
    EUR = "eur"
