"""Lightning payouts: authorized, idempotent, spending-limited payments.

Server-side Lightning payouts plus both halves of the L402 pay-per-call
protocol.
"""

__version__ = "0.1.0"

from lightning_payouts.auth_client import AuthorizationClient, AuthorizeResponse, ServerLimitStatus
from lightning_payouts.balance import Balance, get_balance, has_enough_balance
from lightning_payouts.browser_guard import assert_not_browser_request
from lightning_payouts.config import PayoutConfig, PayoutLimits
from lightning_payouts.constants import PayoutCurrency
from lightning_payouts.destination import (
    Destination,
    DestinationType,
    parse_destination,
    validate_destination_allowlist,
)
from lightning_payouts.errors import (
    AbortedByCallbackError,
    BrowserNotAllowedError,
    CallbackTimeoutError,
    DailyLimitExceededError,
    DestinationNotAllowedError,
    HourlyLimitExceededError,
    InsufficientBalanceError,
    InternalError,
    InvalidAmountError,
    InvalidDestinationError,
    InvalidSecretError,
    InvoiceAmountMismatchError,
    PaymentFailedError,
    PayoutError,
    PayoutErrorCode,
    PayoutException,
    PerPaymentLimitExceededError,
    RateLimitExceededError,
    SecretExposedError,
)
from lightning_payouts.idempotency import IdempotencyStore
from lightning_payouts.limits import LimitGuard
from lightning_payouts.models import PayoutPreview, PayoutRequest, PayoutResult
from lightning_payouts.node import InvoiceData, LightningNode
from lightning_payouts.paid_endpoint import PaymentContext, create_paid_endpoint
from lightning_payouts.paid_fetch import PaidFetchClient
from lightning_payouts.payout import PayoutExecutor, convert_to_sats
from lightning_payouts.rate_limiter import RateLimiter

__all__ = [
    "AuthorizationClient",
    "AuthorizeResponse",
    "ServerLimitStatus",
    "Balance",
    "get_balance",
    "has_enough_balance",
    "assert_not_browser_request",
    "PayoutConfig",
    "PayoutLimits",
    "PayoutCurrency",
    "Destination",
    "DestinationType",
    "parse_destination",
    "validate_destination_allowlist",
    "PayoutError",
    "PayoutErrorCode",
    "PayoutException",
    "AbortedByCallbackError",
    "BrowserNotAllowedError",
    "CallbackTimeoutError",
    "DailyLimitExceededError",
    "DestinationNotAllowedError",
    "HourlyLimitExceededError",
    "InsufficientBalanceError",
    "InternalError",
    "InvalidAmountError",
    "InvalidDestinationError",
    "InvalidSecretError",
    "InvoiceAmountMismatchError",
    "PaymentFailedError",
    "PerPaymentLimitExceededError",
    "RateLimitExceededError",
    "SecretExposedError",
    "IdempotencyStore",
    "LimitGuard",
    "RateLimiter",
    "PayoutPreview",
    "PayoutRequest",
    "PayoutResult",
    "InvoiceData",
    "LightningNode",
    "PaymentContext",
    "create_paid_endpoint",
    "PaidFetchClient",
    "PayoutExecutor",
    "convert_to_sats",
]
