"""L402 challenge helpers: headers, invoice amounts, proof verification.

The BOLT11 amount decoder only reads the human-readable part and is an
approximation; it is not a BOLT11 parser and does not check signatures.
"""

from __future__ import annotations

import hashlib
import hmac
import math
import re
import time
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import jwt

from lightning_payouts.constants import INVOICE_HEADER, SATS_PER_BTC

# Longest first: lnbcrt before lnbc, lntbs before lntb.
_BOLT11_HRP_PREFIXES = ("lnbcrt", "lntbs", "lnbc", "lntb", "lnbs")

# Sats per unit for each BOLT11 amount multiplier.
_MULTIPLIER_SATS: dict[str, Decimal] = {
    "": Decimal(SATS_PER_BTC),
    "m": Decimal(100_000),
    "u": Decimal(100),
    "n": Decimal("0.1"),
    "p": Decimal("0.0001"),
}

_AMOUNT_RE = re.compile(r"(\d+)([munp]?)")
_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')

_TOKEN_KEY_TAG = b"l402-payment-token-v1"
_TOKEN_ALGORITHM = "HS256"


class PaymentTokenError(Exception):
    """Raised when a payment token fails validation."""


class PaymentTokenExpired(PaymentTokenError):
    """Raised when a payment token is well-formed but past its expiry."""


# ---------------------------------------------------------------------------
# Challenge parsing / formatting
# ---------------------------------------------------------------------------


def parse_challenge(header: str | None) -> dict[str, str]:
    """Parse ``L402 key="value", ...`` into a dict. Empty for other schemes."""
    if not header:
        return {}
    scheme, _, params = header.strip().partition(" ")
    if scheme.upper() not in ("L402", "LSAT"):
        return {}
    return dict(_CHALLENGE_PARAM_RE.findall(params))


def format_challenge(invoice: str, token: str | None = None) -> str:
    if token:
        return f'L402 token="{token}", invoice="{invoice}"'
    return f'L402 invoice="{invoice}"'


def extract_invoice(headers: Mapping[str, str]) -> str | None:
    """Find the invoice in a 402 response's headers.

    Prefers the dedicated invoice header, then the ``WWW-Authenticate``
    L402 challenge.
    """
    invoice = headers.get(INVOICE_HEADER)
    if invoice:
        return invoice
    return parse_challenge(headers.get("www-authenticate")).get("invoice") or None


def format_authorization(token: str, preimage: str) -> str:
    return f"L402 {token}:{preimage}"


def parse_authorization(header: str | None) -> tuple[str, str] | None:
    """Split ``L402 <token>:<preimage>`` into its parts, or None."""
    if not header:
        return None
    scheme, _, credentials = header.strip().partition(" ")
    if scheme.upper() != "L402":
        return None
    token, sep, preimage = credentials.strip().rpartition(":")
    if not sep or not token or not preimage:
        return None
    return token, preimage


# ---------------------------------------------------------------------------
# BOLT11 amount
# ---------------------------------------------------------------------------


def decode_invoice_amount_sats(invoice: str) -> int | None:
    """Approximate sat amount from a BOLT11 human-readable part.

    Returns None for amountless or unrecognized invoices. Fractional sats
    round up so the estimate never understates what will be spent.
    """
    lowered = invoice.strip().lower()
    separator = lowered.rfind("1")
    if separator <= 0:
        return None
    hrp = lowered[:separator]

    for prefix in _BOLT11_HRP_PREFIXES:
        if hrp.startswith(prefix):
            amount_part = hrp[len(prefix):]
            break
    else:
        return None

    match = _AMOUNT_RE.fullmatch(amount_part)
    if match is None:
        return None
    digits, multiplier = match.groups()
    return math.ceil(Decimal(digits) * _MULTIPLIER_SATS[multiplier])


# ---------------------------------------------------------------------------
# Proof of payment
# ---------------------------------------------------------------------------


def verify_preimage(preimage: str, payment_hash: str) -> bool:
    """True if ``sha256(preimage_bytes)`` equals the hex ``payment_hash``."""
    try:
        digest = hashlib.sha256(bytes.fromhex(preimage)).hexdigest()
    except ValueError:
        return False
    return hmac.compare_digest(digest, payment_hash.strip().lower())


def _derive_token_key(secret: str) -> bytes:
    return hmac.new(secret.encode(), _TOKEN_KEY_TAG, hashlib.sha256).digest()


def issue_payment_token(
    secret: str,
    *,
    payment_hash: str,
    amount_sats: int,
    resource: str,
    ttl_secs: int,
    now: float | None = None,
) -> str:
    """Sign a short-lived token binding a payment hash to one resource."""
    issued_at = int(now if now is not None else time.time())
    claims = {
        "payment_hash": payment_hash,
        "amount_sats": amount_sats,
        "resource": resource,
        "iat": issued_at,
        "exp": issued_at + ttl_secs,
    }
    return jwt.encode(claims, _derive_token_key(secret), algorithm=_TOKEN_ALGORITHM)


def verify_payment_token(token: str, secret: str) -> dict[str, Any]:
    """Verify a token from :func:`issue_payment_token` and return its claims.

    Raises:
        PaymentTokenExpired: The token is past its ``exp``.
        PaymentTokenError: Bad signature, malformed token or missing claims.
    """
    try:
        claims = jwt.decode(
            token,
            _derive_token_key(secret),
            algorithms=[_TOKEN_ALGORITHM],
            options={"require": ["exp", "payment_hash", "resource"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise PaymentTokenExpired("Payment token has expired.") from e
    except jwt.InvalidSignatureError as e:
        raise PaymentTokenError("Payment token signature is invalid.") from e
    except jwt.InvalidTokenError as e:
        raise PaymentTokenError(f"Invalid payment token: {e}") from e
    return claims
