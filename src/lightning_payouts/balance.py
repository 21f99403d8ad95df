"""Wallet balance lookups."""

from __future__ import annotations

from dataclasses import dataclass

from lightning_payouts.constants import (
    PLACEHOLDER_BTC_PRICE_USD,
    PLACEHOLDER_USD_EUR_RATE,
    SATS_PER_BTC,
)
from lightning_payouts.errors import InsufficientBalanceError, InternalError, PayoutException
from lightning_payouts.node import LightningNode


@dataclass(frozen=True)
class Balance:
    sats: int
    btc: float
    usd: float  # approximate, placeholder rate
    eur: float  # approximate, placeholder rate


async def get_balance(node: LightningNode) -> Balance:
    """Read the node balance and express it in each supported currency.

    Raises InternalError if the node cannot report a balance.
    """
    try:
        sats = int(await node.get_balance())
    except PayoutException:
        raise
    except Exception as exc:
        raise InternalError(f"Failed to get balance: {exc}") from exc

    btc = sats / SATS_PER_BTC
    usd = btc * PLACEHOLDER_BTC_PRICE_USD
    return Balance(sats=sats, btc=btc, usd=usd, eur=usd * PLACEHOLDER_USD_EUR_RATE)


async def has_enough_balance(node: LightningNode, amount_sats: int) -> bool:
    balance = await get_balance(node)
    return balance.sats >= amount_sats


async def ensure_sufficient_balance(node: LightningNode, amount_sats: int) -> None:
    """Raise InsufficientBalanceError unless the node can cover ``amount_sats``."""
    balance = await get_balance(node)
    if balance.sats < amount_sats:
        raise InsufficientBalanceError(balance.sats, amount_sats)
