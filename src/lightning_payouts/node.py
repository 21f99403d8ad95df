"""Lightning node capability consumed by the payout engine.

Defines the LightningNode Protocol the executor and paid endpoints depend
on. Concrete node bindings live with the host application.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class InvoiceData:
    invoice: str
    payment_hash: str
    expires_at: datetime


@runtime_checkable
class LightningNode(Protocol):
    """Async Lightning node surface.

    Any object implementing these methods can back a PayoutExecutor or a
    paid endpoint. Amounts passed to ``pay_*`` are millisatoshis.
    """

    async def create_invoice(self, amount_sats: int | None) -> InvoiceData: ...

    async def pay_bolt11(self, invoice: str) -> str:
        """Pay a BOLT11 invoice and return the payment preimage as hex.

        The preimage is sent back as proof of payment by PaidFetchClient and
        checked against the payment hash by paid endpoints.
        """
        ...

    async def pay_bolt12_offer(self, offer: str, amount_msat: int) -> str: ...

    async def pay_lnurl(self, url: str, amount_msat: int) -> None: ...

    async def get_balance(self) -> int: ...
