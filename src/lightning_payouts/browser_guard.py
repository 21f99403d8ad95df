"""Reject requests that look browser-originated.

Payout and paid-endpoint traffic is expected server-to-server; browsers
attach ``Sec-Fetch-*`` and ``Origin`` headers that other clients do not.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from lightning_payouts.errors import BrowserNotAllowedError


def assert_not_browser_request(
    headers: Mapping[str, str], allowed_origins: Iterable[str] | None = None,
) -> None:
    """Raise BrowserNotAllowedError for browser-style request headers.

    ``headers`` should be case-insensitive (httpx/Starlette headers are).
    An ``Origin`` header is accepted only when listed in ``allowed_origins``.
    """
    if headers.get("sec-fetch-mode") in ("cors", "navigate"):
        raise BrowserNotAllowedError()

    if headers.get("sec-fetch-site") in ("cross-site", "same-site"):
        raise BrowserNotAllowedError()

    origin = headers.get("origin")
    if origin and origin not in set(allowed_origins or ()):
        raise BrowserNotAllowedError()
