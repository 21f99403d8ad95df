"""Destination parsing and allowlist validation.

Accepts either a raw string (auto-detected) or a tagged mapping such as
``{"type": "bolt11", "invoice": "lnbc..."}``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from lightning_payouts.errors import DestinationNotAllowedError, InvalidDestinationError


class DestinationType(str, Enum):
    BOLT11 = "bolt11"
    BOLT12 = "bolt12"
    LNURL = "lnurl"
    LIGHTNING_ADDRESS = "lightning_address"


# Field carrying the address inside a tagged destination.
_TAGGED_FIELDS: dict[DestinationType, tuple[str, str]] = {
    DestinationType.BOLT11: ("invoice", "BOLT11 invoice"),
    DestinationType.BOLT12: ("offer", "BOLT12 offer"),
    DestinationType.LNURL: ("url", "LNURL"),
    DestinationType.LIGHTNING_ADDRESS: ("address", "Lightning address"),
}

# lnbcrt is covered by lnbc, listed for clarity.
_BOLT11_PREFIXES = ("lnbcrt", "lnbc", "lntb", "lnbs")

RawDestination = Union[str, Mapping[str, Any]]


@dataclass(frozen=True)
class Destination:
    type: DestinationType
    address: str


def detect_destination_type(value: str) -> DestinationType | None:
    """Guess the destination type of a trimmed string, or None."""
    lowered = value.lower()

    if lowered.startswith("lno1"):
        return DestinationType.BOLT12
    if lowered.startswith("lnurl1"):
        return DestinationType.LNURL
    if lowered.startswith(_BOLT11_PREFIXES):
        return DestinationType.BOLT11

    if "@" in value and not value.startswith("@") and not value.endswith("@"):
        parts = value.split("@")
        if len(parts) == 2 and parts[0] and "." in parts[1]:
            return DestinationType.LIGHTNING_ADDRESS

    return None


def parse_destination(destination: RawDestination) -> Destination:
    """Resolve a raw destination into a typed :class:`Destination`.

    Raises InvalidDestinationError on empty, unrecognized or malformed input.
    """
    if isinstance(destination, str):
        trimmed = destination.strip()
        if not trimmed:
            raise InvalidDestinationError("Destination cannot be empty")

        detected = detect_destination_type(trimmed)
        if detected is None:
            raise InvalidDestinationError(
                "Could not detect destination type. "
                "Supported formats: BOLT11 invoice, BOLT12 offer, LNURL, Lightning Address"
            )
        return Destination(type=detected, address=trimmed)

    if not isinstance(destination, Mapping):
        raise InvalidDestinationError(
            f"Unsupported destination value of type {type(destination).__name__}"
        )

    raw_type = destination.get("type")
    try:
        dest_type = DestinationType(raw_type)
    except ValueError:
        raise InvalidDestinationError(f"Unknown destination type: {raw_type}") from None

    field_name, label = _TAGGED_FIELDS[dest_type]
    value = destination.get(field_name)
    if not isinstance(value, str) or not value.strip():
        raise InvalidDestinationError(f"{label} cannot be empty")
    return Destination(type=dest_type, address=value.strip())


def extract_domain(address: str) -> str | None:
    """Return the domain of a ``user@domain`` address, or None."""
    if "@" not in address:
        return None
    parts = address.split("@")
    if len(parts) != 2:
        return None
    return parts[1]


def validate_destination_allowlist(
    destination: Destination, allowlist: Iterable[str] | None,
) -> None:
    """Check a parsed destination against an optional allowlist.

    No allowlist (or an empty one) allows everything. Lightning addresses
    additionally match ``*.domain`` wildcards and bare domain entries.
    LNURLs are bech32-encoded and only match exactly.

    Raises DestinationNotAllowedError when nothing matches.
    """
    allowed = list(allowlist or ())
    if not allowed:
        return

    address = destination.address
    if address in allowed:
        return

    lowered = address.lower()
    if any(a.lower() == lowered for a in allowed):
        return

    if destination.type is DestinationType.LIGHTNING_ADDRESS:
        domain = extract_domain(address)
        if domain:
            domain = domain.lower()
            for entry in allowed:
                entry = entry.lower()
                if entry.startswith("*."):
                    wildcard = entry[2:]
                    if domain == wildcard or domain.endswith("." + wildcard):
                        return
                elif entry == domain:
                    return

    raise DestinationNotAllowedError(address)
