"""Tests for destination parsing and allowlist validation."""

import pytest

from lightning_payouts.destination import (
    Destination,
    DestinationType,
    detect_destination_type,
    extract_domain,
    parse_destination,
    validate_destination_allowlist,
)
from lightning_payouts.errors import (
    DestinationNotAllowedError,
    InvalidDestinationError,
    PayoutErrorCode,
)


# ---------------------------------------------------------------------------
# String auto-detection
# ---------------------------------------------------------------------------


class TestParseStringDestination:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("lno1qgsqvgnwgcg35z6ee2h3yczraddm72xrfua9uve2rlrm9deu7xyfzr", DestinationType.BOLT12),
            ("lnurl1dp68gurn8ghj7um9wfmxjcm99e3k7mf0v9cxj0m385ekvcenxc6r2c35xvukxefcv5mkvv34x5ekzd3ev56nyd3hxqurzepexejxxepnxscrvwfnv9nxzcn9xq6xyefhvgcxxcmyxymnserxfq5fns", DestinationType.LNURL),
            ("lnbc100u1pexample", DestinationType.BOLT11),
            ("lntb20m1pexample", DestinationType.BOLT11),
            ("lnbs1pexample", DestinationType.BOLT11),
            ("lnbcrt500n1pexample", DestinationType.BOLT11),
            ("LNBC100U1PEXAMPLE", DestinationType.BOLT11),
            ("winner@wallet.com", DestinationType.LIGHTNING_ADDRESS),
        ],
    )
    def test_detects_type(self, raw: str, expected: DestinationType) -> None:
        parsed = parse_destination(raw)
        assert parsed.type is expected
        assert parsed.address == raw

    def test_trims_whitespace(self) -> None:
        parsed = parse_destination("  user@wallet.com \n")
        assert parsed == Destination(DestinationType.LIGHTNING_ADDRESS, "user@wallet.com")

    @pytest.mark.parametrize(
        "raw",
        ["", "   ", "hello", "@wallet.com", "user@", "user@localhost", "a@b@c.com", "bc1qxyz"],
    )
    def test_rejects_malformed(self, raw: str) -> None:
        with pytest.raises(InvalidDestinationError) as exc_info:
            parse_destination(raw)
        assert exc_info.value.code is PayoutErrorCode.INVALID_DESTINATION

    def test_detect_returns_none_for_unknown(self) -> None:
        assert detect_destination_type("not-a-destination") is None


# ---------------------------------------------------------------------------
# Tagged destinations
# ---------------------------------------------------------------------------


class TestParseTaggedDestination:
    @pytest.mark.parametrize(
        "tagged, expected_type, expected_address",
        [
            ({"type": "bolt11", "invoice": " lnbc1pexample "}, DestinationType.BOLT11, "lnbc1pexample"),
            ({"type": "bolt12", "offer": "lno1abc"}, DestinationType.BOLT12, "lno1abc"),
            ({"type": "lnurl", "url": "lnurl1xyz"}, DestinationType.LNURL, "lnurl1xyz"),
            ({"type": "lightning_address", "address": "me@pay.io"}, DestinationType.LIGHTNING_ADDRESS, "me@pay.io"),
        ],
    )
    def test_valid(self, tagged, expected_type, expected_address) -> None:
        parsed = parse_destination(tagged)
        assert parsed.type is expected_type
        assert parsed.address == expected_address

    def test_empty_field_rejected(self) -> None:
        with pytest.raises(InvalidDestinationError, match="BOLT11 invoice cannot be empty"):
            parse_destination({"type": "bolt11", "invoice": "   "})

    def test_missing_field_rejected(self) -> None:
        with pytest.raises(InvalidDestinationError, match="BOLT12 offer"):
            parse_destination({"type": "bolt12"})

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(InvalidDestinationError, match="Unknown destination type"):
            parse_destination({"type": "onchain", "address": "bc1q"})

    def test_tagged_value_is_not_re_detected(self) -> None:
        # Explicit type wins even if the string would auto-detect differently.
        parsed = parse_destination({"type": "lnurl", "url": "https://pay.example.com/lnurlp/x"})
        assert parsed.type is DestinationType.LNURL


# ---------------------------------------------------------------------------
# Allowlist
# ---------------------------------------------------------------------------


def _address(addr: str) -> Destination:
    return Destination(DestinationType.LIGHTNING_ADDRESS, addr)


class TestAllowlist:
    def test_no_allowlist_allows_everything(self) -> None:
        validate_destination_allowlist(_address("anyone@anywhere.com"), None)
        validate_destination_allowlist(_address("anyone@anywhere.com"), [])

    def test_exact_match(self) -> None:
        validate_destination_allowlist(_address("user@wallet.com"), ["user@wallet.com"])

    def test_case_insensitive_match(self) -> None:
        validate_destination_allowlist(_address("User@Wallet.com"), ["user@wallet.com"])

    def test_wildcard_allows_subdomain(self) -> None:
        validate_destination_allowlist(_address("user@pay.wallet.com"), ["*.wallet.com"])

    def test_wildcard_allows_bare_domain(self) -> None:
        validate_destination_allowlist(_address("user@wallet.com"), ["*.wallet.com"])

    def test_wildcard_rejects_other_domain(self) -> None:
        with pytest.raises(DestinationNotAllowedError) as exc_info:
            validate_destination_allowlist(_address("user@other.com"), ["*.wallet.com"])
        assert exc_info.value.code is PayoutErrorCode.DESTINATION_NOT_ALLOWED

    def test_wildcard_does_not_match_suffix_lookalike(self) -> None:
        with pytest.raises(DestinationNotAllowedError):
            validate_destination_allowlist(_address("user@evilwallet.com"), ["*.wallet.com"])

    def test_bare_domain_entry(self) -> None:
        validate_destination_allowlist(_address("someone@wallet.com"), ["wallet.com"])

    def test_lnurl_only_exact(self) -> None:
        lnurl = Destination(DestinationType.LNURL, "lnurl1abc")
        validate_destination_allowlist(lnurl, ["lnurl1abc"])
        with pytest.raises(DestinationNotAllowedError):
            validate_destination_allowlist(lnurl, ["*.wallet.com", "lnurl1other"])

    def test_bolt12_not_in_list(self) -> None:
        offer = Destination(DestinationType.BOLT12, "lno1zzz")
        with pytest.raises(DestinationNotAllowedError, match="lno1zzz"):
            validate_destination_allowlist(offer, ["lno1abc"])


class TestExtractDomain:
    def test_domain(self) -> None:
        assert extract_domain("user@wallet.com") == "wallet.com"

    def test_no_at(self) -> None:
        assert extract_domain("lnbc1pexample") is None

    def test_multiple_at(self) -> None:
        assert extract_domain("a@b@c") is None
