"""
Unit tests for mailposture/checker/spf.py

All DNS network calls are mocked via unittest.mock.patch so no real
DNS resolution occurs during the test run.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from mailposture.checker.spf import (
    check_spf,
    count_dns_lookups,
    extract_all_mechanism,
    parse_mechanisms,
)
from mailposture.exceptions import DnsLookupError
from mailposture.models import Severity

# ---------------------------------------------------------------------------
# Helper: build a fake query_dns return value
# ---------------------------------------------------------------------------


def _dns_ok(*records: str) -> dict:
    """Return a successful DNS query result containing *records*."""
    return {
        "success": True,
        "records": list(records),
        "error_type": None,
        "error_message": None,
    }


def _dns_fail(error_type: str = "NXDOMAIN", message: str = "Not found") -> dict:
    """Return a failed DNS query result."""
    return {
        "success": False,
        "records": [],
        "error_type": error_type,
        "error_message": message,
    }


_PATCH_TARGET = "mailposture.checker.resolver.query_dns"


def _severities(result) -> list[Severity]:
    return [issue.severity for issue in result.issues]


# ---------------------------------------------------------------------------
# Tests - policy qualifiers
# ---------------------------------------------------------------------------


def test_spf_hard_fail_has_no_critical_issues(settings):
    """SPF record with -all qualifier is found with no critical issue."""
    spf_record = "v=spf1 include:_spf.google.com -all"
    with patch(_PATCH_TARGET, return_value=_dns_ok(spf_record)):
        result = check_spf("example.com", settings)

    assert result.found is True
    assert result.record == spf_record
    assert result.mechanism == "-all"
    assert result.includes == ("_spf.google.com",)
    assert Severity.CRITICAL not in _severities(result)
    assert result.issues == ()


def test_spf_soft_fail_is_medium(settings):
    with patch(_PATCH_TARGET, return_value=_dns_ok("v=spf1 mx ~all")):
        result = check_spf("example.com", settings)

    assert result.mechanism == "~all"
    assert _severities(result) == [Severity.MEDIUM]


def test_spf_neutral_is_high(settings):
    with patch(_PATCH_TARGET, return_value=_dns_ok("v=spf1 ?all")):
        result = check_spf("example.com", settings)

    assert result.mechanism == "?all"
    assert _severities(result) == [Severity.HIGH]


def test_spf_pass_all_is_critical(settings):
    """SPF record with +all allows anyone to send."""
    with patch(_PATCH_TARGET, return_value=_dns_ok("v=spf1 +all")):
        result = check_spf("example.com", settings)

    assert result.mechanism == "+all"
    assert _severities(result) == [Severity.CRITICAL]


def test_spf_bare_all_defaults_to_pass(settings):
    """A bare 'all' carries the implicit + qualifier."""
    with patch(_PATCH_TARGET, return_value=_dns_ok("v=spf1 all")):
        result = check_spf("example.com", settings)

    assert result.mechanism == "+all"
    assert Severity.CRITICAL in _severities(result)


def test_spf_missing_all_is_high(settings):
    with patch(_PATCH_TARGET, return_value=_dns_ok("v=spf1 ip4:192.0.2.0/24")):
        result = check_spf("example.com", settings)

    assert result.mechanism is None
    assert _severities(result) == [Severity.HIGH]


def test_spf_redirect_without_all_is_low(settings):
    with patch(_PATCH_TARGET, return_value=_dns_ok("v=spf1 redirect=_spf.example.net")):
        result = check_spf("example.com", settings)

    assert result.mechanism is None
    assert result.lookup_count == 1
    assert _severities(result) == [Severity.LOW]


# ---------------------------------------------------------------------------
# Tests - record presence
# ---------------------------------------------------------------------------


def test_spf_missing_record_is_critical(settings):
    """NXDOMAIN is a not-found condition, not an error."""
    with patch(_PATCH_TARGET, return_value=_dns_fail("NXDOMAIN")):
        result = check_spf("example.com", settings)

    assert result.found is False
    assert _severities(result) == [Severity.CRITICAL]
    assert result.issues[0].message == "No SPF record found"


def test_spf_ignores_unrelated_txt_records(settings):
    with patch(_PATCH_TARGET, return_value=_dns_ok("google-site-verification=abc")):
        result = check_spf("example.com", settings)

    assert result.found is False


def test_spf_version_tag_is_case_insensitive(settings):
    with patch(_PATCH_TARGET, return_value=_dns_ok("V=SPF1 -all")):
        result = check_spf("example.com", settings)

    assert result.found is True
    assert result.mechanism == "-all"


def test_spf_multiple_records_flagged(settings):
    with patch(_PATCH_TARGET, return_value=_dns_ok("v=spf1 -all", "v=spf1 ~all")):
        result = check_spf("example.com", settings)

    assert result.found is True
    assert result.record == "v=spf1 -all"
    assert result.issues[0].severity == Severity.HIGH
    assert "Multiple SPF records" in result.issues[0].message


def test_spf_transport_error_raises(settings):
    with patch(_PATCH_TARGET, return_value=_dns_fail("TIMEOUT", "DNS query timed out")):
        with pytest.raises(DnsLookupError):
            check_spf("example.com", settings)


# ---------------------------------------------------------------------------
# Tests - DNS lookup counting
# ---------------------------------------------------------------------------


def test_spf_lookup_limit_exceeded_is_high(settings):
    includes = " ".join(f"include:_spf{i}.example.net" for i in range(11))
    with patch(_PATCH_TARGET, return_value=_dns_ok(f"v=spf1 {includes} -all")):
        result = check_spf("example.com", settings)

    assert result.lookup_count == 11
    assert any(
        i.severity == Severity.HIGH and "lookup limit" in i.message for i in result.issues
    )


def test_spf_lookup_count_near_limit_is_medium(settings):
    record = "v=spf1 a mx include:a.net include:b.net include:c.net exists:%{i}.x.net ptr mx:mail.example.com -all"
    with patch(_PATCH_TARGET, return_value=_dns_ok(record)):
        result = check_spf("example.com", settings)

    assert result.lookup_count == 8
    severities = _severities(result)
    # near-limit warning plus the ptr warning
    assert severities.count(Severity.MEDIUM) == 2


def test_spf_ptr_is_flagged(settings):
    with patch(_PATCH_TARGET, return_value=_dns_ok("v=spf1 ptr -all")):
        result = check_spf("example.com", settings)

    assert [i.severity for i in result.issues] == [Severity.MEDIUM]
    assert "ptr" in result.issues[0].message


def test_count_dns_lookups_counts_each_term_once():
    mechanisms = parse_mechanisms(
        "v=spf1 a a:example.com mx mx/24 include:x.net exists:y.net ptr redirect=z.net"
        " ip4:192.0.2.1 ip6:2001:db8::1 exp=explain.example.com -all"
    )
    assert count_dns_lookups(mechanisms) == 8


# ---------------------------------------------------------------------------
# Tests - parsing helpers
# ---------------------------------------------------------------------------


def test_parse_mechanisms_extracts_qualifier_type_and_value():
    mechanisms = parse_mechanisms("v=spf1 ip4:192.0.2.0/24 ~include:_spf.example.net -all")

    assert mechanisms == [
        {"qualifier": "+", "type": "ip4", "value": "192.0.2.0/24"},
        {"qualifier": "~", "type": "include", "value": "_spf.example.net"},
        {"qualifier": "-", "type": "all", "value": ""},
    ]


def test_extract_all_mechanism_uses_last_all_term():
    assert extract_all_mechanism(parse_mechanisms("v=spf1 ~all -all")) == "-all"
    assert extract_all_mechanism(parse_mechanisms("v=spf1 mx")) is None
