"""
Unit tests for mailposture/checker/dnssec.py

subprocess.run is mocked so dig is never executed.
"""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from mailposture.checker.dnssec import (
    DNSSEC_ALGORITHMS,
    DS_DIGEST_TYPES,
    KSK_FLAGS,
    ZSK_FLAGS,
    check_dnssec,
    parse_dnskey_line,
    parse_ds_line,
)
from mailposture.config import AnalysisSettings
from mailposture.exceptions import DnssecQueryError
from mailposture.models import Severity

_PATCH_TARGET = "mailposture.checker.dnssec.subprocess.run"

_DS_OUTPUT = "2371 13 2 32996839A6D808AFE3EB4A795A0E6A7A39A76FC52FF228B22B76F6D63826F2B9\n"
_DNSKEY_OUTPUT = (
    "257 3 13 oJMRESz5E4gYzS/q6XDrvU1qMPYIjCWzJaOau8XNEZeqCYKD5ar0IRd8KqXXFJkqmVfRvMGPmM1x8fGAa2XhSA==\n"
    "256 3 13 6ZRWkqL+Z4r3w3XNkLCHvEjLV+PyFJLkc++tkBTH4Y+GC0Gy1BfPe2Swe8lRvFhvCMSPY1KTwLyF+q4hCCJdnA==\n"
)


def _completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> MagicMock:
    proc = MagicMock()
    proc.stdout = stdout
    proc.stderr = stderr
    proc.returncode = returncode
    return proc


def _dig_outputs(ds: str, dnskey: str):
    """Return a subprocess.run side effect answering DS and DNSKEY queries."""
    def _run(cmd, **kwargs):
        return _completed(ds if "DS" in cmd else dnskey)
    return _run


# ---------------------------------------------------------------------------
# Tests - classification tables
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("number,strength", [
    (1, "deprecated"),
    (3, "deprecated"),
    (5, "weak"),
    (8, "acceptable"),
    (13, "strong"),
    (15, "strong"),
])
def test_algorithm_strengths(number, strength):
    assert DNSSEC_ALGORITHMS[number].strength == strength


@pytest.mark.parametrize("number,strength", [(1, "weak"), (2, "strong"), (4, "strong")])
def test_digest_type_strengths(number, strength):
    assert DS_DIGEST_TYPES[number].strength == strength


def test_tables_are_read_only():
    with pytest.raises(TypeError):
        DNSSEC_ALGORITHMS[99] = DNSSEC_ALGORITHMS[8]


def test_key_flags():
    assert KSK_FLAGS == 257
    assert ZSK_FLAGS == 256


# ---------------------------------------------------------------------------
# Tests - line parsing
# ---------------------------------------------------------------------------


def test_parse_ds_line_joins_split_digest():
    record = parse_ds_line("2371 13 2 32996839A6D808AF E3EB4A795A0E6A7A")

    assert record.key_tag == 2371
    assert record.algorithm_name == "ECDSAP256SHA256"
    assert record.digest_name == "SHA-256"
    assert record.digest == "32996839A6D808AFE3EB4A795A0E6A7A"


def test_parse_ds_line_rejects_non_numeric_lines():
    assert parse_ds_line("example.com.cdn.net.") is None
    assert parse_ds_line(";; connection timed out; no servers could be reached") is None


def test_parse_dnskey_line_records_unknown_flags():
    key = parse_dnskey_line("385 3 8 AwEAAa")

    assert key.flags == 385
    assert not key.is_ksk
    assert not key.is_zsk


# ---------------------------------------------------------------------------
# Tests - check_dnssec
# ---------------------------------------------------------------------------


def test_dnssec_enabled_with_ds_and_dnskey(settings):
    with patch(_PATCH_TARGET, side_effect=_dig_outputs(_DS_OUTPUT, _DNSKEY_OUTPUT)):
        result = check_dnssec("example.com", settings)

    assert result.enabled is True
    assert result.ds.found is True
    assert len(result.ds.records) == 1
    assert result.dnskey.found is True
    assert result.dnskey.ksk_count == 1
    assert result.dnskey.zsk_count == 1
    assert result.issues == ()


def test_dnssec_not_enabled_without_records(settings):
    with patch(_PATCH_TARGET, return_value=_completed("")):
        result = check_dnssec("example.com", settings)

    assert result.enabled is False
    assert [i.severity for i in result.issues] == [Severity.INFO]
    assert "DNSSEC is not enabled" in result.issues[0].message


def test_dnssec_ds_without_dnskey_is_not_enabled(settings):
    with patch(_PATCH_TARGET, side_effect=_dig_outputs(_DS_OUTPUT, "")):
        result = check_dnssec("example.com", settings)

    assert result.enabled is False
    assert result.ds.found is True
    assert "no DNSKEY" in result.issues[0].message


def test_dnssec_missing_dig_is_high(settings):
    with patch(_PATCH_TARGET, side_effect=FileNotFoundError("dig")):
        result = check_dnssec("example.com", settings)

    assert result.enabled is False
    assert [i.severity for i in result.issues] == [Severity.HIGH]
    assert "dig" in result.issues[0].message


def test_dnssec_weak_algorithm_reported(settings):
    with patch(_PATCH_TARGET, side_effect=_dig_outputs(
        "12345 5 1 ABCDEF1234567890\n", "257 3 5 AQPJ////dGhpcyBpcyBhIHRlc3Qga2V5\n",
    )):
        result = check_dnssec("example.com", settings)

    assert result.enabled is True
    messages = [i.message for i in result.issues]
    assert any("RSASHA1" in m for m in messages)
    assert any("SHA-1" in m for m in messages)
    # algorithm 5 on both DS and DNSKEY is reported once
    assert sum("RSASHA1" in m for m in messages) == 1
    assert {i.severity for i in result.issues} == {Severity.MEDIUM}


def test_dnssec_deprecated_and_unknown_algorithms(settings):
    with patch(_PATCH_TARGET, side_effect=_dig_outputs(
        "1 1 2 ABCDEF\n", "257 3 1 AwEAAa\n256 3 99 AwEAAb\n",
    )):
        result = check_dnssec("example.com", settings)

    severities = [i.severity for i in result.issues]
    assert Severity.HIGH in severities
    assert Severity.LOW in severities


def test_dnssec_without_ksk_is_low(settings):
    with patch(_PATCH_TARGET, side_effect=_dig_outputs(_DS_OUTPUT, "256 3 13 AwEAAa\n")):
        result = check_dnssec("example.com", settings)

    assert result.enabled is True
    assert [i.severity for i in result.issues] == [Severity.LOW]


def test_dnssec_passes_resolver_override():
    settings = AnalysisSettings(resolver="1.1.1.1", timeout_ms=3000)
    with patch(_PATCH_TARGET, return_value=_completed("")) as mock_run:
        check_dnssec("example.com", settings)

    commands = [c.args[0] for c in mock_run.call_args_list]
    assert len(commands) == 2
    assert all("@1.1.1.1" in cmd for cmd in commands)
    assert all("+short" in cmd and "+time=3" in cmd for cmd in commands)
    assert mock_run.call_args_list[0].kwargs["timeout"] == 3.0


def test_dnssec_dig_timeout_raises(settings):
    with patch(_PATCH_TARGET, side_effect=subprocess.TimeoutExpired(cmd="dig", timeout=2)):
        with pytest.raises(DnssecQueryError):
            check_dnssec("example.com", settings)


def test_dnssec_dig_error_status_raises(settings):
    with patch(_PATCH_TARGET, return_value=_completed("", returncode=9, stderr="no servers")):
        with pytest.raises(DnssecQueryError) as excinfo:
            check_dnssec("example.com", settings)

    assert "no servers" in str(excinfo.value)
