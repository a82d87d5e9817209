"""
Unit tests for mailposture/checker/tls_rpt.py
"""

from __future__ import annotations

from unittest.mock import patch

from mailposture.checker.tls_rpt import check_tls_rpt
from mailposture.models import Severity

_PATCH_TARGET = "mailposture.checker.tls_rpt.resolve_txt"


def test_tls_rpt_valid_record(settings):
    record = "v=TLSRPTv1; rua=mailto:tls@example.com,https://reports.example.com/tls"
    with patch(_PATCH_TARGET, return_value=[record]) as mock_txt:
        result = check_tls_rpt("example.com", settings)

    assert mock_txt.call_args[0][0] == "_smtp._tls.example.com"
    assert result.found is True
    assert result.rua == ("mailto:tls@example.com", "https://reports.example.com/tls")
    assert result.issues == ()


def test_tls_rpt_missing_is_low(settings):
    with patch(_PATCH_TARGET, return_value=["v=spf1 -all"]):
        result = check_tls_rpt("example.com", settings)

    assert result.found is False
    assert [i.severity for i in result.issues] == [Severity.LOW]


def test_tls_rpt_without_rua_is_high(settings):
    with patch(_PATCH_TARGET, return_value=["v=TLSRPTv1;"]):
        result = check_tls_rpt("example.com", settings)

    assert [i.severity for i in result.issues] == [Severity.HIGH]


def test_tls_rpt_bad_scheme_is_medium(settings):
    with patch(_PATCH_TARGET, return_value=["v=TLSRPTv1; rua=ftp://example.com/reports"]):
        result = check_tls_rpt("example.com", settings)

    assert [i.severity for i in result.issues] == [Severity.MEDIUM]
    assert "ftp://example.com/reports" in result.issues[0].message


def test_tls_rpt_multiple_records_is_medium(settings):
    record = "v=TLSRPTv1; rua=mailto:tls@example.com"
    with patch(_PATCH_TARGET, return_value=[record, record]):
        result = check_tls_rpt("example.com", settings)

    assert [i.severity for i in result.issues] == [Severity.MEDIUM]
