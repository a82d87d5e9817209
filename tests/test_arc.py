"""
Unit tests for mailposture/checker/arc.py
"""

from __future__ import annotations

from mailposture.checker.arc import check_arc_readiness
from mailposture.models import DkimResult, DmarcResult, Severity, SpfResult


def test_arc_fully_ready():
    result = check_arc_readiness(
        SpfResult(found=True), DkimResult(found=True), DmarcResult(found=True),
    )

    assert result.ready is True
    assert result.can_sign is True
    assert result.can_validate is True
    assert result.present is True
    assert result.issues == ()


def test_arc_ready_without_dkim():
    result = check_arc_readiness(
        SpfResult(found=True), DkimResult(found=False), DmarcResult(found=True),
    )

    assert result.ready is True
    assert result.can_sign is False
    assert result.can_validate is False
    assert [i.severity for i in result.issues] == [Severity.MEDIUM, Severity.LOW]


def test_arc_not_ready_without_dmarc():
    result = check_arc_readiness(
        SpfResult(found=True), DkimResult(found=True), DmarcResult(found=False),
    )

    assert result.ready is False
    assert result.can_sign is True
    assert [i.severity for i in result.issues] == [Severity.HIGH]


def test_arc_nothing_configured():
    result = check_arc_readiness(SpfResult(), DkimResult(), DmarcResult())

    assert result.ready is False
    assert {i.severity for i in result.issues} == {Severity.MEDIUM, Severity.HIGH}
