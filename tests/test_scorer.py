"""
Unit tests for mailposture/checker/scorer.py
"""

from __future__ import annotations

import pytest

from mailposture.checker.scorer import (
    calculate_grade,
    generate_recommendations,
    grade_for_score,
    score_dkim,
    score_spf,
)
from mailposture.models import (
    BimiResult,
    DkimResult,
    DkimSelectorResult,
    DmarcResult,
    Issue,
    MxRecord,
    MxResult,
    Severity,
    SpfResult,
)


def _spf(mechanism="-all", lookups=2) -> SpfResult:
    return SpfResult(found=True, record=f"v=spf1 {mechanism}", mechanism=mechanism, lookup_count=lookups)


def _dkim(key_length=2048, key_type="rsa", revoked=False) -> DkimResult:
    return DkimResult(found=True, selectors=(
        DkimSelectorResult("google", found=True, key_type=key_type, key_length=key_length, revoked=revoked),
    ))


def _dmarc(policy="reject", reporting=True, pct=None) -> DmarcResult:
    return DmarcResult(found=True, policy=policy, reporting_enabled=reporting, pct=pct)


def _mx(count=2) -> MxResult:
    return MxResult(found=True, records=tuple(MxRecord(f"mx{i}.example.com", 10 * i) for i in range(1, count + 1)))


# ---------------------------------------------------------------------------
# Tests - grade
# ---------------------------------------------------------------------------


def test_nothing_configured_is_f():
    assert calculate_grade(SpfResult(), DkimResult(), DmarcResult(), MxResult()) == (0, "F")


def test_perfect_configuration_is_a():
    score, grade = calculate_grade(_spf(), _dkim(), _dmarc(), _mx())

    assert score == 100
    assert grade == "A"


def test_quarantine_with_reporting_scores_well():
    score, grade = calculate_grade(_spf(), _dkim(), _dmarc("quarantine"), _mx())

    assert score >= 70
    assert grade in ("A", "B")


def test_spf_only_is_d():
    score, grade = calculate_grade(_spf(), DkimResult(), DmarcResult(), MxResult())

    assert score == 30
    assert grade == "D"


def test_excessive_spf_lookups_lower_the_score():
    assert score_spf(_spf(lookups=15)) < score_spf(_spf(lookups=5))


@pytest.mark.parametrize("mechanism,expected", [("-all", 30), ("~all", 25), ("?all", 10), ("+all", 0), (None, 5)])
def test_spf_qualifier_points(mechanism, expected):
    assert score_spf(_spf(mechanism=mechanism)) == expected


def test_weak_dkim_key_scores_lower():
    assert score_dkim(_dkim(1024)) < score_dkim(_dkim(2048))
    assert score_dkim(_dkim(key_length=None, key_type="ed25519")) == score_dkim(_dkim(2048))


def test_revoked_dkim_key_scores_little():
    assert score_dkim(_dkim(revoked=True)) == 5


def test_skipped_mechanisms_contribute_nothing():
    score, _ = calculate_grade(
        SpfResult.skipped_result(), DkimResult.skipped_result(), _dmarc(), MxResult.skipped_result(),
    )

    assert score == 40


def test_partial_dmarc_coverage_lowers_the_score():
    full, _ = calculate_grade(SpfResult(), DkimResult(), _dmarc(pct=100), MxResult())
    half, _ = calculate_grade(SpfResult(), DkimResult(), _dmarc(pct=50), MxResult())

    assert half < full


@pytest.mark.parametrize("score,grade", [(100, "A"), (90, "A"), (89, "B"), (75, "B"), (50, "C"), (25, "D"), (24, "F")])
def test_grade_boundaries(score, grade):
    assert grade_for_score(score) == grade


# ---------------------------------------------------------------------------
# Tests - recommendations
# ---------------------------------------------------------------------------


def test_recommendations_sorted_by_severity():
    spf = SpfResult(found=True, issues=(Issue(Severity.LOW, "low thing", "fix low"),))
    dmarc = DmarcResult(issues=(Issue(Severity.CRITICAL, "No DMARC record found", "add dmarc"),))

    assert generate_recommendations(spf, dmarc) == ["DMARC: add dmarc", "SPF: fix low"]


def test_recommendations_deduplicated_and_optional():
    spf = SpfResult(issues=(
        Issue(Severity.HIGH, "same problem", "fix it"),
        Issue(Severity.HIGH, "same problem", "fix it differently"),
        Issue(Severity.INFO, "just information"),
    ))

    assert generate_recommendations(spf) == ["SPF: fix it"]


def test_recommendations_ignore_skipped_results():
    bimi = BimiResult(skipped=True, issues=(Issue(Severity.HIGH, "ignored", "never shown"),))

    assert generate_recommendations(bimi) == []


def test_lookup_penalty_applies_under_pass_all():
    dmarc = _dmarc()

    few, _ = calculate_grade(_spf("+all", lookups=5), DkimResult(), dmarc, MxResult())
    many, _ = calculate_grade(_spf("+all", lookups=15), DkimResult(), dmarc, MxResult())

    assert few == 40
    assert many < few


def test_total_is_clamped_at_zero():
    assert calculate_grade(_spf("+all", lookups=15), DkimResult(), DmarcResult(), MxResult()) == (0, "F")
