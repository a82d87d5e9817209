"""
Scoring and recommendations.

The score is a weighted sum of the four core mechanisms (max 100):
  - SPF   (30 pts): qualifier strength, minus a lookup-count penalty
  - DKIM  (25 pts): presence plus the weakest key length found
  - DMARC (40 pts): policy strength, reporting, pct coverage
  - MX     (5 pts): presence plus redundancy

Skipped and failed mechanisms contribute nothing.  The remaining
mechanisms only feed recommendations.
"""

from __future__ import annotations

from mailposture.checker.spf import MAX_DNS_LOOKUPS
from mailposture.models import (
    DkimResult,
    DkimSelectorResult,
    DmarcResult,
    MechanismResult,
    MxResult,
    SpfResult,
)

# Grade boundaries, checked in order
GRADE_BOUNDARIES: tuple[tuple[int, str], ...] = (
    (90, "A"),
    (75, "B"),
    (50, "C"),
    (25, "D"),
)

_SPF_QUALIFIER_POINTS = {"-all": 30, "~all": 25, "?all": 10, "+all": 0}
_SPF_NO_ALL_POINTS = 5

_DMARC_POLICY_POINTS = {"reject": 25, "quarantine": 18, "none": 10}
_DMARC_REPORTING_POINTS = 10
_DMARC_COVERAGE_POINTS = 5


def score_spf(spf: SpfResult) -> int:
    """Qualifier points minus the lookup penalty.

    The result is not floored, so the penalty still counts against the
    total when the qualifier earns nothing.
    """
    if spf.skipped or not spf.found:
        return 0
    if spf.mechanism is None:
        score = _SPF_NO_ALL_POINTS
    else:
        score = _SPF_QUALIFIER_POINTS.get(spf.mechanism, 0)

    if spf.lookup_count > MAX_DNS_LOOKUPS:
        score -= 10
    elif spf.lookup_count >= 8:
        score -= 3
    return score


def score_dkim(dkim: DkimResult) -> int:
    if dkim.skipped or not dkim.found:
        return 0

    usable = [s for s in dkim.found_selectors if s.usable]
    if not usable:
        # Only revoked keys published
        return 5

    key_points = [p for p in map(_key_points, usable) if p is not None]
    # The weakest key decides the bonus
    return 15 + (min(key_points) if key_points else 0)


def _key_points(selector: DkimSelectorResult) -> int | None:
    if selector.key_type == "ed25519":
        return 10
    if selector.key_length is None:
        return None
    if selector.key_length >= 2048:
        return 10
    if selector.key_length >= 1024:
        return 5
    return 0


def score_dmarc(dmarc: DmarcResult) -> float:
    if dmarc.skipped or not dmarc.found:
        return 0
    score: float = _DMARC_POLICY_POINTS.get(dmarc.policy or "", 0)
    if dmarc.reporting_enabled:
        score += _DMARC_REPORTING_POINTS
    pct = 100 if dmarc.pct is None else dmarc.pct
    score += _DMARC_COVERAGE_POINTS * pct / 100
    return score


def score_mx(mx: MxResult) -> int:
    if mx.skipped or not mx.found:
        return 0
    score = 3
    if sum(1 for r in mx.records if not r.is_null) >= 2:
        score += 2
    return score


def grade_for_score(score: int) -> str:
    for threshold, grade in GRADE_BOUNDARIES:
        if score >= threshold:
            return grade
    return "F"


def calculate_grade(
    spf: SpfResult,
    dkim: DkimResult,
    dmarc: DmarcResult,
    mx: MxResult,
) -> tuple[int, str]:
    """Return ``(score, grade)`` for the core mechanism results."""
    total = score_spf(spf) + score_dkim(dkim) + score_dmarc(dmarc) + score_mx(mx)
    score = int(round(min(max(total, 0), 100)))
    return score, grade_for_score(score)


def generate_recommendations(*results: MechanismResult) -> list[str]:
    """Collect actionable recommendations, most severe first.

    Issues of skipped results are ignored.  Issues with the same message
    produce a single recommendation.
    """
    candidates = [
        (result.label, issue)
        for result in results
        if not result.skipped
        for issue in result.issues
        if issue.recommendation
    ]
    # sorted() is stable, so mechanism order breaks ties
    candidates.sort(key=lambda item: item[1].severity.rank, reverse=True)

    recommendations: list[str] = []
    seen_messages: set[str] = set()
    for label, issue in candidates:
        if issue.message in seen_messages:
            continue
        seen_messages.add(issue.message)
        text = f"{label}: {issue.recommendation}"
        if text not in recommendations:
            recommendations.append(text)
    return recommendations
