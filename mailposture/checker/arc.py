"""
ARC readiness, derived from already-settled SPF, DKIM and DMARC results.

ARC (RFC 8617) has no DNS record of its own: sealing reuses DKIM-style keys
and validation depends on the domain's authentication results, so readiness
is computed without any further lookups.
"""

from __future__ import annotations

from mailposture.models import ArcResult, DkimResult, DmarcResult, Issue, Severity, SpfResult


def check_arc_readiness(spf: SpfResult, dkim: DkimResult, dmarc: DmarcResult) -> ArcResult:
    can_sign = dkim.found
    can_validate = spf.found and dkim.found and dmarc.found
    ready = (spf.found or dkim.found) and dmarc.found

    issues: list[Issue] = []
    if not dkim.found:
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message="ARC sealing requires DKIM keys, none were found",
            recommendation="Configure DKIM so intermediaries can ARC-seal forwarded mail",
        ))
    if not dmarc.found:
        issues.append(Issue(
            severity=Severity.HIGH,
            message="ARC validation has no effect without a DMARC record",
            recommendation="Publish a DMARC record so receivers can act on ARC results",
        ))
    if ready and not can_validate:
        issues.append(Issue(
            severity=Severity.LOW,
            message="ARC chains cannot be fully validated without both SPF and DKIM",
            recommendation="Publish both SPF and DKIM for complete ARC validation",
        ))

    return ArcResult(
        ready=ready,
        can_sign=can_sign,
        can_validate=can_validate,
        issues=tuple(issues),
    )
