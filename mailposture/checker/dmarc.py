"""
DMARC record validation.

Validates DMARC (Domain-based Message Authentication, Reporting and
Conformance) records for a domain:
- Queries _dmarc.{domain} TXT record
- Parses tag=value pairs (p, sp, rua, ruf, pct, aspf, adkim)
- Validates policy settings and reports issues
"""

from __future__ import annotations

import logging

from mailposture.checker.records import filter_records, parse_tags, split_addresses
from mailposture.checker.resolver import resolve_txt
from mailposture.config import AnalysisSettings
from mailposture.models import DmarcResult, Issue, Severity

logger = logging.getLogger(__name__)

VALID_POLICIES = ("none", "quarantine", "reject")

# Policy strength for comparing p= against sp=
_POLICY_STRENGTH = {"none": 0, "quarantine": 1, "reject": 2}


def check_dmarc(domain: str, settings: AnalysisSettings | None = None) -> DmarcResult:
    """Validate the DMARC record for *domain*.

    Args:
        domain: The normalized domain name to check.
        settings: Optional AnalysisSettings for resolver configuration.

    Returns:
        A DmarcResult.

    Raises:
        DnsLookupError: On DNS transport failures.
    """
    dmarc_records = filter_records(resolve_txt(f"_dmarc.{domain}", settings), "v=dmarc1")

    if not dmarc_records:
        logger.info("No DMARC record for %s", domain)
        return DmarcResult(found=False, issues=(Issue(
            severity=Severity.CRITICAL,
            message="No DMARC record found",
            recommendation="Add a DMARC record to protect against email spoofing",
        ),))

    issues: list[Issue] = []
    if len(dmarc_records) > 1:
        issues.append(Issue(
            severity=Severity.HIGH,
            message=f"Multiple DMARC records found ({len(dmarc_records)})",
            recommendation="Only one DMARC record should exist per domain (RFC 7489)",
        ))

    record = dmarc_records[0]
    tags = parse_tags(record)

    policy = _parse_policy(tags.get("p"))
    subdomain_policy = _parse_policy(tags.get("sp"))
    rua = split_addresses(tags.get("rua"))
    ruf = split_addresses(tags.get("ruf"))
    pct = _parse_pct(tags.get("pct"))
    reporting_enabled = bool(rua or ruf)

    issues.extend(_evaluate_policy(policy, subdomain_policy, reporting_enabled, pct))

    logger.debug("DMARC for %s: p=%s sp=%s pct=%s", domain, policy, subdomain_policy, pct)
    return DmarcResult(
        found=True,
        record=record,
        policy=policy,
        subdomain_policy=subdomain_policy,
        reporting_enabled=reporting_enabled,
        rua=tuple(rua),
        ruf=tuple(ruf),
        pct=pct,
        aspf=tags.get("aspf") or None,
        adkim=tags.get("adkim") or None,
        issues=tuple(issues),
    )


def _parse_policy(value: str | None) -> str | None:
    """Return the lower-cased policy if it is one of the DMARC policies."""
    if value is None:
        return None
    value = value.strip().lower()
    return value if value in VALID_POLICIES else None


def _parse_pct(pct_str: str | None) -> int | None:
    """Parse the pct= tag value to an integer, or None if absent/invalid."""
    if pct_str is None:
        return None
    try:
        pct = int(pct_str.strip())
    except ValueError:
        return None
    if 0 <= pct <= 100:
        return pct
    return None


def _evaluate_policy(
    policy: str | None,
    subdomain_policy: str | None,
    reporting_enabled: bool,
    pct: int | None,
) -> list[Issue]:
    """Return the issues raised by the parsed DMARC tags."""
    issues: list[Issue] = []

    if policy is None:
        issues.append(Issue(
            severity=Severity.CRITICAL,
            message="DMARC record has no valid policy (p=)",
            recommendation="Set p=quarantine or p=reject in your DMARC record",
        ))
    elif policy == "none":
        issues.append(Issue(
            severity=Severity.HIGH,
            message="DMARC policy is set to none (monitoring only)",
            recommendation="Upgrade DMARC policy to quarantine or reject after monitoring",
        ))
    elif policy == "quarantine":
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message="DMARC policy is quarantine - consider upgrading to reject",
            recommendation="Upgrade to p=reject for maximum protection",
        ))
    elif subdomain_policy is not None and (
        _POLICY_STRENGTH[subdomain_policy] < _POLICY_STRENGTH[policy]
    ):
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message=f"Subdomain policy (sp={subdomain_policy}) is weaker than main policy",
            recommendation="Set sp=reject to protect subdomains",
        ))

    if not reporting_enabled:
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message="DMARC reporting not configured (no rua or ruf)",
            recommendation="Add rua=mailto:dmarc@yourdomain.com to receive aggregate reports",
        ))

    if pct is not None and pct < 100:
        issues.append(Issue(
            severity=Severity.LOW,
            message=f"DMARC only applies to {pct}% of messages",
            recommendation="Increase pct to 100 for full protection",
        ))

    return issues
