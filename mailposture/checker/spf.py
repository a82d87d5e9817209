"""
SPF record validation.

Validates SPF (Sender Policy Framework) records for a domain:
- Presence and uniqueness of the v=spf1 record
- Mechanism parsing (ip4, ip6, include, a, mx, ptr, exists, redirect, all)
- DNS lookup count enforcement (max 10 per RFC 7208)
- Policy qualifier detection (-all, ~all, ?all, +all)
"""

from __future__ import annotations

import logging

from mailposture.checker.records import filter_records
from mailposture.checker.resolver import resolve_txt
from mailposture.config import AnalysisSettings
from mailposture.models import Issue, Severity, SpfResult

logger = logging.getLogger(__name__)

MAX_DNS_LOOKUPS = 10

# Lookup counts from this value up to the limit draw a warning.
_LOOKUP_WARNING_THRESHOLD = 8

# Mechanisms that require DNS lookups per RFC 7208 Section 4.6.4.
# Each occurrence counts once, with or without an explicit domain.
_DNS_LOOKUP_MECHANISMS = {"include", "a", "mx", "ptr", "exists", "redirect"}

_MISSING_ISSUE = Issue(
    severity=Severity.CRITICAL,
    message="No SPF record found",
    recommendation="Add an SPF record to prevent email spoofing",
)

# Issue raised for each "all" qualifier; -all needs none.
_QUALIFIER_ISSUES: dict[str, Issue] = {
    "+all": Issue(
        severity=Severity.CRITICAL,
        message="SPF uses +all (pass all) - effectively no protection",
        recommendation="Change to -all (hardfail) for maximum protection",
    ),
    "?all": Issue(
        severity=Severity.HIGH,
        message="SPF uses ?all (neutral) - weak protection",
        recommendation="Change to -all (hardfail) for maximum protection",
    ),
    "~all": Issue(
        severity=Severity.MEDIUM,
        message="SPF uses ~all (softfail) - consider using hardfail",
        recommendation="Change to -all (hardfail) when ready for stricter enforcement",
    ),
}


def check_spf(domain: str, settings: AnalysisSettings | None = None) -> SpfResult:
    """Validate the SPF record for *domain*.

    Args:
        domain: The normalized domain name to check.
        settings: Optional AnalysisSettings for resolver configuration.

    Returns:
        An SpfResult.

    Raises:
        DnsLookupError: If the TXT lookup fails for a reason other than
            the name or record not existing.
    """
    spf_records = filter_records(resolve_txt(domain, settings), "v=spf1")

    if not spf_records:
        logger.info("No SPF record for %s", domain)
        return SpfResult(found=False, issues=(_MISSING_ISSUE,))

    issues: list[Issue] = []

    if len(spf_records) > 1:
        issues.append(Issue(
            severity=Severity.HIGH,
            message=f"Multiple SPF records found ({len(spf_records)})",
            recommendation="Only one SPF record should exist per domain (RFC 7208)",
        ))

    # Analyze the first record; extra records are already flagged above.
    spf_record = spf_records[0]
    mechanisms = parse_mechanisms(spf_record)
    lookup_count = count_dns_lookups(mechanisms)
    includes = tuple(m["value"] for m in mechanisms if m["type"] == "include" and m["value"])
    all_mechanism = extract_all_mechanism(mechanisms)
    has_redirect = any(m["type"] == "redirect" for m in mechanisms)

    if all_mechanism in _QUALIFIER_ISSUES:
        issues.append(_QUALIFIER_ISSUES[all_mechanism])
    elif all_mechanism is None:
        if has_redirect:
            issues.append(Issue(
                severity=Severity.LOW,
                message="SPF record has no all mechanism and delegates its policy via redirect=",
                recommendation="Make sure the redirect target ends with -all",
            ))
        else:
            issues.append(Issue(
                severity=Severity.HIGH,
                message="SPF record has no all mechanism",
                recommendation="Add -all at the end of your SPF record",
            ))

    if lookup_count > MAX_DNS_LOOKUPS:
        issues.append(Issue(
            severity=Severity.HIGH,
            message=f"SPF record exceeds DNS lookup limit ({lookup_count}/{MAX_DNS_LOOKUPS})",
            recommendation="Reduce the number of include/redirect mechanisms",
        ))
    elif lookup_count >= _LOOKUP_WARNING_THRESHOLD:
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message=f"SPF record is close to DNS lookup limit ({lookup_count}/{MAX_DNS_LOOKUPS})",
            recommendation="Consider flattening SPF record to avoid future issues",
        ))

    if any(m["type"] == "ptr" for m in mechanisms):
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message="SPF record uses deprecated ptr mechanism",
            recommendation="Replace ptr with explicit IP ranges or include statements",
        ))

    logger.debug(
        "SPF for %s: all=%s lookups=%d issues=%d",
        domain, all_mechanism, lookup_count, len(issues),
    )
    return SpfResult(
        found=True,
        record=spf_record,
        mechanism=all_mechanism,
        lookup_count=lookup_count,
        includes=includes,
        mechanisms=tuple(mechanisms),
        issues=tuple(issues),
    )


def parse_mechanisms(spf_record: str) -> list[dict[str, str]]:
    """Parse an SPF record string into a list of mechanism dicts.

    Each mechanism dict has keys: qualifier, type, value.
    """
    mechanisms: list[dict[str, str]] = []
    # Remove the v=spf1 prefix
    parts = spf_record.strip().split()
    if parts and parts[0].lower().startswith("v=spf1"):
        parts = parts[1:]

    for part in parts:
        # Extract qualifier
        qualifier = "+"
        if part[0] in "+-~?":
            qualifier = part[0]
            part = part[1:]
        if not part:
            continue

        if "=" in part:
            # redirect=, exp=
            key, _, value = part.partition("=")
        elif ":" in part:
            # include:domain, ip4:range, a:domain, mx:domain
            key, _, value = part.partition(":")
        elif "/" in part:
            # a/24, mx/24
            key, _, cidr = part.partition("/")
            value = f"/{cidr}"
        else:
            key, value = part, ""

        mechanisms.append({
            "qualifier": qualifier,
            "type": key.lower(),
            "value": value,
        })

    return mechanisms


def count_dns_lookups(mechanisms: list[dict[str, str]]) -> int:
    """Count the terms that cost a DNS lookup when the record is evaluated."""
    return sum(1 for m in mechanisms if m["type"] in _DNS_LOOKUP_MECHANISMS)


def extract_all_mechanism(mechanisms: list[dict[str, str]]) -> str | None:
    """Return the ``all`` term with its qualifier (``"-all"``), or None.

    A bare ``all`` carries the default ``+`` qualifier.
    """
    for mechanism in reversed(mechanisms):
        if mechanism["type"] == "all" and not mechanism["value"]:
            return f"{mechanism['qualifier']}all"
    return None
