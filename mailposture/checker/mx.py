"""
MX record checker: resolves MX records and identifies the email provider.

Uses the shared resolver wrapper so that resolver settings (nameservers,
timeouts) are applied consistently.  The provider identification is based on
a static suffix map of well-known MX hostnames.
"""

from __future__ import annotations

import logging

from mailposture.checker.resolver import resolve_mx
from mailposture.config import AnalysisSettings
from mailposture.models import Issue, MxRecord, MxResult, Severity

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Provider identification map
# ---------------------------------------------------------------------------

# Maps MX hostname suffixes (lowercased) to friendly provider names.
# Checked in order; first match wins.
_MX_PROVIDER_MAP: list[tuple[str, str]] = [
    ("google.com", "Google Workspace"),
    ("googlemail.com", "Google Workspace"),
    ("outlook.com", "Microsoft 365"),
    ("pphosted.com", "Proofpoint"),
    ("mimecast.com", "Mimecast"),
    ("zoho.com", "Zoho Mail"),
    ("zoho.eu", "Zoho Mail"),
    ("amazonses.com", "Amazon SES"),
    ("amazonaws.com", "Amazon SES"),
    ("protonmail.ch", "ProtonMail"),
    ("ovh.net", "OVH"),
    ("secureserver.net", "GoDaddy"),
    ("mailgun.org", "Mailgun"),
    ("sendgrid.net", "SendGrid"),
    ("messagelabs.com", "Broadcom (Symantec)"),
    ("barracudanetworks.com", "Barracuda"),
    ("emailsrvr.com", "Rackspace"),
    ("registrar-servers.com", "Namecheap"),
    ("messagingengine.com", "Fastmail"),
    ("icloud.com", "Apple iCloud"),
    ("yahoodns.net", "Yahoo Mail"),
    ("yandex.net", "Yandex Mail"),
    ("migadu.com", "Migadu"),
    ("titan.email", "Titan"),
]


def identify_mx_provider(exchange: str) -> str | None:
    """Return a friendly provider name based on the MX exchange hostname.

    The suffix must match whole labels, so ``notgoogle.com`` does not match
    ``google.com``.

    Args:
        exchange: The MX exchange hostname (e.g. "alt1.aspmx.l.google.com.").

    Returns:
        The provider name, or None if no match is found.
    """
    exchange_lower = exchange.rstrip(".").lower()

    for suffix, provider_name in _MX_PROVIDER_MAP:
        if exchange_lower == suffix or exchange_lower.endswith("." + suffix):
            return provider_name

    return None


def check_mx(domain: str, settings: AnalysisSettings | None = None) -> MxResult:
    """Resolve MX records for *domain* and identify the mail provider.

    Args:
        domain: The normalized domain name to query.
        settings: Optional AnalysisSettings for resolver configuration.

    Returns:
        An MxResult with records sorted by ascending priority.

    Raises:
        DnsLookupError: On DNS transport failures.
    """
    records = sorted(resolve_mx(domain, settings), key=lambda r: r.priority)

    if not records:
        logger.info("No MX records for %s", domain)
        return MxResult(found=False, issues=(Issue(
            severity=Severity.INFO,
            message="No MX records found - domain cannot receive email",
            recommendation="Add MX records if this domain should receive email",
        ),))

    issues: list[Issue] = []
    mail_hosts = [r for r in records if not r.is_null]

    if any(r.is_null for r in records):
        issues.append(Issue(
            severity=Severity.INFO,
            message="Null MX record present (RFC 7505) - domain does not accept email",
        ))

    if len(records) == 1 and not records[0].is_null:
        issues.append(Issue(
            severity=Severity.LOW,
            message="Only one MX record - no redundancy",
            recommendation="Consider adding a backup MX record for redundancy",
        ))
    elif len(records) > 1 and len({r.priority for r in records}) == 1:
        issues.append(Issue(
            severity=Severity.INFO,
            message="All MX records have the same priority (round-robin load balancing)",
        ))

    provider = _detect_provider(mail_hosts)
    if provider:
        issues.append(Issue(
            severity=Severity.INFO,
            message=f"Email provider detected: {provider}",
        ))

    logger.debug("MX for %s: %d records, provider=%s", domain, len(records), provider)
    return MxResult(found=True, records=tuple(records), provider=provider, issues=tuple(issues))


def _detect_provider(records: list[MxRecord]) -> str | None:
    # Most preferred exchange first
    for record in records:
        provider = identify_mx_provider(record.exchange)
        if provider:
            return provider
    return None
