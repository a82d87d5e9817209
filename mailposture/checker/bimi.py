"""
BIMI checker: Brand Indicators for Message Identification.

BIMI allows brands to display their logo in email clients by publishing a
DNS TXT record at default._bimi.{domain}.  A Verified Mark Certificate (VMC)
strengthens trust but is not required for the record to be present.

Whether DMARC enforcement backs the record is checked by the engine once
both results are known.
"""

from __future__ import annotations

import logging

from mailposture.checker.records import filter_records, parse_tags
from mailposture.checker.resolver import resolve_txt
from mailposture.config import AnalysisSettings
from mailposture.models import BimiResult, Issue, Severity

logger = logging.getLogger(__name__)


def check_bimi(domain: str, settings: AnalysisSettings | None = None) -> BimiResult:
    """Check BIMI DNS configuration for *domain*.

    Args:
        domain: The normalized domain name to check.
        settings: Optional AnalysisSettings for resolver configuration.

    Returns:
        A BimiResult.

    Raises:
        DnsLookupError: On DNS transport failures.
    """
    bimi_records = filter_records(
        resolve_txt(f"default._bimi.{domain}", settings), "v=bimi1"
    )

    if not bimi_records:
        logger.debug("No BIMI record for %s", domain)
        return BimiResult(found=False, issues=(Issue(
            severity=Severity.INFO,
            message="No BIMI record found",
            recommendation="Consider adding a BIMI record to display your logo in supporting email clients",
        ),))

    issues: list[Issue] = []
    if len(bimi_records) > 1:
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message=f"Multiple BIMI records found ({len(bimi_records)})",
            recommendation="Publish a single BIMI record at default._bimi",
        ))

    record = bimi_records[0]
    tags = parse_tags(record)
    logo_url = tags.get("l") or None
    certificate_url = tags.get("a") or None

    if logo_url is None:
        issues.append(Issue(
            severity=Severity.HIGH,
            message="BIMI record has no logo URL (l= tag)",
            recommendation="Add l=https://... pointing to an SVG Tiny PS logo",
        ))
    else:
        if not logo_url.lower().startswith("https://"):
            issues.append(Issue(
                severity=Severity.HIGH,
                message="BIMI logo URL must use HTTPS",
                recommendation="Serve the BIMI logo over HTTPS",
            ))
        if not logo_url.lower().endswith(".svg"):
            issues.append(Issue(
                severity=Severity.MEDIUM,
                message="BIMI logo should be an SVG file",
                recommendation="Use an SVG Tiny PS formatted logo",
            ))

    if certificate_url is None:
        issues.append(Issue(
            severity=Severity.LOW,
            message="No Verified Mark Certificate (a= tag) - logo may not display in Gmail",
            recommendation="Obtain a VMC to display the logo in Gmail and other providers",
        ))

    return BimiResult(
        found=True,
        record=record,
        version=tags.get("v"),
        logo_url=logo_url,
        certificate_url=certificate_url,
        issues=tuple(issues),
    )
