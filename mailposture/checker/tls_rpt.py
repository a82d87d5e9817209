"""
TLS-RPT checker (RFC 8460).

TLS-RPT asks sending MTAs to report TLS negotiation failures to the
addresses published at _smtp._tls.{domain}.
"""

from __future__ import annotations

import logging

from mailposture.checker.records import filter_records, parse_tags, split_addresses
from mailposture.checker.resolver import resolve_txt
from mailposture.config import AnalysisSettings
from mailposture.models import Issue, Severity, TlsRptResult

logger = logging.getLogger(__name__)

REPORT_SCHEMES = ("mailto:", "https:")


def check_tls_rpt(domain: str, settings: AnalysisSettings | None = None) -> TlsRptResult:
    """Check the TLS-RPT record for *domain*.

    Raises:
        DnsLookupError: On DNS transport failures.
    """
    rpt_records = filter_records(resolve_txt(f"_smtp._tls.{domain}", settings), "v=tlsrptv1")

    if not rpt_records:
        logger.debug("No TLS-RPT record for %s", domain)
        return TlsRptResult(found=False, issues=(Issue(
            severity=Severity.LOW,
            message="No TLS-RPT record found",
            recommendation="Add a TLS-RPT record to receive reports about TLS delivery failures",
        ),))

    issues: list[Issue] = []
    if len(rpt_records) > 1:
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message=f"Multiple TLS-RPT records found ({len(rpt_records)})",
            recommendation="Publish a single v=TLSRPTv1 record at _smtp._tls",
        ))

    record = rpt_records[0]
    tags = parse_tags(record)
    rua = split_addresses(tags.get("rua"))

    if not rua:
        issues.append(Issue(
            severity=Severity.HIGH,
            message="TLS-RPT record has no reporting address (rua=)",
            recommendation="Add rua=mailto:tls-reports@yourdomain.com to the TLS-RPT record",
        ))

    for address in rua:
        if not address.lower().startswith(REPORT_SCHEMES):
            issues.append(Issue(
                severity=Severity.MEDIUM,
                message=f"TLS-RPT reporting address has an unsupported scheme: {address}",
                recommendation="Use mailto: or https: reporting addresses",
            ))

    return TlsRptResult(
        found=True,
        record=record,
        version=tags.get("v"),
        rua=tuple(rua),
        issues=tuple(issues),
    )
