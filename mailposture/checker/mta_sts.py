"""
MTA-STS checker (RFC 8461).

MTA-STS enforces TLS encryption for inbound SMTP connections.  A domain
publishes a TXT record at _mta-sts.{domain} and serves the policy itself at
https://mta-sts.{domain}/.well-known/mta-sts.txt.  The policy's mx: patterns
are compared with the live MX hosts by the engine once both results are
known.
"""

from __future__ import annotations

import logging

import requests

from mailposture.checker.http_client import fetch
from mailposture.checker.records import filter_records, parse_tags
from mailposture.checker.resolver import resolve_txt
from mailposture.config import AnalysisSettings
from mailposture.models import Issue, MtaStsResult, Severity

logger = logging.getLogger(__name__)

POLICY_MODES = ("enforce", "testing", "none")

# Policies cached for less than a day force senders to refetch constantly
MIN_MAX_AGE = 86400

# Only the start of the policy file is read
_MAX_POLICY_BYTES = 65536


def check_mta_sts(domain: str, settings: AnalysisSettings | None = None) -> MtaStsResult:
    """Check MTA-STS configuration for *domain*.

    Args:
        domain: The normalized domain name to check.
        settings: Optional AnalysisSettings for resolver configuration and
            the policy fetch timeout.

    Returns:
        An MtaStsResult.

    Raises:
        DnsLookupError: On DNS transport failures.
    """
    if settings is None:
        settings = AnalysisSettings()

    sts_records = filter_records(resolve_txt(f"_mta-sts.{domain}", settings), "v=stsv1")

    if not sts_records:
        logger.debug("No MTA-STS record for %s", domain)
        return MtaStsResult(found=False, issues=(Issue(
            severity=Severity.LOW,
            message="No MTA-STS record found",
            recommendation="Consider implementing MTA-STS to enforce TLS for inbound email",
        ),))

    issues: list[Issue] = []
    if len(sts_records) > 1:
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message=f"Multiple MTA-STS records found ({len(sts_records)})",
            recommendation="Publish a single v=STSv1 record at _mta-sts",
        ))

    record = sts_records[0]
    record_id = parse_tags(record).get("id") or None
    if record_id is None:
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message="MTA-STS record has no id= tag",
            recommendation="Add an id= tag and change it whenever the policy changes",
        ))

    policy_url = f"https://mta-sts.{domain}/.well-known/mta-sts.txt"
    body = _fetch_policy(policy_url, settings.timeout_seconds, issues)

    if body is None:
        return MtaStsResult(
            found=True,
            record=record,
            record_id=record_id,
            policy_reachable=False,
            issues=tuple(issues),
        )

    policy_mode, policy_mx, policy_max_age = parse_policy_file(body)
    issues.extend(_evaluate_policy(policy_mode, policy_mx, policy_max_age))

    return MtaStsResult(
        found=True,
        record=record,
        record_id=record_id,
        policy_mode=policy_mode,
        policy_mx=tuple(policy_mx),
        policy_max_age=policy_max_age,
        policy_reachable=True,
        issues=tuple(issues),
    )


def _fetch_policy(url: str, timeout: float, issues: list[Issue]) -> str | None:
    """Fetch the policy file, recording an issue when it is unavailable."""
    try:
        response = fetch(url, timeout=timeout, max_bytes=_MAX_POLICY_BYTES)
    except requests.RequestException as exc:
        logger.warning("MTA-STS policy fetch failed for %s: %s", url, exc)
        issues.append(Issue(
            severity=Severity.HIGH,
            message=f"MTA-STS policy file unreachable: {exc.__class__.__name__}",
            recommendation=f"Serve the MTA-STS policy at {url}",
        ))
        return None

    if response.status_code != 200:
        logger.info("MTA-STS policy at %s returned HTTP %d", url, response.status_code)
        issues.append(Issue(
            severity=Severity.HIGH,
            message=f"MTA-STS policy file returned HTTP {response.status_code}",
            recommendation=f"Serve the MTA-STS policy at {url}",
        ))
        return None

    return response.text


def parse_policy_file(body: str) -> tuple[str | None, list[str], int | None]:
    """Parse the content of an MTA-STS policy file.

    Returns:
        (policy_mode, policy_mx, policy_max_age)
    """
    policy_mode: str | None = None
    policy_mx: list[str] = []
    policy_max_age: int | None = None

    for line in body.splitlines():
        line = line.strip()
        if not line or ":" not in line:
            continue
        key, _, value = line.partition(":")
        key = key.strip().lower()
        value = value.strip()

        if key == "mode":
            policy_mode = value.lower()
        elif key == "mx":
            if value:
                policy_mx.append(value.lower())
        elif key == "max_age":
            try:
                policy_max_age = int(value)
            except ValueError:
                logger.debug("Invalid MTA-STS max_age value: %r", value)

    return policy_mode, policy_mx, policy_max_age


def _evaluate_policy(
    policy_mode: str | None,
    policy_mx: list[str],
    policy_max_age: int | None,
) -> list[Issue]:
    issues: list[Issue] = []

    if policy_mode == "testing":
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message="MTA-STS is in testing mode",
            recommendation="Switch MTA-STS to mode: enforce once TLS reports are clean",
        ))
    elif policy_mode == "none":
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message="MTA-STS mode is none - policy is disabled",
            recommendation="Switch MTA-STS to mode: enforce",
        ))
    elif policy_mode not in POLICY_MODES:
        issues.append(Issue(
            severity=Severity.HIGH,
            message="MTA-STS policy has a missing or unknown mode",
            recommendation="Set mode: enforce in the MTA-STS policy file",
        ))

    if policy_mode in ("enforce", "testing") and not policy_mx:
        issues.append(Issue(
            severity=Severity.HIGH,
            message="MTA-STS policy lists no mx: entries",
            recommendation="List every MX host in the MTA-STS policy with mx: lines",
        ))

    if policy_max_age is not None and policy_max_age < MIN_MAX_AGE:
        issues.append(Issue(
            severity=Severity.LOW,
            message=f"MTA-STS max_age is short ({policy_max_age}s)",
            recommendation="Raise max_age to at least 86400 (one day), ideally 604800 or more",
        ))

    return issues
