"""
Check orchestration engine.

Coordinates the execution of every mechanism check for a single domain or a
batch of domains.  Handles:
- Normalizing and validating the requested domain
- Running each enabled check concurrently with its own deadline
- Isolating failures and timeouts to the check that raised them
- Cross-validating settled results (BIMI vs DMARC, MTA-STS vs MX)
- Deriving ARC readiness and computing score, grade and recommendations
- Windowed batch analysis via ThreadPoolExecutor

DNS lookups cannot be interrupted once started: when a check misses its
deadline its worker thread is left to finish in the background and the
result is discarded.  HTTP requests and dig runs are bounded by their own
transport timeouts.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from datetime import datetime, timezone
from typing import Callable, Iterable

from mailposture.checker import resolver
from mailposture.checker import whois as whois_checker
from mailposture.checker.arc import check_arc_readiness
from mailposture.checker.bimi import check_bimi
from mailposture.checker.dkim import check_dkim
from mailposture.checker.dmarc import check_dmarc
from mailposture.checker.dnssec import check_dnssec
from mailposture.checker.mta_sts import check_mta_sts
from mailposture.checker.mx import check_mx
from mailposture.checker.scorer import calculate_grade, generate_recommendations
from mailposture.checker.spf import check_spf
from mailposture.checker.tls_rpt import check_tls_rpt
from mailposture.checker.whois import check_whois
from mailposture.config import CHECK_NAMES, AnalysisSettings
from mailposture.exceptions import CheckError, CheckTimeoutError, InvalidDomainError
from mailposture.models import (
    ArcResult,
    BimiResult,
    DkimResult,
    DmarcResult,
    DnssecResult,
    DomainResult,
    Issue,
    MechanismResult,
    MtaStsResult,
    MxResult,
    Severity,
    SpfResult,
    TlsRptResult,
    WhoisResult,
)
from mailposture.utils.domain import normalize_domain

logger = logging.getLogger(__name__)

CheckFn = Callable[[str, AnalysisSettings], MechanismResult]

# ARC is derived from these after the join
_ARC_PREREQUISITES = ("spf", "dkim", "dmarc")


def _checkers() -> dict[str, tuple[type[MechanismResult], CheckFn]]:
    """Return the independently dispatched checks, in reporting order."""
    return {
        "spf": (SpfResult, check_spf),
        "dkim": (DkimResult, lambda domain, settings: check_dkim(
            domain, settings.get_dkim_selectors(), settings,
        )),
        "dmarc": (DmarcResult, check_dmarc),
        "mx": (MxResult, check_mx),
        "bimi": (BimiResult, check_bimi),
        "mta_sts": (MtaStsResult, check_mta_sts),
        "tls_rpt": (TlsRptResult, check_tls_rpt),
        "dnssec": (DnssecResult, check_dnssec),
        "whois": (WhoisResult, check_whois),
    }


def clear_cache() -> None:
    """Reset the DNS answer cache and the RDAP bootstrap cache."""
    resolver.clear_cache()
    whois_checker.clear_cache()


def analyze_domain(domain: str, settings: AnalysisSettings | None = None) -> DomainResult:
    """Run every enabled check for *domain* and grade the outcome.

    Never raises: invalid input and unexpected errors are reported through
    ``DomainResult.error`` with grade ``F``.  For invalid input
    ``DomainResult.domain`` holds the raw value, since it has no normalized
    form.

    Args:
        domain: A domain name or an http(s) URL whose host is analyzed.
        settings: Optional AnalysisSettings; defaults apply if omitted.

    Returns:
        A DomainResult.
    """
    if settings is None:
        settings = AnalysisSettings()

    start_time = time.monotonic()
    timestamp = datetime.now(timezone.utc).isoformat()

    try:
        normalized = normalize_domain(domain)
    except InvalidDomainError as exc:
        logger.info("Rejected domain input %r", domain)
        return DomainResult(
            domain=str(domain),
            grade="F",
            score=0,
            timestamp=timestamp,
            error=str(exc),
        )

    try:
        result = _analyze(normalized, settings, timestamp, start_time)
    except Exception as exc:
        logger.exception("Analysis of %s failed unexpectedly", normalized)
        return DomainResult(
            domain=normalized,
            grade="F",
            score=0,
            timestamp=timestamp,
            error=f"Analysis failed: {exc}",
            execution_time_ms=_elapsed_ms(start_time),
        )

    logger.info(
        "Check completed for %s: grade=%s, score=%d, elapsed=%dms",
        normalized, result.grade, result.score, result.execution_time_ms,
    )
    return result


def analyze_multiple(
    domains: Iterable[str],
    settings: AnalysisSettings | None = None,
) -> list[DomainResult]:
    """Analyze *domains* in windows of ``settings.concurrency``.

    Domains within a window run in parallel; results are returned in input
    order.  Caches are cleared after every window.
    """
    if settings is None:
        settings = AnalysisSettings()

    domain_list = list(domains)
    width = settings.concurrency
    results: list[DomainResult] = []

    logger.info(
        "Starting batch analysis of %d domains (concurrency=%d)", len(domain_list), width,
    )

    for offset in range(0, len(domain_list), width):
        window = domain_list[offset:offset + width]
        with ThreadPoolExecutor(max_workers=len(window), thread_name_prefix="analyze") as executor:
            futures = [executor.submit(analyze_domain, d, settings) for d in window]
            results.extend(future.result() for future in futures)
        clear_cache()

    logger.info("Batch analysis complete: %d domains", len(results))
    return results


def _analyze(
    domain: str,
    settings: AnalysisSettings,
    timestamp: str,
    start_time: float,
) -> DomainResult:
    results, failures = _run_checks(domain, settings)

    spf = results["spf"]
    dkim = results["dkim"]
    dmarc = results["dmarc"]
    mx = results["mx"]

    results["arc"] = _derive_arc(spf, dkim, dmarc, settings, failures)
    results["bimi"] = _cross_check_bimi(results["bimi"], dmarc, "dmarc" in failures)
    results["mta_sts"] = _cross_check_mta_sts(
        results["mta_sts"], mx, mx_settled=not mx.skipped and "mx" not in failures,
    )

    score, grade = calculate_grade(spf, dkim, dmarc, mx)
    recommendations = generate_recommendations(*(results[name] for name in CHECK_NAMES))

    error = None
    if failures:
        error = "; ".join(
            f"{_checkers()[name][0].label}: {reason}" for name, reason in failures.items()
        )

    return DomainResult(
        domain=domain,
        grade=grade,
        score=score,
        timestamp=timestamp,
        recommendations=tuple(recommendations),
        error=error,
        execution_time_ms=_elapsed_ms(start_time),
        **results,
    )


def _run_checks(
    domain: str,
    settings: AnalysisSettings,
) -> tuple[dict[str, MechanismResult], dict[str, str]]:
    """Run the enabled checks concurrently and wait for every one of them.

    Returns:
        (results keyed by check name, failure reasons keyed by check name)
    """
    checkers = _checkers()
    results: dict[str, MechanismResult] = {}
    failures: dict[str, str] = {}

    enabled = [name for name in checkers if settings.is_enabled(name)]
    for name, (result_type, _) in checkers.items():
        if name not in enabled:
            results[name] = result_type.skipped_result()

    if not enabled:
        return results, failures

    # One worker per check so that every deadline starts at submission
    executor = ThreadPoolExecutor(max_workers=len(enabled), thread_name_prefix="check")
    try:
        pending: dict[str, tuple[Future, float]] = {}
        for name in enabled:
            future = executor.submit(checkers[name][1], domain, settings)
            pending[name] = (future, time.monotonic() + settings.timeout_seconds)

        for name, (future, deadline) in pending.items():
            result_type = checkers[name][0]
            try:
                results[name] = future.result(timeout=max(deadline - time.monotonic(), 0))
                continue
            except FuturesTimeoutError:
                reason = str(CheckTimeoutError(settings.timeout_ms))
                logger.warning("%s check for %s %s", result_type.label, domain, reason)
            except CheckError as exc:
                reason = str(exc) or exc.__class__.__name__
                logger.warning("%s check for %s failed: %s", result_type.label, domain, reason)
            except Exception as exc:
                reason = str(exc) or exc.__class__.__name__
                logger.exception("Error in %s check for %s", result_type.label, domain)
            results[name] = result_type.failure(reason)
            failures[name] = reason
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return results, failures


def _derive_arc(
    spf: SpfResult,
    dkim: DkimResult,
    dmarc: DmarcResult,
    settings: AnalysisSettings,
    failures: dict[str, str],
) -> ArcResult:
    """Derive ARC readiness, or skip it when a prerequisite is unknown.

    A prerequisite that was disabled or whose check failed leaves nothing
    to derive from.
    """
    if not settings.is_enabled("arc"):
        return ArcResult.skipped_result()
    if any(not settings.is_enabled(name) or name in failures for name in _ARC_PREREQUISITES):
        return ArcResult.skipped_result()
    return check_arc_readiness(spf, dkim, dmarc)


def _cross_check_bimi(bimi: BimiResult, dmarc: DmarcResult, dmarc_failed: bool) -> BimiResult:
    """Flag a BIMI record that DMARC does not enforce."""
    if not bimi.found or dmarc.skipped or dmarc_failed:
        return bimi
    if dmarc.found and dmarc.policy in ("quarantine", "reject"):
        return bimi
    return bimi.with_issues(Issue(
        severity=Severity.HIGH,
        message="BIMI requires DMARC enforcement (p=quarantine or p=reject)",
        recommendation="Enforce DMARC with p=quarantine or p=reject so the BIMI logo is honoured",
    ))


def _cross_check_mta_sts(mta_sts: MtaStsResult, mx: MxResult, mx_settled: bool) -> MtaStsResult:
    """Flag live MX hosts that the MTA-STS policy does not list."""
    if not (mta_sts.found and mta_sts.policy_mx and mx_settled and mx.found):
        return mta_sts

    uncovered = [
        record.exchange
        for record in mx.records
        if not record.is_null and not mx_matches_policy(record.exchange, mta_sts.policy_mx)
    ]
    if not uncovered:
        return mta_sts

    return mta_sts.with_issues(*(
        Issue(
            severity=Severity.HIGH,
            message=f"MX host {host} is not covered by the MTA-STS policy",
            recommendation=f"Add mx: {host} to the MTA-STS policy or remove the MX record",
        )
        for host in uncovered
    ))


def mx_matches_policy(host: str, patterns: Iterable[str]) -> bool:
    """Return True if *host* matches one of the MTA-STS ``mx:`` patterns.

    A ``*.`` pattern matches exactly one additional leftmost label.
    """
    host = host.lower().rstrip(".")
    for pattern in patterns:
        pattern = pattern.lower().rstrip(".")
        if pattern.startswith("*."):
            suffix = pattern[1:]
            head = host[:-len(suffix)]
            if host.endswith(suffix) and head and "." not in head:
                return True
        elif host == pattern:
            return True
    return False


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)
