"""
DKIM key validation.

Validates DKIM (DomainKeys Identified Mail) keys for a domain:
- Queries {selector}._domainkey.{domain} TXT records for each selector
- Parses DKIM record tags (v=, k=, p=, t=)
- Validates key presence and detects revoked keys (empty p=)
- Measures RSA key size using the cryptography library
- Aggregates findings across all selectors
"""

from __future__ import annotations

import base64
import binascii
import logging
import textwrap
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError

from cryptography.hazmat.primitives.serialization import (
    load_der_public_key,
    load_pem_public_key,
)

from mailposture.checker.records import parse_tags
from mailposture.checker.resolver import resolve_txt
from mailposture.config import AnalysisSettings
from mailposture.exceptions import CheckError, DnsLookupError
from mailposture.models import DkimResult, DkimSelectorResult, Issue, Severity

logger = logging.getLogger(__name__)

ED25519_KEY_BITS = 256

# Decoded DER length thresholds used when the key cannot be parsed.
_SIZE_ESTIMATES = ((550, 4096), (270, 2048), (140, 1024))

# Selector lookups must settle within this share of the check timeout.
_SELECTOR_DEADLINE_FRACTION = 0.8


def check_dkim(
    domain: str,
    selectors: list[str] | None = None,
    settings: AnalysisSettings | None = None,
) -> DkimResult:
    """Validate DKIM keys for *domain* across all given *selectors*.

    Args:
        domain: The normalized domain name to check.
        selectors: DKIM selectors to probe; defaults to the settings'
            selector list.
        settings: Optional AnalysisSettings for resolver configuration.

    Returns:
        A DkimResult with one DkimSelectorResult per selector probed.

    Raises:
        CheckError: If every selector lookup failed at the transport level.
    """
    if settings is None:
        settings = AnalysisSettings()
    if not selectors:
        selectors = settings.get_dkim_selectors()

    selector_results = _query_selectors(domain, selectors, settings)
    issues: list[Issue] = []
    failures = 0

    for selector_result in selector_results:
        if selector_result.error is not None:
            failures += 1
            continue
        if selector_result.found:
            issues.extend(_selector_issues(selector_result))

    if failures and failures == len(selectors):
        raise CheckError(
            f"all {failures} selector lookups failed: {selector_results[0].error}"
        )

    found = any(s.found for s in selector_results)
    if not found:
        logger.info("No DKIM selectors found for %s (%d probed)", domain, len(selectors))
        issues.append(Issue(
            severity=Severity.HIGH,
            message="No DKIM records found",
            recommendation="Configure DKIM signing for your email domain",
        ))

    return DkimResult(found=found, selectors=tuple(selector_results), issues=tuple(issues))


def _query_selectors(
    domain: str,
    selectors: list[str],
    settings: AnalysisSettings,
) -> list[DkimSelectorResult]:
    """Query every selector concurrently, in input order.

    Lookups still running at the deadline are recorded as timed out
    and left to finish in the background.
    """
    budget = settings.timeout_seconds * _SELECTOR_DEADLINE_FRACTION
    deadline = time.monotonic() + budget

    results: list[DkimSelectorResult] = []
    executor = ThreadPoolExecutor(max_workers=len(selectors), thread_name_prefix="dkim")
    try:
        futures = [
            executor.submit(_check_single_selector, domain, selector, settings)
            for selector in selectors
        ]
        for selector, future in zip(selectors, futures):
            try:
                results.append(future.result(timeout=max(deadline - time.monotonic(), 0)))
            except FuturesTimeoutError:
                logger.warning("DKIM lookup for %s._domainkey.%s timed out", selector, domain)
                results.append(DkimSelectorResult(
                    selector=selector,
                    error=f"lookup timed out after {int(budget * 1000)}ms",
                ))
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return results


def _check_single_selector(
    domain: str,
    selector: str,
    settings: AnalysisSettings,
) -> DkimSelectorResult:
    """Probe a single DKIM selector for *domain*."""
    dkim_domain = f"{selector}._domainkey.{domain}"
    try:
        records = resolve_txt(dkim_domain, settings)
    except DnsLookupError as exc:
        logger.warning("DKIM lookup failed for %s: %s", dkim_domain, exc)
        return DkimSelectorResult(selector=selector, error=str(exc))

    raw_record = _select_dkim_record(records)
    if raw_record is None:
        return DkimSelectorResult(selector=selector)

    tags = parse_tags(raw_record)
    key_type = tags.get("k", "rsa").lower()
    testing = "y" in tags.get("t", "").lower().split(":")

    # Whitespace inside the base64 key is common and insignificant
    p_value = "".join(tags.get("p", "").split())
    if not p_value:
        return DkimSelectorResult(
            selector=selector,
            found=True,
            record=raw_record,
            key_type=key_type,
            revoked=True,
            testing=testing,
        )

    key_length = measure_key_size(p_value, key_type)
    logger.debug("DKIM %s: %s key, %s bits", dkim_domain, key_type, key_length)
    return DkimSelectorResult(
        selector=selector,
        found=True,
        record=raw_record,
        key_type=key_type,
        key_length=key_length,
        testing=testing,
    )


def _select_dkim_record(records: list[str]) -> str | None:
    """Return the first TXT string that looks like a DKIM key record."""
    for record in records:
        stripped = record.strip()
        if stripped.lower().startswith("v=dkim1"):
            return stripped
        tags = parse_tags(stripped)
        if "p" in tags and "v" not in tags:
            return stripped
    return None


def _selector_issues(result: DkimSelectorResult) -> list[Issue]:
    issues: list[Issue] = []
    name = result.selector

    if result.revoked:
        issues.append(Issue(
            severity=Severity.LOW,
            message=f"DKIM key for selector '{name}' is revoked (empty p= tag)",
            recommendation=f"Remove the revoked DKIM record for selector '{name}' if it is no longer needed",
        ))
    elif result.key_type != "ed25519" and result.key_length is not None:
        if result.key_length < 1024:
            issues.append(Issue(
                severity=Severity.HIGH,
                message=f"DKIM key for selector '{name}' is only {result.key_length} bits",
                recommendation="Rotate to a DKIM key of at least 2048 bits",
            ))
        elif result.key_length < 2048:
            issues.append(Issue(
                severity=Severity.MEDIUM,
                message=f"DKIM key for selector '{name}' is {result.key_length} bits; 2048+ recommended",
                recommendation="Upgrade DKIM key to 2048 bits",
            ))

    if result.testing:
        issues.append(Issue(
            severity=Severity.LOW,
            message=f"DKIM selector '{name}' is in testing mode (t=y)",
            recommendation=f"Remove t=y from selector '{name}' once signing is verified",
        ))

    return issues


def measure_key_size(p_value: str, key_type: str = "rsa") -> int | None:
    """Decode the base64 public key and return its size in bits.

    Uses the cryptography library to load the DER-encoded public key.
    Falls back to an estimate from the decoded length when the key
    material does not parse.

    Args:
        p_value: The base64-encoded public key from the p= tag.
        key_type: The key algorithm (rsa, ed25519).

    Returns:
        Key size in bits, or None if the value is not valid base64.
    """
    try:
        der_bytes = base64.b64decode(p_value, validate=True)
    except (binascii.Error, ValueError) as exc:
        logger.debug("Failed to decode DKIM p= base64: %s", exc)
        return None

    if key_type == "ed25519":
        return ED25519_KEY_BITS

    try:
        return load_der_public_key(der_bytes).key_size
    except (ValueError, TypeError, AttributeError) as exc:
        logger.debug("Failed to load DER public key: %s", exc)

    # Some DKIM records carry a bare PKCS#1 RSAPublicKey rather than a
    # SubjectPublicKeyInfo structure.
    pem = (
        "-----BEGIN RSA PUBLIC KEY-----\n"
        + "\n".join(textwrap.wrap(p_value, 64))
        + "\n-----END RSA PUBLIC KEY-----\n"
    )
    try:
        return load_pem_public_key(pem.encode("ascii")).key_size
    except (ValueError, TypeError, AttributeError) as exc:
        logger.debug("Failed to load PKCS#1 public key: %s", exc)

    for min_bytes, bits in _SIZE_ESTIMATES:
        if len(der_bytes) >= min_bytes:
            return bits
    return 512
