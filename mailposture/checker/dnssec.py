"""
DNSSEC record checker.

Queries the domain's own DS and DNSKEY records with the external ``dig``
tool and classifies the algorithms and digest types they use:
- DS lines:     keyTag algorithm digestType digestHex
- DNSKEY lines: flags protocol algorithm publicKeyBase64

This is not a validating resolver; the chain of trust up to the root is
never walked.
"""

from __future__ import annotations

import logging
import math
import subprocess
import time
from types import MappingProxyType
from typing import Mapping

from mailposture.config import AnalysisSettings, Config
from mailposture.exceptions import DnssecQueryError
from mailposture.models import (
    AlgorithmClassification,
    DnskeyRecord,
    DnskeyRecordSet,
    DnssecResult,
    DsRecord,
    DsRecordSet,
    Issue,
    Severity,
)

logger = logging.getLogger(__name__)

KSK_FLAGS = 257
ZSK_FLAGS = 256

# IANA DNS Security Algorithm Numbers
DNSSEC_ALGORITHMS: Mapping[int, AlgorithmClassification] = MappingProxyType({
    1: AlgorithmClassification("RSAMD5", "deprecated"),
    3: AlgorithmClassification("DSA", "deprecated"),
    5: AlgorithmClassification("RSASHA1", "weak"),
    6: AlgorithmClassification("DSA-NSEC3-SHA1", "deprecated"),
    7: AlgorithmClassification("RSASHA1-NSEC3-SHA1", "weak"),
    8: AlgorithmClassification("RSASHA256", "acceptable"),
    10: AlgorithmClassification("RSASHA512", "acceptable"),
    12: AlgorithmClassification("ECC-GOST", "deprecated"),
    13: AlgorithmClassification("ECDSAP256SHA256", "strong"),
    14: AlgorithmClassification("ECDSAP384SHA384", "strong"),
    15: AlgorithmClassification("ED25519", "strong"),
    16: AlgorithmClassification("ED448", "strong"),
})

# IANA Delegation Signer Digest Algorithms
DS_DIGEST_TYPES: Mapping[int, AlgorithmClassification] = MappingProxyType({
    1: AlgorithmClassification("SHA-1", "weak"),
    2: AlgorithmClassification("SHA-256", "strong"),
    3: AlgorithmClassification("GOST R 34.11-94", "deprecated"),
    4: AlgorithmClassification("SHA-384", "strong"),
})


def run_dig(
    domain: str,
    rdtype: str,
    timeout: float,
    resolver: str | None = None,
) -> list[str]:
    """Run ``dig +short`` for *domain*/*rdtype* and return its output lines.

    The process is killed if it outlives *timeout* seconds.

    Raises:
        FileNotFoundError: If the dig binary is not installed.
        DnssecQueryError: If dig times out or exits with an error status.
    """
    cmd = [
        Config.DIG_PATH,
        "+short",
        f"+time={max(1, math.ceil(timeout))}",
        "+tries=1",
        domain,
        rdtype,
    ]
    if resolver:
        cmd.append(f"@{resolver}")

    logger.debug("Running %s", " ".join(cmd))
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise DnssecQueryError(f"dig {rdtype} query for {domain} timed out") from None

    if proc.returncode != 0:
        detail = proc.stderr.strip() or proc.stdout.strip()
        raise DnssecQueryError(
            f"dig {rdtype} query for {domain} exited with status {proc.returncode}: {detail}"
        )

    return [line.strip() for line in proc.stdout.splitlines() if line.strip()]


def parse_ds_line(line: str) -> DsRecord | None:
    """Parse one ``dig +short DS`` line, or return None if it is not one."""
    parts = line.split()
    if len(parts) < 4:
        return None
    try:
        key_tag, algorithm, digest_type = (int(p) for p in parts[:3])
    except ValueError:
        return None

    algo = DNSSEC_ALGORITHMS.get(algorithm)
    digest = DS_DIGEST_TYPES.get(digest_type)
    return DsRecord(
        key_tag=key_tag,
        algorithm=algorithm,
        digest_type=digest_type,
        # dig splits long digests into space-separated chunks
        digest="".join(parts[3:]).upper(),
        algorithm_name=algo.name if algo else None,
        algorithm_strength=algo.strength if algo else None,
        digest_name=digest.name if digest else None,
        digest_strength=digest.strength if digest else None,
    )


def parse_dnskey_line(line: str) -> DnskeyRecord | None:
    """Parse one ``dig +short DNSKEY`` line, or return None if it is not one."""
    parts = line.split()
    if len(parts) < 4:
        return None
    try:
        flags, protocol, algorithm = (int(p) for p in parts[:3])
    except ValueError:
        return None

    algo = DNSSEC_ALGORITHMS.get(algorithm)
    return DnskeyRecord(
        flags=flags,
        protocol=protocol,
        algorithm=algorithm,
        public_key="".join(parts[3:]),
        algorithm_name=algo.name if algo else None,
        algorithm_strength=algo.strength if algo else None,
    )


def check_dnssec(domain: str, settings: AnalysisSettings | None = None) -> DnssecResult:
    """Check DS and DNSKEY records for *domain*.

    Args:
        domain: The normalized domain name to check.
        settings: Optional AnalysisSettings; supplies the timeout shared
            by both dig runs and the resolver override.

    Returns:
        A DnssecResult.  A missing dig binary is reported as an issue.

    Raises:
        DnssecQueryError: If dig times out or fails.
    """
    if settings is None:
        settings = AnalysisSettings()

    deadline = time.monotonic() + settings.timeout_seconds
    try:
        ds_lines = run_dig(domain, "DS", settings.timeout_seconds, settings.resolver)
        remaining = max(deadline - time.monotonic(), 0.1)
        dnskey_lines = run_dig(domain, "DNSKEY", remaining, settings.resolver)
    except FileNotFoundError:
        logger.warning("dig not found at %r; DNSSEC check unavailable", Config.DIG_PATH)
        return DnssecResult(enabled=False, issues=(Issue(
            severity=Severity.HIGH,
            message="dig command not found - DNSSEC records could not be checked",
            recommendation="Install dig (bind-utils / dnsutils) to enable DNSSEC checks",
        ),))

    ds_records = [r for r in map(parse_ds_line, ds_lines) if r is not None]
    dnskey_records = [r for r in map(parse_dnskey_line, dnskey_lines) if r is not None]

    ds = DsRecordSet(found=bool(ds_records), records=tuple(ds_records))
    dnskey = DnskeyRecordSet(
        found=bool(dnskey_records),
        records=tuple(dnskey_records),
        ksk_count=sum(1 for k in dnskey_records if k.is_ksk),
        zsk_count=sum(1 for k in dnskey_records if k.is_zsk),
    )
    enabled = ds.found and dnskey.found

    if not enabled:
        logger.info("DNSSEC not enabled for %s (DS=%d DNSKEY=%d)",
                    domain, len(ds_records), len(dnskey_records))
        return DnssecResult(enabled=False, ds=ds, dnskey=dnskey, issues=(
            _not_enabled_issue(ds.found, dnskey.found),
        ))

    issues = _classification_issues(ds_records, dnskey_records)
    if dnskey.ksk_count == 0:
        issues.append(Issue(
            severity=Severity.LOW,
            message="No key-signing key (flags 257) found in DNSKEY records",
            recommendation="Publish a separate key-signing key for the zone",
        ))

    return DnssecResult(enabled=True, ds=ds, dnskey=dnskey, issues=tuple(issues))


def _not_enabled_issue(ds_found: bool, dnskey_found: bool) -> Issue:
    message = "DNSSEC is not enabled"
    if ds_found:
        message += " (DS records published but no DNSKEY records found)"
    elif dnskey_found:
        message += " (DNSKEY records found but no DS record at the parent)"
    return Issue(
        severity=Severity.INFO,
        message=message,
        recommendation="Consider enabling DNSSEC at your DNS provider and registrar",
    )


def _classification_issues(
    ds_records: list[DsRecord],
    dnskey_records: list[DnskeyRecord],
) -> list[Issue]:
    """Return one issue per distinct weak, deprecated or unknown number."""
    issues: list[Issue] = []
    seen: set[tuple[str, int]] = set()

    def classify(kind: str, number: int, table: Mapping[int, AlgorithmClassification]) -> None:
        if (kind, number) in seen:
            return
        seen.add((kind, number))

        entry = table.get(number)
        if kind == "digest type":
            advice = "Publish DS records using SHA-256 (digest type 2)"
        else:
            advice = "Re-sign the zone with ECDSAP256SHA256 (13) or ED25519 (15)"
        if entry is None:
            issues.append(Issue(
                severity=Severity.LOW,
                message=f"Unknown DNSSEC {kind} {number}",
            ))
        elif entry.strength == "deprecated":
            issues.append(Issue(
                severity=Severity.HIGH,
                message=f"DNSSEC uses deprecated {kind} {entry.name} ({number})",
                recommendation=advice,
            ))
        elif entry.strength == "weak":
            issues.append(Issue(
                severity=Severity.MEDIUM,
                message=f"DNSSEC uses weak {kind} {entry.name} ({number})",
                recommendation=advice,
            ))

    for ds in ds_records:
        classify("algorithm", ds.algorithm, DNSSEC_ALGORITHMS)
        classify("digest type", ds.digest_type, DS_DIGEST_TYPES)
    for key in dnskey_records:
        classify("algorithm", key.algorithm, DNSSEC_ALGORITHMS)

    return issues
