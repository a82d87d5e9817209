"""
Result types for the posture engine.

Every mechanism produces one frozen result dataclass.  All of them share
the ``MechanismResult`` base, which carries the issue sequence and the
``skipped`` flag, and offers the two synthetic shapes the engine needs:
``skipped_result()`` for checks disabled by the caller and ``failure()``
for checks that raised or timed out.

Invariants:
  * ``skipped=True`` implies nothing was found and ``issues`` is empty.
  * Issues are immutable; cross-validation only ever appends new ones
    through ``with_issues()``.
"""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Any, ClassVar


class Severity(str, enum.Enum):
    """Issue severity, ordered from most to least urgent."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Higher rank means more urgent."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


@dataclass(frozen=True)
class Issue:
    severity: Severity
    message: str
    recommendation: str | None = None


# ---------------------------------------------------------------------------
# Base result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MechanismResult:
    """Fields and constructors shared by every mechanism result."""

    label: ClassVar[str] = ""

    issues: tuple[Issue, ...] = ()
    skipped: bool = False

    @property
    def present(self) -> bool:
        """True when the mechanism is configured for the domain."""
        return bool(getattr(self, "found", False))

    @classmethod
    def skipped_result(cls):
        return cls(skipped=True)

    @classmethod
    def failure(cls, reason: str):
        """Result for a check that raised or timed out."""
        return cls(
            issues=(
                Issue(
                    severity=Severity.HIGH,
                    message=f"{cls.label} check failed: {reason}",
                    recommendation=f"Re-run the {cls.label} check; the lookup did not complete",
                ),
            ),
        )

    def with_issues(self, *issues: Issue):
        """Return a copy with *issues* appended after the existing ones."""
        return dataclasses.replace(self, issues=self.issues + tuple(issues))


# ---------------------------------------------------------------------------
# SPF / DKIM / DMARC / MX
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpfResult(MechanismResult):
    label: ClassVar[str] = "SPF"

    found: bool = False
    record: str | None = None
    mechanism: str | None = None
    lookup_count: int = 0
    includes: tuple[str, ...] = ()
    mechanisms: tuple[dict[str, str], ...] = ()


@dataclass(frozen=True)
class DkimSelectorResult:
    selector: str
    found: bool = False
    record: str | None = None
    key_type: str | None = None
    key_length: int | None = None
    revoked: bool = False
    testing: bool = False
    error: str | None = None

    @property
    def usable(self) -> bool:
        return self.found and not self.revoked


@dataclass(frozen=True)
class DkimResult(MechanismResult):
    label: ClassVar[str] = "DKIM"

    found: bool = False
    selectors: tuple[DkimSelectorResult, ...] = ()

    @property
    def found_selectors(self) -> tuple[DkimSelectorResult, ...]:
        return tuple(s for s in self.selectors if s.found)


@dataclass(frozen=True)
class DmarcResult(MechanismResult):
    label: ClassVar[str] = "DMARC"

    found: bool = False
    record: str | None = None
    policy: str | None = None
    subdomain_policy: str | None = None
    reporting_enabled: bool = False
    rua: tuple[str, ...] = ()
    ruf: tuple[str, ...] = ()
    pct: int | None = None
    aspf: str | None = None
    adkim: str | None = None


@dataclass(frozen=True)
class MxRecord:
    exchange: str
    priority: int

    @property
    def is_null(self) -> bool:
        """RFC 7505 null MX ("." or an empty exchange)."""
        return self.exchange in (".", "")


@dataclass(frozen=True)
class MxResult(MechanismResult):
    label: ClassVar[str] = "MX"

    found: bool = False
    records: tuple[MxRecord, ...] = ()
    provider: str | None = None


# ---------------------------------------------------------------------------
# BIMI / MTA-STS / TLS-RPT / ARC
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BimiResult(MechanismResult):
    label: ClassVar[str] = "BIMI"

    found: bool = False
    record: str | None = None
    version: str | None = None
    logo_url: str | None = None
    certificate_url: str | None = None


@dataclass(frozen=True)
class MtaStsResult(MechanismResult):
    label: ClassVar[str] = "MTA-STS"

    found: bool = False
    record: str | None = None
    record_id: str | None = None
    policy_mode: str | None = None
    policy_mx: tuple[str, ...] = ()
    policy_max_age: int | None = None
    policy_reachable: bool | None = None


@dataclass(frozen=True)
class TlsRptResult(MechanismResult):
    label: ClassVar[str] = "TLS-RPT"

    found: bool = False
    record: str | None = None
    version: str | None = None
    rua: tuple[str, ...] = ()


@dataclass(frozen=True)
class ArcResult(MechanismResult):
    label: ClassVar[str] = "ARC"

    ready: bool = False
    can_sign: bool = False
    can_validate: bool = False

    @property
    def present(self) -> bool:
        return self.ready


# ---------------------------------------------------------------------------
# DNSSEC
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AlgorithmClassification:
    name: str
    strength: str  # deprecated | weak | acceptable | strong


@dataclass(frozen=True)
class DsRecord:
    key_tag: int
    algorithm: int
    digest_type: int
    digest: str
    algorithm_name: str | None = None
    algorithm_strength: str | None = None
    digest_name: str | None = None
    digest_strength: str | None = None


@dataclass(frozen=True)
class DnskeyRecord:
    flags: int
    protocol: int
    algorithm: int
    public_key: str
    algorithm_name: str | None = None
    algorithm_strength: str | None = None

    @property
    def is_ksk(self) -> bool:
        return self.flags == 257

    @property
    def is_zsk(self) -> bool:
        return self.flags == 256


@dataclass(frozen=True)
class DsRecordSet:
    found: bool = False
    records: tuple[DsRecord, ...] = ()


@dataclass(frozen=True)
class DnskeyRecordSet:
    found: bool = False
    records: tuple[DnskeyRecord, ...] = ()
    ksk_count: int = 0
    zsk_count: int = 0


@dataclass(frozen=True)
class DnssecResult(MechanismResult):
    label: ClassVar[str] = "DNSSEC"

    enabled: bool = False
    ds: DsRecordSet = field(default_factory=DsRecordSet)
    dnskey: DnskeyRecordSet = field(default_factory=DnskeyRecordSet)

    @property
    def present(self) -> bool:
        return self.enabled


# ---------------------------------------------------------------------------
# WHOIS (RDAP)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WhoisResult(MechanismResult):
    label: ClassVar[str] = "WHOIS"

    found: bool = False
    registrar: str | None = None
    created_date: str | None = None
    updated_date: str | None = None
    expiry_date: str | None = None
    days_until_expiry: int | None = None
    epp_status: tuple[str, ...] = ()
    name_servers: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DomainResult:
    """Outcome of one ``analyze_domain`` call."""

    domain: str
    grade: str
    score: int
    timestamp: str
    spf: SpfResult = field(default_factory=SpfResult)
    dkim: DkimResult = field(default_factory=DkimResult)
    dmarc: DmarcResult = field(default_factory=DmarcResult)
    mx: MxResult = field(default_factory=MxResult)
    bimi: BimiResult = field(default_factory=BimiResult)
    mta_sts: MtaStsResult = field(default_factory=MtaStsResult)
    tls_rpt: TlsRptResult = field(default_factory=TlsRptResult)
    arc: ArcResult = field(default_factory=ArcResult)
    dnssec: DnssecResult = field(default_factory=DnssecResult)
    whois: WhoisResult = field(default_factory=WhoisResult)
    recommendations: tuple[str, ...] = ()
    error: str | None = None
    execution_time_ms: int = 0

    def mechanism_results(self) -> dict[str, MechanismResult]:
        """Return the per-mechanism results keyed by check name."""
        return {
            "spf": self.spf,
            "dkim": self.dkim,
            "dmarc": self.dmarc,
            "mx": self.mx,
            "bimi": self.bimi,
            "mta_sts": self.mta_sts,
            "tls_rpt": self.tls_rpt,
            "arc": self.arc,
            "dnssec": self.dnssec,
            "whois": self.whois,
        }

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""
        return dataclasses.asdict(self, dict_factory=_dict_factory)


def _dict_factory(items: list[tuple[str, Any]]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in items:
        if isinstance(value, Severity):
            value = value.value
        elif isinstance(value, tuple):
            value = list(value)
        out[key] = value
    return out
