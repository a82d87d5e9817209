"""
Configuration for the posture engine.

``Config`` loads process-wide defaults from environment variables.
``AnalysisSettings`` is the per-call options object accepted by
``analyze_domain`` / ``analyze_multiple``; any field left unset falls back
to ``Config``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from mailposture.utils.domain import DEFAULT_SELECTORS


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """Process-wide defaults shared by every analysis."""

    # DNS
    DNS_RESOLVERS: list[str] = _env_list("MAILPOSTURE_RESOLVERS", "8.8.8.8,1.1.1.1")
    DNS_RETRIES: int = int(os.environ.get("MAILPOSTURE_DNS_RETRIES", "2"))

    # Per-check deadline and batch window width
    CHECK_TIMEOUT_MS: int = int(os.environ.get("MAILPOSTURE_CHECK_TIMEOUT_MS", "10000"))
    CHECK_CONCURRENCY: int = int(os.environ.get("MAILPOSTURE_CONCURRENCY", "5"))

    # External tools and endpoints
    DIG_PATH: str = os.environ.get("MAILPOSTURE_DIG_PATH", "dig")
    RDAP_BOOTSTRAP_URL: str = os.environ.get(
        "MAILPOSTURE_RDAP_BOOTSTRAP_URL",
        "https://data.iana.org/rdap/dns.json",
    )
    USER_AGENT: str = os.environ.get("MAILPOSTURE_USER_AGENT", "mailposture/1.0")

    LOG_LEVEL: str = os.environ.get("MAILPOSTURE_LOG_LEVEL", "INFO")


# Check names accepted in ``AnalysisSettings.checks``.
CHECK_NAMES: tuple[str, ...] = (
    "spf",
    "dkim",
    "dmarc",
    "mx",
    "bimi",
    "mta_sts",
    "tls_rpt",
    "arc",
    "dnssec",
    "whois",
)


@dataclass
class AnalysisSettings:
    """Options for one analysis call.

    Args:
        checks: Per-mechanism toggles, e.g. ``{"dkim": False}``.  Checks
            not listed are enabled.
        dkim_selectors: Selectors to probe; defaults to ``DEFAULT_SELECTORS``.
        timeout_ms: Deadline applied independently to each check.
        resolver: Nameserver IP overriding ``Config.DNS_RESOLVERS`` for DNS
            queries and the DNSSEC ``dig`` invocations.
        concurrency: Batch window width for ``analyze_multiple``.
        retries: DNS resolver retries per query.
    """

    checks: dict[str, bool] = field(default_factory=dict)
    dkim_selectors: list[str] | None = None
    timeout_ms: int = field(default_factory=lambda: Config.CHECK_TIMEOUT_MS)
    resolver: str | None = None
    concurrency: int = field(default_factory=lambda: Config.CHECK_CONCURRENCY)
    retries: int = field(default_factory=lambda: Config.DNS_RETRIES)

    def __post_init__(self) -> None:
        unknown = sorted(set(self.checks) - set(CHECK_NAMES))
        if unknown:
            raise ValueError(f"Unknown check name(s): {', '.join(unknown)}")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        self.concurrency = max(1, int(self.concurrency))
        self.retries = max(1, int(self.retries))

    def is_enabled(self, check: str) -> bool:
        """Return True unless *check* was explicitly disabled."""
        return bool(self.checks.get(check, True))

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def get_resolvers(self) -> list[str]:
        """Return the nameservers to query, honouring the override."""
        if self.resolver:
            return [self.resolver]
        return list(Config.DNS_RESOLVERS)

    def get_dkim_selectors(self) -> list[str]:
        if self.dkim_selectors:
            return list(self.dkim_selectors)
        return list(DEFAULT_SELECTORS)
