"""
Domain registration checker using RDAP (RFC 9082/9083).

The authoritative RDAP server for a TLD is located through the IANA
bootstrap file, which is fetched once and cached until ``clear_cache()``.
Registration data (registrar, dates, EPP status, name servers) is parsed
from the registry's JSON response and checked for imminent expiry and
missing registrar locks.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any

import requests

from mailposture.checker.http_client import fetch
from mailposture.config import AnalysisSettings, Config
from mailposture.exceptions import RdapError
from mailposture.models import Issue, Severity, WhoisResult

logger = logging.getLogger(__name__)

RDAP_HEADERS = {"Accept": "application/rdap+json"}

# Days before expiry at which each severity applies
EXPIRY_CRITICAL_DAYS = 7
EXPIRY_HIGH_DAYS = 30
EXPIRY_MEDIUM_DAYS = 90

_TRANSFER_LOCKS = {"clienttransferprohibited", "servertransferprohibited"}
_DELETE_LOCKS = {"clientdeleteprohibited", "serverdeleteprohibited"}
_DANGER_STATUSES = {"redemptionperiod": "redemptionPeriod", "pendingdelete": "pendingDelete"}

_bootstrap_lock = threading.Lock()
_bootstrap: dict[str, str] | None = None


def clear_cache() -> None:
    """Forget the cached IANA bootstrap data."""
    global _bootstrap
    with _bootstrap_lock:
        _bootstrap = None


def _load_bootstrap(timeout: float) -> dict[str, str]:
    """Return the TLD -> RDAP base URL map, fetching it on first use.

    Raises:
        RdapError: If the bootstrap file cannot be fetched or parsed.
    """
    global _bootstrap
    with _bootstrap_lock:
        if _bootstrap is not None:
            return _bootstrap

        url = Config.RDAP_BOOTSTRAP_URL
        try:
            resp = fetch(url, timeout=timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise RdapError(f"RDAP bootstrap fetch failed: {exc}") from exc
        except ValueError as exc:
            raise RdapError(f"RDAP bootstrap is not valid JSON: {exc}") from exc

        servers: dict[str, str] = {}
        for service in data.get("services") or []:
            if not isinstance(service, list) or len(service) < 2 or not service[1]:
                continue
            tlds, urls = service[0], service[1]
            for tld in tlds:
                servers.setdefault(tld.lower(), urls[0])

        logger.debug("RDAP bootstrap loaded (%d TLDs)", len(servers))
        _bootstrap = servers
        return servers


def find_rdap_server(domain: str, timeout: float) -> str | None:
    """Return the RDAP base URL covering *domain*, longest suffix first."""
    servers = _load_bootstrap(timeout)
    labels = domain.split(".")
    for i in range(1, len(labels)):
        server = servers.get(".".join(labels[i:]))
        if server:
            return server
    return None


def check_whois(domain: str, settings: AnalysisSettings | None = None) -> WhoisResult:
    """Query RDAP registration data for *domain*.

    Args:
        domain: The normalized domain name to look up.
        settings: Optional AnalysisSettings; supplies the HTTP timeout.

    Returns:
        A WhoisResult; ``found=False`` if no RDAP service covers the TLD or
        the registry has no record of the domain.

    Raises:
        RdapError: On transport errors or unexpected registry responses.
    """
    if settings is None:
        settings = AnalysisSettings()
    timeout = settings.timeout_seconds

    server = find_rdap_server(domain, timeout)
    if server is None:
        logger.info("No RDAP service covers %s", domain)
        return _not_available()

    url = f"{server.rstrip('/')}/domain/{domain}"
    try:
        resp = fetch(url, timeout=timeout, headers=RDAP_HEADERS)
    except requests.RequestException as exc:
        raise RdapError(f"RDAP query failed: {exc}") from exc

    if resp.status_code == 404:
        logger.info("RDAP server %s has no record of %s", server, domain)
        return _not_available()
    if resp.status_code != 200:
        raise RdapError(f"RDAP query returned HTTP {resp.status_code}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise RdapError(f"RDAP response is not valid JSON: {exc}") from exc

    return parse_rdap_response(data)


def _not_available() -> WhoisResult:
    return WhoisResult(found=False, issues=(Issue(
        severity=Severity.INFO,
        message="RDAP data not available for this domain",
    ),))


def parse_rdap_response(data: dict[str, Any], now: datetime | None = None) -> WhoisResult:
    """Build a WhoisResult from an RFC 9083 domain response.

    RFC 9083 structure:
    - ``entities[].roles`` containing ``"registrar"`` -> registrar name
    - ``events[].eventAction`` -> ``"registration"`` / ``"last changed"`` /
      ``"expiration"``
    - ``status`` -> EPP status values
    - ``nameservers[].ldhName`` -> authoritative name servers
    """
    # --- Dates ---
    dates: dict[str, str] = {}
    for event in data.get("events") or []:
        action = event.get("eventAction")
        date_str = event.get("eventDate")
        if action and date_str and action not in dates:
            dates[action] = date_str

    expiry_date = dates.get("expiration")
    days_until_expiry = _days_until(expiry_date, now) if expiry_date else None

    epp_status = tuple(s for s in data.get("status") or [] if isinstance(s, str))
    name_servers = tuple(_normalize_name_servers(
        ns.get("ldhName") for ns in data.get("nameservers") or [] if isinstance(ns, dict)
    ))

    issues = _expiry_issues(expiry_date, days_until_expiry) + _status_issues(epp_status)

    return WhoisResult(
        found=True,
        registrar=_get_registrar(data.get("entities") or []),
        created_date=dates.get("registration"),
        updated_date=dates.get("last changed"),
        expiry_date=expiry_date,
        days_until_expiry=days_until_expiry,
        epp_status=epp_status,
        name_servers=name_servers,
        issues=tuple(issues),
    )


def _get_registrar(entities: list[dict[str, Any]]) -> str | None:
    for entity in entities:
        if "registrar" not in (entity.get("roles") or []):
            continue
        vcard = entity.get("vcardArray")
        if vcard and isinstance(vcard, list) and len(vcard) > 1:
            for prop in vcard[1]:
                if isinstance(prop, list) and len(prop) >= 4 and prop[0] == "fn":
                    return prop[3]
        return entity.get("handle")
    return None


def _days_until(date_str: str, now: datetime | None = None) -> int | None:
    try:
        target = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable RDAP date %r", date_str)
        return None
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return int((target - now).total_seconds() // 86400)


def _expiry_issues(expiry_date: str | None, days: int | None) -> list[Issue]:
    if days is None:
        return []
    if days < 0:
        return [Issue(
            severity=Severity.CRITICAL,
            message=f"Domain has expired ({expiry_date})",
            recommendation="Renew the domain immediately to prevent loss and potential takeover",
        )]
    if days <= EXPIRY_CRITICAL_DAYS:
        return [Issue(
            severity=Severity.CRITICAL,
            message=f"Domain expires in {days} days ({expiry_date})",
            recommendation="Renew the domain immediately and enable auto-renewal",
        )]
    if days <= EXPIRY_HIGH_DAYS:
        return [Issue(
            severity=Severity.HIGH,
            message=f"Domain expires in {days} days ({expiry_date})",
            recommendation="Renew the domain soon and verify auto-renewal is enabled",
        )]
    if days <= EXPIRY_MEDIUM_DAYS:
        return [Issue(
            severity=Severity.MEDIUM,
            message=f"Domain expires in {days} days ({expiry_date})",
            recommendation="Verify auto-renewal is enabled to prevent accidental expiry",
        )]
    return []


def _status_issues(epp_status: tuple[str, ...]) -> list[Issue]:
    if not epp_status:
        return []

    # RDAP spells EPP codes as words ("client transfer prohibited")
    normalized = {s.replace(" ", "").lower() for s in epp_status}
    issues: list[Issue] = []

    if not normalized & _TRANSFER_LOCKS:
        issues.append(Issue(
            severity=Severity.MEDIUM,
            message="Domain transfer lock is not enabled",
            recommendation="Enable registrar lock (clientTransferProhibited) to prevent unauthorized domain transfers",
        ))
    if not normalized & _DELETE_LOCKS:
        issues.append(Issue(
            severity=Severity.LOW,
            message="Domain delete protection is not enabled",
            recommendation="Enable delete protection (clientDeleteProhibited) to prevent accidental deletion",
        ))
    for code, name in _DANGER_STATUSES.items():
        if code in normalized:
            issues.append(Issue(
                severity=Severity.CRITICAL,
                message=f"Domain is in {name} status",
                recommendation="Contact your registrar immediately to recover the domain",
            ))
            break

    return issues


def _normalize_name_servers(value: Any) -> list[str]:
    """Normalize name servers to a sorted, deduplicated lowercase list."""
    return sorted({ns.lower().rstrip(".") for ns in value if isinstance(ns, str) and ns})
