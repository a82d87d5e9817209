"""
DNS resolution wrapper.

Provides thread-safe DNS resolution with configurable nameservers,
timeouts, retries, and comprehensive error handling for NXDOMAIN,
SERVFAIL, timeouts, and truncated responses.

Answers (including NXDOMAIN / no-data answers) are kept in a process-wide
cache so that the many lookups made for one domain, such as DKIM selector
probes, do not hit the network twice.  The batch engine clears the cache
between windows with ``clear_cache()``.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, NoReturn

import dns.exception
import dns.resolver

from mailposture.config import AnalysisSettings
from mailposture.exceptions import DnsLookupError
from mailposture.models import MxRecord

logger = logging.getLogger(__name__)

# Error types that mean "the record is not there" rather than "DNS is broken".
NOT_FOUND_ERRORS = frozenset({"NXDOMAIN", "NO_ANSWER"})

_cache_lock = threading.Lock()
_cache: dict[tuple[str, str, tuple[str, ...]], dict[str, Any]] = {}


def clear_cache() -> None:
    """Drop every cached DNS answer."""
    with _cache_lock:
        count = len(_cache)
        _cache.clear()
    logger.debug("DNS cache cleared (%d entries)", count)


def create_resolver(settings: AnalysisSettings) -> dns.resolver.Resolver:
    """Create a fresh dns.resolver.Resolver configured from *settings*.

    A new instance is created every time to ensure thread safety.  The
    overall lifetime of a query never exceeds the per-check deadline.

    Args:
        settings: AnalysisSettings containing resolver config.

    Returns:
        A configured dns.resolver.Resolver instance.
    """
    resolver = dns.resolver.Resolver(configure=False)
    resolver.nameservers = settings.get_resolvers()

    resolver.timeout = settings.timeout_seconds / settings.retries
    resolver.lifetime = settings.timeout_seconds
    resolver.retry_servfail = True

    return resolver


def query_dns(
    domain: str,
    rdtype: str,
    settings: AnalysisSettings | None = None,
) -> dict[str, Any]:
    """Execute a DNS query with robust error handling and caching.

    Args:
        domain: The domain name to query.
        rdtype: DNS record type string (e.g. "TXT", "MX").
        settings: Optional AnalysisSettings; defaults are used if omitted.

    Returns:
        A dict with keys:
            success (bool): Whether the query returned records.
            records (list[str]): The resolved record strings.
            error_type (str|None): Category of error if failed.
            error_message (str|None): Human-readable error description.
    """
    if settings is None:
        settings = AnalysisSettings()

    key = (domain.lower(), rdtype.upper(), tuple(settings.get_resolvers()))
    with _cache_lock:
        cached = _cache.get(key)
    if cached is not None:
        logger.debug("DNS cache hit for %s/%s", domain, rdtype)
        return cached

    result = _execute_query(domain, rdtype, settings)

    if result["success"] or result["error_type"] in NOT_FOUND_ERRORS:
        with _cache_lock:
            _cache[key] = result
    return result


def _execute_query(
    domain: str,
    rdtype: str,
    settings: AnalysisSettings,
) -> dict[str, Any]:
    resolver = create_resolver(settings)

    try:
        answer = resolver.resolve(domain, rdtype)
        records: list[str] = []
        for rdata in answer:
            # TXT records come as multiple byte strings that need joining
            if rdtype.upper() == "TXT":
                txt_value = b"".join(rdata.strings).decode("utf-8", errors="replace")
                records.append(txt_value)
            else:
                records.append(rdata.to_text())

        logger.debug("DNS query %s/%s returned %d records", domain, rdtype, len(records))
        return {
            "success": True,
            "records": records,
            "error_type": None,
            "error_message": None,
        }

    except dns.resolver.NXDOMAIN:
        logger.debug("NXDOMAIN for %s/%s", domain, rdtype)
        return {
            "success": False,
            "records": [],
            "error_type": "NXDOMAIN",
            "error_message": f"Domain {domain} does not exist (NXDOMAIN)",
        }

    except dns.resolver.NoAnswer:
        logger.debug("NoAnswer for %s/%s", domain, rdtype)
        return {
            "success": False,
            "records": [],
            "error_type": "NO_ANSWER",
            "error_message": f"No {rdtype} records found for {domain}",
        }

    except dns.resolver.NoNameservers:
        logger.warning("NoNameservers for %s/%s", domain, rdtype)
        return {
            "success": False,
            "records": [],
            "error_type": "DNS_ERROR",
            "error_message": f"No nameservers available for {domain} (SERVFAIL or all failed)",
        }

    except dns.resolver.Timeout:
        logger.warning("Timeout for %s/%s", domain, rdtype)
        return {
            "success": False,
            "records": [],
            "error_type": "TIMEOUT",
            "error_message": f"DNS query timed out for {domain}/{rdtype}",
        }

    except dns.exception.DNSException as exc:
        logger.error("DNSException for %s/%s: %s", domain, rdtype, exc)
        return {
            "success": False,
            "records": [],
            "error_type": "DNS_ERROR",
            "error_message": f"DNS error for {domain}/{rdtype}: {exc}",
        }


def _raise_for_error(domain: str, rdtype: str, result: dict[str, Any]) -> NoReturn:
    raise DnsLookupError(
        domain,
        rdtype,
        result.get("error_type") or "DNS_ERROR",
        result.get("error_message") or f"DNS error for {domain}/{rdtype}",
    )


def resolve_txt(name: str, settings: AnalysisSettings | None = None) -> list[str]:
    """Return the TXT strings published at *name*.

    NXDOMAIN and empty answers yield an empty list.

    Raises:
        DnsLookupError: For SERVFAIL, timeouts and other transport errors.
    """
    result = query_dns(name, "TXT", settings)
    if result["success"]:
        return list(result["records"])
    if result["error_type"] in NOT_FOUND_ERRORS:
        return []
    _raise_for_error(name, "TXT", result)


def resolve_mx(name: str, settings: AnalysisSettings | None = None) -> list[MxRecord]:
    """Return the MX records published at *name*, unsorted.

    Raises:
        DnsLookupError: For SERVFAIL, timeouts and other transport errors.
    """
    result = query_dns(name, "MX", settings)
    if not result["success"]:
        if result["error_type"] in NOT_FOUND_ERRORS:
            return []
        _raise_for_error(name, "MX", result)

    records: list[MxRecord] = []
    for raw in result["records"]:
        parts = raw.split(None, 1)
        if len(parts) != 2:
            logger.debug("Ignoring malformed MX rdata %r for %s", raw, name)
            continue
        try:
            priority = int(parts[0])
        except ValueError:
            logger.debug("Ignoring MX rdata with bad priority %r for %s", raw, name)
            continue
        exchange = parts[1].strip().lower()
        if exchange != ".":
            exchange = exchange.rstrip(".")
        records.append(MxRecord(exchange=exchange, priority=priority))
    return records
