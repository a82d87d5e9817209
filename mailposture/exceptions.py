"""
Exception hierarchy for the posture engine.

Input errors (``InvalidDomainError``) short-circuit an analysis before any
network activity.  Everything deriving from ``CheckError`` is a failure of a
single mechanism's check; the engine isolates those to the mechanism that
raised them and never lets them escape ``analyze_domain``.
"""

from __future__ import annotations


class MailPostureError(Exception):
    """Base class for all errors raised by this package."""


class InvalidDomainError(MailPostureError, ValueError):
    """The caller supplied something that is not a valid domain name."""

    def __init__(self, domain: str) -> None:
        self.domain = domain
        super().__init__(f"Invalid domain: {domain!r}")


class CheckError(MailPostureError):
    """A single mechanism check could not be completed."""


class DnsLookupError(CheckError):
    """A DNS query failed for a reason other than NXDOMAIN / no data."""

    def __init__(self, name: str, rdtype: str, error_type: str, message: str) -> None:
        self.name = name
        self.rdtype = rdtype
        self.error_type = error_type
        super().__init__(message)


class DnssecQueryError(CheckError):
    """The external resolver tool ran but did not produce a usable answer."""


class RdapError(CheckError):
    """The RDAP bootstrap or registry query failed at the transport level."""


class CheckTimeoutError(CheckError):
    """A check exceeded its deadline."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"timed out after {timeout_ms}ms")
