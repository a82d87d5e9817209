"""
Checker package for the posture engine.

Provides the per-mechanism validators (SPF, DKIM, DMARC, MX, BIMI, MTA-STS,
TLS-RPT, ARC readiness, DNSSEC, RDAP registration), the scoring engine and
the orchestrating engine.
"""
