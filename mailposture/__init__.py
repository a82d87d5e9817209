"""
mailposture: email-authentication posture analysis for domains.

Usage::

    from mailposture import AnalysisSettings, analyze_domain

    result = analyze_domain("example.com", AnalysisSettings(checks={"whois": False}))
    print(result.grade, result.score)
"""

from __future__ import annotations

import logging
import sys

from mailposture.checker.engine import analyze_domain, analyze_multiple, clear_cache
from mailposture.config import AnalysisSettings, Config
from mailposture.exceptions import InvalidDomainError, MailPostureError
from mailposture.models import DomainResult, Issue, Severity

__all__ = [
    "AnalysisSettings",
    "Config",
    "DomainResult",
    "InvalidDomainError",
    "Issue",
    "MailPostureError",
    "Severity",
    "analyze_domain",
    "analyze_multiple",
    "clear_cache",
    "configure_logging",
]


def configure_logging(debug: bool = False) -> None:
    """Configure the root logger.

    Logging is sent to stdout.

    Format: timestamp  level  logger-name  message

    Args:
        debug: When True, sets the root level to DEBUG.  Otherwise the
            level named by ``Config.LOG_LEVEL``.
    """
    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)-8s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
    )

    root_logger = logging.getLogger()
    # Avoid adding duplicate handlers if called more than once
    if not root_logger.handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)
