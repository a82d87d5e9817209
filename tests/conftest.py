"""
Shared pytest fixtures for the mailposture test suite.

No test performs real DNS, HTTP or subprocess activity: every collaborator
is patched with unittest.mock, and the process-wide caches are reset around
every test so patched answers never leak between tests.
"""

from __future__ import annotations

import pytest

from mailposture.checker.engine import clear_cache
from mailposture.config import AnalysisSettings


@pytest.fixture(autouse=True)
def _reset_caches():
    """Start and finish every test with empty DNS and RDAP caches."""
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def settings() -> AnalysisSettings:
    """Short timeouts and a single retry so mocked failures surface quickly."""
    return AnalysisSettings(timeout_ms=2000, retries=1)

