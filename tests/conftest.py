"""
zkill-matrix Test Suite - Shared Fixtures and Configuration
"""

from __future__ import annotations

import pytest


class FakeClock:
    """Manually advanced monotonic clock for health tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_logging_state():
    """
    Restore logger propagation between tests.

    zkill_matrix loggers disable propagation for production output, which
    would hide records from caplog.
    """
    from zkill_matrix.core.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep ZKILL_* variables and a stray config.json/.env out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("ZKILL_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
