"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING/APP_ENV before settings are imported so no .env file is
loaded, and provides a controllable clock for window arithmetic.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from gatekeeper.core.config import LogSettings, RateLimitSettings, Settings


class FakeClock:
    """Deterministic clock returning UNIX seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_settings(**rate_limit: object) -> Settings:
    """Build isolated settings with rate limit overrides."""

    return Settings(
        rate_limit=RateLimitSettings(**rate_limit),
        log=LogSettings(level="WARNING"),
    )


@pytest.fixture
def settings_factory():
    return make_settings
