"""
Pytest configuration and fixtures for the recurrence engine tests.

Provides settings isolation and common anchor instants.
"""

from datetime import datetime, timezone
from typing import Generator

import pytest

from pms_calendar.config import get_settings


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch) -> Generator[None, None, None]:
    """
    Reset cached settings around every test.

    Ensures environment overrides made by one test never leak into another.
    """
    for name in (
        "LOG_LEVEL",
        "RECURRENCE_MAX_OCCURRENCES",
        "RECURRENCE_CUSTOM_LABEL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Build a UTC-aware datetime."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def anchor() -> datetime:
    """Sunday 2026-02-01 10:00 UTC, the anchor used across expansion tests."""
    return utc(2026, 2, 1, 10)


@pytest.fixture
def monday_anchor() -> datetime:
    """Monday 2026-02-02 09:00 UTC."""
    return utc(2026, 2, 2, 9)
