"""
Global pytest configuration and fixtures for the billing engine tests.
"""

import os
from datetime import UTC, datetime, timedelta

import pytest

# Keep tests off any real database and away from a developer .env
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OBSERVABILITY__LOG_FORMAT", "text")
os.environ.setdefault("ENVIRONMENT", "test")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def now() -> datetime:
    """Fixed instant all billing tests run at."""
    return datetime(2025, 3, 11, 12, 0, tzinfo=UTC)


@pytest.fixture
def clock(now: datetime) -> FakeClock:
    return FakeClock(now)
