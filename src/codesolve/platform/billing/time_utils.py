"""
UTC helpers for billing models.

Every instant the engine compares (period bounds, expiries, clocks) is
timezone-aware UTC. Naive values arriving from API payloads or from backends
without timezone support (SQLite) are taken to be UTC.
"""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
