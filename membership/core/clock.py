"""
Time helpers

Timestamps are stored as naive UTC, which SQLite and PostgreSQL both round-trip.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time without tzinfo"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
