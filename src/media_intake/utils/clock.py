"""Time helpers shared by repositories and services."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return naive UTC ``datetime`` as stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
