"""UTC time helpers shared by the decision and commit layers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_DAY = 86_400


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime]) -> datetime:
    return ensure_utc(now) if now is not None else utc_now()


def whole_days_until(target: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``target``, truncated toward zero."""
    delta = ensure_utc(target) - ensure_utc(now)
    return int(delta.total_seconds() / SECONDS_PER_DAY)
