"""UTC helpers shared by the rule classifier, evaluator and token pipeline.

Every instant in docgate is a timezone-aware UTC datetime. Naive values
(SQLite hands them back that way) are read as UTC.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_now(now: Optional[datetime]) -> datetime:
    """Injectable clock: use *now* when given, the current instant otherwise."""
    return utcnow() if now is None else as_utc(now)
