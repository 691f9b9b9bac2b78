"""Time utilities."""
import re
import time
from datetime import UTC, datetime

from dateutil.relativedelta import relativedelta

_DURATION_RE = re.compile(
    r"^\s*(?P<amount>\d+)\s*(?P<unit>second|minute|hour|day|week|month|year)s?\s*$",
    re.IGNORECASE,
)


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def now_timestamp() -> float:
    """Return the current Unix timestamp with microsecond precision."""

    return round(time.time(), 6)


def parse_duration(value: str) -> relativedelta:
    """Parse a retention age such as ``"6 months"`` or ``"30 days"``."""

    match = _DURATION_RE.match(value or "")
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    amount = int(match.group("amount"))
    unit = match.group("unit").lower()
    return relativedelta(**{f"{unit}s": amount})


def is_valid_duration(value: object) -> bool:
    return isinstance(value, str) and _DURATION_RE.match(value) is not None


def cutoff_timestamp(max_age: str, now: datetime | None = None) -> float:
    """Return the Unix timestamp ``max_age`` before ``now``."""

    reference = now or utcnow()
    return (reference - parse_duration(max_age)).timestamp()


__all__ = ["utcnow", "now_timestamp", "parse_duration", "is_valid_duration", "cutoff_timestamp"]
