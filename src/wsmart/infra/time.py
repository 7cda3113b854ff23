"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone
from typing import Any

# Provider timestamps above this are milliseconds (year 2286 in seconds)
_MILLIS_THRESHOLD = 10_000_000_000


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def from_provider_timestamp(value: Any) -> datetime | None:
    """Convert a provider epoch value (seconds or milliseconds) to UTC.

    Accepts ints, floats and numeric strings. Anything else, including
    booleans and non-positive values, yields None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return None
        value = int(value)
    if not isinstance(value, (int, float)) or value <= 0:
        return None

    seconds = value / 1000 if value >= _MILLIS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def epoch_millis(moment: datetime | None = None) -> int:
    """Milliseconds since epoch for `moment` (default now)."""
    return int((moment or utc_now()).timestamp() * 1000)
