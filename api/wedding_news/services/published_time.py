"""Normalize provider "published" strings to absolute UTC datetimes."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

UNIT_MILLISECONDS = {
    "minute": 60 * 1000,
    "hour": 60 * 60 * 1000,
    "day": 24 * 60 * 60 * 1000,
    "week": 7 * 24 * 60 * 60 * 1000,
    "month": 30 * 24 * 60 * 60 * 1000,
}

_RELATIVE_RE = re.compile(
    r"^(?P<amount>\d+|an?)\s+(?P<unit>minute|hour|day|week|month)s?\s+ago$",
    re.IGNORECASE,
)

# Absolute formats seen in news search results.
_ABSOLUTE_FORMATS = (
    "%m/%d/%Y, %I:%M %p, %z UTC",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%Y-%m-%d",
)


def parse_relative(value: str, now: datetime) -> Optional[datetime]:
    """'3 hours ago' -> now - 3h.

    None when the phrase does not match or lands outside the datetime range.
    """
    match = _RELATIVE_RE.match(value.strip())
    if match is None:
        return None
    amount = match.group("amount").lower()
    count = 1 if amount in ("a", "an") else int(amount)
    milliseconds = count * UNIT_MILLISECONDS[match.group("unit").lower()]
    try:
        return now - timedelta(milliseconds=milliseconds)
    except OverflowError:
        return None


def parse_absolute(value: str) -> Optional[datetime]:
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is None:
        for fmt in _ABSOLUTE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        # Offset pushes the instant past year 1 or 9999
        return None


def normalize_published(value: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Absolute timestamp for a relative-or-absolute published string.

    Anything unrecognized falls back to ``now`` (the ingestion time).
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if not value or not value.strip():
        return now
    return parse_relative(value, now) or parse_absolute(value) or now
