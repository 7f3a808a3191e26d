from __future__ import annotations

from datetime import datetime, timezone


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def lowest_free_number(taken: set[int]) -> int:
    number = 1
    while number in taken:
        number += 1
    return number


def within_window(now: datetime, opens: datetime | None, closes: datetime | None) -> str | None:
    """Return None when ``now`` is inside the window, else "not_open" / "closed"."""
    now = as_utc(now)
    if opens is not None and now < as_utc(opens):
        return "not_open"
    if closes is not None and now > as_utc(closes):
        return "closed"
    return None
