# Overview: UTC time helpers shared by models, services and routes.

from __future__ import annotations

from datetime import datetime, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse ISO-8601 text into a naive UTC datetime.

    - None / "" -> None
    - naive input is taken to already be UTC
    - "Z" or an explicit offset is converted to UTC, then tzinfo dropped
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_range_bound(value: Optional[str], *, end: bool = False) -> Optional[datetime]:
    """
    Parse a date filter bound.

    A bare date ("2024-05-01") widens to the start of that day, or to its
    last microsecond when used as an inclusive end bound.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if len(text) == 10 and "T" not in text:
        day = datetime.strptime(text, "%Y-%m-%d").date()
        return datetime.combine(day, time.max if end else time.min)
    return parse_iso_datetime(text)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render a datetime as ISO-8601 with a trailing 'Z'; naive means UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
