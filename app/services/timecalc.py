from __future__ import annotations
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_iso(ts: str | datetime | None, tz: str = "UTC") -> datetime | None:
    """Parse an ISO-8601 timestamp string (or pass a datetime through).
    If naive, attach the provided tz. Returns None if ts is falsy.
    """
    if not ts:
        return None
    if isinstance(ts, datetime):
        dt = ts
    elif isinstance(ts, str):
        dt = datetime.fromisoformat(ts.replace('Z', '+00:00'))
    else:
        raise TypeError(f"expected an ISO-8601 string, got {type(ts).__name__}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def to_utc_iso(value: str | datetime, tz: str = "UTC") -> str:
    """Normalise to ``YYYY-MM-DDTHH:MM:SSZ``.

    Every stored timestamp uses this one shape so that comparing the text
    columns gives the same answer as comparing the instants.
    """
    dt = parse_iso(value, tz)
    if dt is None:
        raise ValueError("timestamp is required")
    return dt.astimezone(timezone.utc).strftime(ISO_FORMAT)


def utc_date(value: str | datetime, tz: str = "UTC") -> str:
    dt = parse_iso(value, tz)
    if dt is None:
        raise ValueError("timestamp is required")
    return dt.astimezone(timezone.utc).date().isoformat()


def elapsed_seconds(start_iso: str | None, end_iso: str | None, tz: str = "UTC") -> int:
    """Return whole seconds between start and end (non-negative)."""
    s = parse_iso(start_iso, tz)
    e = parse_iso(end_iso, tz)
    if not s or not e:
        return 0
    return max(int((e - s).total_seconds()), 0)
