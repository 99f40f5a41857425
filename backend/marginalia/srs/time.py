"""UTC time helpers for scheduling.

Persisted timestamps are UTC ISO strings with second precision and a trailing
'Z' (YYYY-MM-DDTHH:MM:SSZ), which keeps lexical order equal to time order in
Cosmos DB queries.
"""

from __future__ import annotations

from datetime import datetime, timezone

SECONDS_PER_DAY = 86400.0


def utc_now() -> datetime:
    """Return timezone-aware UTC 'now' truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def utc_now_iso() -> str:
    return utc_datetime_to_iso_z(utc_now())


def ensure_utc(dt: datetime) -> datetime:
    """Return dt converted to UTC; naive values are rejected."""
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc)


def utc_datetime_to_iso_z(dt: datetime) -> str:
    """Format a datetime as UTC ISO string with second precision and trailing 'Z'."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    dt = dt.replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def parse_iso_z(s: str) -> datetime:
    """Parse an ISO-8601 string ending with 'Z' (or '+00:00') into UTC datetime.

    Accepts both second precision and fractional seconds.
    """
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def elapsed_days(since: datetime | None, now: datetime) -> float:
    """Fractional days between since and now, never negative (0 when unknown)."""
    if since is None:
        return 0.0
    return max(0.0, (now - since).total_seconds() / SECONDS_PER_DAY)
