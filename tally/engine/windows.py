"""
tally.engine.windows — Time & Window Utilities
===============================================

Pure helpers shared by the stats and role-metrics jobs.  Windows are
cumulative lookbacks ("active within the last N days"), never disjoint
buckets, and the cutoff boundary is exclusive.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so every comparison goes through :func:`as_utc`.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(ts: datetime) -> datetime:
    """Return *ts* as an aware UTC datetime (naive values are assumed UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def cutoff_for(days: int, now: datetime | None = None) -> datetime:
    """Start of a *days*-long lookback ending at *now*."""
    return as_utc(now or utcnow()) - timedelta(days=days)


def is_active_since(last_activity_at: datetime | None, cutoff: datetime) -> bool:
    """True when *last_activity_at* is strictly after *cutoff*."""
    if last_activity_at is None:
        return False
    return as_utc(last_activity_at) > as_utc(cutoff)


def window_label(days: int) -> str:
    """``7`` → ``"7d"``; the key used inside stats snapshots."""
    return f"{days}d"


def day_key(now: datetime | None = None) -> date:
    """Calendar day (UTC) a snapshot taken at *now* belongs to."""
    return as_utc(now or utcnow()).date()


def friendly_date(value: date | datetime) -> str:
    """Render a date as ``DD-MON-YY``, e.g. ``05-APR-25``."""
    return value.strftime("%d-%b-%y").upper()
