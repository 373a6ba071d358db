"""Time service for consistent datetime handling across Memory Curator.

Philosophy:
- Everything internal is a Pendulum DateTime in UTC
- Naive datetimes coming out of storage are UTC
- Ages are whole days, truncated, the way the memory store has always counted them
"""

from __future__ import annotations

from datetime import datetime

import pendulum
from pendulum import DateTime

SECONDS_PER_DAY = 86400


class TimeService:
    """Centralized service for all datetime operations."""

    @classmethod
    def now(cls) -> DateTime:
        """Get current time as Pendulum DateTime in UTC."""
        return pendulum.now("UTC")

    @classmethod
    def parse(cls, dt: str | datetime | DateTime | None) -> DateTime:
        """Parse various datetime inputs to a UTC Pendulum DateTime.

        Args:
            dt: ISO string, Python datetime, Pendulum DateTime, or None (returns now())

        Returns:
            Pendulum DateTime object in UTC
        """
        if dt is None:
            return cls.now()
        if isinstance(dt, DateTime):
            return dt.in_timezone("UTC")
        if isinstance(dt, datetime):
            # Assume naive datetimes are in UTC (common for DB storage)
            if dt.tzinfo is None:
                return pendulum.instance(dt, tz="UTC")
            return pendulum.instance(dt).in_timezone("UTC")
        parsed = pendulum.parse(dt)
        if not isinstance(parsed, DateTime):
            raise ValueError(f"Not a datetime: {dt!r}")
        return parsed.in_timezone("UTC")

    @classmethod
    def age_in_days(cls, created_at: str | datetime | DateTime, now: datetime | None = None) -> int:
        """Whole days elapsed between created_at and now, truncated toward zero."""
        created = cls.parse(created_at)
        current = cls.parse(now)
        return int((current - created).total_seconds() / SECONDS_PER_DAY)

    @classmethod
    def format_age(cls, dt: str | datetime | DateTime, now: datetime | None = None) -> str:
        """Format datetime as human-readable age (e.g., '5 minutes ago')."""
        parsed = cls.parse(dt)
        return parsed.diff_for_humans(cls.parse(now) if now is not None else None)

    @classmethod
    def format_iso(cls, dt: str | datetime | DateTime) -> str:
        """Format datetime as ISO with offset (not Z)."""
        return cls.parse(dt).isoformat()
