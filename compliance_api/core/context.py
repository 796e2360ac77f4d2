"""
core/context.py
---------------
Request-scoped tenant context.

A TenantContext is built once per request by the tenant resolver dependency
and passed explicitly into every service call. It is immutable and never
stored on a module, thread-local or any other object that outlives the
request.

Calendar-day boundaries for quota checks, daily reports and revenue
bucketing are all derived here from the tenant's local timezone, so every
component agrees on what "today" means for a dispensary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    subdomain: str
    jurisdiction: str
    timezone: str

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def local_date(self, at: datetime | None = None) -> date:
        """Calendar date at the dispensary for the given instant (default: now)."""
        at = at or utcnow()
        return as_utc(at).astimezone(self.tz).date()

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """
        UTC instants for [local midnight, next local midnight) of ``day``.
        Handles DST days, which are 23 or 25 hours long.
        """
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def range_bounds(self, start_day: date, end_day: date) -> tuple[datetime, datetime]:
        """UTC bounds covering every local day from start_day to end_day inclusive."""
        return self.day_bounds(start_day)[0], self.day_bounds(end_day)[1]


def extract_subdomain(host: str | None) -> str | None:
    """
    Leading label of the request host, or None when the host has fewer
    than two dot-separated labels.

    "green-leaf.example.com:8443" → "green-leaf"
    "localhost"                   → None
    """
    if not host:
        return None
    hostname = host.strip().lower()
    if hostname.startswith("["):
        return None  # IPv6 literal
    hostname = hostname.split(":", 1)[0].rstrip(".")
    labels = hostname.split(".")
    if len(labels) < 2 or not labels[0]:
        return None
    return labels[0]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
