"""UTC time helpers (timezone-aware calculation, naive storage)."""
from __future__ import annotations

from datetime import datetime, timezone, date, timedelta


def utc_now() -> datetime:
    """Return a UTC timestamp without tzinfo for legacy DB columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    """Return today's date in UTC (naive)."""
    return utc_now().date()


def isoformat(value) -> str | None:
    return value.isoformat() if value else None


def parse_date(value) -> date | None:
    """Parse a YYYY-MM-DD string (or pass through a date)."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip()[:10], '%Y-%m-%d').date()


def ordinal(day: int) -> str:
    """1 -> 1st, 2 -> 2nd, 11 -> 11th, 23 -> 23rd."""
    if 10 <= day % 100 <= 20:
        suffix = 'th'
    else:
        suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(day % 10, 'th')
    return f"{day}{suffix}"


def long_date(value) -> str:
    """Format a date as 'January 5, 1990'."""
    d = parse_date(value)
    if not d:
        return ''
    return f"{d.strftime('%B')} {d.day}, {d.year}"


def format_notification_time(created_at: datetime, now: datetime | None = None) -> str:
    """Relative timestamp shown next to a notification."""
    now = now or utc_now()
    diff = now - created_at
    minutes = int(diff.total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if minutes < 1:
        return 'Just now'
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    if hours < 24:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if days < 7:
        return f"{days} day{'s' if days > 1 else ''} ago"

    label = f"{created_at.strftime('%b')} {created_at.day}"
    if created_at.year != now.year:
        label += f", {created_at.year}"
    return label


def end_of_range(value) -> datetime:
    """Exclusive upper bound for an inclusive end date (end + 1 day)."""
    d = parse_date(value)
    return datetime(d.year, d.month, d.day) + timedelta(days=1)


def calendar_parts(value) -> dict:
    """Split an issue date into the pieces certificates print ('5th', 'January', 2026)."""
    d = parse_date(value)
    return {'date': d, 'day': ordinal(d.day), 'month': d.strftime('%B'), 'year': d.year}
