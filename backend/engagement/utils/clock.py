"""Time helpers.

Timestamps are stored as naive UTC. Calendar days are cut in a single
reference timezone (``ENGAGEMENT_TIMEZONE``) so that "today" means the same
thing for the streak tracker and the leaderboard windows.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from engagement.errors import InvalidPayload


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def resolve_tz(name: str | None) -> tzinfo:
    raw = (name or "UTC").strip()
    if raw.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(raw)


def to_utc_naive(value: datetime | None) -> datetime:
    """Normalize a caller-supplied timestamp to the storage convention."""
    if value is None:
        return _now()
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_day(value: datetime | None, tz: tzinfo) -> date:
    ts = to_utc_naive(value).replace(tzinfo=timezone.utc)
    return ts.astimezone(tz).date()


def day_start_utc(day: date, tz: tzinfo) -> datetime:
    """Local midnight of ``day`` expressed as naive UTC."""
    local_midnight = datetime.combine(day, time.min).replace(tzinfo=tz)
    return local_midnight.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(raw) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return to_utc_naive(raw)
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise InvalidPayload(f"Invalid timestamp: {raw!r}", field="occurred_at")
    return to_utc_naive(parsed)


def previous_day(day: date) -> date:
    return day - timedelta(days=1)
