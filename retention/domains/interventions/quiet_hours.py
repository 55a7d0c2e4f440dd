"""Tenant-local quiet hours.

The quiet window is ``[start, end)`` in the tenant's timezone. When start is
after end the window spans midnight (21:00-08:00). Equal start and end means
there are no quiet hours.
"""

from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

logger = structlog.get_logger()


def parse_hhmm(value: str) -> time:
    """Parse "HH:MM" into a time of day."""
    hours, _, minutes = value.partition(":")
    return time(int(hours), int(minutes or 0))


def resolve_timezone(name: str | None, default: str) -> ZoneInfo:
    """Return the tenant's zone, falling back to the default on unknown names."""
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("unknown_tenant_timezone", timezone=name, fallback=default)
    return ZoneInfo(default)


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def is_in_quiet_hours(now: datetime, start: str, end: str, tz: ZoneInfo) -> bool:
    local = now.astimezone(tz)
    now_min = _minutes(local.time())
    start_min = _minutes(parse_hhmm(start))
    end_min = _minutes(parse_hhmm(end))

    if start_min == end_min:
        return False
    if start_min < end_min:
        return start_min <= now_min < end_min
    return now_min >= start_min or now_min < end_min


def next_allowed_send_time(now: datetime, start: str, end: str, tz: ZoneInfo) -> datetime:
    """First instant at or after ``now`` that falls outside quiet hours, in UTC."""
    if not is_in_quiet_hours(now, start, end, tz):
        return now.astimezone(UTC)

    local = now.astimezone(tz)
    end_time = parse_hhmm(end)
    candidate = datetime.combine(local.date(), end_time, tzinfo=tz)
    if candidate <= local:
        candidate = datetime.combine(local.date() + timedelta(days=1), end_time, tzinfo=tz)
    return candidate.astimezone(UTC)
