import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_hhmm(value: str) -> Optional[int]:
    """Parse 'HH:MM' into minutes since midnight, None if malformed."""
    match = TIME_RE.match(value.strip()) if value else None
    if not match:
        return None
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def to_utc_from_local(local_date: date, minutes: int, tz_name: str) -> datetime:
    """Convert a salon-local date + minutes since midnight to UTC."""
    tz = ZoneInfo(tz_name)
    local_dt = datetime.combine(local_date, time(0, 0)) + timedelta(minutes=minutes)
    return local_dt.replace(tzinfo=tz).astimezone(timezone.utc)


def to_local(dt: datetime, tz_name: str) -> datetime:
    return dt.astimezone(ZoneInfo(tz_name))


def local_minutes(dt: datetime, tz_name: str) -> int:
    local = to_local(dt, tz_name)
    return local.hour * 60 + local.minute


def local_day_bounds(local_date: date, tz_name: str) -> tuple[datetime, datetime]:
    """UTC [start, end) of a salon-local calendar day."""
    start = to_utc_from_local(local_date, 0, tz_name)
    end = to_utc_from_local(local_date + timedelta(days=1), 0, tz_name)
    return start, end
