import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

import pytz

from spacio.config import get_settings
from spacio.exceptions import ValidationError


TIME_RE = re.compile(r"^(\d{1,2})[:.](\d{2})(?:[:.](\d{2}))?$")


def local_timezone():
    """The service's local timezone (WIB by default)."""
    return pytz.timezone(get_settings().timezone)


def local_now() -> datetime:
    return datetime.now(local_timezone())


def ensure_local(dt: datetime) -> datetime:
    """Ensure datetime is timezone-aware and in the local timezone."""
    tz = local_timezone()
    if dt.tzinfo is None:
        # naive datetimes are taken as local wall-clock time
        return tz.localize(dt)
    return dt.astimezone(tz)


def parse_date(value: Union[str, date, None]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValidationError("Meeting date is required")
    text = str(value).strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"Invalid date: {value}")


def parse_time(value: Union[str, time, None]) -> time:
    """Accepts ``9.30``, ``09:30`` and ``09:30:00``; hours and minutes must be in range."""
    if isinstance(value, time):
        return value.replace(microsecond=0)
    if value is None or not str(value).strip():
        raise ValidationError("Meeting time is required")
    match = TIME_RE.match(str(value).strip())
    if not match:
        raise ValidationError(f"Invalid time: {value}")
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValidationError(f"Invalid time: {value}")
    return time(hour, minute, second)


def format_time(value: Optional[time]) -> str:
    return value.strftime("%H:%M") if value else ""


def minutes_of(value: time) -> int:
    return value.hour * 60 + value.minute


def add_minutes(value: time, minutes: int) -> time:
    """Add minutes to a wall-clock time, capped at 23:59 instead of wrapping past midnight."""
    total = minutes_of(value) + minutes
    if total >= 24 * 60:
        return time(23, 59)
    return (datetime.combine(date.min, value) + timedelta(minutes=minutes)).time()
