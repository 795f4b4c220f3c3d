# carelog/utils/timeutils.py
import logging
import re
from datetime import date, datetime, time
from typing import Optional

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "N/D"
_HHMM = re.compile(r"^\d{2}:\d{2}$")
_LAST_MINUTE = 23 * 60 + 59


def is_valid_time(value: Optional[str]) -> bool:
    if not value or not _HHMM.match(value):
        return False
    hours, minutes = (int(p) for p in value.split(":"))
    return hours <= 23 and minutes <= 59


def to_minutes(value: str) -> Optional[int]:
    if not is_valid_time(value):
        return None
    hours, minutes = (int(p) for p in value.split(":"))
    return hours * 60 + minutes


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def duration_minutes(start: Optional[str], end: Optional[str]) -> int:
    """
    Minutes between two HH:MM strings.
    Returns 0 for missing, 'N/D', malformed or reversed values.
    """
    start_min = to_minutes(start) if start and start != NOT_SPECIFIED else None
    end_min = to_minutes(end) if end and end != NOT_SPECIFIED else None
    if start_min is None or end_min is None:
        if start and end:
            logger.warning("Invalid time values for duration: start=%s end=%s", start, end)
        return 0
    if end_min < start_min:
        logger.warning("End time %s is before start time %s, duration is zero", end, start)
        return 0
    return end_min - start_min


def add_minutes(start: str, minutes: int) -> str:
    """Adds minutes to an HH:MM string, capped at 23:59 so a visit never spills into the next day."""
    start_min = to_minutes(start)
    if start_min is None:
        raise ValueError(f"invalid time {start!r}")
    return format_minutes(min(start_min + max(0, minutes), _LAST_MINUTE))


def time_or_unset(value: Optional[str]) -> str:
    return value if value else NOT_SPECIFIED


def is_unset(value: Optional[str]) -> bool:
    return not value or value == NOT_SPECIFIED


def now_hhmm(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%H:%M")


def to_day(value) -> date:
    """Truncates datetimes to their calendar day; dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise TypeError(f"cannot convert {value!r} to a date")


def day_to_datetime(value: date) -> datetime:
    return datetime.combine(value, time.min)


def js_weekday(value: date) -> int:
    """Weekday with Sunday = 0 ... Saturday = 6."""
    return (value.weekday() + 1) % 7


def format_duration(total_minutes: int) -> str:
    hours, minutes = divmod(max(0, total_minutes), 60)
    parts = []
    if hours:
        parts.append(f"{hours} h")
    if minutes or not hours:
        parts.append(f"{minutes} min")
    return " ".join(parts)
