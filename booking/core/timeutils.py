import re
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from booking.core.errors import ValidationError

_HHMM = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise ValidationError(f"Unknown timezone: {name}", field="timezone") from e


def parse_hhmm(value: str, field: str = "time") -> int:
    """Minutes since midnight for an "HH:MM" string."""
    match = _HHMM.match(value or "")
    if not match:
        raise ValidationError("Time must be in HH:MM format", field=field)
    return int(match.group(1)) * 60 + int(match.group(2))


def day_of_week(d: date) -> int:
    """0 = Sunday ... 6 = Saturday, the convention availability windows use."""
    return (d.weekday() + 1) % 7


def local_to_utc(d: date, minutes: int, tz: ZoneInfo) -> datetime:
    """Naive UTC instant for local wall-clock `minutes` (< 24h) on `d`."""
    local = datetime.combine(d, time(minutes // 60, minutes % 60), tzinfo=tz)
    return local.astimezone(UTC).replace(tzinfo=None)


def utc_to_local(dt: datetime, tz: ZoneInfo) -> datetime:
    return to_naive_utc(dt).replace(tzinfo=UTC).astimezone(tz)


def local_day_bounds(d: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day as naive UTC."""
    start = datetime.combine(d, time(0, 0), tzinfo=tz).astimezone(UTC).replace(tzinfo=None)
    end = (
        datetime.combine(d + timedelta(days=1), time(0, 0), tzinfo=tz)
        .astimezone(UTC)
        .replace(tzinfo=None)
    )
    return start, end


def format_display_time(dt: datetime, tz: ZoneInfo) -> str:
    """en-US style "9:00 AM" in business-local time."""
    local = utc_to_local(dt, tz)
    return local.strftime("%I:%M %p").lstrip("0")


def format_display_date(dt: datetime, tz: ZoneInfo) -> str:
    local = utc_to_local(dt, tz)
    return f"{local:%a}, {local:%b} {local.day}"
