"""Time normalization: civil 12-hour input to absolute UTC instants and query windows.

User-facing forms collect a calendar date, an "HH:MM" wall-clock time and an
AM/PM meridiem, all in one configured timezone. Everything exchanged with the
backend is an absolute instant serialized as ISO 8601 with a `Z` designator.
"""

import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidInput
from .models import LogWindow, ensure_utc

DEFAULT_TIMEZONE = "Asia/Kolkata"
CRASH_WINDOW_MINUTES = 7
LIVE_WINDOW = timedelta(hours=1)

TIME_PATTERN = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})$")
MERIDIEMS = ("AM", "PM")

DateInput = Union[date, str]
ZoneInput = Union[tzinfo, str, None]


def resolve_zone(tz: ZoneInput) -> tzinfo:
    """Return a tzinfo for a zone name, tzinfo object, or None (default zone)."""
    if tz is None:
        tz = DEFAULT_TIMEZONE
    if isinstance(tz, tzinfo):
        return tz
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidInput(f"Unknown timezone: {tz}") from e


def parse_civil_date(value: DateInput) -> date:
    """Accept a date object or an ISO "YYYY-MM-DD" string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise InvalidInput(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from e


def parse_clock(time_text: str) -> Tuple[int, int]:
    """Parse a 12-hour "HH:MM" string into (hour, minute)."""
    match = TIME_PATTERN.match(str(time_text).strip())
    if not match:
        raise InvalidInput(f"Invalid time: {time_text!r} (expected HH:MM)")
    hour, minute = int(match.group("hour")), int(match.group("minute"))
    if not 1 <= hour <= 12:
        raise InvalidInput(f"Invalid hour {hour}: must be between 1 and 12")
    if not 0 <= minute <= 59:
        raise InvalidInput(f"Invalid minute {minute}: must be between 0 and 59")
    return hour, minute


def parse_meridiem(meridiem: str) -> str:
    text = str(meridiem).strip().upper()
    if text not in MERIDIEMS:
        raise InvalidInput(f"Invalid meridiem: {meridiem!r} (expected AM or PM)")
    return text


def to_24_hour(hour: int, meridiem: str) -> int:
    """12 AM is midnight, 12 PM is noon, other PM hours add 12."""
    if meridiem == "AM":
        return 0 if hour == 12 else hour
    return 12 if hour == 12 else hour + 12


def require_fields(**fields) -> None:
    """Raise InvalidInput naming every empty field. Forms call this before converting."""
    missing = [name for name, value in fields.items() if value is None or str(value).strip() == ""]
    if missing:
        raise InvalidInput(f"Please fill all fields (missing: {', '.join(missing)})")


def to_absolute_instant(civil_date: DateInput, time_text: str, meridiem: str, tz: ZoneInput = None) -> datetime:
    """Convert civil date + 12-hour time + meridiem in `tz` to an aware UTC datetime.

    Raises:
        InvalidInput: If any component is malformed or out of range.
    """
    day = parse_civil_date(civil_date)
    hour, minute = parse_clock(time_text)
    period = parse_meridiem(meridiem)
    zone = resolve_zone(tz)

    local = datetime(day.year, day.month, day.day, to_24_hour(hour, period), minute, tzinfo=zone)
    return local.astimezone(timezone.utc)


def to_local_12_hour(instant: datetime, tz: ZoneInput = None) -> Tuple[date, str, str]:
    """Project an instant back to (date, "HH:MM", meridiem) in `tz`."""
    local = ensure_utc(instant).astimezone(resolve_zone(tz))
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return local.date(), f"{hour:02d}:{local.minute:02d}", meridiem


def derive_window(instant: datetime, duration_minutes: float = CRASH_WINDOW_MINUTES, label: Optional[str] = None) -> LogWindow:
    """Window starting at `instant` and lasting `duration_minutes`."""
    if duration_minutes < 0:
        raise InvalidInput(f"Window duration must not be negative: {duration_minutes}")
    start = ensure_utc(instant)
    return LogWindow(start=start, end=start + timedelta(minutes=duration_minutes), label=label)


def rolling_window(now: Optional[datetime] = None, span: timedelta = LIVE_WINDOW) -> LogWindow:
    """The live window: the last `span` up to `now`."""
    end = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    return LogWindow(start=end - span, end=end)


def to_wire(instant: datetime) -> str:
    """Serialize an instant as ISO 8601 UTC with millisecond precision and `Z`."""
    return ensure_utc(instant).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_wire(text: str) -> datetime:
    """Parse an ISO 8601 instant (accepting a trailing `Z`); naive values are UTC."""
    try:
        return ensure_utc(datetime.fromisoformat(text.strip().replace("Z", "+00:00")))
    except (AttributeError, ValueError) as e:
        raise InvalidInput(f"Invalid timestamp: {text!r}") from e
