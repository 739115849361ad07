"""Domain Utilities - Key case conversion and date/string formatting helpers.

The hosted database speaks snake_case while API clients and the inference
endpoints speak camelCase; every service reshapes payloads with the helpers
below. The formatting helpers back dashboard labels, reminder messages and
CLI output.

Security Impact:
    - No security impact - pure utility functions
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])([A-Z])')
_DIGITS = re.compile(r'\D')


# ============================================================================
# Key Case Conversion
# ============================================================================

def to_camel(name: str) -> str:
    """Convert snake_case to camelCase ("requires_icu" -> "requiresIcu")."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_snake(name: str) -> str:
    """Convert camelCase to snake_case ("requiresIcu" -> "requires_icu")."""
    return _CAMEL_BOUNDARY.sub(r'_\1', name).lower()


def camelize_keys(value: Any) -> Any:
    """Recursively convert dict keys to camelCase."""
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize_keys(item) for item in value]
    return value


def snakeize_keys(value: Any) -> Any:
    """Recursively convert dict keys to snake_case."""
    if isinstance(value, dict):
        return {to_snake(k) if isinstance(k, str) else k: snakeize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [snakeize_keys(item) for item in value]
    return value


def drop_none(values: dict) -> dict:
    """Return a copy of values without None entries."""
    return {k: v for k, v in values.items() if v is not None}


# ============================================================================
# Date/Time Helpers
# ============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def today_iso() -> str:
    return date.today().isoformat()


def days_ago_iso(days: int) -> str:
    """ISO timestamp for now minus the given number of days (UTC)."""
    return (utc_now() - timedelta(days=days)).isoformat()


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """Parse an ISO string (a trailing 'Z' is accepted) into an aware datetime.

    Naive values are assumed to be UTC. Returns None for empty or invalid input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def hours_since(value: Union[str, datetime, None], now: Optional[datetime] = None) -> Optional[float]:
    """Hours elapsed since value, or None when value is missing."""
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    reference = now or utc_now()
    return (reference - parsed).total_seconds() / 3600.0


def minutes_between(start: Union[str, datetime, None], end: Union[str, datetime, None]) -> Optional[int]:
    """Whole minutes from start to end, or None when either is missing."""
    start_dt = parse_datetime(start)
    end_dt = parse_datetime(end)
    if start_dt is None or end_dt is None:
        return None
    return int((end_dt - start_dt).total_seconds() // 60)


def to_timezone(value: Union[str, datetime], tz_name: str) -> datetime:
    """Convert a timestamp into the named IANA timezone."""
    parsed = parse_datetime(value)
    return parsed.astimezone(ZoneInfo(tz_name))


def format_time(value: Union[str, datetime]) -> str:
    """Format a time as "2:30 PM"."""
    parsed = parse_datetime(value) if not isinstance(value, datetime) else value
    hour = parsed.hour % 12 or 12
    suffix = "AM" if parsed.hour < 12 else "PM"
    return f"{hour}:{parsed.minute:02d} {suffix}"


def format_date(value: Union[str, date, datetime]) -> str:
    """Format a date as "Jan 5, 2026"."""
    parsed = value if isinstance(value, (date, datetime)) else parse_datetime(value)
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


def format_long_date(value: Union[str, date, datetime]) -> str:
    """Format a date as "Monday, January 5, 2026"."""
    parsed = value if isinstance(value, (date, datetime)) else parse_datetime(value)
    return f"{parsed.strftime('%A')}, {parsed.strftime('%B')} {parsed.day}, {parsed.year}"


def format_datetime(value: Union[str, datetime]) -> str:
    """Format a timestamp as "Jan 5, 2026 2:30 PM"."""
    parsed = value if isinstance(value, datetime) else parse_datetime(value)
    return f"{format_date(parsed)} {format_time(parsed)}"


def format_relative_time(value: Union[str, datetime, None], now: Optional[datetime] = None) -> str:
    """Format a past timestamp relative to now ("just now", "5 minutes ago", "3 days ago")."""
    parsed = parse_datetime(value)
    if parsed is None:
        return "Never"
    seconds = ((now or utc_now()) - parsed).total_seconds()
    if seconds < 60:
        return "just now"
    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


def format_duration_minutes(minutes: Optional[float]) -> str:
    """Format a duration as "45m", "2h" or "1h 15m"."""
    if minutes is None:
        return "N/A"
    total = int(round(minutes))
    hours, remainder = divmod(total, 60)
    if hours == 0:
        return f"{remainder}m"
    if remainder == 0:
        return f"{hours}h"
    return f"{hours}h {remainder}m"


# ============================================================================
# String Helpers
# ============================================================================

def format_percent(value: Optional[float], decimals: int = 0) -> str:
    """Format a 0.0-1.0 ratio as a percentage string."""
    if value is None:
        return "N/A"
    return f"{value * 100:.{decimals}f}%"


def format_phone(phone: Optional[str]) -> str:
    """Format a 10 digit US number as "(555) 123-4567"; other input is returned unchanged."""
    if not phone:
        return ""
    digits = _DIGITS.sub("", phone)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return phone
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def truncate(text: Optional[str], max_length: int, suffix: str = "...") -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max(0, max_length - len(suffix))] + suffix


def first_name(full_name: Optional[str]) -> str:
    """First whitespace separated token of a name ("" for empty input)."""
    if not full_name:
        return ""
    parts = full_name.split()
    return parts[0] if parts else ""


def initials(full_name: Optional[str]) -> str:
    """Upper-case initials of up to two name parts ("Jane Q Doe" -> "JQ")."""
    if not full_name:
        return ""
    return "".join(part[0].upper() for part in full_name.split()[:2])


def short_name(first: Optional[str], last: Optional[str]) -> str:
    """Name with last initial only ("John D.")."""
    first = (first or "").strip()
    last = (last or "").strip()
    if not last:
        return first or "Unknown"
    return f"{first} {last[0]}." if first else f"{last[0]}."
