"""Date/time helpers."""

from datetime import UTC, date, datetime


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def ordinal(day: int) -> str:
    """Return ``day`` with its English ordinal suffix (1st, 2nd, 11th, 23rd)."""
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def format_long_date(value: date) -> str:
    """Format a date as ``October 19th, 2026``."""
    return f"{value:%B} {ordinal(value.day)}, {value.year}"


def format_long_datetime(value: datetime) -> str:
    """Format a timestamp as ``October 19th, 2026 3:04 PM``."""
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{format_long_date(value.date())} {hour}:{value.minute:02d} {meridiem}"
