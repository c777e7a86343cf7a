"""Human-readable date parsing for date filters.

Every accepted input is turned into the canonical UTC timestamp format
used by note records, so results compare directly against ``modified``.

Supported forms:
    - canonical ``"2026-01-28 12:00:00"`` (passed through)
    - date only ``"2026-01-28"`` (midnight)
    - ISO 8601 ``"2026-01-28T12:00:00Z"`` / with offset
    - ``now``, ``today``, ``yesterday``, ``tomorrow``
    - ``"2 days ago"``, ``"1 week ago"``, ``"3 hours ago"``
    - ``"in 2 days"``, ``"in 1 month"``
"""
import calendar
import datetime
import re
from datetime import timezone
from typing import Optional

from tagnote.exceptions import ErrorCode, ValidationError
from tagnote.models.schema import TIMESTAMP_FORMAT, utc_now, utc_timestamp

_RELATIVE_PATTERN = re.compile(
    r"^(?:(?P<future>in)\s+)?(?P<amount>\d+|an?)\s+(?P<unit>[a-z]+?)s?"
    r"(?:\s+(?P<past>ago))?$"
)

_UNIT_SECONDS = {
    "sec": 1,
    "second": 1,
    "min": 60,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "fortnight": 14 * 86400,
}

# Named days resolve to midnight of that day, offset in days from today
_NAMED_DAYS = {"today": 0, "yesterday": -1, "tomorrow": 1}


def _add_months(value: datetime.datetime, months: int) -> datetime.datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _parse_relative(text: str, now: datetime.datetime) -> Optional[datetime.datetime]:
    match = _RELATIVE_PATTERN.match(text)
    if not match or bool(match.group("future")) == bool(match.group("past")):
        return None
    amount_text = match.group("amount")
    amount = 1 if amount_text in ("a", "an") else int(amount_text)
    if match.group("past"):
        amount = -amount

    unit = match.group("unit")
    if unit in _UNIT_SECONDS:
        return now + datetime.timedelta(seconds=amount * _UNIT_SECONDS[unit])
    if unit == "month":
        return _add_months(now, amount)
    if unit == "year":
        return _add_months(now, amount * 12)
    return None


def _parse_iso(text: str) -> Optional[datetime.datetime]:
    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return datetime.datetime.fromisoformat(candidate)
    except ValueError:
        return None


def parse_human_date(value: str, now: Optional[datetime.datetime] = None) -> str:
    """Parse a human-readable date into a canonical UTC timestamp string.

    Args:
        value: The text to parse.
        now: Reference time for relative forms (default: current UTC time).

    Returns:
        A ``"YYYY-MM-DD HH:MM:SS"`` string.

    Raises:
        ValidationError: If the text is not a recognized date.
    """
    text = value.strip()

    try:
        datetime.datetime.strptime(text, TIMESTAMP_FORMAT)
        return text
    except ValueError:
        pass
    try:
        datetime.datetime.strptime(text, "%Y-%m-%d")
        return f"{text} 00:00:00"
    except ValueError:
        pass

    now = now or utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    lowered = " ".join(text.lower().split())

    if lowered == "now":
        return utc_timestamp(now)
    if lowered in _NAMED_DAYS:
        day = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        return utc_timestamp(day + datetime.timedelta(days=_NAMED_DAYS[lowered]))

    relative = _parse_relative(lowered, now)
    if relative is not None:
        return utc_timestamp(relative)

    parsed = _parse_iso(text)
    if parsed is not None:
        return utc_timestamp(parsed)

    raise ValidationError(
        f"Could not parse date: '{text}'. "
        "Try formats like '2 days ago', 'yesterday', or '2024-01-28'.",
        field="date",
        value=text,
        code=ErrorCode.INVALID_DATE,
    )
