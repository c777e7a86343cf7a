"""Tests for human-readable date parsing."""
import datetime
from datetime import timezone

import pytest

from tagnote.dateparse import parse_human_date
from tagnote.exceptions import ErrorCode, ValidationError

NOW = datetime.datetime(2024, 3, 31, 15, 30, 45, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("2026-01-28 12:30:45", "2026-01-28 12:30:45"),
        ("  2026-01-28 12:30:45  ", "2026-01-28 12:30:45"),
        ("2026-01-28", "2026-01-28 00:00:00"),
        ("2026-01-28T12:00:00Z", "2026-01-28 12:00:00"),
        ("2026-01-28T14:00:00+02:00", "2026-01-28 12:00:00"),
        ("now", "2024-03-31 15:30:45"),
        ("today", "2024-03-31 00:00:00"),
        ("Yesterday", "2024-03-30 00:00:00"),
        ("tomorrow", "2024-04-01 00:00:00"),
        ("2 days ago", "2024-03-29 15:30:45"),
        ("1 day ago", "2024-03-30 15:30:45"),
        ("3 hours ago", "2024-03-31 12:30:45"),
        ("an hour ago", "2024-03-31 14:30:45"),
        ("1 week ago", "2024-03-24 15:30:45"),
        ("in 2 days", "2024-04-02 15:30:45"),
        ("30 minutes ago", "2024-03-31 15:00:45"),
        ("1 month ago", "2024-02-29 15:30:45"),
        ("in 1 year", "2025-03-31 15:30:45"),
    ],
)
def test_parse_human_date(text, expected):
    assert parse_human_date(text, now=NOW) == expected


@pytest.mark.parametrize(
    "text", ["not a date", "", "2 days", "in 2 days ago", "5 parsecs ago", "2024-13-01"]
)
def test_unparseable_dates(text):
    with pytest.raises(ValidationError) as exc_info:
        parse_human_date(text, now=NOW)
    assert exc_info.value.code == ErrorCode.INVALID_DATE


def test_default_now_is_recent():
    result = parse_human_date("now")
    assert result.startswith(str(datetime.datetime.now(timezone.utc).year))
