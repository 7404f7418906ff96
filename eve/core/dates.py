"""
Eve Assistant — Loose date parsing.

One shared parser for every date the model (or a user) hands us, so the
task, event, invoice and meeting paths all apply the same policy.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from dateutil import parser as date_parser

# Relative literals → day offset from "now"
RELATIVE_DAYS: dict[str, int] = {
    "today": 0,
    "tomorrow": 1,
    "yesterday": -1,
    "next week": 7,
    "next month": 30,
}


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_loose_date(
    value: object,
    default: datetime | None = None,
    now: datetime | None = None,
) -> datetime | None:
    """Parse a permissive date value.

    Accepts datetime/date objects, the literals in RELATIVE_DAYS, ISO-8601
    strings, and anything dateutil understands. Empty or unparseable input
    returns ``default``.
    """
    if isinstance(value, datetime):
        return _to_local_naive(value)
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str) or not value.strip():
        return default

    now = now or datetime.now()
    text = value.strip()
    lowered = text.lower()

    if lowered in RELATIVE_DAYS:
        return now + timedelta(days=RELATIVE_DAYS[lowered])

    try:
        return _to_local_naive(datetime.fromisoformat(text))
    except ValueError:
        pass

    try:
        parsed = date_parser.parse(text, default=start_of_day(now))
    except (ValueError, OverflowError):
        return default
    return _to_local_naive(parsed)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def format_short_date(moment: datetime | None) -> str:
    """'Mar 01, 2025' — or 'No date' when missing."""
    if moment is None:
        return "No date"
    return moment.strftime("%b %d, %Y")


def format_datetime(moment: datetime | None) -> str:
    """'Mar 01, 2025 14:30' — used in replies and prompt context."""
    if moment is None:
        return "No time"
    return moment.strftime("%b %d, %Y %H:%M")
