"""Timeframe extraction for parsed intents.

Temporal handling:
- Relative keywords (`today`, `last week`, ...) map to a start/end window
  anchored at the supplied `now`.
- Explicit ranges (`from X to Y`) and single days (`on X`) are parsed with
  `dateutil`. A single day spans 24 hours from its midnight.
- Relative keywords win over explicit dates.

Determinism:
- Deterministic for identical text and `now`.

Failure handling:
- Unparseable explicit dates yield no timeframe rather than an error.
"""

from datetime import datetime, timedelta

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from routewise.core.types import TimeRange
from routewise.nlp.vocabulary import (
    DATE_RANGE_PATTERN,
    RELATIVE_TIMEFRAME_PATTERNS,
    SPECIFIC_DATE_PATTERN,
)


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999999)


def relative_window(period: str, now: datetime) -> TimeRange:
    """Compute the window for a relative period keyword.

    Weeks start on Sunday. Unknown periods return a range carrying only the
    `relative` token.
    """
    if period == "today":
        return TimeRange(_start_of_day(now), _end_of_day(now), period)

    if period == "yesterday":
        day = now - timedelta(days=1)
        return TimeRange(_start_of_day(day), _end_of_day(day), period)

    if period == "last_week":
        return TimeRange(now - timedelta(days=7), now, period)

    if period == "this_week":
        days_since_sunday = (now.weekday() + 1) % 7
        return TimeRange(_start_of_day(now - timedelta(days=days_since_sunday)), now, period)

    if period == "last_month":
        return TimeRange(now - relativedelta(months=1), now, period)

    if period == "this_month":
        return TimeRange(_start_of_day(now.replace(day=1)), now, period)

    return TimeRange(relative=period)


def _parse_date(text: str, now: datetime) -> datetime | None:
    try:
        parsed = date_parser.parse(text, default=_start_of_day(now).replace(tzinfo=None))
    except (ValueError, OverflowError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=now.tzinfo)
    return parsed


def extract_timeframe(normalized: str, lowered: str, now: datetime) -> TimeRange | None:
    """Extract a timeframe from a query.

    Args:
        normalized: Punctuation-free normalized text (relative keyword scan).
        lowered: Lowercased text with punctuation intact (explicit dates).
        now: Anchor time for relative windows.

    Returns:
        `TimeRange` or `None`.
    """
    for period, pattern in RELATIVE_TIMEFRAME_PATTERNS.items():
        if pattern.search(normalized):
            return relative_window(period, now)

    range_match = DATE_RANGE_PATTERN.search(lowered)
    if range_match:
        start = _parse_date(range_match.group(1), now)
        end = _parse_date(range_match.group(2), now)
        if start is not None and end is not None:
            return TimeRange(start=start, end=end)

    day_match = SPECIFIC_DATE_PATTERN.search(lowered)
    if day_match:
        day = _parse_date(day_match.group(1), now)
        if day is not None:
            return TimeRange(start=day, end=day + timedelta(days=1))

    return None
