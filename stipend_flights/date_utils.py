"""Date utilities for trip dates and validation"""

import datetime
from typing import Tuple, Union

from dateutil.parser import parse as parse_date
from dateutil.relativedelta import relativedelta

from .config import POST_CONFERENCE_DAYS, PRE_CONFERENCE_DAYS

DateLike = Union[str, datetime.date]


def parse_iso_date(value: DateLike) -> datetime.date:
    """
    Parse a date given as YYYY-MM-DD (or a date object).

    Raises:
        ValueError: If the value is not a valid date
    """
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return parse_date(value).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid date '{value}': {str(e)}")


def format_date(value: DateLike) -> str:
    return parse_iso_date(value).strftime("%Y-%m-%d")


def validate_trip_dates(outbound: DateLike, return_date: DateLike) -> Tuple[bool, str]:
    """
    Validate a round-trip date pair.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        start = parse_iso_date(outbound)
        end = parse_iso_date(return_date)
    except ValueError as e:
        return False, str(e)

    if end < start:
        return False, f"Return date {format_date(end)} is before outbound date {format_date(start)}"

    return True, ""


def travel_dates(
    conference_start: DateLike,
    conference_end: DateLike,
    pre_days: int = PRE_CONFERENCE_DAYS,
    post_days: int = POST_CONFERENCE_DAYS,
) -> Tuple[str, str]:
    """
    Flight dates for attending a conference: arrive the day before, leave
    the day after.

    Raises:
        ValueError: If a date is invalid or the conference ends before it starts
    """
    start = parse_iso_date(conference_start)
    end = parse_iso_date(conference_end)
    if end < start:
        raise ValueError(f"Conference end {format_date(end)} is before start {format_date(start)}")

    outbound = start - relativedelta(days=pre_days)
    return_date = end + relativedelta(days=post_days)
    return format_date(outbound), format_date(return_date)
