"""
Year range parsing and effective month resolution.

A requested range never yields a month after the current UTC month. The
current (partial) month is included.
"""
import calendar
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, Tuple

from .constants import MAX_YEAR, MIN_YEAR
from .errors import InvalidRangeFormat, RangeInverted, RangeOutOfBounds
from .models import MonthPlan, YearRange

logger = logging.getLogger(__name__)

_RANGE_PATTERN = re.compile(r'^(\d{4})(?:\s*:\s*(\d{4}))?$')


def parse_year_range(expression: str) -> YearRange:
    """
    Parse 'YYYY' or 'YYYY:YYYY' into a YearRange.

    Raises:
        InvalidRangeFormat: expression has any other shape
        RangeOutOfBounds: a year is outside MIN_YEAR..MAX_YEAR
        RangeInverted: start year is after end year
    """
    match = _RANGE_PATTERN.match((expression or "").strip())
    if not match:
        raise InvalidRangeFormat(expression)

    start_year = int(match.group(1))
    end_year = int(match.group(2)) if match.group(2) else start_year

    for year in (start_year, end_year):
        if year < MIN_YEAR or year > MAX_YEAR:
            raise RangeOutOfBounds(year, MIN_YEAR, MAX_YEAR)

    if start_year > end_year:
        raise RangeInverted(start_year, end_year)

    return YearRange(start_year, end_year)


def month_key(year: int, month: int) -> str:
    """Canonical YYYY-MM key."""
    return f"{year:04d}-{month:02d}"


def _as_utc(now_utc: datetime) -> datetime:
    if now_utc.tzinfo is None:
        return now_utc.replace(tzinfo=timezone.utc)
    return now_utc.astimezone(timezone.utc)


def resolve_months(expression: str, now_utc: datetime) -> MonthPlan:
    """
    Resolve a year range expression into the months to report.

    Example:
        With now_utc = 2025-06-15, '2023:2025' yields 2023-01 .. 2025-06
        (30 months) and '2026' yields an empty, fully_future plan.
    """
    year_range = parse_year_range(expression)
    now = _as_utc(now_utc)

    if year_range.start_year > now.year:
        logger.info(f"Requested range {year_range.start_year}-{year_range.end_year} is entirely in the future")
        return MonthPlan(year_range=year_range, fully_future=True)

    effective_end_year = min(year_range.end_year, now.year)
    current_month_start = (now.year, now.month)

    months = [
        month_key(year, month)
        for year in range(year_range.start_year, effective_end_year + 1)
        for month in range(1, 13)
        if (year, month) <= current_month_start
    ]

    if effective_end_year < year_range.end_year:
        logger.info(f"End year capped at {effective_end_year} (requested {year_range.end_year})")

    label = f"{months[0]} to {months[-1]}" if months else ""
    return MonthPlan(
        year_range=year_range,
        months=months,
        effective_end_year=effective_end_year,
        label=label,
    )


def year_window(year: int, months: Iterable[str]) -> Tuple[datetime, datetime]:
    """
    Query window for one year: Jan 1 00:00:00Z to the last second of the
    latest requested month of that year.
    """
    in_year = [m for m in months if int(m[:4]) == year]
    last_month = int(max(in_year)[5:7]) if in_year else 12
    last_day = calendar.monthrange(year, last_month)[1]

    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year, last_month, last_day, 23, 59, 59, tzinfo=timezone.utc)
    return start, end


def group_by_year(months: Iterable[str]) -> List[int]:
    """Distinct years of the month keys, ascending."""
    return sorted({int(m[:4]) for m in months})
