"""
Date helpers for short dates.

A short date is an ``mm-dd`` string naming a day inside an implicit year.
Short dates sort chronologically within one year, so ordering is always
re-derived by sorting the strings.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Union
from zoneinfo import ZoneInfo

from django.conf import settings

FIRST_DAY = '01-01'
LAST_DAY = '12-31'

_SHORT_DATE_RE = re.compile(r'^\d{2}-\d{2}$')
_YEAR_RE = re.compile(r'^\d{4}$')


@dataclass
class DateRange:
    """Inclusive range of short dates. An empty ``start`` means uninitialized."""
    start: str = ''
    end: str = ''

    def __bool__(self) -> bool:
        return bool(self.start)

    def __str__(self) -> str:
        return f"{self.start}..{self.end}"


def validate_short_date(year: Union[str, int], short_date: str) -> date:
    """Return the real date for ``short_date`` in ``year`` or raise ValueError."""
    if not isinstance(short_date, str) or not _SHORT_DATE_RE.match(short_date):
        raise ValueError(f"Invalid short date: {short_date!r}")
    return datetime.strptime(f"{int(year):04d}-{short_date}", '%Y-%m-%d').date()


def to_short_date(value: Union[str, date]) -> str:
    """``YYYY-mm-dd`` (or a date) to ``mm-dd``."""
    if isinstance(value, date):
        return value.strftime('%m-%d')
    return value[5:10]


def to_iso_date(year: Union[str, int], short_date: str) -> str:
    return f"{year}-{short_date}"


def iter_short_dates(year: Union[str, int], start: str, end: str) -> Iterator[str]:
    """Yield every short date from ``start`` to ``end`` inclusive."""
    current = validate_short_date(year, start)
    last = validate_short_date(year, end)
    step = timedelta(days=1)
    while current <= last:
        yield current.strftime('%m-%d')
        current += step


def today(tz: Optional[str] = None) -> date:
    """Today's date in the configured local timezone."""
    zone = ZoneInfo(tz or getattr(settings, 'HISTORIC_LOCAL_TIMEZONE', 'UTC'))
    return datetime.now(zone).date()


def parse_years(raw: Union[str, list[str]], current: Optional[date] = None) -> list[str]:
    """
    Validate user supplied years.

    Accepts a whitespace/comma separated string or a list. Every year must be
    four digits and not in the future. Order is preserved, duplicates dropped.
    """
    current = current or today()
    if isinstance(raw, str):
        raw = re.split(r'[\s,]+', raw)
    years = []
    for year in raw:
        year = year.strip()
        if not year:
            continue
        if not _YEAR_RE.match(year) or int(year) > current.year:
            raise ValueError(f"Invalid year: {year}")
        if year not in years:
            years.append(year)
    return years
