"""Detect missing date ranges in a weather series."""

from typing import Optional, Union

from .dates import DateRange, iter_short_dates
from .stations import WeatherSeries


def find_missing_ranges(
    year: Union[str, int],
    requested: DateRange,
    available: WeatherSeries,
    copy_into: Optional[WeatherSeries] = None,
    boundary: Optional[str] = None,
) -> list[DateRange]:
    """
    Return the contiguous ranges of ``requested`` whose days are absent from ``available``.

    A day is present when its short date is a key of ``available``. Consecutive
    missing days coalesce into one range.

    If ``copy_into`` is given, every present day's record is copied into it
    (write-through from a lower cache tier).

    If ``boundary`` is given together with ``copy_into`` and the requested end
    is both the boundary (today, or 12-31 for past years) and already in
    ``copy_into``, the range was completed earlier and nothing is scanned.
    """
    if not available:
        return [DateRange(requested.start, requested.end)]

    if (copy_into is not None and boundary and requested.end == boundary
            and requested.end in copy_into):
        return []

    missing_ranges: list[DateRange] = []
    gap: Optional[DateRange] = None

    for day in iter_short_dates(year, requested.start, requested.end):
        if day in available:
            if copy_into is not None:
                copy_into[day] = available[day].copy()
            if gap is not None:
                missing_ranges.append(gap)
                gap = None
        elif gap is None:
            gap = DateRange(day, day)
        else:
            gap.end = day

    if gap is not None:
        missing_ranges.append(gap)
    return missing_ranges
