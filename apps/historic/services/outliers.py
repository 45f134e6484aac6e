"""
Outlier filters for daily weather records.

Every strategy takes a list of records and a threshold and sets anomalous
values to None in place, independently per tracked parameter. Records that end
up empty are left for the caller to remove.

Running a strategy over a whole year lets the seasonal trend dominate the
baseline, so the default is to run it per window of 30 sorted entries.
"""

import logging
import math
from enum import Enum
from typing import Callable, Optional

import numpy as np
from django.conf import settings

from .stations import WeatherRecord, WeatherSeries

logger = logging.getLogger(__name__)

MODIFIED_ZSCORE_CONSTANT = 0.6745

OutlierStrategy = Callable[[list[WeatherRecord], float], None]
GroupBy = Callable[[str, int], int]


class OutlierMethod(Enum):
    """Available outlier detection strategies."""
    ZSCORE = 'zscore'
    MODIFIED_ZSCORE = 'modified_zscore'
    IQR = 'iqr'


def _defined_values(records: list[WeatherRecord], parameter: str) -> tuple[list[WeatherRecord], np.ndarray]:
    """Records holding a value for ``parameter`` and those values as a float array."""
    defined = [record for record in records if record[parameter] is not None]
    return defined, np.asarray([record[parameter] for record in defined], dtype=float)


def _clear(records: list[WeatherRecord], parameter: str, mask: np.ndarray) -> None:
    for record, flagged in zip(records, mask):
        if flagged:
            record[parameter] = None


def zscore_outliers(records: list[WeatherRecord], threshold: float = 3.0) -> None:
    """Mean / population standard deviation Z-score."""
    for parameter in WeatherRecord.PARAMETERS:
        defined, values = _defined_values(records, parameter)
        if not values.size:
            continue
        std_dev = values.std()
        if std_dev == 0:
            continue
        _clear(defined, parameter, np.abs(values - values.mean()) / std_dev > threshold)


def modified_zscore_outliers(records: list[WeatherRecord], threshold: float = 3.5) -> None:
    """Median / median absolute deviation Z-score."""
    for parameter in WeatherRecord.PARAMETERS:
        defined, values = _defined_values(records, parameter)
        if not values.size:
            continue
        # Upper median by position, not the interpolated np.median
        median = np.sort(values)[values.size // 2]
        deviations = np.abs(values - median)
        mad = np.sort(deviations)[deviations.size // 2]
        if mad == 0:
            continue
        _clear(defined, parameter, MODIFIED_ZSCORE_CONSTANT * deviations / mad > threshold)


def iqr_outliers(records: list[WeatherRecord], k: float = 1.5) -> None:
    """Interquartile range fences at ``k`` times the IQR."""
    for parameter in WeatherRecord.PARAMETERS:
        defined, values = _defined_values(records, parameter)
        if not values.size:
            continue
        ordered = np.sort(values)
        q1 = ordered[math.floor(values.size * 0.25)]
        q3 = ordered[math.floor(values.size * 0.75)]
        iqr = q3 - q1
        _clear(defined, parameter, (values < q1 - k * iqr) | (values > q3 + k * iqr))


STRATEGIES: dict[OutlierMethod, OutlierStrategy] = {
    OutlierMethod.ZSCORE: zscore_outliers,
    OutlierMethod.MODIFIED_ZSCORE: modified_zscore_outliers,
    OutlierMethod.IQR: iqr_outliers,
}

# Threshold used by the grouped filter when none is configured
DEFAULT_GROUP_THRESHOLDS = {
    OutlierMethod.ZSCORE: 3.5,
    OutlierMethod.MODIFIED_ZSCORE: 3.5,
    OutlierMethod.IQR: 1.5,
}


def group_by_days(size: int = 30) -> GroupBy:
    """Consecutive windows of ``size`` sorted entries, ignoring month boundaries."""
    def grouper(short_date: str, index: int) -> int:
        return index // size
    return grouper


def group_by_month(short_date: str, index: int) -> int:
    return int(short_date[:2])


def filter_outliers_by_group(
    series: WeatherSeries,
    group_by: Optional[GroupBy] = None,
    method: OutlierMethod = OutlierMethod.ZSCORE,
    threshold: Optional[float] = None,
) -> None:
    """Run ``method`` separately on each group of the date-sorted series."""
    group_by = group_by or group_by_days()
    strategy = STRATEGIES[method]
    if threshold is None:
        threshold = DEFAULT_GROUP_THRESHOLDS[method]

    groups: dict[int, list[WeatherRecord]] = {}
    for index, short_date in enumerate(sorted(series)):
        groups.setdefault(group_by(short_date, index), []).append(series[short_date])

    for records in groups.values():
        strategy(records, threshold)


def configured_filter() -> Callable[[WeatherSeries], None]:
    """Grouped filter built from the HISTORIC_OUTLIER_* settings."""
    method = OutlierMethod(getattr(settings, 'HISTORIC_OUTLIER_METHOD', 'zscore'))
    threshold = getattr(settings, 'HISTORIC_OUTLIER_THRESHOLD', None)
    size = getattr(settings, 'HISTORIC_OUTLIER_GROUP_SIZE', 30)
    grouper = group_by_days(size)

    def apply(series: WeatherSeries) -> None:
        filter_outliers_by_group(series, grouper, method, threshold)

    logger.debug(f"Outlier filter: {method.value}, threshold={threshold}, window={size}")
    return apply
