from .charts import ChartData, ChartDataset, build_chart_data, common_dates
from .dates import DateRange, iter_short_dates
from .errors import (
    HistoricServiceError,
    RemoteSourceError,
    StorageError,
    UnsupportedContentTypeError,
)
from .gaps import find_missing_ranges
from .meteostat import MeteostatClient, SearchResults, format_template
from .outliers import OutlierMethod, filter_outliers_by_group
from .reconciler import FetchContext, FetchReconciler, FetchReport, FetchState
from .stations import Station, StationCache, WeatherRecord, get_station_cache
from .storage import CacheStore, DatabaseStore, get_store

__all__ = [
    'ChartData',
    'ChartDataset',
    'build_chart_data',
    'common_dates',
    'DateRange',
    'iter_short_dates',
    'HistoricServiceError',
    'RemoteSourceError',
    'StorageError',
    'UnsupportedContentTypeError',
    'find_missing_ranges',
    'MeteostatClient',
    'SearchResults',
    'format_template',
    'OutlierMethod',
    'filter_outliers_by_group',
    'FetchContext',
    'FetchReconciler',
    'FetchReport',
    'FetchState',
    'Station',
    'StationCache',
    'WeatherRecord',
    'get_station_cache',
    'CacheStore',
    'DatabaseStore',
    'get_store',
]
