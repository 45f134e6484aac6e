"""
In-memory station cache.

Stations own their per-year weather series:

    cache.station_year_data('10382', '2024')
    -> {'01-01': WeatherRecord(tmax=4.1, tmin=-1.2), ...}

The series returned for a station+year is always the same object, so callers
mutate it in place and later readers see the change.
"""

import logging
import threading
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Iterable, Optional

logger = logging.getLogger(__name__)


@dataclass
class WeatherRecord:
    """Daily readings for the tracked parameters. None means not measured."""
    PARAMETERS: ClassVar[tuple[str, ...]] = ('tmax', 'tmin')

    tmax: Optional[float] = None
    tmin: Optional[float] = None

    @classmethod
    def from_source(cls, row: dict) -> 'WeatherRecord':
        """Build from a remote row or stored dict, keeping only non-null tracked values."""
        return cls(**{key: float(row[key]) for key in cls.PARAMETERS if row.get(key) is not None})

    def __getitem__(self, parameter: str) -> Optional[float]:
        if parameter == 'tmax':
            return self.tmax
        if parameter == 'tmin':
            return self.tmin
        raise KeyError(parameter)

    def __setitem__(self, parameter: str, value: Optional[float]) -> None:
        if parameter == 'tmax':
            self.tmax = value
        elif parameter == 'tmin':
            self.tmin = value
        else:
            raise KeyError(parameter)

    @property
    def is_empty(self) -> bool:
        return all(self[key] is None for key in self.PARAMETERS)

    def copy(self) -> 'WeatherRecord':
        return WeatherRecord(tmax=self.tmax, tmin=self.tmin)

    def to_dict(self) -> dict:
        return {key: self[key] for key in self.PARAMETERS}


# Short date (mm-dd) -> record
WeatherSeries = dict[str, WeatherRecord]
# Year (YYYY) -> series
StationYearData = dict[str, WeatherSeries]


def remove_empty_records(series: WeatherSeries) -> list[str]:
    """Delete records with every tracked parameter missing. Returns removed dates."""
    removed = [day for day, record in series.items() if record.is_empty]
    for day in removed:
        del series[day]
    return removed


def clean_station_name(name: str) -> str:
    """Drop everything from the first punctuation or separator character."""
    for index, char in enumerate(name):
        if unicodedata.category(char)[0] in ('P', 'Z'):
            return name[:index]
    return name


@dataclass
class Station:
    name: str
    country: str = ''
    region: Optional[str] = None
    active: bool = True
    data: StationYearData = field(default_factory=dict)

    def __post_init__(self):
        self.name = clean_station_name(self.name)

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'country': self.country,
            'region': self.region,
            'active': self.active,
            'years': sorted(self.data),
        }


class StationCache:
    """Process-lifetime mapping of station id -> Station."""

    def __init__(self, stations: Optional[dict[str, Station]] = None):
        self._stations: dict[str, Station] = dict(stations or {})
        self._lock = threading.Lock()

    def __contains__(self, station_id: str) -> bool:
        return station_id in self._stations

    def __len__(self) -> int:
        return len(self._stations)

    def entries(self) -> list[tuple[str, Station]]:
        """Ordered (id, Station) pairs. A fresh list on every call."""
        return list(self._stations.items())

    def sorted_entries(self, key: Callable[[Station], object]) -> list[tuple[str, Station]]:
        return sorted(self._stations.items(), key=lambda item: key(item[1]))

    def get(self, station_id: str) -> Optional[Station]:
        return self._stations.get(station_id)

    def upsert(self, station_id: str, station: Station) -> None:
        with self._lock:
            self._stations[station_id] = station

    def delete(self, station_id: str) -> bool:
        with self._lock:
            return self._stations.pop(station_id, None) is not None

    def subset(self, station_ids: Iterable[str] = ()) -> 'StationCache':
        """New cache sharing the selected Station objects (all when no ids given)."""
        station_ids = list(station_ids)
        if not station_ids:
            return StationCache(self._stations)
        return StationCache({
            sid: self._stations[sid] for sid in station_ids if sid in self._stations
        })

    def station_data(self, station_id: str) -> Optional[StationYearData]:
        station = self._stations.get(station_id)
        return station.data if station else None

    def has_station_year_data(self, station_id: str, year: str) -> bool:
        data = self.station_data(station_id)
        return bool(data and data.get(year))

    def station_year_data(self, station_id: str, year: str) -> WeatherSeries:
        """Get-or-create the series for a station+year."""
        with self._lock:
            station = self._stations.get(station_id)
            if station is None:
                logger.debug(f"Creating placeholder station {station_id}")
                station = Station(name=station_id)
                self._stations[station_id] = station
            return station.data.setdefault(year, {})

    def _existing_series(self, station_id: str, year: str) -> WeatherSeries:
        """The stored series, or a detached empty one. Never creates entries."""
        data = self.station_data(station_id)
        return data.get(year, {}) if data is not None else {}

    def station_year_dates(self, station_id: str, year: str) -> list[str]:
        return list(self._existing_series(station_id, year))

    def weather_parameter(self, station_id: str, year: str, short_date: str,
                          parameter: str) -> Optional[float]:
        record = self._existing_series(station_id, year).get(short_date)
        if record is None:
            return None
        return record[parameter]

    def name_or_id(self, station_id: str) -> str:
        station = self._stations.get(station_id)
        return station.name if station and station.name else station_id

    def country(self, station_id: str) -> Optional[str]:
        station = self._stations.get(station_id)
        return station.country if station else None


_station_cache: Optional[StationCache] = None
_cache_lock = threading.Lock()


def get_station_cache() -> StationCache:
    """The process-wide station cache."""
    global _station_cache

    with _cache_lock:
        if _station_cache is None:
            _station_cache = StationCache()
    return _station_cache
