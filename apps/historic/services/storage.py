"""
Persistent tier for station-year weather series.

Two interchangeable backends sit behind the same get/put interface:

- CacheStore: simple key -> JSON string store on the Django cache
- DatabaseStore: transactional store on the StationYearStore model

Keys are ``"<stationId>-<year>"``; values are serialized WeatherSeries dicts.
"""

import json
import logging
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, transaction

from .errors import StorageError
from .stations import WeatherRecord, WeatherSeries

logger = logging.getLogger(__name__)


def station_year_key(station_id: str, year: str) -> str:
    return f"{station_id}-{year}"


def serialize_series(series: WeatherSeries) -> dict:
    return {day: record.to_dict() for day, record in series.items()}


def deserialize_series(data: Optional[dict]) -> WeatherSeries:
    """Rebuild a series from a stored blob. Raises StorageError for a malformed blob."""
    try:
        return {day: WeatherRecord.from_source(values) for day, values in (data or {}).items()}
    except (ValueError, TypeError, AttributeError) as e:
        raise StorageError(f"Malformed stored series: {e}")


class PersistentStore:
    """Key-value blob store for serialized weather series."""

    name = ''

    def get(self, key: str) -> dict:
        """Stored series for ``key``, or an empty dict."""
        raise NotImplementedError

    def put(self, key: str, series: dict) -> None:
        """Overwrite the stored series for ``key``."""
        raise NotImplementedError


class CacheStore(PersistentStore):
    """JSON text in the Django cache, no expiry."""

    name = 'cache'
    KEY_PREFIX = 'historic_'

    def _cache_key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    def get(self, key: str) -> dict:
        try:
            text = cache.get(self._cache_key(key))
            if not text:
                return {}
            return json.loads(text)
        except (ValueError, TypeError) as e:
            raise StorageError(f"Corrupt cache entry {key}: {e}")
        except Exception as e:
            raise StorageError(f"Cache read failed for {key}: {e}")

    def put(self, key: str, series: dict) -> None:
        try:
            cache.set(self._cache_key(key), json.dumps(series), timeout=None)
        except Exception as e:
            raise StorageError(f"Cache write failed for {key}: {e}")
        logger.debug(f"Cache store saved {key} ({len(series)} days)")


class DatabaseStore(PersistentStore):
    """StationYearStore rows, one per key, written in a transaction."""

    name = 'database'

    def get(self, key: str) -> dict:
        from apps.historic.models import StationYearStore

        try:
            record = StationYearStore.objects.filter(key=key).only('data').first()
        except DatabaseError as e:
            raise StorageError(f"Database read failed for {key}: {e}")
        return dict(record.data) if record else {}

    def put(self, key: str, series: dict) -> None:
        from apps.historic.models import StationYearStore

        try:
            with transaction.atomic():
                StationYearStore.objects.update_or_create(key=key, defaults={'data': series})
        except DatabaseError as e:
            raise StorageError(f"Database write failed for {key}: {e}")
        logger.debug(f"Database store saved {key} ({len(series)} days)")


STORE_BACKENDS = {
    CacheStore.name: CacheStore,
    DatabaseStore.name: DatabaseStore,
}


def get_store(name: Optional[str] = None) -> PersistentStore:
    """Instantiate the named backend, defaulting to HISTORIC_STORAGE_BACKEND."""
    name = name or getattr(settings, 'HISTORIC_STORAGE_BACKEND', DatabaseStore.name)
    try:
        return STORE_BACKENDS[name]()
    except KeyError:
        raise ValueError(f"Unknown storage backend: {name}")
