"""
Meteostat API client.

Provides daily station observations plus the lookups needed to pick a station:
- Autocomplete search (places and weather stations)
- Place details -> nearest weather station

Responses come back either as application/json or as a text body holding
JSON; anything else is rejected.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import httpx
from django.conf import settings

from .errors import RemoteSourceError, UnsupportedContentTypeError

logger = logging.getLogger(__name__)

_TEMPLATE_RE = re.compile(r'\$\{([^}]+)\}')


def format_template(template: str, params: dict) -> str:
    """Replace ``${key}`` placeholders from ``params``; unknown keys become empty."""
    return _TEMPLATE_RE.sub(
        lambda match: str(params[match.group(1)]) if match.group(1) in params else '',
        template,
    ).strip()


@dataclass
class PlaceResult:
    id: str
    name: str
    country: str
    region: Optional[str] = None


@dataclass
class StationResult:
    id: str
    name: str
    country: str
    region: Optional[str] = None
    active: bool = True


@dataclass
class SearchResults:
    places: list[PlaceResult] = field(default_factory=list)
    stations: list[StationResult] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.places or self.stations)


class MeteostatClient:
    """HTTP client for the Meteostat web app API."""

    MIN_SEARCH_LENGTH = 3

    def __init__(self):
        self.base_url = getattr(settings, 'METEOSTAT_API_URL', 'https://d.meteostat.net/app/')
        self.daily_url_template = getattr(
            settings,
            'METEOSTAT_DAILY_URL_TEMPLATE',
            self.base_url + 'proxy/stations/daily?station=${stationId}&start=${start}&end=${end}',
        )
        self.autocomplete_url_template = self.base_url + 'autocomplete?q=${location}&lang=${locale}'
        self.nearby_url_template = self.base_url + 'nearby?lang=${locale}&limit=1&lat=${latitude}&lon=${longitude}'
        self.place_url_template = 'https://meteostat.net/props/${locale}/place/${country}/${id}'
        self.locale = getattr(settings, 'METEOSTAT_LOCALE', 'en')
        self.timeout = getattr(settings, 'METEOSTAT_TIMEOUT', 10.0)

    def fetch_json(self, url: str):
        """GET ``url`` and decode the body according to its content type."""
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(url)

                if response.status_code != 200:
                    raise RemoteSourceError(f"Meteostat API error: {response.status_code}")

                content_type = response.headers.get('Content-Type', '')
                if 'application/json' in content_type:
                    return response.json()
                if 'text/' in content_type:
                    return json.loads(response.text)
                raise UnsupportedContentTypeError(f"Unsupported content type: {content_type}")

        except httpx.TimeoutException:
            raise RemoteSourceError("Meteostat API request timed out")
        except httpx.RequestError as e:
            raise RemoteSourceError(f"Meteostat API request failed: {e}")
        except ValueError as e:
            raise RemoteSourceError(f"Invalid JSON from Meteostat: {e}")

    def fetch_daily(self, station_id: str, start: str, end: str) -> list[dict]:
        """
        Daily observations for a station between two ``YYYY-mm-dd`` dates.

        Each row holds a ``date`` plus the measured parameters, nulls meaning
        "not measured".
        """
        url = format_template(self.daily_url_template, {
            'stationId': station_id,
            'start': start,
            'end': end,
        })
        logger.info(f"Fetching daily data for {station_id} {start}..{end}")
        payload = self.fetch_json(url)
        if not isinstance(payload, dict):
            raise RemoteSourceError(f"Unexpected daily payload for {station_id}")
        rows = payload.get('data') or []
        if not isinstance(rows, list):
            raise RemoteSourceError(f"Unexpected daily rows for {station_id}")
        return rows

    def search(self, query: str) -> SearchResults:
        """Autocomplete places and active stations matching ``query``."""
        query = query.strip()
        if len(query) < self.MIN_SEARCH_LENGTH:
            return SearchResults()

        url = format_template(self.autocomplete_url_template, {'location': query, 'locale': self.locale})
        payload = self.fetch_json(url)
        data = (payload or {}).get('data') or {}

        results = SearchResults()
        try:
            for place in data.get('places') or []:
                results.places.append(PlaceResult(
                    id=place['id'],
                    name=place['name'],
                    country=place.get('country', ''),
                    region=place.get('region'),
                ))
            for station in data.get('stations') or []:
                if not station.get('active'):
                    continue
                results.stations.append(StationResult(
                    id=station['id'],
                    name=station['name'],
                    country=station.get('country', ''),
                    region=station.get('region'),
                    active=True,
                ))
        except (KeyError, TypeError, AttributeError) as e:
            logger.error(f"Failed to parse autocomplete response: {e}")
            raise RemoteSourceError(f"Failed to parse search results: {e}")
        return results

    def nearest_station(self, place_id: str, country: str) -> tuple[str, str]:
        """Resolve a place to the (id, name) of its nearest weather station."""
        place_url = format_template(self.place_url_template, {
            'id': place_id,
            'country': country.lower(),
            'locale': self.locale,
        })
        try:
            location = self.fetch_json(place_url)['place']['location']
            latitude, longitude = location['latitude'], location['longitude']
        except (KeyError, TypeError) as e:
            raise RemoteSourceError(f"Failed to parse place {place_id}: {e}")

        nearby_url = format_template(self.nearby_url_template, {
            'latitude': latitude,
            'longitude': longitude,
            'locale': self.locale,
        })
        try:
            nearby = self.fetch_json(nearby_url)['data']
            if isinstance(nearby, list):
                nearby = nearby[0]
            return nearby['id'], nearby['name']
        except (KeyError, TypeError, IndexError) as e:
            raise RemoteSourceError(f"No station near {place_id}: {e}")
