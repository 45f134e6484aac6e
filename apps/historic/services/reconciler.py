"""
Fetch Reconciler

Fills the in-memory station cache for every selected station and year,
touching the slowest tier only for what the faster ones are missing:

1. CHECK_MEMORY - gaps in the in-memory series (no I/O)
2. CHECK_PERSISTENT - fill gaps from the persistent store, copying hits forward
3. FETCH_REMOTE - one Meteostat request per remaining gap, all in parallel
4. MERGE_AND_PERSIST - merge rows, filter outliers, drop empty days, save

Remote requests run on worker threads. Merging and persisting happen on the
calling thread as each request completes, so cache and store writes never
overlap. A failure for one gap or station-year is recorded in the report and
does not stop the others.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Optional, Union

from .dates import (
    FIRST_DAY,
    LAST_DAY,
    DateRange,
    parse_years,
    to_iso_date,
    to_short_date,
    today,
    validate_short_date,
)
from .errors import RemoteSourceError, StorageError
from .gaps import find_missing_ranges
from .meteostat import MeteostatClient
from .outliers import configured_filter
from .stations import (
    StationCache,
    WeatherRecord,
    WeatherSeries,
    get_station_cache,
    remove_empty_records,
)
from .storage import (
    PersistentStore,
    deserialize_series,
    get_store,
    serialize_series,
    station_year_key,
)

logger = logging.getLogger(__name__)


class FetchState(Enum):
    """Progress of one station-year through the cache tiers."""
    CHECK_MEMORY = 'check_memory'
    CHECK_PERSISTENT = 'check_persistent'
    FETCH_REMOTE = 'fetch_remote'
    MERGE_AND_PERSIST = 'merge_and_persist'
    DONE = 'done'


def _split(raw: Union[str, list[str], None]) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = re.split(r'[\s,]+', raw)
    return [item.strip() for item in raw if item and item.strip()]


@dataclass
class FetchContext:
    """One user-triggered selection: which stations, years and parameters."""
    station_ids: list[str]
    years: list[str]
    parameters: list[str] = field(default_factory=lambda: list(WeatherRecord.PARAMETERS))
    today: date = field(default_factory=today)
    start: str = FIRST_DAY
    end: Optional[str] = None

    @classmethod
    def from_query(
        cls,
        stations: Union[str, list[str], None],
        years: Union[str, list[str], None],
        parameters: Union[str, list[str], None] = None,
        current: Optional[date] = None,
    ) -> 'FetchContext':
        """Validate a raw selection. Raises ValueError with a user-facing message."""
        current = current or today()
        station_ids = list(dict.fromkeys(_split(stations)))
        if not station_ids:
            raise ValueError("Select at least one station")
        year_list = parse_years(_split(years), current)
        if not year_list:
            raise ValueError("Select at least one year")
        params = _split(parameters) if parameters is not None else list(WeatherRecord.PARAMETERS)
        params = [p for p in dict.fromkeys(params) if p in WeatherRecord.PARAMETERS]
        if not params:
            raise ValueError("Select at least one weather parameter")
        return cls(station_ids=station_ids, years=year_list, parameters=params, today=current)

    @property
    def current_year_selected(self) -> bool:
        return str(self.today.year) in self.years

    @property
    def boundary(self) -> str:
        """Last day any selected year can have data for."""
        return to_short_date(self.today) if self.current_year_selected else LAST_DAY

    @property
    def start_date(self) -> str:
        return self.start

    @property
    def end_date(self) -> str:
        return self.end or self.boundary

    def range_for(self, year: str) -> DateRange:
        end = self.end_date
        try:
            validate_short_date(year, end)
        except ValueError:
            # 02-29 requested alongside a non-leap year
            end = '02-28'
        return DateRange(self.start_date, end)


@dataclass
class StationYearResult:
    station_id: str
    year: str
    state: FetchState = FetchState.CHECK_MEMORY
    memory_gaps: list[DateRange] = field(default_factory=list)
    remote_gaps: list[DateRange] = field(default_factory=list)
    fetched_rows: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            'station': self.station_id,
            'year': self.year,
            'state': self.state.value,
            'memory_gaps': [str(gap) for gap in self.memory_gaps],
            'remote_gaps': [str(gap) for gap in self.remote_gaps],
            'fetched_rows': self.fetched_rows,
            'errors': list(self.errors),
        }


@dataclass
class FetchReport:
    results: list[StationYearResult] = field(default_factory=list)

    @property
    def failures(self) -> list[StationYearResult]:
        return [result for result in self.results if not result.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    def get(self, station_id: str, year: str) -> Optional[StationYearResult]:
        for result in self.results:
            if result.station_id == station_id and result.year == year:
                return result
        return None


@dataclass
class _Plan:
    """Remote work for one station-year that the local tiers could not satisfy."""
    result: StationYearResult
    key: str
    series: WeatherSeries
    store_series: WeatherSeries

    @property
    def station_id(self) -> str:
        return self.result.station_id

    @property
    def year(self) -> str:
        return self.result.year


class FetchReconciler:
    """Fill the station cache from memory, persistent store and Meteostat."""

    def __init__(
        self,
        cache: Optional[StationCache] = None,
        store: Optional[PersistentStore] = None,
        client: Optional[MeteostatClient] = None,
        outlier_filter: Optional[Callable[[WeatherSeries], None]] = None,
    ):
        self.cache = cache if cache is not None else get_station_cache()
        self.store = store or get_store()
        self.client = client or MeteostatClient()
        self.outlier_filter = outlier_filter or configured_filter()

    def fetch(self, context: FetchContext) -> FetchReport:
        """Reconcile every station-year of ``context``. Never raises for fetch or store errors."""
        report = FetchReport()
        plans = []

        for station_id in context.station_ids:
            for year in context.years:
                result = StationYearResult(station_id, year)
                report.results.append(result)
                try:
                    plan = self._check_local(context, result)
                except StorageError as e:
                    result.errors.append(str(e))
                    result.state = FetchState.DONE
                    continue
                if plan:
                    plans.append(plan)

        tasks = [(plan, gap) for plan in plans for gap in plan.result.remote_gaps]
        if tasks:
            self._fetch_remote(tasks)

        for plan in plans:
            plan.result.state = FetchState.DONE

        for failure in report.failures:
            for error in failure.errors:
                logger.warning(f"Fetch failed for {failure.station_id}-{failure.year}: {error}")
        return report

    def _check_local(self, context: FetchContext, result: StationYearResult) -> Optional[_Plan]:
        """Run the memory and persistent checks. Returns a plan when remote gaps remain."""
        station_id, year = result.station_id, result.year
        requested = context.range_for(year)
        series = self.cache.station_year_data(station_id, year)

        result.state = FetchState.CHECK_MEMORY
        gaps = find_missing_ranges(year, requested, series)
        result.memory_gaps = gaps
        if not gaps:
            logger.debug(f"Memory cache hit for {station_id}-{year}")
            result.state = FetchState.DONE
            return None

        result.state = FetchState.CHECK_PERSISTENT
        key = station_year_key(station_id, year)
        store_series = deserialize_series(self.store.get(key))
        if store_series:
            remaining = []
            for gap in gaps:
                remaining.extend(find_missing_ranges(
                    year, gap, store_series, copy_into=series, boundary=context.boundary,
                ))
            gaps = remaining
        result.remote_gaps = gaps
        if not gaps:
            logger.debug(f"Persistent store hit for {station_id}-{year}")
            result.state = FetchState.DONE
            return None

        result.state = FetchState.FETCH_REMOTE
        return _Plan(result=result, key=key, series=series, store_series=store_series)

    def _fetch_remote(self, tasks: list[tuple[_Plan, DateRange]]) -> None:
        """One request per gap, all at once; merge each as it completes."""
        with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
            futures = {}
            for plan, gap in tasks:
                future = executor.submit(
                    self.client.fetch_daily,
                    plan.station_id,
                    to_iso_date(plan.year, gap.start),
                    to_iso_date(plan.year, gap.end),
                )
                futures[future] = (plan, gap)

            for future in as_completed(futures):
                plan, gap = futures[future]
                try:
                    rows = future.result()
                except RemoteSourceError as e:
                    plan.result.errors.append(f"{gap}: {e}")
                    continue
                except Exception as e:
                    logger.exception(f"Unexpected error fetching {plan.key} {gap}")
                    plan.result.errors.append(f"{gap}: {e}")
                    continue

                try:
                    self._merge(plan, rows)
                except (RemoteSourceError, StorageError) as e:
                    plan.result.errors.append(f"{gap}: {e}")

    def _build_records(self, plan: _Plan, rows: list[dict]) -> WeatherSeries:
        """Parse a batch of remote rows. Raises RemoteSourceError on the first bad row."""
        records: WeatherSeries = {}
        try:
            for row in rows:
                raw_date = row.get('date') if isinstance(row, dict) else None
                if not raw_date:
                    continue
                short_date = to_short_date(raw_date)
                validate_short_date(plan.year, short_date)
                records[short_date] = WeatherRecord.from_source(row)
        except (ValueError, TypeError, AttributeError) as e:
            raise RemoteSourceError(f"Malformed daily row for {plan.key}: {e}")
        return records

    def _merge(self, plan: _Plan, rows: list[dict]) -> None:
        """Merge fetched rows into the cache, clean the series and persist it."""
        plan.result.state = FetchState.MERGE_AND_PERSIST
        if not rows:
            logger.info(f"No data returned for {plan.key}")
            return

        records = self._build_records(plan, rows)
        plan.series.update(records)
        merged = len(records)
        plan.result.fetched_rows += merged

        self.outlier_filter(plan.series)
        for short_date in remove_empty_records(plan.series):
            plan.store_series.pop(short_date, None)
        for short_date, record in plan.series.items():
            plan.store_series[short_date] = record.copy()

        self.store.put(plan.key, serialize_series(plan.store_series))
        logger.info(f"Saved {plan.key}: {merged} new days, {len(plan.store_series)} total")
