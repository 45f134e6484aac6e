"""
Chart data preparation.

Years and stations rarely cover exactly the same days, so every chart is
drawn over the dates common to all of its series. Values are pulled from the
station cache; nothing here fetches.
"""

from dataclasses import dataclass, field
from typing import Optional

from .reconciler import FetchContext
from .stations import StationCache

PARAMETER_LABELS = {
    'tmax': 'High',
    'tmin': 'Low',
}


def common_dates(
    cache: StationCache,
    station_ids: list[str],
    years: list[str],
) -> tuple[dict[str, list[str]], list[str]]:
    """
    Dates present in every selected year, per station and across all stations.

    Returns ``(per_station, all_stations)``, both sorted.
    """
    per_station: dict[str, list[str]] = {}
    shared: Optional[set[str]] = None

    for station_id in station_ids:
        station_dates: Optional[set[str]] = None
        for year in years:
            dates = set(cache.station_year_dates(station_id, year))
            station_dates = dates if station_dates is None else station_dates & dates
        station_dates = station_dates or set()
        per_station[station_id] = sorted(station_dates)
        shared = set(station_dates) if shared is None else shared & station_dates

    return per_station, sorted(shared or set())


@dataclass
class ChartDataset:
    label: str
    station_id: str
    station_name: str
    year: str
    parameter: str
    data: list[Optional[float]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'label': self.label,
            'station': self.station_id,
            'station_name': self.station_name,
            'year': self.year,
            'parameter': self.parameter,
            'data': self.data,
        }


@dataclass
class ChartData:
    chart_id: str
    title: str
    labels: list[str] = field(default_factory=list)
    datasets: list[ChartDataset] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'id': self.chart_id,
            'title': self.title,
            'labels': self.labels,
            'datasets': [dataset.to_dict() for dataset in self.datasets],
        }


def chart_id(station_id: str, context: FetchContext) -> str:
    """Unique per station and selected years/parameters."""
    return '-'.join([station_id] + sorted(set(context.years) | set(context.parameters)))


def _dataset(cache: StationCache, station_id: str, year: str, parameter: str,
             dates: list[str], combined: bool) -> ChartDataset:
    station_name = cache.name_or_id(station_id)
    year_label = f"{year} {PARAMETER_LABELS.get(parameter, parameter)}"
    return ChartDataset(
        label=f"{station_name} {year_label}" if combined else year_label,
        station_id=station_id,
        station_name=station_name,
        year=year,
        parameter=parameter,
        data=[cache.weather_parameter(station_id, year, day, parameter) for day in dates],
    )


def build_chart_data(cache: StationCache, context: FetchContext, combined: bool = False) -> list[ChartData]:
    """
    Chart data for the selection: one chart per station, or one combined chart.

    Datasets are ordered station, parameter, year.
    """
    per_station, all_stations = common_dates(cache, context.station_ids, context.years)

    if combined:
        datasets = [
            _dataset(cache, station_id, year, parameter, all_stations, combined=True)
            for station_id in context.station_ids
            for parameter in context.parameters
            for year in context.years
        ]
        return [ChartData(
            chart_id=chart_id('all', context),
            title='Historic Air Temperatures for all stations',
            labels=all_stations,
            datasets=datasets,
        )]

    charts = []
    for station_id in context.station_ids:
        dates = per_station[station_id]
        charts.append(ChartData(
            chart_id=chart_id(station_id, context),
            title=f"Historic Air Temperatures for {cache.name_or_id(station_id)}",
            labels=dates,
            datasets=[
                _dataset(cache, station_id, year, parameter, dates, combined=False)
                for parameter in context.parameters
                for year in context.years
            ],
        ))
    return charts
