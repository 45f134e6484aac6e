import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .services import (
    FetchContext,
    FetchReconciler,
    HistoricServiceError,
    MeteostatClient,
    Station,
    build_chart_data,
    get_station_cache,
)

logger = logging.getLogger(__name__)


@require_GET
def health(request):
    """Health check endpoint."""
    return JsonResponse({'status': 'ok'})


@require_GET
def station_search(request):
    """Autocomplete places and active weather stations."""
    query = request.GET.get('q', '')
    try:
        results = MeteostatClient().search(query)
    except HistoricServiceError as e:
        logger.warning(f"Station search failed for {query!r}: {e}")
        return JsonResponse({'places': [], 'stations': [], 'error': 'Search unavailable'})

    return JsonResponse({
        'places': [vars(place) for place in results.places],
        'stations': [vars(station) for station in results.stations],
    })


@require_POST
def select_station(request):
    """
    Add a search result to the station cache.

    A place is resolved to its nearest weather station first.
    """
    station_id = request.POST.get('id')
    name = request.POST.get('name')
    country = request.POST.get('country')
    if not station_id or not name or country is None:
        return JsonResponse({'error': 'id, name and country are required'}, status=400)

    if request.POST.get('type') == 'place':
        try:
            station_id, name = MeteostatClient().nearest_station(station_id, country)
        except HistoricServiceError as e:
            logger.warning(f"Nearest station lookup failed for {station_id}: {e}")
            return JsonResponse({'error': 'No station found near this place'}, status=502)

    station = Station(
        name=name,
        country=country,
        region=request.POST.get('region') or None,
        active=request.POST.get('active', 'true') == 'true',
    )
    get_station_cache().upsert(station_id, station)
    return JsonResponse({'id': station_id, **station.to_dict()})


@require_GET
def chart_data(request):
    """
    Fill the caches for the selection and return chart-ready series.

    Query params: stations, years, params (comma separated), combined=1 for a
    single chart over all stations. Fetch failures are reported, not raised.
    """
    try:
        context = FetchContext.from_query(
            request.GET.get('stations'),
            request.GET.get('years'),
            request.GET.get('params'),
        )
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)

    combined = request.GET.get('combined') == '1' and len(context.station_ids) > 1
    cache = get_station_cache()
    report = FetchReconciler(cache=cache).fetch(context)
    charts = build_chart_data(cache, context, combined=combined)

    return JsonResponse({
        'status': 'ok' if report.ok else 'partial',
        'charts': [chart.to_dict() for chart in charts],
        'failures': [result.to_dict() for result in report.failures],
    })
