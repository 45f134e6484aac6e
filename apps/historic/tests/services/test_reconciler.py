"""Tests for the fetch reconciler (memory -> persistent store -> Meteostat)."""

from datetime import date
from unittest.mock import MagicMock

from django.core.cache import cache
from django.test import TestCase

from apps.historic.services.dates import DateRange, iter_short_dates
from apps.historic.services.errors import RemoteSourceError, StorageError
from apps.historic.services.reconciler import (
    FetchContext,
    FetchReconciler,
    FetchState,
)
from apps.historic.services.stations import Station, StationCache, WeatherRecord
from apps.historic.services.storage import CacheStore, DatabaseStore


def rows_for(year, start, end, tmax=20.0, tmin=10.0):
    return [
        {'date': f"{year}-{day}", 'tmax': tmax, 'tmin': tmin, 'prcp': None}
        for day in iter_short_dates(year, start, end)
    ]


def stored_days(year, start, end, tmax=15.0, tmin=5.0):
    return {day: {'tmax': tmax, 'tmin': tmin} for day in iter_short_dates(year, start, end)}


def no_filter(series):
    pass


class FetchContextTests(TestCase):

    def setUp(self):
        self.current = date(2025, 3, 10)

    def test_from_query_parses_lists(self):
        context = FetchContext.from_query('10382, 10147 10382', '2023,2024', 'tmax', self.current)
        self.assertEqual(context.station_ids, ['10382', '10147'])
        self.assertEqual(context.years, ['2023', '2024'])
        self.assertEqual(context.parameters, ['tmax'])

    def test_parameters_default_to_all(self):
        context = FetchContext.from_query('10382', '2023', current=self.current)
        self.assertEqual(context.parameters, ['tmax', 'tmin'])

    def test_requires_station(self):
        with self.assertRaisesMessage(ValueError, 'Select at least one station'):
            FetchContext.from_query('', '2023', current=self.current)

    def test_requires_year(self):
        with self.assertRaisesMessage(ValueError, 'Select at least one year'):
            FetchContext.from_query('10382', ' ', current=self.current)

    def test_requires_known_parameter(self):
        with self.assertRaisesMessage(ValueError, 'Select at least one weather parameter'):
            FetchContext.from_query('10382', '2023', 'prcp', self.current)

    def test_rejects_future_year(self):
        with self.assertRaises(ValueError):
            FetchContext.from_query('10382', '2026', current=self.current)

    def test_boundary_is_today_when_current_year_selected(self):
        context = FetchContext.from_query('10382', '2024 2025', current=self.current)
        self.assertTrue(context.current_year_selected)
        self.assertEqual(context.boundary, '03-10')
        self.assertEqual(context.range_for('2024'), DateRange('01-01', '03-10'))

    def test_boundary_is_year_end_for_past_years(self):
        context = FetchContext.from_query('10382', '2023', current=self.current)
        self.assertEqual(context.boundary, '12-31')
        self.assertEqual(context.range_for('2023'), DateRange('01-01', '12-31'))

    def test_leap_day_clamped_for_non_leap_year(self):
        context = FetchContext(['10382'], ['2023', '2024'], today=date(2024, 2, 29))
        self.assertEqual(context.range_for('2024'), DateRange('01-01', '02-29'))
        self.assertEqual(context.range_for('2023'), DateRange('01-01', '02-28'))


class ReconcilerTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.cache = StationCache()
        self.cache.upsert('X', Station(name='Xville', country='DE'))
        self.store = CacheStore()
        self.client = MagicMock()
        self.client.fetch_daily.return_value = []
        self.reconciler = FetchReconciler(
            cache=self.cache, store=self.store, client=self.client, outlier_filter=no_filter,
        )

    def context(self, stations=('X',), years=('2023',), end='01-10'):
        return FetchContext(list(stations), list(years), today=date(2025, 6, 1), end=end)


class ReconcileTests(ReconcilerTestCase):

    def test_fills_gap_from_store_and_remote(self):
        """Store holds the first half, Meteostat supplies the rest."""
        self.store.put('X-2023', stored_days('2023', '01-01', '01-05'))
        self.client.fetch_daily.return_value = rows_for('2023', '01-06', '01-10')

        report = self.reconciler.fetch(self.context())

        self.client.fetch_daily.assert_called_once_with('X', '2023-01-06', '2023-01-10')
        series = self.cache.station_year_data('X', '2023')
        self.assertEqual(sorted(series), list(iter_short_dates('2023', '01-01', '01-10')))
        self.assertEqual(series['01-01'].tmax, 15.0)
        self.assertEqual(series['01-06'].tmax, 20.0)
        self.assertEqual(sorted(self.store.get('X-2023')), sorted(series))

        result = report.get('X', '2023')
        self.assertTrue(report.ok)
        self.assertEqual(result.state, FetchState.DONE)
        self.assertEqual(result.memory_gaps, [DateRange('01-01', '01-10')])
        self.assertEqual(result.remote_gaps, [DateRange('01-06', '01-10')])
        self.assertEqual(result.fetched_rows, 5)

    def test_memory_hit_does_no_io(self):
        series = self.cache.station_year_data('X', '2023')
        for day in iter_short_dates('2023', '01-01', '01-10'):
            series[day] = WeatherRecord(tmax=1.0, tmin=0.0)
        self.store = MagicMock()
        self.reconciler.store = self.store

        report = self.reconciler.fetch(self.context())

        self.assertTrue(report.ok)
        self.store.get.assert_not_called()
        self.store.put.assert_not_called()
        self.client.fetch_daily.assert_not_called()

    def test_store_hit_skips_remote(self):
        self.store.put('X-2023', stored_days('2023', '01-01', '01-10'))

        report = self.reconciler.fetch(self.context())

        self.assertEqual(report.get('X', '2023').remote_gaps, [])
        self.client.fetch_daily.assert_not_called()
        self.assertEqual(len(self.cache.station_year_data('X', '2023')), 10)

    def test_one_request_per_gap(self):
        stored = stored_days('2023', '01-01', '01-02')
        stored.update(stored_days('2023', '01-05', '01-06'))
        self.store.put('X-2023', stored)

        self.reconciler.fetch(self.context())

        calls = sorted(call.args for call in self.client.fetch_daily.call_args_list)
        self.assertEqual(calls, [
            ('X', '2023-01-03', '2023-01-04'),
            ('X', '2023-01-07', '2023-01-10'),
        ])

    def test_empty_record_never_stored(self):
        """A day with every parameter null is dropped from memory and store."""
        rows = rows_for('2023', '03-14', '03-16')
        rows[1]['tmax'] = None
        rows[1]['tmin'] = None
        self.client.fetch_daily.return_value = rows

        self.reconciler.fetch(self.context(end='03-16'))

        self.assertNotIn('03-15', self.cache.station_year_data('X', '2023'))
        stored = self.store.get('X-2023')
        self.assertIn('03-14', stored)
        self.assertNotIn('03-15', stored)

    def test_empty_response_writes_nothing(self):
        self.store = MagicMock()
        self.store.get.return_value = {}
        self.reconciler.store = self.store

        report = self.reconciler.fetch(self.context())

        self.assertTrue(report.ok)
        self.store.put.assert_not_called()
        self.assertEqual(self.cache.station_year_data('X', '2023'), {})

    def test_rows_without_date_skipped(self):
        self.client.fetch_daily.return_value = [{'date': '2023-01-01', 'tmax': 1.0, 'tmin': None}, {'tmax': 2.0}]
        report = self.reconciler.fetch(self.context(end='01-01'))
        self.assertEqual(report.get('X', '2023').fetched_rows, 1)

    def test_outlier_filter_applied_before_persisting(self):
        def drop_high(series):
            for record in series.values():
                if record.tmax is not None and record.tmax > 50:
                    record.tmax = None

        self.reconciler.outlier_filter = drop_high
        rows = rows_for('2023', '01-01', '01-03')
        rows[2]['tmax'] = 99.0
        self.client.fetch_daily.return_value = rows

        self.reconciler.fetch(self.context(end='01-03'))

        self.assertIsNone(self.cache.station_year_data('X', '2023')['01-03'].tmax)
        self.assertEqual(self.store.get('X-2023')['01-03'], {'tmax': None, 'tmin': 10.0})

    def test_existing_store_days_kept_on_write(self):
        self.store.put('X-2023', stored_days('2023', '06-01', '06-02'))
        self.client.fetch_daily.return_value = rows_for('2023', '01-01', '01-10')

        self.reconciler.fetch(self.context())

        stored = self.store.get('X-2023')
        self.assertIn('06-01', stored)
        self.assertIn('01-10', stored)

    def test_unknown_station_gets_placeholder(self):
        self.client.fetch_daily.return_value = rows_for('2023', '01-01', '01-10')
        self.reconciler.fetch(self.context(stations=['Y']))
        self.assertIn('Y', self.cache)
        self.assertEqual(len(self.cache.station_year_data('Y', '2023')), 10)

    def test_repeat_fetch_is_served_from_memory(self):
        self.client.fetch_daily.return_value = rows_for('2023', '01-01', '01-10')
        self.reconciler.fetch(self.context())
        self.reconciler.fetch(self.context())
        self.assertEqual(self.client.fetch_daily.call_count, 1)


class FailureIsolationTests(ReconcilerTestCase):

    def test_remote_failure_isolated_per_station(self):
        def fetch_daily(station_id, start, end):
            if station_id == 'BAD':
                raise RemoteSourceError('Meteostat API error: 500')
            return rows_for('2023', start[5:], end[5:])

        self.client.fetch_daily.side_effect = fetch_daily

        report = self.reconciler.fetch(self.context(stations=['X', 'BAD']))

        self.assertFalse(report.ok)
        self.assertEqual([(r.station_id, r.year) for r in report.failures], [('BAD', '2023')])
        self.assertIn('500', report.get('BAD', '2023').errors[0])
        self.assertEqual(report.get('BAD', '2023').state, FetchState.DONE)
        self.assertEqual(len(self.cache.station_year_data('X', '2023')), 10)
        self.assertEqual(self.cache.station_year_data('BAD', '2023'), {})

    def test_unexpected_error_recorded(self):
        self.client.fetch_daily.side_effect = RuntimeError('boom')
        report = self.reconciler.fetch(self.context())
        self.assertIn('boom', report.get('X', '2023').errors[0])

    def test_store_read_error_isolated(self):
        store = MagicMock()
        store.get.side_effect = [StorageError('Corrupt cache entry X-2023'), {}]
        self.reconciler.store = store
        self.client.fetch_daily.return_value = rows_for('2023', '01-01', '01-10')

        report = self.reconciler.fetch(self.context(years=['2023', '2024']))

        self.assertFalse(report.get('X', '2023').ok)
        self.assertTrue(report.get('X', '2024').ok)
        self.client.fetch_daily.assert_called_once_with('X', '2024-01-01', '2024-01-10')

    def test_malformed_store_blob_isolated(self):
        """A stored blob of the wrong shape fails only its own station-year."""
        self.store.put('X-2023', {'01-01': 5})
        self.client.fetch_daily.return_value = rows_for('2023', '01-01', '01-10')

        report = self.reconciler.fetch(self.context(years=['2023', '2024']))

        self.assertFalse(report.get('X', '2023').ok)
        self.assertIn('Malformed stored series', report.get('X', '2023').errors[0])
        self.assertTrue(report.get('X', '2024').ok)
        self.assertEqual(len(self.cache.station_year_data('X', '2024')), 10)

    def test_bad_row_isolated_to_its_gap(self):
        """An unparseable row fails its own batch; siblings still merge."""
        def fetch_daily(station_id, start, end):
            if station_id == 'BAD':
                return [
                    {'date': '2023-01-01', 'tmax': 3.0, 'tmin': 1.0},
                    {'date': '2023-01-02', 'tmax': 'n/a', 'tmin': 1.0},
                ]
            return rows_for('2023', start[5:], end[5:])

        self.client.fetch_daily.side_effect = fetch_daily
        store = MagicMock()
        store.get.return_value = {}
        self.reconciler.store = store

        report = self.reconciler.fetch(self.context(stations=['BAD', 'X']))

        bad = report.get('BAD', '2023')
        self.assertFalse(bad.ok)
        self.assertIn('Malformed daily row', bad.errors[0])
        self.assertEqual(bad.fetched_rows, 0)
        # Nothing from the bad batch reaches memory or the store
        self.assertEqual(self.cache.station_year_data('BAD', '2023'), {})
        self.assertTrue(report.get('X', '2023').ok)
        self.assertEqual(len(self.cache.station_year_data('X', '2023')), 10)
        store.put.assert_called_once()
        self.assertEqual(store.put.call_args.args[0], 'X-2023')

    def test_non_string_date_isolated(self):
        self.client.fetch_daily.return_value = [{'date': 20230101, 'tmax': 3.0}]
        report = self.reconciler.fetch(self.context())
        self.assertFalse(report.ok)
        self.assertEqual(self.cache.station_year_data('X', '2023'), {})

    def test_store_write_error_keeps_memory(self):
        store = MagicMock()
        store.get.return_value = {}
        store.put.side_effect = StorageError('Database write failed for X-2023')
        self.reconciler.store = store
        self.client.fetch_daily.return_value = rows_for('2023', '01-01', '01-10')

        report = self.reconciler.fetch(self.context())

        self.assertFalse(report.ok)
        self.assertEqual(len(self.cache.station_year_data('X', '2023')), 10)

    def test_failures_serialize(self):
        self.client.fetch_daily.side_effect = RemoteSourceError('down')
        report = self.reconciler.fetch(self.context())
        data = report.failures[0].to_dict()
        self.assertEqual(data['station'], 'X')
        self.assertEqual(data['remote_gaps'], ['01-01..01-10'])
        self.assertEqual(data['state'], 'done')


class DatabaseBackendTests(ReconcilerTestCase):

    def test_round_trip_through_database(self):
        self.reconciler.store = DatabaseStore()
        self.client.fetch_daily.return_value = rows_for('2023', '01-01', '01-10')

        self.reconciler.fetch(self.context())

        fresh = FetchReconciler(
            cache=StationCache(), store=DatabaseStore(), client=self.client, outlier_filter=no_filter,
        )
        fresh.fetch(self.context())
        self.assertEqual(self.client.fetch_daily.call_count, 1)
        self.assertEqual(len(fresh.cache.station_year_data('X', '2023')), 10)
