"""
Management command to prefill station history.

Usage:
    python manage.py fetch_history 10382 --year 2023                # One station, one year
    python manage.py fetch_history 10382 10384 --year 2022 --year 2023
    python manage.py fetch_history 10382 --year 2024 --backend cache
"""

from django.core.management.base import BaseCommand, CommandError

from apps.historic.services import FetchContext, FetchReconciler, get_store
from apps.historic.services.storage import STORE_BACKENDS


class Command(BaseCommand):
    help = 'Fetch and cache daily history for stations and years'

    def add_arguments(self, parser):
        parser.add_argument('stations', nargs='+', help='Meteostat station id(s)')
        parser.add_argument(
            '--year',
            action='append',
            required=True,
            help='Year to fetch. Can be specified multiple times.',
        )
        parser.add_argument(
            '--param',
            action='append',
            help='Weather parameter(s) to report. Default: all tracked',
        )
        parser.add_argument(
            '--backend',
            choices=sorted(STORE_BACKENDS),
            default=None,
            help='Persistent store backend. Default: HISTORIC_STORAGE_BACKEND',
        )

    def handle(self, *args, **options):
        try:
            context = FetchContext.from_query(options['stations'], options['year'], options['param'])
        except ValueError as e:
            raise CommandError(str(e))

        reconciler = FetchReconciler(store=get_store(options['backend']))
        self.stdout.write(
            f"Fetching {', '.join(context.station_ids)} for {', '.join(context.years)}..."
        )
        report = reconciler.fetch(context)

        for result in report.results:
            days = len(reconciler.cache.station_year_data(result.station_id, result.year))
            label = f"{result.station_id}-{result.year}"
            if result.ok:
                source = 'remote' if result.remote_gaps else 'local'
                self.stdout.write(self.style.SUCCESS(
                    f"  {label}: {days} days ({source}, {result.fetched_rows} fetched)"
                ))
            else:
                self.stdout.write(self.style.ERROR(
                    f"  {label}: {days} days, {len(result.errors)} error(s)"
                ))
                for error in result.errors:
                    self.stdout.write(f"    {error}")

        if report.ok:
            self.stdout.write(self.style.SUCCESS('Fetch complete'))
        else:
            self.stdout.write(self.style.WARNING(
                f"Fetch finished with {len(report.failures)} failed station-year(s)"
            ))
