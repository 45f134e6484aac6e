from django.apps import AppConfig
from django.db.backends.signals import connection_created


def enable_wal_mode(sender, connection, **kwargs):
    """Enable WAL mode for SQLite to reduce lock contention."""
    if connection.vendor == 'sqlite':
        cursor = connection.cursor()
        cursor.execute('PRAGMA journal_mode=WAL;')


class HistoricConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.historic'

    def ready(self):
        connection_created.connect(enable_wal_mode)
