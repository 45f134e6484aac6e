from django.db import models


class StationYearStore(models.Model):
    """
    Persistent weather series for one station and year.

    The in-memory station cache is the first tier; this table is the second,
    surviving restarts. ``key`` is ``"<stationId>-<year>"`` and ``data`` maps
    short dates (mm-dd) to ``{"tmax": ..., "tmin": ...}``.
    """

    key = models.CharField(max_length=64, unique=True)
    data = models.JSONField(default=dict)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)

    class Meta:
        ordering = ['key']

    def __str__(self):
        return f"{self.key} ({len(self.data)} days)"
