from django.contrib import admin, messages

from .models import StationYearStore
from .services import get_station_cache


@admin.register(StationYearStore)
class StationYearStoreAdmin(admin.ModelAdmin):
    list_display = ['key', 'day_count', 'updated_at']
    search_fields = ['key']
    readonly_fields = ['updated_at']
    actions = ['purge_selected']

    @admin.display(description='Days')
    def day_count(self, obj):
        return len(obj.data or {})

    @admin.action(description='Purge selected station-years (store and memory cache)')
    def purge_selected(self, request, queryset):
        cache = get_station_cache()
        for record in queryset:
            station_id, _, year = record.key.rpartition('-')
            data = cache.station_data(station_id)
            if data is not None:
                data.pop(year, None)
        deleted, _ = queryset.delete()
        self.message_user(request, f"Purged {deleted} station-years", messages.SUCCESS)
