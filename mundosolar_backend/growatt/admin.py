from django.contrib import admin

from .models import GrowattDataCache


@admin.register(GrowattDataCache)
class GrowattDataCacheAdmin(admin.ModelAdmin):
    list_display = (
        "client",
        "plant_name",
        "status",
        "cached_at",
        "expires_at",
        "is_stale",
        "error_count",
    )
    list_filter = ("is_stale", "status")
    search_fields = ("client__first_name", "client__last_name", "plant_name")
    raw_id_fields = ("client",)
    readonly_fields = ("cached_at", "last_update_from_growatt", "last_error_at")
