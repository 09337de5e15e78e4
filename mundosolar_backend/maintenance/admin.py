from django.contrib import admin

from .models import (
    MaintenancePart,
    MaintenanceRecord,
    MaintenanceStatusHistory,
    MaintenanceTechnician,
)


class MaintenanceTechnicianInline(admin.TabularInline):
    model = MaintenanceTechnician
    extra = 0
    raw_id_fields = ("technician",)


class MaintenancePartInline(admin.TabularInline):
    model = MaintenancePart
    extra = 0
    raw_id_fields = ("inventory_item",)


class MaintenanceStatusHistoryInline(admin.TabularInline):
    model = MaintenanceStatusHistory
    extra = 0
    readonly_fields = ("status", "changed_by", "notes", "created_at")
    can_delete = False


@admin.register(MaintenanceRecord)
class MaintenanceRecordAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "client", "type", "priority", "status", "scheduled_date")
    list_filter = ("status", "type", "priority")
    search_fields = ("title", "client__first_name", "client__last_name")
    date_hierarchy = "scheduled_date"
    raw_id_fields = ("client", "solar_system", "created_by")
    inlines = [
        MaintenanceTechnicianInline,
        MaintenancePartInline,
        MaintenanceStatusHistoryInline,
    ]
