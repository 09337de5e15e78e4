from django.contrib import admin

from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "title", "user", "client", "read", "created_at")
    list_filter = ("type", "read", "created_at")
    search_fields = ("title", "message", "user__email", "client__first_name")
    readonly_fields = ("created_at", "read_at")
