from django.urls import path

from maintenance import views

urlpatterns = [
    path("", views.maintenance_collection, name="maintenance"),
    path("availability/", views.availability_view, name="maintenance_availability"),
    path("calendar/", views.calendar_view, name="maintenance_calendar"),
    path("dashboard/", views.dashboard_view, name="maintenance_dashboard"),
    path("<int:maintenance_id>/", views.maintenance_detail, name="maintenance_detail"),
    path(
        "<int:maintenance_id>/status/",
        views.update_status,
        name="maintenance_status",
    ),
    path(
        "<int:maintenance_id>/technicians/",
        views.maintenance_technicians,
        name="maintenance_technicians",
    ),
    path(
        "<int:maintenance_id>/technicians/<int:technician_id>/",
        views.unassign_technician,
        name="maintenance_technician_remove",
    ),
    path(
        "<int:maintenance_id>/parts/",
        views.maintenance_parts,
        name="maintenance_parts",
    ),
    path(
        "<int:maintenance_id>/parts/<int:part_id>/",
        views.remove_part,
        name="maintenance_part_remove",
    ),
]
