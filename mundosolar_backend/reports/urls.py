from django.urls import path

from reports import views

urlpatterns = [
    path("", views.overview, name="reports_overview"),
    path("sales/", views.sales_report, name="reports_sales"),
    path("maintenance/", views.maintenance_report, name="reports_maintenance"),
    path("clients/", views.clients_report, name="reports_clients"),
    path(
        "technician-performance/",
        views.technician_performance,
        name="reports_technician_performance",
    ),
]
