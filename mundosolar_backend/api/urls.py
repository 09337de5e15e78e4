from django.urls import include, path

urlpatterns = [
    path("clients/", include("customers.urls")),
    path("inventory/", include("stock.urls")),
    path("orders/", include("orders.urls")),
    path("maintenance/", include("maintenance.urls")),
    path("technicians/", include("tech.urls")),
    path("notifications/", include("notifications.urls")),
    path("growatt/", include("growatt.urls")),
    path("cliente/", include("client_app.urls")),
    path("invoices/", include("invoicing.urls")),
    path("reports/", include("reports.urls")),
    path("users/", include("user.urls")),
]
