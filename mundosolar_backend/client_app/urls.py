from django.urls import path

from client_app import views

urlpatterns = [
    path("auth/login/", views.client_login, name="client_login"),
    path("auth/logout/", views.client_logout, name="client_logout"),
    path("auth/session/", views.client_session, name="client_session"),
    path("auth/change-password/", views.change_password, name="client_change_password"),
    path("dashboard/", views.dashboard, name="client_dashboard"),
    path("mantenimientos/", views.maintenances_collection, name="client_maintenances"),
    path(
        "mantenimientos/disponibilidad/",
        views.maintenance_availability,
        name="client_maintenance_availability",
    ),
    path(
        "mantenimientos/<int:maintenance_id>/",
        views.maintenance_detail,
        name="client_maintenance_detail",
    ),
    path(
        "mantenimientos/<int:maintenance_id>/cancelar/",
        views.cancel_maintenance,
        name="client_maintenance_cancel",
    ),
    path("notificaciones/", views.notifications_list, name="client_notifications"),
    path(
        "notificaciones/marcar-todas/",
        views.notifications_mark_all_read,
        name="client_notifications_mark_all",
    ),
    path(
        "notificaciones/<int:notification_id>/",
        views.notification_detail,
        name="client_notification_detail",
    ),
    path("pagos/", views.payments, name="client_payments"),
]
