from django.urls import path

from tech import views

urlpatterns = [
    path("", views.technicians_api, name="technicians"),
    path("me/maintenances/", views.my_maintenances, name="technician_my_maintenances"),
    path(
        "<int:technician_id>/availability/",
        views.technician_availability,
        name="technician_availability",
    ),
]
