from django.urls import path

from customers import views

urlpatterns = [
    path("", views.clients_collection, name="clients"),
    path("<int:client_id>/", views.client_detail, name="client_detail"),
    path(
        "<int:client_id>/solar-systems/",
        views.client_solar_systems,
        name="client_solar_systems",
    ),
]
