from django.urls import path

from orders import views

urlpatterns = [
    path("", views.orders_collection, name="orders"),
    path("<int:order_id>/", views.order_detail, name="order_detail"),
    path("<int:order_id>/payments/", views.order_payments, name="order_payments"),
    path(
        "<int:order_id>/payments/<int:payment_id>/",
        views.delete_payment,
        name="order_payment_delete",
    ),
]
