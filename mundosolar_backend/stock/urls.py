from django.urls import path

from stock import views

urlpatterns = [
    path("products/", views.products_collection, name="inventory_products"),
    path("items/", views.items_collection, name="inventory_items"),
    path("available/", views.available_stock, name="inventory_available"),
    path("withdraw/", views.withdraw_stock, name="inventory_withdraw"),
]
