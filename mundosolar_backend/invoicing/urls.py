from django.urls import path

from invoicing import views

urlpatterns = [
    path("", views.invoices_collection, name="invoices"),
    path("<int:invoice_id>/", views.invoice_detail, name="invoice_detail"),
    path("<int:invoice_id>/cancel/", views.cancel_invoice, name="invoice_cancel"),
]
