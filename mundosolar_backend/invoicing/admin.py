from django.contrib import admin

from .models import Invoice, InvoiceItem


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("invoice_number", "client", "order", "status", "total", "issued_at")
    list_filter = ("status", "metodo_pago")
    search_fields = ("invoice_number", "rfc_receptor", "order__order_number")
    readonly_fields = ("status", "cancelled_at")
    inlines = [InvoiceItemInline]
