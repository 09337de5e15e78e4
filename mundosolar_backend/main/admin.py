from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import (
    Client,
    InventoryItem,
    Order,
    OrderItem,
    Payment,
    Product,
    SolarSystem,
    User,
)


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = ("email", "full_name", "role", "is_active", "is_staff")
    list_filter = ("role", "is_active", "is_staff")
    search_fields = ("email", "full_name", "phone", "username")
    ordering = ("email",)
    fieldsets = DjangoUserAdmin.fieldsets + (
        (
            "MundoSolar",
            {"fields": ("full_name", "phone", "role", "employee_id", "department")},
        ),
    )


class SolarSystemInline(admin.TabularInline):
    model = SolarSystem
    extra = 0


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("id", "first_name", "last_name", "phone", "email", "is_active")
    list_filter = ("is_active", "state")
    search_fields = ("first_name", "last_name", "email", "phone", "rfc")
    exclude = ("password", "growatt_password")
    inlines = [SolarSystemInline]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "brand", "model", "unit_price", "is_active")
    list_filter = ("is_active", "category")
    search_fields = ("name", "brand", "model")


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ("product", "quantity", "serial_number", "location", "total_cost")
    search_fields = ("product__name", "serial_number", "invoice_number")


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ("created_at",)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_number",
        "client",
        "status",
        "total",
        "amount_paid",
        "balance_due",
        "payment_status",
        "order_date",
    )
    list_filter = ("status", "payment_status", "order_type")
    search_fields = ("order_number", "client__first_name", "client__last_name")
    # Ledger columns are only written through orders.ledger
    readonly_fields = ("amount_paid", "balance_due", "payment_status")
    inlines = [OrderItemInline, PaymentInline]
