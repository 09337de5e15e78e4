from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from main.models import ZERO, Client, Order


class InvoiceStatus(models.TextChoices):
    PENDING = "PENDING", _("Pending")
    PAID = "PAID", _("Paid")
    CANCELLED = "CANCELLED", _("Cancelled")


class PaymentMethodCode(models.TextChoices):
    """SAT ``MetodoPago`` catalogue."""

    PUE = "PUE", _("Pago en una sola exhibición")
    PPD = "PPD", _("Pago en parcialidades o diferido")


class Invoice(models.Model):
    """
    Invoice record issued against an order.

    Holds the CFDI fields the tax document needs; stamping with an
    authorized provider happens outside this system.
    """

    invoice_number = models.CharField(max_length=30, unique=True)
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="invoices")
    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name="invoices")

    rfc_emisor = models.CharField(max_length=13)
    rfc_receptor = models.CharField(max_length=13)
    regimen_fiscal = models.CharField(max_length=3, default="612")
    uso_cfdi = models.CharField(max_length=4, default="G03")
    metodo_pago = models.CharField(
        max_length=3, choices=PaymentMethodCode.choices, default=PaymentMethodCode.PUE
    )
    forma_pago = models.CharField(max_length=2, default="99")

    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    iva = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)

    status = models.CharField(
        max_length=10, choices=InvoiceStatus.choices, default=InvoiceStatus.PENDING
    )
    notes = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invoices_created",
    )
    issued_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-issued_at"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["client", "issued_at"]),
        ]

    def __str__(self):
        return self.invoice_number


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="items")
    # Generic SAT product/service key
    product_code = models.CharField(max_length=8, default="01010101")
    description = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    amount = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.description} x{self.quantity}"
