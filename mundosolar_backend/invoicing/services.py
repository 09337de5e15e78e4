"""
Invoice records.

An invoice copies the lines and totals of one order at the moment it is
issued. An order has at most one invoice that is not cancelled, and the
invoice status follows the order's payment ledger (PENDING <-> PAID).
"""

from __future__ import annotations

import logging
import secrets
import string

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.http import Http404
from django.utils import timezone

from main.models import Order, OrderStatus, PaymentStatus

from .models import Invoice, InvoiceItem, InvoiceStatus, PaymentMethodCode

logger = logging.getLogger(__name__)

# RFC used when the client has none (público en general)
GENERIC_RFC = "XAXX010101000"

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_invoice_number(now=None) -> str:
    """``FMS-YYMMDD-XXXX`` with a random base36 suffix."""
    now = timezone.localtime(now or timezone.now())
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(4))
    return f"FMS-{now:%y%m%d}-{suffix}"


def get_invoice(invoice_id, *, for_update: bool = False) -> Invoice:
    qs = Invoice.objects.select_related("order", "client")
    if for_update:
        qs = qs.select_for_update()
    invoice = qs.filter(pk=invoice_id).first()
    if invoice is None:
        raise Http404("Factura no encontrada")
    return invoice


def _status_for(order: Order) -> str:
    if order.payment_status == PaymentStatus.PAID:
        return InvoiceStatus.PAID
    return InvoiceStatus.PENDING


def create_invoice(
    order_id,
    *,
    created_by=None,
    uso_cfdi: str = "G03",
    metodo_pago: str = PaymentMethodCode.PUE,
    forma_pago: str = "99",
    regimen_fiscal: str = "612",
    invoice_number: str | None = None,
    notes: str = "",
) -> Invoice:
    if metodo_pago not in PaymentMethodCode.values:
        raise ValidationError(f"Método de pago inválido: {metodo_pago}")
    if invoice_number is not None and Invoice.objects.filter(
        invoice_number=invoice_number
    ).exists():
        raise ValidationError("El número de factura ya existe")

    with transaction.atomic():
        order = Order.objects.select_for_update().filter(pk=order_id).first()
        if order is None:
            raise Http404("Orden no encontrada")
        if order.status == OrderStatus.CANCELLED:
            raise ValidationError("No se puede facturar una orden cancelada")
        lines = list(order.items.select_related("product"))
        if not lines:
            raise ValidationError("La orden no tiene productos para facturar")
        if order.invoices.exclude(status=InvoiceStatus.CANCELLED).exists():
            raise ValidationError("La orden ya tiene una factura activa")

        client = order.client
        invoice = None
        for _attempt in range(5):
            try:
                with transaction.atomic():
                    invoice = Invoice.objects.create(
                        invoice_number=invoice_number or generate_invoice_number(),
                        order=order,
                        client=client,
                        rfc_emisor=settings.COMPANY_RFC,
                        rfc_receptor=(client.rfc or GENERIC_RFC).upper(),
                        regimen_fiscal=regimen_fiscal or "612",
                        uso_cfdi=uso_cfdi or "G03",
                        metodo_pago=metodo_pago,
                        forma_pago=forma_pago or "99",
                        subtotal=order.subtotal,
                        iva=order.tax_amount,
                        total=order.total,
                        status=_status_for(order),
                        notes=notes or "",
                        created_by=created_by,
                    )
                break
            except IntegrityError:
                if invoice_number:
                    raise ValidationError("El número de factura ya existe")
                logger.warning("Invoice number collision, retrying")
        if invoice is None:
            raise ValidationError("No se pudo generar un número de factura único")

        InvoiceItem.objects.bulk_create(
            [
                InvoiceItem(
                    invoice=invoice,
                    description=line.description or str(line.product),
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    amount=line.line_total,
                )
                for line in lines
            ]
        )

    logger.info(
        "Invoice %s issued for order %s", invoice.invoice_number, order.order_number
    )
    return invoice


def cancel_invoice(invoice_id, reason: str = "") -> Invoice:
    with transaction.atomic():
        invoice = get_invoice(invoice_id, for_update=True)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise ValidationError("La factura ya está cancelada")
        if invoice.status == InvoiceStatus.PAID:
            raise ValidationError("No se puede cancelar una factura pagada")
        invoice.status = InvoiceStatus.CANCELLED
        invoice.cancelled_at = timezone.now()
        invoice.cancellation_reason = (reason or "")[:255]
        invoice.save(
            update_fields=[
                "status",
                "cancelled_at",
                "cancellation_reason",
                "updated_at",
            ]
        )
    logger.info("Invoice %s cancelled", invoice.invoice_number)
    return invoice


def sync_with_order(order: Order) -> int:
    """Align the order's live invoice with its payment status."""
    target = _status_for(order)
    return (
        Invoice.objects.filter(order=order)
        .exclude(status__in=[InvoiceStatus.CANCELLED, target])
        .update(status=target, updated_at=timezone.now())
    )
