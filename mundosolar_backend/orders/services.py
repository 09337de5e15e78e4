from __future__ import annotations

import logging
import secrets
import string
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.http import Http404
from django.utils import timezone

from main.models import (
    ZERO,
    Client,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    Product,
    _qmoney,
)

from . import ledger

logger = logging.getLogger(__name__)

_ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def default_tax_rate() -> Decimal:
    return Decimal(str(getattr(settings, "DEFAULT_TAX_RATE", "0.16")))


def generate_order_number(now=None) -> str:
    """``MS-YYMMDD-XXXX`` with a random base36 suffix."""
    now = timezone.localtime(now or timezone.now())
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(4))
    return f"MS-{now:%y%m%d}-{suffix}"


def calculate_tax(amount: Decimal, tax_rate: Decimal | None = None) -> Decimal:
    rate = default_tax_rate() if tax_rate is None else tax_rate
    return _qmoney(amount * rate)


def _money(value, field: str) -> Decimal:
    try:
        result = Decimal(str(value if value not in (None, "") else 0))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Valor inválido para {field}")
    if not result.is_finite() or result < ZERO:
        raise ValidationError(f"Valor inválido para {field}")
    return result


def _quantity(value) -> int:
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Cantidad inválida")
    if qty <= 0:
        raise ValidationError("La cantidad debe ser mayor a 0")
    return qty


def recompute_totals(order: Order) -> Order:
    """Refresh subtotal, tax and total from the order's items."""
    subtotal = sum((item.line_total for item in order.items.all()), ZERO)
    order.subtotal = _qmoney(subtotal)
    order.tax_amount = calculate_tax(order.subtotal, order.tax_rate)
    order.total = _qmoney(
        order.subtotal
        + order.tax_amount
        + (order.shipping_amount or ZERO)
        - (order.discount_amount or ZERO)
    )
    order.save(update_fields=["subtotal", "tax_amount", "total", "updated_at"])
    return order


@transaction.atomic
def create_order(
    *,
    client_id,
    items,
    created_by=None,
    status: str = OrderStatus.DRAFT,
    order_type: str = OrderType.SALE,
    required_date=None,
    notes: str = "",
    tax_rate=None,
    shipping_amount=None,
    discount_amount=None,
    deposit_required: bool = False,
    deposit_amount=None,
    deposit_due_date=None,
) -> Order:
    if not client_id:
        raise ValidationError("Cliente es requerido")
    if not items:
        raise ValidationError("La orden debe tener al menos un producto")
    if status not in OrderStatus.values:
        raise ValidationError(f"Estado de orden inválido: {status}")
    if order_type not in OrderType.values:
        raise ValidationError(f"Tipo de orden inválido: {order_type}")

    client = Client.objects.filter(pk=client_id).first()
    if client is None:
        raise Http404("Cliente no encontrado")

    order = None
    for _attempt in range(5):
        try:
            with transaction.atomic():
                order = Order.objects.create(
                    order_number=generate_order_number(),
                    client=client,
                    created_by=created_by,
                    status=status,
                    order_type=order_type,
                    required_date=required_date,
                    notes=notes or "",
                    tax_rate=(
                        default_tax_rate()
                        if tax_rate is None
                        else _money(tax_rate, "IVA")
                    ),
                    shipping_amount=_money(shipping_amount, "envío"),
                    discount_amount=_money(discount_amount, "descuento"),
                    deposit_required=bool(deposit_required),
                    deposit_amount=(
                        _money(deposit_amount, "anticipo") if deposit_amount else None
                    ),
                    deposit_due_date=deposit_due_date,
                )
            break
        except IntegrityError:
            logger.warning("Order number collision, retrying")
    if order is None:
        raise ValidationError("No se pudo generar un número de orden único")

    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Producto inválido en la orden")
        product = None
        product_id = raw.get("productId") or raw.get("product_id")
        if product_id:
            product = Product.objects.filter(pk=product_id).first()
            if product is None:
                raise ValidationError(f"Producto {product_id} no encontrado")
        unit_price = raw.get("unitPrice", raw.get("unit_price"))
        if unit_price in (None, "") and product is not None:
            unit_price = product.unit_price
        OrderItem.objects.create(
            order=order,
            product=product,
            description=raw.get("description") or (str(product) if product else ""),
            quantity=_quantity(raw.get("quantity", 1)),
            unit_price=_money(unit_price, "precio unitario"),
            discount=_money(raw.get("discount"), "descuento"),
        )

    recompute_totals(order)
    # Opening snapshot: nothing paid yet, full total due
    ledger.recalculate(order.pk)
    order.refresh_from_db()
    logger.info("Order %s created for client %s", order.order_number, client.pk)
    return order


def update_status(order: Order, new_status: str) -> Order:
    if new_status not in OrderStatus.values:
        raise ValidationError(f"Estado de orden inválido: {new_status}")
    order.status = new_status
    fields = ["status", "updated_at"]
    if new_status == OrderStatus.SHIPPED and not order.shipped_date:
        order.shipped_date = timezone.localdate()
        fields.append("shipped_date")
    order.save(update_fields=fields)
    return order
