import logging
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, Sum
from django.db.models.functions import Coalesce

from main.models import ZERO, InventoryItem, Product, _qmoney

logger = logging.getLogger(__name__)


def _money(value, field: str) -> Decimal:
    try:
        result = Decimal(str(value if value not in (None, "") else 0))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Valor inválido para {field}")
    if not result.is_finite() or result < ZERO:
        raise ValidationError(f"Valor inválido para {field}")
    return _qmoney(result)


# -------------------------------------------------------------------
# Canonical "available inventory" queryset (NO SIDE EFFECTS)
#   - active product
#   - quantity on hand
# -------------------------------------------------------------------
def available_inventory_qs():
    return InventoryItem.objects.select_related("product").filter(
        product__is_active=True, quantity__gt=0
    )


def stock_by_product():
    """Units on hand per active product, including products with none."""
    return (
        Product.objects.filter(is_active=True)
        .annotate(
            stock=Coalesce(Sum("inventory_items__quantity"), 0),
        )
        .order_by("name")
    )


def create_product(data) -> Product:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Nombre del producto es requerido")
    return Product.objects.create(
        name=name,
        brand=(data.get("brand") or "").strip(),
        model=(data.get("model") or "").strip(),
        category=(data.get("category") or "").strip(),
        capacity=(data.get("capacity") or "").strip(),
        description=data.get("description") or "",
        unit_price=_money(data.get("unitPrice"), "precio unitario"),
    )


def receive_stock(
    product_id,
    quantity,
    *,
    unit_cost=None,
    serial_number=None,
    location="",
    supplier="",
    invoice_number="",
    purchase_date=None,
) -> InventoryItem:
    """Register an incoming batch (or one serialized unit) of a product."""
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Cantidad inválida")
    if quantity <= 0:
        raise ValidationError("La cantidad debe ser mayor a 0")
    if serial_number and quantity != 1:
        raise ValidationError("Un número de serie corresponde a una sola unidad")

    product = Product.objects.filter(pk=product_id, is_active=True).first()
    if product is None:
        raise ValidationError("Producto no encontrado")

    item = InventoryItem.objects.create(
        product=product,
        quantity=quantity,
        unit_cost=_money(unit_cost, "costo unitario"),
        serial_number=serial_number or None,
        location=location or "",
        supplier=supplier or "",
        invoice_number=invoice_number or "",
        purchase_date=purchase_date,
    )
    logger.info("Received %s x %s into inventory item %s", quantity, product, item.pk)
    return item


@transaction.atomic
def withdraw_stock(product_id, quantity) -> int:
    """
    Take ``quantity`` units of a product out of stock, oldest batches first.

    Returns the units remaining for the product.
    """
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Cantidad inválida")
    if quantity <= 0:
        raise ValidationError("La cantidad debe ser mayor a 0")

    batches = list(
        InventoryItem.objects.select_for_update()
        .filter(product_id=product_id, quantity__gt=0)
        .order_by("created_at", "id")
    )
    available = sum(b.quantity for b in batches)
    if available < quantity:
        raise ValidationError(
            f"Stock insuficiente. Disponible: {available}, Solicitado: {quantity}"
        )

    remaining = quantity
    for batch in batches:
        if remaining == 0:
            break
        take = min(batch.quantity, remaining)
        InventoryItem.objects.filter(pk=batch.pk).update(quantity=F("quantity") - take)
        remaining -= take
    return available - quantity
