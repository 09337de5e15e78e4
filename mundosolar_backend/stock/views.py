import logging

from django.db.models import Q
from django.views.decorators.http import require_http_methods

from api.api_helpers import (
    _get_req_data,
    _iso,
    _num,
    _parse_date,
    _parse_int,
    api_endpoint,
    json_error,
    json_ok,
    paginate,
)
from main.models import InventoryItem, Product
from user.permissions import require_permission

from . import inventory

logger = logging.getLogger(__name__)


def serialize_product(p: Product) -> dict:
    data = {
        "id": p.pk,
        "name": p.name,
        "brand": p.brand,
        "model": p.model,
        "category": p.category,
        "capacity": p.capacity,
        "description": p.description,
        "unitPrice": _num(p.unit_price),
        "isActive": p.is_active,
    }
    if hasattr(p, "stock"):
        data["stock"] = p.stock
    return data


def serialize_item(i: InventoryItem) -> dict:
    return {
        "id": i.pk,
        "product": {"id": i.product_id, "name": i.product.name},
        "quantity": i.quantity,
        "serialNumber": i.serial_number,
        "location": i.location,
        "supplier": i.supplier,
        "invoiceNumber": i.invoice_number,
        "unitCost": _num(i.unit_cost),
        "totalCost": _num(i.total_cost),
        "purchaseDate": _iso(i.purchase_date),
        "createdAt": _iso(i.created_at),
    }


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "POST"])
def products_collection(request):
    if request.method == "POST":
        return create_product(request)
    return list_products(request)


@require_permission("inventory", "view")
@api_endpoint
def list_products(request):
    qs = inventory.stock_by_product()
    category = request.GET.get("category")
    if category:
        qs = qs.filter(category=category)
    q = (request.GET.get("q") or "").strip()
    if q:
        qs = qs.filter(
            Q(name__icontains=q) | Q(brand__icontains=q) | Q(model__icontains=q)
        )
    products, pagination = paginate(request, qs, serialize_product)
    return json_ok({"products": products, "pagination": pagination})


@require_permission("inventory", "create")
@api_endpoint
def create_product(request):
    product = inventory.create_product(_get_req_data(request))
    return json_ok(serialize_product(product), status=201, message="Producto creado")


# ---------------------------------------------------------------------------
# Stock entries
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "POST"])
def items_collection(request):
    if request.method == "POST":
        return receive_stock(request)
    return list_items(request)


@require_permission("inventory", "view")
@api_endpoint
def list_items(request):
    qs = InventoryItem.objects.select_related("product").order_by("-created_at")
    product_id = _parse_int(request.GET.get("productId"))
    if product_id:
        qs = qs.filter(product_id=product_id)
    location = request.GET.get("location")
    if location:
        qs = qs.filter(location=location)
    items, pagination = paginate(request, qs, serialize_item)
    return json_ok({"items": items, "pagination": pagination})


@require_permission("inventory", "create")
@api_endpoint
def receive_stock(request):
    data = _get_req_data(request)
    if not data.get("productId") or not data.get("quantity"):
        return json_error("Producto y cantidad son requeridos", status=400)
    item = inventory.receive_stock(
        data.get("productId"),
        data.get("quantity"),
        unit_cost=data.get("unitCost"),
        serial_number=(data.get("serialNumber") or "").strip() or None,
        location=data.get("location") or "",
        supplier=data.get("supplier") or "",
        invoice_number=data.get("invoiceNumber") or "",
        purchase_date=_parse_date(data.get("purchaseDate")),
    )
    return json_ok(serialize_item(item), status=201)


@require_http_methods(["GET"])
@require_permission("inventory", "view")
@api_endpoint
def available_stock(request):
    items = inventory.available_inventory_qs().order_by("product__name", "created_at")
    return json_ok([serialize_item(i) for i in items])


@require_http_methods(["POST"])
@require_permission("inventory", "update")
@api_endpoint
def withdraw_stock(request):
    data = _get_req_data(request)
    if not data.get("productId") or not data.get("quantity"):
        return json_error("Producto y cantidad son requeridos", status=400)
    remaining = inventory.withdraw_stock(data.get("productId"), data.get("quantity"))
    logger.info(
        "%s withdrew %s units of product %s",
        request.user.email,
        data.get("quantity"),
        data.get("productId"),
    )
    return json_ok({"remaining": remaining})
