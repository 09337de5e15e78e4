import logging

from django.db.models import Count, Q, Sum
from django.db.models.functions import Coalesce
from django.http import Http404
from django.views.decorators.http import require_http_methods

from api.api_helpers import (
    _get_req_data,
    _iso,
    _num,
    _parse_date,
    _parse_datetime,
    _parse_int,
    api_endpoint,
    json_ok,
    paginate,
)
from main.models import ZERO, Order, OrderStatus, OrderType, Payment
from user.permissions import require_permission

from . import ledger, services

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.IN_PROGRESS,
]


def _order_or_404(order_id, queryset=None) -> Order:
    if queryset is None:
        queryset = Order.objects.select_related("client")
    order = queryset.filter(pk=order_id).first()
    if order is None:
        raise Http404("Orden no encontrada")
    return order


def serialize_payment(p: Payment) -> dict:
    return {
        "id": p.pk,
        "orderId": p.order_id,
        "amount": _num(p.amount),
        "paymentType": p.payment_type,
        "paymentMethod": p.payment_method,
        "paymentDate": _iso(p.payment_date),
        "dueDate": _iso(p.due_date),
        "installmentNumber": p.installment_number,
        "referenceNumber": p.reference_number,
        "notes": p.notes,
        "receiptUrl": p.receipt_url,
        "receivedBy": (
            {"id": p.received_by_id, "name": p.received_by.display_name}
            if p.received_by_id
            else None
        ),
        "createdAt": _iso(p.created_at),
    }


def serialize_order(order: Order, *, detail: bool = False) -> dict:
    data = {
        "id": order.pk,
        "orderNumber": order.order_number,
        "status": order.status,
        "orderType": order.order_type,
        "orderDate": _iso(order.order_date),
        "requiredDate": _iso(order.required_date),
        "client": {
            "id": order.client_id,
            "name": order.client.full_name,
            "email": order.client.email,
        },
        "subtotal": _num(order.subtotal),
        "taxRate": _num(order.tax_rate),
        "taxAmount": _num(order.tax_amount),
        "total": _num(order.total),
        "amountPaid": _num(order.amount_paid),
        "balanceDue": _num(order.balance_due),
        "paymentStatus": order.payment_status,
    }
    if detail:
        data["notes"] = order.notes
        data["depositRequired"] = order.deposit_required
        data["depositAmount"] = (
            _num(order.deposit_amount) if order.deposit_amount else None
        )
        data["depositDueDate"] = _iso(order.deposit_due_date)
        data["items"] = [
            {
                "id": item.pk,
                "productId": item.product_id,
                "description": item.description,
                "quantity": item.quantity,
                "unitPrice": _num(item.unit_price),
                "discount": _num(item.discount),
                "lineTotal": _num(item.line_total),
            }
            for item in order.items.all()
        ]
        data["payments"] = [serialize_payment(p) for p in order.payments.all()]
    return data


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "POST"])
def orders_collection(request):
    if request.method == "POST":
        return create_order(request)
    return list_orders(request)


@require_permission("orders", "view")
@api_endpoint
def list_orders(request):
    qs = Order.objects.select_related("client").order_by("-created_at")

    status = request.GET.get("status")
    if status:
        qs = qs.filter(status=status)
    client_id = _parse_int(request.GET.get("clientId"))
    if client_id:
        qs = qs.filter(client_id=client_id)
    payment_status = request.GET.get("paymentStatus")
    if payment_status:
        qs = qs.filter(payment_status=payment_status)
    q = (request.GET.get("q") or "").strip()
    if q:
        qs = qs.filter(
            Q(order_number__icontains=q)
            | Q(client__first_name__icontains=q)
            | Q(client__last_name__icontains=q)
        )

    agg = qs.aggregate(
        total=Count("id"),
        active=Count("id", filter=Q(status__in=ACTIVE_STATUSES)),
        total_value=Coalesce(Sum("total"), ZERO),
        active_value=Coalesce(
            Sum("total", filter=Q(status__in=ACTIVE_STATUSES)), ZERO
        ),
        outstanding=Coalesce(Sum("balance_due"), ZERO),
    )
    by_status = dict(
        qs.order_by()
        .values("status")
        .annotate(c=Count("id"))
        .values_list("status", "c")
    )
    by_type = dict(
        qs.order_by()
        .values("order_type")
        .annotate(c=Count("id"))
        .values_list("order_type", "c")
    )

    orders, pagination = paginate(request, qs, serialize_order)
    return json_ok(
        {
            "orders": orders,
            "pagination": pagination,
            "stats": {
                "total": agg["total"],
                "active": agg["active"],
                "totalValue": _num(agg["total_value"]),
                "activeValue": _num(agg["active_value"]),
                "outstanding": _num(agg["outstanding"]),
            },
            "byStatus": {s: by_status.get(s, 0) for s in OrderStatus.values},
            "byType": {t: by_type.get(t, 0) for t in OrderType.values},
        }
    )


@require_permission("orders", "create")
@api_endpoint
def create_order(request):
    data = _get_req_data(request)
    order = services.create_order(
        client_id=data.get("clientId"),
        items=data.get("items") or [],
        created_by=request.user,
        status=data.get("status") or OrderStatus.DRAFT,
        order_type=data.get("orderType") or OrderType.SALE,
        required_date=_parse_date(data.get("requiredDate")),
        notes=data.get("notes") or "",
        shipping_amount=data.get("shippingAmount"),
        discount_amount=data.get("discountAmount"),
        deposit_required=bool(data.get("depositRequired")),
        deposit_amount=data.get("depositAmount"),
        deposit_due_date=_parse_date(data.get("depositDueDate")),
    )
    return json_ok(
        serialize_order(order, detail=True),
        status=201,
        message="Orden creada exitosamente",
    )


@require_http_methods(["GET", "PATCH"])
def order_detail(request, order_id):
    if request.method == "PATCH":
        return update_order_status(request, order_id)
    return get_order(request, order_id)


@require_permission("orders", "view")
@api_endpoint
def get_order(request, order_id):
    order = _order_or_404(
        order_id,
        Order.objects.select_related("client").prefetch_related(
            "items", "payments__received_by"
        ),
    )
    return json_ok(serialize_order(order, detail=True))


@require_permission("orders", "update")
@api_endpoint
def update_order_status(request, order_id):
    data = _get_req_data(request)
    order = _order_or_404(order_id)
    services.update_status(order, data.get("status"))
    return json_ok(serialize_order(order))


# ---------------------------------------------------------------------------
# Payments ledger
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "POST"])
def order_payments(request, order_id):
    if request.method == "POST":
        return add_payment(request, order_id)
    return list_payments(request, order_id)


@require_permission("payments", "view")
@api_endpoint
def list_payments(request, order_id):
    order = _order_or_404(order_id)
    payments = order.payments.select_related("received_by").order_by("-payment_date")
    return json_ok(
        {
            "payments": [serialize_payment(p) for p in payments],
            "orderSummary": ledger.summarize(order.total, order.amount_paid).as_dict()
            | {"total": _num(order.total)},
        }
    )


@require_permission("payments", "create")
@api_endpoint
def add_payment(request, order_id):
    data = _get_req_data(request)
    payment, summary = ledger.add_payment(
        order_id,
        data.get("amount"),
        received_by=request.user,
        payment_type=data.get("paymentType") or "PARTIAL",
        payment_method=data.get("paymentMethod") or "CASH",
        payment_date=_parse_datetime(data.get("paymentDate"), date_only_hour=12),
        reference_number=data.get("referenceNumber") or "",
        notes=data.get("notes") or "",
        receipt_url=data.get("receiptUrl") or "",
        installment_number=_parse_int(data.get("installmentNumber")),
        due_date=_parse_date(data.get("dueDate")),
    )
    return json_ok(
        {"payment": serialize_payment(payment), "orderSummary": summary.as_dict()},
        status=201,
    )


@require_http_methods(["DELETE"])
@require_permission("payments", "delete")
@api_endpoint
def delete_payment(request, order_id, payment_id):
    summary = ledger.delete_payment(order_id, payment_id)
    return json_ok({"orderSummary": summary.as_dict()}, message="Pago eliminado")
