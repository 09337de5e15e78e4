import logging

from django.db.models import Q
from django.views.decorators.http import require_http_methods

from api.api_helpers import (
    _get_req_data,
    _iso,
    _num,
    _parse_int,
    api_endpoint,
    json_error,
    json_ok,
    paginate,
)
from user.permissions import require_permission

from . import services
from .models import Invoice, InvoiceItem

logger = logging.getLogger(__name__)


def serialize_item(item: InvoiceItem) -> dict:
    return {
        "id": item.pk,
        "productCode": item.product_code,
        "description": item.description,
        "quantity": item.quantity,
        "unitPrice": _num(item.unit_price),
        "amount": _num(item.amount),
    }


def serialize_invoice(invoice: Invoice, *, detail: bool = False) -> dict:
    data = {
        "id": invoice.pk,
        "invoiceNumber": invoice.invoice_number,
        "status": invoice.status,
        "order": {
            "id": invoice.order_id,
            "orderNumber": invoice.order.order_number,
            "paymentStatus": invoice.order.payment_status,
        },
        "client": {"id": invoice.client_id, "name": invoice.client.full_name},
        "rfcEmisor": invoice.rfc_emisor,
        "rfcReceptor": invoice.rfc_receptor,
        "usoCFDI": invoice.uso_cfdi,
        "metodoPago": invoice.metodo_pago,
        "formaPago": invoice.forma_pago,
        "subtotal": _num(invoice.subtotal),
        "iva": _num(invoice.iva),
        "total": _num(invoice.total),
        "issuedAt": _iso(invoice.issued_at),
        "cancelledAt": _iso(invoice.cancelled_at),
    }
    if detail:
        data["regimenFiscal"] = invoice.regimen_fiscal
        data["notes"] = invoice.notes
        data["cancellationReason"] = invoice.cancellation_reason
        data["items"] = [serialize_item(i) for i in invoice.items.all()]
    return data


def _base_queryset():
    return Invoice.objects.select_related("order", "client")


@require_http_methods(["GET", "POST"])
def invoices_collection(request):
    if request.method == "POST":
        return create_invoice(request)
    return list_invoices(request)


@require_permission("invoices", "view")
@api_endpoint
def list_invoices(request):
    qs = _base_queryset()
    status = request.GET.get("status")
    if status:
        qs = qs.filter(status=status)
    client_id = _parse_int(request.GET.get("clientId"))
    if client_id:
        qs = qs.filter(client_id=client_id)
    q = (request.GET.get("q") or "").strip()
    if q:
        qs = qs.filter(
            Q(invoice_number__icontains=q)
            | Q(order__order_number__icontains=q)
            | Q(client__first_name__icontains=q)
            | Q(client__last_name__icontains=q)
            | Q(rfc_receptor__icontains=q)
        )

    invoices, pagination = paginate(request, qs, serialize_invoice)
    return json_ok({"invoices": invoices, "pagination": pagination})


@require_permission("invoices", "create")
@api_endpoint
def create_invoice(request):
    data = _get_req_data(request)
    if not data.get("orderId"):
        return json_error("Orden es requerida", status=400)
    invoice = services.create_invoice(
        data.get("orderId"),
        created_by=request.user,
        uso_cfdi=data.get("usoCFDI") or "G03",
        metodo_pago=data.get("metodoPago") or "PUE",
        forma_pago=data.get("formaPago") or "99",
        regimen_fiscal=data.get("regimenFiscal") or "612",
        invoice_number=(data.get("invoiceNumber") or "").strip() or None,
        notes=data.get("notes") or "",
    )
    invoice = _base_queryset().prefetch_related("items").get(pk=invoice.pk)
    return json_ok(
        serialize_invoice(invoice, detail=True),
        status=201,
        message="Factura creada exitosamente",
    )


@require_http_methods(["GET"])
@require_permission("invoices", "view")
@api_endpoint
def invoice_detail(request, invoice_id):
    invoice = services.get_invoice(invoice_id)
    return json_ok(serialize_invoice(invoice, detail=True))


@require_http_methods(["POST", "PUT"])
@require_permission("invoices", "update")
@api_endpoint
def cancel_invoice(request, invoice_id):
    data = _get_req_data(request)
    invoice = services.cancel_invoice(invoice_id, reason=data.get("reason") or "")
    return json_ok(
        serialize_invoice(invoice, detail=True),
        message="Factura cancelada exitosamente",
    )

