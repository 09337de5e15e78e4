"""
Client portal API.

Clients sign in with phone and password and are then identified by the
signed ``client-token`` cookie (see ``user.auth``). Views here never look at
``request.user``.
"""

import logging
import re

from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.http import Http404
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from api.api_helpers import (
    _get_req_data,
    _iso,
    _num,
    _parse_date,
    _parse_datetime,
    _parse_int,
    api_endpoint,
    json_error,
    json_ok,
)
from growatt import cache as growatt_cache
from main.models import ZERO, Client, OrderStatus, PaymentStatus, phone_last10
from maintenance import availability
from maintenance import services as maintenance_services
from maintenance.models import MaintenanceRecord
from notifications.models import Notification
from notifications.serializers import NotificationSerializer
from notifications.services import mark_read
from user.auth import (
    clear_client_cookie,
    issue_client_token,
    require_client_session,
    set_client_cookie,
)

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\d{10}$")
MIN_PASSWORD_LENGTH = 6
MAX_NOTIFICATIONS = 50

Status = MaintenanceRecord.Status


def _serialize_maintenance(m: MaintenanceRecord) -> dict:
    return {
        "id": m.pk,
        "title": m.title,
        "description": m.description,
        "type": m.type,
        "priority": m.priority,
        "status": m.status,
        "requestedDate": _iso(m.requested_date),
        "scheduledDate": _iso(m.scheduled_date),
        "completedDate": _iso(m.completed_date),
        "solarSystem": (
            {"id": m.solar_system_id, "name": m.solar_system.name}
            if m.solar_system_id
            else None
        ),
        "technicians": [a.technician.display_name for a in m.assignments.all()],
    }


def _client_maintenances(client):
    return (
        MaintenanceRecord.objects.filter(client=client)
        .select_related("solar_system")
        .prefetch_related("assignments__technician")
    )


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def _find_client_by_phone(phone: str):
    tail = phone_last10(phone)
    # Stored phones may carry spaces, dashes or a country code anywhere
    candidates = (
        Client.objects.filter(is_active=True)
        .exclude(phone__isnull=True)
        .exclude(phone="")
    )
    for client in candidates.iterator():
        if phone_last10(client.phone) == tail:
            return client
    return None


@csrf_exempt
@require_http_methods(["POST"])
@api_endpoint
def client_login(request):
    data = _get_req_data(request)
    phone = (data.get("phone") or "").strip()
    password = data.get("password") or ""
    if not phone or not password:
        return json_error("Teléfono y contraseña son requeridos", status=400)
    if not PHONE_RE.match(phone):
        return json_error(
            "El teléfono debe ser exactamente 10 dígitos sin espacios ni guiones",
            status=400,
        )

    client = _find_client_by_phone(phone)
    if client is None:
        return json_error("Teléfono o contraseña incorrectos", status=401)
    if not client.password:
        return json_error(
            "Esta cuenta no tiene contraseña configurada. Contacte al administrador.",
            status=401,
        )
    if not client.check_password(password):
        logger.info("Failed portal login for client %s", client.pk)
        return json_error("Teléfono o contraseña incorrectos", status=401)

    response = json_ok(
        clientId=client.pk,
        firstName=client.first_name,
        lastName=client.last_name,
        requirePasswordChange=client.require_password_change,
    )
    return set_client_cookie(response, issue_client_token(client))


@csrf_exempt
@require_http_methods(["POST"])
def client_logout(request):
    return clear_client_cookie(json_ok(message="Sesión cerrada"))


@require_http_methods(["GET"])
@require_client_session
@api_endpoint
def client_session(request):
    client = request.portal_client
    return json_ok(
        {
            "clientId": client.pk,
            "firstName": client.first_name,
            "lastName": client.last_name,
            "email": client.email,
            "phone": client.phone,
            "requirePasswordChange": client.require_password_change,
        }
    )


@csrf_exempt
@require_http_methods(["POST"])
@require_client_session
@api_endpoint
def change_password(request):
    data = _get_req_data(request)
    client = request.portal_client
    current = data.get("currentPassword") or ""
    new = data.get("newPassword") or ""
    if not new:
        return json_error("Datos incompletos", status=400)
    if len(new) < MIN_PASSWORD_LENGTH:
        return json_error("La contraseña debe tener al menos 6 caracteres", status=400)
    # First login after an admin reset skips the current-password check
    if not client.require_password_change and not client.check_password(current):
        return json_error("La contraseña actual es incorrecta", status=400)
    client.set_password(new)
    client.require_password_change = False
    client.save(update_fields=["password", "require_password_change", "updated_at"])
    return json_ok(message="Contraseña actualizada correctamente")


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@require_http_methods(["GET"])
@require_client_session
@api_endpoint
def dashboard(request):
    client = request.portal_client
    cached = growatt_cache.get_cached(client.pk)
    maintenances = _client_maintenances(client)

    balance = client.orders.exclude(status=OrderStatus.CANCELLED).aggregate(
        due=Coalesce(Sum("balance_due"), ZERO)
    )["due"]
    next_visit = (
        maintenances.filter(
            status=Status.SCHEDULED, scheduled_date__gte=timezone.now()
        )
        .order_by("scheduled_date")
        .first()
    )

    return json_ok(
        {
            "stats": {
                "totalEnergyGenerated": cached.total_generation if cached else 0,
                "monthlyEnergy": cached.monthly_generation if cached else 0,
                "dailyEnergy": cached.daily_generation if cached else 0,
                "co2Saved": cached.co2_reduction if cached else 0,
                "systemStatus": (cached.status if cached else None) or "offline",
                "pendingMaintenance": maintenances.filter(
                    status__in=[Status.PENDING_APPROVAL, Status.SCHEDULED]
                ).count(),
                "balanceDue": _num(balance),
            },
            "growatt": cached.as_dict() if cached else None,
            "nextMaintenance": _serialize_maintenance(next_visit) if next_visit else None,
            "recentMaintenance": [
                _serialize_maintenance(m)
                for m in maintenances.order_by("-created_at")[:10]
            ],
            "solarSystems": [
                {"id": s.pk, "name": s.name, "capacityKw": _num(s.capacity_kw)}
                for s in client.solar_systems.filter(is_active=True)
            ],
        }
    )


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@csrf_exempt
@require_http_methods(["GET", "POST"])
def maintenances_collection(request):
    if request.method == "POST":
        return request_maintenance(request)
    return list_maintenances(request)


@require_client_session
@api_endpoint
def list_maintenances(request):
    qs = _client_maintenances(request.portal_client).order_by("-created_at")
    status = request.GET.get("status")
    if status:
        qs = qs.filter(status=status)
    return json_ok([_serialize_maintenance(m) for m in qs])


@require_client_session
@api_endpoint
def request_maintenance(request):
    data = _get_req_data(request)
    maintenance = maintenance_services.create_request(
        request.portal_client,
        type=data.get("type") or "",
        title=data.get("title") or "",
        description=data.get("description"),
        preferred_date=_parse_datetime(data.get("preferredDate"), date_only_hour=12),
        solar_system_id=data.get("solarSystemId"),
    )
    return json_ok(
        _serialize_maintenance(maintenance),
        status=201,
        message=(
            "Solicitud de mantenimiento enviada correctamente. "
            "Un administrador la revisará pronto."
        ),
    )


@csrf_exempt
@require_http_methods(["GET", "DELETE"])
@require_client_session
@api_endpoint
def maintenance_detail(request, maintenance_id):
    if request.method == "DELETE":
        maintenance_services.delete_by_client(maintenance_id, request.portal_client)
        return json_ok(message="Mantenimiento eliminado")
    maintenance = (
        _client_maintenances(request.portal_client).filter(pk=maintenance_id).first()
    )
    if maintenance is None:
        raise Http404("Mantenimiento no encontrado")
    data = _serialize_maintenance(maintenance)
    data["history"] = [
        {"status": h.status, "notes": h.notes, "createdAt": _iso(h.created_at)}
        for h in maintenance.status_history.all()
    ]
    return json_ok(data)


@csrf_exempt
@require_http_methods(["POST"])
@require_client_session
@api_endpoint
def cancel_maintenance(request, maintenance_id):
    data = _get_req_data(request)
    maintenance_services.cancel_by_client(
        maintenance_id, request.portal_client, reason=data.get("reason") or ""
    )
    return json_ok(message="Mantenimiento cancelado")


@require_http_methods(["GET"])
@require_client_session
@api_endpoint
def maintenance_availability(request):
    day = _parse_date(request.GET.get("date"))
    if day is None:
        return json_error("Fecha es requerida", status=400)
    return json_ok(
        availability.get_day_availability(
            day,
            exclude_maintenance_id=_parse_int(request.GET.get("excludeMaintenanceId")),
        )
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def _client_notifications(client):
    return Notification.objects.filter(client=client).order_by("-created_at", "-id")


@require_http_methods(["GET"])
@require_client_session
@api_endpoint
def notifications_list(request):
    qs = _client_notifications(request.portal_client)
    unread_count = qs.filter(read=False).count()
    if request.GET.get("unreadOnly") in ("1", "true"):
        qs = qs.filter(read=False)
    return json_ok(
        {
            "notifications": NotificationSerializer(
                qs[:MAX_NOTIFICATIONS], many=True
            ).data,
            "unreadCount": unread_count,
        }
    )


@csrf_exempt
@require_http_methods(["POST", "PATCH", "DELETE"])
@require_client_session
@api_endpoint
def notification_detail(request, notification_id):
    notification = (
        _client_notifications(request.portal_client).filter(pk=notification_id).first()
    )
    if notification is None:
        raise Http404("Notificación no encontrada")
    if request.method == "DELETE":
        notification.delete()
        return json_ok(message="Notificación eliminada")
    notification.mark_read()
    return json_ok(NotificationSerializer(notification).data)


@csrf_exempt
@require_http_methods(["POST"])
@require_client_session
@api_endpoint
def notifications_mark_all_read(request):
    updated = mark_read(_client_notifications(request.portal_client))
    return json_ok({"updated": updated})


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@require_http_methods(["GET"])
@require_client_session
@api_endpoint
def payments(request):
    orders = list(
        request.portal_client.orders.exclude(status=OrderStatus.CANCELLED)
        .prefetch_related("payments")
        .order_by("-order_date")
    )

    serialized = []
    all_payments = []
    for order in orders:
        order_payments = sorted(
            order.payments.all(), key=lambda p: p.payment_date, reverse=True
        )
        rows = [
            {
                "id": p.pk,
                "amount": _num(p.amount),
                "paymentType": p.payment_type,
                "paymentMethod": p.payment_method,
                "paymentDate": _iso(p.payment_date),
                "referenceNumber": p.reference_number,
                "notes": p.notes,
            }
            for p in order_payments
        ]
        serialized.append(
            {
                "id": order.pk,
                "orderNumber": order.order_number,
                "orderDate": _iso(order.order_date),
                "status": order.status,
                "total": _num(order.total),
                "amountPaid": _num(order.amount_paid),
                "balanceDue": _num(order.balance_due),
                "paymentStatus": order.payment_status,
                "payments": rows,
            }
        )
        all_payments.extend(
            (p.payment_date, {**row, "orderId": order.pk, "orderNumber": order.order_number})
            for p, row in zip(order_payments, rows)
        )
    all_payments.sort(key=lambda pair: pair[0], reverse=True)

    return json_ok(
        {
            "summary": {
                "totalOrders": len(orders),
                "totalAmount": sum(_num(o.total) for o in orders),
                "totalPaid": sum(_num(o.amount_paid) for o in orders),
                "totalPending": sum(_num(o.balance_due) for o in orders),
                "paidOrders": sum(o.payment_status == PaymentStatus.PAID for o in orders),
                "partialOrders": sum(
                    o.payment_status == PaymentStatus.PARTIAL for o in orders
                ),
                "pendingOrders": sum(
                    o.payment_status == PaymentStatus.PENDING for o in orders
                ),
            },
            "orders": serialized,
            "recentPayments": [row for _, row in all_payments[:10]],
        }
    )
