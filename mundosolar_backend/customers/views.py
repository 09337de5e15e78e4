import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.http import Http404
from django.views.decorators.http import require_http_methods

from api.api_helpers import (
    _d,
    _get_req_data,
    _iso,
    _num,
    _parse_date,
    api_endpoint,
    json_error,
    json_ok,
    paginate,
)
from growatt import cache as growatt_cache
from main.models import Client, SolarSystem, phone_last10
from user.permissions import require_permission

logger = logging.getLogger(__name__)

# JSON key -> model attribute for plain editable fields
CLIENT_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
    "address": "address",
    "neighborhood": "neighborhood",
    "city": "city",
    "state": "state",
    "postalCode": "postal_code",
    "rfc": "rfc",
    "notes": "notes",
    "growattUsername": "growatt_username",
    "growattPassword": "growatt_password",
}


def serialize_solar_system(s: SolarSystem) -> dict:
    return {
        "id": s.pk,
        "name": s.name,
        "capacityKw": _num(s.capacity_kw),
        "installationDate": _iso(s.installation_date),
        "estimatedGeneration": _num(s.estimated_generation),
        "notes": s.notes,
        "isActive": s.is_active,
    }


def serialize_client(c: Client) -> dict:
    return {
        "id": c.pk,
        "firstName": c.first_name,
        "lastName": c.last_name,
        "fullName": c.full_name,
        "email": c.email,
        "phone": c.phone,
        "address": c.address,
        "neighborhood": c.neighborhood,
        "city": c.city,
        "state": c.state,
        "postalCode": c.postal_code,
        "rfc": c.rfc,
        "isActive": c.is_active,
        "hasPortalPassword": bool(c.password),
        "hasGrowattCredentials": c.has_growatt_credentials,
        "growattUsername": c.growatt_username,
        "expectedDailyGeneration": _num(c.expected_daily_generation),
        "createdAt": _iso(c.created_at),
    }


def _client_or_404(client_id) -> Client:
    client = Client.objects.filter(pk=client_id).first()
    if client is None:
        raise Http404("Cliente no encontrado")
    return client


def _apply_fields(client: Client, data) -> None:
    for key, attr in CLIENT_FIELDS.items():
        if key in data:
            value = data.get(key)
            setattr(client, attr, value.strip() if isinstance(value, str) else value)
    if "expectedDailyGeneration" in data:
        value = data.get("expectedDailyGeneration")
        client.expected_daily_generation = _d(value) if value not in (None, "") else None
    if data.get("password"):
        client.set_password(data.get("password"))
        client.require_password_change = True


def _ensure_unique_contact(client: Client) -> None:
    others = Client.objects.exclude(pk=client.pk)
    if client.email and others.filter(email__iexact=client.email).exists():
        raise ValidationError("Ya existe un cliente con este email")
    if client.phone:
        tail = phone_last10(client.phone)
        # Stored phones may carry spaces, dashes or a country code anywhere
        candidates = (
            others.exclude(phone__isnull=True)
            .exclude(phone="")
            .values_list("phone", flat=True)
        )
        if tail and any(phone_last10(p) == tail for p in candidates.iterator()):
            raise ValidationError("Ya existe un cliente con este teléfono")


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "POST"])
def clients_collection(request):
    if request.method == "POST":
        return create_client(request)
    return list_clients(request)


@require_permission("clients", "view")
@api_endpoint
def list_clients(request):
    qs = Client.objects.all().order_by("last_name", "first_name")
    if request.GET.get("active") in ("1", "true"):
        qs = qs.filter(is_active=True)
    q = (request.GET.get("q") or request.GET.get("search") or "").strip()
    if q:
        qs = qs.filter(
            Q(first_name__icontains=q)
            | Q(last_name__icontains=q)
            | Q(email__icontains=q)
            | Q(phone__icontains=q)
            | Q(rfc__icontains=q)
        )
    clients, pagination = paginate(request, qs, serialize_client)
    return json_ok({"clients": clients, "pagination": pagination})


@require_permission("clients", "create")
@api_endpoint
def create_client(request):
    data = _get_req_data(request)
    if not (data.get("firstName") or "").strip():
        return json_error("Nombre es requerido", status=400)
    if not (data.get("email") or "").strip():
        return json_error("Email es requerido", status=400)

    client = Client()
    _apply_fields(client, data)
    _ensure_unique_contact(client)
    client.save()
    logger.info("Client %s created by %s", client.pk, request.user.email)
    return json_ok(
        serialize_client(client), status=201, message="Cliente creado exitosamente"
    )


# ---------------------------------------------------------------------------
# Single client
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "PATCH", "PUT", "DELETE"])
def client_detail(request, client_id):
    if request.method in ("PATCH", "PUT"):
        return update_client(request, client_id)
    if request.method == "DELETE":
        return deactivate_client(request, client_id)
    return get_client(request, client_id)


@require_permission("clients", "view")
@api_endpoint
def get_client(request, client_id):
    client = _client_or_404(client_id)
    data = serialize_client(client)
    data["notes"] = client.notes
    data["solarSystems"] = [
        serialize_solar_system(s) for s in client.solar_systems.all()
    ]
    data["orders"] = [
        {
            "id": o.pk,
            "orderNumber": o.order_number,
            "status": o.status,
            "total": _num(o.total),
            "balanceDue": _num(o.balance_due),
            "paymentStatus": o.payment_status,
            "orderDate": _iso(o.order_date),
        }
        for o in client.orders.order_by("-created_at")[:20]
    ]
    data["maintenances"] = [
        {
            "id": m.pk,
            "title": m.title,
            "type": m.type,
            "status": m.status,
            "scheduledDate": _iso(m.scheduled_date),
        }
        for m in client.maintenances.order_by("-created_at")[:20]
    ]
    cached = growatt_cache.get_cached(client.pk)
    data["growattData"] = cached.as_dict() if cached else None
    return json_ok(data)


@require_permission("clients", "update")
@api_endpoint
def update_client(request, client_id):
    data = _get_req_data(request)
    client = _client_or_404(client_id)
    credentials_changed = any(
        k in data for k in ("growattUsername", "growattPassword")
    )
    _apply_fields(client, data)
    if "isActive" in data:
        client.is_active = bool(data.get("isActive"))
    _ensure_unique_contact(client)
    client.save()
    if credentials_changed:
        growatt_cache.invalidate(client.pk)
    return json_ok(serialize_client(client), message="Cliente actualizado exitosamente")


@require_permission("clients", "delete")
@api_endpoint
def deactivate_client(request, client_id):
    client = _client_or_404(client_id)
    client.is_active = False
    client.save(update_fields=["is_active", "updated_at"])
    logger.info("Client %s deactivated by %s", client.pk, request.user.email)
    return json_ok(message="Cliente eliminado exitosamente")


@require_http_methods(["GET", "POST"])
def client_solar_systems(request, client_id):
    if request.method == "POST":
        return add_solar_system(request, client_id)
    return list_solar_systems(request, client_id)


@require_permission("clients", "view")
@api_endpoint
def list_solar_systems(request, client_id):
    client = _client_or_404(client_id)
    return json_ok([serialize_solar_system(s) for s in client.solar_systems.all()])


@require_permission("clients", "update")
@api_endpoint
def add_solar_system(request, client_id):
    data = _get_req_data(request)
    client = _client_or_404(client_id)
    name = (data.get("name") or "").strip()
    if not name:
        return json_error("Nombre del sistema es requerido", status=400)
    capacity = _d(data.get("capacityKw"))
    if not capacity.is_finite() or capacity <= 0:
        return json_error("La capacidad debe ser mayor a 0", status=400)
    estimated = data.get("estimatedGeneration")
    with transaction.atomic():
        system = SolarSystem.objects.create(
            client=client,
            name=name,
            capacity_kw=capacity,
            installation_date=_parse_date(data.get("installationDate")),
            estimated_generation=_d(estimated) if estimated not in (None, "") else None,
            notes=data.get("notes") or "",
        )
    return json_ok(serialize_solar_system(system), status=201)
