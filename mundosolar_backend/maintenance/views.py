import datetime as dt
import logging

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
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
    paginate,
)
from user.permissions import require_permission

from . import availability, services
from .models import MaintenancePart, MaintenanceRecord

logger = logging.getLogger(__name__)


def serialize_assignment(a) -> dict:
    return {
        "technicianId": a.technician_id,
        "name": a.technician.display_name,
        "email": a.technician.email,
        "role": a.role,
        "assignedAt": _iso(a.assigned_at),
    }


def serialize_part(p: MaintenancePart) -> dict:
    item = p.inventory_item
    return {
        "id": p.pk,
        "inventoryItemId": p.inventory_item_id,
        "productName": item.product.name if item.product_id else "",
        "serialNumber": item.serial_number,
        "quantity": p.quantity,
        "notes": p.notes,
        "createdAt": _iso(p.created_at),
    }


def serialize_maintenance(m: MaintenanceRecord, *, detail: bool = False) -> dict:
    data = {
        "id": m.pk,
        "title": m.title,
        "description": m.description,
        "type": m.type,
        "priority": m.priority,
        "status": m.status,
        "requestedDate": _iso(m.requested_date),
        "scheduledDate": _iso(m.scheduled_date),
        "startedDate": _iso(m.started_date),
        "completedDate": _iso(m.completed_date),
        "client": {
            "id": m.client_id,
            "name": m.client.full_name,
            "phone": m.client.phone,
        },
        "solarSystem": (
            {"id": m.solar_system_id, "name": m.solar_system.name}
            if m.solar_system_id
            else None
        ),
        "technicians": [serialize_assignment(a) for a in m.assignments.all()],
        "createdAt": _iso(m.created_at),
    }
    if detail:
        data["workPerformed"] = m.work_performed
        data["cost"] = _num(m.cost) if m.cost is not None else None
        data["laborHours"] = _num(m.labor_hours) if m.labor_hours is not None else None
        data["nextScheduledDate"] = _iso(m.next_scheduled_date)
        data["parts"] = [serialize_part(p) for p in m.parts.all()]
        data["statusHistory"] = [
            {
                "status": h.status,
                "notes": h.notes,
                "changedBy": h.changed_by.display_name if h.changed_by_id else None,
                "createdAt": _iso(h.created_at),
            }
            for h in m.status_history.all()
        ]
    return data


def _base_queryset():
    return MaintenanceRecord.objects.select_related(
        "client", "solar_system"
    ).prefetch_related("assignments__technician")


def _technician_ids(data):
    ids = data.get("technicianIds")
    if ids is None and data.get("technicianId"):
        ids = [data.get("technicianId")]
    return ids or []


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "POST"])
def maintenance_collection(request):
    if request.method == "POST":
        return create_maintenance(request)
    return list_maintenance(request)


@require_permission("maintenance", "view")
@api_endpoint
def list_maintenance(request):
    qs = _base_queryset().order_by("-created_at")

    status = request.GET.get("status")
    if status:
        qs = qs.filter(status=status)
    mtype = request.GET.get("type")
    if mtype:
        qs = qs.filter(type=mtype)
    priority = request.GET.get("priority")
    if priority:
        qs = qs.filter(priority=priority)
    client_id = _parse_int(request.GET.get("clientId"))
    if client_id:
        qs = qs.filter(client_id=client_id)
    technician_id = _parse_int(request.GET.get("technicianId"))
    if technician_id:
        qs = qs.filter(assignments__technician_id=technician_id).distinct()
    q = (request.GET.get("q") or "").strip()
    if q:
        qs = qs.filter(
            Q(title__icontains=q)
            | Q(client__first_name__icontains=q)
            | Q(client__last_name__icontains=q)
        )

    records, pagination = paginate(request, qs, serialize_maintenance)
    return json_ok(
        {
            "maintenances": records,
            "pagination": pagination,
            "stats": services.maintenance_stats(),
        }
    )


@require_permission("maintenance", "create")
@api_endpoint
def create_maintenance(request):
    data = _get_req_data(request)
    maintenance = services.create_scheduled(
        request.user,
        client_id=data.get("clientId"),
        scheduled_date=_parse_datetime(data.get("scheduledDate"), date_only_hour=12),
        type=data.get("type") or data.get("maintenanceType"),
        title=data.get("title") or "",
        technician_ids=_technician_ids(data),
        description=data.get("description") or "",
        solar_system_id=data.get("solarSystemId"),
        priority=data.get("priority") or MaintenanceRecord.Priority.SCHEDULED,
        cost=data.get("cost"),
        labor_hours=data.get("laborHours"),
        next_scheduled_date=_parse_datetime(
            data.get("nextScheduledDate"), date_only_hour=12
        ),
    )
    maintenance = _base_queryset().get(pk=maintenance.pk)
    return json_ok(
        serialize_maintenance(maintenance),
        status=201,
        message="Mantenimiento programado exitosamente",
    )


# ---------------------------------------------------------------------------
# Single record
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "PATCH", "DELETE"])
def maintenance_detail(request, maintenance_id):
    if request.method == "PATCH":
        return update_maintenance(request, maintenance_id)
    if request.method == "DELETE":
        return delete_maintenance(request, maintenance_id)
    return get_maintenance(request, maintenance_id)


@require_permission("maintenance", "view")
@api_endpoint
def get_maintenance(request, maintenance_id):
    services.get_maintenance(maintenance_id)
    maintenance = (
        _base_queryset()
        .prefetch_related(
            "parts__inventory_item__product", "status_history__changed_by"
        )
        .get(pk=maintenance_id)
    )
    return json_ok(serialize_maintenance(maintenance, detail=True))


# Plain fields editable in place; status changes go through the workflow
_EDITABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "priority": "priority",
    "workPerformed": "work_performed",
    "cost": "cost",
    "laborHours": "labor_hours",
}


@require_permission("maintenance", "update")
@api_endpoint
def update_maintenance(request, maintenance_id):
    data = _get_req_data(request)
    maintenance = services.get_maintenance(maintenance_id)

    fields = []
    for key, attr in _EDITABLE_FIELDS.items():
        if key in data:
            setattr(maintenance, attr, data.get(key))
            fields.append(attr)
    if "nextScheduledDate" in data:
        maintenance.next_scheduled_date = _parse_datetime(
            data.get("nextScheduledDate"), date_only_hour=12
        )
        fields.append("next_scheduled_date")
    if maintenance.priority not in MaintenanceRecord.Priority.values:
        return json_error("Prioridad inválida", status=400)
    scheduled_date = _parse_datetime(data.get("scheduledDate"), date_only_hour=12)
    has_technicians = "technicianIds" in data or "technicianId" in data
    new_type = data.get("type") or None

    # A rejected reschedule or status leaves the plain fields untouched too
    with transaction.atomic():
        if fields:
            maintenance.save(update_fields=fields + ["updated_at"])
        if scheduled_date is not None or has_technicians or new_type:
            services.update_schedule(
                maintenance.pk,
                request.user,
                scheduled_date=scheduled_date,
                technician_ids=_technician_ids(data) if has_technicians else None,
                type=new_type,
            )
        if data.get("status") and data.get("status") != maintenance.status:
            services.transition_status(
                maintenance.pk,
                data.get("status"),
                request.user,
                notes=data.get("notes"),
            )

    maintenance = _base_queryset().get(pk=maintenance.pk)
    return json_ok(serialize_maintenance(maintenance))


@require_permission("maintenance", "delete")
@api_endpoint
def delete_maintenance(request, maintenance_id):
    if services.delete_by_staff(maintenance_id, request.user):
        return json_ok(message="Mantenimiento eliminado")
    return json_ok(message="Mantenimiento cancelado")


@require_http_methods(["PATCH", "POST"])
@require_permission("maintenance", "update")
@api_endpoint
def update_status(request, maintenance_id):
    data = _get_req_data(request)
    if not data.get("status"):
        return json_error("Estado es requerido", status=400)
    services.transition_status(
        maintenance_id,
        data.get("status"),
        request.user,
        notes=data.get("notes"),
        scheduled_date=_parse_datetime(data.get("scheduledDate"), date_only_hour=12),
        technician_ids=_technician_ids(data),
    )
    maintenance = _base_queryset().get(pk=maintenance_id)
    return json_ok(serialize_maintenance(maintenance), message="Estado actualizado")


# ---------------------------------------------------------------------------
# Technicians
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "POST"])
def maintenance_technicians(request, maintenance_id):
    if request.method == "POST":
        return assign_technician(request, maintenance_id)
    return list_technicians(request, maintenance_id)


@require_permission("maintenance", "view")
@api_endpoint
def list_technicians(request, maintenance_id):
    maintenance = services.get_maintenance(maintenance_id)
    assignments = maintenance.assignments.select_related("technician")
    return json_ok([serialize_assignment(a) for a in assignments])


@require_permission("maintenance", "update")
@api_endpoint
def assign_technician(request, maintenance_id):
    data = _get_req_data(request)
    if not data.get("technicianId"):
        return json_error("Técnico es requerido", status=400)
    assignment = services.assign_technician(
        maintenance_id, data.get("technicianId"), role=data.get("role")
    )
    return json_ok(serialize_assignment(assignment), status=201)


@require_http_methods(["DELETE"])
@require_permission("maintenance", "update")
@api_endpoint
def unassign_technician(request, maintenance_id, technician_id):
    services.unassign_technician(maintenance_id, technician_id)
    return json_ok(message="Técnico removido")


# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "POST"])
def maintenance_parts(request, maintenance_id):
    if request.method == "POST":
        return add_part(request, maintenance_id)
    return list_parts(request, maintenance_id)


@require_permission("maintenance", "view")
@api_endpoint
def list_parts(request, maintenance_id):
    maintenance = services.get_maintenance(maintenance_id)
    parts = maintenance.parts.select_related("inventory_item__product")
    return json_ok([serialize_part(p) for p in parts])


@require_permission("maintenance", "update")
@api_endpoint
def add_part(request, maintenance_id):
    data = _get_req_data(request)
    if not data.get("inventoryItemId") or not data.get("quantity"):
        return json_error("Artículo y cantidad son requeridos", status=400)
    part = services.add_part(
        maintenance_id,
        data.get("inventoryItemId"),
        data.get("quantity"),
        notes=data.get("notes") or "",
    )
    part = MaintenancePart.objects.select_related("inventory_item__product").get(
        pk=part.pk
    )
    return json_ok(serialize_part(part), status=201)


@require_http_methods(["DELETE"])
@require_permission("maintenance", "update")
@api_endpoint
def remove_part(request, maintenance_id, part_id):
    services.remove_part(maintenance_id, part_id)
    return json_ok(message="Refacción eliminada")


# ---------------------------------------------------------------------------
# Scheduling views
# ---------------------------------------------------------------------------


@require_http_methods(["GET"])
@require_permission("maintenance", "view")
@api_endpoint
def availability_view(request):
    day = _parse_date(request.GET.get("date"))
    if day is None:
        return json_error("Fecha es requerida", status=400)
    return json_ok(
        availability.get_day_availability(
            day,
            exclude_maintenance_id=_parse_int(request.GET.get("excludeMaintenanceId")),
            detailed=True,
        )
    )


@require_http_methods(["GET"])
@require_permission("maintenance", "view")
@api_endpoint
def calendar_view(request):
    today = timezone.localdate()
    start_day = _parse_date(request.GET.get("start")) or today.replace(day=1)
    end_day = _parse_date(request.GET.get("end")) or (
        start_day + dt.timedelta(days=42)
    )
    if end_day < start_day:
        return json_error("Rango de fechas inválido", status=400)
    start, _ = availability.day_bounds(start_day)
    end, _ = availability.day_bounds(end_day)
    return json_ok(
        services.calendar_events(
            start, end, client_id=_parse_int(request.GET.get("clientId"))
        )
    )


@require_http_methods(["GET"])
@require_permission("maintenance", "view")
@api_endpoint
def dashboard_view(request):
    metrics = services.dashboard_metrics()
    metrics["upcoming"] = [serialize_maintenance(m) for m in metrics["upcoming"]]
    metrics["overdueList"] = [
        serialize_maintenance(m) for m in metrics["overdueList"]
    ]
    return json_ok(metrics)
