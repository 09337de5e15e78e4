from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Count, F, Q
from django.http import Http404
from django.utils import timezone

from main.models import Client, InventoryItem, SolarSystem, UserRole

from . import availability
from .models import (
    MaintenancePart,
    MaintenanceRecord,
    MaintenanceStatusHistory,
    MaintenanceTechnician,
)
from .notifications import notify_admins_of_request, notify_client_of_status

logger = logging.getLogger(__name__)

Status = MaintenanceRecord.Status

# Maintenance types a client may request from the portal
CLIENT_REQUEST_TYPES = (
    MaintenanceRecord.Type.PREVENTIVE,
    MaintenanceRecord.Type.CORRECTIVE,
    MaintenanceRecord.Type.WARRANTY,
    MaintenanceRecord.Type.CLEANING,
)

CALENDAR_COLORS = {
    Status.PENDING_APPROVAL: "#f59e0b",
    Status.SCHEDULED: "#3b82f6",
    Status.IN_PROGRESS: "#8b5cf6",
    Status.COMPLETED: "#10b981",
    Status.CANCELLED: "#ef4444",
}


def get_maintenance(maintenance_id, *, for_update: bool = False) -> MaintenanceRecord:
    qs = MaintenanceRecord.objects.all()
    if for_update:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=maintenance_id)
    except MaintenanceRecord.DoesNotExist:
        raise Http404("Mantenimiento no encontrado")


def log_status(
    maintenance: MaintenanceRecord, status: str, actor=None, notes: str = ""
) -> MaintenanceStatusHistory:
    return MaintenanceStatusHistory.objects.create(
        maintenance=maintenance,
        status=status,
        changed_by=actor,
        notes=notes or "",
    )


def _load_technicians(technician_ids: Iterable) -> list:
    """Resolve ids to active technicians, keeping the caller's order."""
    ids = []
    for raw in technician_ids or []:
        try:
            tid = int(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"Técnico inválido: {raw}")
        if tid not in ids:
            ids.append(tid)
    if not ids:
        return []

    User = get_user_model()
    found = {
        u.pk: u
        for u in User.objects.filter(
            pk__in=ids, role=UserRole.TECHNICIAN, is_active=True
        )
    }
    missing = [tid for tid in ids if tid not in found]
    if missing:
        raise ValidationError(f"Técnicos no encontrados: {missing}")
    return [found[tid] for tid in ids]


def _replace_assignments(maintenance: MaintenanceRecord, technicians: list) -> None:
    MaintenanceTechnician.objects.filter(maintenance=maintenance).delete()
    MaintenanceTechnician.objects.bulk_create(
        [
            MaintenanceTechnician(
                maintenance=maintenance,
                technician=tech,
                role=(
                    MaintenanceTechnician.Role.LEAD
                    if index == 0
                    else MaintenanceTechnician.Role.ASSISTANT
                ),
            )
            for index, tech in enumerate(technicians)
        ]
    )


def _ensure_free(technicians: list, scheduled_at, exclude_maintenance_id=None) -> None:
    busy = []
    for tech in technicians:
        conflict = availability.find_conflict(
            tech.pk, scheduled_at, exclude_maintenance_id=exclude_maintenance_id
        )
        if conflict is not None:
            busy.append(f"{tech.display_name} ({conflict.title})")
    if busy:
        raise ValidationError(
            "Técnicos no disponibles en ese horario: " + ", ".join(busy)
        )


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


def create_request(
    client: Client,
    *,
    type: str,
    title: str,
    description: Optional[str] = None,
    preferred_date: Optional[dt.datetime] = None,
    solar_system_id=None,
) -> MaintenanceRecord:
    """
    A client asks for a maintenance from the portal.

    The record starts in PENDING_APPROVAL with SCHEDULED priority; the
    preferred date, when given, is stored as the tentative scheduled date.
    Every active administrator is notified.
    """
    if not type or not (title or "").strip():
        raise ValidationError("El tipo y título son requeridos")
    if type not in CLIENT_REQUEST_TYPES:
        raise ValidationError("Tipo de mantenimiento inválido")

    solar_system = None
    if solar_system_id:
        solar_system = SolarSystem.objects.filter(
            pk=solar_system_id, client=client
        ).first()
        if solar_system is None:
            raise Http404("Sistema solar no encontrado")

    maintenance = MaintenanceRecord.objects.create(
        client=client,
        solar_system=solar_system,
        type=type,
        priority=MaintenanceRecord.Priority.SCHEDULED,
        status=Status.PENDING_APPROVAL,
        title=title.strip(),
        description=description or "",
        requested_date=timezone.now(),
        scheduled_date=preferred_date,
    )
    logger.info(
        "Client %s requested maintenance %s (%s)", client.pk, maintenance.pk, type
    )
    notify_admins_of_request(maintenance)
    return maintenance


def create_scheduled(
    admin,
    *,
    client_id,
    scheduled_date: dt.datetime,
    type: str,
    title: str,
    technician_ids: Iterable = (),
    description: str = "",
    solar_system_id=None,
    priority: str = MaintenanceRecord.Priority.SCHEDULED,
    cost=None,
    labor_hours=None,
    next_scheduled_date=None,
) -> MaintenanceRecord:
    """
    Staff schedule a maintenance directly.

    Requires a date and a known type. Every technician must be an active
    technician free at the scheduled hour; the first one leads. The record
    starts in SCHEDULED with one history entry and the client is notified.
    """
    if not client_id:
        raise ValidationError("Cliente es requerido")
    if not type:
        raise ValidationError("Tipo de mantenimiento es requerido")
    if type not in MaintenanceRecord.Type.values:
        raise ValidationError("Tipo de mantenimiento inválido")
    if not scheduled_date:
        raise ValidationError("Fecha programada es requerida")
    if priority not in MaintenanceRecord.Priority.values:
        raise ValidationError("Prioridad inválida")

    client = Client.objects.filter(pk=client_id).first()
    if client is None:
        raise Http404("Cliente no encontrado")
    solar_system = None
    if solar_system_id:
        solar_system = SolarSystem.objects.filter(
            pk=solar_system_id, client=client
        ).first()
        if solar_system is None:
            raise Http404("Sistema solar no encontrado")

    technicians = _load_technicians(technician_ids)
    _ensure_free(technicians, scheduled_date)

    with transaction.atomic():
        maintenance = MaintenanceRecord.objects.create(
            client=client,
            solar_system=solar_system,
            type=type,
            priority=priority,
            status=Status.SCHEDULED,
            title=(title or "").strip() or MaintenanceRecord.Type(type).label,
            description=description or "",
            scheduled_date=scheduled_date,
            next_scheduled_date=next_scheduled_date,
            cost=cost,
            labor_hours=labor_hours,
            created_by=admin,
        )
        _replace_assignments(maintenance, technicians)
        log_status(maintenance, Status.SCHEDULED, actor=admin, notes="Programado")

    logger.info(
        "Maintenance %s scheduled for %s by %s",
        maintenance.pk,
        scheduled_date.isoformat(),
        getattr(admin, "email", None),
    )
    notify_client_of_status(maintenance)
    return maintenance


# ---------------------------------------------------------------------------
# Status workflow
# ---------------------------------------------------------------------------


def transition_status(
    maintenance_id,
    new_status: str,
    actor,
    *,
    notes: Optional[str] = None,
    scheduled_date: Optional[dt.datetime] = None,
    technician_ids: Optional[Iterable] = None,
) -> MaintenanceRecord:
    """
    Move a maintenance to ``new_status`` and record it in the history.

    Any status may follow any other. IN_PROGRESS stamps ``started_date`` the
    first time, COMPLETED stamps ``completed_date``, SCHEDULED with a date
    reschedules. A non-empty ``technician_ids`` replaces the assignments.
    The client is told about the change once it is committed.
    """
    if new_status not in Status.values:
        raise ValidationError("Estado inválido")

    technicians = _load_technicians(technician_ids) if technician_ids else []

    with transaction.atomic():
        maintenance = get_maintenance(maintenance_id, for_update=True)
        previous = maintenance.status
        now = timezone.now()

        maintenance.status = new_status
        fields = ["status", "updated_at"]
        if new_status == Status.IN_PROGRESS and maintenance.started_date is None:
            maintenance.started_date = now
            fields.append("started_date")
        elif new_status == Status.COMPLETED:
            maintenance.completed_date = now
            fields.append("completed_date")
        if new_status == Status.SCHEDULED and scheduled_date:
            maintenance.scheduled_date = scheduled_date
            fields.append("scheduled_date")
        maintenance.save(update_fields=fields)

        log_status(maintenance, new_status, actor=actor, notes=notes or "")
        if technicians:
            _replace_assignments(maintenance, technicians)

    logger.info(
        "Maintenance %s: %s -> %s by %s",
        maintenance.pk,
        previous,
        new_status,
        getattr(actor, "email", None),
    )
    notify_client_of_status(maintenance)
    return maintenance


def update_schedule(
    maintenance_id,
    actor,
    *,
    scheduled_date: Optional[dt.datetime] = None,
    technician_ids: Optional[Iterable] = None,
    type: Optional[str] = None,
) -> MaintenanceRecord:
    """
    Reschedule, reassign or retype a maintenance without touching its status.

    ``technician_ids`` replaces the assignments when given (an empty list
    clears them). When the date or the crew changes, every technician must
    be free at the resulting hour.
    """
    if type is not None and type not in MaintenanceRecord.Type.values:
        raise ValidationError("Tipo de mantenimiento inválido")
    technicians = (
        _load_technicians(technician_ids) if technician_ids is not None else None
    )

    with transaction.atomic():
        maintenance = get_maintenance(maintenance_id, for_update=True)
        fields = ["updated_at"]
        if type is not None and type != maintenance.type:
            maintenance.type = type
            fields.append("type")
        if scheduled_date is not None:
            maintenance.scheduled_date = scheduled_date
            fields.append("scheduled_date")

        if (scheduled_date is not None or technicians) and maintenance.scheduled_date:
            crew = (
                technicians
                if technicians is not None
                else [a.technician for a in maintenance.assignments.all()]
            )
            _ensure_free(
                crew, maintenance.scheduled_date, exclude_maintenance_id=maintenance.pk
            )

        maintenance.save(update_fields=fields)
        if technicians is not None:
            _replace_assignments(maintenance, technicians)

    logger.info(
        "Maintenance %s updated by %s (%s%s)",
        maintenance.pk,
        getattr(actor, "email", None),
        ", ".join(fields[1:]) or "no fields",
        ", technicians" if technicians is not None else "",
    )
    return maintenance


def delete_by_staff(maintenance_id, actor) -> bool:
    """
    Staff removal of a maintenance.

    Only CANCELLED records are deleted. Any other record is cancelled
    instead, with a history entry, so completed work is never lost.
    Returns True when the row was deleted.
    """
    maintenance = get_maintenance(maintenance_id)
    if maintenance.status == Status.CANCELLED:
        maintenance.delete()
        logger.info(
            "Maintenance %s deleted by %s",
            maintenance_id,
            getattr(actor, "email", None),
        )
        return True
    transition_status(
        maintenance_id, Status.CANCELLED, actor, notes="Mantenimiento cancelado"
    )
    return False


def delete_by_client(maintenance_id, client: Client) -> None:
    """Clients may only remove their own cancelled maintenances."""
    maintenance = MaintenanceRecord.objects.filter(pk=maintenance_id).first()
    if maintenance is None:
        raise Http404("Mantenimiento no encontrado")
    if maintenance.client_id != client.pk:
        raise PermissionDenied("No autorizado para eliminar este mantenimiento")
    if maintenance.status != Status.CANCELLED:
        raise ValidationError("Solo se pueden eliminar mantenimientos cancelados")
    maintenance.delete()
    logger.info("Client %s deleted maintenance %s", client.pk, maintenance_id)


def cancel_by_client(maintenance_id, client: Client, reason: str = "") -> MaintenanceRecord:
    """Portal cancellation of a request that has not started yet."""
    maintenance = MaintenanceRecord.objects.filter(pk=maintenance_id).first()
    if maintenance is None:
        raise Http404("Mantenimiento no encontrado")
    if maintenance.client_id != client.pk:
        raise PermissionDenied("No autorizado para cancelar este mantenimiento")
    if maintenance.status not in (Status.PENDING_APPROVAL, Status.SCHEDULED):
        raise ValidationError(
            "Solo se pueden cancelar mantenimientos pendientes o programados"
        )
    return transition_status(
        maintenance_id,
        Status.CANCELLED,
        actor=None,
        notes=reason or "Cancelado por el cliente",
    )


# ---------------------------------------------------------------------------
# Technicians and parts
# ---------------------------------------------------------------------------


def assign_technician(maintenance_id, technician_id, role: Optional[str] = None):
    maintenance = get_maintenance(maintenance_id)
    technician = _load_technicians([technician_id])[0]
    if MaintenanceTechnician.objects.filter(
        maintenance=maintenance, technician=technician
    ).exists():
        raise ValidationError("El técnico ya está asignado")
    if role and role not in MaintenanceTechnician.Role.values:
        raise ValidationError("Rol de técnico inválido")
    if (
        maintenance.scheduled_date
        and not maintenance.is_terminal
        and not availability.is_technician_available(
            technician.pk,
            maintenance.scheduled_date,
            exclude_maintenance_id=maintenance.pk,
        )
    ):
        raise ValidationError("El técnico no está disponible en ese horario")
    if not role:
        has_lead = maintenance.assignments.filter(
            role=MaintenanceTechnician.Role.LEAD
        ).exists()
        role = (
            MaintenanceTechnician.Role.ASSISTANT
            if has_lead
            else MaintenanceTechnician.Role.LEAD
        )
    return MaintenanceTechnician.objects.create(
        maintenance=maintenance, technician=technician, role=role
    )


def unassign_technician(maintenance_id, technician_id) -> None:
    deleted, _ = MaintenanceTechnician.objects.filter(
        maintenance_id=maintenance_id, technician_id=technician_id
    ).delete()
    if not deleted:
        raise Http404("Asignación no encontrada")


def add_part(maintenance_id, inventory_item_id, quantity, notes: str = "") -> MaintenancePart:
    """Record a part used and take it out of stock in one transaction."""
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Cantidad inválida")
    if quantity <= 0:
        raise ValidationError("La cantidad debe ser mayor a 0")

    with transaction.atomic():
        maintenance = get_maintenance(maintenance_id)
        item = (
            InventoryItem.objects.select_for_update()
            .filter(pk=inventory_item_id)
            .first()
        )
        if item is None:
            raise Http404("Artículo de inventario no encontrado")
        if item.quantity < quantity:
            raise ValidationError("Inventario insuficiente")
        part = MaintenancePart.objects.create(
            maintenance=maintenance,
            inventory_item=item,
            quantity=quantity,
            notes=notes or "",
        )
        InventoryItem.objects.filter(pk=item.pk).update(quantity=F("quantity") - quantity)
    return part


def remove_part(maintenance_id, part_id) -> None:
    """Undo a part usage and return it to stock."""
    with transaction.atomic():
        part = (
            MaintenancePart.objects.select_for_update()
            .filter(pk=part_id, maintenance_id=maintenance_id)
            .first()
        )
        if part is None:
            raise Http404("Refacción no encontrada")
        InventoryItem.objects.filter(pk=part.inventory_item_id).update(
            quantity=F("quantity") + part.quantity
        )
        part.delete()


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


def _today_bounds():
    today = timezone.localdate()
    return availability.day_bounds(today)


def maintenance_stats() -> dict:
    start, _ = _today_bounds()
    month_start = start.replace(day=1)
    agg = MaintenanceRecord.objects.aggregate(
        total=Count("id"),
        pending_approval=Count("id", filter=Q(status=Status.PENDING_APPROVAL)),
        scheduled=Count("id", filter=Q(status=Status.SCHEDULED)),
        urgent=Count(
            "id",
            filter=Q(priority=MaintenanceRecord.Priority.URGENT)
            & ~Q(status__in=MaintenanceRecord.INACTIVE_STATUSES),
        ),
        in_progress=Count("id", filter=Q(status=Status.IN_PROGRESS)),
        completed_this_month=Count(
            "id",
            filter=Q(status=Status.COMPLETED, completed_date__gte=month_start),
        ),
    )
    by_type_counts = dict(
        MaintenanceRecord.objects.order_by()
        .values("type")
        .annotate(c=Count("id"))
        .values_list("type", "c")
    )
    total = agg["total"] or 0
    by_type = {
        t: {
            "count": by_type_counts.get(t, 0),
            "percentage": round(by_type_counts.get(t, 0) * 100 / total) if total else 0,
        }
        for t in MaintenanceRecord.Type.values
    }
    return {
        "total": total,
        "pendingApproval": agg["pending_approval"],
        "scheduled": agg["scheduled"],
        "urgent": agg["urgent"],
        "inProgress": agg["in_progress"],
        "completedThisMonth": agg["completed_this_month"],
        "byType": by_type,
    }


def dashboard_metrics(upcoming_days: int = 14, limit: int = 10) -> dict:
    today_start, tomorrow_start = _today_bounds()
    week_end = today_start + dt.timedelta(days=7)
    upcoming_end = today_start + dt.timedelta(days=upcoming_days)
    month_start = today_start.replace(day=1)
    active = [Status.SCHEDULED, Status.IN_PROGRESS]
    open_statuses = [Status.SCHEDULED, Status.PENDING_APPROVAL]

    qs = MaintenanceRecord.objects.all()
    base = qs.select_related("client", "solar_system").prefetch_related(
        "assignments__technician"
    )
    return {
        "scheduledToday": qs.filter(
            scheduled_date__gte=today_start,
            scheduled_date__lt=tomorrow_start,
            status__in=active,
        ).count(),
        "scheduledThisWeek": qs.filter(
            scheduled_date__gte=today_start,
            scheduled_date__lt=week_end,
            status__in=active,
        ).count(),
        "overdue": qs.filter(
            scheduled_date__lt=today_start, status__in=open_statuses
        ).count(),
        "pendingApproval": qs.filter(status=Status.PENDING_APPROVAL).count(),
        "inProgress": qs.filter(status=Status.IN_PROGRESS).count(),
        "completedThisMonth": qs.filter(
            status=Status.COMPLETED, completed_date__gte=month_start
        ).count(),
        "upcoming": list(
            base.filter(
                scheduled_date__gte=today_start,
                scheduled_date__lte=upcoming_end,
                status__in=open_statuses,
            ).order_by("scheduled_date")[:limit]
        ),
        "overdueList": list(
            base.filter(
                scheduled_date__lt=today_start, status__in=open_statuses
            ).order_by("scheduled_date")[:limit]
        ),
    }


def calendar_events(start: dt.datetime, end: dt.datetime, client_id=None) -> list[dict]:
    qs = (
        MaintenanceRecord.objects.filter(
            scheduled_date__gte=start, scheduled_date__lt=end
        )
        .exclude(status=Status.CANCELLED)
        .select_related("client")
        .prefetch_related("assignments__technician")
        .order_by("scheduled_date")
    )
    if client_id:
        qs = qs.filter(client_id=client_id)

    events = []
    for m in qs:
        end_at = m.scheduled_date + dt.timedelta(
            hours=availability.MAINTENANCE_DURATION_HOURS
        )
        events.append(
            {
                "id": m.pk,
                "title": f"{m.title} - {m.client.full_name}",
                "start": m.scheduled_date.isoformat(),
                "end": end_at.isoformat(),
                "color": CALENDAR_COLORS.get(m.status, "#6b7280"),
                "status": m.status,
                "type": m.type,
                "priority": m.priority,
                "clientId": m.client_id,
                "technicians": [
                    a.technician.display_name for a in m.assignments.all()
                ],
            }
        )
    return events
