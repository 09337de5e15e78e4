import logging

from django.http import Http404
from django.utils import timezone
from django.views.decorators.http import require_GET

from api.api_helpers import _parse_datetime, _parse_int, api_endpoint, json_error, json_ok
from maintenance import availability
from maintenance.models import MaintenanceRecord
from maintenance.views import serialize_maintenance
from user.permissions import require_permission

logger = logging.getLogger(__name__)


@require_GET
@require_permission("technicians", "view")
@api_endpoint
def technicians_api(request):
    """Active technicians, for assignment pickers."""
    technicians = availability.active_technicians()
    data = [
        {
            "id": tech.pk,
            "name": tech.display_name,
            "email": tech.email,
            "employeeId": tech.employee_id,
            "department": tech.department,
        }
        for tech in technicians
    ]
    return json_ok(data)


@require_GET
@require_permission("technicians", "view")
@api_endpoint
def technician_availability(request, technician_id):
    """Whether one technician is free at ?at=<datetime>."""
    if not availability.active_technicians().filter(pk=technician_id).exists():
        raise Http404("Técnico no encontrado")
    at = _parse_datetime(request.GET.get("at"))
    if at is None:
        return json_error("Fecha es requerida", status=400)
    conflict = availability.find_conflict(
        technician_id,
        at,
        exclude_maintenance_id=_parse_int(request.GET.get("excludeMaintenanceId")),
    )
    return json_ok(
        {
            "technicianId": technician_id,
            "at": at.isoformat(),
            "isAvailable": conflict is None,
            "conflictingMaintenance": (
                {"id": conflict.maintenance_id, "title": conflict.title}
                if conflict
                else None
            ),
        }
    )


@require_GET
@require_permission("maintenance", "view")
@api_endpoint
def my_maintenances(request):
    """Jobs assigned to the signed-in technician, soonest first."""
    qs = (
        MaintenanceRecord.objects.filter(assignments__technician=request.user)
        .select_related("client", "solar_system")
        .prefetch_related("assignments__technician")
        .order_by("scheduled_date")
        .distinct()
    )
    if request.GET.get("all") not in ("1", "true"):
        qs = qs.exclude(status__in=MaintenanceRecord.INACTIVE_STATUSES)
    status = request.GET.get("status")
    if status:
        qs = qs.filter(status=status)

    today = timezone.localdate()
    start, end = availability.day_bounds(today)
    jobs = [serialize_maintenance(m) for m in qs]
    return json_ok(
        {
            "maintenances": jobs,
            "todayCount": qs.filter(
                scheduled_date__gte=start, scheduled_date__lt=end
            ).count(),
        }
    )
