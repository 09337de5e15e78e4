import datetime as dt
import logging

from django.utils import timezone
from django.views.decorators.http import require_GET

from api.api_helpers import _parse_date, _parse_int, api_endpoint, json_error, json_ok
from maintenance.availability import day_bounds
from user.permissions import require_permission

from . import services

logger = logging.getLogger(__name__)

# Default window for the technician report
PERFORMANCE_DAYS = 30


def _year(request):
    year = _parse_int(request.GET.get("year"), timezone.localdate().year)
    if not 2000 <= year <= 2100:
        return None
    return year


@require_GET
@require_permission("reports", "view")
@api_endpoint
def overview(request):
    return json_ok(services.overview())


@require_GET
@require_permission("reports", "view")
@api_endpoint
def sales_report(request):
    year = _year(request)
    if year is None:
        return json_error("Año inválido", status=400)
    return json_ok(services.sales_report(year))


@require_GET
@require_permission("reports", "view")
@api_endpoint
def maintenance_report(request):
    year = _year(request)
    if year is None:
        return json_error("Año inválido", status=400)
    return json_ok(services.maintenance_report(year))


@require_GET
@require_permission("reports", "view")
@api_endpoint
def clients_report(request):
    return json_ok(services.clients_report())


@require_GET
@require_permission("reports", "view")
@api_endpoint
def technician_performance(request):
    """?startDate=&endDate= (inclusive local days), last 30 days by default."""
    today = timezone.localdate()
    end_day = _parse_date(request.GET.get("endDate")) or today
    start_day = _parse_date(request.GET.get("startDate")) or (
        end_day - dt.timedelta(days=PERFORMANCE_DAYS)
    )
    start, _ = day_bounds(start_day)
    _, end = day_bounds(end_day)
    if start >= end:
        return json_error("La fecha inicial debe ser anterior a la final", status=400)
    return json_ok(services.technician_performance(start, end))
