import logging

from django.conf import settings
from django.db.models import Max
from django.utils.crypto import constant_time_compare
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from api.api_helpers import _get_req_data, _iso, _num, api_endpoint, json_error, json_ok
from main.models import Client
from user.permissions import require_permission

from . import cache, sync
from .client import GrowattApi

logger = logging.getLogger(__name__)


def _cron_authorized(request) -> bool:
    secret = getattr(settings, "CRON_SECRET", "")
    if not secret:
        return True
    header = request.headers.get("Authorization", "")
    return constant_time_compare(header, f"Bearer {secret}")


@csrf_exempt
@require_http_methods(["GET", "POST"])
@api_endpoint
def cron_sync(request):
    """Scheduler entry point; runs the sync inline."""
    if not _cron_authorized(request):
        logger.warning("Rejected Growatt cron call from %s", request.META.get("REMOTE_ADDR"))
        return json_error("No autorizado", status=401)
    results = sync.sync_all()
    return json_ok(message="Sincronización de Growatt completada", results=results)


def _client_info(client: Client) -> dict:
    return {
        "id": client.pk,
        "firstName": client.first_name,
        "lastName": client.last_name,
        "email": client.email,
        "phone": client.phone,
        "city": client.city,
        "state": client.state,
        "growattUsername": client.growatt_username,
        "expectedDailyGeneration": _num(client.expected_daily_generation),
        "solarSystems": [
            {
                "id": s.pk,
                "name": s.name,
                "capacity": _num(s.capacity_kw),
                "estimatedGeneration": _num(s.estimated_generation),
                "installationDate": _iso(s.installation_date),
                "isActive": s.is_active,
            }
            for s in client.solar_systems.all()
        ],
    }


@require_http_methods(["GET"])
@require_permission("growatt", "view")
@api_endpoint
def cached_systems(request):
    clients = list(
        Client.objects.filter(is_active=True)
        .exclude(growatt_username__isnull=True)
        .exclude(growatt_username="")
        .prefetch_related("solar_systems")
        .order_by("first_name")
    )
    cached = cache.get_bulk_cached(c.pk for c in clients)

    rows = []
    for client in clients:
        data = cached.get(client.pk)
        if data is None:
            rows.append(
                {
                    "clientInfo": _client_info(client),
                    "growattData": None,
                    "status": "no_cache",
                    "error": "Sin datos en cache - Esperando sincronización",
                }
            )
            continue
        rows.append(
            {
                "clientInfo": _client_info(client),
                "growattData": data.as_dict(),
                "lastUpdated": _iso(data.last_update),
                "status": "stale" if data.is_stale else "success",
                "cacheAge": data.cache_age,
            }
        )

    values = list(cached.values())
    last_sync = (
        cache.GrowattDataCache.objects.filter(client_id__in=cached.keys()).aggregate(
            last=Max("cached_at")
        )["last"]
        if cached
        else None
    )
    return json_ok(
        rows,
        totals={
            "totalClients": len(clients),
            "clientsWithCache": len(values),
            "clientsWithoutCache": len(clients) - len(values),
            "totalTodayEnergy": sum(v.daily_generation for v in values),
            "totalEnergy": sum(v.total_generation for v in values),
            "totalCo2Saved": sum(v.co2_reduction for v in values),
        },
        lastSync=_iso(last_sync),
        cacheStats=cache.get_cache_statistics(),
    )


@require_http_methods(["GET"])
@require_permission("growatt", "view")
@api_endpoint
def cache_statistics(request):
    return json_ok(cache.get_cache_statistics())


@require_http_methods(["POST", "DELETE"])
@require_permission("growatt", "update")
@api_endpoint
def client_cache(request, client_id):
    """POST flags the client's cache stale, DELETE drops it."""
    if request.method == "DELETE":
        if not cache.delete_cache(client_id):
            return json_error("Cache no encontrado", status=404)
        return json_ok(message="Cache eliminado")
    if not cache.invalidate(client_id):
        return json_error("Cache no encontrado", status=404)
    return json_ok(message="Cache marcado como desactualizado")


@require_http_methods(["POST"])
@require_permission("growatt", "update")
@api_endpoint
def test_credentials(request):
    data = _get_req_data(request)
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not username or not password:
        return json_error("Usuario y contraseña son requeridos", status=400)
    valid = GrowattApi.test_credentials(username, password)
    return json_ok({"valid": valid})
