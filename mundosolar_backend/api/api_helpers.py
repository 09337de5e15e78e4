import json
import logging
from datetime import date, datetime, time
from datetime import timezone as dt_timezone
from decimal import Decimal, InvalidOperation
from functools import wraps

from django.core.exceptions import ObjectDoesNotExist, PermissionDenied, ValidationError
from django.core.paginator import EmptyPage, Paginator
from django.http import Http404, JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Error interno del servidor"


def _d(x) -> Decimal:
    try:
        if isinstance(x, Decimal):
            return x
        return Decimal(str(x))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0.00")


def _num(x) -> float:
    """Nullable decimal column -> JSON number (missing values read as 0)."""
    if x is None:
        return 0.0
    return float(x)


def _iso(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _get_req_data(request):
    """Support DRF (request.data) and plain Django (request.body)."""
    if hasattr(request, "data"):
        return request.data
    if request.content_type == "application/x-www-form-urlencoded":
        return request.POST
    try:
        body = (request.body or b"").decode("utf-8") or "{}"
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("JSON inválido")
    if not isinstance(data, dict):
        raise ValidationError("JSON inválido")
    return data


def _parse_int(value, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_datetime(value, *, date_only_hour: int = 0):
    """
    Parse an ISO datetime or a bare YYYY-MM-DD.

    Bare dates land at ``date_only_hour`` UTC of that day so that a calendar
    day survives conversion to any Mexican timezone. Naive datetimes are read
    in the current timezone.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        raw = str(value).strip()
        dt = parse_datetime(raw)
        if dt is None:
            d = parse_date(raw)
            if d is None:
                raise ValidationError(f"Fecha inválida: {raw}")
            return datetime.combine(d, time(hour=date_only_hour), tzinfo=dt_timezone.utc)
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt, timezone.get_current_timezone())
    return dt


def _parse_date(value):
    if value in (None, ""):
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    d = parse_date(str(value).strip())
    if d is None:
        raise ValidationError(f"Fecha inválida: {value}")
    return d


def json_ok(data=None, status=200, **extra):
    payload = {"success": True}
    if data is not None:
        payload["data"] = data
    payload.update(extra)
    return JsonResponse(payload, status=status)


def json_error(message, status=400, **extra):
    payload = {"success": False, "error": str(message)}
    payload.update(extra)
    return JsonResponse(payload, status=status)


def _validation_message(exc: ValidationError) -> str:
    messages = getattr(exc, "messages", None) or [str(exc)]
    return "; ".join(str(m) for m in messages)


def api_endpoint(view_func):
    """
    Translate domain exceptions raised by a JSON view into the API envelope.

    ValidationError -> 400, PermissionDenied -> 403, Http404 and
    ObjectDoesNotExist -> 404. Anything else is logged with its traceback and
    answered with a generic 500.
    """

    @wraps(view_func)
    def wrapped(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except ValidationError as e:
            return json_error(_validation_message(e), status=400)
        except PermissionDenied as e:
            return json_error(str(e) or "Acceso denegado", status=403)
        except Http404 as e:
            return json_error(str(e) or "No encontrado", status=404)
        except ObjectDoesNotExist as e:
            return json_error(str(e) or "No encontrado", status=404)
        except Exception:
            logger.exception(
                "Unhandled error in %s %s", request.method, request.path
            )
            return json_error(GENERIC_ERROR, status=500)

    return wrapped


def paginate(request, queryset, serialize, *, default_per_page=20, max_per_page=100):
    """Return (items, pagination) for ?page=&per_page= query params."""
    per_page = _parse_int(
        request.GET.get("per_page") or request.GET.get("limit"), default_per_page
    )
    per_page = max(1, min(per_page, max_per_page))
    page_number = _parse_int(request.GET.get("page"), 1)

    paginator = Paginator(queryset, per_page)
    try:
        page = paginator.page(page_number)
    except EmptyPage:
        page = paginator.page(paginator.num_pages or 1)

    return [serialize(obj) for obj in page.object_list], {
        "page": page.number,
        "per_page": per_page,
        "total": paginator.count,
        "pages": paginator.num_pages,
    }
