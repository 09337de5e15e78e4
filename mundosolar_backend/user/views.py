import logging

from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.db.models import Count, Q
from django.http import Http404
from django.views.decorators.http import require_http_methods

from api.api_helpers import (
    _get_req_data,
    _iso,
    api_endpoint,
    json_error,
    json_ok,
    paginate,
)
from main.models import UserRole

from .permissions import require_permission

logger = logging.getLogger(__name__)

User = get_user_model()

# JSON key -> model attribute for plain editable fields
USER_FIELDS = {
    "fullName": "full_name",
    "phone": "phone",
    "department": "department",
    "employeeId": "employee_id",
}


def serialize_user(u) -> dict:
    return {
        "id": u.pk,
        "fullName": u.full_name,
        "email": u.email,
        "phone": u.phone,
        "role": u.role,
        "department": u.department,
        "employeeId": u.employee_id,
        "isActive": u.is_active,
        "lastLogin": _iso(u.last_login),
        "createdAt": _iso(u.date_joined),
    }


def _user_or_404(user_id):
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise Http404("Usuario no encontrado")
    return user


def _clean_email(value) -> str:
    return (value or "").strip().lower()


def _ensure_role(role) -> None:
    if role not in UserRole.values:
        raise ValidationError("Rol inválido")


def _ensure_unique_email(email: str, exclude_pk=None) -> None:
    qs = User.objects.filter(email__iexact=email)
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    if qs.exists():
        raise ValidationError("El email ya está registrado")


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "POST"])
def users_collection(request):
    if request.method == "POST":
        return create_user(request)
    return list_users(request)


@require_permission("users", "view")
@api_endpoint
def list_users(request):
    qs = User.objects.all().order_by("full_name", "email")
    role = request.GET.get("role")
    if role:
        qs = qs.filter(role=role)
    active = request.GET.get("isActive")
    if active in ("true", "1"):
        qs = qs.filter(is_active=True)
    elif active in ("false", "0"):
        qs = qs.filter(is_active=False)
    q = (request.GET.get("q") or request.GET.get("search") or "").strip()
    if q:
        qs = qs.filter(
            Q(full_name__icontains=q)
            | Q(email__icontains=q)
            | Q(employee_id__icontains=q)
        )

    users, pagination = paginate(request, qs, serialize_user)
    by_role = {
        row["role"]: row["n"]
        for row in User.objects.values("role").annotate(n=Count("id"))
    }
    stats = {
        "total": User.objects.count(),
        "active": User.objects.filter(is_active=True).count(),
        "byRole": by_role,
    }
    return json_ok({"users": users, "pagination": pagination, "stats": stats})


@require_permission("users", "create")
@api_endpoint
def create_user(request):
    data = _get_req_data(request)
    full_name = (data.get("fullName") or "").strip()
    email = _clean_email(data.get("email"))
    password = data.get("password") or ""
    role = data.get("role")
    if not (full_name and email and password and role):
        return json_error("Nombre, email, contraseña y rol son requeridos", status=400)
    _ensure_role(role)
    _ensure_unique_email(email)
    validate_password(password)

    user = User.objects.create_user(
        username=email,
        email=email,
        password=password,
        full_name=full_name,
        role=role,
        phone=(data.get("phone") or "").strip() or None,
        department=(data.get("department") or "").strip() or None,
        employee_id=(data.get("employeeId") or "").strip() or None,
        is_staff=role == UserRole.ADMIN,
    )
    logger.info("User %s (%s) created by %s", user.email, role, request.user.email)
    return json_ok(
        serialize_user(user), status=201, message="Usuario creado exitosamente"
    )


# ---------------------------------------------------------------------------
# Single user
# ---------------------------------------------------------------------------


@require_http_methods(["GET", "PATCH", "PUT", "DELETE"])
def user_detail(request, user_id):
    if request.method in ("PATCH", "PUT"):
        return update_user(request, user_id)
    if request.method == "DELETE":
        return deactivate_user(request, user_id)
    return get_user(request, user_id)


@require_permission("users", "view")
@api_endpoint
def get_user(request, user_id):
    return json_ok(serialize_user(_user_or_404(user_id)))


@require_permission("users", "update")
@api_endpoint
def update_user(request, user_id):
    user = _user_or_404(user_id)
    data = _get_req_data(request)
    is_self = user.pk == request.user.pk

    for key, attr in USER_FIELDS.items():
        if key in data:
            value = data.get(key)
            setattr(user, attr, value.strip() if isinstance(value, str) else value)
    if not (user.full_name or "").strip():
        raise ValidationError("Nombre es requerido")

    if "email" in data:
        email = _clean_email(data.get("email"))
        if not email:
            raise ValidationError("Email es requerido")
        _ensure_unique_email(email, exclude_pk=user.pk)
        user.email = email
        user.username = email

    if "role" in data and data.get("role") != user.role:
        _ensure_role(data.get("role"))
        if is_self:
            raise ValidationError("No puedes cambiar tu propio rol")
        user.role = data.get("role")
        user.is_staff = user.role == UserRole.ADMIN

    if "isActive" in data:
        is_active = bool(data.get("isActive"))
        if is_self and not is_active:
            raise ValidationError("No puedes desactivar tu propia cuenta")
        user.is_active = is_active

    if data.get("password"):
        validate_password(data.get("password"), user=user)
        user.set_password(data.get("password"))

    user.save()
    logger.info("User %s updated by %s", user.email, request.user.email)
    return json_ok(serialize_user(user), message="Usuario actualizado exitosamente")


@require_permission("users", "delete")
@api_endpoint
def deactivate_user(request, user_id):
    user = _user_or_404(user_id)
    if user.pk == request.user.pk:
        raise ValidationError("No puedes desactivar tu propia cuenta")
    if user.is_active:
        user.is_active = False
        user.save(update_fields=["is_active"])
        logger.info("User %s deactivated by %s", user.email, request.user.email)
    return json_ok(serialize_user(user), message="Usuario desactivado exitosamente")
