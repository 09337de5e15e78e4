"""
Centralized Role-Based Access Control

One policy table answers every "may this staff member do X to Y" question.
Views never compare role strings themselves; they declare the resource and
the action they need and let ``is_allowed`` decide.

ARCHITECTURE:
- ``POLICY`` maps role -> resource -> allowed actions
- ``is_allowed(role, resource, action)`` is the single source of truth
- ``require_permission`` guards function-based JSON views (401/403 JSON)
- ``HasPermission`` guards DRF views

USAGE:
    from user.permissions import require_permission

    @require_permission("payments", "delete")
    def delete_payment(request, order_id, payment_id):
        ...

    class NotificationViewSet(viewsets.ModelViewSet):
        permission_classes = [HasPermission]
        permission_resource = "notifications"

SECURITY CONSIDERATIONS:
- Authentication is checked before authorization
- Superusers bypass the table
- Unknown roles, resources or actions are denied
"""

import logging
from functools import wraps

from rest_framework import permissions

from django.http import JsonResponse
from django.utils.translation import gettext_lazy as _

from main.models import UserRole

logger = logging.getLogger(__name__)


VIEW = "view"
CREATE = "create"
UPDATE = "update"
DELETE = "delete"

ALL_ACTIONS = frozenset({VIEW, CREATE, UPDATE, DELETE})

RESOURCES = frozenset(
    {
        "clients",
        "inventory",
        "orders",
        "payments",
        "maintenance",
        "technicians",
        "notifications",
        "growatt",
        "dashboard",
        "invoices",
        "reports",
        "users",
    }
)


# ============================================================================
# POLICY TABLE - Single Source of Truth
# ============================================================================

POLICY = {
    UserRole.ADMIN: {resource: ALL_ACTIONS for resource in RESOURCES},
    UserRole.MANAGER: {
        "clients": {VIEW, CREATE, UPDATE},
        "inventory": {VIEW, CREATE, UPDATE},
        "orders": {VIEW, CREATE, UPDATE},
        "payments": {VIEW, CREATE},
        "maintenance": ALL_ACTIONS,
        "technicians": {VIEW, UPDATE},
        "notifications": {VIEW, UPDATE, DELETE},
        "growatt": {VIEW, UPDATE},
        "dashboard": {VIEW},
        "invoices": {VIEW, CREATE, UPDATE},
        "reports": {VIEW},
        "users": {VIEW},
    },
    UserRole.TECHNICIAN: {
        "clients": {VIEW},
        "inventory": {VIEW},
        "maintenance": {VIEW, UPDATE},
        "technicians": {VIEW},
        "notifications": {VIEW, UPDATE, DELETE},
        "growatt": {VIEW},
        "dashboard": {VIEW},
    },
    UserRole.SALES: {
        "clients": {VIEW, CREATE, UPDATE},
        "inventory": {VIEW},
        "orders": {VIEW, CREATE, UPDATE},
        "payments": {VIEW},
        "maintenance": {VIEW},
        "notifications": {VIEW, UPDATE, DELETE},
        "growatt": {VIEW},
        "dashboard": {VIEW},
        "invoices": {VIEW, CREATE},
    },
    UserRole.SUPPORT: {
        "clients": {VIEW, UPDATE},
        "inventory": {VIEW},
        "orders": {VIEW},
        "maintenance": {VIEW, CREATE, UPDATE},
        "notifications": {VIEW, UPDATE, DELETE},
        "growatt": {VIEW},
        "dashboard": {VIEW},
    },
}


def is_allowed(role, resource: str, action: str) -> bool:
    """
    Return True when ``role`` may perform ``action`` on ``resource``.

    Examples:
        >>> is_allowed("admin", "payments", "delete")
        True
        >>> is_allowed("technician", "payments", "delete")
        False
    """
    if not role:
        return False
    rules = POLICY.get(str(role).strip().lower(), {})
    return action in rules.get(resource, ())


def user_can(user, resource: str, action: str) -> bool:
    """
    Apply the policy to a Django user.

    Security:
        - Unauthenticated or inactive users are always denied
        - Superusers are always allowed
    """
    if not user or not user.is_authenticated or not user.is_active:
        return False

    if user.is_superuser:
        return True

    return is_allowed(getattr(user, "role", None), resource, action)


# ============================================================================
# FUNCTION-BASED VIEW DECORATOR
# ============================================================================


def require_permission(resource: str, action: str):
    """
    Guard a JSON view with the policy table.

    Anonymous callers get 401, authenticated staff lacking the permission
    get 403. Both use the API's ``{"success": False, "error": ...}`` envelope.
    """

    def decorator(view_func):
        @wraps(view_func)
        def wrapped_view(request, *args, **kwargs):
            user = request.user
            if not user.is_authenticated:
                return JsonResponse(
                    {"success": False, "error": "No autorizado"}, status=401
                )

            if not user_can(user, resource, action):
                logger.warning(
                    "Access denied: %s (role=%s) attempted %s on %s",
                    user.email,
                    getattr(user, "role", None),
                    action,
                    resource,
                )
                return JsonResponse(
                    {
                        "success": False,
                        "error": "No tiene permisos para realizar esta acción",
                    },
                    status=403,
                )

            return view_func(request, *args, **kwargs)

        return wrapped_view

    return decorator


# ============================================================================
# DJANGO REST FRAMEWORK PERMISSIONS
# ============================================================================


class HasPermission(permissions.BasePermission):
    """
    DRF permission backed by the policy table.

    The view sets ``permission_resource``. The action comes from
    ``permission_action_map[view.action]``, then ``permission_action``, then
    the HTTP method.

    Usage:
        class NotificationViewSet(viewsets.ModelViewSet):
            permission_classes = [HasPermission]
            permission_resource = "notifications"
    """

    message = _("You do not have permission to perform this action.")

    METHOD_ACTIONS = {
        "GET": VIEW,
        "HEAD": VIEW,
        "OPTIONS": VIEW,
        "POST": CREATE,
        "PUT": UPDATE,
        "PATCH": UPDATE,
        "DELETE": DELETE,
    }

    def has_permission(self, request, view):
        resource = getattr(view, "permission_resource", None)
        if resource is None:
            logger.error(
                "HasPermission used without permission_resource on %s",
                view.__class__.__name__,
            )
            return False

        action = (
            getattr(view, "permission_action_map", {}).get(getattr(view, "action", None))
            or getattr(view, "permission_action", None)
            or self.METHOD_ACTIONS.get(request.method)
        )
        return user_can(request.user, resource, action)
