"""
Tests for the role policy table and the view guards built on it.
"""

import pytest
from rest_framework.test import APIRequestFactory

from django.http import JsonResponse
from django.test import RequestFactory

from main.factories import AdminFactory, UserFactory
from main.models import UserRole
from user.permissions import (
    POLICY,
    RESOURCES,
    HasPermission,
    is_allowed,
    require_permission,
    user_can,
)


class TestPolicyTable:
    def test_admin_can_do_everything(self):
        for resource in RESOURCES:
            for action in ("view", "create", "update", "delete"):
                assert is_allowed(UserRole.ADMIN, resource, action)

    @pytest.mark.parametrize(
        "role,resource,action,expected",
        [
            (UserRole.TECHNICIAN, "payments", "delete", False),
            (UserRole.TECHNICIAN, "maintenance", "update", True),
            (UserRole.TECHNICIAN, "orders", "view", False),
            (UserRole.MANAGER, "payments", "create", True),
            (UserRole.MANAGER, "payments", "delete", False),
            (UserRole.SALES, "orders", "create", True),
            (UserRole.SALES, "maintenance", "create", False),
            (UserRole.SUPPORT, "maintenance", "create", True),
            (UserRole.SUPPORT, "payments", "view", False),
            (UserRole.MANAGER, "reports", "view", True),
            (UserRole.SALES, "reports", "view", False),
            (UserRole.MANAGER, "users", "create", False),
            (UserRole.SALES, "invoices", "create", True),
            (UserRole.SALES, "invoices", "update", False),
            (UserRole.TECHNICIAN, "invoices", "view", False),
        ],
    )
    def test_role_matrix(self, role, resource, action, expected):
        assert is_allowed(role, resource, action) is expected

    def test_role_names_are_case_insensitive(self):
        assert is_allowed(" ADMIN ", "payments", "delete")

    def test_unknown_role_resource_or_action(self):
        assert not is_allowed("intern", "clients", "view")
        assert not is_allowed(UserRole.ADMIN, "payroll", "view")
        assert not is_allowed(UserRole.ADMIN, "clients", "export")
        assert not is_allowed(None, "clients", "view")

    def test_every_policy_resource_is_known(self):
        for rules in POLICY.values():
            assert set(rules) <= RESOURCES


@pytest.mark.django_db
class TestUserCan:
    def test_inactive_user_denied(self):
        user = AdminFactory(inactive=True)
        assert not user_can(user, "clients", "view")

    def test_superuser_bypasses_table(self):
        user = UserFactory(role=UserRole.TECHNICIAN, is_superuser=True)
        assert user_can(user, "payments", "delete")


@pytest.mark.django_db
class TestRequirePermission:
    @staticmethod
    def _view():
        @require_permission("payments", "delete")
        def view(request):
            return JsonResponse({"success": True})

        return view

    def test_anonymous_gets_401(self):
        from django.contrib.auth.models import AnonymousUser

        request = RequestFactory().delete("/x/")
        request.user = AnonymousUser()
        response = self._view()(request)
        assert response.status_code == 401

    def test_forbidden_role_gets_403(self):
        request = RequestFactory().delete("/x/")
        request.user = UserFactory(role=UserRole.TECHNICIAN)
        assert self._view()(request).status_code == 403

    def test_allowed_role_passes(self):
        request = RequestFactory().delete("/x/")
        request.user = AdminFactory()
        assert self._view()(request).status_code == 200


@pytest.mark.django_db
class TestHasPermission:
    class _View:
        permission_resource = "notifications"
        permission_action_map = {"mark_all_read": "update"}
        action = "mark_all_read"

    def test_action_map_is_used(self):
        request = APIRequestFactory().post("/x/")
        request.user = UserFactory(role=UserRole.SUPPORT)
        assert HasPermission().has_permission(request, self._View())

    def test_missing_resource_denies(self):
        request = APIRequestFactory().get("/x/")
        request.user = AdminFactory()
        assert not HasPermission().has_permission(request, object())
