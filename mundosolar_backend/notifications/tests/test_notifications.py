from unittest.mock import patch

import pytest
from rest_framework import status

from django.db import DatabaseError

from main.factories import AdminFactory, ClientFactory, UserFactory
from notifications import services
from notifications.models import Notification


def _note(**kwargs):
    defaults = {"type": "info", "title": "Aviso", "message": "Hola"}
    defaults.update(kwargs)
    return Notification.objects.create(**defaults)


@pytest.mark.django_db
class TestServices:
    def test_notify_admins_skips_inactive(self):
        AdminFactory()
        AdminFactory(inactive=True)
        UserFactory()

        sent = services.notify_admins(type="t", title="x", message="y")

        assert sent == 1
        assert Notification.objects.count() == 1

    def test_notify_client_stores_data(self):
        customer = ClientFactory()
        note = services.notify_client(
            customer, type="payment", title="Pago", message="Recibido", data={"a": 1}
        )
        assert note.client == customer
        assert note.data == {"a": 1}

    def test_failure_is_swallowed(self):
        customer = ClientFactory()
        with patch.object(
            Notification.objects, "create", side_effect=DatabaseError("down")
        ):
            assert (
                services.notify_client(customer, type="t", title="x", message="y")
                is None
            )

    def test_mark_read(self):
        customer = ClientFactory()
        _note(client=customer)
        _note(client=customer, read=True)
        assert services.mark_read(Notification.objects.filter(client=customer)) == 1


@pytest.mark.django_db
class TestStaffNotificationApi:
    def test_list_only_own(self, admin_api_client, admin_user):
        _note(user=admin_user)
        _note(user=admin_user, read=True)
        _note(user=UserFactory())

        response = admin_api_client.get("/api/notifications/")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert len(data["notifications"]) == 2
        assert data["unreadCount"] == 1

    def test_unread_only(self, admin_api_client, admin_user):
        _note(user=admin_user)
        _note(user=admin_user, read=True)
        response = admin_api_client.get("/api/notifications/?unreadOnly=true")
        assert len(response.json()["data"]["notifications"]) == 1

    def test_mark_one_read(self, admin_api_client, admin_user):
        note = _note(user=admin_user)

        response = admin_api_client.post(f"/api/notifications/{note.pk}/read/")

        assert response.status_code == status.HTTP_200_OK
        note.refresh_from_db()
        assert note.read is True
        assert note.read_at is not None

    def test_cannot_touch_others(self, admin_api_client):
        note = _note(user=UserFactory())
        response = admin_api_client.post(f"/api/notifications/{note.pk}/read/")
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_mark_all_read(self, admin_api_client, admin_user):
        _note(user=admin_user)
        _note(user=admin_user)
        response = admin_api_client.post("/api/notifications/mark-all-read/")
        assert response.json()["data"]["updated"] == 2

    def test_delete(self, admin_api_client, admin_user):
        note = _note(user=admin_user)
        response = admin_api_client.delete(f"/api/notifications/{note.pk}/")
        assert response.status_code == status.HTTP_200_OK
        assert not Notification.objects.filter(pk=note.pk).exists()

    def test_anonymous_rejected(self, api_client):
        response = api_client.get("/api/notifications/")
        assert response.status_code == status.HTTP_403_FORBIDDEN
