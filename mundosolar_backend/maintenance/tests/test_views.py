"""API tests for the staff maintenance endpoints."""

import datetime as dt
import json

import pytest

from django.utils import timezone

from main.factories import (
    ClientFactory,
    InventoryItemFactory,
    MaintenanceFactory,
    TechnicianFactory,
)
from maintenance.models import MaintenanceRecord

Status = MaintenanceRecord.Status


def _json(client, method, url, payload=None):
    return getattr(client, method)(
        url, data=json.dumps(payload or {}), content_type="application/json"
    )


def _future_day(days=6):
    return timezone.localdate() + dt.timedelta(days=days)


@pytest.mark.django_db
class TestMaintenanceCollection:
    def test_list_includes_stats(self, admin_client):
        MaintenanceFactory.create_batch(2)
        MaintenanceFactory(status=Status.PENDING_APPROVAL)

        body = admin_client.get("/api/maintenance/").json()

        assert body["success"] is True
        assert len(body["data"]["maintenances"]) == 3
        assert body["data"]["stats"]["pendingApproval"] == 1

    def test_filter_by_status(self, admin_client):
        MaintenanceFactory()
        pending = MaintenanceFactory(status=Status.PENDING_APPROVAL)

        body = admin_client.get("/api/maintenance/?status=PENDING_APPROVAL").json()

        assert [m["id"] for m in body["data"]["maintenances"]] == [pending.pk]

    def test_filter_by_technician(self, admin_client, technician):
        mine = MaintenanceFactory(technicians=[technician])
        MaintenanceFactory()

        body = admin_client.get(
            f"/api/maintenance/?technicianId={technician.pk}"
        ).json()

        assert [m["id"] for m in body["data"]["maintenances"]] == [mine.pk]

    def test_create_scheduled(self, admin_client, technician):
        customer = ClientFactory()

        response = _json(
            admin_client,
            "post",
            "/api/maintenance/",
            {
                "clientId": customer.pk,
                "type": "PREVENTIVE",
                "title": "Mantenimiento anual",
                "scheduledDate": f"{_future_day().isoformat()}T10:00:00-06:00",
                "technicianIds": [technician.pk],
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Mantenimiento programado exitosamente"
        assert body["data"]["status"] == Status.SCHEDULED
        assert body["data"]["technicians"][0]["role"] == "Lead"

    def test_create_missing_date(self, admin_client):
        response = _json(
            admin_client,
            "post",
            "/api/maintenance/",
            {"clientId": ClientFactory().pk, "type": "PREVENTIVE"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Fecha programada es requerida"

    def test_sales_cannot_create(self, sales_client):
        response = _json(sales_client, "post", "/api/maintenance/", {})
        assert response.status_code == 403

    def test_anonymous(self, client):
        assert client.get("/api/maintenance/").status_code == 401


@pytest.mark.django_db
class TestMaintenanceDetail:
    def test_detail_has_history_and_parts(self, admin_client):
        m = MaintenanceFactory()
        body = admin_client.get(f"/api/maintenance/{m.pk}/").json()
        assert body["data"]["id"] == m.pk
        assert body["data"]["parts"] == []
        assert body["data"]["statusHistory"] == []

    def test_unknown_is_404(self, admin_client):
        response = admin_client.get("/api/maintenance/424242/")
        assert response.status_code == 404
        assert response.json()["error"] == "Mantenimiento no encontrado"

    def test_patch_invalid_priority(self, admin_client):
        m = MaintenanceFactory()
        response = _json(
            admin_client, "patch", f"/api/maintenance/{m.pk}/", {"priority": "LOW"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Prioridad inválida"

    def test_patch_fields_and_status(self, admin_client):
        m = MaintenanceFactory()
        response = _json(
            admin_client,
            "patch",
            f"/api/maintenance/{m.pk}/",
            {"title": "Cambio de inversor", "status": "IN_PROGRESS"},
        )
        assert response.status_code == 200
        m.refresh_from_db()
        assert m.title == "Cambio de inversor"
        assert m.status == Status.IN_PROGRESS
        assert m.started_date is not None

    def test_technician_cannot_delete(self, technician_client):
        m = MaintenanceFactory()
        response = technician_client.delete(f"/api/maintenance/{m.pk}/")
        assert response.status_code == 403
        assert MaintenanceRecord.objects.filter(pk=m.pk).exists()

    def test_delete_open_maintenance_cancels_it(self, admin_client, admin_user):
        m = MaintenanceFactory(status=Status.COMPLETED)

        response = admin_client.delete(f"/api/maintenance/{m.pk}/")

        assert response.status_code == 200
        assert response.json()["message"] == "Mantenimiento cancelado"
        m.refresh_from_db()
        assert m.status == Status.CANCELLED
        entry = m.status_history.get()
        assert entry.status == Status.CANCELLED
        assert entry.notes == "Mantenimiento cancelado"
        assert entry.changed_by == admin_user

    def test_delete_cancelled_maintenance_removes_it(self, admin_client):
        m = MaintenanceFactory(status=Status.CANCELLED)
        response = admin_client.delete(f"/api/maintenance/{m.pk}/")
        assert response.status_code == 200
        assert response.json()["message"] == "Mantenimiento eliminado"
        assert not MaintenanceRecord.objects.filter(pk=m.pk).exists()

    def test_patch_reschedules_without_status(self, admin_client):
        m = MaintenanceFactory()
        new_date = (timezone.now() + dt.timedelta(days=10)).replace(microsecond=0)

        response = _json(
            admin_client,
            "patch",
            f"/api/maintenance/{m.pk}/",
            {"scheduledDate": new_date.isoformat()},
        )

        assert response.status_code == 200
        m.refresh_from_db()
        assert m.scheduled_date == new_date
        assert m.status == Status.SCHEDULED

    def test_patch_replaces_technicians_and_type(self, admin_client, technician):
        helper = TechnicianFactory()
        m = MaintenanceFactory(technicians=[helper])

        response = _json(
            admin_client,
            "patch",
            f"/api/maintenance/{m.pk}/",
            {"technicianIds": [technician.pk, helper.pk], "type": "CORRECTIVE"},
        )

        assert response.status_code == 200
        technicians = response.json()["data"]["technicians"]
        roles = {t["technicianId"]: t["role"] for t in technicians}
        assert roles == {technician.pk: "Lead", helper.pk: "Assistant"}
        m.refresh_from_db()
        assert m.type == MaintenanceRecord.Type.CORRECTIVE

    def test_patch_reschedule_onto_busy_technician(self, admin_client, technician):
        day = _future_day()
        at_nine = timezone.make_aware(
            dt.datetime.combine(day, dt.time(9)), timezone.get_current_timezone()
        )
        MaintenanceFactory(scheduled_date=at_nine, technicians=[technician])
        m = MaintenanceFactory(technicians=[technician])

        response = _json(
            admin_client,
            "patch",
            f"/api/maintenance/{m.pk}/",
            {
                "title": "Revisión reprogramada",
                "scheduledDate": (at_nine + dt.timedelta(hours=1)).isoformat(),
            },
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("Técnicos no disponibles")
        m.refresh_from_db()
        assert m.scheduled_date != at_nine + dt.timedelta(hours=1)
        assert m.title != "Revisión reprogramada"

    def test_patch_unknown_type(self, admin_client):
        m = MaintenanceFactory()
        response = _json(
            admin_client, "patch", f"/api/maintenance/{m.pk}/", {"type": "PAINTING"}
        )
        assert response.status_code == 400


@pytest.mark.django_db
class TestStatusEndpoint:
    def test_status_required(self, technician_client):
        m = MaintenanceFactory()
        response = _json(technician_client, "patch", f"/api/maintenance/{m.pk}/status/")
        assert response.status_code == 400
        assert response.json()["error"] == "Estado es requerido"

    def test_technician_completes(self, technician_client, technician):
        m = MaintenanceFactory(status=Status.IN_PROGRESS, technicians=[technician])
        response = _json(
            technician_client,
            "post",
            f"/api/maintenance/{m.pk}/status/",
            {"status": "COMPLETED", "notes": "Paneles limpios"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == Status.COMPLETED
        assert m.status_history.get().changed_by == technician


@pytest.mark.django_db
class TestAssignmentsAndParts:
    def test_assign_and_unassign(self, admin_client, technician):
        m = MaintenanceFactory()

        response = _json(
            admin_client,
            "post",
            f"/api/maintenance/{m.pk}/technicians/",
            {"technicianId": technician.pk},
        )
        assert response.status_code == 201

        listing = admin_client.get(f"/api/maintenance/{m.pk}/technicians/").json()
        assert len(listing["data"]) == 1

        response = admin_client.delete(
            f"/api/maintenance/{m.pk}/technicians/{technician.pk}/"
        )
        assert response.status_code == 200
        assert not m.assignments.exists()

    def test_assign_requires_technician(self, admin_client):
        m = MaintenanceFactory()
        response = _json(admin_client, "post", f"/api/maintenance/{m.pk}/technicians/")
        assert response.status_code == 400

    def test_add_part_over_stock(self, admin_client):
        m = MaintenanceFactory()
        item = InventoryItemFactory(quantity=1)
        response = _json(
            admin_client,
            "post",
            f"/api/maintenance/{m.pk}/parts/",
            {"inventoryItemId": item.pk, "quantity": 4},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Inventario insuficiente"


@pytest.mark.django_db
class TestAvailabilityCalendarDashboard:
    def test_date_required(self, admin_client):
        response = admin_client.get("/api/maintenance/availability/")
        assert response.status_code == 400
        assert response.json()["error"] == "Fecha es requerida"

    def test_detailed_availability(self, admin_client):
        tech = TechnicianFactory()
        day = _future_day()
        response = admin_client.get(f"/api/maintenance/availability/?date={day}")
        data = response.json()["data"]
        assert data["technicians"] == [{"id": tech.pk, "name": tech.display_name}]
        assert len(data["hourlyAvailability"]) == 12
        assert "availableTechnicians" in data["hourlyAvailability"][0]

    def test_calendar_range(self, admin_client):
        day = _future_day(2)
        m = MaintenanceFactory(
            scheduled_date=timezone.make_aware(
                dt.datetime.combine(day, dt.time(9)), timezone.get_current_timezone()
            )
        )
        response = admin_client.get(
            f"/api/maintenance/calendar/?start={day}&end={day + dt.timedelta(days=1)}"
        )
        assert response.status_code == 200
        assert [e["id"] for e in response.json()["data"]] == [m.pk]

    def test_dashboard(self, admin_client):
        MaintenanceFactory(status=Status.PENDING_APPROVAL)
        data = admin_client.get("/api/maintenance/dashboard/").json()["data"]
        assert data["pendingApproval"] == 1
        assert isinstance(data["upcoming"], list)
