import datetime as dt

import pytest

from django.utils import timezone

from main.factories import MaintenanceFactory, TechnicianFactory
from maintenance.models import MaintenanceRecord


def _local(day, hour):
    return timezone.make_aware(
        dt.datetime.combine(day, dt.time(hour)), timezone.get_current_timezone()
    )


@pytest.mark.django_db
class TestTechniciansApi:
    def test_lists_active_technicians(self, admin_client, technician):
        TechnicianFactory(inactive=True)
        body = admin_client.get("/api/technicians/").json()
        assert [t["id"] for t in body["data"]] == [technician.pk]

    def test_availability_at(self, admin_client, technician):
        day = timezone.localdate() + dt.timedelta(days=4)
        m = MaintenanceFactory(scheduled_date=_local(day, 9), technicians=[technician])

        busy = admin_client.get(
            f"/api/technicians/{technician.pk}/availability/",
            {"at": _local(day, 11).isoformat()},
        ).json()["data"]
        free = admin_client.get(
            f"/api/technicians/{technician.pk}/availability/",
            {"at": _local(day, 12).isoformat()},
        ).json()["data"]

        assert busy["isAvailable"] is False
        assert busy["conflictingMaintenance"]["id"] == m.pk
        assert free["isAvailable"] is True

    def test_unknown_technician(self, admin_client):
        response = admin_client.get(
            "/api/technicians/424242/availability/", {"at": "2030-01-01T10:00:00"}
        )
        assert response.status_code == 404


@pytest.mark.django_db
class TestMyMaintenances:
    def test_only_assigned_and_open(self, technician_client, technician):
        today_job = MaintenanceFactory(
            scheduled_date=_local(timezone.localdate(), 23), technicians=[technician]
        )
        MaintenanceFactory(
            status=MaintenanceRecord.Status.COMPLETED, technicians=[technician]
        )
        MaintenanceFactory()

        data = technician_client.get("/api/technicians/me/maintenances/").json()["data"]

        assert [m["id"] for m in data["maintenances"]] == [today_job.pk]
        assert data["todayCount"] == 1

    def test_all_includes_finished(self, technician_client, technician):
        MaintenanceFactory(
            status=MaintenanceRecord.Status.COMPLETED, technicians=[technician]
        )
        data = technician_client.get(
            "/api/technicians/me/maintenances/?all=1"
        ).json()["data"]
        assert len(data["maintenances"]) == 1
