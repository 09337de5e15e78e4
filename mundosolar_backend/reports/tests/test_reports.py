import datetime as dt
from datetime import timezone as dt_timezone
from decimal import Decimal

import pytest
from freezegun import freeze_time

from main.factories import (
    ClientFactory,
    MaintenanceFactory,
    OrderFactory,
    SolarSystemFactory,
)
from main.models import Order, OrderStatus, OrderType
from maintenance.models import MaintenanceRecord
from reports import services

Status = MaintenanceRecord.Status


def _at(year, month, day, hour=18):
    return dt.datetime(year, month, day, hour, tzinfo=dt_timezone.utc)


def _order(when, total, status=OrderStatus.COMPLETED, **kwargs):
    order = OrderFactory(subtotal=Decimal(total), status=status, **kwargs)
    Order.objects.filter(pk=order.pk).update(order_date=when)
    return order


@pytest.fixture
def crew_jobs(technician):
    """Four jobs for one technician, three of them in March 2025."""
    on_time = MaintenanceFactory(
        technicians=[technician],
        status=Status.COMPLETED,
        scheduled_date=_at(2025, 3, 10, 15),
        started_date=_at(2025, 3, 10, 15),
        completed_date=_at(2025, 3, 10, 19),
    )
    MaintenanceFactory(
        technicians=[technician],
        status=Status.IN_PROGRESS,
        scheduled_date=_at(2025, 3, 12),
        started_date=_at(2025, 3, 12),
    )
    late = MaintenanceFactory(
        technicians=[technician],
        status=Status.COMPLETED,
        type=MaintenanceRecord.Type.CORRECTIVE,
        scheduled_date=_at(2025, 3, 20),
        started_date=_at(2025, 3, 25, 16),
        completed_date=_at(2025, 3, 25, 18),
    )
    MaintenanceFactory(
        technicians=[technician],
        scheduled_date=_at(2025, 4, 5),
    )
    return on_time, late


@pytest.mark.django_db
class TestSalesReport:
    def test_monthly_series_skips_cancelled_and_other_years(self):
        _order(_at(2025, 3, 5), "10000.00")
        _order(_at(2025, 3, 20), "5000.00", status=OrderStatus.CONFIRMED)
        _order(_at(2025, 6, 1), "3000.00", order_type=OrderType.INSTALLATION)
        _order(_at(2025, 3, 8), "9999.00", status=OrderStatus.CANCELLED)
        _order(_at(2024, 3, 8), "7000.00")

        report = services.sales_report(2025)

        assert len(report["monthly"]) == 12
        march = report["monthly"][2]
        assert march["label"] == "Mar"
        assert march["orders"] == 2
        assert march["revenue"] == 15000.0
        assert march["averageOrderValue"] == 7500.0
        assert report["monthly"][0]["orders"] == 0
        assert report["totals"]["orders"] == 3
        assert report["totals"]["revenue"] == 18000.0
        assert report["totals"]["outstanding"] == 18000.0
        assert report["byStatus"] == {
            OrderStatus.COMPLETED: 2,
            OrderStatus.CONFIRMED: 1,
        }
        assert report["byType"][OrderType.INSTALLATION] == 1


@pytest.mark.django_db
class TestMaintenanceReport:
    def test_monthly_breakdown(self, crew_jobs):
        MaintenanceFactory(status=Status.CANCELLED, scheduled_date=_at(2025, 3, 28))

        report = services.maintenance_report(2025)

        march = report["monthly"][2]
        assert march == {
            "month": 3,
            "label": "Mar",
            "total": 4,
            "completed": 2,
            "cancelled": 1,
            "pending": 1,
        }
        assert report["monthly"][3]["total"] == 1
        assert report["total"] == 5
        assert report["byType"][MaintenanceRecord.Type.CORRECTIVE] == 1
        assert report["averageCompletionHours"] == 3.0


@pytest.mark.django_db
class TestClientsReport:
    def test_per_client_metrics(self):
        buyer = ClientFactory(state="Jalisco")
        _order(_at(2025, 1, 5), "12000.00", client=buyer)
        _order(_at(2025, 2, 5), "500.00", client=buyer, status=OrderStatus.CANCELLED)
        SolarSystemFactory(client=buyer, capacity_kw=Decimal("5.50"))
        SolarSystemFactory(client=buyer, capacity_kw=Decimal("3.00"))
        MaintenanceFactory(client=buyer)
        ClientFactory(state="", is_active=False)

        report = services.clients_report()

        row = next(c for c in report["clients"] if c["id"] == buyer.pk)
        assert row["orders"] == 1
        assert row["revenue"] == 12000.0
        assert row["systems"] == 2
        assert row["capacityKw"] == 8.5
        assert row["maintenances"] == 1
        assert report["summary"] == {
            "total": 2,
            "active": 1,
            "withSystems": 1,
            "withOrders": 1,
        }
        assert report["byState"] == {"Jalisco": 1, "Sin estado": 1}


@pytest.mark.django_db
class TestTechnicianPerformance:
    def test_rates_inside_window(self, technician, crew_jobs):
        report = services.technician_performance(
            _at(2025, 3, 1, 6), _at(2025, 4, 1, 6)
        )

        (row,) = report["technicians"]
        assert row["id"] == technician.pk
        assert row["totalAssigned"] == 3
        assert row["completed"] == 2
        assert row["inProgress"] == 1
        assert row["completionRate"] == 66.7
        assert row["averageCompletionHours"] == 3.0
        assert row["onTimeRate"] == 50.0
        assert report["summary"]["completionRate"] == 66.7

    def test_endpoint_uses_inclusive_dates(self, admin_client, crew_jobs):
        response = admin_client.get(
            "/api/reports/technician-performance/"
            "?startDate=2025-03-01&endDate=2025-03-10"
        )

        assert response.status_code == 200
        (row,) = response.json()["data"]["technicians"]
        assert row["totalAssigned"] == 1
        assert row["onTimeRate"] == 100.0

    def test_reversed_range(self, admin_client):
        response = admin_client.get(
            "/api/reports/technician-performance/"
            "?startDate=2025-03-10&endDate=2025-03-01"
        )
        assert response.status_code == 400


@pytest.mark.django_db
class TestOverview:
    @freeze_time("2025-06-15 18:00:00")
    def test_year_to_date_and_trend(self, admin_client):
        best = ClientFactory(first_name="Ana", last_name="Ruiz")
        _order(_at(2025, 3, 5), "10000.00", client=best)
        _order(_at(2025, 5, 5), "5000.00", status=OrderStatus.DELIVERED)
        _order(_at(2025, 4, 5), "7000.00", status=OrderStatus.CONFIRMED)
        _order(_at(2024, 8, 5), "5000.00")
        SolarSystemFactory(capacity_kw=Decimal("10.00"))

        response = admin_client.get("/api/reports/")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["year"] == 2025
        assert data["sales"]["revenue"] == 15000.0
        assert data["sales"]["orders"] == 2
        assert data["sales"]["previousYearRevenue"] == 5000.0
        assert data["sales"]["growthPercent"] == 200.0
        assert data["installedCapacityKw"] == 10.0
        assert len(data["trend"]) == 12
        assert data["trend"][0]["label"] == "Jul 2024"
        assert data["trend"][-1]["label"] == "Jun 2025"
        by_label = {t["label"]: t["revenue"] for t in data["trend"]}
        assert by_label["Mar 2025"] == 10000.0
        assert by_label["Ago 2024"] == 5000.0
        assert data["topClients"][0] == {
            "id": best.pk,
            "name": "Ana Ruiz",
            "revenue": 10000.0,
            "orders": 1,
        }

    @freeze_time("2025-06-15 18:00:00")
    def test_no_growth_without_previous_year(self, manager_client):
        _order(_at(2025, 2, 1), "1000.00")
        data = manager_client.get("/api/reports/").json()["data"]
        assert data["sales"]["growthPercent"] is None


@pytest.mark.django_db
class TestReportAccess:
    @pytest.mark.parametrize(
        "url",
        [
            "/api/reports/",
            "/api/reports/sales/",
            "/api/reports/maintenance/",
            "/api/reports/clients/",
            "/api/reports/technician-performance/",
        ],
    )
    def test_sales_role_denied(self, sales_client, url):
        assert sales_client.get(url).status_code == 403

    def test_manager_allowed(self, manager_client):
        response = manager_client.get("/api/reports/sales/?year=2025")
        assert response.status_code == 200
        assert response.json()["data"]["year"] == 2025

    def test_invalid_year(self, admin_client):
        response = admin_client.get("/api/reports/maintenance/?year=3")
        assert response.status_code == 400
        assert response.json()["error"] == "Año inválido"
