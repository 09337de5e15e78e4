"""Tests for the Growatt sync job, its Celery tasks and the cron endpoint."""

import datetime as dt
from decimal import Decimal

import pytest

from django.utils import timezone

from growatt import sync, tasks
from growatt.models import GrowattDataCache
from main.factories import ClientFactory, GrowattCacheFactory


def test_decimal_parsing():
    assert sync._decimal("12.5 kWh") == Decimal("12.5")
    assert sync._decimal("1,234.5") == Decimal("1234.5")
    assert sync._decimal(3) == Decimal("3")
    assert sync._decimal("N/A") is None
    assert sync._decimal(None) is None


@pytest.mark.django_db
class TestSyncClient:
    def test_success_writes_fresh_row(self, mock_growatt):
        customer = ClientFactory(with_growatt=True)
        mock_growatt.add_account(
            customer.growatt_username,
            "growatt-pass",
            plant_id="P-77",
            today_energy=21.4,
            month_energy=510.0,
        )

        assert sync.sync_client(customer) is None

        row = GrowattDataCache.objects.get(client=customer)
        assert row.plant_id == "P-77"
        assert row.daily_generation == Decimal("21.400")
        assert row.monthly_generation == Decimal("510.000")
        assert row.is_stale is False
        assert row.error_count == 0
        assert row.expires_at - row.cached_at == dt.timedelta(hours=24)

    def test_success_clears_previous_errors(self, mock_growatt):
        row = GrowattCacheFactory(is_stale=True, error_count=3, fetch_error="boom")
        mock_growatt.add_account(row.client.growatt_username, "growatt-pass")

        sync.sync_client(row.client)

        row.refresh_from_db()
        assert row.error_count == 0
        assert row.fetch_error is None
        assert row.is_stale is False

    def test_failure_without_row_creates_stale_row(self, mock_growatt):
        customer = ClientFactory(with_growatt=True)

        error = sync.sync_client(customer)

        assert error
        row = GrowattDataCache.objects.get(client=customer)
        assert row.is_stale is True
        assert row.error_count == 1
        assert row.fetch_error == error

    def test_failure_keeps_last_numbers(self, mock_growatt):
        row = GrowattCacheFactory(error_count=1)
        mock_growatt.add_account(row.client.growatt_username, "growatt-pass")
        mock_growatt.fail_plant_detail = True

        sync.sync_client(row.client)

        row.refresh_from_db()
        assert row.is_stale is True
        assert row.error_count == 2
        assert row.daily_generation == Decimal("18.500")


@pytest.mark.django_db
class TestSyncAll:
    def test_counts_success_and_failure(self, mock_growatt):
        good = ClientFactory(with_growatt=True)
        bad = ClientFactory(with_growatt=True)
        ClientFactory()
        ClientFactory(with_growatt=True, is_active=False)
        mock_growatt.add_account(good.growatt_username, "growatt-pass")

        results = sync.sync_all(delay=0)

        assert results["total"] == 2
        assert results["success"] == 1
        assert results["failed"] == 1
        assert results["errors"][0]["clientId"] == bad.pk
        assert mock_growatt.login_calls == 2

    def test_celery_tasks(self, mock_growatt):
        GrowattCacheFactory(
            expires_at=timezone.now() - dt.timedelta(hours=1), is_stale=True
        )
        assert tasks.cleanup_growatt_cache.apply().get() == {"deleted": 1}

        customer = ClientFactory(with_growatt=True)
        mock_growatt.add_account(customer.growatt_username, "growatt-pass")
        assert tasks.sync_growatt_data.apply().get()["success"] == 1


@pytest.mark.django_db
class TestCronEndpoint:
    def test_open_when_no_secret(self, client, mock_growatt):
        response = client.post("/api/growatt/cron/sync/")
        assert response.status_code == 200
        assert response.json()["results"]["total"] == 0

    def test_secret_required(self, client, settings, mock_growatt):
        settings.CRON_SECRET = "s3cret"

        assert client.get("/api/growatt/cron/sync/").status_code == 401
        assert (
            client.get(
                "/api/growatt/cron/sync/", HTTP_AUTHORIZATION="Bearer wrong"
            ).status_code
            == 401
        )
        response = client.get(
            "/api/growatt/cron/sync/", HTTP_AUTHORIZATION="Bearer s3cret"
        )
        assert response.status_code == 200
