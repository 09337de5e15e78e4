"""
Tests for reading the Growatt cache.

Freshness is recomputed on every read, so most of these freeze the clock
and check staleness and age against ``cached_at`` and ``expires_at``.
"""

import datetime as dt

import pytest
from freezegun import freeze_time

from django.utils import timezone

from growatt import cache
from growatt.models import GrowattDataCache
from main.factories import GrowattCacheFactory

NOW = dt.datetime(2030, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


class TestFreshnessRules:
    def test_age_is_whole_minutes(self):
        assert cache.cache_age_minutes(NOW - dt.timedelta(minutes=5, seconds=59), NOW) == 5

    def test_expired_is_stale(self):
        assert cache.is_stale(False, NOW - dt.timedelta(seconds=1), NOW)

    def test_flagged_is_stale_before_expiry(self):
        assert cache.is_stale(True, NOW + dt.timedelta(hours=1), NOW)

    def test_unflagged_unexpired_is_fresh(self):
        assert not cache.is_stale(False, NOW + dt.timedelta(hours=1), NOW)


@pytest.mark.django_db
class TestGetCached:
    def test_old_expired_row_is_stale(self):
        """Cached 130 minutes ago and expired 10 minutes ago."""
        row = GrowattCacheFactory(
            cached_at=NOW - dt.timedelta(minutes=130),
            expires_at=NOW - dt.timedelta(minutes=10),
        )
        with freeze_time(NOW):
            data = cache.get_cached(row.client_id)

        assert data.is_cached is True
        assert data.is_stale is True
        assert data.cache_age == 130

    def test_recent_row_is_fresh(self):
        row = GrowattCacheFactory(
            cached_at=NOW - dt.timedelta(minutes=5),
            expires_at=NOW + dt.timedelta(minutes=1435),
        )
        with freeze_time(NOW):
            data = cache.get_cached(row.client_id)

        assert data.is_stale is False
        assert data.cache_age == 5
        assert data.daily_generation == 18.5

    def test_missing_row(self):
        assert cache.get_cached(424242) is None

    def test_as_dict_keys(self):
        row = GrowattCacheFactory()
        payload = cache.get_cached(row.client_id).as_dict()
        assert payload["plantId"] == row.plant_id
        assert payload["isCached"] is True
        assert payload["revenue"] == 0.0
        assert payload["lastUpdate"] is None

    def test_bulk(self):
        first, second = GrowattCacheFactory(), GrowattCacheFactory()
        result = cache.get_bulk_cached([first.client_id, second.client_id, 999999])
        assert set(result) == {first.client_id, second.client_id}
        assert cache.get_bulk_cached([]) == {}


@pytest.mark.django_db
class TestMaintenanceOperations:
    def test_invalidate_flags_stale(self):
        row = GrowattCacheFactory()
        assert cache.invalidate(row.client_id) is True
        row.refresh_from_db()
        assert row.is_stale is True
        assert cache.invalidate(424242) is False

    def test_delete(self):
        row = GrowattCacheFactory()
        assert cache.delete_cache(row.client_id) is True
        assert cache.delete_cache(row.client_id) is False

    def test_cleanup_only_removes_expired_and_stale(self):
        past = timezone.now() - dt.timedelta(hours=1)
        doomed = GrowattCacheFactory(expires_at=past, is_stale=True)
        GrowattCacheFactory(expires_at=past, is_stale=False)
        GrowattCacheFactory(is_stale=True)

        assert cache.cleanup_expired() == 1
        assert not GrowattDataCache.objects.filter(pk=doomed.pk).exists()
        assert GrowattDataCache.objects.count() == 2

    def test_statistics(self):
        past = timezone.now() - dt.timedelta(hours=1)
        GrowattCacheFactory()
        GrowattCacheFactory(expires_at=past)
        GrowattCacheFactory(is_stale=True, error_count=2)
        GrowattCacheFactory()

        stats = cache.get_cache_statistics()

        assert stats == {
            "total": 4,
            "fresh": 2,
            "stale": 2,
            "withErrors": 1,
            "healthPercent": 50,
        }

    def test_statistics_empty(self):
        assert cache.get_cache_statistics()["healthPercent"] == 0
