"""
Read side of the Growatt cache.

Dashboards read cached plant snapshots from here instead of calling
Growatt. Freshness is computed on every read from ``cached_at``,
``expires_at`` and the stored ``is_stale`` flag. Database errors are logged
and read as "no data" so a broken cache never breaks a page.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from django.db import DatabaseError
from django.db.models import Q
from django.utils import timezone

from mundosolar_backend.db import retry_on_db_error

from .models import GrowattDataCache

logger = logging.getLogger(__name__)

_METRICS = (
    "daily_generation",
    "monthly_generation",
    "yearly_generation",
    "total_generation",
    "current_power",
    "co2_reduction",
    "revenue",
)


@dataclass(frozen=True)
class CachedGrowattData:
    plant_id: Optional[str]
    plant_name: Optional[str]
    daily_generation: float
    monthly_generation: float
    yearly_generation: float
    total_generation: float
    current_power: float
    co2_reduction: float
    revenue: float
    status: Optional[str]
    last_update: Optional[dt.datetime]
    is_cached: bool
    is_stale: bool
    cache_age: int

    def as_dict(self) -> dict:
        data = asdict(self)
        return {
            "plantId": data["plant_id"],
            "plantName": data["plant_name"],
            "dailyGeneration": data["daily_generation"],
            "monthlyGeneration": data["monthly_generation"],
            "yearlyGeneration": data["yearly_generation"],
            "totalGeneration": data["total_generation"],
            "currentPower": data["current_power"],
            "co2Reduction": data["co2_reduction"],
            "revenue": data["revenue"],
            "status": data["status"],
            "lastUpdate": self.last_update.isoformat() if self.last_update else None,
            "isCached": data["is_cached"],
            "isStale": data["is_stale"],
            "cacheAge": data["cache_age"],
        }


def cache_age_minutes(cached_at: dt.datetime, now: dt.datetime) -> int:
    return int((now - cached_at).total_seconds() // 60)


def is_stale(stored_is_stale: bool, expires_at: dt.datetime, now: dt.datetime) -> bool:
    return bool(stored_is_stale) or now > expires_at


def to_cached_data(row: GrowattDataCache, now: Optional[dt.datetime] = None) -> CachedGrowattData:
    now = now or timezone.now()
    metrics = {name: float(getattr(row, name) or 0) for name in _METRICS}
    return CachedGrowattData(
        plant_id=row.plant_id or None,
        plant_name=row.plant_name or None,
        status=row.status or None,
        last_update=row.last_update_from_growatt,
        is_cached=True,
        is_stale=is_stale(row.is_stale, row.expires_at, now),
        cache_age=cache_age_minutes(row.cached_at, now),
        **metrics,
    )


@retry_on_db_error
def _fetch_one(client_id):
    return GrowattDataCache.objects.filter(client_id=client_id).first()


@retry_on_db_error
def _fetch_many(client_ids):
    return list(GrowattDataCache.objects.filter(client_id__in=client_ids))


def get_cached(client_id) -> Optional[CachedGrowattData]:
    try:
        row = _fetch_one(client_id)
    except DatabaseError as exc:
        logger.error("Error reading Growatt cache for client %s: %s", client_id, exc)
        return None
    if row is None:
        return None
    return to_cached_data(row)


def get_bulk_cached(client_ids: Iterable) -> dict:
    ids = list(client_ids)
    if not ids:
        return {}
    try:
        rows = _fetch_many(ids)
    except DatabaseError as exc:
        logger.error("Error reading bulk Growatt cache: %s", exc)
        return {}
    now = timezone.now()
    return {row.client_id: to_cached_data(row, now) for row in rows}


def invalidate(client_id) -> bool:
    try:
        updated = GrowattDataCache.objects.filter(client_id=client_id).update(
            is_stale=True
        )
    except DatabaseError as exc:
        logger.error("Error invalidating Growatt cache for client %s: %s", client_id, exc)
        return False
    return bool(updated)


def delete_cache(client_id) -> bool:
    try:
        deleted, _ = GrowattDataCache.objects.filter(client_id=client_id).delete()
    except DatabaseError as exc:
        logger.error("Error deleting Growatt cache for client %s: %s", client_id, exc)
        return False
    return bool(deleted)


def cleanup_expired() -> int:
    """Delete rows that are both expired and flagged stale."""
    try:
        deleted, _ = GrowattDataCache.objects.filter(
            expires_at__lt=timezone.now(), is_stale=True
        ).delete()
    except DatabaseError as exc:
        logger.error("Error cleaning up Growatt cache: %s", exc)
        return 0
    return deleted


def get_cache_statistics() -> dict:
    now = timezone.now()
    try:
        total = GrowattDataCache.objects.count()
        stale = GrowattDataCache.objects.filter(
            Q(is_stale=True) | Q(expires_at__lt=now)
        ).count()
        with_errors = GrowattDataCache.objects.filter(error_count__gt=0).count()
    except DatabaseError as exc:
        logger.error("Error reading Growatt cache statistics: %s", exc)
        total = stale = with_errors = 0
    fresh = total - stale
    return {
        "total": total,
        "fresh": fresh,
        "stale": stale,
        "withErrors": with_errors,
        "healthPercent": round(fresh * 100 / total) if total else 0,
    }
