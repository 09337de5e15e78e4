"""Write side of the Growatt cache: pull every client's plant snapshot."""

from __future__ import annotations

import datetime as dt
import logging
import re
import time
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from main.models import Client

from .client import GrowattApi, GrowattApiError
from .models import GrowattDataCache

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

FETCH_FAILED = "Failed to fetch data from Growatt API"


def _decimal(value) -> Optional[Decimal]:
    """Growatt mixes numbers and strings like ``"12.5 kWh"``."""
    if value in (None, ""):
        return None
    match = _NUMBER_RE.search(str(value).replace(",", ""))
    if not match:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


def _ttl() -> dt.timedelta:
    return dt.timedelta(hours=getattr(settings, "GROWATT_CACHE_TTL_HOURS", 24))


def clients_with_credentials():
    return (
        Client.objects.filter(is_active=True)
        .exclude(growatt_username__isnull=True)
        .exclude(growatt_username="")
        .exclude(growatt_password__isnull=True)
        .exclude(growatt_password="")
        .order_by("id")
    )


def fetch_plant_snapshot(client: Client, api: Optional[GrowattApi] = None) -> dict:
    """Log in with the client's account and read its first plant."""
    api = api or GrowattApi()
    api.login(client.growatt_username, client.growatt_password)
    plants = api.get_plant_list()
    if not plants:
        raise GrowattApiError(f"No plants found for client {client.pk}")
    plant = plants[0]
    details = api.get_plant_data(plant["plantId"]) if plant.get("plantId") else {}
    detail_data = details.get("data") if isinstance(details.get("data"), dict) else details

    return {
        "plant_id": plant.get("plantId") or "",
        "plant_name": plant.get("plantName") or "",
        "daily_generation": _decimal(
            detail_data.get("todayEnergy", plant.get("todayEnergy"))
        ),
        "monthly_generation": _decimal(detail_data.get("monthEnergy")),
        "yearly_generation": _decimal(detail_data.get("yearEnergy")),
        "total_generation": _decimal(
            detail_data.get("totalEnergy", plant.get("totalEnergy"))
        ),
        "current_power": _decimal(
            detail_data.get("currentPower", plant.get("currentPower"))
        ),
        "co2_reduction": _decimal(
            detail_data.get("co2Reduction", plant.get("co2Saved"))
        ),
        "revenue": _decimal(detail_data.get("revenue")),
        "status": str(detail_data.get("status") or "online"),
    }


def store_snapshot(client: Client, snapshot: dict, now=None) -> GrowattDataCache:
    now = now or timezone.now()
    row, _ = GrowattDataCache.objects.update_or_create(
        client=client,
        defaults={
            **snapshot,
            "last_update_from_growatt": now,
            "cached_at": now,
            "expires_at": now + _ttl(),
            "is_stale": False,
            "error_count": 0,
            "fetch_error": None,
            "last_error_at": None,
        },
    )
    return row


def store_failure(client: Client, error: str, now=None) -> GrowattDataCache:
    """Keep the last good numbers, flag them stale and count the failure."""
    now = now or timezone.now()
    with transaction.atomic():
        row, created = GrowattDataCache.objects.select_for_update().get_or_create(
            client=client,
            defaults={
                "cached_at": now,
                "expires_at": now + _ttl(),
                "is_stale": True,
                "fetch_error": error,
                "error_count": 1,
                "last_error_at": now,
            },
        )
        if not created:
            GrowattDataCache.objects.filter(pk=row.pk).update(
                is_stale=True,
                fetch_error=error,
                error_count=F("error_count") + 1,
                last_error_at=now,
                expires_at=now + _ttl(),
            )
            row.refresh_from_db()
    return row


def sync_client(client: Client, api: Optional[GrowattApi] = None) -> Optional[str]:
    """Refresh one client's cache. Returns the error message on failure."""
    try:
        snapshot = fetch_plant_snapshot(client, api=api)
    except GrowattApiError as exc:
        logger.warning("Growatt sync failed for client %s: %s", client.pk, exc)
        error = str(exc) or FETCH_FAILED
        store_failure(client, error)
        return error
    store_snapshot(client, snapshot)
    return None


def sync_all(delay: Optional[float] = None) -> dict:
    """
    Refresh the cache of every active client with Growatt credentials.

    Clients are processed one at a time, ``delay`` seconds apart, and one
    failing client never stops the run.
    """
    if delay is None:
        delay = getattr(settings, "GROWATT_SYNC_DELAY_SECONDS", 2)

    clients = list(clients_with_credentials())
    results = {"total": len(clients), "success": 0, "failed": 0, "errors": []}
    logger.info("Starting Growatt data sync for %s clients", len(clients))

    for index, client in enumerate(clients):
        try:
            error = sync_client(client)
        except Exception as exc:
            logger.exception("Unexpected error syncing client %s", client.pk)
            error = str(exc) or FETCH_FAILED
            store_failure(client, error)
        if error is None:
            results["success"] += 1
        else:
            results["failed"] += 1
            results["errors"].append({"clientId": client.pk, "error": error})
        if delay and index < len(clients) - 1:
            time.sleep(delay)

    logger.info(
        "Growatt sync complete: %s success, %s failed",
        results["success"],
        results["failed"],
    )
    return results
