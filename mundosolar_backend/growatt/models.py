from __future__ import annotations

from django.db import models


class GrowattDataCache(models.Model):
    """
    Last known Growatt plant snapshot for a client.

    Rows are written by the scheduled sync only. Request handlers read them
    (see growatt.cache) and may flag them stale or delete them, but never
    refresh them. Freshness is derived from ``expires_at`` and ``is_stale``
    at read time.
    """

    client = models.OneToOneField(
        "main.Client", on_delete=models.CASCADE, related_name="growatt_cache"
    )
    plant_id = models.CharField(max_length=60, blank=True, default="")
    plant_name = models.CharField(max_length=200, blank=True, default="")

    daily_generation = models.DecimalField(
        max_digits=14, decimal_places=3, null=True, blank=True
    )
    monthly_generation = models.DecimalField(
        max_digits=14, decimal_places=3, null=True, blank=True
    )
    yearly_generation = models.DecimalField(
        max_digits=14, decimal_places=3, null=True, blank=True
    )
    total_generation = models.DecimalField(
        max_digits=16, decimal_places=3, null=True, blank=True
    )
    current_power = models.DecimalField(
        max_digits=12, decimal_places=3, null=True, blank=True
    )
    co2_reduction = models.DecimalField(
        max_digits=14, decimal_places=3, null=True, blank=True
    )
    revenue = models.DecimalField(
        max_digits=14, decimal_places=2, null=True, blank=True
    )
    status = models.CharField(max_length=30, blank=True, default="offline")
    last_update_from_growatt = models.DateTimeField(null=True, blank=True)

    cached_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    is_stale = models.BooleanField(default=False)

    fetch_error = models.TextField(blank=True, null=True)
    error_count = models.PositiveIntegerField(default=0)
    last_error_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["expires_at", "is_stale"]),
        ]

    def __str__(self) -> str:
        return f"Growatt cache for client {self.client_id}"
