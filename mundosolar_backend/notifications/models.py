from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class Notification(models.Model):
    """In-app notification for a staff user or a portal client."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="notifications",
    )
    client = models.ForeignKey(
        "main.Client",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="notifications",
    )
    type = models.CharField(max_length=60)
    title = models.CharField(max_length=200)
    message = models.TextField()
    data = models.JSONField(default=dict, blank=True)
    read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "read"]),
            models.Index(fields=["client", "read"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(user__isnull=False) | Q(client__isnull=False),
                name="notification_has_recipient",
            )
        ]

    def __str__(self) -> str:
        return f"{self.type}: {self.title}"

    def mark_read(self, save: bool = True) -> None:
        if self.read:
            return
        self.read = True
        self.read_at = timezone.now()
        if save:
            self.save(update_fields=["read", "read_at"])
