from __future__ import annotations

from django.conf import settings
from django.db import models

User = settings.AUTH_USER_MODEL


class MaintenanceRecord(models.Model):
    class Status(models.TextChoices):
        PENDING_APPROVAL = "PENDING_APPROVAL", "Pending approval"
        SCHEDULED = "SCHEDULED", "Scheduled"
        IN_PROGRESS = "IN_PROGRESS", "In progress"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    class Priority(models.TextChoices):
        SCHEDULED = "SCHEDULED", "Scheduled"
        URGENT = "URGENT", "Urgent"

    class Type(models.TextChoices):
        PREVENTIVE = "PREVENTIVE", "Preventive"
        CORRECTIVE = "CORRECTIVE", "Corrective"
        WARRANTY = "WARRANTY", "Warranty"
        CLEANING = "CLEANING", "Cleaning"
        INSPECTION = "INSPECTION", "Inspection"

    # Statuses that no longer hold a technician's time
    INACTIVE_STATUSES = (Status.CANCELLED, Status.COMPLETED)

    client = models.ForeignKey(
        "main.Client", on_delete=models.CASCADE, related_name="maintenances"
    )
    solar_system = models.ForeignKey(
        "main.SolarSystem",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="maintenances",
    )
    type = models.CharField(max_length=16, choices=Type.choices)
    priority = models.CharField(
        max_length=16, choices=Priority.choices, default=Priority.SCHEDULED
    )
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING_APPROVAL
    )
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")

    requested_date = models.DateTimeField(null=True, blank=True)
    scheduled_date = models.DateTimeField(null=True, blank=True)
    started_date = models.DateTimeField(null=True, blank=True)
    completed_date = models.DateTimeField(null=True, blank=True)
    next_scheduled_date = models.DateTimeField(null=True, blank=True)

    work_performed = models.TextField(blank=True, default="")
    cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    labor_hours = models.DecimalField(
        max_digits=6, decimal_places=2, null=True, blank=True
    )

    technicians = models.ManyToManyField(
        User,
        through="MaintenanceTechnician",
        related_name="assigned_maintenances",
        blank=True,
    )
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="maintenances_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-scheduled_date", "-created_at"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["scheduled_date"]),
            models.Index(fields=["client", "status"]),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.get_status_display()})"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.INACTIVE_STATUSES


class MaintenanceStatusHistory(models.Model):
    """Append-only trail of status transitions."""

    maintenance = models.ForeignKey(
        MaintenanceRecord, on_delete=models.CASCADE, related_name="status_history"
    )
    status = models.CharField(max_length=20, choices=MaintenanceRecord.Status.choices)
    changed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="maintenance_status_changes",
    )
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return f"{self.maintenance_id} -> {self.status}"


class MaintenanceTechnician(models.Model):
    class Role(models.TextChoices):
        LEAD = "Lead", "Lead"
        ASSISTANT = "Assistant", "Assistant"

    maintenance = models.ForeignKey(
        MaintenanceRecord, on_delete=models.CASCADE, related_name="assignments"
    )
    technician = models.ForeignKey(
        User, on_delete=models.CASCADE, related_name="maintenance_assignments"
    )
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.LEAD)
    assigned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["assigned_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["maintenance", "technician"],
                name="uniq_maintenance_technician",
            )
        ]

    def __str__(self) -> str:
        return f"{self.technician_id} on {self.maintenance_id} ({self.role})"


class MaintenancePart(models.Model):
    maintenance = models.ForeignKey(
        MaintenanceRecord, on_delete=models.CASCADE, related_name="parts"
    )
    inventory_item = models.ForeignKey(
        "main.InventoryItem", on_delete=models.PROTECT, related_name="maintenance_uses"
    )
    quantity = models.PositiveIntegerField(default=1)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.inventory_item_id} x{self.quantity}"
