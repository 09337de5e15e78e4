"""
Technician availability.

Every non-cancelled, non-completed maintenance blocks each assigned
technician for ``BLOCKING_HOURS`` starting at the maintenance's local hour
(2h of work plus 1h of travel). Working slots run hourly from 07:00 to 18:00
inclusive. A client-facing slot is open while at least one active
technician is free; the admin view lists every technician per slot.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Optional

from django.contrib.auth import get_user_model
from django.utils import timezone

from main.models import UserRole

from .models import MaintenanceRecord

MAINTENANCE_DURATION_HOURS = 2
TRAVEL_BUFFER_HOURS = 1
BLOCKING_HOURS = MAINTENANCE_DURATION_HOURS + TRAVEL_BUFFER_HOURS

WORK_START_HOUR = 7
WORK_END_HOUR = 18

NO_TECHNICIANS_MESSAGE = "No hay técnicos registrados"


@dataclass
class _Booking:
    maintenance_id: int
    title: str
    scheduled_date: dt.datetime
    hour: int
    technician_ids: set = field(default_factory=set)


def blocks_hour(
    scheduled_hour: int, hour: int, blocking_hours: int = BLOCKING_HOURS
) -> bool:
    """True when a job starting at ``scheduled_hour`` occupies slot ``hour``."""
    return scheduled_hour <= hour < scheduled_hour + blocking_hours


def slot_label(hour: int) -> dict:
    hour12 = hour % 12 or 12
    period = "AM" if hour < 12 else "PM"
    return {
        "hour": hour,
        "hour12": f"{hour12:02d}",
        "period": period,
        "displayTime": f"{hour12:02d}:00 {period}",
    }


def working_hours() -> range:
    return range(WORK_START_HOUR, WORK_END_HOUR + 1)


def day_bounds(day: dt.date) -> tuple[dt.datetime, dt.datetime]:
    """Start of ``day`` and of the next day, in the active timezone."""
    tz = timezone.get_current_timezone()
    start = timezone.make_aware(dt.datetime.combine(day, dt.time.min), tz)
    end = timezone.make_aware(
        dt.datetime.combine(day + dt.timedelta(days=1), dt.time.min), tz
    )
    return start, end


def active_technicians():
    User = get_user_model()
    return User.objects.filter(role=UserRole.TECHNICIAN, is_active=True).order_by(
        "full_name", "id"
    )


def _bookings_on(day: dt.date, exclude_maintenance_id=None) -> list[_Booking]:
    start, end = day_bounds(day)
    qs = (
        MaintenanceRecord.objects.filter(
            scheduled_date__gte=start,
            scheduled_date__lt=end,
        )
        .exclude(status__in=MaintenanceRecord.INACTIVE_STATUSES)
        .prefetch_related("assignments")
    )
    if exclude_maintenance_id:
        qs = qs.exclude(pk=exclude_maintenance_id)

    bookings = []
    for m in qs:
        bookings.append(
            _Booking(
                maintenance_id=m.pk,
                title=m.title,
                scheduled_date=m.scheduled_date,
                hour=timezone.localtime(m.scheduled_date).hour,
                technician_ids={a.technician_id for a in m.assignments.all()},
            )
        )
    return bookings


def _conflict_for(
    technician_id, hour: int, bookings: list[_Booking]
) -> Optional[_Booking]:
    for booking in bookings:
        if technician_id in booking.technician_ids and blocks_hour(booking.hour, hour):
            return booking
    return None


def get_hourly_availability(
    day: dt.date, exclude_maintenance_id=None, detailed: bool = False
) -> list[dict]:
    """
    Availability for every working slot of ``day``.

    Returns an empty list when no active technician exists. With
    ``detailed`` each slot also carries ``availableTechnicians``, one entry
    per technician with the conflicting maintenance when busy.
    """
    technicians = list(active_technicians())
    if not technicians:
        return []

    bookings = _bookings_on(day, exclude_maintenance_id)
    slots = []
    for hour in working_hours():
        per_tech = []
        free = 0
        for tech in technicians:
            conflict = _conflict_for(tech.pk, hour, bookings)
            if conflict is None:
                free += 1
            if detailed:
                per_tech.append(
                    {
                        "technicianId": tech.pk,
                        "technicianName": tech.display_name,
                        "isAvailable": conflict is None,
                        "conflictingMaintenance": (
                            {
                                "id": conflict.maintenance_id,
                                "title": conflict.title,
                                "scheduledDate": conflict.scheduled_date.isoformat(),
                            }
                            if conflict
                            else None
                        ),
                    }
                )

        all_busy = free == 0
        slot = slot_label(hour)
        slot["isAvailable"] = not all_busy
        if detailed:
            slot["availableTechnicians"] = per_tech
        slot["allBusy"] = all_busy
        slots.append(slot)
    return slots


def get_day_availability(
    day: dt.date, exclude_maintenance_id=None, detailed: bool = False
) -> dict:
    """Response body for the availability endpoints."""
    technicians = list(active_technicians())
    data = {"date": day.isoformat()}
    if not technicians:
        data["hourlyAvailability"] = []
        data["message"] = NO_TECHNICIANS_MESSAGE
        if detailed:
            data["technicians"] = []
        return data

    data["hourlyAvailability"] = get_hourly_availability(
        day, exclude_maintenance_id=exclude_maintenance_id, detailed=detailed
    )
    if detailed:
        data["technicians"] = [
            {"id": t.pk, "name": t.display_name} for t in technicians
        ]
        data["maintenanceCount"] = len(_bookings_on(day, exclude_maintenance_id))
    return data


def find_conflict(
    technician_id, scheduled_at: dt.datetime, exclude_maintenance_id=None
) -> Optional[_Booking]:
    local = timezone.localtime(scheduled_at)
    bookings = _bookings_on(local.date(), exclude_maintenance_id)
    return _conflict_for(technician_id, local.hour, bookings)


def is_technician_available(
    technician_id, scheduled_at: dt.datetime, exclude_maintenance_id=None
) -> bool:
    return find_conflict(technician_id, scheduled_at, exclude_maintenance_id) is None
