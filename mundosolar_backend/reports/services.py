"""
Business reports.

Every report is a read-only aggregate over orders, clients and maintenance
records. Monthly series always have twelve entries so charts can plot them
without filling gaps.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import Count, Q, Sum
from django.db.models.functions import ExtractMonth
from django.utils import timezone

from main.models import ZERO, Client, Order, OrderStatus, SolarSystem, UserRole
from maintenance.models import MaintenanceRecord, MaintenanceTechnician

MaintStatus = MaintenanceRecord.Status

# Orders that count as realised sales
CLOSED_STATUSES = (OrderStatus.COMPLETED, OrderStatus.DELIVERED)

MONTH_LABELS = [
    "Ene",
    "Feb",
    "Mar",
    "Abr",
    "May",
    "Jun",
    "Jul",
    "Ago",
    "Sep",
    "Oct",
    "Nov",
    "Dic",
]

# A completed job counts as on time when it finished within this window
ON_TIME_HOURS = 24


def _f(value) -> float:
    return round(float(value or 0), 2)


def _pct(part, whole) -> float:
    if not whole:
        return 0.0
    return round(float(part) * 100 / float(whole), 1)


def _hours(delta: dt.timedelta) -> float:
    return delta.total_seconds() / 3600


def _year_bounds(year: int):
    tz = timezone.get_current_timezone()
    start = dt.datetime(year, 1, 1, tzinfo=tz)
    return start, dt.datetime(year + 1, 1, 1, tzinfo=tz)


def _counts(qs, field: str) -> dict:
    return {row[field]: row["n"] for row in qs.values(field).annotate(n=Count("id"))}


def sales_report(year: int) -> dict:
    start, end = _year_bounds(year)
    qs = Order.objects.filter(order_date__gte=start, order_date__lt=end).exclude(
        status=OrderStatus.CANCELLED
    )
    rows = (
        qs.annotate(m=ExtractMonth("order_date"))
        .values("m")
        .annotate(n=Count("id"), revenue=Sum("total"))
    )
    by_month = {row["m"]: row for row in rows}

    monthly = []
    for i, label in enumerate(MONTH_LABELS, start=1):
        row = by_month.get(i) or {"n": 0, "revenue": ZERO}
        monthly.append(
            {
                "month": i,
                "label": label,
                "orders": row["n"],
                "revenue": _f(row["revenue"]),
                "averageOrderValue": (
                    _f(row["revenue"] / row["n"]) if row["n"] else 0.0
                ),
            }
        )

    totals = qs.aggregate(
        n=Count("id"),
        revenue=Sum("total"),
        collected=Sum("amount_paid"),
        outstanding=Sum("balance_due"),
    )
    return {
        "year": year,
        "monthly": monthly,
        "totals": {
            "orders": totals["n"],
            "revenue": _f(totals["revenue"]),
            "collected": _f(totals["collected"]),
            "outstanding": _f(totals["outstanding"]),
            "averageOrderValue": (
                _f(totals["revenue"] / totals["n"]) if totals["n"] else 0.0
            ),
        },
        "byStatus": _counts(qs, "status"),
        "byType": _counts(qs, "order_type"),
    }


def maintenance_report(year: int) -> dict:
    start, end = _year_bounds(year)
    qs = MaintenanceRecord.objects.filter(
        scheduled_date__gte=start, scheduled_date__lt=end
    )
    rows = (
        qs.annotate(m=ExtractMonth("scheduled_date"))
        .values("m")
        .annotate(
            total=Count("id"),
            completed=Count("id", filter=Q(status=MaintStatus.COMPLETED)),
            cancelled=Count("id", filter=Q(status=MaintStatus.CANCELLED)),
        )
    )
    by_month = {row["m"]: row for row in rows}

    monthly = []
    for i, label in enumerate(MONTH_LABELS, start=1):
        row = by_month.get(i) or {"total": 0, "completed": 0, "cancelled": 0}
        monthly.append(
            {
                "month": i,
                "label": label,
                "total": row["total"],
                "completed": row["completed"],
                "cancelled": row["cancelled"],
                "pending": row["total"] - row["completed"] - row["cancelled"],
            }
        )

    durations = [
        _hours(completed - started)
        for started, completed in qs.filter(
            status=MaintStatus.COMPLETED,
            started_date__isnull=False,
            completed_date__isnull=False,
        ).values_list("started_date", "completed_date")
    ]
    return {
        "year": year,
        "monthly": monthly,
        "total": qs.count(),
        "byStatus": _counts(qs, "status"),
        "byType": _counts(qs, "type"),
        "byPriority": _counts(qs, "priority"),
        "averageCompletionHours": (
            round(sum(durations) / len(durations), 1) if durations else 0.0
        ),
    }


def clients_report() -> dict:
    clients = (
        Client.objects.annotate(
            order_count=Count(
                "orders",
                filter=~Q(orders__status=OrderStatus.CANCELLED),
                distinct=True,
            ),
            revenue=Sum(
                "orders__total", filter=~Q(orders__status=OrderStatus.CANCELLED)
            ),
            outstanding=Sum(
                "orders__balance_due",
                filter=~Q(orders__status=OrderStatus.CANCELLED),
            ),
        )
        .order_by("last_name", "first_name")
    )
    # Summing over orders and systems in one query would multiply rows
    systems = {
        row["client_id"]: row
        for row in SolarSystem.objects.filter(is_active=True)
        .values("client_id")
        .annotate(n=Count("id"), capacity=Sum("capacity_kw"))
    }
    maint = _counts(MaintenanceRecord.objects.all(), "client_id")

    data = []
    for c in clients:
        sys_row = systems.get(c.pk) or {"n": 0, "capacity": ZERO}
        data.append(
            {
                "id": c.pk,
                "name": c.full_name,
                "city": c.city,
                "state": c.state,
                "isActive": c.is_active,
                "orders": c.order_count,
                "revenue": _f(c.revenue),
                "outstanding": _f(c.outstanding),
                "systems": sys_row["n"],
                "capacityKw": _f(sys_row["capacity"]),
                "maintenances": maint.get(c.pk, 0),
                "createdAt": c.created_at.isoformat(),
            }
        )

    by_state = {}
    for row in Client.objects.values("state").annotate(n=Count("id")):
        key = row["state"] or "Sin estado"
        by_state[key] = by_state.get(key, 0) + row["n"]

    return {
        "clients": data,
        "summary": {
            "total": len(data),
            "active": sum(1 for c in data if c["isActive"]),
            "withSystems": sum(1 for c in data if c["systems"]),
            "withOrders": sum(1 for c in data if c["orders"]),
        },
        "byState": by_state,
    }


def technician_performance(start: dt.datetime, end: dt.datetime) -> dict:
    assignments = (
        MaintenanceTechnician.objects.filter(
            maintenance__scheduled_date__gte=start,
            maintenance__scheduled_date__lt=end,
        )
        .select_related("technician", "maintenance")
        .order_by("technician_id")
    )

    per_tech = {}
    for a in assignments:
        tech = a.technician
        row = per_tech.setdefault(
            tech.pk,
            {
                "id": tech.pk,
                "name": tech.display_name,
                "email": tech.email,
                "isActive": tech.is_active,
                "totalAssigned": 0,
                "completed": 0,
                "inProgress": 0,
                "cancelled": 0,
                "_durations": [],
                "_on_time": 0,
            },
        )
        m = a.maintenance
        row["totalAssigned"] += 1
        if m.status == MaintStatus.IN_PROGRESS:
            row["inProgress"] += 1
        elif m.status == MaintStatus.CANCELLED:
            row["cancelled"] += 1
        elif m.status == MaintStatus.COMPLETED:
            row["completed"] += 1
            if m.started_date and m.completed_date:
                row["_durations"].append(_hours(m.completed_date - m.started_date))
            if m.completed_date and m.scheduled_date and (
                _hours(m.completed_date - m.scheduled_date) <= ON_TIME_HOURS
            ):
                row["_on_time"] += 1

    technicians = []
    for row in per_tech.values():
        durations = row.pop("_durations")
        on_time = row.pop("_on_time")
        row["completionRate"] = _pct(row["completed"], row["totalAssigned"])
        row["averageCompletionHours"] = (
            round(sum(durations) / len(durations), 1) if durations else 0.0
        )
        row["onTimeRate"] = _pct(on_time, row["completed"])
        technicians.append(row)
    technicians.sort(key=lambda r: (-r["completed"], r["name"]))

    total = sum(r["totalAssigned"] for r in technicians)
    completed = sum(r["completed"] for r in technicians)
    return {
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "technicians": technicians,
        "summary": {
            "technicians": len(technicians),
            "totalAssigned": total,
            "completed": completed,
            "completionRate": _pct(completed, total),
        },
    }


def overview(now=None) -> dict:
    now = timezone.localtime(now or timezone.now())
    start, end = _year_bounds(now.year)
    prev_start, _ = _year_bounds(now.year - 1)

    closed = Order.objects.filter(status__in=CLOSED_STATUSES)
    this_year = closed.filter(order_date__gte=start, order_date__lt=end)
    sales = this_year.aggregate(s=Sum("total"), n=Count("id"))
    last_year = closed.filter(order_date__gte=prev_start, order_date__lt=start).aggregate(
        s=Sum("total")
    )["s"] or ZERO
    revenue = sales["s"] or ZERO
    growth = (
        round(float((revenue - last_year) / last_year * 100), 1)
        if last_year
        else None
    )

    # Trailing twelve months including the current one, oldest first
    if now.month == 12:
        y, m = now.year, 1
    else:
        y, m = now.year - 1, now.month + 1
    trend_start = dt.datetime(y, m, 1, tzinfo=timezone.get_current_timezone())
    trend_rows = {}
    for d, total in closed.filter(order_date__gte=trend_start).values_list(
        "order_date", "total"
    ):
        d = timezone.localtime(d)
        key = (d.year, d.month)
        trend_rows[key] = trend_rows.get(key, Decimal("0")) + total
    trend = []
    for _i in range(12):
        trend.append(
            {
                "year": y,
                "month": m,
                "label": f"{MONTH_LABELS[m - 1]} {y}",
                "revenue": _f(trend_rows.get((y, m))),
            }
        )
        y, m = (y + 1, 1) if m == 12 else (y, m + 1)

    top_clients = [
        {
            "id": row["client_id"],
            "name": f"{row['client__first_name']} {row['client__last_name']}".strip(),
            "revenue": _f(row["revenue"]),
            "orders": row["n"],
        }
        for row in this_year.values(
            "client_id", "client__first_name", "client__last_name"
        )
        .annotate(revenue=Sum("total"), n=Count("id"))
        .order_by("-revenue")[:5]
    ]

    all_orders = Order.objects.all()
    return {
        "year": now.year,
        "sales": {
            "revenue": _f(revenue),
            "orders": sales["n"],
            "previousYearRevenue": _f(last_year),
            "growthPercent": growth,
            "averageOrderValue": _f(revenue / sales["n"]) if sales["n"] else 0.0,
        },
        "clients": {
            "active": Client.objects.filter(is_active=True).count(),
            "newThisYear": Client.objects.filter(
                created_at__gte=start, created_at__lt=end
            ).count(),
        },
        "installedCapacityKw": _f(
            SolarSystem.objects.filter(is_active=True).aggregate(
                s=Sum("capacity_kw")
            )["s"]
        ),
        "maintenanceCompletedThisYear": MaintenanceRecord.objects.filter(
            status=MaintStatus.COMPLETED,
            completed_date__gte=start,
            completed_date__lt=end,
        ).count(),
        "activeTechnicians": _active_technicians(),
        "ordersByStatus": _counts(all_orders, "status"),
        "ordersByType": _counts(all_orders, "order_type"),
        "trend": trend,
        "topClients": top_clients,
    }


def _active_technicians() -> int:
    return (
        get_user_model()
        .objects.filter(role=UserRole.TECHNICIAN, is_active=True)
        .count()
    )
