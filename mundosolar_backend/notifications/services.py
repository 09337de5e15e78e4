from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from main.models import UserRole

from .models import Notification

logger = logging.getLogger(__name__)


def _create(**fields) -> Optional[Notification]:
    """
    Insert one notification without ever failing the caller.

    Runs in its own savepoint so a database error here cannot poison an
    enclosing transaction.
    """
    try:
        with transaction.atomic():
            return Notification.objects.create(**fields)
    except Exception as exc:
        logger.warning(
            "Could not create %s notification (user=%s client=%s): %s",
            fields.get("type"),
            getattr(fields.get("user"), "pk", None),
            getattr(fields.get("client"), "pk", None),
            exc,
        )
        return None


def notify_user(
    user, *, type: str, title: str, message: str, data: Optional[dict[str, Any]] = None
) -> Optional[Notification]:
    return _create(user=user, type=type, title=title, message=message, data=data or {})


def notify_client(
    client, *, type: str, title: str, message: str, data: Optional[dict[str, Any]] = None
) -> Optional[Notification]:
    return _create(
        client=client, type=type, title=title, message=message, data=data or {}
    )


def notify_users(
    users: Iterable, *, type: str, title: str, message: str, data=None
) -> int:
    sent = 0
    for user in users:
        if notify_user(user, type=type, title=title, message=message, data=data):
            sent += 1
    return sent


def notify_admins(*, type: str, title: str, message: str, data=None) -> int:
    """Fan out to every active administrator. Returns the number delivered."""
    User = get_user_model()
    try:
        admins = list(User.objects.filter(role=UserRole.ADMIN, is_active=True))
    except Exception as exc:
        logger.warning("Could not load administrators for %s: %s", type, exc)
        return 0
    return notify_users(admins, type=type, title=title, message=message, data=data)


def mark_read(queryset) -> int:
    return queryset.filter(read=False).update(read=True, read_at=timezone.now())
