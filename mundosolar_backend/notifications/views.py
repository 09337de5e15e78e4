from __future__ import annotations

from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from user.permissions import HasPermission

from .models import Notification
from .serializers import NotificationSerializer
from .services import mark_read

MAX_NOTIFICATIONS = 50


class NotificationViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """The signed-in staff member's own notifications."""

    serializer_class = NotificationSerializer
    permission_classes = [HasPermission]
    permission_resource = "notifications"
    pagination_class = None
    permission_action_map = {"read": "update", "mark_all_read": "update"}

    def get_queryset(self):
        return Notification.objects.filter(user=self.request.user).order_by(
            "-created_at", "-id"
        )

    def list(self, request, *args, **kwargs):
        qs = self.get_queryset()
        unread_count = qs.filter(read=False).count()
        if request.query_params.get("unreadOnly") in ("1", "true", "True"):
            qs = qs.filter(read=False)
        serializer = self.get_serializer(qs[:MAX_NOTIFICATIONS], many=True)
        return Response(
            {
                "success": True,
                "data": {"notifications": serializer.data, "unreadCount": unread_count},
            }
        )

    @action(detail=True, methods=["post", "patch"], url_path="read")
    def read(self, request, pk=None):
        notification = self.get_object()
        notification.mark_read()
        return Response(
            {"success": True, "data": self.get_serializer(notification).data}
        )

    @action(detail=False, methods=["post"], url_path="mark-all-read")
    def mark_all_read(self, request):
        updated = mark_read(self.get_queryset())
        return Response({"success": True, "data": {"updated": updated}})

    def destroy(self, request, *args, **kwargs):
        self.get_object().delete()
        return Response({"success": True})
