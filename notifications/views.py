"""
Views for the notifications app.

Lists the caller's notifications, marks them read, and accepts
"new message" notification requests from clients.
"""
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from common.pagination import DefaultPagination

from .dispatcher import build_preview
from .models import Notification
from .serializers import MessageNotificationSerializer, NotificationSerializer
from .services import mark_all_read, record_message_notification


class NotificationViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = NotificationSerializer
    permission_classes = [permissions.IsAuthenticated]
    pagination_class = DefaultPagination

    def get_queryset(self):
        return Notification.objects.filter(recipient=self.request.user).order_by("-created_at", "-id")

    @action(detail=False, methods=["post"], url_path="mark-all-read")
    def mark_all_read(self, request):
        updated = mark_all_read(request.user)
        return Response({"ok": True, "updated": updated}, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"], url_path="message")
    def message(self, request):
        """
        Record a "new message" notification.

        Accepts {recipient_id, sender_id, sender_name, message_preview,
        conversation_id}; the sender must be the caller.
        """
        ser = MessageNotificationSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        payload = dict(ser.validated_data)
        if payload["sender_id"] != request.user.id:
            return Response({"detail": "sender_id must be the current user."}, status=status.HTTP_403_FORBIDDEN)

        payload["message_preview"] = build_preview(payload["message_preview"])
        notification = record_message_notification(payload)
        if notification is None:
            return Response({"detail": "Failed to create notification."}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"ok": True, "id": notification.id}, status=status.HTTP_201_CREATED)
