from rest_framework import serializers

from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            "id", "kind", "title", "description", "link", "data",
            "actor", "is_read", "read_at", "created_at",
        ]
        read_only_fields = fields


class MessageNotificationSerializer(serializers.Serializer):
    """Payload of a "new message" notification request."""

    recipient_id = serializers.IntegerField()
    sender_id = serializers.IntegerField()
    sender_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    message_preview = serializers.CharField(required=False, allow_blank=True, default="")
    conversation_id = serializers.UUIDField()
