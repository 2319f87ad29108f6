from __future__ import annotations

from rest_framework import serializers

from users.profiles import display_user

from .models import Conversation, Message


class MessageSerializer(serializers.ModelSerializer):
    # Plain ids so the same shape can travel over the channel layer.
    conversation_id = serializers.UUIDField(read_only=True)
    sender_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Message
        fields = ["id", "conversation_id", "sender_id", "content", "created_at", "edited_at"]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=10000)


class DirectConversationSerializer(serializers.Serializer):
    other_user_id = serializers.IntegerField(min_value=1)


class ConversationRecordSerializer(serializers.ModelSerializer):
    """Row shape published on the conversations change feed."""

    id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Conversation
        fields = ["id", "type", "created_at", "updated_at"]
        read_only_fields = fields


class ConversationSerializer(serializers.ModelSerializer):
    """
    Conversation summary for the inbox.

    Expects the attributes attached by `messaging.directory` listing
    helpers: `profiles`, `last_message` and `unread_count`.
    """

    participants = serializers.SerializerMethodField()
    other_participant = serializers.SerializerMethodField()
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            "id",
            "type",
            "participants",
            "other_participant",
            "last_message",
            "unread_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def _me_id(self):
        user = self.context.get("user")
        if user is None:
            user = getattr(self.context.get("request"), "user", None)
        return getattr(user, "pk", None)

    def get_participants(self, obj):
        profiles = getattr(obj, "profiles", {}) or {}
        return [display_user(profiles.get(p.user_id), p.user_id) for p in obj.participants.all()]

    def get_other_participant(self, obj):
        me_id = self._me_id()
        for entry in self.get_participants(obj):
            if entry["id"] != me_id:
                return entry
        return None

    def get_last_message(self, obj):
        message = getattr(obj, "last_message", None)
        return MessageSerializer(message).data if message is not None else None

    def get_unread_count(self, obj):
        return getattr(obj, "unread_count", 0)
