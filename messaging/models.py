# messaging/models.py
import uuid

from django.db import models


def direct_key_for(user_a, user_b) -> str:
    """Canonical key of an unordered user pair (smaller id first)."""
    low, high = sorted([int(user_a), int(user_b)])
    return f"{low}:{high}"


def parse_conversation_id(value):
    """Coerce a conversation id to UUID; None when it is malformed."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


class Conversation(models.Model):
    TYPE_DIRECT = "direct"
    TYPE_GROUP = "group"
    TYPE_CHOICES = [
        (TYPE_DIRECT, "Direct"),
        (TYPE_GROUP, "Group"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    type = models.CharField(max_length=16, choices=TYPE_CHOICES, default=TYPE_DIRECT)

    # "<min user id>:<max user id>" for direct conversations, NULL for groups.
    direct_key = models.CharField(max_length=64, unique=True, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_direct(self) -> bool:
        return self.type == self.TYPE_DIRECT

    def __str__(self):
        return f"Conversation({self.type}, {self.id})"

    class Meta:
        indexes = [
            models.Index(fields=["type", "-updated_at"], name="msg_conv_type_updated_idx"),
        ]


class ConversationParticipant(models.Model):
    conversation = models.ForeignKey(
        Conversation, on_delete=models.CASCADE, related_name="participants"
    )
    user = models.ForeignKey(
        "users.UserProfile", on_delete=models.CASCADE, related_name="conversation_memberships"
    )
    joined_at = models.DateTimeField(auto_now_add=True)
    # NULL means the participant never opened the conversation.
    last_read_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Participant({self.conversation_id}, {self.user_id})"

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"], name="uniq_participant_per_conversation"
            ),
        ]
        indexes = [
            models.Index(fields=["user", "conversation"], name="msg_part_user_conv_idx"),
        ]


class Message(models.Model):
    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name="messages")
    sender = models.ForeignKey(
        "users.UserProfile", on_delete=models.CASCADE, related_name="sent_messages"
    )
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    edited_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Message({self.id}) in {self.conversation_id}"

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["conversation", "created_at"], name="msg_conv_created_idx"),
        ]
