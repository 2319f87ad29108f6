"""
Notification persistence helpers.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.utils import timezone

from .models import Notification

logger = logging.getLogger(__name__)

User = get_user_model()


def record_message_notification(payload: dict) -> Optional[Notification]:
    """
    Store a "new message" notification for `payload["recipient_id"]`.

    Returns None when the recipient does not exist or the insert fails.
    """
    recipient_id = payload.get("recipient_id")
    sender_id = payload.get("sender_id")
    conversation_id = str(payload.get("conversation_id") or "")
    sender_name = payload.get("sender_name") or "Someone"
    preview = payload.get("message_preview") or ""

    try:
        if not User.objects.filter(pk=recipient_id).exists():
            logger.info("Dropping message notification for unknown recipient %s", recipient_id)
            return None
        actor_id = sender_id if User.objects.filter(pk=sender_id).exists() else None
        return Notification.objects.create(
            recipient_id=recipient_id,
            actor_id=actor_id,
            kind=Notification.KIND_MESSAGE,
            title="You received a message",
            description=f"{sender_name}: {preview}",
            link=f"/messages/{conversation_id}",
            data={
                "sender_id": sender_id,
                "sender_name": sender_name,
                "conversation_id": conversation_id,
            },
        )
    except DatabaseError:
        logger.exception("Failed to record message notification for %s", recipient_id)
        return None


def mark_all_read(user) -> int:
    return Notification.objects.filter(recipient=user, is_read=False).update(
        is_read=True, read_at=timezone.now()
    )
