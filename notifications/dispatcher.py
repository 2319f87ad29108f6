"""
Fan-out of "new message" notifications.

`dispatch_new_message` is called by the message store after a successful
insert.  It computes one payload per other participant and, once the
surrounding transaction commits, hands each to a Celery task.  Nothing
here can fail the send: every error is logged and dropped.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.db import DatabaseError, transaction

from messaging.models import ConversationParticipant
from users.profiles import display_user, get_profiles

from .tasks import deliver_message_notification

logger = logging.getLogger(__name__)

ELLIPSIS = "..."


def build_preview(content: str, limit: int | None = None) -> str:
    """Collapse whitespace and cut `content` to at most `limit` characters."""
    if limit is None:
        limit = getattr(settings, "MESSAGING_NOTIFICATION_PREVIEW_LENGTH", 120)
    text = " ".join((content or "").split())
    if len(text) <= limit:
        return text
    return text[: limit - len(ELLIPSIS)].rstrip() + ELLIPSIS


def build_payloads(message) -> list[dict]:
    recipient_ids = list(
        ConversationParticipant.objects.filter(conversation_id=message.conversation_id)
        .exclude(user_id=message.sender_id)
        .values_list("user_id", flat=True)
    )
    if not recipient_ids:
        return []
    sender = get_profiles([message.sender_id]).get(message.sender_id)
    sender_name = display_user(sender, message.sender_id)["name"]
    preview = build_preview(message.content)
    return [
        {
            "recipient_id": recipient_id,
            "sender_id": message.sender_id,
            "sender_name": sender_name,
            "message_preview": preview,
            "conversation_id": str(message.conversation_id),
        }
        for recipient_id in recipient_ids
    ]


def _enqueue(payloads: list[dict]) -> None:
    for payload in payloads:
        try:
            deliver_message_notification.delay(payload)
        except Exception:
            logger.warning(
                "Could not enqueue message notification for %s", payload["recipient_id"], exc_info=True
            )


def dispatch_new_message(message) -> None:
    """Notify every participant except the sender, without blocking the caller."""
    try:
        payloads = build_payloads(message)
    except DatabaseError:
        logger.warning("Could not compute notification recipients for message %s", message.pk, exc_info=True)
        return
    if payloads:
        transaction.on_commit(lambda: _enqueue(payloads))
