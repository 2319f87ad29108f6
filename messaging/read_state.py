"""
Read-state tracking for conversation participants.

Each participant row carries a `last_read_at` watermark.  Marking a
conversation read just moves the watermark to now; unread counts are
derived on demand when conversations are listed.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.db import DatabaseError
from django.utils import timezone

from users.profiles import authenticated_id

from .models import ConversationParticipant, Message, parse_conversation_id

logger = logging.getLogger(__name__)


def mark_read(principal, conversation_id) -> bool:
    """
    Set `last_read_at = now()` on the caller's participant row.

    Idempotent and cheap enough to call on every view/focus.  Returns
    False when the caller is anonymous, is not a participant, or the
    update fails.
    """
    user_id = authenticated_id(principal)
    conv_id = parse_conversation_id(conversation_id)
    if user_id is None or conv_id is None:
        return False
    try:
        updated = ConversationParticipant.objects.filter(
            conversation_id=conv_id, user_id=user_id
        ).update(last_read_at=timezone.now())
    except DatabaseError:
        logger.exception("Error marking conversation %s as read for %s", conv_id, user_id)
        return False
    return updated > 0


def unread_count(participant: ConversationParticipant, last_message: Optional[Message] = None) -> int:
    """
    Point-in-time unread count for one participant.

    With a watermark, count other people's messages newer than it.  A
    participant that never read the conversation has one unread message
    if the latest message came from someone else, otherwise none.
    """
    if participant.last_read_at is not None:
        return (
            Message.objects.filter(
                conversation_id=participant.conversation_id,
                created_at__gt=participant.last_read_at,
            )
            .exclude(sender_id=participant.user_id)
            .count()
        )

    if last_message is None:
        last_message = (
            Message.objects.filter(conversation_id=participant.conversation_id)
            .order_by("-created_at", "-id")
            .first()
        )
    if last_message is not None and last_message.sender_id != participant.user_id:
        return 1
    return 0
