# messaging/services.py
"""
Message store access.

Append-only message insertion and ordered retrieval for a conversation.
Participant membership is the precondition for both: readers who are not
(yet) participants get an empty list, senders who are missing their row
get it repaired when they legitimately belong to the conversation.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from django.db import DatabaseError, IntegrityError

from notifications.dispatcher import dispatch_new_message
from users.profiles import authenticated_id, ensure_profile

from .models import Conversation, ConversationParticipant, Message, parse_conversation_id

logger = logging.getLogger(__name__)


def is_participant(user_id, conversation_id) -> bool:
    return ConversationParticipant.objects.filter(
        conversation_id=conversation_id, user_id=user_id
    ).exists()


def list_messages(principal, conversation_id) -> List[Message]:
    """
    Messages of a conversation ordered by `(created_at, id)`.

    Anonymous callers and non-participants get an empty list rather than
    an error: right after a conversation is created its participant rows
    may not be visible yet, and callers rely on the neutral empty state.
    """
    user_id = authenticated_id(principal)
    conv_id = parse_conversation_id(conversation_id)
    if user_id is None or conv_id is None:
        return []
    try:
        if not is_participant(user_id, conv_id):
            logger.debug("User %s is not (yet) a participant of %s", user_id, conv_id)
            return []
        return list(
            Message.objects.filter(conversation_id=conv_id).order_by("created_at", "id")
        )
    except DatabaseError:
        logger.exception("Error fetching messages for conversation %s", conv_id)
        return []


def _self_heal_participant(principal, conversation: Conversation) -> bool:
    """
    Re-create the sender's missing participant row.

    Only allowed when the sender is one of the two users a direct
    conversation was created for, which is what covers the window where
    creation and the first send interleave.
    """
    user_id = principal.pk
    if not conversation.is_direct or not conversation.direct_key:
        return False
    if conversation.direct_key.split(":").count(str(user_id)) != 1:
        return False
    if not ensure_profile(principal):
        return False
    try:
        ConversationParticipant.objects.get_or_create(conversation=conversation, user_id=user_id)
    except IntegrityError:
        # Another request inserted the row first.
        return is_participant(user_id, conversation.pk)
    logger.info("Restored missing participant %s in conversation %s", user_id, conversation.pk)
    return True


def _touch_conversation(conversation_id) -> None:
    """Advance `updated_at`; advisory only, failures are logged and ignored."""
    try:
        conversation = Conversation.objects.get(pk=conversation_id)
        conversation.save(update_fields=["updated_at"])
    except (Conversation.DoesNotExist, DatabaseError):
        logger.warning("Could not bump updated_at of conversation %s", conversation_id, exc_info=True)


def append(principal, conversation_id, content) -> Optional[Message]:
    """
    Append a message to a conversation on behalf of the principal.

    Returns the persisted message (with its server-assigned id and
    timestamp), or None when the caller is anonymous, the trimmed content
    is empty, the caller cannot be made a participant, or the insert fails.
    Notifying the other participants is detached from the result.
    """
    user_id = authenticated_id(principal)
    conv_id = parse_conversation_id(conversation_id)
    if user_id is None or conv_id is None:
        return None

    body = (content or "").strip()
    if not body:
        logger.info("Rejected empty message from %s in %s", user_id, conv_id)
        return None

    try:
        if not is_participant(user_id, conv_id):
            conversation = Conversation.objects.filter(pk=conv_id).first()
            if conversation is None or not _self_heal_participant(principal, conversation):
                logger.warning("User %s cannot send to conversation %s", user_id, conv_id)
                return None
        message = Message.objects.create(conversation_id=conv_id, sender_id=user_id, content=body)
    except DatabaseError:
        logger.exception("Error sending message to conversation %s", conv_id)
        return None

    _touch_conversation(conv_id)
    dispatch_new_message(message)
    return message
