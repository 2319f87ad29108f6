"""
Conversation directory.

Resolves (and creates on first use) the unique direct conversation
between two users, and lists the conversations a user takes part in.

Resolution is two-tier.  The preferred path is the
``find_or_create_direct_conversation`` database function, which does the
whole find-or-create in one transaction.  When it is unavailable, fails,
or returns a conversation the caller is not in, a manual multi-step path
runs instead.  The manual path has no cross-row transaction; it deletes
the conversation row again if a participant insert fails, and relies on
the unique ``direct_key`` to detect a concurrent creator.
"""
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from django.conf import settings
from django.db import DatabaseError, IntegrityError, connection, transaction

from users.profiles import authenticated_id, ensure_profile, get_profiles, profile_exists

from .models import Conversation, ConversationParticipant, Message, direct_key_for, parse_conversation_id
from .read_state import unread_count
from .services import is_participant

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Preferred path: database function
# ---------------------------------------------------------------------------

def _procedure_available() -> bool:
    if not getattr(settings, "MESSAGING_USE_DIRECT_CONVERSATION_PROCEDURE", True):
        return False
    return connection.vendor == "postgresql"


def _call_find_or_create_procedure(user_id: int, other_id: int) -> Optional[uuid.UUID]:
    with connection.cursor() as cursor:
        cursor.execute("SELECT find_or_create_direct_conversation(%s, %s)", [user_id, other_id])
        row = cursor.fetchone()
    if not row or row[0] is None:
        return None
    return parse_conversation_id(row[0])


def _resolve_with_procedure(user_id: int, other_id: int) -> Optional[uuid.UUID]:
    if not _procedure_available():
        return None
    try:
        # Savepoint, so a failing call does not poison an outer transaction.
        with transaction.atomic():
            conv_id = _call_find_or_create_procedure(user_id, other_id)
    except DatabaseError as exc:
        logger.warning("find_or_create_direct_conversation failed, using manual path: %s", exc)
        return None

    if conv_id is None:
        return None
    if not is_participant(user_id, conv_id):
        logger.warning(
            "find_or_create_direct_conversation returned %s without participant %s, using manual path",
            conv_id,
            user_id,
        )
        return None
    return conv_id


# ---------------------------------------------------------------------------
# Manual fallback path
# ---------------------------------------------------------------------------

def _find_existing_direct(user_id: int, other_id: int) -> Optional[uuid.UUID]:
    """First direct conversation of `user_id` whose participants are exactly the pair."""
    my_conversation_ids = list(
        ConversationParticipant.objects.filter(
            user_id=user_id, conversation__type=Conversation.TYPE_DIRECT
        )
        .order_by("conversation__created_at", "conversation_id")
        .values_list("conversation_id", flat=True)
    )
    if not my_conversation_ids:
        return None

    members: dict = {}
    rows = ConversationParticipant.objects.filter(
        conversation_id__in=my_conversation_ids
    ).values_list("conversation_id", "user_id")
    for conv_id, member_id in rows:
        members.setdefault(conv_id, set()).add(member_id)

    wanted = {user_id, other_id}
    for conv_id in my_conversation_ids:
        if members.get(conv_id) == wanted:
            return conv_id
    return None


def _discard_conversation(conversation_id) -> None:
    """Compensating action for a half-created conversation."""
    try:
        Conversation.objects.filter(pk=conversation_id).delete()
    except DatabaseError:
        logger.exception("Could not clean up orphaned conversation %s", conversation_id)


def _add_participant(conversation: Conversation, user_id: int) -> bool:
    # get_or_create: a concurrent adopter may already have inserted the row.
    try:
        with transaction.atomic():
            ConversationParticipant.objects.get_or_create(conversation=conversation, user_id=user_id)
    except DatabaseError:
        logger.exception("Error adding participant %s to conversation %s", user_id, conversation.pk)
        return False
    return True


def _adopt_keyed_conversation(key: str, user_id: int, other_id: int) -> Optional[uuid.UUID]:
    """
    Join the conversation a concurrent creator registered for the same pair.

    Participant rows are upserted so both racers end up on one conversation,
    whatever step the other creator has reached.
    """
    existing = Conversation.objects.filter(direct_key=key).first()
    if existing is None or not profile_exists(other_id):
        return None
    for member_id in (user_id, other_id):
        try:
            ConversationParticipant.objects.get_or_create(conversation=existing, user_id=member_id)
        except IntegrityError:
            if not is_participant(member_id, existing.pk):
                return None
    logger.info("Joined concurrently created conversation %s for pair %s", existing.pk, key)
    return existing.pk


def _resolve_manually(user_id: int, other_id: int) -> Optional[uuid.UUID]:
    existing = _find_existing_direct(user_id, other_id)
    if existing is not None:
        return existing

    key = direct_key_for(user_id, other_id)
    conversation = Conversation(id=uuid.uuid4(), type=Conversation.TYPE_DIRECT, direct_key=key)
    try:
        with transaction.atomic():
            conversation.save(force_insert=True)
    except IntegrityError:
        return _adopt_keyed_conversation(key, user_id, other_id)

    # Self first: membership is what makes the row reachable for the caller.
    if not _add_participant(conversation, user_id):
        _discard_conversation(conversation.pk)
        return None

    if not profile_exists(other_id):
        logger.info("User %s has no profile; not starting conversation", other_id)
        _discard_conversation(conversation.pk)
        return None

    if not _add_participant(conversation, other_id):
        _discard_conversation(conversation.pk)
        return None

    return conversation.pk


def resolve_or_create_direct(principal, other_id) -> Optional[uuid.UUID]:
    """
    Return the single direct conversation between the principal and
    `other_id`, creating it when absent.

    Returns None (never raises) when the caller is anonymous, the target
    is the caller or has no profile, or the store fails; every None is
    safe to retry.
    """
    user_id = authenticated_id(principal)
    if user_id is None:
        logger.debug("Anonymous caller cannot start a conversation")
        return None
    try:
        other_id = int(other_id)
    except (TypeError, ValueError):
        return None
    if other_id == user_id:
        return None

    try:
        # A missing profile row would violate the participant foreign key.
        if not ensure_profile(principal):
            return None
        conv_id = _resolve_with_procedure(user_id, other_id)
        if conv_id is not None:
            return conv_id
        return _resolve_manually(user_id, other_id)
    except DatabaseError:
        logger.exception("Error resolving direct conversation %s -> %s", user_id, other_id)
        return None


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def _enrich(conversations: List[Conversation], user_id: int) -> List[Conversation]:
    """Attach `profiles`, `last_message` and `unread_count` to each conversation."""
    member_ids = {p.user_id for conv in conversations for p in conv.participants.all()}
    profiles = get_profiles(member_ids)
    for conv in conversations:
        conv.profiles = profiles
        conv.last_message = (
            Message.objects.filter(conversation_id=conv.pk).order_by("-created_at", "-id").first()
        )
        mine = next((p for p in conv.participants.all() if p.user_id == user_id), None)
        conv.unread_count = unread_count(mine, conv.last_message) if mine else 0
    return conversations


def list_conversations(principal) -> List[Conversation]:
    """Conversations the principal participates in, most recently updated first."""
    user_id = authenticated_id(principal)
    if user_id is None:
        return []
    try:
        conversations = list(
            Conversation.objects.filter(participants__user_id=user_id)
            .prefetch_related("participants")
            .order_by("-updated_at", "id")
            .distinct()
        )
        return _enrich(conversations, user_id)
    except DatabaseError:
        logger.exception("Error listing conversations for %s", user_id)
        return []


def get_conversation(principal, conversation_id) -> Optional[Conversation]:
    """One enriched conversation, or None when the principal is not in it."""
    user_id = authenticated_id(principal)
    conv_id = parse_conversation_id(conversation_id)
    if user_id is None or conv_id is None:
        return None
    try:
        conversation = (
            Conversation.objects.filter(pk=conv_id, participants__user_id=user_id)
            .prefetch_related("participants")
            .first()
        )
        if conversation is None:
            return None
        return _enrich([conversation], user_id)[0]
    except DatabaseError:
        logger.exception("Error loading conversation %s for %s", conv_id, user_id)
        return None
