"""
Tests for read watermarks and unread counts.
"""
from datetime import timedelta

import pytest
from django.contrib.auth.models import AnonymousUser
from django.utils import timezone

from messaging.models import ConversationParticipant, Message
from messaging.read_state import mark_read, unread_count


def _post(conversation, sender, content, at):
    message = Message.objects.create(conversation=conversation, sender_id=sender.pk, content=content)
    Message.objects.filter(pk=message.pk).update(created_at=at)
    return message


def _participant(conversation, user):
    return ConversationParticipant.objects.get(conversation=conversation, user_id=user.pk)


@pytest.mark.django_db
def test_unread_counts_messages_after_watermark(alice, bob, conversation):
    watermark = timezone.now()
    ConversationParticipant.objects.filter(conversation=conversation, user_id=alice.pk).update(
        last_read_at=watermark
    )
    _post(conversation, bob, "before", watermark - timedelta(seconds=1))
    _post(conversation, bob, "after 1", watermark + timedelta(seconds=1))
    _post(conversation, bob, "after 2", watermark + timedelta(seconds=2))

    assert unread_count(_participant(conversation, alice)) == 2


@pytest.mark.django_db
def test_own_messages_are_never_unread(alice, bob, conversation):
    watermark = timezone.now()
    ConversationParticipant.objects.filter(conversation=conversation, user_id=alice.pk).update(
        last_read_at=watermark
    )
    _post(conversation, alice, "mine", watermark + timedelta(seconds=1))
    _post(conversation, bob, "theirs", watermark + timedelta(seconds=2))

    assert unread_count(_participant(conversation, alice)) == 1


@pytest.mark.django_db
def test_never_read_counts_at_most_one(alice, bob, conversation):
    participant = _participant(conversation, alice)
    assert unread_count(participant) == 0

    now = timezone.now()
    _post(conversation, bob, "one", now)
    _post(conversation, bob, "two", now + timedelta(seconds=1))
    assert unread_count(participant) == 1

    latest = _post(conversation, alice, "reply", now + timedelta(seconds=2))
    assert unread_count(participant) == 0
    assert unread_count(participant, latest) == 0


@pytest.mark.django_db
def test_mark_read_moves_watermark(alice, bob, conversation):
    _post(conversation, bob, "hi", timezone.now() - timedelta(seconds=5))

    assert mark_read(alice, conversation.pk) is True
    participant = _participant(conversation, alice)
    assert participant.last_read_at is not None
    assert unread_count(participant) == 0
    # Idempotent.
    assert mark_read(alice, str(conversation.pk)) is True


@pytest.mark.django_db
def test_mark_read_outside_conversation(carol, conversation):
    assert mark_read(carol, conversation.pk) is False
    assert mark_read(AnonymousUser(), conversation.pk) is False
    assert mark_read(carol, "nope") is False
