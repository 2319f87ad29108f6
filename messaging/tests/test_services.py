"""
Tests for message listing and sending.
"""
from datetime import timedelta

import pytest
from django.contrib.auth.models import AnonymousUser
from django.utils import timezone

from messaging import services
from messaging.models import Conversation, ConversationParticipant, Message
from notifications.models import Notification


@pytest.mark.django_db
def test_append_then_list_round_trip(alice, bob, conversation):
    earlier = services.append(bob, conversation.pk, "first")
    sent = services.append(alice, conversation.pk, "hello")

    assert sent is not None
    assert sent.pk and sent.created_at
    thread = services.list_messages(bob, conversation.pk)
    assert [m.pk for m in thread] == [earlier.pk, sent.pk]
    assert thread[-1].content == "hello"
    assert thread[-1].sender_id == alice.pk


@pytest.mark.django_db
def test_append_trims_content(alice, conversation):
    message = services.append(alice, str(conversation.pk), "  spaced out \n")
    assert message.content == "spaced out"


@pytest.mark.django_db
@pytest.mark.parametrize("content", ["", "   ", "\n\t", None])
def test_blank_content_is_rejected(alice, conversation, content):
    assert services.append(alice, conversation.pk, content) is None
    assert Message.objects.count() == 0


@pytest.mark.django_db
def test_non_participant_reads_nothing(alice, bob, carol, conversation):
    services.append(alice, conversation.pk, "private")
    assert services.list_messages(carol, conversation.pk) == []
    assert services.list_messages(AnonymousUser(), conversation.pk) == []
    assert services.list_messages(alice, "not-a-uuid") == []


@pytest.mark.django_db
def test_non_participant_cannot_send(carol, conversation):
    assert services.append(carol, conversation.pk, "let me in") is None
    assert not services.is_participant(carol.pk, conversation.pk)
    assert Message.objects.count() == 0


@pytest.mark.django_db
def test_anonymous_cannot_send(conversation):
    assert services.append(AnonymousUser(), conversation.pk, "hi") is None


@pytest.mark.django_db
def test_missing_participant_row_is_restored_on_send(alice, bob, conversation):
    ConversationParticipant.objects.filter(conversation=conversation, user_id=bob.pk).delete()
    assert services.list_messages(bob, conversation.pk) == []

    message = services.append(bob, conversation.pk, "back again")

    assert message is not None
    assert services.is_participant(bob.pk, conversation.pk)
    assert [m.content for m in services.list_messages(bob, conversation.pk)] == ["back again"]


@pytest.mark.django_db
def test_group_conversations_are_not_self_healed(alice, conversation):
    group = Conversation.objects.create(type=Conversation.TYPE_GROUP)
    assert services.append(alice, group.pk, "hello group") is None


@pytest.mark.django_db
def test_append_bumps_conversation_updated_at(alice, conversation):
    stale = timezone.now() - timedelta(days=1)
    Conversation.objects.filter(pk=conversation.pk).update(updated_at=stale)

    services.append(alice, conversation.pk, "ping")

    conversation.refresh_from_db()
    assert conversation.updated_at > stale


@pytest.mark.django_db
def test_append_notifies_other_participant(alice, bob, conversation, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        services.append(alice, conversation.pk, "are you there?")

    notification = Notification.objects.get(recipient=bob)
    assert notification.kind == Notification.KIND_MESSAGE
    assert notification.description == "Alice Archer: are you there?"
    assert notification.link == f"/messages/{conversation.pk}"
    assert not Notification.objects.filter(recipient=alice).exists()


@pytest.mark.django_db
def test_notification_failure_does_not_fail_send(alice, conversation, monkeypatch, django_capture_on_commit_callbacks):
    from notifications import dispatcher

    def broken_delay(payload):
        raise ConnectionError("broker down")

    monkeypatch.setattr(dispatcher.deliver_message_notification, "delay", broken_delay)
    with django_capture_on_commit_callbacks(execute=True):
        message = services.append(alice, conversation.pk, "still delivered")

    assert message is not None
    assert Message.objects.filter(pk=message.pk).exists()
