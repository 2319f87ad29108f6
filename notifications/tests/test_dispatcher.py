"""
Tests for "new message" notification fan-out.
"""
import pytest

from messaging.models import Message
from notifications import dispatcher
from notifications.dispatcher import build_payloads, build_preview, dispatch_new_message
from notifications.models import Notification


def test_preview_is_kept_when_short():
    assert build_preview("hello   there\nfriend") == "hello there friend"
    assert build_preview("") == ""
    assert build_preview(None) == ""


def test_preview_is_ellipsized_to_limit():
    preview = build_preview("word " * 100)
    assert len(preview) <= 120
    assert preview.endswith("...")
    assert build_preview("abcdefghij", limit=8) == "abcde..."


def test_preview_limit_comes_from_settings(settings):
    settings.MESSAGING_NOTIFICATION_PREVIEW_LENGTH = 10
    assert build_preview("a" * 30) == "aaaaaaa..."


@pytest.mark.django_db
def test_payloads_target_everyone_but_the_sender(alice, bob, conversation):
    message = Message.objects.create(conversation=conversation, sender_id=alice.pk, content="hi bob")

    assert build_payloads(message) == [
        {
            "recipient_id": bob.pk,
            "sender_id": alice.pk,
            "sender_name": "Alice Archer",
            "message_preview": "hi bob",
            "conversation_id": str(conversation.pk),
        }
    ]


@pytest.mark.django_db
def test_dispatch_waits_for_commit(alice, bob, conversation, monkeypatch, django_capture_on_commit_callbacks):
    queued = []
    monkeypatch.setattr(dispatcher.deliver_message_notification, "delay", queued.append)
    message = Message.objects.create(conversation=conversation, sender_id=bob.pk, content="ping")

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        dispatch_new_message(message)
    assert queued == []

    for callback in callbacks:
        callback()
    assert [p["recipient_id"] for p in queued] == [alice.pk]


@pytest.mark.django_db
def test_eager_delivery_records_notification(alice, bob, conversation, django_capture_on_commit_callbacks):
    message = Message.objects.create(conversation=conversation, sender_id=bob.pk, content="x" * 300)
    with django_capture_on_commit_callbacks(execute=True):
        dispatch_new_message(message)

    notification = Notification.objects.get(recipient=alice)
    assert notification.actor == bob
    assert notification.title == "You received a message"
    assert notification.data["conversation_id"] == str(conversation.pk)
    assert len(notification.description) <= len("Bob Baker: ") + 120


def test_enqueue_fails_fast_without_broker():
    from academy_backend.celery import celery_app

    assert celery_app.conf.task_publish_retry is False
    assert celery_app.conf.broker_connection_timeout <= 2.0


def test_enqueue_errors_are_swallowed(monkeypatch):
    def refuse(payload):
        raise ConnectionError("broker down")

    monkeypatch.setattr(dispatcher.deliver_message_notification, "delay", refuse)
    dispatcher._enqueue([{"recipient_id": 1}, {"recipient_id": 2}])
