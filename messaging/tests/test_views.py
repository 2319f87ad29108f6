"""
Tests for the messaging REST endpoints.
"""
import uuid

import pytest

from messaging.models import Conversation, Message

BASE = "/api/messaging/conversations/"


@pytest.mark.django_db
def test_endpoints_require_authentication(api_client, conversation):
    assert api_client.get(BASE).status_code == 401
    assert api_client.post(f"{BASE}direct/", {"other_user_id": 1}, format="json").status_code == 401
    assert api_client.get(f"{BASE}{conversation.pk}/messages/").status_code == 401


@pytest.mark.django_db
def test_start_direct_conversation_is_idempotent(alice_client, bob):
    first = alice_client.post(f"{BASE}direct/", {"other_user_id": bob.pk}, format="json")
    second = alice_client.post(f"{BASE}direct/", {"other_user_id": bob.pk}, format="json")

    assert first.status_code == 200
    assert first.json()["conversation_id"] == second.json()["conversation_id"]
    assert Conversation.objects.count() == 1


@pytest.mark.django_db
def test_start_direct_conversation_failure(alice_client, alice, ghost):
    resp = alice_client.post(f"{BASE}direct/", {"other_user_id": ghost.pk}, format="json")
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Could not start conversation."}

    assert alice_client.post(f"{BASE}direct/", {"other_user_id": alice.pk}, format="json").status_code == 400
    assert alice_client.post(f"{BASE}direct/", {}, format="json").status_code == 400


@pytest.mark.django_db
def test_list_conversations_summary(alice_client, alice, bob, conversation):
    Message.objects.create(conversation=conversation, sender_id=bob.pk, content="hey")

    resp = alice_client.get(BASE)

    assert resp.status_code == 200
    [summary] = resp.json()
    assert summary["id"] == str(conversation.pk)
    assert summary["type"] == "direct"
    assert summary["unread_count"] == 1
    assert summary["last_message"]["content"] == "hey"
    assert summary["last_message"]["sender_id"] == bob.pk
    assert summary["other_participant"]["name"] == "Bob Baker"
    assert summary["other_participant"]["initial"] == "B"
    assert {p["id"] for p in summary["participants"]} == {alice.pk, bob.pk}


@pytest.mark.django_db
def test_participant_without_names_gets_placeholder(alice_client, bob, conversation):
    from users.models import UserProfile

    # Deleting the profile would cascade to bob's participant row.
    UserProfile.objects.filter(pk=bob.pk).update(first_name=None, last_name=None, username=None)
    summary = alice_client.get(BASE).json()[0]
    assert summary["other_participant"]["name"] == "User"
    assert summary["other_participant"]["initial"] == "U"


@pytest.mark.django_db
def test_retrieve_conversation(alice_client, carol_client, conversation):
    assert alice_client.get(f"{BASE}{conversation.pk}/").status_code == 200
    assert alice_client.get(f"{BASE}{uuid.uuid4()}/").status_code == 404
    assert carol_client.get(f"{BASE}{conversation.pk}/").status_code == 404


@pytest.mark.django_db
def test_send_and_list_messages(alice_client, bob_client, alice, conversation):
    url = f"{BASE}{conversation.pk}/messages/"

    created = alice_client.post(url, {"content": "  hello bob  "}, format="json")
    assert created.status_code == 201
    body = created.json()
    assert body["content"] == "hello bob"
    assert body["sender_id"] == alice.pk
    assert body["conversation_id"] == str(conversation.pk)

    bob_client.post(url, {"content": "hi alice"}, format="json")
    thread = bob_client.get(url).json()
    assert [m["content"] for m in thread] == ["hello bob", "hi alice"]


@pytest.mark.django_db
def test_send_rejects_blank_and_outsiders(alice_client, carol_client, conversation):
    url = f"{BASE}{conversation.pk}/messages/"
    assert alice_client.post(url, {"content": "   "}, format="json").status_code == 400

    resp = carol_client.post(url, {"content": "hi"}, format="json")
    assert resp.status_code == 400
    assert carol_client.get(url).json() == []
    assert Message.objects.count() == 0


@pytest.mark.django_db
def test_mark_conversation_read(alice_client, bob, conversation):
    Message.objects.create(conversation=conversation, sender_id=bob.pk, content="unread")

    assert alice_client.post(f"{BASE}{conversation.pk}/read/").json() == {"ok": True}
    assert alice_client.get(BASE).json()[0]["unread_count"] == 0
    assert alice_client.post(f"{BASE}{uuid.uuid4()}/read/").json() == {"ok": False}
