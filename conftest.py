"""
Common test fixtures.

Provides users with and without profile rows, DRF API clients
authenticated as those users, and a ready-made direct conversation
between alice and bob.
"""
import pytest
from channels.layers import channel_layers
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient


def make_user(username, *, with_profile=True, email=None, **names):
    """Create an auth user, plus its profile row unless `with_profile` is False."""
    from users.models import UserProfile

    email = f"{username}@example.com" if email is None else email
    user = get_user_model().objects.create_user(username=username, password="pass12345", email=email, **names)
    if with_profile:
        UserProfile.objects.create(
            user=user,
            email=email,
            first_name=names.get("first_name"),
            last_name=names.get("last_name"),
            username=username,
        )
    return user


@pytest.fixture(autouse=True)
def fresh_channel_layers():
    """Give every test its own in-memory channel layer."""
    channel_layers.backends.clear()
    yield
    channel_layers.backends.clear()


@pytest.fixture
def alice(db):
    return make_user("alice", first_name="Alice", last_name="Archer")


@pytest.fixture
def bob(db):
    return make_user("bob", first_name="Bob", last_name="Baker")


@pytest.fixture
def carol(db):
    return make_user("carol")


@pytest.fixture
def ghost(db):
    """A signed-up user whose profile row was never created."""
    return make_user("ghost", with_profile=False)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def alice_client(alice):
    client = APIClient()
    client.force_authenticate(user=alice)
    return client


@pytest.fixture
def bob_client(bob):
    client = APIClient()
    client.force_authenticate(user=bob)
    return client


@pytest.fixture
def carol_client(carol):
    client = APIClient()
    client.force_authenticate(user=carol)
    return client


@pytest.fixture
def conversation(alice, bob):
    """The direct conversation between alice and bob."""
    from messaging.directory import resolve_or_create_direct
    from messaging.models import Conversation

    return Conversation.objects.get(pk=resolve_or_create_direct(alice, bob.pk))
