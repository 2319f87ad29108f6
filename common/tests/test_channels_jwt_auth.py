"""
Tests for the WebSocket JWT middleware.
"""
import pytest
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.tokens import AccessToken

from common.channels_jwt_auth import _JWTMiddleware, token_from_scope


def test_token_from_header_and_query_string():
    assert token_from_scope({"headers": [(b"authorization", b"Bearer abc")]}) == "abc"
    assert token_from_scope({"headers": [], "query_string": b"token=xyz&x=1"}) == "xyz"
    assert token_from_scope({"headers": [(b"authorization", b"Basic abc")]}) is None
    assert token_from_scope({}) is None


async def _resolve(scope):
    seen = {}

    async def inner(scope, receive, send):
        seen["user"] = scope["user"]

    await _JWTMiddleware(inner)(scope, None, None)
    return seen["user"]


@pytest.mark.django_db(transaction=True)
@pytest.mark.asyncio
async def test_valid_token_resolves_user(alice):
    token = str(AccessToken.for_user(alice))
    user = await _resolve({"type": "websocket", "query_string": f"token={token}".encode()})
    assert user.pk == alice.pk


@pytest.mark.django_db(transaction=True)
@pytest.mark.asyncio
async def test_invalid_token_is_anonymous(alice):
    user = await _resolve({"type": "websocket", "headers": [(b"authorization", b"Bearer not-a-jwt")]})
    assert isinstance(user, AnonymousUser)


@pytest.mark.asyncio
async def test_missing_token_keeps_existing_user():
    sentinel = object()
    assert await _resolve({"type": "websocket", "user": sentinel}) is sentinel
    assert isinstance(await _resolve({"type": "websocket"}), AnonymousUser)
