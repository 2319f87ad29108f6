"""
JWT authentication middleware for Django Channels.

Resolves the principal of a WebSocket connection from a SimpleJWT access
token passed either as `Authorization: Bearer <token>` or as a `token`
query parameter (browsers cannot set headers on WebSockets).  The scope
user falls back to `AnonymousUser`, which consumers treat as "not
authenticated".
"""
import logging
import urllib.parse
from typing import Callable, Optional

from channels.auth import AuthMiddlewareStack
from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)

User = get_user_model()


@database_sync_to_async
def get_user_from_token(token: str):
    """Validate an access token and return its active user, or None."""
    try:
        access = AccessToken(token)
    except TokenError as exc:
        logger.debug("Rejected websocket token: %s", exc)
        return None
    user_id = access.get(api_settings.USER_ID_CLAIM)
    if user_id is None:
        return None
    return User.objects.filter(pk=user_id, is_active=True).first()


def token_from_scope(scope) -> Optional[str]:
    headers = dict(scope.get("headers", []))
    auth_header = headers.get(b"authorization", b"").decode()
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip() or None

    qs = scope.get("query_string", b"").decode()
    params = urllib.parse.parse_qs(qs)
    return params.get("token", [None])[0]


class _JWTMiddleware(BaseMiddleware):
    """Low-level middleware to handle JWT tokens in a WebSocket scope."""

    async def __call__(self, scope, receive, send):
        token = token_from_scope(scope)
        if token:
            user = await get_user_from_token(token)
            scope["user"] = user or AnonymousUser()
        elif "user" not in scope:
            scope["user"] = AnonymousUser()
        return await super().__call__(scope, receive, send)


def JWTAuthMiddlewareStack(inner: Callable):
    """Entry point for the middleware stack used by Channels routing."""
    return AuthMiddlewareStack(_JWTMiddleware(inner))
