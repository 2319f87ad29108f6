"""
WebSocket routing for the messaging app.

The account-wide conversations feed is listed before the per-conversation
route.  The JWT authentication middleware resolves the user and the
consumers themselves verify authentication and membership.
"""
from django.urls import re_path

from .consumers import ConversationMessagesConsumer, ConversationUpdatesConsumer


websocket_urlpatterns = [
    re_path(r"^ws/messaging/conversations/$", ConversationUpdatesConsumer.as_asgi()),
    re_path(
        r"^ws/messaging/(?P<conversation_id>[0-9a-fA-F-]{36})/$",
        ConversationMessagesConsumer.as_asgi(),
    ),
]
