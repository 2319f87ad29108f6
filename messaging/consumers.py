"""
Channels consumers for direct messaging.

These asynchronous consumers relay the messaging change feed to browser
clients.  Users are authenticated via the JWTAuthMiddleware stack.

``ConversationMessagesConsumer`` serves one conversation: it checks
membership on connect, pushes ``message.created`` events for new rows,
and accepts ``message.send`` and ``conversation.read`` from the client.

``ConversationUpdatesConsumer`` pushes ``conversation.updated`` for any
conversation insert or update so inbox views can refresh without
polling.
"""
from __future__ import annotations

import logging
from typing import Any

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from realtime.feed import INSERT

from . import read_state, services
from .models import parse_conversation_id
from .serializers import MessageSerializer
from .subscriptions import CONVERSATIONS_GROUP, CONVERSATIONS_TABLE, MESSAGES_TABLE, messages_group

logger = logging.getLogger(__name__)


def _authenticated(user) -> bool:
    return bool(user and user.is_authenticated)


class ConversationMessagesConsumer(AsyncJsonWebsocketConsumer):
    """Realtime WebSocket consumer for one conversation."""

    group_name = None

    async def connect(self) -> None:
        user = self.scope.get("user")
        self.conversation_id = parse_conversation_id(
            self.scope["url_route"]["kwargs"]["conversation_id"]
        )
        if not _authenticated(user) or self.conversation_id is None:
            await self.close()
            return
        if not await database_sync_to_async(services.is_participant)(user.pk, self.conversation_id):
            logger.info("Rejected websocket for %s on conversation %s", user.pk, self.conversation_id)
            await self.close()
            return
        self.group_name = messages_group(self.conversation_id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, code: int) -> None:
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content: dict[str, Any], **kwargs: Any) -> None:
        event_type = content.get("type")
        if event_type == "message.send":
            await self._handle_send(content)
        elif event_type == "conversation.read":
            ok = await database_sync_to_async(read_state.mark_read)(
                self.scope["user"], self.conversation_id
            )
            await self.send_json({"type": "conversation.read", "ok": ok})

    async def _handle_send(self, content: dict[str, Any]) -> None:
        message = await database_sync_to_async(services.append)(
            self.scope["user"], self.conversation_id, content.get("content")
        )
        if message is None:
            await self.send_json({"type": "error", "detail": "Message could not be sent."})
            return
        # The new row reaches every client (this one included) via the change feed.
        await self.send_json(
            {"type": "message.sent", "message": MessageSerializer(message).data}
        )

    async def change_feed(self, event: dict[str, Any]) -> None:
        if event.get("table") != MESSAGES_TABLE or event.get("event") != INSERT:
            return
        await self.send_json({"type": "message.created", "message": event["record"]})


class ConversationUpdatesConsumer(AsyncJsonWebsocketConsumer):
    """Account-wide conversation change notifications."""

    joined = False

    async def connect(self) -> None:
        if not _authenticated(self.scope.get("user")):
            await self.close()
            return
        await self.channel_layer.group_add(CONVERSATIONS_GROUP, self.channel_name)
        self.joined = True
        await self.accept()

    async def disconnect(self, code: int) -> None:
        if self.joined:
            await self.channel_layer.group_discard(CONVERSATIONS_GROUP, self.channel_name)

    async def change_feed(self, event: dict[str, Any]) -> None:
        if event.get("table") != CONVERSATIONS_TABLE:
            return
        record = event.get("record") or {}
        await self.send_json(
            {"type": "conversation.updated", "event": event.get("event"), "conversation_id": record.get("id")}
        )
