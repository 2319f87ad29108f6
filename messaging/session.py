"""
Client session controller for messaging.

`MessagingSession` drives an inbox plus one open thread for a single
signed-in user, the way a browser tab or a bot would.  It owns:

* a per-conversation message cache, so re-opening a thread renders
  instantly while the read watermark is moved in the background;
* an in-flight set, so a thread is never fetched twice concurrently;
* a selection generation counter, checked after every await so late
  results of an earlier selection never leak into the visible thread;
* the realtime subscriptions, which it must release on `close()`.

All data access goes through a backend.  `DatabaseBackend` calls the
ORM-level helpers off the event loop and returns plain dicts shaped like
the REST API payloads.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from channels.db import database_sync_to_async
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from . import directory, read_state, services
from .serializers import ConversationSerializer, MessageSerializer
from .subscriptions import subscribe_to_conversation_updates, subscribe_to_messages

logger = logging.getLogger(__name__)

LOCAL_ID_PREFIX = "local-"


def _sort_key(message: dict):
    created_at = message.get("created_at")
    if isinstance(created_at, str):
        created_at = parse_datetime(created_at)
    msg_id = message.get("id")
    # Server ids are integers; optimistic echoes carry string ids.
    if isinstance(msg_id, int):
        return (created_at, 0, msg_id)
    return (created_at, 1, str(msg_id))


def merge_messages(current: list, incoming: list) -> list:
    """Union by message id, ordered by `(created_at, id)`; later copies win."""
    by_id = {m["id"]: m for m in current}
    for message in incoming:
        by_id[message["id"]] = message
    return sorted(by_id.values(), key=_sort_key)


class DatabaseBackend:
    """Session data path over the messaging helpers."""

    def __init__(self, principal, channel_layer=None):
        self.principal = principal
        self.channel_layer = channel_layer

    @property
    def user_id(self):
        return getattr(self.principal, "pk", None)

    # ---------- sync helpers (run in a worker thread) ----------
    def _conversations(self) -> list:
        conversations = directory.list_conversations(self.principal)
        return list(
            ConversationSerializer(conversations, many=True, context={"user": self.principal}).data
        )

    def _messages(self, conversation_id) -> list:
        return list(MessageSerializer(services.list_messages(self.principal, conversation_id), many=True).data)

    def _append(self, conversation_id, content) -> Optional[dict]:
        message = services.append(self.principal, conversation_id, content)
        return dict(MessageSerializer(message).data) if message is not None else None

    def _resolve_direct(self, other_id) -> Optional[str]:
        conversation_id = directory.resolve_or_create_direct(self.principal, other_id)
        return str(conversation_id) if conversation_id is not None else None

    # ---------- async API ----------
    async def list_conversations(self) -> list:
        return await database_sync_to_async(self._conversations)()

    async def list_messages(self, conversation_id) -> list:
        return await database_sync_to_async(self._messages)(conversation_id)

    async def append(self, conversation_id, content) -> Optional[dict]:
        return await database_sync_to_async(self._append)(conversation_id, content)

    async def resolve_direct(self, other_id) -> Optional[str]:
        return await database_sync_to_async(self._resolve_direct)(other_id)

    async def mark_read(self, conversation_id) -> bool:
        return await database_sync_to_async(read_state.mark_read)(self.principal, conversation_id)

    async def subscribe_to_messages(self, conversation_id, on_message):
        return await subscribe_to_messages(conversation_id, on_message, channel_layer=self.channel_layer)

    async def subscribe_to_conversation_updates(self, on_updated):
        return await subscribe_to_conversation_updates(on_updated, channel_layer=self.channel_layer)


class MessagingSession:
    """Inbox and open-thread state for one user session."""

    def __init__(self, backend):
        self.backend = backend
        self.conversations: list = []
        self.active_conversation_id: Optional[str] = None
        self.messages: list = []
        self.loading = False
        self.error: Optional[str] = None

        self._cache: dict = {}
        self._in_flight: set = set()
        self._generation = 0
        self._message_subscription = None
        self._conversation_subscription = None
        self._background: set = set()
        self._closed = False

    # ---------- inbox ----------
    async def start(self) -> list:
        """Subscribe to conversation changes and load the inbox."""
        if self._conversation_subscription is None:
            self._conversation_subscription = await self.backend.subscribe_to_conversation_updates(
                self._on_conversation_updated
            )
        return await self.load_conversations()

    async def load_conversations(self) -> list:
        conversations = await self.backend.list_conversations()
        if not self._closed:
            self.conversations = conversations
        return self.conversations

    def _on_conversation_updated(self, conversation_id) -> None:
        # The feed is account-wide; re-querying filters it down to our rows.
        if not self._closed:
            self._spawn(self.load_conversations())

    async def open_direct(self, other_id) -> Optional[str]:
        """Resolve (or start) the direct conversation with `other_id` and select it."""
        conversation_id = await self.backend.resolve_direct(other_id)
        if conversation_id is None:
            self.error = "Could not start conversation."
            return None
        self.error = None
        await self.load_conversations()
        await self.select_conversation(conversation_id)
        return conversation_id

    # ---------- thread ----------
    def is_current(self, conversation_id, generation: Optional[int] = None) -> bool:
        if self._closed or self.active_conversation_id != conversation_id:
            return False
        return generation is None or generation == self._generation

    async def select_conversation(self, conversation_id) -> list:
        """
        Make `conversation_id` the visible thread.

        The visible list and loading flag are swapped before the first
        await.  A cached thread is shown as is and only the read
        watermark is updated; otherwise the thread is fetched once.
        """
        conversation_id = str(conversation_id)
        self._generation += 1
        generation = self._generation
        self.active_conversation_id = conversation_id

        cached = self._cache.get(conversation_id)
        if cached is not None:
            self.messages = list(cached)
            self.loading = False
        else:
            self.messages = []
            self.loading = True

        await self._watch_messages(conversation_id, generation)
        if not self.is_current(conversation_id, generation):
            return self.messages

        if cached is not None:
            self._spawn(self._mark_read(conversation_id))
            return self.messages

        await self._load_messages(conversation_id)
        if self.is_current(conversation_id) and conversation_id in self._cache:
            self._spawn(self._mark_read(conversation_id))
        return self.messages

    async def _load_messages(self, conversation_id: str) -> None:
        if conversation_id in self._in_flight:
            return
        self._in_flight.add(conversation_id)
        try:
            fetched = await self.backend.list_messages(conversation_id)
        except Exception:
            logger.exception("Loading messages for %s failed", conversation_id)
            fetched = None
        finally:
            self._in_flight.discard(conversation_id)

        if fetched is not None:
            thread = self._cache[conversation_id] = merge_messages(self._cache.get(conversation_id, []), fetched)
        else:
            # Only live records can be cached here; forget them so the next
            # visit fetches the thread again.
            thread = self._cache.pop(conversation_id, [])
        # A newer selection may have happened meanwhile; only touch the
        # visible thread if this conversation is still the active one.
        if self.is_current(conversation_id):
            self.messages = list(thread)
            self.loading = False

    async def _watch_messages(self, conversation_id: str, generation: int) -> None:
        previous, self._message_subscription = self._message_subscription, None
        if previous is not None:
            await previous.close()
        subscription = await self.backend.subscribe_to_messages(conversation_id, self._on_realtime_message)
        if not self.is_current(conversation_id, generation):
            await subscription.close()
            return
        self._message_subscription = subscription

    def _on_realtime_message(self, record: dict) -> None:
        conversation_id = str(record.get("conversation_id"))
        if self._closed:
            return
        # A partial cache entry would later pass for a fully loaded thread.
        if conversation_id not in self._cache and not self.is_current(conversation_id):
            return
        self._cache[conversation_id] = merge_messages(self._cache.get(conversation_id, []), [record])
        if self.is_current(conversation_id) and not self.loading:
            self.messages = list(self._cache[conversation_id])

    async def _mark_read(self, conversation_id: str) -> None:
        try:
            await self.backend.mark_read(conversation_id)
        except Exception:
            logger.warning("Marking %s read failed", conversation_id, exc_info=True)

    async def send_message(self, content) -> Optional[dict]:
        """
        Send to the active conversation.

        A local echo is shown right away; once the store accepts the
        message the thread is replaced by the canonical list, which also
        picks up anything other participants sent in between.
        """
        conversation_id = self.active_conversation_id
        body = (content or "").strip()
        if conversation_id is None or not body:
            return None

        echo = {
            "id": f"{LOCAL_ID_PREFIX}{uuid.uuid4()}",
            "conversation_id": conversation_id,
            "sender_id": self.backend.user_id,
            "content": body,
            "created_at": timezone.now().isoformat(),
            "edited_at": None,
        }
        self._replace_thread(conversation_id, merge_messages(self._cache.get(conversation_id, []), [echo]))

        saved = await self.backend.append(conversation_id, body)
        if saved is None:
            self.error = "Message could not be sent."
            remaining = [m for m in self._cache.get(conversation_id, []) if m["id"] != echo["id"]]
            self._replace_thread(conversation_id, remaining)
            return None

        self.error = None
        canonical = await self.backend.list_messages(conversation_id)
        # Keep live records that reached the cache after the store snapshot.
        current = [m for m in self._cache.get(conversation_id, []) if m["id"] != echo["id"]]
        self._replace_thread(conversation_id, merge_messages(current, list(canonical) + [saved]))
        return saved

    def _replace_thread(self, conversation_id: str, messages: list) -> None:
        if self._closed:
            return
        self._cache[conversation_id] = messages
        if self.is_current(conversation_id):
            self.messages = list(messages)

    # ---------- teardown ----------
    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for background work (read marks, inbox refreshes) to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        """Release every subscription and background task; safe to call twice."""
        self._closed = True
        for attr in ("_message_subscription", "_conversation_subscription"):
            subscription = getattr(self, attr)
            setattr(self, attr, None)
            if subscription is not None:
                await subscription.close()
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()
