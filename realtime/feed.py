"""
Row-level change feed over the Channels layer.

Publishers send one event per inserted/updated row to a channel-layer
group::

    {"type": "change.feed", "table": "messages", "event": "INSERT", "record": {...}}

A `Subscription` joins such a group on its own channel and invokes the
registered callbacks for every matching event.  Delivery is at-least-once
(a resubscribe or a redelivering transport can repeat events), so
callbacks must be idempotent.

Subscription lifecycle::

    inactive -> subscribing -> active -> error -> retrying -> subscribing ...
                                 \\-> inactive (close)

`close()` may be called any number of times and always releases the
group membership and the reader task.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings

logger = logging.getLogger(__name__)

EVENT_TYPE = "change.feed"
INSERT = "INSERT"
UPDATE = "UPDATE"


class SubscriptionState(str, Enum):
    INACTIVE = "inactive"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERROR = "error"
    RETRYING = "retrying"


def build_event(table: str, event: str, record: dict) -> dict:
    return {"type": EVENT_TYPE, "table": table, "event": event, "record": record}


async def apublish(group: str, table: str, event: str, record: dict, channel_layer=None) -> bool:
    layer = channel_layer or get_channel_layer()
    if layer is None:
        return False
    await layer.group_send(group, build_event(table, event, record))
    return True


def publish(group: str, table: str, event: str, record: dict, channel_layer=None) -> bool:
    """
    Synchronously publish one row event; returns False when it was not sent.

    Publishing is best-effort: a missing or failing channel layer is
    logged and never propagates to the writer.
    """
    try:
        return async_to_sync(apublish)(group, table, event, record, channel_layer)
    except Exception:
        logger.warning("Change feed publish to %s failed", group, exc_info=True)
        return False


class Subscription:
    """Callback registration over one channel-layer group."""

    def __init__(
        self,
        group: str,
        *,
        table: str,
        events: Iterable[str],
        match: Optional[dict] = None,
        channel_layer=None,
        retry_delay: Optional[float] = None,
    ) -> None:
        self.group = group
        self.table = table
        self.events = frozenset(events)
        self.match = dict(match or {})
        self.state = SubscriptionState.INACTIVE
        self.retry_delay = (
            retry_delay
            if retry_delay is not None
            else getattr(settings, "MESSAGING_REALTIME_RETRY_SECONDS", 1.0)
        )
        self._layer = channel_layer
        self._handlers: list[Callable[[dict], Any]] = []
        self._channel: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    def __repr__(self) -> str:
        return f"<Subscription {self.group} {self.table} {sorted(self.events)} {self.state.value}>"

    @property
    def is_active(self) -> bool:
        return self.state == SubscriptionState.ACTIVE

    def on_event(self, handler: Callable[[dict], Any]) -> "Subscription":
        """Register `handler(event)`; sync and async callables are both accepted."""
        self._handlers.append(handler)
        return self

    # ---------- lifecycle ----------
    async def open(self) -> "Subscription":
        """Join the group and start delivering; a failed join keeps retrying."""
        if self._task is not None and not self._task.done():
            return self
        self._closed = False
        if self._layer is None:
            self._layer = get_channel_layer()
        try:
            await self._subscribe()
        except Exception:
            logger.warning("Subscribing to %s failed, will retry", self.group, exc_info=True)
            self.state = SubscriptionState.ERROR
        self._task = asyncio.ensure_future(self._run())
        return self

    async def close(self) -> None:
        """Release the channel and reader task; safe to call repeatedly."""
        self._closed = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release_channel()
        self.state = SubscriptionState.INACTIVE

    async def __aenter__(self) -> "Subscription":
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ---------- internals ----------
    async def _subscribe(self) -> None:
        self.state = SubscriptionState.SUBSCRIBING
        channel = await self._layer.new_channel()
        await self._layer.group_add(self.group, channel)
        self._channel = channel
        self.state = SubscriptionState.ACTIVE
        logger.debug("Subscribed %s to %s", channel, self.group)

    async def _release_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None or self._layer is None:
            return
        try:
            await self._layer.group_discard(self.group, channel)
        except Exception:
            logger.warning("Could not leave group %s", self.group, exc_info=True)

    async def _run(self) -> None:
        while not self._closed:
            try:
                if self.state != SubscriptionState.ACTIVE:
                    self.state = SubscriptionState.RETRYING
                    await asyncio.sleep(self.retry_delay)
                    await self._release_channel()
                    await self._subscribe()
                message = await self._layer.receive(self._channel)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("Subscription to %s failed, retrying", self.group, exc_info=True)
                self.state = SubscriptionState.ERROR
                continue
            await self._dispatch(message)

    def _matches(self, message: dict) -> bool:
        if message.get("type") != EVENT_TYPE:
            return False
        if message.get("table") != self.table or message.get("event") not in self.events:
            return False
        record = message.get("record") or {}
        return all(str(record.get(field)) == str(value) for field, value in self.match.items())

    async def _dispatch(self, message: dict) -> None:
        if not self._matches(message):
            return
        for handler in list(self._handlers):
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Change feed handler failed for %s", self.group)
