"""
Tests for the change-feed subscription lifecycle.
"""
import asyncio

import pytest
from channels.layers import InMemoryChannelLayer

from realtime.feed import INSERT, UPDATE, Subscription, SubscriptionState, apublish, build_event, publish

GROUP = "messages.test"


class FlakyLayer(InMemoryChannelLayer):
    """In-memory layer whose first `failures` group joins fail."""

    def __init__(self, failures=1, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.joins = 0

    async def group_add(self, group, channel):
        self.joins += 1
        if self.failures:
            self.failures -= 1
            raise ConnectionError("layer unavailable")
        await super().group_add(group, channel)


class BrokenLayer:
    async def group_send(self, group, message):
        raise ConnectionError("redis down")


async def _collect(subscription, count):
    received = []
    done = asyncio.Event()

    def handler(event):
        received.append(event)
        if len(received) >= count:
            done.set()

    subscription.on_event(handler)
    return received, done


@pytest.mark.asyncio
async def test_delivers_matching_events_only():
    layer = InMemoryChannelLayer()
    subscription = Subscription(GROUP, table="messages", events=[INSERT], match={"conversation_id": 7}, channel_layer=layer)
    received, done = await _collect(subscription, 1)

    await subscription.open()
    assert subscription.state == SubscriptionState.ACTIVE
    assert subscription.is_active

    await layer.group_send(GROUP, {"type": "something.else", "table": "messages", "event": INSERT, "record": {}})
    await apublish(GROUP, "conversations", INSERT, {"conversation_id": 7}, layer)
    await apublish(GROUP, "messages", UPDATE, {"conversation_id": 7}, layer)
    await apublish(GROUP, "messages", INSERT, {"conversation_id": 8}, layer)
    await apublish(GROUP, "messages", INSERT, {"id": 1, "conversation_id": "7"}, layer)
    await asyncio.wait_for(done.wait(), timeout=1)
    await subscription.close()

    assert received == [build_event("messages", INSERT, {"id": 1, "conversation_id": "7"})]


@pytest.mark.asyncio
async def test_duplicate_delivery_reaches_handler_twice():
    layer = InMemoryChannelLayer()
    subscription = Subscription(GROUP, table="messages", events=[INSERT], channel_layer=layer)
    received, done = await _collect(subscription, 2)
    await subscription.open()

    for _ in range(2):
        await apublish(GROUP, "messages", INSERT, {"id": 5}, layer)
    await asyncio.wait_for(done.wait(), timeout=1)
    await subscription.close()

    assert [e["record"]["id"] for e in received] == [5, 5]


@pytest.mark.asyncio
async def test_close_is_idempotent_and_releases_group():
    layer = InMemoryChannelLayer()
    subscription = Subscription(GROUP, table="messages", events=[INSERT], channel_layer=layer)
    await subscription.open()
    assert GROUP in layer.groups

    await subscription.close()
    await subscription.close()

    assert subscription.state == SubscriptionState.INACTIVE
    assert GROUP not in layer.groups


@pytest.mark.asyncio
async def test_failed_join_is_retried():
    layer = FlakyLayer(failures=2)
    subscription = Subscription(GROUP, table="messages", events=[INSERT], channel_layer=layer, retry_delay=0.01)
    received, done = await _collect(subscription, 1)

    await subscription.open()
    assert subscription.state == SubscriptionState.ERROR

    for _ in range(100):
        if subscription.is_active:
            break
        await asyncio.sleep(0.01)
    assert subscription.is_active
    assert layer.joins == 3

    await apublish(GROUP, "messages", INSERT, {"id": 9}, layer)
    await asyncio.wait_for(done.wait(), timeout=1)
    await subscription.close()
    assert received[0]["record"] == {"id": 9}


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_delivery():
    layer = InMemoryChannelLayer()
    subscription = Subscription(GROUP, table="messages", events=[INSERT], channel_layer=layer)
    seen = []
    done = asyncio.Event()

    def flaky(event):
        if event["record"]["id"] == 1:
            raise ValueError("bad row")
        seen.append(event["record"]["id"])
        done.set()

    subscription.on_event(flaky)
    await subscription.open()
    await apublish(GROUP, "messages", INSERT, {"id": 1}, layer)
    await apublish(GROUP, "messages", INSERT, {"id": 2}, layer)
    await asyncio.wait_for(done.wait(), timeout=1)

    assert subscription.is_active
    await subscription.close()
    assert seen == [2]


@pytest.mark.asyncio
async def test_async_context_manager_closes():
    layer = InMemoryChannelLayer()
    async with Subscription(GROUP, table="messages", events=[INSERT], channel_layer=layer) as subscription:
        assert subscription.is_active
    assert subscription.state == SubscriptionState.INACTIVE
    assert GROUP not in layer.groups


def test_publish_is_best_effort():
    assert publish(GROUP, "messages", INSERT, {"id": 1}, InMemoryChannelLayer()) is True
    assert publish(GROUP, "messages", INSERT, {"id": 1}, BrokenLayer()) is False
