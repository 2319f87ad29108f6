"""
Change-feed subscriptions for messaging tables.

`messaging.signals` publishes every new message to
``messages.<conversation_id>`` and every conversation insert/update to
the account-wide ``conversations`` group.  The helpers below open a
`realtime.feed.Subscription` on those groups and adapt events into the
shapes callers want.  The caller owns the returned subscription and
must `close()` it.
"""
from __future__ import annotations

from typing import Any, Callable

from realtime.feed import INSERT, UPDATE, Subscription

MESSAGES_TABLE = "messages"
CONVERSATIONS_TABLE = "conversations"
CONVERSATIONS_GROUP = "conversations"


def messages_group(conversation_id) -> str:
    return f"messages.{conversation_id}"


async def subscribe_to_messages(
    conversation_id, on_message: Callable[[dict], Any], channel_layer=None
) -> Subscription:
    """Call `on_message(record)` for each message inserted into the conversation."""
    subscription = Subscription(
        messages_group(conversation_id),
        table=MESSAGES_TABLE,
        events=[INSERT],
        match={"conversation_id": conversation_id},
        channel_layer=channel_layer,
    )
    subscription.on_event(lambda event: on_message(event["record"]))
    return await subscription.open()


async def subscribe_to_conversation_updates(
    on_updated: Callable[[str], Any], channel_layer=None
) -> Subscription:
    """
    Call `on_updated(conversation_id)` for any conversation insert or update.

    The feed is not scoped to a user; callers re-query to find out whether
    the change concerns them.
    """
    subscription = Subscription(
        CONVERSATIONS_GROUP,
        table=CONVERSATIONS_TABLE,
        events=[INSERT, UPDATE],
        channel_layer=channel_layer,
    )
    subscription.on_event(lambda event: on_updated(event["record"].get("id")))
    return await subscription.open()
