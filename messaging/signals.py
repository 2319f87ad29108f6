"""
Signal handlers for the messaging app.

Publish row events to the realtime change feed.  Events are sent only
after the surrounding transaction commits, so subscribers never see a
row that was rolled back.
"""
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from realtime import feed

from .models import Conversation, Message
from .serializers import ConversationRecordSerializer, MessageSerializer
from .subscriptions import CONVERSATIONS_GROUP, CONVERSATIONS_TABLE, MESSAGES_TABLE, messages_group


@receiver(post_save, sender=Message)
def on_message_created(sender, instance: Message, created: bool, **kwargs) -> None:
    """Publish new messages; edits are not part of the feed."""
    if not created:
        return
    record = dict(MessageSerializer(instance).data)
    group = messages_group(instance.conversation_id)
    transaction.on_commit(lambda: feed.publish(group, MESSAGES_TABLE, feed.INSERT, record))


@receiver(post_save, sender=Conversation)
def on_conversation_saved(sender, instance: Conversation, created: bool, **kwargs) -> None:
    record = dict(ConversationRecordSerializer(instance).data)
    event = feed.INSERT if created else feed.UPDATE
    transaction.on_commit(
        lambda: feed.publish(CONVERSATIONS_GROUP, CONVERSATIONS_TABLE, event, record)
    )
