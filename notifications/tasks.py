"""
Celery tasks for the notifications app.

Message notifications are delivered out of band so that a slow or failing
notification path can never affect the latency or result of a send.
"""
import logging

from celery import shared_task

from .services import record_message_notification

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def deliver_message_notification(payload: dict) -> None:
    """Persist one "new message" notification described by `payload`."""
    notification = record_message_notification(payload)
    if notification is None:
        logger.warning(
            "Message notification for %s in %s was not delivered",
            payload.get("recipient_id"),
            payload.get("conversation_id"),
        )
