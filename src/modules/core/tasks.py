"""Asynchronous tasks for the core module."""

import structlog
from celery import shared_task
from django.conf import settings

from modules.core.outbox import OutboxRelay, RedisChannelPublisher

logger = structlog.get_logger(__name__)


@shared_task(name="core.publish_notifications")
def publish_notifications():
    """Relay pending ``notifications`` outbox rows to Redis pub/sub."""
    relay = OutboxRelay(
        RedisChannelPublisher(),
        topic="notifications",
        batch_size=settings.OUTBOX["BATCH_SIZE"],
        max_retries=settings.OUTBOX["MAX_RETRIES"],
    )
    summary = relay.run()
    logger.info("publish_notifications.executed", **summary)
    return summary
