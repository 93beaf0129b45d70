"""
Outbox relay.

Moves ``OutboxEvent`` rows for one topic to a publisher callable and records
the outcome on each row. Failed rows are retried on later runs until
``max_retries`` is reached.
"""

from __future__ import annotations

import json
from typing import Callable, Dict, Optional

import redis
import structlog
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.db.models import Q

from modules.core.models import EventStatus, OutboxEvent

logger = structlog.get_logger(__name__)

Publisher = Callable[[OutboxEvent], None]


class RedisChannelPublisher:
    """Publishes each event on ``<prefix>:<recipient_id>`` via Redis pub/sub."""

    def __init__(self, url: Optional[str] = None, prefix: str = "notifications"):
        self._client = redis.Redis.from_url(url or settings.REDIS_URL)
        self._prefix = prefix

    def channel_for(self, event: OutboxEvent) -> str:
        return f"{self._prefix}:{event.recipient_id or 'broadcast'}"

    def __call__(self, event: OutboxEvent) -> None:
        message = json.dumps(
            {
                "event_id": str(event.id),
                "event_type": event.event_type,
                "payload": event.payload,
            },
            cls=DjangoJSONEncoder,
        )
        self._client.publish(self.channel_for(event), message)


class OutboxRelay:
    def __init__(
        self,
        publish: Publisher,
        topic: str = "notifications",
        batch_size: int = 100,
        max_retries: int = 5,
    ) -> None:
        self._publish = publish
        self._topic = topic
        self._batch_size = batch_size
        self._max_retries = max_retries

    def run(self) -> Dict[str, int]:
        """Deliver one batch; returns published/failed counts."""
        published = failed = 0
        with transaction.atomic():
            batch = list(
                OutboxEvent.objects.select_for_update(skip_locked=True)
                .filter(topic=self._topic)
                .filter(
                    Q(status=EventStatus.PENDING)
                    | Q(
                        status=EventStatus.FAILED,
                        retry_count__lt=self._max_retries,
                    )
                )
                .order_by("created_at")[: self._batch_size]
            )
            for event in batch:
                try:
                    self._publish(event)
                except Exception as exc:
                    logger.warning(
                        "outbox.publish_failed",
                        event_id=str(event.id),
                        event_type=event.event_type,
                        retry_count=event.retry_count + 1,
                        error=str(exc),
                    )
                    event.mark_as_failed(str(exc))
                    failed += 1
                else:
                    event.mark_as_published()
                    published += 1
        return {"published": published, "failed": failed}
