from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import psycopg

from trust_safety.database.repositories.notification_repository import NotificationRepository
from trust_safety.logging.logger import Log
from trust_safety.metrics.sink import Counter, MetricsSink
from trust_safety.notifications.models import (
    Channel,
    NotificationPayload,
    NotificationPriority,
    NotificationTask,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationQueue:
    """Producer side of the durable notification queue."""

    def __init__(
        self,
        repo: NotificationRepository,
        metrics: MetricsSink,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repo
        self._metrics = metrics
        self._clock = clock

    def enqueue(
        self,
        recipient_id: str,
        channel: Channel,
        subject: str,
        body: str,
        data: dict[str, Any] | None = None,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        conn: psycopg.Connection[Any] | None = None,
    ) -> NotificationTask:
        """Persist a pending task, in the caller's transaction when ``conn`` is given."""
        task = self._repo.enqueue(
            recipient_id=recipient_id,
            channel=channel,
            payload=NotificationPayload(subject=subject, body=body, data=data or {}),
            priority=priority,
            now=self._clock(),
            conn=conn,
        )
        self._metrics.increment(Counter.NOTIFICATIONS_ENQUEUED, channel=channel.value)
        Log.info(
            "Notification enqueued",
            task_id=task.id,
            recipient_id=recipient_id,
            channel=channel.value,
            priority=priority.value,
        )
        return task
