from collections.abc import Callable, Mapping
from datetime import datetime, timedelta

from trust_safety.config.settings import Settings
from trust_safety.database.connection import get_connection
from trust_safety.database.repositories.notification_repository import NotificationRepository
from trust_safety.exceptions import DeliveryError
from trust_safety.logging.logger import Log
from trust_safety.metrics.sink import Counter, Gauge, MetricsSink
from trust_safety.notifications.channels.base import BaseChannel
from trust_safety.notifications.models import Channel, NotificationTask
from trust_safety.notifications.queue import utc_now


def backoff_delay(retry_count: int) -> timedelta:
    """Delay before the next attempt, given the retry count after incrementing."""
    return timedelta(minutes=2**retry_count)


class NotificationDispatcher:
    """Claims eligible tasks and attempts delivery, applying the retry schedule.

    A failed attempt with ``retry_count < max`` increments the count and
    pushes ``next_eligible_at`` to ``now + 2^count`` minutes; at the max the
    task becomes ``failed`` and the count is left unchanged.
    """

    def __init__(
        self,
        repo: NotificationRepository,
        channels: Mapping[Channel, BaseChannel],
        metrics: MetricsSink,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo = repo
        self._channels = channels
        self._metrics = metrics
        self._settings = settings
        self._clock = clock

    def dispatch_batch(self) -> int:
        """Claim and attempt one batch. Returns the number of tasks attempted.

        Each task's lease is renewed from the current time just before its
        delivery, so a slow batch never runs a task whose claim has lapsed.
        A task whose lease was taken over elsewhere is skipped.
        """
        lease = timedelta(seconds=self._settings.notification_lease_seconds)
        claimed_at = self._clock()
        with get_connection() as conn:
            tasks = self._repo.claim_batch(
                conn,
                now=claimed_at,
                limit=self._settings.notification_batch_size,
                lease_until=claimed_at + lease,
            )
        self._metrics.gauge(Gauge.NOTIFICATION_BATCH_SIZE, len(tasks))
        if tasks:
            Log.debug(f"Claimed {len(tasks)} notification task(s)")

        attempted = 0
        for task in tasks:
            now = self._clock()
            if task.locked_until is None or not self._repo.renew_lease(
                task.id, task.locked_until, now + lease
            ):
                Log.warning("Notification lease lost before delivery", task_id=task.id)
                continue
            self.attempt(task, now)
            attempted += 1
        return attempted


    def attempt(self, task: NotificationTask, now: datetime) -> None:
        Log.info(
            "Delivering notification",
            task_id=task.id,
            channel=task.channel.value,
            attempt=task.retry_count + 1,
        )
        try:
            self._deliver(task)
        except DeliveryError as exc:
            self._handle_failure(task, str(exc), now)
            return
        except Exception as exc:
            Log.exception("Unexpected error delivering notification", task_id=task.id)
            self._handle_failure(task, f"{type(exc).__name__}: {exc}", now)
            return

        if self._repo.mark_sent(task.id, now):
            self._metrics.increment(Counter.NOTIFICATIONS_SENT, channel=task.channel.value)
            Log.info("Notification sent", task_id=task.id)
        else:
            Log.warning("Notification sent but task was no longer pending", task_id=task.id)

    def _deliver(self, task: NotificationTask) -> None:
        channel = self._channels.get(task.channel)
        if channel is None:
            raise DeliveryError(f"No adapter configured for channel {task.channel.value}")
        channel.deliver(task.recipient_id, task.payload)

    def _handle_failure(self, task: NotificationTask, error: str, now: datetime) -> None:
        """Reschedule with backoff, or fail permanently at the retry limit."""
        Log.warning("Notification delivery failed", task_id=task.id, error=error)
        if task.retry_count >= self._settings.notification_max_retries:
            if self._repo.mark_failed(task.id, task.retry_count, error):
                self._metrics.increment(Counter.NOTIFICATIONS_FAILED, channel=task.channel.value)
                Log.error(
                    "Notification permanently failed",
                    task_id=task.id,
                    retries=task.retry_count,
                )
            return

        retry_count = task.retry_count + 1
        next_eligible_at = now + backoff_delay(retry_count)
        if self._repo.reschedule(task.id, task.retry_count, next_eligible_at, error):
            self._metrics.increment(Counter.NOTIFICATIONS_RETRIED, channel=task.channel.value)
            Log.info(
                "Notification rescheduled",
                task_id=task.id,
                retry_count=retry_count,
                next_eligible_at=next_eligible_at.isoformat(),
            )
        else:
            Log.warning("Notification outcome already recorded elsewhere", task_id=task.id)
