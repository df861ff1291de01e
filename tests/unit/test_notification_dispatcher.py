from collections.abc import Generator
from dataclasses import replace
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from tests.helpers import T0, FixedClock
from trust_safety.config.settings import Settings
from trust_safety.exceptions import DeliveryError
from trust_safety.metrics.sink import Counter, Gauge, InMemoryMetricsSink
from trust_safety.notifications.dispatcher import NotificationDispatcher, backoff_delay
from trust_safety.notifications.models import (
    Channel,
    NotificationPayload,
    NotificationPriority,
    NotificationStatus,
    NotificationTask,
)


class InMemoryNotificationRepository:
    """Mirrors the conditional writes of NotificationRepository."""

    def __init__(self) -> None:
        self.tasks: dict[int, NotificationTask] = {}

    def add(
        self,
        recipient_id: str = "user-1",
        channel: Channel = Channel.PUSH,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        created_at: datetime = T0,
    ) -> NotificationTask:
        task = NotificationTask(
            id=len(self.tasks) + 1,
            recipient_id=recipient_id,
            channel=channel,
            payload=NotificationPayload(subject="s", body="b"),
            status=NotificationStatus.PENDING,
            retry_count=0,
            next_eligible_at=created_at,
            created_at=created_at,
            priority=priority,
        )
        self.tasks[task.id] = task
        return task

    def claim_batch(
        self, conn: object, now: datetime, limit: int, lease_until: datetime
    ) -> list[NotificationTask]:
        eligible = [
            task
            for task in self.tasks.values()
            if task.status == NotificationStatus.PENDING
            and task.next_eligible_at <= now
            and (task.locked_until is None or task.locked_until <= now)
        ]
        eligible.sort(
            key=lambda t: (t.priority != NotificationPriority.HIGH, t.next_eligible_at, t.id)
        )
        claimed = []
        for task in eligible[:limit]:
            self.tasks[task.id] = replace(task, locked_until=lease_until)
            claimed.append(self.tasks[task.id])
        return claimed

    def renew_lease(self, task_id: int, held_until: datetime, lease_until: datetime) -> bool:
        task = self.tasks[task_id]
        if task.status != NotificationStatus.PENDING or task.locked_until != held_until:
            return False
        self.tasks[task_id] = replace(task, locked_until=lease_until)
        return True

    def mark_sent(self, task_id: int, now: datetime) -> bool:
        task = self.tasks[task_id]
        if task.status != NotificationStatus.PENDING:
            return False
        self.tasks[task_id] = replace(
            task, status=NotificationStatus.SENT, sent_at=now, locked_until=None
        )
        return True

    def reschedule(
        self, task_id: int, expected_retry_count: int, next_eligible_at: datetime, error: str
    ) -> bool:
        task = self.tasks[task_id]
        if task.status != NotificationStatus.PENDING or task.retry_count != expected_retry_count:
            return False
        self.tasks[task_id] = replace(
            task,
            retry_count=task.retry_count + 1,
            next_eligible_at=next_eligible_at,
            last_error=error,
            locked_until=None,
        )
        return True

    def mark_failed(self, task_id: int, expected_retry_count: int, error: str) -> bool:
        task = self.tasks[task_id]
        if task.status != NotificationStatus.PENDING or task.retry_count != expected_retry_count:
            return False
        self.tasks[task_id] = replace(
            task, status=NotificationStatus.FAILED, last_error=error, locked_until=None
        )
        return True


@pytest.fixture(autouse=True)
def _no_database() -> Generator[None, None, None]:
    with patch("trust_safety.notifications.dispatcher.get_connection") as mock_get_conn:
        mock_get_conn.return_value.__enter__ = MagicMock(return_value=MagicMock())
        mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
        yield


def _make_dispatcher(
    settings: Settings,
    metrics: InMemoryMetricsSink,
    clock: FixedClock,
) -> tuple[NotificationDispatcher, InMemoryNotificationRepository, MagicMock]:
    repo = InMemoryNotificationRepository()
    push = MagicMock()
    dispatcher = NotificationDispatcher(
        repo,  # type: ignore[arg-type]
        {Channel.PUSH: push},
        metrics,
        settings,
        clock=clock,
    )
    return dispatcher, repo, push


class TestBackoff:
    def test_doubles_per_retry(self) -> None:
        assert backoff_delay(1) == timedelta(minutes=2)
        assert backoff_delay(2) == timedelta(minutes=4)
        assert backoff_delay(3) == timedelta(minutes=8)


class TestDelivery:
    def test_success_marks_sent(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        task = repo.add()

        assert dispatcher.dispatch_batch() == 1

        push.deliver.assert_called_once_with("user-1", task.payload)
        stored = repo.tasks[task.id]
        assert stored.status == NotificationStatus.SENT
        assert stored.sent_at == T0
        assert metrics.count(Counter.NOTIFICATIONS_SENT) == 1
        assert metrics.last(Gauge.NOTIFICATION_BATCH_SIZE) == 1

    def test_nothing_eligible(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        repo.add(created_at=T0 + timedelta(minutes=1))

        assert dispatcher.dispatch_batch() == 0
        push.deliver.assert_not_called()

    def test_high_priority_first(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        repo.add(recipient_id="normal", created_at=T0 - timedelta(minutes=5))
        repo.add(recipient_id="urgent", priority=NotificationPriority.HIGH)

        dispatcher.dispatch_batch()

        recipients = [call.args[0] for call in push.deliver.call_args_list]
        assert recipients == ["urgent", "normal"]

    def test_missing_channel_adapter_is_a_delivery_failure(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, _push = _make_dispatcher(settings, metrics, clock)
        task = repo.add(channel=Channel.EMAIL)

        dispatcher.dispatch_batch()

        stored = repo.tasks[task.id]
        assert stored.status == NotificationStatus.PENDING
        assert stored.retry_count == 1
        assert "No adapter" in (stored.last_error or "")

    def test_unexpected_channel_error_is_absorbed(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        task = repo.add()
        push.deliver.side_effect = RuntimeError("boom")

        dispatcher.dispatch_batch()

        assert repo.tasks[task.id].retry_count == 1
        assert repo.tasks[task.id].last_error == "RuntimeError: boom"


class TestRetrySchedule:
    def test_backs_off_two_four_eight_minutes_then_fails(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        task = repo.add(created_at=T0)
        push.deliver.side_effect = DeliveryError("gateway unavailable")

        dispatcher.dispatch_batch()
        assert repo.tasks[task.id].next_eligible_at == T0 + timedelta(minutes=2)

        clock.advance(timedelta(minutes=1))
        assert dispatcher.dispatch_batch() == 0

        clock.now = T0 + timedelta(minutes=2)
        dispatcher.dispatch_batch()
        assert repo.tasks[task.id].next_eligible_at == T0 + timedelta(minutes=6)

        clock.now = T0 + timedelta(minutes=6)
        dispatcher.dispatch_batch()
        stored = repo.tasks[task.id]
        assert stored.next_eligible_at == T0 + timedelta(minutes=14)
        assert stored.retry_count == 3
        assert stored.status == NotificationStatus.PENDING

        clock.now = T0 + timedelta(minutes=14)
        dispatcher.dispatch_batch()
        stored = repo.tasks[task.id]
        assert stored.status == NotificationStatus.FAILED
        assert stored.retry_count == 3
        assert stored.last_error == "gateway unavailable"

        clock.advance(timedelta(days=1))
        assert dispatcher.dispatch_batch() == 0
        assert push.deliver.call_count == 4
        assert metrics.count(Counter.NOTIFICATIONS_RETRIED) == 3
        assert metrics.count(Counter.NOTIFICATIONS_FAILED) == 1

    def test_next_eligible_time_strictly_increases(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        task = repo.add()
        push.deliver.side_effect = DeliveryError("down")

        seen = [repo.tasks[task.id].next_eligible_at]
        for _ in range(3):
            clock.now = repo.tasks[task.id].next_eligible_at
            dispatcher.dispatch_batch()
            seen.append(repo.tasks[task.id].next_eligible_at)

        assert seen == sorted(set(seen))
        assert all(moment >= repo.tasks[task.id].created_at for moment in seen)

    def test_recovers_after_a_failure(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        task = repo.add()
        push.deliver.side_effect = [DeliveryError("flaky"), None]

        dispatcher.dispatch_batch()
        clock.advance(timedelta(minutes=2))
        dispatcher.dispatch_batch()

        assert repo.tasks[task.id].status == NotificationStatus.SENT
        assert repo.tasks[task.id].retry_count == 1


class TestLease:
    def test_leased_task_is_not_claimed_twice(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, _push = _make_dispatcher(settings, metrics, clock)
        task = repo.add()

        claimed = repo.claim_batch(None, T0, 10, T0 + timedelta(seconds=60))

        assert [t.id for t in claimed] == [task.id]
        assert dispatcher.dispatch_batch() == 0

    def test_stale_outcome_is_not_recorded(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        task = repo.add()
        push.deliver.side_effect = DeliveryError("down")
        stale = replace(task, retry_count=5)

        dispatcher.attempt(stale, T0)

        assert repo.tasks[task.id].retry_count == 0
        assert metrics.count(Counter.NOTIFICATIONS_RETRIED) == 0

    def test_each_delivery_starts_with_a_full_lease(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        repo.add(recipient_id="a")
        second = repo.add(recipient_id="b")
        remaining: list[timedelta] = []

        def slow_delivery(recipient_id: str, payload: NotificationPayload) -> None:
            task = next(t for t in repo.tasks.values() if t.recipient_id == recipient_id)
            assert task.locked_until is not None
            remaining.append(task.locked_until - clock.now)
            clock.advance(timedelta(seconds=50))

        push.deliver.side_effect = slow_delivery

        assert dispatcher.dispatch_batch() == 2

        lease = timedelta(seconds=settings.notification_lease_seconds)
        assert remaining == [lease, lease]
        assert repo.tasks[second.id].sent_at == T0 + timedelta(seconds=50)

    def test_task_reclaimed_mid_batch_is_not_delivered_twice(
        self, settings: Settings, metrics: InMemoryMetricsSink, clock: FixedClock
    ) -> None:
        dispatcher, repo, push = _make_dispatcher(settings, metrics, clock)
        repo.add(recipient_id="a")
        second = repo.add(recipient_id="b")

        def reclaimed_elsewhere(recipient_id: str, payload: NotificationPayload) -> None:
            clock.advance(timedelta(seconds=settings.notification_lease_seconds + 1))
            repo.claim_batch(None, clock.now, 10, clock.now + timedelta(seconds=60))

        push.deliver.side_effect = reclaimed_elsewhere

        assert dispatcher.dispatch_batch() == 1

        recipients = [call.args[0] for call in push.deliver.call_args_list]
        assert recipients == ["a"]
        assert repo.tasks[second.id].status == NotificationStatus.PENDING
