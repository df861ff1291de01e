from datetime import datetime, timedelta
from typing import Any

import psycopg
import pytest

from tests.helpers import T0
from trust_safety.database.repositories.notification_repository import NotificationRepository
from trust_safety.notifications.models import (
    Channel,
    NotificationPayload,
    NotificationPriority,
    NotificationStatus,
)

_PAYLOAD = NotificationPayload(subject="Listing under review", body="Thanks for your patience")


def _enqueue(
    repo: NotificationRepository,
    recipient_id: str,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    now: datetime = T0,
) -> int:
    return repo.enqueue(recipient_id, Channel.EMAIL, _PAYLOAD, priority, now).id


@pytest.mark.integration
class TestClaimBatch:
    def test_high_priority_first_then_leased(self, db_conn: psycopg.Connection[Any]) -> None:
        repo = NotificationRepository()
        normal = _enqueue(repo, "u1")
        high = _enqueue(repo, "u2", NotificationPriority.HIGH, T0 + timedelta(seconds=5))
        now = T0 + timedelta(minutes=1)

        batch = repo.claim_batch(db_conn, now, 10, now + timedelta(seconds=60))

        assert [task.id for task in batch] == [high, normal]
        assert repo.claim_batch(db_conn, now, 10, now + timedelta(seconds=60)) == []

    def test_expired_lease_is_claimable_again(self, db_conn: psycopg.Connection[Any]) -> None:
        repo = NotificationRepository()
        task_id = _enqueue(repo, "u1")
        repo.claim_batch(db_conn, T0, 10, T0 + timedelta(seconds=60))

        later = T0 + timedelta(seconds=61)
        batch = repo.claim_batch(db_conn, later, 10, later + timedelta(seconds=60))

        assert [task.id for task in batch] == [task_id]

    def test_future_tasks_are_not_eligible(self, db_conn: psycopg.Connection[Any]) -> None:
        repo = NotificationRepository()
        _enqueue(repo, "u1", now=T0 + timedelta(minutes=10))

        assert repo.claim_batch(db_conn, T0, 10, T0 + timedelta(seconds=60)) == []


@pytest.mark.integration
class TestRetryCas:
    def test_reschedule_applies_once_per_attempt(self, clean_db: None) -> None:
        repo = NotificationRepository()
        task_id = _enqueue(repo, "u1")
        next_at = T0 + timedelta(minutes=2)

        assert repo.reschedule(task_id, 0, next_at, "timeout") is True
        assert repo.reschedule(task_id, 0, next_at, "timeout") is False

        task = repo.find_by_id(task_id)
        assert task.retry_count == 1
        assert task.next_eligible_at == next_at
        assert task.last_error == "timeout"

    def test_sent_task_cannot_fail(self, clean_db: None) -> None:
        repo = NotificationRepository()
        task_id = _enqueue(repo, "u1")

        assert repo.mark_sent(task_id, T0) is True
        assert repo.mark_failed(task_id, 0, "late error") is False
        assert repo.find_by_id(task_id).status == NotificationStatus.SENT


@pytest.mark.integration
class TestRenewLease:
    def test_holder_extends_its_own_lease(self, db_conn: psycopg.Connection[Any]) -> None:
        repo = NotificationRepository()
        task_id = _enqueue(repo, "u1")
        held = T0 + timedelta(seconds=60)
        repo.claim_batch(db_conn, T0, 10, held)

        assert repo.renew_lease(task_id, held, T0 + timedelta(seconds=120)) is True
        assert repo.find_by_id(task_id).locked_until == T0 + timedelta(seconds=120)

    def test_lease_taken_over_after_expiry_cannot_be_renewed(
        self, db_conn: psycopg.Connection[Any]
    ) -> None:
        repo = NotificationRepository()
        task_id = _enqueue(repo, "u1")
        first = T0 + timedelta(seconds=60)
        repo.claim_batch(db_conn, T0, 10, first)
        later = T0 + timedelta(seconds=61)
        repo.claim_batch(db_conn, later, 10, later + timedelta(seconds=60))

        assert repo.renew_lease(task_id, first, later + timedelta(seconds=60)) is False
        assert repo.find_by_id(task_id).locked_until == later + timedelta(seconds=60)
