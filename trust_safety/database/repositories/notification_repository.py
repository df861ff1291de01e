from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from trust_safety.database.connection import connection_scope, get_connection
from trust_safety.exceptions import InfrastructureError, NotFoundError
from trust_safety.notifications.models import (
    Channel,
    NotificationPayload,
    NotificationPriority,
    NotificationStatus,
    NotificationTask,
)

_TASK_COLUMNS = """
    id, recipient_id, channel, priority, subject, body, data, status,
    retry_count, next_eligible_at, locked_until, last_error, created_at, sent_at
"""


class NotificationRepository:
    """Database operations for the notification_tasks table.

    Every outcome write is conditioned on ``status = 'pending'`` and on the
    retry count the dispatcher observed, so a task whose lease expired and was
    re-claimed elsewhere cannot be rescheduled twice for the same attempt.
    """

    def enqueue(
        self,
        recipient_id: str,
        channel: Channel,
        payload: NotificationPayload,
        priority: NotificationPriority,
        now: datetime,
        conn: psycopg.Connection[Any] | None = None,
    ) -> NotificationTask:
        """Insert a pending task that is eligible immediately."""
        with connection_scope(conn) as scoped:
            with scoped.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO notification_tasks
                        (recipient_id, channel, priority, subject, body, data,
                         status, retry_count, next_eligible_at, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, 'pending', 0, %s, %s)
                    RETURNING {_TASK_COLUMNS}
                    """,
                    (
                        recipient_id,
                        channel.value,
                        priority.value,
                        payload.subject,
                        payload.body,
                        Jsonb(payload.data),
                        now,
                        now,
                    ),
                )
                row = cur.fetchone()

        if row is None:
            raise InfrastructureError("Notification task insert returned no row")
        return _to_task(row)

    def find_by_id(self, task_id: int) -> NotificationTask:
        """Find a task by ID.

        Raises:
            NotFoundError: if no task with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_TASK_COLUMNS} FROM notification_tasks WHERE id = %s",
                    (task_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise NotFoundError(f"Notification task {task_id} not found")
        return _to_task(row)

    def claim_batch(
        self,
        conn: psycopg.Connection[Any],
        now: datetime,
        limit: int,
        lease_until: datetime,
    ) -> list[NotificationTask]:
        """Lease up to ``limit`` eligible tasks, high priority first.

        Tasks are locked with SKIP LOCKED and then stamped with
        ``locked_until`` so no other dispatcher picks them up until the lease
        expires, even after this transaction commits.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id
                FROM notification_tasks
                WHERE status = 'pending'
                  AND next_eligible_at <= %s
                  AND (locked_until IS NULL OR locked_until <= %s)
                ORDER BY (priority = 'high') DESC, next_eligible_at, id
                LIMIT %s
                FOR UPDATE SKIP LOCKED
                """,
                (now, now, limit),
            )
            ids = [row["id"] for row in cur.fetchall()]
            if not ids:
                conn.rollback()
                return []

            cur.execute(
                f"""
                UPDATE notification_tasks
                SET locked_until = %s
                WHERE id = ANY(%s)
                RETURNING {_TASK_COLUMNS}
                """,
                (lease_until, ids),
            )
            rows = cur.fetchall()
        conn.commit()

        tasks = [_to_task(row) for row in rows]
        # RETURNING order is unspecified
        order = {task_id: index for index, task_id in enumerate(ids)}
        return sorted(tasks, key=lambda task: order[task.id])

    def renew_lease(self, task_id: int, held_until: datetime, lease_until: datetime) -> bool:
        """Extend a lease this dispatcher still holds. False if it was re-claimed or finished."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE notification_tasks
                    SET locked_until = %s
                    WHERE id = %s AND status = 'pending' AND locked_until = %s
                    """,
                    (lease_until, task_id, held_until),
                )
                updated = cur.rowcount
            conn.commit()
        return updated == 1

    def mark_sent(self, task_id: int, now: datetime) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE notification_tasks
                    SET status = 'sent', sent_at = %s, locked_until = NULL, last_error = NULL
                    WHERE id = %s AND status = 'pending'
                    """,
                    (now, task_id),
                )
                updated = cur.rowcount
            conn.commit()
        return updated == 1

    def reschedule(
        self,
        task_id: int,
        expected_retry_count: int,
        next_eligible_at: datetime,
        error: str,
    ) -> bool:
        """Increment the retry count and push the task back. False if the CAS lost."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE notification_tasks
                    SET retry_count = retry_count + 1,
                        next_eligible_at = %s,
                        last_error = %s,
                        locked_until = NULL
                    WHERE id = %s AND status = 'pending' AND retry_count = %s
                    """,
                    (next_eligible_at, error, task_id, expected_retry_count),
                )
                updated = cur.rowcount
            conn.commit()
        return updated == 1

    def mark_failed(self, task_id: int, expected_retry_count: int, error: str) -> bool:
        """Give up on a task. The retry count is left as observed."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE notification_tasks
                    SET status = 'failed', last_error = %s, locked_until = NULL
                    WHERE id = %s AND status = 'pending' AND retry_count = %s
                    """,
                    (error, task_id, expected_retry_count),
                )
                updated = cur.rowcount
            conn.commit()
        return updated == 1


def _to_task(row: dict[str, Any]) -> NotificationTask:
    return NotificationTask(
        id=row["id"],
        recipient_id=row["recipient_id"],
        channel=Channel(row["channel"]),
        payload=NotificationPayload(
            subject=row["subject"],
            body=row["body"],
            data=dict(row["data"] or {}),
        ),
        status=NotificationStatus(row["status"]),
        retry_count=row["retry_count"],
        next_eligible_at=row["next_eligible_at"],
        created_at=row["created_at"],
        priority=NotificationPriority(row["priority"]),
        last_error=row["last_error"],
        sent_at=row["sent_at"],
        locked_until=row["locked_until"],
    )
