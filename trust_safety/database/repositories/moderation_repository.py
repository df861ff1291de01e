from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from trust_safety.database.connection import connection_scope, get_connection
from trust_safety.exceptions import (
    AlreadyAssignedError,
    InfrastructureError,
    InvalidTransitionError,
    NotFoundError,
)
from trust_safety.moderation.models import (
    EnrollmentResult,
    EntityKind,
    ModerationItem,
    ModerationStatus,
    Priority,
    ResolutionOutcome,
)

_ITEM_COLUMNS = """
    id, entity_kind, entity_id, priority, status, assignee_id, outcome,
    resolution_notes, metadata, enrolled_at, assigned_at, resolved_at
"""

# high before medium before low, then oldest enrollment first
_REVIEW_ORDER = "priority_rank DESC, enrolled_at, id"


class ModerationRepository:
    """Database operations for the moderation_items table.

    "One open item per entity" is enforced by the partial unique index
    ``moderation_items_open_entity_idx``; enrollment relies on it through
    INSERT ... ON CONFLICT instead of any application-level lock.
    """

    def enroll(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        priority: Priority,
        metadata: dict[str, Any],
        enrolled_at: datetime | None = None,
        conn: psycopg.Connection[Any] | None = None,
    ) -> EnrollmentResult:
        """Create an open item or raise the priority of the existing one.

        Metadata is merged shallowly; keys from the newer enrollment win.
        """
        with connection_scope(conn) as scoped:
            with scoped.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO moderation_items
                        (entity_kind, entity_id, priority, priority_rank, status,
                         metadata, enrolled_at)
                    VALUES (%s, %s, %s, %s, 'pending', %s, COALESCE(%s::timestamptz, NOW()))
                    ON CONFLICT (entity_kind, entity_id)
                        WHERE status IN ('pending', 'assigned')
                    DO UPDATE SET
                        priority = CASE
                            WHEN EXCLUDED.priority_rank > moderation_items.priority_rank
                            THEN EXCLUDED.priority
                            ELSE moderation_items.priority
                        END,
                        priority_rank = GREATEST(
                            moderation_items.priority_rank, EXCLUDED.priority_rank
                        ),
                        metadata = moderation_items.metadata || EXCLUDED.metadata
                    RETURNING id, priority, (xmax = 0) AS created
                    """,
                    (
                        entity_kind.value,
                        entity_id,
                        priority.value,
                        priority.rank,
                        Jsonb(metadata),
                        enrolled_at,
                    ),
                )
                row = cur.fetchone()

        if row is None:
            raise InfrastructureError("Moderation enrollment returned no row")
        return EnrollmentResult(
            item_id=row["id"],
            created=bool(row["created"]),
            priority=Priority(row["priority"]),
        )

    def find_by_id(self, item_id: int) -> ModerationItem:
        """Find a moderation item by ID.

        Raises:
            NotFoundError: if no item with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_ITEM_COLUMNS} FROM moderation_items WHERE id = %s",
                    (item_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise NotFoundError(f"Moderation item {item_id} not found")
        return _to_item(row)

    def list_pending(
        self, priority: Priority | None = None, limit: int = 100
    ) -> list[ModerationItem]:
        """Return pending items in review order, optionally for one tier."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_ITEM_COLUMNS}
                    FROM moderation_items
                    WHERE status = 'pending'
                      AND (%s::text IS NULL OR priority = %s::text)
                    ORDER BY {_REVIEW_ORDER}
                    LIMIT %s
                    """,
                    (
                        priority.value if priority else None,
                        priority.value if priority else None,
                        limit,
                    ),
                )
                rows = cur.fetchall()
        return [_to_item(row) for row in rows]

    def assign(self, item_id: int, reviewer_id: str) -> ModerationItem:
        """Move ``pending`` -> ``assigned``. The first assigner wins.

        Raises:
            NotFoundError: if the item does not exist.
            AlreadyAssignedError: if another reviewer already holds the item.
            InvalidTransitionError: if the item is already resolved.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE moderation_items
                    SET status = 'assigned', assignee_id = %s, assigned_at = NOW()
                    WHERE id = %s AND status = 'pending'
                    RETURNING {_ITEM_COLUMNS}
                    """,
                    (reviewer_id, item_id),
                )
                row = cur.fetchone()
            conn.commit()

        if row is not None:
            return _to_item(row)

        current = self.find_by_id(item_id)
        if current.status == ModerationStatus.ASSIGNED:
            raise AlreadyAssignedError(
                f"Moderation item {item_id} is already assigned to {current.assignee_id}"
            )
        raise InvalidTransitionError(
            f"Moderation item {item_id} is {current.status.value}, expected pending"
        )

    def claim_next(self, reviewer_id: str) -> ModerationItem | None:
        """Assign the next pending item in review order to ``reviewer_id``."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE moderation_items
                    SET status = 'assigned', assignee_id = %s, assigned_at = NOW()
                    WHERE id = (
                        SELECT id
                        FROM moderation_items
                        WHERE status = 'pending'
                        ORDER BY {_REVIEW_ORDER}
                        LIMIT 1
                        FOR UPDATE SKIP LOCKED
                    )
                      AND status = 'pending'
                    RETURNING {_ITEM_COLUMNS}
                    """,
                    (reviewer_id,),
                )
                row = cur.fetchone()
            conn.commit()
        return _to_item(row) if row is not None else None

    def resolve(
        self,
        item_id: int,
        outcome: ResolutionOutcome,
        notes: str | None = None,
    ) -> ModerationItem:
        """Move ``assigned`` -> ``resolved``.

        Raises:
            NotFoundError: if the item does not exist.
            InvalidTransitionError: if the item is not assigned.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE moderation_items
                    SET status = 'resolved', outcome = %s, resolution_notes = %s,
                        resolved_at = NOW()
                    WHERE id = %s AND status = 'assigned'
                    RETURNING {_ITEM_COLUMNS}
                    """,
                    (outcome.value, notes, item_id),
                )
                row = cur.fetchone()
            conn.commit()

        if row is not None:
            return _to_item(row)

        current = self.find_by_id(item_id)
        raise InvalidTransitionError(
            f"Moderation item {item_id} is {current.status.value}, expected assigned"
        )


def _to_item(row: dict[str, Any]) -> ModerationItem:
    return ModerationItem(
        id=row["id"],
        entity_kind=EntityKind(row["entity_kind"]),
        entity_id=row["entity_id"],
        priority=Priority(row["priority"]),
        status=ModerationStatus(row["status"]),
        metadata=dict(row["metadata"] or {}),
        assignee_id=row["assignee_id"],
        outcome=ResolutionOutcome(row["outcome"]) if row["outcome"] else None,
        resolution_notes=row["resolution_notes"],
        enrolled_at=row["enrolled_at"],
        assigned_at=row["assigned_at"],
        resolved_at=row["resolved_at"],
    )
