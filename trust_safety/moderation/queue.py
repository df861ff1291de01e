from datetime import datetime
from typing import Any

import psycopg

from trust_safety.config.settings import Settings
from trust_safety.database.repositories.moderation_repository import ModerationRepository
from trust_safety.logging.logger import Log
from trust_safety.metrics.sink import Counter, MetricsSink
from trust_safety.moderation.models import (
    EnrollmentResult,
    EntityKind,
    ModerationItem,
    Priority,
    ResolutionOutcome,
)
from trust_safety.notifications.models import Channel
from trust_safety.notifications.queue import NotificationQueue
from trust_safety.trust.aggregator import TrustScoreAggregator

# metadata keys that reference users whose trust score depends on the outcome
USER_REFERENCE_KEYS = ("submitter_id", "reported_user_id", "user_id")


class ModerationQueue:
    """Priority-ordered human review queue.

    Review order is high, medium, low; oldest enrollment first inside a tier.
    """

    def __init__(
        self,
        repo: ModerationRepository,
        trust: TrustScoreAggregator,
        notifications: NotificationQueue,
        metrics: MetricsSink,
        settings: Settings,
    ) -> None:
        self._repo = repo
        self._trust = trust
        self._notifications = notifications
        self._metrics = metrics
        self._settings = settings

    def enroll(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        priority: Priority,
        metadata: dict[str, Any] | None = None,
        enrolled_at: datetime | None = None,
        conn: psycopg.Connection[Any] | None = None,
    ) -> EnrollmentResult:
        """Enroll an entity, or merge into its open item if one exists.

        With ``conn`` the item and the team alert are written in the caller's
        transaction and become visible only when the caller commits.
        """
        result = self._repo.enroll(
            entity_kind, entity_id, priority, metadata or {}, enrolled_at, conn=conn
        )
        if result.created:
            self._metrics.increment(Counter.MODERATION_ENROLLED, priority=result.priority.value)
            Log.info(
                "Moderation item enrolled",
                item_id=result.item_id,
                entity=f"{entity_kind.value}:{entity_id}",
                priority=result.priority.value,
            )
        else:
            self._metrics.increment(Counter.MODERATION_MERGED, priority=result.priority.value)
            Log.info(
                "Merged into open moderation item",
                item_id=result.item_id,
                entity=f"{entity_kind.value}:{entity_id}",
                priority=result.priority.value,
            )

        if result.created and result.priority == Priority.HIGH:
            self._notifications.enqueue(
                recipient_id=self._settings.moderation_team_recipient,
                channel=Channel.EMAIL,
                subject=f"High-priority review: {entity_kind.value} {entity_id}",
                body=(
                    f"A {entity_kind.value} was enrolled for review with high priority. "
                    f"Moderation item #{result.item_id} is waiting in the queue."
                ),
                data={"moderation_item_id": result.item_id},
                conn=conn,
            )
        return result

    def list_pending(
        self, priority: Priority | None = None, limit: int = 100
    ) -> list[ModerationItem]:
        return self._repo.list_pending(priority, limit)

    def assign(self, item_id: int, reviewer_id: str) -> ModerationItem:
        """Raises AlreadyAssignedError if another reviewer got there first."""
        item = self._repo.assign(item_id, reviewer_id)
        self._metrics.increment(Counter.MODERATION_ASSIGNED)
        Log.info("Moderation item assigned", item_id=item_id, reviewer_id=reviewer_id)
        return item

    def claim_next(self, reviewer_id: str) -> ModerationItem | None:
        """Assign the next item in review order to ``reviewer_id``."""
        item = self._repo.claim_next(reviewer_id)
        if item is not None:
            self._metrics.increment(Counter.MODERATION_ASSIGNED)
            Log.info("Moderation item claimed", item_id=item.id, reviewer_id=reviewer_id)
        return item

    def resolve(
        self,
        item_id: int,
        outcome: ResolutionOutcome,
        notes: str | None = None,
    ) -> ModerationItem:
        """Close an assigned item and recompute trust for every referenced user."""
        item = self._repo.resolve(item_id, outcome, notes)
        self._metrics.increment(Counter.MODERATION_RESOLVED, outcome=outcome.value)
        Log.info("Moderation item resolved", item_id=item_id, outcome=outcome.value)

        if outcome == ResolutionOutcome.UPHELD:
            self._apply_upheld(item)
        for user_id in referenced_users(item.metadata):
            self._trust.recompute(user_id)

        submitter_id = item.metadata.get("submitter_id")
        if submitter_id:
            self._notifications.enqueue(
                recipient_id=str(submitter_id),
                channel=Channel.PUSH,
                subject="Your item review is complete",
                body=_resolution_message(outcome),
                data={"moderation_item_id": item.id, "outcome": outcome.value},
            )
        return item

    def _apply_upheld(self, item: ModerationItem) -> None:
        reported_user_id = item.metadata.get("reported_user_id")
        if reported_user_id:
            self._trust.record_report_upheld(str(reported_user_id))
        owner_id = item.metadata.get("submitter_id") or reported_user_id
        if owner_id and item.metadata.get("cultural_flagged"):
            self._trust.record_cultural_flag_upheld(str(owner_id))


def referenced_users(metadata: dict[str, Any]) -> list[str]:
    """Distinct user ids named in item metadata, in key order."""
    users: list[str] = []
    for key in USER_REFERENCE_KEYS:
        value = metadata.get(key)
        if value and str(value) not in users:
            users.append(str(value))
    return users


def _resolution_message(outcome: ResolutionOutcome) -> str:
    if outcome == ResolutionOutcome.UPHELD:
        return (
            "A moderator reviewed your item and found that it violates "
            "our community guidelines."
        )
    return "A moderator reviewed your item and found no policy violation."
