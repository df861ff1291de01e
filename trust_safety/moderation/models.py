from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EntityKind(str, Enum):
    SUBMISSION = "submission"
    LISTING = "listing"
    USER = "user"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def from_risk(cls, risk_score: float) -> "Priority":
        """Map the highest provider risk score onto a review priority."""
        if risk_score >= 0.8:
            return cls.HIGH
        if risk_score >= 0.5:
            return cls.MEDIUM
        return cls.LOW


_PRIORITY_RANK = {Priority.LOW: 1, Priority.MEDIUM: 2, Priority.HIGH: 3}


class ModerationStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    RESOLVED = "resolved"


class ResolutionOutcome(str, Enum):
    UPHELD = "upheld"
    DISMISSED = "dismissed"


@dataclass(frozen=True)
class ModerationItem:
    """A unit of human-review work (row of the moderation_items table)."""

    id: int
    entity_kind: EntityKind
    entity_id: str
    priority: Priority
    status: ModerationStatus
    metadata: dict[str, Any] = field(default_factory=dict)
    assignee_id: str | None = None
    outcome: ResolutionOutcome | None = None
    resolution_notes: str | None = None
    enrolled_at: datetime | None = None
    assigned_at: datetime | None = None
    resolved_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in (ModerationStatus.PENDING, ModerationStatus.ASSIGNED)


@dataclass(frozen=True)
class EnrollmentResult:
    """Outcome of an enrollment: the open item id and whether it was newly created."""

    item_id: int
    created: bool
    priority: Priority
