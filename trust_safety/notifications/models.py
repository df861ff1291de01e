from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Channel(str, Enum):
    EMAIL = "email"
    PUSH = "push"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


@dataclass(frozen=True)
class NotificationPayload:
    subject: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationTask:
    """One pending unit of outbound delivery (row of notification_tasks)."""

    id: int
    recipient_id: str
    channel: Channel
    payload: NotificationPayload
    status: NotificationStatus
    retry_count: int
    next_eligible_at: datetime
    created_at: datetime
    priority: NotificationPriority = NotificationPriority.NORMAL
    last_error: str | None = None
    sent_at: datetime | None = None
    locked_until: datetime | None = None
