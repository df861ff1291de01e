from abc import ABC, abstractmethod
from typing import ClassVar

from trust_safety.notifications.models import Channel, NotificationPayload


class BaseChannel(ABC):
    """Abstract base for delivery channel adapters."""

    channel: ClassVar[Channel]

    @abstractmethod
    def deliver(self, recipient_id: str, payload: NotificationPayload) -> None:
        """Deliver one notification.

        Raises:
            DeliveryError: if this attempt failed. The dispatcher decides
                whether to retry.
        """
