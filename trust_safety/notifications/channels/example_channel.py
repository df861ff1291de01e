from trust_safety.logging.logger import Log
from trust_safety.notifications.channels.base import BaseChannel
from trust_safety.notifications.models import Channel, NotificationPayload


class ExampleChannel(BaseChannel):
    """Logs the notification instead of sending it. Used for dev and tests."""

    def __init__(self, channel: Channel) -> None:
        self.channel = channel
        self.delivered: list[tuple[str, NotificationPayload]] = []

    def deliver(self, recipient_id: str, payload: NotificationPayload) -> None:
        self.delivered.append((recipient_id, payload))
        Log.info(
            f"[{self.channel.value}] {payload.subject}",
            recipient_id=recipient_id,
        )
