import httpx

from trust_safety.exceptions import DeliveryError
from trust_safety.notifications.channels.base import BaseChannel
from trust_safety.notifications.models import Channel, NotificationPayload


class HttpPushChannel(BaseChannel):
    """Posts push notifications to a gateway that fans out to user devices."""

    channel = Channel.PUSH

    def __init__(
        self,
        gateway_url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._gateway_url = gateway_url
        self._client = client or httpx.Client(
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    def deliver(self, recipient_id: str, payload: NotificationPayload) -> None:
        try:
            response = self._client.post(
                self._gateway_url,
                json={
                    "user_id": recipient_id,
                    "title": payload.subject,
                    "body": payload.body,
                    "data": payload.data,
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"Push gateway returned {exc.response.status_code} for {recipient_id}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Push gateway request failed: {exc}") from exc
