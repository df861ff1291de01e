import html
from collections.abc import Callable

import httpx

from trust_safety.exceptions import DeliveryError
from trust_safety.notifications.channels.base import BaseChannel
from trust_safety.notifications.models import Channel, NotificationPayload

EMAIL_TEMPLATE = """\
<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #1f2933;">
    <h2>{subject}</h2>
    <p>{body}</p>
    <p style="color: #616e7c;">The Bazari Trust &amp; Safety team</p>
  </body>
</html>
"""


def render_email(payload: NotificationPayload) -> str:
    body = html.escape(payload.body).replace("\n", "<br>")
    return EMAIL_TEMPLATE.format(subject=html.escape(payload.subject), body=body)


class HttpEmailChannel(BaseChannel):
    """Sends email through an HTTP mail API (Resend-compatible JSON body).

    ``resolve_address`` maps a recipient id to an address. Recipients that are
    already addresses are used as-is.
    """

    channel = Channel.EMAIL

    def __init__(
        self,
        api_url: str,
        api_key: str,
        from_address: str,
        resolve_address: Callable[[str], str | None],
        timeout_seconds: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_url = api_url
        self._from_address = from_address
        self._resolve_address = resolve_address
        self._client = client or httpx.Client(
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    def deliver(self, recipient_id: str, payload: NotificationPayload) -> None:
        address = recipient_id if "@" in recipient_id else self._resolve_address(recipient_id)
        if not address:
            raise DeliveryError(f"No email address on file for {recipient_id}")

        try:
            response = self._client.post(
                self._api_url,
                json={
                    "from": self._from_address,
                    "to": [address],
                    "subject": payload.subject,
                    "html": render_email(payload),
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"Email API returned {exc.response.status_code} for {recipient_id}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Email API request failed: {exc}") from exc
