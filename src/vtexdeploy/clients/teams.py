"""Microsoft Teams incoming webhook client using httpx."""

from typing import TYPE_CHECKING, Any

import httpx

from vtexdeploy.config import TeamsConfig
from vtexdeploy.core.exceptions import NotificationError
from vtexdeploy.core.logging import get_logger

if TYPE_CHECKING:
    from vtexdeploy.deploy.notifications import NotificationMessage

logger = get_logger(__name__)


class TeamsWebhookClient:
    """Posts MessageCard payloads to a Teams incoming webhook."""

    name = "teams"

    def __init__(self, config: TeamsConfig):
        self._config = config
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                headers={"Content-Type": "application/json"},
                timeout=self._config.timeout,
            )
        return self._client

    def _post(self, payload: dict[str, Any]) -> None:
        url = self._config.get_webhook_url()
        if not url:
            raise NotificationError("Teams webhook URL not configured", channel=self.name)

        try:
            response = self.client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise NotificationError(
                f"Teams webhook returned HTTP {status_code}: {e.response.text}",
                channel=self.name,
                status_code=status_code,
            )
        except httpx.RequestError as e:
            raise NotificationError(f"Teams request failed: {e}", channel=self.name)

    def build_payload(self, message: "NotificationMessage") -> dict[str, Any]:
        """Render a message as a legacy Office 365 MessageCard."""
        facts = [{"name": label, "value": str(value)} for label, value in message.fields]
        facts.append({"name": "Status", "value": message.status_label})

        payload: dict[str, Any] = {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "summary": message.title,
            "themeColor": message.color.lstrip("#"),
            "sections": [
                {
                    "activityTitle": message.title,
                    "activitySubtitle": message.text or "VTEX Deploy Bot",
                    "facts": facts,
                    "markdown": True,
                }
            ],
        }
        if message.link:
            payload["potentialAction"] = [
                {
                    "@type": "OpenUri",
                    "name": "Open workspace",
                    "targets": [{"os": "default", "uri": message.link}],
                }
            ]
        return payload

    def send(self, message: "NotificationMessage") -> None:
        """Send a rendered deployment message."""
        self._post(self.build_payload(message))
        logger.debug("Teams notification sent")

    def test(self) -> None:
        """Send a test card to verify the webhook."""
        self._post(
            {
                "@type": "MessageCard",
                "@context": "http://schema.org/extensions",
                "summary": "Test Notification - VTEX Deploy Bot",
                "themeColor": "0078D4",
                "sections": [
                    {
                        "activityTitle": "Test Notification",
                        "activitySubtitle": "VTEX Deploy Bot",
                        "facts": [{"name": "Status", "value": "Testing"}],
                    }
                ],
            }
        )

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None
