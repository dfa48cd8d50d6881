"""Slack incoming webhook client using httpx."""

from typing import TYPE_CHECKING, Any

import httpx

from vtexdeploy.config import SlackConfig
from vtexdeploy.core.exceptions import NotificationError
from vtexdeploy.core.logging import get_logger

if TYPE_CHECKING:
    from vtexdeploy.deploy.notifications import NotificationMessage

logger = get_logger(__name__)


class SlackWebhookClient:
    """Posts deployment messages to a Slack incoming webhook."""

    name = "slack"

    def __init__(self, config: SlackConfig):
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
            logger.debug("Created Slack webhook client")
        return self._client

    def _post(self, payload: dict[str, Any]) -> None:
        url = self._config.get_webhook_url()
        if not url:
            raise NotificationError("Slack webhook URL not configured", channel=self.name)

        try:
            response = self.client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise NotificationError(
                f"Slack webhook returned HTTP {status_code}: {e.response.text}",
                channel=self.name,
                status_code=status_code,
            )
        except httpx.RequestError as e:
            raise NotificationError(f"Slack request failed: {e}", channel=self.name)

    def build_payload(self, message: "NotificationMessage") -> dict[str, Any]:
        """Render a message as Slack blocks plus a colored attachment."""
        lines = [f"{message.emoji} *{message.title}*"]
        if message.text:
            lines.append("")
            lines.append(message.text)
        lines.extend(f"*{label}:* {value}" for label, value in message.fields)

        mention = ""
        if message.is_failure and self._config.mention_on_failure and self._config.mention_users:
            mention = " ".join(f"<@{user}>" for user in self._config.mention_users) + " "

        payload: dict[str, Any] = {
            "text": f"{mention}{message.emoji} {message.title}",
            "blocks": [
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": "\n".join(lines)},
                }
            ],
            "attachments": [
                {
                    "color": message.color,
                    "fields": [
                        {"title": "Status", "value": message.status_label, "short": True},
                        {"title": "Time", "value": message.timestamp.isoformat(), "short": True},
                    ],
                }
            ],
            "username": self._config.username,
            "icon_emoji": self._config.icon_emoji,
        }
        if self._config.channel:
            payload["channel"] = self._config.channel
        return payload

    def send(self, message: "NotificationMessage") -> None:
        """Send a rendered deployment message."""
        self._post(self.build_payload(message))
        logger.debug("Slack notification sent")

    def test(self) -> None:
        """Send a test message to verify the webhook."""
        self._post(
            {
                "text": ":test_tube: Test notification from VTEX Deploy Bot",
                "blocks": [
                    {
                        "type": "section",
                        "text": {
                            "type": "mrkdwn",
                            "text": "*Test Notification* :white_check_mark:\n\n"
                            "This is a test message to verify Slack integration is working correctly.",
                        },
                    }
                ],
                "username": self._config.username,
                "icon_emoji": self._config.icon_emoji,
            }
        )

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "SlackWebhookClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
