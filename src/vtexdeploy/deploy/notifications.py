"""Deployment notification templates and multi-channel fan-out."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol

from vtexdeploy.core.async_utils import gather_settled, run_sync
from vtexdeploy.core.logging import get_logger
from vtexdeploy.deploy.models import (
    DeploymentResult,
    HealthCheckSummary,
    HealthStatus,
    NotificationEvent,
)

if TYPE_CHECKING:
    from vtexdeploy.config import NotificationsConfig

logger = get_logger(__name__)

GREEN = "#36a64f"
ORANGE = "#ff9500"
RED = "#ff0000"


class NotificationChannel(Protocol):
    """A transport that can deliver a rendered message."""

    name: str

    def send(self, message: "NotificationMessage") -> None:
        ...

    def test(self) -> None:
        ...


@dataclass
class NotificationMessage:
    """Channel-neutral rendering of one event."""

    event: str
    environment: str
    title: str
    text: str
    emoji: str
    color: str
    status_label: str
    fields: list[tuple[str, str]] = field(default_factory=list)
    link: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_failure(self) -> bool:
        return self.color == RED


# event -> (title, qa emoji, production emoji, color, status label)
_TEMPLATES: dict[NotificationEvent, tuple[str, str, str, str, str]] = {
    NotificationEvent.STARTED: ("Deployment Started", ":rocket:", ":warning:", ORANGE, "In Progress"),
    NotificationEvent.SUCCESS: ("Deployment Successful", ":white_check_mark:", ":tada:", GREEN, "Success"),
    NotificationEvent.FAILURE: ("Deployment Failed", ":x:", ":x:", RED, "Failed"),
    NotificationEvent.ROLLBACK_STARTED: (
        "Rollback Started",
        ":leftwards_arrow_with_hook:",
        ":leftwards_arrow_with_hook:",
        ORANGE,
        "In Progress",
    ),
    NotificationEvent.ROLLBACK_SUCCESS: ("Rollback Successful", ":white_check_mark:", ":white_check_mark:", GREEN, "Success"),
    NotificationEvent.ROLLBACK_FAILED: ("Rollback Failed", ":x:", ":x:", RED, "Failed"),
}


def render_message(event: NotificationEvent, result: DeploymentResult) -> NotificationMessage:
    """Build the message for a deployment event."""
    title, qa_emoji, prod_emoji, color, status_label = _TEMPLATES[event]
    environment = result.environment.value
    emoji = prod_emoji if environment == "production" else qa_emoji

    fields: list[tuple[str, str]] = [
        ("Environment", environment.upper()),
        ("Deployment ID", result.id),
    ]
    if result.version:
        fields.append(("Version", result.version))
    if result.branch:
        fields.append(("Branch", result.branch))
    if result.workspace:
        fields.append(("Workspace", result.workspace))
    if result.canary:
        fields.append(("Canary", f"{result.canary_percentage}%"))
    if result.rollback_target:
        fields.append(("Rollback Target", result.rollback_target))
    if result.duration_ms is not None:
        fields.append(("Duration", f"{round(result.duration_ms / 1000)}s"))

    text = ""
    if result.error and event in (
        NotificationEvent.FAILURE,
        NotificationEvent.ROLLBACK_STARTED,
        NotificationEvent.ROLLBACK_FAILED,
    ):
        text = f"Error: {result.error}"
    elif result.dry_run:
        text = "Dry run: no changes were made"

    return NotificationMessage(
        event=event.value,
        environment=environment,
        title=title,
        text=text,
        emoji=emoji,
        color=color,
        status_label=status_label,
        fields=fields,
        link=result.workspace_url,
    )


def render_health_message(summary: HealthCheckSummary, environment: str) -> NotificationMessage:
    """Build an alert for a non-healthy or recovered health check run."""
    if summary.overall == HealthStatus.CRITICAL:
        title, emoji, color, label = "Critical Health Check Failure", ":rotating_light:", RED, "Critical"
        failing = summary.critical
    elif summary.overall == HealthStatus.WARNING:
        title, emoji, color, label = "Health Check Warning", ":warning:", ORANGE, "Warning"
        failing = summary.warnings
    else:
        title, emoji, color, label = "Services Recovered", ":white_check_mark:", GREEN, "Healthy"
        failing = []

    fields = [("Environment", environment.upper())]
    fields += [(r.service, r.message) for r in failing]
    if summary.recovered:
        fields.append(("Recovered", ", ".join(summary.recovered)))

    return NotificationMessage(
        event=f"health_{summary.overall.value}",
        environment=environment,
        title=title,
        text="\n".join(summary.recommendations),
        emoji=emoji,
        color=color,
        status_label=label,
        fields=fields,
    )


class NotificationService:
    """Sends each message to every configured channel concurrently.

    Delivery never raises to the caller: per-channel failures are logged and
    reported in the returned mapping.
    """

    def __init__(self, channels: list[NotificationChannel] | None = None):
        self.channels: list[NotificationChannel] = list(channels or [])

    @classmethod
    def from_config(cls, config: "NotificationsConfig") -> "NotificationService":
        from vtexdeploy.clients.email import EmailClient
        from vtexdeploy.clients.slack import SlackWebhookClient
        from vtexdeploy.clients.teams import TeamsWebhookClient

        channels: list[NotificationChannel] = []
        if config.slack.enabled:
            channels.append(SlackWebhookClient(config.slack))
        if config.teams.enabled:
            channels.append(TeamsWebhookClient(config.teams))
        if config.email.enabled:
            channels.append(EmailClient(config.email))
        return cls(channels)

    @property
    def enabled(self) -> bool:
        return bool(self.channels)

    async def deliver(self, message: NotificationMessage) -> dict[str, bool]:
        """Send one message to all channels and join on every delivery."""
        if not self.channels:
            return {}

        outcomes = await gather_settled(
            *[asyncio.to_thread(channel.send, message) for channel in self.channels]
        )

        delivered: dict[str, bool] = {}
        for channel, outcome in zip(self.channels, outcomes):
            delivered[channel.name] = outcome.ok
            if not outcome.ok:
                logger.warning(f"Failed to send {message.event} notification via {channel.name}: {outcome.error}")
        return delivered

    def send(self, event: NotificationEvent, result: DeploymentResult) -> dict[str, bool]:
        """Render and deliver a deployment event."""
        try:
            message = render_message(event, result)
            delivered = run_sync(self.deliver(message))
        except Exception as e:
            logger.warning(f"Notification fan-out for {event.value} failed: {e}")
            return {}

        if delivered:
            logger.debug(f"Notification {event.value} delivered: {delivered}")
        return delivered

    def send_health_alert(self, summary: HealthCheckSummary, environment: str) -> dict[str, bool]:
        """Alert on critical/warning health, or on recovery."""
        if summary.overall == HealthStatus.HEALTHY and not summary.recovered:
            return {}
        try:
            return run_sync(self.deliver(render_health_message(summary, environment)))
        except Exception as e:
            logger.warning(f"Health alert fan-out failed: {e}")
            return {}

    def test_channels(self) -> dict[str, bool]:
        """Send a test message through every channel."""

        async def _test_all() -> dict[str, bool]:
            outcomes = await gather_settled(
                *[asyncio.to_thread(channel.test) for channel in self.channels]
            )
            results: dict[str, bool] = {}
            for channel, outcome in zip(self.channels, outcomes):
                results[channel.name] = outcome.ok
                if not outcome.ok:
                    logger.warning(f"Test notification via {channel.name} failed: {outcome.error}")
            return results

        if not self.channels:
            return {}
        return run_sync(_test_all())

    def close(self) -> None:
        """Release channel transports that hold open connections."""
        for channel in self.channels:
            close = getattr(channel, "close", None)
            if close is not None:
                close()
