"""SMTP email client for deployment notifications."""

import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from html import escape
from typing import TYPE_CHECKING

from vtexdeploy.config import EmailConfig
from vtexdeploy.core.exceptions import NotificationError
from vtexdeploy.core.logging import get_logger

if TYPE_CHECKING:
    from vtexdeploy.deploy.notifications import NotificationMessage

logger = get_logger(__name__)


class EmailClient:
    """Sends deployment messages over SMTP.

    Port 465 or ``smtp_secure`` uses implicit TLS; any other port upgrades
    with STARTTLS.
    """

    name = "email"

    def __init__(self, config: EmailConfig):
        self._config = config

    @property
    def recipients(self) -> list[str]:
        return list(self._config.to) + list(self._config.cc)

    def build_message(self, subject: str, text: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._config.from_address or ""
        msg["To"] = ", ".join(self._config.to)
        if self._config.cc:
            msg["Cc"] = ", ".join(self._config.cc)
        msg.set_content(text)
        msg.add_alternative(html, subtype="html")
        return msg

    def render(self, message: "NotificationMessage") -> EmailMessage:
        """Render a deployment message as a multipart email."""
        text_lines = [message.title, ""]
        if message.text:
            text_lines += [message.text, ""]
        text_lines += [f"{label}: {value}" for label, value in message.fields]

        rows = "".join(
            f"<tr><td><strong>{escape(label)}</strong></td><td>{escape(str(value))}</td></tr>"
            for label, value in message.fields
        )
        html = (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            f'<h2 style="color: {message.color};">{escape(message.title)}</h2>'
            f"<p>{escape(message.text)}</p>"
            f"<table>{rows}</table>"
            '<hr style="border: 1px solid #eee; margin: 20px 0;">'
            '<p style="color: #666; font-size: 12px;">VTEX Deploy Bot</p>'
            "</div>"
        )
        subject = f"[{message.environment.upper()}] {message.title}"
        return self.build_message(subject, "\n".join(text_lines), html)

    def _deliver(self, msg: EmailMessage) -> None:
        host = self._config.get_smtp_host()
        if not host:
            raise NotificationError("SMTP host not configured", channel=self.name)
        if not self._config.to:
            raise NotificationError("No email recipients configured", channel=self.name)

        port = self._config.smtp_port
        implicit_tls = self._config.smtp_secure or port == 465

        try:
            if implicit_tls:
                server = smtplib.SMTP_SSL(host, port, timeout=self._config.timeout)
            else:
                server = smtplib.SMTP(host, port, timeout=self._config.timeout)
            try:
                if not implicit_tls:
                    server.starttls()
                password = self._config.get_smtp_password()
                if self._config.smtp_user and password:
                    server.login(self._config.smtp_user, password)
                server.send_message(msg, to_addrs=self.recipients)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP delivery failed: {e}", channel=self.name)

    def send(self, message: "NotificationMessage") -> None:
        """Send a rendered deployment message."""
        self._deliver(self.render(message))
        logger.debug(f"Email notification sent to {len(self.recipients)} recipient(s)")

    def test(self) -> None:
        """Send a test email to verify SMTP settings."""
        sent_at = datetime.now(timezone.utc).isoformat()
        self._deliver(
            self.build_message(
                "Test Notification - VTEX Deploy Bot",
                f"This is a test email to verify email integration is working correctly.\n\nSent at: {sent_at}",
                "<h2>Test Notification</h2>"
                "<p>This is a test email to verify email integration is working correctly.</p>"
                f"<p><strong>Sent at:</strong> {sent_at}</p>",
            )
        )
