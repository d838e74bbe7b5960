"""Notification channel implementations for alert delivery.

Provides an ABC for notification channels plus concrete implementations
for Slack incoming webhooks, generic signed webhooks and email. Channels
only build payloads and perform a single transport call; retries,
timeouts and fan-out live in ``NotificationDispatcher``.

Transport failures are raised as ``TransientDeliveryError`` (worth
retrying: 5xx, 429, network errors) or ``TerminalDeliveryError``
(anything else).
"""

import asyncio
import hashlib
import hmac
import json
import logging
import smtplib
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any
from urllib.parse import urlencode

import httpx

from rabbitwatch.alerts.errors import TerminalDeliveryError, TransientDeliveryError
from rabbitwatch.alerts.schemas import Alert, AlertSummary

logger = logging.getLogger(__name__)

SLACK_COLORS = {
    "critical": "danger",
    "warning": "warning",
    "info": "good",
}

SLACK_OVERFLOW_COLOR = "#cccccc"

WEBHOOK_EVENT = "alert.notification"
HEADER_PREFIX = "X-Rabbitwatch"


@dataclass
class NotificationContext:
    """Where a batch of alerts came from."""

    workspace_id: str
    workspace_name: str
    server_id: str
    server_name: str
    frontend_url: str | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


@dataclass
class DeliveryResult:
    """Outcome of delivering one batch to one channel."""

    channel_id: str
    channel_type: str
    success: bool
    status_code: int | None = None
    attempts: int = 0
    alert_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "channel_type": self.channel_type,
            "success": self.success,
            "status_code": self.status_code,
            "attempts": self.attempts,
            "alert_count": self.alert_count,
            "error": self.error,
        }


def _worst_severity(alerts: list[Alert]) -> str:
    summary = AlertSummary.from_alerts(alerts)
    if summary.critical:
        return "critical"
    if summary.warning:
        return "warning"
    return "info"


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


class NotificationChannel(ABC):
    """Abstract base for notification delivery channels.

    A channel may restrict itself to some severities and servers; ``None``
    or an empty list means no restriction.
    """

    def __init__(
        self,
        channel_id: str,
        severities: list[str] | None = None,
        server_ids: list[str] | None = None,
        enabled: bool = True,
    ) -> None:
        self._id = channel_id
        self._severities = set(severities) if severities else None
        self._server_ids = set(server_ids) if server_ids else None
        self._enabled = enabled

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel type (e.g. 'slack', 'webhook', 'email')."""

    @property
    def id(self) -> str:
        return self._id

    @property
    def enabled(self) -> bool:
        return self._enabled

    def select_alerts(self, alerts: list[Alert], server_id: str) -> list[Alert]:
        """Alerts of the batch this channel should receive."""
        if not self._enabled:
            return []
        if self._server_ids is not None and server_id not in self._server_ids:
            return []
        if self._severities is None:
            return list(alerts)
        return [a for a in alerts if a.severity in self._severities]

    @abstractmethod
    def build_payload(self, alerts: list[Alert], context: NotificationContext) -> dict[str, Any]:
        """Format a batch of alerts for this channel."""

    @abstractmethod
    async def send(self, payload: dict[str, Any]) -> int | None:
        """Perform one transport call.

        Returns:
            Transport status code, if the transport has one.

        Raises:
            TransientDeliveryError: Retryable failure.
            TerminalDeliveryError: Non-retryable failure.
        """


class HttpChannel(NotificationChannel):
    """Base for channels that POST JSON over HTTP.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling)
    matching the project's HTTP pattern.
    """

    def __init__(self, channel_id: str, url: str, timeout: float = 10.0, **kwargs: Any) -> None:
        super().__init__(channel_id, **kwargs)
        self._url = url
        self._timeout = timeout

    async def _post(self, body: bytes, headers: dict[str, str]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, content=body, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientDeliveryError(
                f"{self.name} request timed out after {self._timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise TransientDeliveryError(f"{self.name} request failed: {e}") from e

        if resp.is_success:
            return resp

        status = resp.status_code
        if status >= 500 or status == 429:
            raise TransientDeliveryError(f"HTTP {status}", status_code=status)
        raise TerminalDeliveryError(f"HTTP {status}", status_code=status)


class SlackChannel(HttpChannel):
    """Delivers alert batches to a Slack incoming webhook.

    One message per batch: a summary attachment coloured by the worst
    severity, up to ``max_attachments`` per-alert attachments, an overflow
    attachment, and a dashboard button when a frontend URL is known.
    """

    def __init__(
        self,
        channel_id: str,
        webhook_url: str,
        max_attachments: int = 10,
        timeout: float = 10.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(channel_id, webhook_url, timeout=timeout, **kwargs)
        self._max_attachments = max_attachments

    @property
    def name(self) -> str:
        return "slack"

    def _alert_attachment(self, alert: Alert) -> dict[str, Any]:
        fields = [
            {"title": "Category", "value": alert.category, "short": True},
            {
                "title": "Source",
                "value": f"{alert.source.type}: {alert.source.name}",
                "short": True,
            },
        ]
        if alert.vhost:
            fields.append({"title": "Virtual Host", "value": alert.vhost, "short": True})
        if alert.details.current is not None:
            fields.append({
                "title": "Current Value",
                "value": str(alert.details.current),
                "short": True,
            })
        if alert.details.threshold is not None:
            fields.append({
                "title": "Threshold",
                "value": str(alert.details.threshold),
                "short": True,
            })

        return {
            "color": SLACK_COLORS[alert.severity],
            "title": f"{alert.severity.upper()}: {alert.title}",
            "text": alert.description,
            "fields": fields,
        }

    @staticmethod
    def dashboard_url(
        alerts: list[Alert],
        frontend_url: str | None,
        server_id: str,
    ) -> str | None:
        """Link to the alerts page filtered to the batch's most common vhost."""
        if not frontend_url or not server_id:
            return None

        params = {"serverId": server_id}
        vhosts = Counter(a.vhost for a in alerts if a.vhost)
        if vhosts:
            params["vhost"] = vhosts.most_common(1)[0][0]
        return f"{frontend_url.rstrip('/')}/alerts?{urlencode(params)}"

    def build_payload(self, alerts: list[Alert], context: NotificationContext) -> dict[str, Any]:
        summary = AlertSummary.from_alerts(alerts)
        summary_text = (
            f"*{_plural(len(alerts), 'alert')}* detected on "
            f"*{context.server_name}* in workspace *{context.workspace_name}*"
        )
        breakdown = ", ".join(
            f"{count} {severity}"
            for severity, count in (
                ("critical", summary.critical),
                ("warning", summary.warning),
                ("info", summary.info),
            )
            if count
        )

        attachments = [{
            "color": SLACK_COLORS[_worst_severity(alerts)],
            "title": summary_text,
            "text": breakdown,
            "fields": [],
        }]
        attachments.extend(
            self._alert_attachment(alert)
            for alert in alerts[:self._max_attachments]
        )

        overflow = len(alerts) - self._max_attachments
        if overflow > 0:
            attachments.append({
                "color": SLACK_OVERFLOW_COLOR,
                "title": f"+{_plural(overflow, 'more alert')}",
                "text": "",
                "fields": [],
            })

        blocks: list[dict[str, Any]] = []
        url = self.dashboard_url(alerts, context.frontend_url, context.server_id)
        if url:
            blocks.append({
                "type": "actions",
                "elements": [{
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View Alerts in Dashboard"},
                    "url": url,
                    "style": "primary",
                }],
            })

        return {
            "text": summary_text,
            "username": "RabbitWatch Alerts",
            "icon_emoji": ":rabbit:",
            "blocks": blocks,
            "attachments": attachments,
        }

    async def send(self, payload: dict[str, Any]) -> int | None:
        body = json.dumps(payload).encode()
        resp = await self._post(body, {"Content-Type": "application/json"})
        if resp.text != "ok":
            logger.warning(
                "Slack webhook %s acknowledged with unexpected body: %r",
                self.id, resp.text[:100],
            )
        return resp.status_code


class WebhookChannel(HttpChannel):
    """Delivers alert batches as a versioned JSON envelope.

    When a secret is configured the raw body is signed with HMAC-SHA256
    and sent as ``X-Rabbitwatch-Signature: sha256=<hex>``.
    """

    def __init__(
        self,
        channel_id: str,
        url: str,
        secret: str | None = None,
        version: str = "v1",
        timeout: float = 10.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(channel_id, url, timeout=timeout, **kwargs)
        self._secret = secret
        self._version = version

    @property
    def name(self) -> str:
        return "webhook"

    def build_payload(self, alerts: list[Alert], context: NotificationContext) -> dict[str, Any]:
        return {
            "version": self._version,
            "event": WEBHOOK_EVENT,
            "timestamp": context.timestamp.isoformat(),
            "workspace": {"id": context.workspace_id, "name": context.workspace_name},
            "server": {"id": context.server_id, "name": context.server_name},
            "alerts": [alert.to_dict() for alert in alerts],
            "summary": AlertSummary.from_alerts(alerts).to_dict(),
        }

    @staticmethod
    def sign(body: bytes, secret: str) -> str:
        digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        return f"sha256={digest}"

    def build_headers(self, payload: dict[str, Any], body: bytes) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "RabbitWatch-Webhook/1.0",
            f"{HEADER_PREFIX}-Event": payload.get("event", WEBHOOK_EVENT),
            f"{HEADER_PREFIX}-Version": payload.get("version", self._version),
            f"{HEADER_PREFIX}-Timestamp": payload.get("timestamp", ""),
        }
        if self._secret:
            headers[f"{HEADER_PREFIX}-Signature"] = self.sign(body, self._secret)
        return headers

    async def send(self, payload: dict[str, Any]) -> int | None:
        body = json.dumps(payload).encode()
        resp = await self._post(body, self.build_headers(payload, body))
        return resp.status_code


class EmailChannel(NotificationChannel):
    """Delivers alert batches as a plain-text email over SMTP.

    ``smtplib`` is blocking, so each send runs in a worker thread.
    SMTP 4xx replies and connection problems are transient; 5xx replies
    and authentication failures are terminal.
    """

    def __init__(
        self,
        channel_id: str,
        recipient: str,
        smtp_host: str,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        use_tls: bool = True,
        from_address: str = "alerts@rabbitwatch.local",
        timeout: float = 10.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(channel_id, **kwargs)
        self._recipient = recipient
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._use_tls = use_tls
        self._from = from_address
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "email"

    def build_payload(self, alerts: list[Alert], context: NotificationContext) -> dict[str, Any]:
        severity = _worst_severity(alerts)
        subject = (
            f"[{severity.upper()}] {_plural(len(alerts), 'alert')} on "
            f"{context.server_name} ({context.workspace_name})"
        )

        lines = [
            f"{_plural(len(alerts), 'new alert')} detected on server "
            f"{context.server_name} in workspace {context.workspace_name}.",
            "",
        ]
        for alert in alerts:
            lines.append(f"[{alert.severity.upper()}] {alert.title}")
            lines.append(f"  {alert.description}")
            lines.append(f"  Source: {alert.source.type} {alert.source.name}")
            if alert.vhost:
                lines.append(f"  Virtual host: {alert.vhost}")
            if alert.details.threshold is not None:
                lines.append(
                    f"  Current: {alert.details.current} (threshold {alert.details.threshold})"
                )
            if alert.details.recommended:
                lines.append(f"  Recommended: {alert.details.recommended}")
            lines.append("")

        url = SlackChannel.dashboard_url(alerts, context.frontend_url, context.server_id)
        if url:
            lines.append(f"View alerts: {url}")

        return {
            "to": self._recipient,
            "from": self._from,
            "subject": subject,
            "body": "\n".join(lines),
        }

    def _send_sync(self, payload: dict[str, Any]) -> None:
        msg = EmailMessage()
        msg["Subject"] = payload["subject"]
        msg["From"] = payload["from"]
        msg["To"] = payload["to"]
        msg.set_content(payload["body"])

        with smtplib.SMTP(self._smtp_host, self._smtp_port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._smtp_user and self._smtp_password:
                server.login(self._smtp_user, self._smtp_password)
            server.send_message(msg)

    async def send(self, payload: dict[str, Any]) -> int | None:
        try:
            await asyncio.to_thread(self._send_sync, payload)
        except smtplib.SMTPAuthenticationError as e:
            raise TerminalDeliveryError(
                f"SMTP authentication failed: {e.smtp_code}", status_code=e.smtp_code,
            ) from e
        except smtplib.SMTPResponseException as e:
            if 400 <= e.smtp_code < 500:
                raise TransientDeliveryError(
                    f"SMTP {e.smtp_code}", status_code=e.smtp_code,
                ) from e
            raise TerminalDeliveryError(
                f"SMTP {e.smtp_code}", status_code=e.smtp_code,
            ) from e
        except smtplib.SMTPRecipientsRefused as e:
            raise TerminalDeliveryError(f"Recipients refused: {list(e.recipients)}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransientDeliveryError(f"SMTP transport error: {e}") from e
        return None


def build_channels(
    notifications: Any,
    settings: Any,
    max_attachments: int = 10,
    timeout: float = 10.0,
) -> list[NotificationChannel]:
    """Build the channel list of a workspace.

    Slack and webhook configs without their own severity or server
    filters inherit the workspace-wide ones. Email requires it to be
    enabled, a contact address and a configured SMTP host.

    Args:
        notifications: ``WorkspaceNotifications`` of the workspace.
        settings: Application ``Settings`` (SMTP parameters).
        max_attachments: Slack per-alert attachment cap.
        timeout: Per-request transport timeout in seconds.

    Returns:
        Enabled channels.
    """
    prefs = notifications.settings
    severities = prefs.effective_severities
    server_ids = prefs.notification_server_ids or None
    channels: list[NotificationChannel] = []

    if prefs.email_notifications_enabled and prefs.contact_email:
        if settings.smtp_configured:
            channels.append(EmailChannel(
                "email",
                recipient=prefs.contact_email,
                smtp_host=settings.smtp_host,
                smtp_port=settings.smtp_port,
                smtp_user=settings.smtp_user,
                smtp_password=settings.smtp_password,
                use_tls=settings.smtp_use_tls,
                from_address=settings.smtp_from,
                timeout=timeout,
                severities=severities,
                server_ids=server_ids,
            ))
        else:
            logger.warning("Email notifications enabled but SMTP is not configured")

    for slack in notifications.slack:
        if not slack.enabled:
            continue
        channels.append(SlackChannel(
            slack.id,
            slack.webhook_url,
            max_attachments=max_attachments,
            timeout=timeout,
            severities=slack.severities or severities,
            server_ids=slack.server_ids or server_ids,
        ))

    for webhook in notifications.webhooks:
        if not webhook.enabled:
            continue
        channels.append(WebhookChannel(
            webhook.id,
            webhook.url,
            secret=webhook.secret,
            version=webhook.version,
            timeout=timeout,
            severities=webhook.severities or severities,
            server_ids=webhook.server_ids or server_ids,
        ))

    return channels
