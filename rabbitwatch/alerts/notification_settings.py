"""Per-workspace notification preferences and channel configurations.

``NotificationSettings`` holds the workspace-wide email and browser
preferences; ``SlackConfig`` and ``WebhookConfig`` describe individual
outbound channels. The store only lets the workspace owner write.
"""

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from rabbitwatch.alerts.collaborators import PlanProvider
from rabbitwatch.alerts.errors import PermissionDeniedError, SettingsValidationError
from rabbitwatch.alerts.schemas import VALID_SEVERITIES

logger = logging.getLogger(__name__)

ALL_SEVERITIES: list[str] = ["critical", "warning", "info"]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class NotificationSettings:
    """Workspace-wide notification preferences.

    Attributes:
        email_notifications_enabled: Send new alerts by email.
        contact_email: Recipient for email notifications.
        notification_severities: Severities that notify (None = all).
        notification_server_ids: Servers that notify (None/empty = all).
        browser_notifications_enabled: Push to the browser.
        browser_notification_severities: Severities pushed to the browser.
    """

    email_notifications_enabled: bool = False
    contact_email: str | None = None
    notification_severities: list[str] | None = None
    notification_server_ids: list[str] | None = None
    browser_notifications_enabled: bool = False
    browser_notification_severities: list[str] | None = None

    @property
    def effective_severities(self) -> list[str]:
        return list(self.notification_severities or ALL_SEVERITIES)

    def to_dict(self) -> dict[str, Any]:
        return {
            "email_notifications_enabled": self.email_notifications_enabled,
            "contact_email": self.contact_email,
            "notification_severities": self.effective_severities,
            "notification_server_ids": self.notification_server_ids,
            "browser_notifications_enabled": self.browser_notifications_enabled,
            "browser_notification_severities": list(
                self.browser_notification_severities or ALL_SEVERITIES
            ),
        }

    def merge(self, partial: dict[str, Any]) -> "NotificationSettings":
        """Overlay a partial update, validating the changed fields.

        Raises:
            SettingsValidationError: On unknown fields, bad severities or
                a malformed email address.
        """
        known = {f.name for f in dataclasses.fields(self)}
        errors: dict[str, str] = {}

        for name, value in partial.items():
            if name not in known:
                errors[name] = "unknown setting"
            elif name.endswith("_severities") and value is not None:
                invalid = sorted(set(value) - VALID_SEVERITIES)
                if invalid:
                    errors[name] = f"invalid severities: {invalid}"
            elif name == "contact_email" and value and not _EMAIL_RE.match(value):
                errors[name] = "invalid email address"

        if errors:
            raise SettingsValidationError(errors)

        merged = dataclasses.replace(self, **partial)
        if merged.email_notifications_enabled and not merged.contact_email:
            raise SettingsValidationError(
                {"contact_email": "required when email notifications are enabled"}
            )
        return merged


@dataclass
class SlackConfig:
    """One Slack incoming-webhook destination."""

    id: str
    webhook_url: str
    enabled: bool = True
    severities: list[str] | None = None
    server_ids: list[str] | None = None


@dataclass
class WebhookConfig:
    """One generic webhook destination, optionally HMAC-signed."""

    id: str
    url: str
    enabled: bool = True
    secret: str | None = None
    version: str = "v1"
    severities: list[str] | None = None
    server_ids: list[str] | None = None


@dataclass
class WorkspaceNotifications:
    """Everything needed to build the channel list of one workspace."""

    settings: NotificationSettings = field(default_factory=NotificationSettings)
    slack: list[SlackConfig] = field(default_factory=list)
    webhooks: list[WebhookConfig] = field(default_factory=list)


class NotificationSettingsStore:
    """In-memory notification settings, keyed by workspace."""

    def __init__(self, plan_provider: PlanProvider) -> None:
        self._plans = plan_provider
        self._workspaces: dict[str, WorkspaceNotifications] = {}

    def _entry(self, workspace_id: str) -> WorkspaceNotifications:
        return self._workspaces.setdefault(workspace_id, WorkspaceNotifications())

    async def get(self, workspace_id: str) -> WorkspaceNotifications:
        return self._workspaces.get(workspace_id, WorkspaceNotifications())

    async def get_settings(self, workspace_id: str) -> NotificationSettings:
        return (await self.get(workspace_id)).settings

    async def update_settings(
        self,
        workspace_id: str,
        user_id: str,
        partial: dict[str, Any],
    ) -> NotificationSettings:
        """Apply a partial update on behalf of ``user_id``.

        Raises:
            PermissionDeniedError: The user does not own the workspace.
            SettingsValidationError: The update is malformed.
        """
        if not await self._plans.is_workspace_owner(user_id, workspace_id):
            raise PermissionDeniedError(
                "Only the workspace owner can update alert notification settings"
            )

        entry = self._entry(workspace_id)
        entry.settings = entry.settings.merge(partial)
        logger.info(
            "Notification settings updated for workspace %s: %s",
            workspace_id, sorted(partial),
        )
        return entry.settings

    async def add_slack_config(self, workspace_id: str, config: SlackConfig) -> None:
        entry = self._entry(workspace_id)
        entry.slack = [c for c in entry.slack if c.id != config.id] + [config]

    async def add_webhook_config(self, workspace_id: str, config: WebhookConfig) -> None:
        entry = self._entry(workspace_id)
        entry.webhooks = [c for c in entry.webhooks if c.id != config.id] + [config]
