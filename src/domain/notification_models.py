"""Notification Models.

A notification is addressed to users (in-app and push), email recipients
and/or a Slack channel. Channels default from priority when not given.
"""

from typing import Any, Literal, Optional

from pydantic import Field

from src.domain.schema import CamelModel

NotificationPriority = Literal["low", "normal", "high", "urgent"]
NotificationChannel = Literal["in_app", "push", "email", "slack"]
NotificationCategory = Literal[
    "system", "security", "clinical", "appointment", "medication", "wellness", "alert", "message",
]

NOTIFICATION_CHANNELS = ("in_app", "push", "email", "slack")

DEFAULT_CHANNELS = {
    "urgent": ["in_app", "push", "email", "slack"],
    "high": ["in_app", "push", "email"],
    "normal": ["in_app", "push"],
    "low": ["in_app"],
}


def default_channels(priority: str) -> list[str]:
    return list(DEFAULT_CHANNELS.get(priority, DEFAULT_CHANNELS["normal"]))


class EmailRecipient(CamelModel):
    email: str
    name: Optional[str] = None


class NotificationTarget(CamelModel):
    user_id: Optional[str] = None
    user_ids: list[str] = Field(default_factory=list)
    role_ids: list[str] = Field(default_factory=list)
    tenant_id: Optional[str] = None
    slack_channel: Optional[str] = None
    email: list[EmailRecipient] = Field(default_factory=list)

    def resolved_user_ids(self) -> list[str]:
        if self.user_ids:
            return list(self.user_ids)
        return [self.user_id] if self.user_id else []


class Notification(CamelModel):
    title: str
    body: str
    category: NotificationCategory
    priority: NotificationPriority = "normal"
    channels: Optional[list[NotificationChannel]] = None
    target: NotificationTarget = Field(default_factory=NotificationTarget)
    data: Optional[dict[str, Any]] = None
    action_url: Optional[str] = None
    expires_at: Optional[str] = None
    ephemeral: bool = False


class ChannelResult(CamelModel):
    success: bool = False
    error: Optional[str] = None


class NotificationResult(CamelModel):
    success: bool
    notification_id: Optional[str] = None
    channel_results: dict[str, ChannelResult] = Field(default_factory=dict)
