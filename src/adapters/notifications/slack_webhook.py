"""Slack Incoming-Webhook Notification Channel.

Implements NotificationChannelPort by posting attachment-formatted messages
to a Slack incoming webhook.

Security Impact:
    - The webhook URL is a secret (SecretStr) and is never logged
    - Only notification title, body and caller-supplied data fields are sent

Architecture:
    - Implements NotificationChannelPort (Hexagonal Architecture)
    - Up to 3 attempts; HTTP 429 honours Retry-After, other failures back off
      exponentially (1s, 2s, ...)
"""

import logging
import time
from typing import Callable, Optional

import httpx

from src.domain.ports import ErrorCode, NotificationChannelPort, ServiceResult
from src.infrastructure.config_manager import NotificationConfig

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
DEFAULT_RETRY_AFTER_SECONDS = 5

PRIORITY_COLORS = {
    "urgent": "#dc3545",
    "high": "#fd7e14",
    "normal": "#007bff",
    "low": "#6c757d",
}

PRIORITY_EMOJIS = {
    "low": ":information_source:",
    "normal": ":bell:",
    "high": ":warning:",
    "urgent": ":rotating_light:",
}

CATEGORY_EMOJIS = {
    "system": ":gear:",
    "security": ":lock:",
    "clinical": ":stethoscope:",
    "appointment": ":calendar:",
    "medication": ":pill:",
    "wellness": ":heart:",
    "alert": ":exclamation:",
    "message": ":envelope:",
}


def build_slack_message(payload: dict, config: NotificationConfig) -> dict:
    """Render a channel-neutral notification as a Slack webhook body."""
    priority = payload.get("priority", "normal")
    category = payload.get("category", "system")
    priority_emoji = PRIORITY_EMOJIS.get(priority, ":bell:")
    category_emoji = CATEGORY_EMOJIS.get(category, ":bell:")

    attachment = {
        "fallback": f"{payload.get('title', '')}: {payload.get('body', '')}",
        "color": PRIORITY_COLORS.get(priority, PRIORITY_COLORS["normal"]),
        "pretext": f"{priority_emoji} {category_emoji} *{payload.get('title', '')}*",
        "text": payload.get("body", ""),
        "footer": f"{config.slack_username} | {category.upper()}",
        "ts": int(time.time()),
    }

    data = payload.get("data") or {}
    if data:
        attachment["fields"] = [
            {"title": key, "value": str(value), "short": len(str(value)) < 30}
            for key, value in data.items()
        ]

    if payload.get("action_url"):
        attachment["actions"] = [
            {"type": "button", "text": "View Details", "url": payload["action_url"]}
        ]

    return {
        "channel": payload.get("channel") or config.slack_channel,
        "username": config.slack_username,
        "icon_emoji": config.slack_icon_emoji,
        "attachments": [attachment],
    }


class SlackWebhookChannel(NotificationChannelPort):
    """Posts notifications to Slack.

    Parameters:
        config: NotificationConfig with the webhook URL
        client: Optional httpx.Client (tests use ``httpx.MockTransport``)
        sleep: Delay function between retries (tests pass a no-op)
    """

    def __init__(
        self,
        config: NotificationConfig,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.config = config
        self._client = client or httpx.Client(timeout=httpx.Timeout(10.0, connect=5.0))
        self._sleep = sleep

    @property
    def configured(self) -> bool:
        return self.config.slack_configured

    def send(self, payload: dict) -> ServiceResult[dict]:
        if not self.configured:
            return ServiceResult.failure_result(ErrorCode.EXTERNAL_SERVICE_ERROR, "Slack not configured")

        url = self.config.slack_webhook_url.get_secret_value()
        message = build_slack_message(payload, self.config)
        last_error = "Max retries exceeded"

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.post(url, json=message)
            except httpx.HTTPError as e:
                last_error = f"Slack request failed: {e}"
                logger.warning(f"Slack attempt {attempt} failed: {e}")
                if attempt < MAX_RETRIES:
                    self._sleep(2 ** (attempt - 1))
                continue

            if response.status_code < 300:
                return ServiceResult.success_result({"attempts": attempt})

            if response.status_code == 429:
                retry_after = response.headers.get("retry-after", "")
                delay = int(retry_after) if retry_after.isdigit() else DEFAULT_RETRY_AFTER_SECONDS
                logger.warning(f"Slack rate limited; retrying in {delay}s")
                last_error = "Slack rate limited"
                if attempt < MAX_RETRIES:
                    self._sleep(delay)
                continue

            last_error = f"Slack error: {response.status_code} {response.text.strip()}"
            logger.warning(f"Slack attempt {attempt} returned {response.status_code}")
            if attempt < MAX_RETRIES:
                self._sleep(2 ** (attempt - 1))

        logger.error(f"Slack notification failed after {MAX_RETRIES} attempts: {last_error}")
        return ServiceResult.failure_result(ErrorCode.EXTERNAL_SERVICE_ERROR, last_error)

    def close(self) -> None:
        self._client.close()
