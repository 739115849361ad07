"""Outbound notification channels."""

from src.adapters.notifications.slack_webhook import SlackWebhookChannel

__all__ = ["SlackWebhookChannel"]
