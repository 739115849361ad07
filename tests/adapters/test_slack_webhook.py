"""Tests for the Slack webhook notification channel."""

import json

import httpx
import pytest

from src.adapters.notifications.slack_webhook import SlackWebhookChannel, build_slack_message
from src.infrastructure.config_manager import NotificationConfig

WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXXX"


@pytest.fixture
def config():
    return NotificationConfig(slack_webhook_url=WEBHOOK, slack_channel="#bed-board")


@pytest.fixture
def sleeps():
    return []


def make_channel(config, sleeps, responses):
    requests = []
    replies = iter(responses)

    def handler(request):
        requests.append(request)
        reply = next(replies)
        if isinstance(reply, Exception):
            raise reply
        return reply

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return SlackWebhookChannel(config, client=client, sleep=sleeps.append), requests


def test_build_message(config):
    message = build_slack_message({
        "title": "ICU at capacity",
        "body": "No beds available",
        "priority": "urgent",
        "category": "clinical",
        "data": {"unit": "ICU", "note": "x" * 40},
        "action_url": "https://careops.example.org/beds",
    }, config)

    assert message["channel"] == "#bed-board"
    assert message["username"] == "CareOps Bot"
    attachment = message["attachments"][0]
    assert attachment["color"] == "#dc3545"
    assert attachment["pretext"] == ":rotating_light: :stethoscope: *ICU at capacity*"
    assert attachment["footer"] == "CareOps Bot | CLINICAL"
    assert attachment["fields"][0] == {"title": "unit", "value": "ICU", "short": True}
    assert attachment["fields"][1]["short"] is False
    assert attachment["actions"][0]["url"] == "https://careops.example.org/beds"


def test_build_message_defaults(config):
    message = build_slack_message({"title": "Hi", "body": "There", "channel": "#ops"}, config)

    attachment = message["attachments"][0]
    assert message["channel"] == "#ops"
    assert attachment["color"] == "#007bff"
    assert attachment["pretext"] == ":bell: :gear: *Hi*"
    assert "fields" not in attachment
    assert "actions" not in attachment


class TestSend:
    def test_success(self, config, sleeps):
        channel, requests = make_channel(config, sleeps, [httpx.Response(200, text="ok")])

        result = channel.send({"title": "Hi", "body": "There"})

        assert result.data == {"attempts": 1}
        assert str(requests[0].url) == WEBHOOK
        assert json.loads(requests[0].content)["attachments"][0]["text"] == "There"
        assert sleeps == []

    def test_rate_limit_honours_retry_after(self, config, sleeps):
        channel, _ = make_channel(config, sleeps, [
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(200, text="ok"),
        ])

        result = channel.send({"title": "Hi"})

        assert result.data == {"attempts": 2}
        assert sleeps == [3]

    def test_backoff_then_failure(self, config, sleeps):
        channel, requests = make_channel(config, sleeps, [
            httpx.Response(500, text="oops"),
            httpx.ConnectError("refused"),
            httpx.Response(400, text="invalid_payload"),
        ])

        result = channel.send({"title": "Hi"})

        assert result.error_code == "EXTERNAL_SERVICE_ERROR"
        assert result.error.message == "Slack error: 400 invalid_payload"
        assert sleeps == [1, 2]
        assert len(requests) == 3

    def test_not_configured(self, sleeps):
        channel, requests = make_channel(NotificationConfig(), sleeps, [])

        result = channel.send({"title": "Hi"})

        assert channel.configured is False
        assert result.error.message == "Slack not configured"
        assert requests == []
