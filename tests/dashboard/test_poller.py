"""Tests for the dashboard Poller."""

import threading

import pytest

from src.dashboard.services.poller import DEFAULT_INTERVAL_SECONDS, Poller
from src.domain.ports import ErrorCode, ServiceResult


def test_default_interval_is_thirty_seconds():
    poller = Poller(lambda: ServiceResult.success_result([]))

    assert DEFAULT_INTERVAL_SECONDS == 30
    assert poller.interval_seconds == 30


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        Poller(lambda: ServiceResult.success_result([]), interval_seconds=0)


def test_poll_once_success():
    received = []
    poller = Poller(lambda: ServiceResult.success_result({"census": 7}), on_data=received.append)

    assert poller.poll_once() is True
    assert poller.last_result == {"census": 7}
    assert poller.last_updated is not None
    assert received == [{"census": 7}]


def test_failure_keeps_previous_result():
    results = iter([
        ServiceResult.success_result(["b1"]),
        ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, "timeout"),
    ])
    errors = []
    poller = Poller(lambda: next(results), on_error=errors.append)

    poller.poll_once()
    assert poller.poll_once() is False

    assert poller.last_result == ["b1"]
    assert poller.last_error == "timeout"
    assert errors == ["timeout"]


def test_raising_fetch_is_reported():
    def fetch():
        raise RuntimeError("boom")

    errors = []
    poller = Poller(fetch, on_error=errors.append)

    assert poller.poll_once() is False
    assert errors == ["Fetch failed: boom"]


def test_raising_callback_is_reported():
    def render(data):
        raise ValueError("bad row")

    errors = []
    poller = Poller(lambda: ServiceResult.success_result([1]), on_data=render, on_error=errors.append)

    assert poller.poll_once() is False
    assert poller.last_result == [1]
    assert poller.last_error == "Callback failed: bad row"
    assert errors == ["Callback failed: bad row"]


def test_success_clears_error():
    results = iter([
        ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, "timeout"),
        ServiceResult.success_result([]),
    ])
    poller = Poller(lambda: next(results))

    poller.poll_once()
    poller.poll_once()

    assert poller.last_error is None


def test_start_fetches_immediately_and_stops():
    fetched = threading.Event()

    def fetch():
        fetched.set()
        return ServiceResult.success_result([])

    poller = Poller(fetch, interval_seconds=60)
    poller.start()
    try:
        assert fetched.wait(2)
        assert poller.running is True
    finally:
        poller.stop()

    assert poller.running is False
