"""Tests for circuit breaker status endpoints."""

from unittest.mock import Mock

import pytest

from src.dashboard.api.dependencies import get_database, get_llm_router
from src.dashboard.services.circuit_breaker_service import CircuitBreakerService
from src.domain.guardrails import CircuitBreaker, CircuitBreakerConfig
from src.domain.ports import ErrorCode, ServiceResult


@pytest.fixture
def breaker():
    return CircuitBreaker(CircuitBreakerConfig(failure_threshold_percent=50.0, window_size=20))


@pytest.fixture
def breaker_client(client, overrides, api_database, breaker):
    llm = Mock()
    llm.circuit_breaker = breaker
    overrides[get_database] = lambda: api_database
    overrides[get_llm_router] = lambda: llm
    return client


class TestCircuitBreakerStatusEndpoint:
    def test_closed(self, breaker_client, breaker):
        for _ in range(12):
            breaker.record_outcome(True)

        response = breaker_client.get("/api/circuit-breaker/status")

        assert response.status_code == 200
        data = response.json()
        assert data["is_open"] is False
        assert data["failure_rate"] == 0.0
        assert data["records_in_window"] == 12
        assert data["window_size"] == 20
        assert data["source"] == "live"

    def test_open_after_failures(self, breaker_client, breaker):
        for _ in range(10):
            breaker.record_outcome(False)

        data = breaker_client.get("/api/circuit-breaker/status").json()

        assert data["is_open"] is True
        assert data["failure_rate"] == 100.0
        assert data["failures_in_window"] == 10

    def test_reset(self, breaker_client, breaker):
        for _ in range(10):
            breaker.record_outcome(False)

        data = breaker_client.post("/api/circuit-breaker/reset").json()

        assert data["is_open"] is False
        assert data["records_in_window"] == 0
        assert breaker.is_open() is False


class TestAuditLogEstimate:
    def test_estimate_from_recent_errors(self, api_database):
        api_database.count.side_effect = [
            ServiceResult.success_result(40),
            ServiceResult.success_result(25),
        ]

        status = CircuitBreakerService(api_database).get_status().data

        assert status.source == "audit_log"
        assert status.failure_rate == 62.5
        assert status.is_open is True
        error_query = api_database.count.call_args_list[1].args[0]
        assert ("severity", "eq", "ERROR") in [(f.column, f.operator, f.value) for f in error_query.filters]

    def test_too_few_records_stay_closed(self, api_database):
        api_database.count.side_effect = [
            ServiceResult.success_result(4),
            ServiceResult.success_result(4),
        ]

        status = CircuitBreakerService(api_database).get_status().data

        assert status.failure_rate == 100.0
        assert status.is_open is False

    def test_count_failure_reports_zero(self, api_database):
        api_database.count.return_value = ServiceResult.failure_result(ErrorCode.DATABASE_ERROR, "down")

        status = CircuitBreakerService(api_database).get_status().data

        assert status.total_processed == 0
        assert status.is_open is False

    def test_reset_without_live_breaker(self, api_database):
        result = CircuitBreakerService(api_database).reset()

        assert result.error_code == "NOT_FOUND"
