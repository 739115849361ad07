"""Shared fixtures: mocked ports returning successful, empty results."""

from unittest.mock import Mock

import pytest

from src.domain.ports import DatabasePort, FunctionsPort, LLMResponse, LLMRouterPort, ServiceResult


@pytest.fixture
def database():
    """DatabasePort mock; every call succeeds with an empty result by default."""
    db = Mock(spec=DatabasePort)
    db.select.return_value = ServiceResult.success_result([])
    db.select_one.return_value = ServiceResult.success_result(None)
    db.insert.return_value = ServiceResult.success_result([])
    db.update.return_value = ServiceResult.success_result([])
    db.upsert.return_value = ServiceResult.success_result([])
    db.delete.return_value = ServiceResult.success_result(0)
    db.count.return_value = ServiceResult.success_result(0)
    db.rpc.return_value = ServiceResult.success_result(None)
    db.ping.return_value = ServiceResult.success_result(True)
    return db


@pytest.fixture
def functions():
    """FunctionsPort mock answering ``{"success": true}``."""
    port = Mock(spec=FunctionsPort)
    port.invoke.return_value = ServiceResult.success_result({"success": True})
    return port


@pytest.fixture
def llm():
    """LLMRouterPort mock; tests set ``llm.call.return_value`` to a reply."""
    router = Mock(spec=LLMRouterPort)
    router.calculate_cost.return_value = 0.0
    return router


@pytest.fixture
def llm_reply():
    """Build a successful model reply carrying ``text``."""
    def build(text: str, model: str = "claude-haiku-4-5", cost: float = 0.002) -> ServiceResult:
        return ServiceResult.success_result(LLMResponse(
            text=text, model=model, input_tokens=500, output_tokens=200, cost=cost, latency_ms=850
        ))
    return build


@pytest.fixture
def audit_events(database):
    """Event types written to ``audit_logs`` through the database mock."""
    def collect(severity=None) -> list[str]:
        events = []
        for call in database.insert.call_args_list:
            table, row = call.args[0], call.args[1]
            if table == "audit_logs" and (severity is None or row["severity"] == severity):
                events.append(row["event_type"])
        return events
    return collect


@pytest.fixture
def written_rows():
    """Rows passed to ``insert``/``upsert`` on a mock for one table."""
    def collect(method, table: str) -> list[dict]:
        return [call.args[1] for call in method.call_args_list if call.args[0] == table]
    return collect
