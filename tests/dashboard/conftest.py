"""Fixtures for API tests.

Routes receive services through FastAPI dependencies, so tests replace
individual services with mocks via ``app.dependency_overrides``. Each test
client presents its own ``X-Forwarded-For`` address so the in-memory rate
limiter does not carry counts from one test into the next.
"""

import uuid
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from src.dashboard.api.main import app
from src.domain.ports import DatabasePort, ServiceResult


@pytest.fixture
def overrides():
    """Dict of dependency -> replacement, applied for one test."""
    app.dependency_overrides.clear()
    yield app.dependency_overrides
    app.dependency_overrides.clear()


@pytest.fixture
def client(overrides):
    with TestClient(app, headers={"X-Forwarded-For": f"test-{uuid.uuid4().hex}"}) as test_client:
        yield test_client


@pytest.fixture
def api_database():
    database = Mock(spec=DatabasePort)
    database.db_type = "duckdb"
    database.ping.return_value = ServiceResult.success_result(True)
    database.count.return_value = ServiceResult.success_result(0)
    database.select.return_value = ServiceResult.success_result([])
    return database
