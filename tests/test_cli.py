"""Tests for the careops command line interface."""

from unittest.mock import Mock, patch

import pytest
from typer.testing import CliRunner

from src.adapters.database.duckdb_adapter import DuckDBAdapter
from src.cli import app
from src.domain.appointment_models import ReminderRunSummary
from src.domain.law_enforcement_models import WelfareBatchSummary
from src.domain.ports import ErrorCode, ServiceResult

runner = CliRunner()

ADT_MESSAGE = "\r".join([
    "MSH|^~\\&|EMR|CITYHOSP|CAREOPS|CLINIC|20260301083000||ADT^A01|ADT00042|P|2.5.1",
    "PID|1||MRN777^^^CITYHOSP^MR||ROE^RICHARD||19480704|M",
    "PV1|1|I|ICU^12^A",
])


@pytest.fixture
def container():
    container = Mock()
    with patch("src.cli.create_container_cli", return_value=container):
        yield container


def test_beds_prints_capacity(container):
    container.beds.get_unit_capacity.return_value = ServiceResult.success_result([
        {"unit_name": "ICU", "total_beds": 12, "occupied_beds": 11, "available_beds": 1, "occupancy_rate": 91.7},
    ])

    result = runner.invoke(app, ["beds", "--unit", "u-icu"])

    assert result.exit_code == 0
    assert "ICU" in result.output
    assert "91.7" in result.output
    container.beds.get_unit_capacity.assert_called_once_with(unit_id="u-icu", facility_id=None)
    container.close.assert_called_once()


def test_failure_exits_nonzero(container):
    container.transfers.get_pending_transfers.return_value = ServiceResult.failure_result(
        ErrorCode.DATABASE_ERROR, "connection refused"
    )

    result = runner.invoke(app, ["transfers"])

    assert result.exit_code == 1
    assert "connection refused" in result.output
    container.close.assert_called_once()


def test_welfare_batch(container):
    container.welfare_dispatch.calculate_priority_scores.return_value = ServiceResult.success_result(
        WelfareBatchSummary(assessed=42, critical=2, high=5, elevated=10, routine=25, auto_dispatched=1, total_cost=0.0123)
    )

    result = runner.invoke(app, ["welfare-batch", "t-1", "--date", "2026-05-10"])

    assert result.exit_code == 0
    assert "42" in result.output
    assert "$0.0123" in result.output
    container.welfare_dispatch.calculate_priority_scores.assert_called_once_with("t-1", assessment_date="2026-05-10")


def test_reminders_rejects_unknown_type(container):
    result = runner.invoke(app, ["reminders", "2d"])

    assert result.exit_code == 1
    container.reminder_dispatcher.run.assert_not_called()


def test_reminders_failures_exit_nonzero(container):
    container.reminder_dispatcher.run.return_value = ServiceResult.success_result(
        ReminderRunSummary(reminder_type="1h", found=3, sent=2, failed=1)
    )

    result = runner.invoke(app, ["reminders", "1h", "--batch-size", "10"])

    assert result.exit_code == 1
    container.reminder_dispatcher.run.assert_called_once_with("1h", batch_size=10)


def test_parse_hl7_with_ack(tmp_path):
    message_file = tmp_path / "admit.hl7"
    message_file.write_text(ADT_MESSAGE, encoding="utf-8")

    result = runner.invoke(app, ["parse-hl7", str(message_file), "--ack"])

    assert result.exit_code == 0
    assert "ADT^A01" in result.output
    assert "ADT00042" in result.output
    assert "MSA|AA|ADT00042" in result.output.replace("\n", "")


def test_parse_hl7_rejects_garbage(tmp_path):
    message_file = tmp_path / "bad.hl7"
    message_file.write_text("not an hl7 message", encoding="utf-8")

    result = runner.invoke(app, ["parse-hl7", str(message_file)])

    assert result.exit_code == 1


def test_init_db_creates_schema():
    with patch("src.main.create_database_adapter", return_value=DuckDBAdapter()):
        result = runner.invoke(app, ["init-db"])

    assert result.exit_code == 0
    assert "Schema ready" in result.output
