"""Unit tests for AuditLogger."""

import logging
from datetime import date

from src.domain.ports import ServiceResult
from src.infrastructure.audit import AUDIT_TABLE, AuditLogger


class TestAuditLogger:
    def test_info_row(self, database, written_rows):
        audit = AuditLogger(database, category="CLINICAL")

        audit.info("TRANSFER_APPROVED", {"transferId": "t-1"})

        row = written_rows(database.insert, AUDIT_TABLE)[0]
        assert row["event_type"] == "TRANSFER_APPROVED"
        assert row["severity"] == "INFO"
        assert row["category"] == "CLINICAL"
        assert row["details"] == {"transferId": "t-1"}
        assert row["created_at"]

    def test_category_override(self, database, written_rows):
        AuditLogger(database).warn("BED_BLOCKED", category="ADMINISTRATIVE")

        row = written_rows(database.insert, AUDIT_TABLE)[0]
        assert row["severity"] == "WARNING"
        assert row["category"] == "ADMINISTRATIVE"
        assert row["details"] == {}

    def test_error_is_redacted(self, database, written_rows):
        audit = AuditLogger(database)

        audit.error(
            "REMINDER_SEND_FAILED",
            ValueError("SMS to 555-123-4567 for jane@example.com failed"),
            {"appointmentId": "a-1"},
        )

        row = written_rows(database.insert, AUDIT_TABLE)[0]
        assert row["severity"] == "ERROR"
        assert row["category"] == "SYSTEM_EVENT"
        assert row["details"] == {"appointmentId": "a-1", "error": "SMS to [PHONE] for [EMAIL] failed"}

    def test_details_made_json_safe(self, database, written_rows):
        AuditLogger(database).info("CENSUS_SNAPSHOT", {
            "date": date(2026, 3, 3),
            "units": ("ICU", "4W"),
            "nested": {1: {"ok"}},
        })

        details = written_rows(database.insert, AUDIT_TABLE)[0]["details"]
        assert details == {"date": "2026-03-03", "units": ["ICU", "4W"], "nested": {"1": ["ok"]}}

    def test_persist_failure_is_not_raised(self, database, caplog):
        database.insert.return_value = ServiceResult.failure_result("DATABASE_ERROR", "permission denied")

        with caplog.at_level(logging.WARNING, logger="src.infrastructure.audit.audit_logger"):
            AuditLogger(database).info("WELFARE_QUEUE_ACCESSED")

        assert "Failed to persist audit event WELFARE_QUEUE_ACCESSED" in caplog.text

    def test_without_database_only_logs(self, caplog):
        with caplog.at_level(logging.INFO, logger="src.infrastructure.audit.audit_logger"):
            AuditLogger().info("DRY_RUN")

        record = caplog.records[-1]
        assert record.getMessage() == "Audit event DRY_RUN"
        assert record.audit_event == "DRY_RUN"
        assert record.severity == "INFO"
