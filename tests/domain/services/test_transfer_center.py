"""Tests for TransferCenterService."""

import pytest

from src.domain.ports import ServiceResult
from src.domain.services import TransferCenterService
from src.domain.transfer_models import (
    FacilityCapacityUpdate,
    TransferApproval,
    TransferDenial,
    TransferRequestCreate,
    TransferSchedule,
)


@pytest.fixture
def service(database):
    return TransferCenterService(database)


def _filters(query):
    return [(f.column, f.operator, f.value) for f in query.filters]


class TestRequests:
    def test_create_defaults_to_pending(self, service, database, audit_events):
        database.insert.side_effect = lambda table, row: ServiceResult.success_result(
            [{**row, "id": "t1", "request_number": "TR-0001"}] if table == "transfer_requests" else []
        )
        request = TransferRequestCreate(
            patient_id="patient-1",
            sending_facility_id="fac-1",
            reason_for_transfer="Needs cardiac cath",
            urgency="emergent",
        )

        result = service.create_transfer_request(request)

        assert result.data["status"] == "pending"
        assert result.data["request_number"] == "TR-0001"
        assert result.data["diagnosis_codes"] == []
        assert result.data["requires_icu"] is False
        assert audit_events() == ["TRANSFER_REQUEST_CREATED"]

    def test_create_failure_is_audited(self, service, database, audit_events):
        database.insert.side_effect = lambda table, row: (
            ServiceResult.failure_result("DATABASE_ERROR", "duplicate key")
            if table == "transfer_requests" else ServiceResult.success_result([])
        )
        request = TransferRequestCreate.model_validate({
            "patientId": "patient-1",
            "sendingFacilityId": "fac-1",
            "reasonForTransfer": "Stroke",
        })

        result = service.create_transfer_request(request)

        assert result.error_code == "DATABASE_ERROR"
        assert audit_events("ERROR") == ["TRANSFER_REQUEST_CREATE_FAILED"]

    def test_active_transfers_exclude_closed(self, service, database):
        service.get_active_transfers(urgency="critical")

        query = database.select.call_args.args[0]
        assert ("status", "not_in", ["completed", "cancelled"]) in _filters(query)
        assert ("urgency", "eq", "critical") in _filters(query)
        assert query.ordering == [("urgency", False), ("requested_at", True)]

    def test_get_transfer_not_found(self, service):
        result = service.get_transfer("missing")

        assert result.error_code == "NOT_FOUND"
        assert result.error.message == "Transfer not found"

    def test_pending_transfers(self, service, database):
        service.get_pending_transfers()

        query = database.select.call_args.args[0]
        assert ("status", "in", ["pending", "reviewing"]) in _filters(query)


class TestLifecycle:
    def test_start_review_requires_pending(self, service, database):
        database.update.return_value = ServiceResult.success_result([{"id": "t1", "status": "reviewing"}])

        result = service.start_review("t1")

        assert result.data["status"] == "reviewing"
        query, values = database.update.call_args.args
        assert ("status", "eq", "pending") in _filters(query)
        assert "reviewed_at" in values and "updated_at" in values

    def test_transition_from_wrong_status(self, service):
        result = service.mark_arrived("t1")

        assert result.error_code == "NOT_FOUND"
        assert result.error.message == "Transfer not found or not in in_transit status"

    def test_cancel_allows_open_statuses(self, service, database, audit_events):
        database.update.return_value = ServiceResult.success_result([{"id": "t1", "status": "cancelled"}])

        result = service.cancel_transfer("t1", "Patient stabilized")

        assert result.is_success()
        query, values = database.update.call_args.args
        assert ("status", "in", ["pending", "reviewing", "approved", "scheduled"]) in _filters(query)
        assert values["cancellation_reason"] == "Patient stabilized"
        assert audit_events() == ["TRANSFER_CANCELLED"]

    def test_cancel_requires_reason(self, service, database):
        result = service.cancel_transfer("t1", "   ")

        assert result.error_code == "INVALID_INPUT"
        database.update.assert_not_called()

    def test_approve_calls_database_function(self, service, database):
        database.rpc.return_value = ServiceResult.success_result({"success": True, "status": "approved"})

        result = service.approve_transfer("t1", TransferApproval(assigned_bed_id="bed-9", receiving_unit="CCU"))

        assert result.data == {"transfer_id": "t1", "status": "approved"}
        function, params = database.rpc.call_args.args
        assert function == "approve_transfer_request"
        assert params["p_transfer_id"] == "t1"
        assert params["p_assigned_bed_id"] == "bed-9"
        assert params["p_receiving_unit"] == "CCU"

    def test_approve_reports_function_error(self, service, database):
        database.rpc.return_value = ServiceResult.success_result(
            {"success": False, "error": "Transfer is not pending review"}
        )

        result = service.approve_transfer("t1", TransferApproval())

        assert result.error_code == "OPERATION_FAILED"
        assert result.error.message == "Transfer is not pending review"

    def test_deny_requires_reason(self, service, database):
        result = service.deny_transfer("t1", TransferDenial(denial_reason=" "))

        assert result.error_code == "INVALID_INPUT"
        database.rpc.assert_not_called()

    def test_schedule_only_sets_given_transport(self, service, database):
        database.update.return_value = ServiceResult.success_result([{"id": "t1", "status": "scheduled"}])

        service.schedule_transfer("t1", TransferSchedule(scheduled_departure="2026-01-05T14:00:00Z"))

        values = database.update.call_args.args[1]
        assert values["status"] == "scheduled"
        assert "transport_mode" not in values

    def test_start_and_complete(self, service, database):
        database.rpc.return_value = ServiceResult.success_result(
            {"success": True, "departure_time": "2026-01-05T14:05:00Z", "transit_minutes": 42}
        )

        started = service.start_transfer("t1")
        completed = service.complete_transfer("t1")

        assert started.data["status"] == "in_transit"
        assert started.data["departure_time"] == "2026-01-05T14:05:00Z"
        assert completed.data == {"transfer_id": "t1", "status": "completed", "transit_minutes": 42}

    def test_rpc_exception_is_operation_failed(self, service, database, audit_events):
        database.rpc.side_effect = RuntimeError("timeout")

        result = service.complete_transfer("t1")

        assert result.error_code == "OPERATION_FAILED"
        assert result.error.message == "Failed to complete transfer"
        assert audit_events("ERROR") == ["TRANSFER_COMPLETE_FAILED"]


class TestCapacity:
    def test_latest_snapshot_per_facility(self, service, database):
        database.select.return_value = ServiceResult.success_result([
            {"facility_id": "fac-1", "available_beds": 4, "snapshot_at": "2026-01-05T12:00:00Z"},
            {"facility_id": "fac-2", "available_beds": 1, "snapshot_at": "2026-01-05T11:00:00Z"},
            {"facility_id": "fac-1", "available_beds": 9, "snapshot_at": "2026-01-05T08:00:00Z"},
        ])

        result = service.get_facility_capacity(accepting_only=True)

        assert [row["available_beds"] for row in result.data] == [4, 1]
        query = database.select.call_args.args[0]
        assert ("is_accepting_transfers", "eq", True) in _filters(query)

    def test_update_facility_capacity(self, service, database, written_rows, audit_events):
        result = service.update_facility_capacity("fac-1", FacilityCapacityUpdate(total_beds=40, available_beds=6))

        assert result.data["facility_id"] == "fac-1"
        (row,) = written_rows(database.insert, "facility_capacity")
        assert row["available_beds"] == 6
        assert "snapshot_at" in row
        assert audit_events() == ["FACILITY_CAPACITY_UPDATED"]

    def test_metrics(self, service, database):
        database.rpc.return_value = ServiceResult.success_result({"pending": 3})

        assert service.get_metrics("tenant-1").data == {"pending": 3}
        database.rpc.assert_called_once_with("get_transfer_metrics", {"p_tenant_id": "tenant-1"})
