"""Tests for BedManagementService."""

import pytest

from src.domain.bed_models import LearningFeedback
from src.domain.ports import ServiceResult
from src.domain.services import BedManagementService


@pytest.fixture
def service(database, functions):
    return BedManagementService(database, functions)


class TestLiveOperations:
    def test_assign_requires_ids(self, service, functions):
        result = service.assign_patient_to_bed("", "bed-1")

        assert result.error_code == "INVALID_INPUT"
        assert result.error.message == "Patient ID and bed ID are required"
        functions.invoke.assert_not_called()

    def test_assign_patient_to_bed(self, service, functions, audit_events):
        functions.invoke.return_value = ServiceResult.success_result(
            {"success": True, "assignment_id": "asg-1", "message": "Patient assigned"}
        )

        result = service.assign_patient_to_bed("patient-1", "bed-1")

        assert result.is_success()
        assert result.data == {"assignmentId": "asg-1", "message": "Patient assigned"}
        functions.invoke.assert_called_once_with(
            "bed-management", {"action": "assign_bed", "patient_id": "patient-1", "bed_id": "bed-1"}
        )
        assert audit_events() == ["PATIENT_ASSIGNED_TO_BED"]

    def test_function_transport_failure(self, service, functions, audit_events):
        functions.invoke.return_value = ServiceResult.failure_result("EXTERNAL_SERVICE_ERROR", "502 Bad Gateway")

        result = service.discharge_patient("patient-1")

        assert result.error_code == "EXTERNAL_SERVICE_ERROR"
        assert audit_events("ERROR") == ["BED_MANAGEMENT_EDGE_ERROR"]

    def test_function_reports_failure(self, service, functions):
        functions.invoke.return_value = ServiceResult.success_result(
            {"success": False, "error": "Bed is not available"}
        )

        result = service.assign_patient_to_bed("patient-1", "bed-1")

        assert result.error_code == "OPERATION_FAILED"
        assert result.error.message == "Bed is not available"

    def test_function_raises(self, service, functions):
        functions.invoke.side_effect = RuntimeError("socket closed")

        result = service.get_bed_board()

        assert result.error_code == "UNKNOWN_ERROR"
        assert result.error.message == "Failed to execute bed management operation"

    def test_get_bed_board(self, service, functions):
        functions.invoke.return_value = ServiceResult.success_result(
            {"success": True, "beds": [{"bed_id": "b1", "status": "available"}]}
        )

        result = service.get_bed_board(unit_id="unit-1")

        assert result.data == [{"bed_id": "b1", "status": "available"}]
        functions.invoke.assert_called_once_with("bed-management", {"action": "get_bed_board", "unit_id": "unit-1"})

    def test_find_available_beds_empty(self, service):
        assert service.find_available_beds(requires_telemetry=True).data == []

    def test_update_bed_status_rejects_unknown_status(self, service, functions):
        result = service.update_bed_status("bed-1", "broken")

        assert result.error_code == "INVALID_INPUT"
        assert result.error.message == "Invalid status: broken"
        functions.invoke.assert_not_called()

    def test_update_bed_status(self, service, functions, audit_events):
        functions.invoke.return_value = ServiceResult.success_result({"success": True, "message": "Updated"})

        result = service.update_bed_status("bed-1", "dirty", reason="Discharge")

        assert result.data == {"message": "Updated"}
        assert audit_events() == ["BED_STATUS_UPDATED"]


class TestHistory:
    def test_get_hospital_units_filters_facility(self, service, database):
        database.select.return_value = ServiceResult.success_result([{"id": "u1", "unit_name": "4 West"}])

        result = service.get_hospital_units(facility_id="fac-1")

        assert result.data == [{"id": "u1", "unit_name": "4 West"}]
        query = database.select.call_args.args[0]
        assert query.table == "hospital_units"
        assert ("facility_id", "eq", "fac-1") in [(f.column, f.operator, f.value) for f in query.filters]

    def test_select_failure_passes_through(self, service, database):
        database.select.return_value = ServiceResult.failure_result("DATABASE_ERROR", "connection refused")

        result = service.get_beds_for_unit("unit-1")

        assert result.error_code == "DATABASE_ERROR"

    def test_bed_status_history_is_newest_first(self, service, database):
        service.get_bed_status_history("bed-1", limit=10)

        query = database.select.call_args.args[0]
        assert query.ordering == [("changed_at", False)]
        assert query.limit_value == 10


class TestLearningLoop:
    def _feedback(self, **overrides):
        values = {
            "unit_id": "unit-1",
            "feedback_date": "2026-01-05",
            "predicted_value": 20,
            "actual_value": 19,
            "variance": -1,
            "variance_percentage": -5.0,
        }
        values.update(overrides)
        return LearningFeedback(**values)

    def test_submit_feedback_updates_snapshot_and_forecast(self, service, database, audit_events):
        database.select_one.return_value = ServiceResult.success_result({"id": "snap-1"})

        result = service.submit_learning_feedback(self._feedback())

        assert result.is_success()
        assert result.data["id"] == "feedback-recorded"
        assert result.data["unitId"] == "unit-1"
        snapshot_call, forecast_call = database.update.call_args_list
        assert snapshot_call.args[1] == {"eod_census": 19, "prediction_accuracy": 95.0}
        assert forecast_call.args[0].table == "bed_availability_forecasts"
        assert forecast_call.args[1] == {"actual_census": 19, "error_percentage": -5.0}
        assert audit_events() == ["ML_LEARNING_FEEDBACK_SUBMITTED"]

    def test_snapshot_update_failure_fails_submission(self, service, database):
        database.select_one.return_value = ServiceResult.success_result({"id": "snap-1"})
        database.update.return_value = ServiceResult.failure_result("DATABASE_ERROR", "write failed")

        result = service.submit_learning_feedback(self._feedback())

        assert result.error_code == "DATABASE_ERROR"

    def test_forecast_update_failure_is_only_a_warning(self, service, database, audit_events):
        database.update.return_value = ServiceResult.failure_result("DATABASE_ERROR", "write failed")

        result = service.submit_learning_feedback(self._feedback())

        assert result.is_success()
        assert audit_events("WARNING") == ["FORECAST_UPDATE_FAILED"]

    def test_discharge_feedback_skips_forecast(self, service, database):
        service.submit_learning_feedback(self._feedback(feedback_type="discharge_prediction"))

        database.update.assert_not_called()

    def test_prediction_accuracy(self, service, database):
        database.select.return_value = ServiceResult.success_result([
            {"predicted_census": 8, "actual_census": 10},
            {"predicted_census": 10, "actual_census": 12},
            {"predicted_census": 10, "actual_census": 10},
            {"predicted_census": 10, "actual_census": 10},
        ])

        summary = service.get_prediction_accuracy("unit-1").data

        assert summary.total_predictions == 4
        assert summary.mean_error == 1.0
        assert summary.mean_absolute_error == 1.0
        assert summary.accuracy_percentage == 90.8
        assert summary.improving_trend is True

    def test_prediction_accuracy_without_samples(self, service):
        summary = service.get_prediction_accuracy("unit-1").data

        assert summary.unit_id == "unit-1"
        assert summary.total_predictions == 0
        assert summary.accuracy_percentage == 0.0

    def test_record_actual_census(self, service, database, audit_events):
        result = service.record_actual_census("unit-1", "2026-01-05", 18, 6)

        assert result.is_success()
        assert database.update.call_args.args[1] == {
            "actual_census": 18, "actual_available": 6, "error_percentage": None,
        }
        assert audit_events() == ["ACTUAL_CENSUS_RECORDED"]


class TestTurnaround:
    def test_buckets_use_sunday_as_zero(self, service, database):
        database.select.return_value = ServiceResult.success_result([
            {"changed_at": "2026-01-04T10:00:00Z", "duration_minutes": 60},
            {"changed_at": "2026-01-05T10:00:00Z", "duration_minutes": 30},
            {"changed_at": "2026-01-05T14:00:00Z", "duration_minutes": None},
        ])

        analytics = service.get_turnaround_analytics(unit_id="unit-1").data

        assert analytics.total_turnovers == 3
        assert analytics.avg_turnaround_minutes == 45
        assert analytics.by_day_of_week == {0: 60.0, 1: 15.0}
        assert analytics.by_hour == {10: 45.0, 14: 0.0}

    def test_no_turnovers(self, service):
        analytics = service.get_turnaround_analytics().data

        assert analytics.total_turnovers == 0
        assert analytics.by_hour == {}
