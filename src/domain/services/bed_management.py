"""Bed Management Service.

Bed board, unit capacity and census, bed assignment and discharge, status
changes, census forecasting and the forecast learning loop.

Live bed operations go through the ``bed-management`` remote function
(``{action, ...params}``); reference data and history are read directly
from the database.

Security Impact:
    - Every bed assignment, discharge and status change is audited (CLINICAL)
    - Patient identifiers are passed through, never logged in free text

Architecture:
    - Domain service; depends only on DatabasePort, FunctionsPort and AuditLogger
    - Accuracy and turnaround analytics use pandas over the fetched rows
"""

import logging
from typing import Any, Optional

import pandas as pd

from src.domain.bed_models import (
    BED_STATUSES,
    LearningFeedback,
    PredictionAccuracySummary,
    TurnaroundAnalytics,
)
from src.domain.guardrails import validate_enum
from src.domain.ports import (
    DatabasePort,
    ErrorCode,
    FunctionsPort,
    ServiceResult,
    TableQuery,
    ValidationError,
)
from src.domain.utils import days_ago_iso, drop_none
from src.infrastructure.audit import AuditLogger

logger = logging.getLogger(__name__)

BED_FUNCTION = "bed-management"


class BedManagementService:
    """Bed board and capacity operations.

    Example Usage:
        ```python
        service = BedManagementService(database, functions, audit)
        result = service.find_available_beds(unit_id=unit_id, requires_telemetry=True)
        if result.is_success():
            for bed in result.data:
                print(bed["bed_label"])
        ```
    """

    def __init__(self, database: DatabasePort, functions: FunctionsPort, audit_logger: Optional[AuditLogger] = None):
        self.database = database
        self.functions = functions
        self.audit = audit_logger or AuditLogger(database, category="CLINICAL")

    def _call_function(self, action: str, params: Optional[dict] = None) -> ServiceResult[dict]:
        """Invoke the bed-management function and unwrap its ``success`` flag."""
        try:
            result = self.functions.invoke(BED_FUNCTION, {"action": action, **drop_none(params or {})})
            if result.is_failure():
                self.audit.error("BED_MANAGEMENT_EDGE_ERROR", result.error.message, {"action": action})
                return ServiceResult.failure_result(ErrorCode.EXTERNAL_SERVICE_ERROR, result.error.message)

            response = result.data or {}
            if not response.get("success"):
                return ServiceResult.failure_result(
                    ErrorCode.OPERATION_FAILED, response.get("error") or "Operation failed"
                )
            return ServiceResult.success_result(response)
        except Exception as e:
            logger.error(f"Bed management action {action} failed: {e}")
            self.audit.error("BED_MANAGEMENT_ERROR", e, {"action": action})
            return ServiceResult.failure_result(
                ErrorCode.UNKNOWN_ERROR, "Failed to execute bed management operation"
            )

    # ------------------------------------------------------------------
    # Live operations (remote function)
    # ------------------------------------------------------------------

    def get_bed_board(self, unit_id: Optional[str] = None, facility_id: Optional[str] = None) -> ServiceResult[list[dict]]:
        result = self._call_function("get_bed_board", {"unit_id": unit_id, "facility_id": facility_id})
        if result.is_failure():
            return result
        return ServiceResult.success_result(result.data.get("beds") or [])

    def get_unit_capacity(self, unit_id: Optional[str] = None, facility_id: Optional[str] = None) -> ServiceResult[list[dict]]:
        result = self._call_function("get_unit_capacity", {"unit_id": unit_id, "facility_id": facility_id})
        if result.is_failure():
            return result
        return ServiceResult.success_result(result.data.get("units") or [])

    def get_unit_census(self, unit_id: str) -> ServiceResult[Optional[dict]]:
        result = self._call_function("get_census", {"unit_id": unit_id})
        if result.is_failure():
            return result
        return ServiceResult.success_result(result.data.get("census"))

    def find_available_beds(
        self,
        unit_id: Optional[str] = None,
        bed_type: Optional[str] = None,
        requires_telemetry: Optional[bool] = None,
        requires_isolation: Optional[bool] = None,
        requires_negative_pressure: Optional[bool] = None
    ) -> ServiceResult[list[dict]]:
        result = self._call_function("find_available", {
            "unit_id": unit_id,
            "bed_type": bed_type,
            "requires_telemetry": requires_telemetry,
            "requires_isolation": requires_isolation,
            "requires_negative_pressure": requires_negative_pressure,
        })
        if result.is_failure():
            return result
        return ServiceResult.success_result(result.data.get("available_beds") or [])

    def assign_patient_to_bed(
        self,
        patient_id: str,
        bed_id: str,
        expected_los_days: Optional[int] = None
    ) -> ServiceResult[dict]:
        if not patient_id or not bed_id:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, "Patient ID and bed ID are required")

        result = self._call_function("assign_bed", {
            "patient_id": patient_id,
            "bed_id": bed_id,
            "expected_los_days": expected_los_days,
        })
        if result.is_failure():
            return result

        self.audit.info("PATIENT_ASSIGNED_TO_BED", {
            "patientId": patient_id,
            "bedId": bed_id,
            "assignmentId": result.data.get("assignment_id"),
        })
        return ServiceResult.success_result({
            "assignmentId": result.data.get("assignment_id"),
            "message": result.data.get("message", ""),
        })

    def discharge_patient(self, patient_id: str, disposition: str = "Home") -> ServiceResult[dict]:
        if not patient_id:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, "Patient ID is required")

        result = self._call_function("discharge", {"patient_id": patient_id, "disposition": disposition})
        if result.is_failure():
            return result

        self.audit.info("PATIENT_DISCHARGED", {"patientId": patient_id, "disposition": disposition})
        return ServiceResult.success_result({"message": result.data.get("message", "")})

    def update_bed_status(self, bed_id: str, new_status: str, reason: Optional[str] = None) -> ServiceResult[dict]:
        try:
            validate_enum(new_status, BED_STATUSES, "status")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)

        result = self._call_function("update_status", {"bed_id": bed_id, "new_status": new_status, "reason": reason})
        if result.is_failure():
            return result

        self.audit.info("BED_STATUS_UPDATED", {"bedId": bed_id, "newStatus": new_status, "reason": reason})
        return ServiceResult.success_result({"message": result.data.get("message", "")})

    def generate_forecast(self, unit_id: str, forecast_date: Optional[str] = None) -> ServiceResult[dict]:
        result = self._call_function("generate_forecast", {"unit_id": unit_id, "forecast_date": forecast_date})
        if result.is_failure():
            return result
        return ServiceResult.success_result(result.data.get("forecast"))

    # ------------------------------------------------------------------
    # Reference data and history
    # ------------------------------------------------------------------

    def _select(self, query: TableQuery, failure_message: str) -> ServiceResult[list[dict]]:
        try:
            result = self.database.select(query)
            if result.is_failure():
                return result
            return ServiceResult.success_result(result.data or [])
        except Exception as e:
            logger.error(f"{failure_message}: {e}")
            return ServiceResult.failure_result(ErrorCode.UNKNOWN_ERROR, failure_message)

    def get_hospital_units(self, facility_id: Optional[str] = None) -> ServiceResult[list[dict]]:
        query = TableQuery("hospital_units").eq("is_active", True).order("unit_name")
        if facility_id:
            query.eq("facility_id", facility_id)
        return self._select(query, "Failed to fetch hospital units")

    def get_beds_for_unit(self, unit_id: str) -> ServiceResult[list[dict]]:
        query = (
            TableQuery("beds")
            .eq("unit_id", unit_id)
            .eq("is_active", True)
            .order("room_number")
            .order("bed_position")
        )
        return self._select(query, "Failed to fetch beds")

    def get_daily_census_snapshots(self, unit_id: str, start_date: str, end_date: str) -> ServiceResult[list[dict]]:
        query = (
            TableQuery("daily_census_snapshots")
            .eq("unit_id", unit_id)
            .gte("census_date", start_date)
            .lte("census_date", end_date)
            .order("census_date")
        )
        return self._select(query, "Failed to fetch census snapshots")

    def get_bed_status_history(self, bed_id: str, limit: int = 50) -> ServiceResult[list[dict]]:
        query = (
            TableQuery("bed_status_history")
            .eq("bed_id", bed_id)
            .order("changed_at", ascending=False)
            .limit(limit)
        )
        return self._select(query, "Failed to fetch bed status history")

    def get_historical_forecasts(self, unit_id: str, start_date: str, end_date: str) -> ServiceResult[list[dict]]:
        query = (
            TableQuery("bed_availability_forecasts")
            .eq("unit_id", unit_id)
            .gte("forecast_date", start_date)
            .lte("forecast_date", end_date)
            .order("forecast_date")
        )
        return self._select(query, "Failed to fetch forecasts")

    # ------------------------------------------------------------------
    # Learning loop
    # ------------------------------------------------------------------

    def submit_learning_feedback(self, feedback: LearningFeedback) -> ServiceResult[dict]:
        """Record actual-vs-predicted values against the census snapshot and forecast.

        A failed forecast update is audited as a warning and does not fail
        the submission; a failed snapshot update does.
        """
        try:
            snapshot = self.database.select_one(
                TableQuery("daily_census_snapshots", "id")
                .eq("unit_id", feedback.unit_id)
                .eq("census_date", feedback.feedback_date)
            )
            if snapshot.is_success() and snapshot.data:
                updated = self.database.update(
                    TableQuery("daily_census_snapshots").eq("id", snapshot.data["id"]),
                    {
                        "eod_census": feedback.actual_value,
                        "prediction_accuracy": 100 - abs(feedback.variance_percentage),
                    },
                )
                if updated.is_failure():
                    return ServiceResult.from_failure(updated)

            if feedback.feedback_type == "census_prediction":
                forecast = self.database.update(
                    TableQuery("bed_availability_forecasts")
                    .eq("unit_id", feedback.unit_id)
                    .eq("forecast_date", feedback.feedback_date),
                    {
                        "actual_census": feedback.actual_value,
                        "error_percentage": feedback.variance_percentage,
                    },
                )
                if forecast.is_failure():
                    self.audit.warn("FORECAST_UPDATE_FAILED", {"error": forecast.error.message})

            self.audit.info("ML_LEARNING_FEEDBACK_SUBMITTED", {
                "feedbackType": feedback.feedback_type,
                "unitId": feedback.unit_id,
                "variance": feedback.variance,
            })
            return ServiceResult.success_result({**feedback.to_api(), "id": "feedback-recorded"})
        except Exception as e:
            logger.error(f"Learning feedback failed: {e}")
            return ServiceResult.failure_result(ErrorCode.UNKNOWN_ERROR, "Failed to submit learning feedback")

    def get_prediction_accuracy(self, unit_id: str, days: int = 30) -> ServiceResult[PredictionAccuracySummary]:
        """Forecast accuracy for a unit over the last ``days`` days.

        Accuracy is ``100 - MAPE`` (floored at 0, zero actuals skipped in the
        sum but counted in the mean); the trend is improving when the second
        half of the samples has a lower MAE than the first half.
        """
        try:
            result = self.database.select(
                TableQuery("bed_availability_forecasts", "predicted_census,actual_census,forecast_error,error_percentage")
                .eq("unit_id", unit_id)
                .gte("forecast_date", days_ago_iso(days)[:10])
                .not_null("actual_census")
            )
            if result.is_failure():
                return ServiceResult.from_failure(result)

            df = pd.DataFrame(result.data or [], columns=["predicted_census", "actual_census"])
            df = df.dropna(subset=["predicted_census", "actual_census"])
            if df.empty:
                return ServiceResult.success_result(PredictionAccuracySummary(unit_id=unit_id))

            df = df.astype(float)
            errors = df["actual_census"] - df["predicted_census"]
            abs_errors = errors.abs()
            nonzero = df["actual_census"] != 0
            mape = (abs_errors[nonzero] / df["actual_census"][nonzero] * 100).sum() / len(df)
            accuracy = max(0.0, 100 - mape)

            mid = len(df) // 2
            first_half = abs_errors.iloc[:mid]
            second_half = abs_errors.iloc[mid:]
            first_mae = first_half.mean() if len(first_half) else 0.0
            second_mae = second_half.mean() if len(second_half) else 0.0

            return ServiceResult.success_result(PredictionAccuracySummary(
                unit_id=unit_id,
                total_predictions=len(df),
                mean_error=round(float(errors.mean()), 2),
                mean_absolute_error=round(float(abs_errors.mean()), 2),
                accuracy_percentage=round(accuracy, 1),
                improving_trend=bool(second_mae < first_mae),
                last_30_days_accuracy=round(accuracy, 1),
                samples_for_improvement=len(df),
            ))
        except Exception as e:
            logger.error(f"Prediction accuracy failed for unit {unit_id}: {e}")
            return ServiceResult.failure_result(ErrorCode.UNKNOWN_ERROR, "Failed to calculate prediction accuracy")

    def record_actual_census(
        self,
        unit_id: str,
        census_date: str,
        actual_census: int,
        actual_available: int
    ) -> ServiceResult[None]:
        result = self.database.update(
            TableQuery("bed_availability_forecasts").eq("unit_id", unit_id).eq("forecast_date", census_date),
            {"actual_census": actual_census, "actual_available": actual_available, "error_percentage": None},
        )
        if result.is_failure():
            return ServiceResult.from_failure(result)

        self.audit.info("ACTUAL_CENSUS_RECORDED", {
            "unitId": unit_id,
            "date": census_date,
            "actualCensus": actual_census,
        })
        return ServiceResult.success_result(None)

    def get_turnaround_analytics(self, unit_id: Optional[str] = None, days: int = 7) -> ServiceResult[TurnaroundAnalytics]:
        """Dirty-to-available turnaround statistics.

        Day-of-week buckets use Sunday = 0. Records without a duration count
        as turnovers and as 0 minutes in the buckets, but are excluded from
        the overall average.
        """
        try:
            query = (
                TableQuery("bed_status_history", "previous_status,new_status,changed_at,duration_minutes,unit_id")
                .eq("previous_status", "dirty")
                .eq("new_status", "available")
                .gte("changed_at", days_ago_iso(days))
            )
            if unit_id:
                query.eq("unit_id", unit_id)

            result = self.database.select(query)
            if result.is_failure():
                return ServiceResult.from_failure(result)

            records = result.data or []
            if not records:
                return ServiceResult.success_result(TurnaroundAnalytics())

            df = pd.DataFrame(records)
            df["changed_at"] = pd.to_datetime(df["changed_at"], utc=True)
            durations = pd.to_numeric(df["duration_minutes"], errors="coerce")
            average = durations.dropna().mean() if durations.notna().any() else 0.0

            df["duration"] = durations.fillna(0)
            df["dow"] = (df["changed_at"].dt.dayofweek + 1) % 7
            df["hour"] = df["changed_at"].dt.hour

            return ServiceResult.success_result(TurnaroundAnalytics(
                avg_turnaround_minutes=int(round(average)),
                total_turnovers=len(df),
                by_day_of_week=_bucket_means(df, "dow"),
                by_hour=_bucket_means(df, "hour"),
            ))
        except Exception as e:
            logger.error(f"Turnaround analytics failed: {e}")
            return ServiceResult.failure_result(ErrorCode.UNKNOWN_ERROR, "Failed to get turnaround analytics")


def _bucket_means(df: pd.DataFrame, column: str) -> dict[int, float]:
    means: Any = df.groupby(column)["duration"].mean()
    return {int(key): float(value) for key, value in means.items()}
