"""Bed management endpoints: bed board, capacity, ADT actions and forecasting."""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from src.dashboard.api.dependencies import BedOptimizerDep, BedServiceDep
from src.dashboard.api.responses import respond
from src.dashboard.models.requests import (
    ActualCensusBody,
    BedAssignmentBody,
    BedRecommendationBody,
    BedStatusBody,
    DischargeBody,
    OptimizationReportBody,
)
from src.domain.bed_models import LearningFeedback
from src.domain.ports import ServiceResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/beds", tags=["beds"])


# ----------------------------------------------------------------------
# Board and capacity
# ----------------------------------------------------------------------

@router.get("/board")
def get_bed_board(
    beds: BedServiceDep,
    unit_id: Optional[str] = Query(None, alias="unitId"),
    facility_id: Optional[str] = Query(None, alias="facilityId"),
):
    """Real-time bed board, optionally filtered to one unit or facility."""
    return respond(beds.get_bed_board(unit_id=unit_id, facility_id=facility_id))


@router.get("/capacity")
def get_unit_capacity(
    beds: BedServiceDep,
    unit_id: Optional[str] = Query(None, alias="unitId"),
    facility_id: Optional[str] = Query(None, alias="facilityId"),
):
    return respond(beds.get_unit_capacity(unit_id=unit_id, facility_id=facility_id))


@router.get("/units")
def get_hospital_units(beds: BedServiceDep, facility_id: Optional[str] = Query(None, alias="facilityId")):
    return respond(beds.get_hospital_units(facility_id=facility_id))


@router.get("/units/{unit_id}/census")
def get_unit_census(unit_id: str, beds: BedServiceDep):
    return respond(beds.get_unit_census(unit_id))


@router.get("/units/{unit_id}/beds")
def get_beds_for_unit(unit_id: str, beds: BedServiceDep):
    return respond(beds.get_beds_for_unit(unit_id))


@router.get("/available")
def find_available_beds(
    beds: BedServiceDep,
    unit_id: Optional[str] = Query(None, alias="unitId"),
    bed_type: Optional[str] = Query(None, alias="bedType"),
    requires_telemetry: Optional[bool] = Query(None, alias="requiresTelemetry"),
    requires_isolation: Optional[bool] = Query(None, alias="requiresIsolation"),
    requires_negative_pressure: Optional[bool] = Query(None, alias="requiresNegativePressure"),
):
    """Available beds matching the requested capabilities."""
    return respond(beds.find_available_beds(
        unit_id=unit_id,
        bed_type=bed_type,
        requires_telemetry=requires_telemetry,
        requires_isolation=requires_isolation,
        requires_negative_pressure=requires_negative_pressure,
    ))


# ----------------------------------------------------------------------
# ADT actions
# ----------------------------------------------------------------------

@router.post("/assign")
def assign_patient_to_bed(body: BedAssignmentBody, beds: BedServiceDep):
    return respond(beds.assign_patient_to_bed(body.patient_id, body.bed_id, body.expected_los_days))


@router.post("/discharge")
def discharge_patient(body: DischargeBody, beds: BedServiceDep):
    return respond(beds.discharge_patient(body.patient_id, body.disposition))


@router.put("/{bed_id}/status")
def update_bed_status(bed_id: str, body: BedStatusBody, beds: BedServiceDep):
    return respond(beds.update_bed_status(bed_id, body.status, body.reason))


@router.get("/{bed_id}/history")
def get_bed_status_history(bed_id: str, beds: BedServiceDep, limit: int = Query(50, ge=1, le=500)):
    return respond(beds.get_bed_status_history(bed_id, limit=limit))


# ----------------------------------------------------------------------
# Forecasting and learning
# ----------------------------------------------------------------------

@router.post("/units/{unit_id}/forecast")
def generate_forecast(
    unit_id: str,
    beds: BedServiceDep,
    forecast_date: Optional[str] = Query(None, alias="forecastDate"),
):
    return respond(beds.generate_forecast(unit_id, forecast_date=forecast_date))


@router.get("/units/{unit_id}/forecasts")
def get_historical_forecasts(
    unit_id: str,
    beds: BedServiceDep,
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
):
    return respond(beds.get_historical_forecasts(unit_id, start_date, end_date))


@router.get("/units/{unit_id}/census-snapshots")
def get_daily_census_snapshots(
    unit_id: str,
    beds: BedServiceDep,
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
):
    return respond(beds.get_daily_census_snapshots(unit_id, start_date, end_date))


@router.post("/census/actual")
def record_actual_census(body: ActualCensusBody, beds: BedServiceDep):
    """Record the observed census so forecasts can be scored."""
    return respond(beds.record_actual_census(
        body.unit_id, body.census_date, body.actual_census, body.actual_available
    ))


@router.post("/feedback")
def submit_learning_feedback(feedback: LearningFeedback, beds: BedServiceDep):
    return respond(beds.submit_learning_feedback(feedback))


@router.get("/units/{unit_id}/accuracy")
def get_prediction_accuracy(unit_id: str, beds: BedServiceDep, days: int = Query(30, ge=1, le=365)):
    return respond(beds.get_prediction_accuracy(unit_id, days=days))


@router.get("/turnaround")
def get_turnaround_analytics(
    beds: BedServiceDep,
    unit_id: Optional[str] = Query(None, alias="unitId"),
    days: int = Query(7, ge=1, le=90),
):
    return respond(beds.get_turnaround_analytics(unit_id=unit_id, days=days))


# ----------------------------------------------------------------------
# Optimizer
# ----------------------------------------------------------------------

@router.post("/optimization-report")
def generate_optimization_report(body: OptimizationReportBody, optimizer: BedOptimizerDep):
    """Capacity and efficiency scores, shift forecasts, discharge candidates and insights."""
    return respond(optimizer.generate_optimization_report(body.tenant_id))


@router.post("/recommendation")
def recommend_bed_assignment(body: BedRecommendationBody, optimizer: BedOptimizerDep):
    """Best bed for an incoming patient (409 when no bed is available)."""
    return respond(optimizer.recommend_bed_assignment(body.tenant_id, body.patient))


@router.get("/discharge-recommendations")
def get_discharge_recommendations(optimizer: BedOptimizerDep, tenant_id: str = Query(..., alias="tenantId")):
    return respond(ServiceResult.success_result(optimizer.generate_discharge_recommendations(tenant_id)))
