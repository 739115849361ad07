"""Bed Management and Capacity Models.

Schemas for the bed board, learning feedback loop, and the bed optimizer's
forecasts, discharge recommendations, bed-assignment matches and insights.

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Bed board rows themselves are passed through as dicts from the
      hosted database; only computed structures are modelled here
"""

from typing import Literal, Optional

from pydantic import Field, field_validator

from src.domain.schema import CamelModel

BedStatus = Literal["available", "occupied", "dirty", "cleaning", "blocked", "maintenance", "reserved"]
BedType = Literal[
    "standard", "icu", "step_down", "telemetry", "isolation",
    "negative_pressure", "bariatric", "pediatric", "labor_delivery",
]
ShiftPeriod = Literal["day", "evening", "night"]
RiskLevel = Literal["low", "moderate", "high", "critical"]
DischargeReadiness = Literal["ready", "likely_today", "likely_tomorrow", "needs_more_time"]

BED_STATUSES = ("available", "occupied", "dirty", "cleaning", "blocked", "maintenance", "reserved")


class LearningFeedback(CamelModel):
    """Actual-vs-predicted feedback for a unit's forecast.

    Parameters:
        unit_id: Hospital unit the prediction was made for
        feedback_date: Census date (YYYY-MM-DD)
        feedback_type: census_prediction, discharge_prediction or los_prediction
        predicted_value: Value the model predicted
        actual_value: Observed value
        variance: actual - predicted
        variance_percentage: Variance as a percentage of the actual value
    """

    unit_id: str
    feedback_date: str
    feedback_type: Literal["census_prediction", "discharge_prediction", "los_prediction"] = "census_prediction"
    predicted_value: float
    actual_value: float
    variance: float = 0.0
    variance_percentage: float = 0.0
    notes: Optional[str] = None
    submitted_by: Optional[str] = None


class PredictionAccuracySummary(CamelModel):
    unit_id: str
    unit_name: str = ""
    prediction_type: str = "census"
    total_predictions: int = 0
    mean_error: float = 0.0
    mean_absolute_error: float = 0.0
    accuracy_percentage: float = 0.0
    improving_trend: bool = False
    last_30_days_accuracy: float = 0.0
    samples_for_improvement: int = 0


class TurnaroundAnalytics(CamelModel):
    """Bed turnaround (dirty -> available) statistics.

    ``by_day_of_week`` is keyed 0-6 with Sunday = 0; ``by_hour`` 0-23.
    """

    avg_turnaround_minutes: int = 0
    total_turnovers: int = 0
    by_day_of_week: dict[int, float] = Field(default_factory=dict)
    by_hour: dict[int, float] = Field(default_factory=dict)


class IncomingPatient(CamelModel):
    """Patient awaiting a bed (bed-assignment matching input)."""

    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    acuity_level: str = "medium"
    diagnosis: Optional[str] = None
    diagnosis_code: Optional[str] = None
    requires_telemetry: bool = False
    requires_isolation: bool = False
    requires_negative_pressure: bool = False
    is_bariatric: bool = False
    preferred_unit_type: Optional[str] = None
    expected_los: Optional[int] = Field(None, alias="expectedLOS")
    special_equipment_needs: list[str] = Field(default_factory=list)
    admission_source: Literal["ed", "direct", "transfer", "surgery", "observation"] = "ed"


class ForecastFactors(CamelModel):
    day_of_week: str
    historical_pattern: str
    scheduled_arrivals: int = 0
    expected_discharges: int = 0
    pending_transfers: int = 0
    seasonal_adjustment: float = 1.0


class CapacityForecast(CamelModel):
    forecast_date: str
    shift_period: ShiftPeriod
    predicted_census: int
    predicted_discharges: int
    predicted_admissions: int
    predicted_available_beds: int
    confidence_level: float
    risk_level: RiskLevel
    capacity_utilization: float
    factors: ForecastFactors
    recommendations: list[str] = Field(default_factory=list)
    ai_model: str = "fallback"
    ai_cost: float = 0.0

    @field_validator("confidence_level")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(1.0, v))


class DischargeRecommendation(CamelModel):
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    bed_label: Optional[str] = None
    unit_name: Optional[str] = None
    current_los: int = Field(0, alias="currentLOS")
    predicted_discharge_date: Optional[str] = None
    discharge_readiness: DischargeReadiness = "needs_more_time"
    confidence: float = 0.0
    factors: dict = Field(default_factory=dict)
    suggested_disposition: Optional[str] = None
    estimated_discharge_time: Optional[str] = None
    ai_rationale: str = ""


class AlternativeBed(CamelModel):
    bed_id: str
    bed_label: Optional[str] = None
    match_score: int = 0
    reason: str = ""


class BedAssignmentRecommendation(CamelModel):
    recommended_bed_id: str
    bed_label: Optional[str] = None
    unit_name: Optional[str] = None
    match_score: int = 0
    match_factors: dict = Field(default_factory=dict)
    alternative_beds: list[AlternativeBed] = Field(default_factory=list)
    ai_rationale: str = ""


class InsightRecommendation(CamelModel):
    action: str
    priority: Literal["low", "medium", "high", "urgent"]
    estimated_impact: str
    timeframe: str


class CapacityInsight(CamelModel):
    insight_type: Literal["bottleneck", "optimization", "warning", "trend"]
    severity: Literal["info", "warning", "critical"]
    title: str
    description: str
    affected_units: list[str] = Field(default_factory=list)
    metrics: dict[str, float] = Field(default_factory=dict)
    recommendations: list[InsightRecommendation] = Field(default_factory=list)


class UnitBreakdown(CamelModel):
    unit_id: Optional[str] = None
    unit_name: str
    occupancy: float
    efficiency: float
    bottlenecks: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)


class OptimizationReport(CamelModel):
    generated_at: str
    overall_capacity_score: int
    overall_efficiency_score: int
    current_occupancy_rate: float
    target_occupancy_rate: float = 0.85
    forecasts: list[CapacityForecast] = Field(default_factory=list)
    discharge_recommendations: list[DischargeRecommendation] = Field(default_factory=list)
    insights: list[CapacityInsight] = Field(default_factory=list)
    unit_breakdown: list[UnitBreakdown] = Field(default_factory=list)
    ai_model: str
    total_ai_cost: float = 0.0
