"""Request bodies for endpoints whose service takes plain arguments.

Endpoints whose service already takes a domain model (transfer requests,
skill requests, notifications) accept that model directly.
"""

from typing import Optional

from pydantic import Field

from src.domain.accuracy_models import BilledCode, PromptType
from src.domain.bed_models import BedStatus, IncomingPatient
from src.domain.schema import CamelModel


class BedAssignmentBody(CamelModel):
    patient_id: str
    bed_id: str
    expected_los_days: Optional[int] = Field(None, ge=0)


class DischargeBody(CamelModel):
    patient_id: str
    disposition: str = "Home"


class BedStatusBody(CamelModel):
    status: BedStatus
    reason: Optional[str] = None


class ActualCensusBody(CamelModel):
    unit_id: str
    census_date: str
    actual_census: int = Field(..., ge=0)
    actual_available: int = Field(..., ge=0)


class BedRecommendationBody(CamelModel):
    tenant_id: str
    patient: IncomingPatient


class OptimizationReportBody(CamelModel):
    tenant_id: str


class EmergencyInfoBody(CamelModel):
    """Emergency response details; keys follow EmergencyResponseInfo."""

    tenant_id: Optional[str] = None
    updated_by: Optional[str] = None
    info: dict = Field(default_factory=dict)


class WelfarePriorityBody(CamelModel):
    tenant_id: str
    assessment_date: Optional[str] = None


class ReminderRunBody(CamelModel):
    reminder_type: str
    batch_size: int = Field(100, ge=1, le=1000)


class NotificationReadBody(CamelModel):
    user_id: str


class AssessmentApprovalBody(CamelModel):
    reviewer_id: str
    review_notes: Optional[str] = None


class CarePlanApprovalBody(CamelModel):
    approver_id: str


class QuickFallRiskBody(CamelModel):
    """Shortcut assessments (admission screen, post-fall, routine)."""

    patient_id: str
    assessor_id: str
    tenant_id: Optional[str] = None
    fall_details: list[str] = Field(default_factory=list)


class PromptVersionBody(CamelModel):
    skill_name: str
    prompt_type: PromptType = "system"
    prompt_content: str = Field(..., min_length=1)
    description: Optional[str] = None
    change_notes: Optional[str] = None


class BillingAccuracyBody(CamelModel):
    prediction_id: str
    encounter_id: str
    suggested_codes: list[BilledCode] = Field(default_factory=list)
    final_codes: list[BilledCode] = Field(default_factory=list)
    reviewed_by: str
    suggested_revenue: Optional[float] = None
    actual_revenue: Optional[float] = None


class SdohAccuracyBody(CamelModel):
    detection_id: str
    prediction_id: str
    was_confirmed: bool
    was_false_positive: bool = False
    reviewed_by: str
