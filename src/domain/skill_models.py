"""AI Skill Models.

Request and result schemas for the AI skills (fall risk, care plan, billing
codes, HL7 interpretation) and the response envelope every skill endpoint
returns::

    {"result": {...}, "metadata": {"model": "...", "responseTimeMs": 812}}

Architecture:
    - Requests are validated here (shape and enums); identifier formats
      (UUIDs, ICD-10 codes) are checked by the skill using guardrails so the
      error messages match across API and CLI callers
    - Every AI-generated clinical artifact carries ``requires_review``; the
      skills force it to True before anything is returned or stored
"""

from typing import Any, Literal, Optional

from pydantic import Field

from src.domain.schema import CamelModel

AssessmentContext = Literal["admission", "routine", "post_fall", "discharge"]
FallRiskCategory = Literal["low", "moderate", "high", "very_high"]
EncounterType = Literal["inpatient", "outpatient", "telehealth", "emergency"]

ENCOUNTER_TYPES = ("inpatient", "outpatient", "telehealth", "emergency")


# ============================================================================
# Response Envelope
# ============================================================================

class SkillMetadata(CamelModel):
    model: str
    response_time_ms: int = 0
    generated_at: Optional[str] = None


class SkillResponse(CamelModel):
    result: Any = None
    metadata: SkillMetadata


# ============================================================================
# Fall Risk
# ============================================================================

class FallRiskRequest(CamelModel):
    patient_id: str
    assessor_id: str
    tenant_id: Optional[str] = None
    assessment_context: AssessmentContext = "routine"
    include_environmental_factors: bool = True
    custom_factors: list[str] = Field(default_factory=list)


class RiskFactor(CamelModel):
    factor: str
    category: str = "condition"
    severity: Literal["low", "moderate", "high"] = "moderate"
    weight: float = 0.0
    evidence: str = ""
    intervention_suggestion: Optional[str] = None


class ProtectiveFactor(CamelModel):
    factor: str
    impact: str = ""
    category: str = ""


class FallRiskIntervention(CamelModel):
    intervention: str
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    category: str = "monitoring"
    timeframe: str = ""
    responsible: str = ""
    estimated_risk_reduction: float = 0.0


class CategoryScores(CamelModel):
    age: int = 0
    fall_history: int = 0
    medications: int = 0
    conditions: int = 0
    mobility: int = 0
    cognitive: int = 0
    sensory: int = 0
    environmental: int = 0


class FallRiskAssessment(CamelModel):
    assessment_id: str
    patient_id: str
    assessor_id: str
    assessment_date: str
    assessment_context: str = "routine"
    overall_risk_score: int = 0
    risk_category: FallRiskCategory = "low"
    morse_scale_estimate: int = 0
    risk_factors: list[RiskFactor] = Field(default_factory=list)
    protective_factors: list[ProtectiveFactor] = Field(default_factory=list)
    patient_age: Optional[int] = None
    age_risk_category: Literal["low", "moderate", "high"] = "low"
    category_scores: CategoryScores = Field(default_factory=CategoryScores)
    interventions: list[FallRiskIntervention] = Field(default_factory=list)
    precautions: list[str] = Field(default_factory=list)
    monitoring_frequency: Literal["standard", "enhanced", "intensive"] = "standard"
    confidence: float = 0.0
    requires_review: bool = True
    review_reasons: list[str] = Field(default_factory=list)
    plain_language_explanation: str = ""
    generated_at: Optional[str] = None


class SavedFallRiskAssessment(FallRiskAssessment):
    id: Optional[str] = None
    status: Literal["draft", "pending_review", "approved", "rejected"] = "pending_review"
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    review_notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ============================================================================
# Care Plan
# ============================================================================

CarePlanType = Literal[
    "readmission_prevention", "chronic_care", "transitional_care", "high_utilizer", "preventive",
]
CARE_PLAN_TYPES = ("readmission_prevention", "chronic_care", "transitional_care", "high_utilizer", "preventive")
Priority = Literal["high", "medium", "low"]


class CarePlanRequest(CamelModel):
    patient_id: str
    author_id: Optional[str] = None
    tenant_id: Optional[str] = None
    plan_type: CarePlanType = "chronic_care"
    focus_conditions: list[str] = Field(default_factory=list)
    include_sdoh: bool = True
    include_medications: bool = True
    care_team_roles: list[str] = Field(default_factory=lambda: ["nurse", "physician", "care_coordinator"])
    duration_weeks: int = Field(default=12, ge=1, le=104)


class CarePlanGoal(CamelModel):
    goal: str
    target: str = ""
    timeframe: str = ""
    measurement_method: str = ""
    priority: Priority = "medium"
    evidence_basis: Optional[str] = None


class CarePlanIntervention(CamelModel):
    intervention: str
    frequency: str = ""
    responsible: str = ""
    duration: str = ""
    rationale: str = ""
    cpt_code: Optional[str] = None
    billing_eligible: bool = False


class CarePlanBarrier(CamelModel):
    barrier: str
    category: str = "other"
    solution: str = ""
    resources: list[str] = Field(default_factory=list)
    priority: Priority = "medium"


class CarePlanActivity(CamelModel):
    activity_type: str = "follow_up"
    description: str
    scheduled_date: Optional[str] = None
    frequency: Optional[str] = None
    status: str = "pending"


class CareTeamMember(CamelModel):
    role: str
    responsibilities: list[str] = Field(default_factory=list)


class CodedCondition(CamelModel):
    code: str = ""
    display: str = ""


class CarePlan(CamelModel):
    """Generated care plan; always returned with requires_review=True."""

    care_plan_id: Optional[str] = None
    patient_id: Optional[str] = None
    title: str = "Care Plan"
    description: str = ""
    plan_type: str = "chronic_care"
    priority: Literal["critical", "high", "medium", "low"] = "medium"
    goals: list[CarePlanGoal] = Field(default_factory=list)
    interventions: list[CarePlanIntervention] = Field(default_factory=list)
    barriers: list[CarePlanBarrier] = Field(default_factory=list)
    activities: list[CarePlanActivity] = Field(default_factory=list)
    care_team: list[CareTeamMember] = Field(default_factory=list)
    estimated_duration: str = "12 weeks"
    review_schedule: str = "Every 2 weeks"
    success_criteria: list[str] = Field(default_factory=list)
    risk_factors: list[str] = Field(default_factory=list)
    icd10_codes: list[CodedCondition] = Field(default_factory=list)
    ccm_eligible: bool = False
    tcm_eligible: bool = False
    confidence: float = 0.0
    evidence_sources: list[str] = Field(default_factory=list)
    requires_review: bool = True
    review_reasons: list[str] = Field(default_factory=list)
    generated_at: Optional[str] = None


class SavedCarePlan(CarePlan):
    id: Optional[str] = None
    status: Literal["draft", "active", "completed", "cancelled"] = "draft"
    author_id: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    created_at: Optional[str] = None


# ============================================================================
# Billing Codes
# ============================================================================

class EncounterContext(CamelModel):
    encounter_id: str
    patient_id: str
    tenant_id: str
    provider_id: Optional[str] = None
    encounter_type: str
    encounter_start: Optional[str] = None
    encounter_end: Optional[str] = None
    chief_complaint: Optional[str] = None
    diagnosis_codes: list[str] = Field(default_factory=list)
    condition_keywords: list[str] = Field(default_factory=list)
    procedures_performed: list[str] = Field(default_factory=list)


class CodeSuggestion(CamelModel):
    code: str
    description: str = ""
    confidence: float = 0.0
    rationale: str = ""


class SuggestedCodes(CamelModel):
    cpt: list[CodeSuggestion] = Field(default_factory=list)
    hcpcs: list[CodeSuggestion] = Field(default_factory=list)
    icd10: list[CodeSuggestion] = Field(default_factory=list)

    def all_codes(self) -> list[CodeSuggestion]:
        return [*self.cpt, *self.hcpcs, *self.icd10]


class BillingSuggestionResult(CamelModel):
    encounter_id: str
    suggested_codes: SuggestedCodes
    overall_confidence: float = 0.0
    requires_review: bool = False
    review_reason: Optional[str] = None
    from_cache: bool = False
    ai_cost: float = 0.0
    ai_model: str = ""
    suggestion_id: Optional[str] = None


class SuggestionReview(CamelModel):
    """Provider decision on a billing suggestion."""

    provider_id: str
    modified_codes: Optional[dict[str, list[dict]]] = None
    reason: Optional[str] = None


# ============================================================================
# HL7 Interpretation
# ============================================================================

class HL7InterpretRequest(CamelModel):
    message: str
    tenant_id: Optional[str] = None
    patient_id: Optional[str] = None
    source_system: Optional[str] = None


class HL7Ambiguity(CamelModel):
    segment: str
    field: str
    value: str = ""
    issue: str
    resolution: Optional[str] = None
    confidence: float = 0.0


class HL7Interpretation(CamelModel):
    message_type: str
    control_id: str = ""
    segment_count: int = 0
    fhir_mappings: list[dict] = Field(default_factory=list)
    ambiguities: list[HL7Ambiguity] = Field(default_factory=list)
    clinical_summary: str = ""
    abnormal_results: list[dict] = Field(default_factory=list)
    parse_errors: list[str] = Field(default_factory=list)
    confidence: float = 0.0
    requires_review: bool = True
    ai_model: str = "rule_based"
    interpretation_id: Optional[str] = None
