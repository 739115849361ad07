"""AI skill endpoints: fall risk, care plans, billing codes and HL7 interpretation.

Every generated result requires clinician or coder review before it is
acted on; the approve/accept endpoints record that review.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from src.dashboard.api.dependencies import BillingDep, CarePlanDep, FallRiskDep, HL7InterpreterDep
from src.dashboard.api.responses import respond
from src.dashboard.models.requests import (
    AssessmentApprovalBody,
    CarePlanApprovalBody,
    QuickFallRiskBody,
)
from src.domain.skill_models import (
    CarePlan,
    CarePlanRequest,
    EncounterContext,
    FallRiskAssessment,
    FallRiskRequest,
    HL7InterpretRequest,
    SuggestionReview,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/skills", tags=["skills"])


# ----------------------------------------------------------------------
# Fall risk
# ----------------------------------------------------------------------

@router.post("/fall-risk")
def assess_fall_risk(request: FallRiskRequest, fall_risk: FallRiskDep):
    return respond(fall_risk.assess_risk(request))


@router.post("/fall-risk/admission-screen")
def screen_on_admission(body: QuickFallRiskBody, fall_risk: FallRiskDep):
    return respond(fall_risk.screen_on_admission(body.patient_id, body.assessor_id, tenant_id=body.tenant_id))


@router.post("/fall-risk/post-fall")
def reassess_after_fall(body: QuickFallRiskBody, fall_risk: FallRiskDep):
    return respond(fall_risk.reassess_after_fall(
        body.patient_id, body.assessor_id, fall_details=body.fall_details or None, tenant_id=body.tenant_id
    ))


@router.post("/fall-risk/routine")
def routine_assessment(body: QuickFallRiskBody, fall_risk: FallRiskDep):
    return respond(fall_risk.routine_assessment(body.patient_id, body.assessor_id, tenant_id=body.tenant_id))


@router.post("/fall-risk/assessments")
def save_assessment(assessment: FallRiskAssessment, fall_risk: FallRiskDep):
    """Store a generated assessment as pending review."""
    return respond(fall_risk.save_assessment(assessment))


@router.post("/fall-risk/assessments/{assessment_id}/approve")
def approve_assessment(assessment_id: str, body: AssessmentApprovalBody, fall_risk: FallRiskDep):
    return respond(fall_risk.approve_assessment(assessment_id, body.reviewer_id, body.review_notes))


@router.get("/fall-risk/high-risk")
def get_high_risk_patients(
    fall_risk: FallRiskDep,
    min_score: int = Query(70, alias="minScore", ge=0, le=100),
    limit: int = Query(50, ge=1, le=500),
):
    return respond(fall_risk.get_high_risk_patients(min_score=min_score, limit=limit))


@router.get("/fall-risk/patients/{patient_id}/assessments")
def get_patient_assessments(
    patient_id: str,
    fall_risk: FallRiskDep,
    limit: Optional[int] = Query(None, ge=1, le=500),
    status: Optional[str] = Query(None),
):
    return respond(fall_risk.get_patient_assessments(patient_id, limit=limit, status=status))


@router.get("/fall-risk/patients/{patient_id}/latest")
def get_latest_assessment(patient_id: str, fall_risk: FallRiskDep):
    return respond(fall_risk.get_latest_assessment(patient_id))


# ----------------------------------------------------------------------
# Care plans
# ----------------------------------------------------------------------

@router.post("/care-plans")
def generate_care_plan(request: CarePlanRequest, care_plans: CarePlanDep):
    return respond(care_plans.generate_care_plan(request))


@router.post("/care-plans/drafts")
def save_care_plan(
    plan: CarePlan,
    care_plans: CarePlanDep,
    author_id: Optional[str] = Query(None, alias="authorId"),
):
    return respond(care_plans.save_care_plan(plan, author_id=author_id))


@router.post("/care-plans/{care_plan_id}/approve")
def approve_care_plan(care_plan_id: str, body: CarePlanApprovalBody, care_plans: CarePlanDep):
    return respond(care_plans.approve_care_plan(care_plan_id, body.approver_id))


@router.get("/care-plans/patients/{patient_id}")
def get_patient_care_plans(
    patient_id: str,
    care_plans: CarePlanDep,
    status: Optional[str] = Query(None),
):
    return respond(care_plans.get_patient_care_plans(patient_id, status=status))


# ----------------------------------------------------------------------
# Billing codes
# ----------------------------------------------------------------------

@router.post("/billing-codes")
def suggest_billing_codes(encounter: EncounterContext, billing: BillingDep):
    """CPT, HCPCS and ICD-10 suggestions for a finished encounter."""
    return respond(billing.suggest_codes(encounter))


@router.post("/billing-codes/{suggestion_id}/accept")
def accept_suggestion(suggestion_id: str, review: SuggestionReview, billing: BillingDep):
    return respond(billing.accept_suggestion(suggestion_id, review.provider_id))


@router.post("/billing-codes/{suggestion_id}/modify")
def modify_suggestion(suggestion_id: str, review: SuggestionReview, billing: BillingDep):
    if not review.modified_codes:
        raise HTTPException(status_code=400, detail="modifiedCodes is required")
    return respond(billing.modify_suggestion(
        suggestion_id, review.provider_id, review.modified_codes, notes=review.reason
    ))


@router.post("/billing-codes/{suggestion_id}/reject")
def reject_suggestion(suggestion_id: str, review: SuggestionReview, billing: BillingDep):
    return respond(billing.reject_suggestion(suggestion_id, review.provider_id, reason=review.reason))


# ----------------------------------------------------------------------
# HL7
# ----------------------------------------------------------------------

@router.post("/hl7/interpret")
def interpret_hl7(request: HL7InterpretRequest, hl7: HL7InterpreterDep):
    """Parse an HL7 v2 message, map it to FHIR paths and resolve ambiguities."""
    return respond(hl7.interpret(request))


@router.get("/hl7/interpretations")
def get_recent_interpretations(
    hl7: HL7InterpreterDep,
    tenant_id: str = Query(..., alias="tenantId"),
    limit: int = Query(20, ge=1, le=200),
):
    return respond(hl7.get_recent_interpretations(tenant_id, limit=limit))
