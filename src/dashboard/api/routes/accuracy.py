"""AI accuracy endpoints: dashboards, outcomes, prompt versions and A/B experiments."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, status

from src.dashboard.api.dependencies import AccuracyTrackerDep
from src.dashboard.api.responses import respond
from src.dashboard.models.requests import BillingAccuracyBody, PromptVersionBody, SdohAccuracyBody
from src.domain.accuracy_models import ExperimentConfig, PredictionOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accuracy", tags=["accuracy"])


@router.get("/dashboard")
def get_accuracy_dashboard(
    tracker: AccuracyTrackerDep,
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
    days: int = Query(30, ge=1, le=365),
):
    """Per-skill accuracy, confidence and cost roll-up."""
    return respond(tracker.get_accuracy_dashboard(tenant_id=tenant_id, days=days))


@router.get("/skills/{skill_name}")
def get_skill_accuracy(
    skill_name: str,
    tracker: AccuracyTrackerDep,
    days: int = Query(30, ge=1, le=365),
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
):
    return respond(tracker.get_skill_accuracy(skill_name, days=days, tenant_id=tenant_id))


@router.post("/outcomes")
def record_outcome(outcome: PredictionOutcome, tracker: AccuracyTrackerDep):
    return respond(tracker.record_outcome(outcome))


@router.post("/billing")
def record_billing_code_accuracy(body: BillingAccuracyBody, tracker: AccuracyTrackerDep):
    return respond(tracker.record_billing_code_accuracy(
        body.prediction_id,
        body.encounter_id,
        body.suggested_codes,
        body.final_codes,
        body.reviewed_by,
        suggested_revenue=body.suggested_revenue,
        actual_revenue=body.actual_revenue,
    ))


@router.post("/sdoh")
def record_sdoh_detection_accuracy(body: SdohAccuracyBody, tracker: AccuracyTrackerDep):
    return respond(tracker.record_sdoh_detection_accuracy(
        body.detection_id, body.prediction_id, body.was_confirmed, body.was_false_positive, body.reviewed_by
    ))


# ----------------------------------------------------------------------
# Prompt versions
# ----------------------------------------------------------------------

@router.get("/prompts/{skill_name}")
def get_prompt_history(
    skill_name: str,
    tracker: AccuracyTrackerDep,
    prompt_type: str = Query("system", alias="promptType"),
):
    return respond(tracker.get_prompt_history(skill_name, prompt_type=prompt_type))


@router.get("/prompts/{skill_name}/active")
def get_active_prompt(
    skill_name: str,
    tracker: AccuracyTrackerDep,
    prompt_type: str = Query("system", alias="promptType"),
):
    return respond(tracker.get_active_prompt(skill_name, prompt_type=prompt_type))


@router.post("/prompts", status_code=status.HTTP_201_CREATED)
def create_prompt_version(body: PromptVersionBody, tracker: AccuracyTrackerDep):
    """Add a new (inactive) prompt version for a skill."""
    return respond(tracker.create_prompt_version(
        body.skill_name,
        body.prompt_type,
        body.prompt_content,
        description=body.description,
        change_notes=body.change_notes,
    ))


@router.post("/prompts/versions/{prompt_id}/activate")
def activate_prompt_version(prompt_id: str, tracker: AccuracyTrackerDep):
    return respond(tracker.activate_prompt_version(prompt_id))


# ----------------------------------------------------------------------
# Experiments
# ----------------------------------------------------------------------

@router.post("/experiments", status_code=status.HTTP_201_CREATED)
def create_experiment(config: ExperimentConfig, tracker: AccuracyTrackerDep):
    return respond(tracker.create_experiment(config))


@router.get("/experiments/variant")
def get_experiment_variant(tracker: AccuracyTrackerDep, experiment_name: str = Query(..., alias="experimentName")):
    """Prompt to use for this request under a running experiment (null when none is running)."""
    return respond(tracker.get_experiment_variant(experiment_name))


@router.post("/experiments/{experiment_id}/start")
def start_experiment(experiment_id: str, tracker: AccuracyTrackerDep):
    return respond(tracker.start_experiment(experiment_id))


@router.get("/experiments/{experiment_id}/results")
def get_experiment_results(experiment_id: str, tracker: AccuracyTrackerDep):
    """Accuracy per arm with a two-proportion z-test."""
    return respond(tracker.get_experiment_results(experiment_id))
