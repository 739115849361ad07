"""Law-enforcement welfare check endpoints.

Senior check-in monitoring, emergency response information, the officer
dispatch queue (every read is access-logged) and welfare priority scoring.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from src.dashboard.api.dependencies import LawEnforcementDep, WelfareDispatcherDep
from src.dashboard.api.responses import respond
from src.dashboard.models.requests import EmergencyInfoBody, WelfarePriorityBody
from src.domain.law_enforcement_models import OfficerAccessRequest, WelfareCheckCompletion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/welfare", tags=["welfare"])


@router.get("/check-ins")
def get_senior_check_in_statuses(
    law_enforcement: LawEnforcementDep,
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
):
    return respond(law_enforcement.get_senior_check_in_statuses(tenant_id=tenant_id))


@router.get("/missed-check-ins")
def get_missed_check_in_alerts(law_enforcement: LawEnforcementDep):
    """Seniors whose check-in is overdue, most urgent first."""
    return respond(law_enforcement.get_missed_check_in_alerts())


@router.get("/seniors/{patient_id}/welfare-info")
def get_welfare_check_info(patient_id: str, law_enforcement: LawEnforcementDep):
    return respond(law_enforcement.get_welfare_check_info(patient_id))


@router.get("/seniors/{patient_id}/emergency-info")
def get_emergency_response_info(patient_id: str, law_enforcement: LawEnforcementDep):
    return respond(law_enforcement.get_emergency_response_info(patient_id))


@router.put("/seniors/{patient_id}/emergency-info")
def upsert_emergency_response_info(patient_id: str, body: EmergencyInfoBody, law_enforcement: LawEnforcementDep):
    return respond(law_enforcement.upsert_emergency_response_info(
        patient_id, body.info, tenant_id=body.tenant_id, updated_by=body.updated_by
    ))


@router.post("/seniors/{patient_id}/check-in-reminder")
def send_check_in_reminder(patient_id: str, law_enforcement: LawEnforcementDep):
    return respond(law_enforcement.send_check_in_reminder(patient_id))


@router.post("/seniors/{patient_id}/notify-family")
def notify_family_missed_check_in(patient_id: str, law_enforcement: LawEnforcementDep):
    return respond(law_enforcement.notify_family_missed_check_in(patient_id))


# ----------------------------------------------------------------------
# Dispatch
# ----------------------------------------------------------------------

@router.post("/dispatch-queue")
def get_dispatch_queue(
    request: OfficerAccessRequest,
    dispatcher: WelfareDispatcherDep,
    calculation_date: Optional[str] = Query(None, alias="calculationDate"),
):
    """Ranked welfare-check queue for an officer; the access is logged first."""
    return respond(dispatcher.get_dispatch_queue(request, calculation_date=calculation_date))


@router.post("/seniors/{senior_id}/complete")
def complete_welfare_check(
    senior_id: str,
    completion: WelfareCheckCompletion,
    dispatcher: WelfareDispatcherDep,
    calculation_date: Optional[str] = Query(None, alias="calculationDate"),
):
    return respond(dispatcher.complete_welfare_check(senior_id, completion, calculation_date=calculation_date))


@router.post("/priority")
def calculate_priority_scores(body: WelfarePriorityBody, dispatcher: WelfareDispatcherDep):
    """Recalculate the tenant's welfare priority queue."""
    return respond(dispatcher.calculate_priority_scores(body.tenant_id, assessment_date=body.assessment_date))


@router.get("/analytics")
def get_welfare_analytics(
    dispatcher: WelfareDispatcherDep,
    tenant_id: str = Query(..., alias="tenantId"),
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
):
    return respond(dispatcher.get_analytics(tenant_id, start_date, end_date))
