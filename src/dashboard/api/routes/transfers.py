"""Transfer center endpoints: requests, lifecycle actions, metrics and facility capacity."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, status

from src.dashboard.api.dependencies import TransferServiceDep
from src.dashboard.api.responses import respond
from src.domain.transfer_models import (
    FacilityCapacityUpdate,
    TransferApproval,
    TransferCancellation,
    TransferDenial,
    TransferNotes,
    TransferRequestCreate,
    TransferSchedule,
    TransferStart,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transfers", tags=["transfers"])


@router.get("")
def get_active_transfers(
    transfers: TransferServiceDep,
    status_filter: Optional[str] = Query(None, alias="status"),
    urgency: Optional[str] = Query(None),
    sending_facility_id: Optional[str] = Query(None, alias="sendingFacilityId"),
    receiving_facility_id: Optional[str] = Query(None, alias="receivingFacilityId"),
):
    """Open transfers (not completed or cancelled), most urgent first."""
    return respond(transfers.get_active_transfers(
        status=status_filter,
        urgency=urgency,
        sending_facility_id=sending_facility_id,
        receiving_facility_id=receiving_facility_id,
    ))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_transfer_request(request: TransferRequestCreate, transfers: TransferServiceDep):
    return respond(transfers.create_transfer_request(request))


@router.get("/pending")
def get_pending_transfers(transfers: TransferServiceDep):
    return respond(transfers.get_pending_transfers())


@router.get("/metrics")
def get_transfer_metrics(transfers: TransferServiceDep, tenant_id: Optional[str] = Query(None, alias="tenantId")):
    return respond(transfers.get_metrics(tenant_id=tenant_id))


@router.get("/facilities/capacity")
def get_facility_capacity(
    transfers: TransferServiceDep,
    facility_id: Optional[str] = Query(None, alias="facilityId"),
    accepting_only: bool = Query(False, alias="acceptingOnly"),
):
    return respond(transfers.get_facility_capacity(facility_id=facility_id, accepting_only=accepting_only))


@router.put("/facilities/{facility_id}/capacity")
def update_facility_capacity(facility_id: str, capacity: FacilityCapacityUpdate, transfers: TransferServiceDep):
    return respond(transfers.update_facility_capacity(facility_id, capacity))


@router.get("/{transfer_id}")
def get_transfer(transfer_id: str, transfers: TransferServiceDep):
    return respond(transfers.get_transfer(transfer_id))


# ----------------------------------------------------------------------
# Lifecycle
# ----------------------------------------------------------------------

@router.post("/{transfer_id}/review")
def start_review(transfer_id: str, transfers: TransferServiceDep):
    return respond(transfers.start_review(transfer_id))


@router.post("/{transfer_id}/approve")
def approve_transfer(transfer_id: str, approval: TransferApproval, transfers: TransferServiceDep):
    return respond(transfers.approve_transfer(transfer_id, approval))


@router.post("/{transfer_id}/deny")
def deny_transfer(transfer_id: str, denial: TransferDenial, transfers: TransferServiceDep):
    return respond(transfers.deny_transfer(transfer_id, denial))


@router.post("/{transfer_id}/schedule")
def schedule_transfer(transfer_id: str, schedule: TransferSchedule, transfers: TransferServiceDep):
    return respond(transfers.schedule_transfer(transfer_id, schedule))


@router.post("/{transfer_id}/start")
def start_transfer(transfer_id: str, transfers: TransferServiceDep, start: Optional[TransferStart] = None):
    return respond(transfers.start_transfer(transfer_id, start))


@router.post("/{transfer_id}/arrive")
def mark_arrived(transfer_id: str, transfers: TransferServiceDep):
    return respond(transfers.mark_arrived(transfer_id))


@router.post("/{transfer_id}/complete")
def complete_transfer(transfer_id: str, transfers: TransferServiceDep):
    return respond(transfers.complete_transfer(transfer_id))


@router.post("/{transfer_id}/cancel")
def cancel_transfer(transfer_id: str, body: TransferCancellation, transfers: TransferServiceDep):
    return respond(transfers.cancel_transfer(transfer_id, body.cancellation_reason))


@router.put("/{transfer_id}/notes")
def update_notes(transfer_id: str, body: TransferNotes, transfers: TransferServiceDep):
    return respond(transfers.update_notes(transfer_id, body.notes))
