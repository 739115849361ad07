"""Transfer Center Service.

Inter-facility transfer coordination: request intake, review, approval or
denial, scheduling, transport, arrival, completion and cancellation, plus
facility capacity snapshots used to pick receiving facilities.

Status flow::

    pending -> reviewing -> approved -> scheduled -> in_transit -> arrived -> completed
                        \\-> denied
    pending / reviewing / approved / scheduled -> cancelled

Security Impact:
    - Every status change is audited; failures are audited with the operation name
    - Approve, deny, start and complete run as database functions so the
      transition and its side effects (bed reservation, timestamps) are atomic

Architecture:
    - Domain service; depends only on DatabasePort and AuditLogger
    - Rows are returned as stored (snake_case columns)
"""

import logging
from typing import Any, Optional

from src.domain.ports import (
    DatabasePort,
    ErrorCode,
    ServiceResult,
    TableQuery,
)
from src.domain.transfer_models import (
    CANCELLABLE_STATUSES,
    CLOSED_STATUSES,
    PENDING_STATUSES,
    FacilityCapacityUpdate,
    TransferApproval,
    TransferDenial,
    TransferRequestCreate,
    TransferSchedule,
    TransferStart,
)
from src.domain.utils import utc_now_iso
from src.infrastructure.audit import AuditLogger

logger = logging.getLogger(__name__)

TRANSFERS_TABLE = "transfer_requests"
CAPACITY_TABLE = "facility_capacity"


class TransferCenterService:
    """Transfer request lifecycle and facility capacity."""

    def __init__(self, database: DatabasePort, audit_logger: Optional[AuditLogger] = None):
        self.database = database
        self.audit = audit_logger or AuditLogger(database, category="CLINICAL")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(self, event_type: str, result: ServiceResult, details: dict) -> ServiceResult:
        self.audit.error(event_type, result.error.message, details)
        return ServiceResult.from_failure(result)

    def _crash(self, event_type: str, error: Exception, message: str, details: dict) -> ServiceResult:
        logger.error(f"{message}: {error}")
        self.audit.error(event_type, error, details)
        return ServiceResult.failure_result(ErrorCode.OPERATION_FAILED, message)

    def _transition(
        self,
        transfer_id: str,
        values: dict,
        from_statuses: tuple,
        success_event: str,
        failure_event: str,
        failure_message: str,
        audit_details: Optional[dict] = None
    ) -> ServiceResult[dict]:
        """Update a transfer only if it is currently in one of ``from_statuses``."""
        details = {"transferId": transfer_id}
        try:
            query = TableQuery(TRANSFERS_TABLE).eq("id", transfer_id)
            if len(from_statuses) == 1:
                query.eq("status", from_statuses[0])
            else:
                query.in_("status", list(from_statuses))

            result = self.database.update(query, {**values, "updated_at": utc_now_iso()})
            if result.is_failure():
                return self._fail(failure_event, result, details)
            if not result.data:
                allowed = " or ".join(from_statuses)
                return ServiceResult.failure_result(
                    ErrorCode.NOT_FOUND, f"Transfer not found or not in {allowed} status"
                )

            self.audit.info(success_event, {**details, **(audit_details or {})})
            return ServiceResult.success_result(result.data[0])
        except Exception as e:
            return self._crash(failure_event, e, failure_message, details)

    def _rpc_action(
        self,
        function: str,
        params: dict,
        transfer_id: str,
        success_event: str,
        failure_event: str,
        failure_message: str,
        audit_details: Optional[dict] = None
    ) -> ServiceResult[dict]:
        """Call a transfer database function returning ``{success, error, ...}``."""
        details = {"transferId": transfer_id}
        try:
            result = self.database.rpc(function, params)
            if result.is_failure():
                return self._fail(failure_event, result, details)

            payload = result.data or {}
            if not payload.get("success"):
                return ServiceResult.failure_result(
                    ErrorCode.OPERATION_FAILED, payload.get("error") or failure_message
                )

            self.audit.info(success_event, {**details, **(audit_details or {})})
            return ServiceResult.success_result(payload)
        except Exception as e:
            return self._crash(failure_event, e, failure_message, details)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def create_transfer_request(self, request: TransferRequestCreate) -> ServiceResult[dict]:
        row = {**request.to_row(), "status": "pending"}
        details = {"patientId": request.patient_id, "urgency": request.urgency}
        try:
            result = self.database.insert(TRANSFERS_TABLE, row)
            if result.is_failure():
                return self._fail("TRANSFER_REQUEST_CREATE_FAILED", result, details)

            created = result.data[0] if result.data else row
            self.audit.info("TRANSFER_REQUEST_CREATED", {
                "transferId": created.get("id"),
                "requestNumber": created.get("request_number"),
                "patientId": request.patient_id,
                "urgency": request.urgency,
                "transferType": request.transfer_type,
            })
            return ServiceResult.success_result(created)
        except Exception as e:
            return self._crash("TRANSFER_REQUEST_CREATE_FAILED", e, "Failed to create transfer request", details)

    def get_active_transfers(
        self,
        status: Optional[str] = None,
        urgency: Optional[str] = None,
        sending_facility_id: Optional[str] = None,
        receiving_facility_id: Optional[str] = None
    ) -> ServiceResult[list[dict]]:
        """Open transfers, most urgent first, then oldest request first."""
        options = {
            "status": status,
            "urgency": urgency,
            "sending_facility_id": sending_facility_id,
            "receiving_facility_id": receiving_facility_id,
        }
        try:
            query = (
                TableQuery(TRANSFERS_TABLE)
                .not_in("status", list(CLOSED_STATUSES))
                .order("urgency", ascending=False)
                .order("requested_at")
            )
            for column, value in options.items():
                if value:
                    query.eq(column, value)

            result = self.database.select(query)
            if result.is_failure():
                return self._fail("TRANSFERS_FETCH_FAILED", result, {"options": options})
            return ServiceResult.success_result(result.data or [])
        except Exception as e:
            return self._crash("TRANSFERS_FETCH_FAILED", e, "Failed to fetch transfers", {"options": options})

    def get_transfer(self, transfer_id: str) -> ServiceResult[dict]:
        try:
            result = self.database.select_one(TableQuery(TRANSFERS_TABLE).eq("id", transfer_id))
            if result.is_failure():
                return self._fail("TRANSFER_FETCH_FAILED", result, {"transferId": transfer_id})
            if result.data is None:
                return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "Transfer not found")
            return ServiceResult.success_result(result.data)
        except Exception as e:
            return self._crash("TRANSFER_FETCH_FAILED", e, "Failed to fetch transfer", {"transferId": transfer_id})

    def get_pending_transfers(self) -> ServiceResult[list[dict]]:
        try:
            query = (
                TableQuery(TRANSFERS_TABLE)
                .in_("status", list(PENDING_STATUSES))
                .order("urgency", ascending=False)
                .order("requested_at")
            )
            result = self.database.select(query)
            if result.is_failure():
                return self._fail("PENDING_TRANSFERS_FETCH_FAILED", result, {})
            return ServiceResult.success_result(result.data or [])
        except Exception as e:
            return self._crash("PENDING_TRANSFERS_FETCH_FAILED", e, "Failed to fetch pending transfers", {})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_review(self, transfer_id: str) -> ServiceResult[dict]:
        return self._transition(
            transfer_id,
            {"status": "reviewing", "reviewed_at": utc_now_iso()},
            ("pending",),
            "TRANSFER_REVIEW_STARTED",
            "TRANSFER_REVIEW_START_FAILED",
            "Failed to start transfer review",
        )

    def approve_transfer(self, transfer_id: str, approval: TransferApproval) -> ServiceResult[dict]:
        params = {"p_transfer_id": transfer_id}
        params.update({f"p_{name}": value for name, value in approval.to_row().items()})
        result = self._rpc_action(
            "approve_transfer_request",
            params,
            transfer_id,
            "TRANSFER_APPROVED",
            "TRANSFER_APPROVE_FAILED",
            "Failed to approve transfer",
            {"assignedBedId": approval.assigned_bed_id},
        )
        if result.is_failure():
            return result
        return ServiceResult.success_result({
            "transfer_id": result.data.get("transfer_id") or transfer_id,
            "status": result.data.get("status") or "approved",
        })

    def deny_transfer(self, transfer_id: str, denial: TransferDenial) -> ServiceResult[dict]:
        if not denial.denial_reason.strip():
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, "Denial reason is required")

        result = self._rpc_action(
            "deny_transfer_request",
            {"p_transfer_id": transfer_id, "p_denial_reason": denial.denial_reason, "p_notes": denial.notes},
            transfer_id,
            "TRANSFER_DENIED",
            "TRANSFER_DENY_FAILED",
            "Failed to deny transfer",
            {"reason": denial.denial_reason},
        )
        if result.is_failure():
            return result
        return ServiceResult.success_result({
            "transfer_id": result.data.get("transfer_id") or transfer_id,
            "status": result.data.get("status") or "denied",
        })

    def schedule_transfer(self, transfer_id: str, schedule: TransferSchedule) -> ServiceResult[dict]:
        values: dict[str, Any] = {"status": "scheduled", "scheduled_departure": schedule.scheduled_departure}
        if schedule.transport_mode:
            values["transport_mode"] = schedule.transport_mode
        if schedule.transport_company:
            values["transport_company"] = schedule.transport_company
        return self._transition(
            transfer_id,
            values,
            ("approved",),
            "TRANSFER_SCHEDULED",
            "TRANSFER_SCHEDULE_FAILED",
            "Failed to schedule transfer",
            {"scheduledDeparture": schedule.scheduled_departure},
        )

    def start_transfer(self, transfer_id: str, start: Optional[TransferStart] = None) -> ServiceResult[dict]:
        start = start or TransferStart()
        result = self._rpc_action(
            "start_transfer",
            {
                "p_transfer_id": transfer_id,
                "p_transport_mode": start.transport_mode,
                "p_transport_company": start.transport_company,
                "p_transport_eta": start.transport_eta,
            },
            transfer_id,
            "TRANSFER_STARTED",
            "TRANSFER_START_FAILED",
            "Failed to start transfer",
            {"transportMode": start.transport_mode},
        )
        if result.is_failure():
            return result
        return ServiceResult.success_result({
            "transfer_id": result.data.get("transfer_id") or transfer_id,
            "status": result.data.get("status") or "in_transit",
            "departure_time": result.data.get("departure_time"),
        })

    def mark_arrived(self, transfer_id: str) -> ServiceResult[dict]:
        return self._transition(
            transfer_id,
            {"status": "arrived", "actual_arrival": utc_now_iso()},
            ("in_transit",),
            "TRANSFER_ARRIVED",
            "TRANSFER_ARRIVAL_FAILED",
            "Failed to mark transfer arrived",
        )

    def complete_transfer(self, transfer_id: str) -> ServiceResult[dict]:
        result = self._rpc_action(
            "complete_transfer",
            {"p_transfer_id": transfer_id},
            transfer_id,
            "TRANSFER_COMPLETED",
            "TRANSFER_COMPLETE_FAILED",
            "Failed to complete transfer",
        )
        if result.is_failure():
            return result
        return ServiceResult.success_result({
            "transfer_id": result.data.get("transfer_id") or transfer_id,
            "status": result.data.get("status") or "completed",
            "transit_minutes": result.data.get("transit_minutes"),
        })

    def cancel_transfer(self, transfer_id: str, reason: str) -> ServiceResult[dict]:
        if not reason or not reason.strip():
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, "Cancellation reason is required")
        return self._transition(
            transfer_id,
            {"status": "cancelled", "cancelled_at": utc_now_iso(), "cancellation_reason": reason},
            CANCELLABLE_STATUSES,
            "TRANSFER_CANCELLED",
            "TRANSFER_CANCEL_FAILED",
            "Failed to cancel transfer",
            {"reason": reason},
        )

    def update_notes(self, transfer_id: str, notes: str) -> ServiceResult[dict]:
        details = {"transferId": transfer_id}
        try:
            result = self.database.update(
                TableQuery(TRANSFERS_TABLE).eq("id", transfer_id),
                {"notes": notes, "updated_at": utc_now_iso()},
            )
            if result.is_failure():
                return self._fail("TRANSFER_NOTES_UPDATE_FAILED", result, details)
            if not result.data:
                return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "Transfer not found")
            return ServiceResult.success_result(result.data[0])
        except Exception as e:
            return self._crash("TRANSFER_NOTES_UPDATE_FAILED", e, "Failed to update notes", details)

    # ------------------------------------------------------------------
    # Metrics and capacity
    # ------------------------------------------------------------------

    def get_metrics(self, tenant_id: Optional[str] = None) -> ServiceResult[Any]:
        try:
            result = self.database.rpc("get_transfer_metrics", {"p_tenant_id": tenant_id})
            if result.is_failure():
                return self._fail("TRANSFER_METRICS_FETCH_FAILED", result, {"tenantId": tenant_id})
            return ServiceResult.success_result(result.data)
        except Exception as e:
            return self._crash(
                "TRANSFER_METRICS_FETCH_FAILED", e, "Failed to fetch transfer metrics", {"tenantId": tenant_id}
            )

    def get_facility_capacity(
        self,
        facility_id: Optional[str] = None,
        accepting_only: bool = False
    ) -> ServiceResult[list[dict]]:
        """Latest capacity snapshot per facility (newest first)."""
        details = {"facilityId": facility_id}
        try:
            query = TableQuery(CAPACITY_TABLE).order("snapshot_at", ascending=False).limit(100)
            if facility_id:
                query.eq("facility_id", facility_id)
            if accepting_only:
                query.eq("is_accepting_transfers", True)

            result = self.database.select(query)
            if result.is_failure():
                return self._fail("FACILITY_CAPACITY_FETCH_FAILED", result, details)

            latest: dict[str, dict] = {}
            for row in result.data or []:
                latest.setdefault(row.get("facility_id"), row)
            return ServiceResult.success_result(list(latest.values()))
        except Exception as e:
            return self._crash("FACILITY_CAPACITY_FETCH_FAILED", e, "Failed to fetch facility capacity", details)

    def update_facility_capacity(self, facility_id: str, capacity: FacilityCapacityUpdate) -> ServiceResult[dict]:
        details = {"facilityId": facility_id}
        row = {**capacity.to_row(), "facility_id": facility_id, "snapshot_at": utc_now_iso()}
        try:
            result = self.database.insert(CAPACITY_TABLE, row)
            if result.is_failure():
                return self._fail("FACILITY_CAPACITY_UPDATE_FAILED", result, details)

            self.audit.info("FACILITY_CAPACITY_UPDATED", {
                "facilityId": facility_id,
                "availableBeds": capacity.available_beds,
                "isAcceptingTransfers": capacity.is_accepting_transfers,
            })
            return ServiceResult.success_result(result.data[0] if result.data else row)
        except Exception as e:
            return self._crash("FACILITY_CAPACITY_UPDATE_FAILED", e, "Failed to update facility capacity", details)
