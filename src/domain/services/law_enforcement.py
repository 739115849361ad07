"""Law Enforcement Service.

Senior welfare-check program: emergency response information kept for each
enrolled senior, officer briefings, missed check-in alerts and live check-in
status for the dispatch dashboard.

Security Impact:
    - Emergency response info holds access instructions and door codes;
      writes are audited and reads are only exposed to authorised routes
    - Outbound SMS/family notifications go through remote functions; phone
      numbers are never logged

Architecture:
    - Domain service over DatabasePort (tables, rpc) and FunctionsPort
    - Check-in status classification is a pure function for testability
"""

import logging
from typing import Optional, Union

from src.domain.guardrails import validate_uuid
from src.domain.law_enforcement_models import (
    EMERGENCY_INFO_WRITABLE,
    ESCALATION_HOURS,
    EmergencyContact,
    EmergencyResponseInfo,
    MissedCheckInAlert,
    NeighborInfo,
    SeniorCheckInStatus,
    WelfareCheckInfo,
)
from src.domain.ports import (
    DatabasePort,
    ErrorCode,
    FunctionsPort,
    ServiceResult,
    TableQuery,
    ValidationError,
)
from src.domain.utils import hours_since, snakeize_keys, today_iso
from src.infrastructure.audit import AuditLogger

logger = logging.getLogger(__name__)

EMERGENCY_INFO_TABLE = "emergency_response_info"
PROFILES_TABLE = "profiles"
CHECK_INS_TABLE = "daily_check_ins"

DEFAULT_ESCALATION_HOURS = 6
OVERDUE_FRACTION = 0.75


def escalation_delay_for_priority(priority: Optional[str]) -> int:
    """Hours without a check-in before a senior of this priority escalates."""
    return ESCALATION_HOURS.get(priority or "standard", DEFAULT_ESCALATION_HOURS)


def classify_check_in_status(hours: Optional[float], escalation_delay: Optional[float] = None) -> str:
    """Classify time since last check-in against the escalation delay.

    Returns:
        str: 'pending' (never checked in), 'critical' (at or past the delay),
        'overdue' (at or past 75% of the delay) or 'ok'
    """
    delay = escalation_delay or DEFAULT_ESCALATION_HOURS
    if hours is None:
        return "pending"
    if hours >= delay:
        return "critical"
    if hours >= delay * OVERDUE_FRACTION:
        return "overdue"
    return "ok"


def build_welfare_check_info(row: dict) -> WelfareCheckInfo:
    """Map a ``get_welfare_check_info`` row to the officer briefing."""
    contacts = [
        EmergencyContact(
            name=c.get("name"),
            relationship=c.get("relationship"),
            phone=c.get("phone"),
            email=c.get("email"),
            is_primary=bool(c.get("is_primary", False)),
        )
        for c in row.get("emergency_contacts") or []
    ]
    neighbor = None
    if row.get("neighbor_name"):
        neighbor = NeighborInfo(
            name=row["neighbor_name"],
            address=row.get("neighbor_address") or "",
            phone=row.get("neighbor_phone") or "",
        )

    return WelfareCheckInfo(
        patient_id=row["patient_id"],
        patient_name=row.get("patient_name") or "Unknown",
        patient_age=row.get("patient_age"),
        patient_phone=row.get("patient_phone"),
        patient_address=row.get("patient_address"),
        building_location=row.get("building_location"),
        floor_number=row.get("floor_number"),
        elevator_required=bool(row.get("elevator_required") or False),
        parking_instructions=row.get("parking_instructions"),
        mobility_status=row.get("mobility_status") or "Unknown",
        medical_equipment=row.get("medical_equipment") or [],
        communication_needs=row.get("communication_needs") or "None specified",
        access_instructions=row.get("access_instructions") or "No special instructions",
        pets=row.get("pets"),
        response_priority=row.get("response_priority") or "standard",
        special_instructions=row.get("special_instructions"),
        emergency_contacts=contacts,
        neighbor_info=neighbor,
        fall_risk=bool(row.get("fall_risk") or False),
        cognitive_impairment=bool(row.get("cognitive_impairment") or False),
        oxygen_dependent=bool(row.get("oxygen_dependent") or False),
        last_check_in_time=row.get("last_check_in_time"),
        hours_since_check_in=row.get("hours_since_check_in"),
    )


class LawEnforcementService:
    """Emergency response info and welfare-check monitoring.

    Example Usage:
        ```python
        service = LawEnforcementService(database, functions)
        statuses = service.get_senior_check_in_statuses(tenant_id)
        for status in statuses.data:
            if status.requires_action:
                service.send_check_in_reminder(status.patient_id)
        ```
    """

    def __init__(
        self,
        database: DatabasePort,
        functions: FunctionsPort,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.database = database
        self.functions = functions
        self.audit = audit_logger or AuditLogger(database, category="LAW_ENFORCEMENT")

    # ------------------------------------------------------------------
    # Emergency response information
    # ------------------------------------------------------------------

    def get_emergency_response_info(self, patient_id: str) -> ServiceResult[Optional[EmergencyResponseInfo]]:
        """Return a senior's emergency info, or None when none has been recorded."""
        result = self.database.select_one(TableQuery(EMERGENCY_INFO_TABLE).eq("patient_id", patient_id))
        if result.is_failure():
            logger.error(f"Failed to load emergency info for {patient_id}: {result.error.message}")
            return ServiceResult.from_failure(result)
        if result.data is None:
            return ServiceResult.success_result(None)
        return ServiceResult.success_result(EmergencyResponseInfo.from_row(result.data))

    def upsert_emergency_response_info(
        self,
        patient_id: str,
        data: Union[dict, EmergencyResponseInfo],
        tenant_id: Optional[str] = None,
        updated_by: Optional[str] = None
    ) -> ServiceResult[EmergencyResponseInfo]:
        """Create or replace a senior's emergency info.

        ``data`` may use camelCase (form payloads) or snake_case keys; fields
        not supplied take their defaults.
        """
        try:
            validate_uuid(patient_id, "patientId")
            if isinstance(data, EmergencyResponseInfo):
                info = data
            else:
                info = EmergencyResponseInfo.model_validate(snakeize_keys(dict(data)))
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)
        except ValueError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, f"Invalid emergency info: {e}")

        values = info.to_row()
        row = {name: values[name] for name in EMERGENCY_INFO_WRITABLE}
        row["patient_id"] = patient_id
        row["last_verified_date"] = today_iso()
        if tenant_id:
            row["tenant_id"] = tenant_id
        if updated_by:
            row["updated_by"] = updated_by

        result = self.database.upsert(EMERGENCY_INFO_TABLE, row, on_conflict="patient_id")
        if result.is_failure():
            self.audit.error("EMERGENCY_INFO_SAVE_FAILED", result.error.message, {"patientId": patient_id})
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, "Failed to save emergency response information"
            )

        self.audit.info("EMERGENCY_INFO_SAVED", {
            "patientId": patient_id,
            "responsePriority": info.response_priority,
            "updatedBy": updated_by,
        })
        saved = result.data[0] if result.data else row
        return ServiceResult.success_result(EmergencyResponseInfo.from_row(saved))

    # ------------------------------------------------------------------
    # Dispatch views
    # ------------------------------------------------------------------

    def get_welfare_check_info(self, patient_id: str) -> ServiceResult[Optional[WelfareCheckInfo]]:
        """Officer briefing for one senior (None when the senior is unknown)."""
        result = self.database.rpc("get_welfare_check_info", {"p_patient_id": patient_id})
        if result.is_failure():
            logger.error(f"Welfare check info lookup failed: {result.error.message}")
            return ServiceResult.from_failure(result)

        row = result.data
        if isinstance(row, list):
            row = row[0] if row else None
        if not row:
            return ServiceResult.success_result(None)
        return ServiceResult.success_result(build_welfare_check_info(row))

    def get_missed_check_in_alerts(self) -> ServiceResult[list[MissedCheckInAlert]]:
        """Seniors who need a welfare check, most urgent first."""
        result = self.database.rpc("get_missed_check_in_alerts")
        if result.is_failure():
            return ServiceResult.from_failure(result)

        alerts = [
            MissedCheckInAlert(
                patient_id=row["patient_id"],
                patient_name=row.get("patient_name") or "Unknown",
                patient_address=row.get("patient_address"),
                patient_phone=row.get("patient_phone"),
                hours_since_check_in=row.get("hours_since_check_in"),
                response_priority=row.get("response_priority") or "standard",
                mobility_status=row.get("mobility_status") or "Unknown",
                special_needs=row.get("special_needs") or "None",
                emergency_contact_name=row.get("emergency_contact_name") or "Not provided",
                emergency_contact_phone=row.get("emergency_contact_phone") or "Not provided",
                urgency_score=row.get("urgency_score") or 0,
            )
            for row in result.data or []
        ]
        alerts.sort(key=lambda alert: alert.urgency_score, reverse=True)
        return ServiceResult.success_result(alerts)

    def get_senior_check_in_statuses(self, tenant_id: Optional[str] = None) -> ServiceResult[list[SeniorCheckInStatus]]:
        """Live check-in status for every enrolled senior."""
        query = TableQuery(PROFILES_TABLE, "id, full_name, address").eq("role", "senior").order("full_name")
        if tenant_id:
            query.eq("tenant_id", tenant_id)
        seniors = self.database.select(query)
        if seniors.is_failure():
            return ServiceResult.from_failure(seniors)

        ids = [row["id"] for row in seniors.data or []]
        if not ids:
            return ServiceResult.success_result([])

        check_ins = self.database.select(
            TableQuery(CHECK_INS_TABLE, "user_id, created_at")
            .in_("user_id", ids)
            .order("created_at", ascending=False)
        )
        if check_ins.is_failure():
            return ServiceResult.from_failure(check_ins)

        infos = self.database.select(
            TableQuery(EMERGENCY_INFO_TABLE, "patient_id, response_priority, escalation_delay_hours")
            .in_("patient_id", ids)
        )
        if infos.is_failure():
            return ServiceResult.from_failure(infos)

        latest: dict[str, str] = {}
        for row in check_ins.data or []:
            latest.setdefault(row["user_id"], row["created_at"])
        info_by_patient = {row["patient_id"]: row for row in infos.data or []}

        statuses = []
        for senior in seniors.data:
            info = info_by_patient.get(senior["id"], {})
            last_check_in = latest.get(senior["id"])
            hours = hours_since(last_check_in)
            status = classify_check_in_status(hours, info.get("escalation_delay_hours"))
            statuses.append(SeniorCheckInStatus(
                patient_id=senior["id"],
                patient_name=senior.get("full_name"),
                patient_address=senior.get("address"),
                last_check_in=last_check_in,
                status=status,
                hours_since_check_in=round(hours, 2) if hours is not None else None,
                response_priority=info.get("response_priority") or "standard",
                requires_action=status in ("critical", "overdue"),
            ))
        return ServiceResult.success_result(statuses)

    # ------------------------------------------------------------------
    # Outreach
    # ------------------------------------------------------------------

    def send_check_in_reminder(self, patient_id: str) -> ServiceResult[dict]:
        """Text the senior a reminder to complete their daily check-in."""
        patient = self.database.select_one(
            TableQuery(PROFILES_TABLE, "id, full_name, phone, email").eq("id", patient_id)
        )
        if patient.is_failure():
            return ServiceResult.from_failure(patient)
        if patient.data is None:
            return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "Patient not found")

        if not patient.data.get("phone"):
            return ServiceResult.success_result({"sms_sent": False})

        sent = self.functions.invoke("send-check-in-reminder-sms", {
            "phone": patient.data["phone"],
            "name": patient.data.get("full_name"),
        })
        if sent.is_failure():
            self.audit.error("CHECK_IN_REMINDER_FAILED", sent.error.message, {"patientId": patient_id})
            return ServiceResult.from_failure(sent)

        self.audit.info("CHECK_IN_REMINDER_SENT", {"patientId": patient_id})
        return ServiceResult.success_result({"sms_sent": True})

    def notify_family_missed_check_in(self, patient_id: str) -> ServiceResult[bool]:
        """Alert the primary emergency contact (or the first listed) of a missed check-in.

        Returns a successful False when no contact has a phone number.
        """
        patient = self.database.select_one(
            TableQuery(PROFILES_TABLE, "id, full_name, emergency_contacts").eq("id", patient_id)
        )
        if patient.is_failure():
            return ServiceResult.from_failure(patient)
        if patient.data is None:
            return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "Patient not found")

        contacts = patient.data.get("emergency_contacts") or []
        contact = next(
            (c for c in contacts if c.get("is_primary") or c.get("isPrimary")),
            contacts[0] if contacts else None,
        )
        if not contact or not contact.get("phone"):
            return ServiceResult.success_result(False)

        sent = self.functions.invoke("notify-family-missed-check-in", {
            "seniorName": patient.data.get("full_name"),
            "contactName": contact.get("name"),
            "contactPhone": contact["phone"],
        })
        if sent.is_failure():
            self.audit.error("FAMILY_NOTIFICATION_FAILED", sent.error.message, {"patientId": patient_id})
            return ServiceResult.from_failure(sent)

        self.audit.info("FAMILY_NOTIFIED_MISSED_CHECK_IN", {"patientId": patient_id})
        return ServiceResult.success_result(True)
