"""Law Enforcement and Welfare Check Models.

Schemas for senior emergency response information, welfare-check briefings
shared with responding officers, missed check-in alerts and the AI-ranked
dispatch queue.

Security Impact:
    - Emergency response info contains access instructions (door codes, key
      locations); it is only returned to officers through the dispatch queue
      whose access is logged in welfare_check_access_log
"""

from typing import Literal, Optional

from pydantic import Field

from src.domain.schema import CamelModel

ResponsePriority = Literal["standard", "high", "critical"]
CheckInStatus = Literal["ok", "pending", "overdue", "critical"]
PriorityCategory = Literal["routine", "elevated", "high", "critical"]
RecommendedAction = Literal[
    "wellness_call", "in_person_check", "immediate_dispatch", "caregiver_contact", "no_action_needed",
]
MobilityRiskLevel = Literal["independent", "limited", "high_risk", "immobile"]
WelfareOutcome = Literal["safe", "needs_assistance", "emergency_services_called", "no_contact"]

PRIORITY_CATEGORIES = ("routine", "elevated", "high", "critical")
WELFARE_OUTCOMES = ("safe", "needs_assistance", "emergency_services_called", "no_contact")

# Hours without a check-in before escalating, by response priority
ESCALATION_HOURS = {"standard": 6, "high": 4, "critical": 2}


class EmergencyResponseInfo(CamelModel):
    """Information responders need to reach and help a senior at home."""

    id: Optional[str] = None
    tenant_id: Optional[str] = None
    patient_id: Optional[str] = None
    bed_bound: bool = False
    wheelchair_bound: bool = False
    walker_required: bool = False
    cane_required: bool = False
    mobility_notes: Optional[str] = None
    oxygen_dependent: bool = False
    oxygen_tank_location: Optional[str] = None
    dialysis_required: bool = False
    dialysis_schedule: Optional[str] = None
    medical_equipment: list[str] = Field(default_factory=list)
    hearing_impaired: bool = False
    hearing_impaired_notes: Optional[str] = None
    vision_impaired: bool = False
    vision_impaired_notes: Optional[str] = None
    cognitive_impairment: bool = False
    cognitive_impairment_type: Optional[str] = None
    cognitive_impairment_notes: Optional[str] = None
    non_verbal: bool = False
    language_barrier: Optional[str] = None
    floor_number: Optional[str] = None
    building_quadrant: Optional[str] = None
    elevator_required: bool = False
    elevator_access_code: Optional[str] = None
    building_type: Optional[str] = None
    stairs_to_unit: Optional[int] = None
    door_code: Optional[str] = None
    key_location: Optional[str] = None
    access_instructions: Optional[str] = None
    door_opens_inward: bool = False
    security_system: bool = False
    security_system_code: Optional[str] = None
    pets_in_home: Optional[str] = None
    parking_instructions: Optional[str] = None
    gated_community_code: Optional[str] = None
    lobby_access_instructions: Optional[str] = None
    best_entrance: Optional[str] = None
    intercom_instructions: Optional[str] = None
    fall_risk_high: bool = False
    fall_history: Optional[str] = None
    home_hazards: Optional[str] = None
    neighbor_name: Optional[str] = None
    neighbor_address: Optional[str] = None
    neighbor_phone: Optional[str] = None
    building_manager_name: Optional[str] = None
    building_manager_phone: Optional[str] = None
    response_priority: ResponsePriority = "standard"
    escalation_delay_hours: int = 6
    special_instructions: Optional[str] = None
    critical_medications: list[str] = Field(default_factory=list)
    medication_location: Optional[str] = None
    medical_conditions_summary: Optional[str] = None
    consent_obtained: bool = False
    consent_date: Optional[str] = None
    consent_given_by: Optional[str] = None
    hipaa_authorization: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    last_verified_date: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> 'EmergencyResponseInfo':
        """Build from a database row, applying defaults for null columns."""
        known = {name: value for name, value in row.items() if name in cls.model_fields and value is not None}
        return cls(**known)


# Columns an emergency-info form may write (identity and audit columns excluded)
EMERGENCY_INFO_WRITABLE = tuple(
    name for name in EmergencyResponseInfo.model_fields
    if name not in ("id", "tenant_id", "patient_id", "created_at", "updated_at", "last_verified_date")
)


class EmergencyContact(CamelModel):
    name: Optional[str] = None
    relationship: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_primary: bool = False


class NeighborInfo(CamelModel):
    name: str
    address: str = ""
    phone: str = ""


class WelfareCheckInfo(CamelModel):
    """Officer briefing for a welfare check."""

    patient_id: str
    patient_name: str
    patient_age: Optional[int] = None
    patient_phone: Optional[str] = None
    patient_address: Optional[str] = None
    building_location: Optional[str] = None
    floor_number: Optional[str] = None
    elevator_required: bool = False
    parking_instructions: Optional[str] = None
    mobility_status: str = "Unknown"
    medical_equipment: list[str] = Field(default_factory=list)
    communication_needs: str = "None specified"
    access_instructions: str = "No special instructions"
    pets: Optional[str] = None
    response_priority: ResponsePriority = "standard"
    special_instructions: Optional[str] = None
    emergency_contacts: list[EmergencyContact] = Field(default_factory=list)
    neighbor_info: Optional[NeighborInfo] = None
    fall_risk: bool = False
    cognitive_impairment: bool = False
    oxygen_dependent: bool = False
    last_check_in_time: Optional[str] = None
    hours_since_check_in: Optional[float] = None


class MissedCheckInAlert(CamelModel):
    patient_id: str
    patient_name: str = "Unknown"
    patient_address: Optional[str] = None
    patient_phone: Optional[str] = None
    hours_since_check_in: Optional[float] = None
    response_priority: ResponsePriority = "standard"
    mobility_status: str = "Unknown"
    special_needs: str = "None"
    emergency_contact_name: str = "Not provided"
    emergency_contact_phone: str = "Not provided"
    urgency_score: float = 0.0


class SeniorCheckInStatus(CamelModel):
    patient_id: str
    patient_name: Optional[str] = None
    patient_address: Optional[str] = None
    last_check_in: Optional[str] = None
    status: CheckInStatus = "pending"
    hours_since_check_in: Optional[float] = None
    response_priority: ResponsePriority = "standard"
    requires_action: bool = False


class OfficerAccessRequest(CamelModel):
    """Officer request to view the dispatch queue (access is logged)."""

    tenant_id: str
    officer_id: str
    officer_name: str
    officer_badge_number: str
    department_name: str
    request_reason: str
    priority_filter: Optional[str] = None
    limit: Optional[int] = None


class WelfareCheckAssessment(CamelModel):
    """Ranked welfare-check entry for one senior on one calculation date."""

    senior_id: str
    priority_score: int = 0
    priority_category: PriorityCategory = "routine"
    days_since_last_checkin: int = 0
    mobility_risk_level: MobilityRiskLevel = "limited"
    recommended_action: RecommendedAction = "wellness_call"
    risk_factors: list[str] = Field(default_factory=list)
    notes: str = ""


class WelfareBatchSummary(CamelModel):
    assessed: int = 0
    critical: int = 0
    high: int = 0
    elevated: int = 0
    routine: int = 0
    auto_dispatched: int = 0
    total_cost: float = 0.0


class WelfareCheckCompletion(CamelModel):
    tenant_id: str
    officer_id: str
    outcome: WelfareOutcome
    notes: str = ""
