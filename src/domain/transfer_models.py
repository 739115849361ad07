"""Transfer Center Models.

Request schemas for inter-facility transfer coordination. Transfer rows are
stored in ``transfer_requests`` with snake_case columns and are passed back
to callers as the database returns them; these models validate incoming API
payloads before they are written.
"""

from typing import Literal, Optional

from pydantic import Field

from src.domain.schema import CamelModel

TransferUrgency = Literal["routine", "urgent", "emergent", "critical"]
TransferStatus = Literal[
    "pending", "reviewing", "approved", "denied", "scheduled",
    "in_transit", "arrived", "completed", "cancelled",
]

TRANSFER_STATUSES = (
    "pending", "reviewing", "approved", "denied", "scheduled",
    "in_transit", "arrived", "completed", "cancelled",
)
CLOSED_STATUSES = ("completed", "cancelled")
PENDING_STATUSES = ("pending", "reviewing")
CANCELLABLE_STATUSES = ("pending", "reviewing", "approved", "scheduled")


class TransferRequestCreate(CamelModel):
    """New transfer request from a sending facility.

    Parameters:
        patient_id: Patient being transferred
        sending_facility_id / receiving_facility_id: Facilities involved
        urgency: routine, urgent, emergent or critical
        reason_for_transfer: Free text clinical reason
        requires_*: Level-of-care requirements used to match receiving units

    Omitted list fields default to empty lists and omitted ``requires_*``
    flags to False when the row is written.
    """

    patient_id: str
    patient_mrn: Optional[str] = None
    patient_age: Optional[int] = None
    patient_gender: Optional[str] = None
    sending_facility_id: str
    sending_unit: Optional[str] = None
    sending_contact_name: Optional[str] = None
    sending_contact_phone: Optional[str] = None
    receiving_facility_id: Optional[str] = None
    transfer_type: str = "specialty"
    urgency: TransferUrgency = "routine"
    reason_for_transfer: str
    clinical_summary: Optional[str] = None
    diagnosis_codes: list[str] = Field(default_factory=list)
    primary_diagnosis: Optional[str] = None
    required_service: Optional[str] = None
    required_specialty: Optional[str] = None
    acuity_level: Optional[str] = None
    requires_icu: bool = False
    requires_isolation: bool = False
    requires_ventilator: bool = False
    requires_cardiac_monitoring: bool = False
    special_equipment: list[str] = Field(default_factory=list)
    special_requirements: Optional[str] = None
    transport_mode: Optional[str] = None
    notes: Optional[str] = None


class TransferApproval(CamelModel):
    receiving_unit: Optional[str] = None
    receiving_contact_name: Optional[str] = None
    receiving_contact_phone: Optional[str] = None
    receiving_physician: Optional[str] = None
    assigned_bed_id: Optional[str] = None
    assigned_bed_label: Optional[str] = None
    notes: Optional[str] = None


class TransferDenial(CamelModel):
    denial_reason: str
    notes: Optional[str] = None


class TransferSchedule(CamelModel):
    scheduled_departure: str
    transport_mode: Optional[str] = None
    transport_company: Optional[str] = None


class TransferStart(CamelModel):
    transport_mode: Optional[str] = None
    transport_company: Optional[str] = None
    transport_eta: Optional[str] = None


class TransferCancellation(CamelModel):
    cancellation_reason: str


class TransferNotes(CamelModel):
    notes: str


class FacilityCapacityUpdate(CamelModel):
    """Capacity snapshot reported by a facility."""

    facility_name: str = ""
    total_beds: int = 0
    occupied_beds: int = 0
    available_beds: int = 0
    reserved_beds: int = 0
    blocked_beds: int = 0
    occupancy_percent: float = 0.0
    is_accepting_transfers: bool = True
    divert_status: bool = False
    icu_available: int = 0
    step_down_available: int = 0
    telemetry_available: int = 0
    med_surg_available: int = 0
    ed_available: int = 0
    next_discharge_expected: Optional[str] = None
