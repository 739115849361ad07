"""HL7 v2.x Message Parser.

Parses pipe-delimited HL7 v2 messages (ADT, ORU, ORM, ACK) into plain
dictionaries keyed by snake_case field names, and builds ACK replies.

Security Impact:
    - PID carries PHI (names, SSN, addresses); parsed messages must not be logged
    - Parse failures are audited with the error text only, never the raw message
    - Outgoing ACK text is HL7-escaped so error messages cannot inject segments

Architecture:
    - Infrastructure layer component with no database or network access
    - Delimiters are read from each message's MSH header
    - Unknown segment types are kept as generic segments with their raw fields
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from src.infrastructure.audit import AuditLogger

logger = logging.getLogger(__name__)

MLLP_START = "\x0b"
MLLP_END = "\x1c\r"

DEFAULT_VERSION = "2.5.1"


@dataclass
class HL7Delimiters:
    field: str = "|"
    component: str = "^"
    repetition: str = "~"
    escape: str = "\\"
    sub_component: str = "&"


@dataclass
class HL7ParseIssue:
    segment_index: int
    message: str
    severity: str = "error"


@dataclass
class HL7Message:
    """A parsed message with convenience views over its segments."""

    raw: str
    delimiters: HL7Delimiters
    header: dict
    segments: list[dict]
    parse_errors: list[HL7ParseIssue] = field(default_factory=list)
    patient_identification: Optional[dict] = None
    patient_visit: Optional[dict] = None
    observations: list[dict] = field(default_factory=list)
    observation_requests: list[dict] = field(default_factory=list)
    orders: list[dict] = field(default_factory=list)
    diagnoses: list[dict] = field(default_factory=list)
    allergies: list[dict] = field(default_factory=list)
    insurance: list[dict] = field(default_factory=list)
    notes: list[dict] = field(default_factory=list)

    @property
    def message_code(self) -> str:
        return self.header["message_type"]["message_code"]

    @property
    def trigger_event(self) -> str:
        return self.header["message_type"]["trigger_event"]

    @property
    def control_id(self) -> str:
        return self.header["message_control_id"]


@dataclass
class HL7ParseResult:
    success: bool
    raw_message: str
    message: Optional[HL7Message] = None
    errors: list[HL7ParseIssue] = field(default_factory=list)
    # ORU: [{request, observations, notes}]; ORM: [{common_order, order_detail, observations}]
    groups: list[dict] = field(default_factory=list)

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.errors]


class HL7Parser:
    """Parser for HL7 v2 messages.

    A parser instance keeps the delimiters and issues of the message being
    parsed, so share one instance per thread, not across threads.

    Example Usage:
        ```python
        parser = HL7Parser()
        result = parser.parse_oru(raw_message)
        if result.success:
            for group in result.groups:
                for obx in group["observations"]:
                    print(obx["observation_identifier"]["text"], obx["observation_value"])
        ```
    """

    def __init__(self, audit_logger: Optional[AuditLogger] = None):
        self.delimiters = HL7Delimiters()
        self._issues: list[HL7ParseIssue] = []
        self._audit = audit_logger or AuditLogger(category="SECURITY_EVENT")
        self._segment_parsers = {
            "PID": self._parse_pid,
            "PV1": self._parse_pv1,
            "PV2": self._parse_pv2,
            "OBR": self._parse_obr,
            "OBX": self._parse_obx,
            "ORC": self._parse_orc,
            "DG1": self._parse_dg1,
            "AL1": self._parse_al1,
            "IN1": self._parse_in1,
            "NTE": self._parse_nte,
            "MSA": self._parse_msa,
            "ERR": self._parse_err,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, raw_message: str) -> HL7ParseResult:
        """Parse any HL7 v2 message.

        The result is successful when no error-severity issues were recorded;
        warnings are returned alongside the message.
        """
        self._issues = []
        self.delimiters = HL7Delimiters()

        try:
            message = self._normalize_line_endings(self._strip_mllp_framing(raw_message or ""))
            segment_strings = [s for s in message.split("\r") if s.strip()]

            if not segment_strings:
                return HL7ParseResult(False, raw_message, errors=[HL7ParseIssue(0, "Empty message")])

            if not segment_strings[0].startswith("MSH"):
                return HL7ParseResult(
                    False, raw_message, errors=[HL7ParseIssue(0, "Message must start with MSH segment")]
                )

            self._extract_delimiters(segment_strings[0])
            header = self._parse_msh(segment_strings[0])

            segments = [header]
            for index, segment_string in enumerate(segment_strings[1:], start=1):
                segments.append(self._parse_segment(segment_string, index))

            parsed = self._build_message(raw_message, header, segments)
            has_errors = any(issue.severity == "error" for issue in self._issues)
            return HL7ParseResult(not has_errors, raw_message, message=parsed, errors=list(self._issues))

        except (IndexError, ValueError, KeyError) as e:
            logger.error(f"HL7 parse error: {e}")
            self._audit.error("HL7_PARSE_ERROR", e)
            return HL7ParseResult(False, raw_message, errors=[HL7ParseIssue(0, f"Parse error: {e}")])

    def parse_adt(self, raw_message: str) -> HL7ParseResult:
        return self._parse_as("ADT", raw_message)

    def parse_oru(self, raw_message: str) -> HL7ParseResult:
        """Parse a lab result message, grouping OBX/NTE segments under their OBR."""
        result = self._parse_as("ORU", raw_message)
        if not result.success:
            return result

        groups: list[dict] = []
        current: Optional[dict] = None
        for segment in result.message.segments:
            segment_type = segment["segment_type"]
            if segment_type == "OBR":
                current = {"request": segment, "observations": [], "notes": []}
                groups.append(current)
            elif current is not None and segment_type == "OBX":
                current["observations"].append(segment)
            elif current is not None and segment_type == "NTE":
                current["notes"].append(segment)

        result.groups = groups
        return result

    def parse_orm(self, raw_message: str) -> HL7ParseResult:
        """Parse an order message, grouping OBR/OBX segments under their ORC."""
        result = self._parse_as("ORM", raw_message)
        if not result.success:
            return result

        groups: list[dict] = []
        current: Optional[dict] = None
        for segment in result.message.segments:
            segment_type = segment["segment_type"]
            if segment_type == "ORC":
                current = {"common_order": segment, "order_detail": None, "observations": []}
                groups.append(current)
            elif current is not None and segment_type == "OBR":
                current["order_detail"] = segment
            elif current is not None and segment_type == "OBX":
                current["observations"].append(segment)

        result.groups = groups
        return result

    def generate_ack(self, original: HL7Message, ack_code: str = "AA", error_message: Optional[str] = None) -> str:
        """Build an ACK for a received message.

        Parameters:
            original: The parsed message being acknowledged
            ack_code: AA (accept), AE (error) or AR (reject)
            error_message: Optional text for MSA-3 and, for AE/AR, an ERR segment

        Returns:
            str: ACK message with segments terminated by carriage returns
        """
        header = original.header
        timestamp = self._format_datetime(datetime.now())
        control_id = f"ACK{int(time.time() * 1000)}"

        ack = (
            f"MSH|^~\\&|{header['receiving_application']}|{header['receiving_facility']}|"
            f"{header['sending_application']}|{header['sending_facility']}|{timestamp}||"
            f"ACK^{header['message_type']['trigger_event']}^ACK|{control_id}|P|{header['version_id']}\r"
        )
        ack += f"MSA|{ack_code}|{header['message_control_id']}"
        if error_message:
            ack += f"|{self.escape(error_message)}"
        ack += "\r"

        if ack_code != "AA" and error_message:
            ack += f"ERR|||207^Application internal error^HL70357|E|||{self.escape(error_message)}\r"

        return ack

    @staticmethod
    def escape(text: str) -> str:
        """Escape HL7 delimiter characters in free text."""
        return (
            text.replace("\\", "\\E\\")
            .replace("|", "\\F\\")
            .replace("^", "\\S\\")
            .replace("&", "\\T\\")
            .replace("~", "\\R\\")
            .replace("\r", "\\X0D\\")
            .replace("\n", "\\X0A\\")
        )

    def get_component(self, value: Optional[str], index: int) -> str:
        """Return one component (0-based) of a field value, or ''."""
        if not value:
            return ""
        components = value.split(self.delimiters.component)
        return components[index] if index < len(components) else ""

    # ------------------------------------------------------------------
    # Framing and delimiters
    # ------------------------------------------------------------------

    def _parse_as(self, message_code: str, raw_message: str) -> HL7ParseResult:
        result = self.parse(raw_message)
        if not result.success or result.message is None:
            return result
        if result.message.message_code != message_code:
            return HL7ParseResult(
                False,
                raw_message,
                errors=[HL7ParseIssue(0, f"Expected {message_code} message, got {result.message.message_code}")],
            )
        return result

    @staticmethod
    def _strip_mllp_framing(message: str) -> str:
        if message.startswith(MLLP_START):
            message = message[1:]
        if message.endswith(MLLP_END):
            message = message[:-2]
        return message

    @staticmethod
    def _normalize_line_endings(message: str) -> str:
        return message.replace("\r\n", "\r").replace("\n", "\r")

    def _extract_delimiters(self, msh: str) -> None:
        if len(msh) < 8:
            self._add_issue(0, "MSH segment too short to extract delimiters")
            return
        self.delimiters = HL7Delimiters(
            field=msh[3],
            component=msh[4],
            repetition=msh[5],
            escape=msh[6],
            sub_component=msh[7],
        )

    def _split_fields(self, segment: str) -> list[str]:
        return segment.split(self.delimiters.field)

    def _add_issue(self, segment_index: int, message: str, severity: str = "error") -> None:
        self._issues.append(HL7ParseIssue(segment_index, message, severity))

    # ------------------------------------------------------------------
    # Data type helpers
    # ------------------------------------------------------------------

    def _components(self, value: str) -> list[str]:
        return value.split(self.delimiters.component)

    def _repetitions(self, value: Optional[str]) -> list[str]:
        return value.split(self.delimiters.repetition) if value else []

    @staticmethod
    def _at(values: list[str], index: int) -> Optional[str]:
        if index < len(values) and values[index]:
            return values[index]
        return None

    @staticmethod
    def _to_int(value: Optional[str]) -> Optional[int]:
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @staticmethod
    def _to_float(value: Optional[str]) -> Optional[float]:
        if not value:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    def _coded(self, value: Optional[str]) -> Optional[dict]:
        if not value:
            return None
        c = self._components(value)
        return {
            "identifier": self._at(c, 0),
            "text": self._at(c, 1),
            "coding_system": self._at(c, 2),
            "alternate_identifier": self._at(c, 3),
            "alternate_text": self._at(c, 4),
            "alternate_coding_system": self._at(c, 5),
        }

    def _coded_list(self, value: Optional[str]) -> list[dict]:
        return [self._coded(r) for r in self._repetitions(value) if r]

    def _human_name(self, value: str) -> dict:
        c = self._components(value)
        return {
            "family_name": self._at(c, 0),
            "given_name": self._at(c, 1),
            "middle_name": self._at(c, 2),
            "suffix": self._at(c, 3),
            "prefix": self._at(c, 4),
            "degree": self._at(c, 5),
            "name_type_code": self._at(c, 6),
        }

    def _human_names(self, value: Optional[str]) -> list[dict]:
        return [self._human_name(r) for r in self._repetitions(value)]

    def _patient_identifiers(self, value: Optional[str]) -> list[dict]:
        identifiers = []
        for repetition in self._repetitions(value):
            c = self._components(repetition)
            identifiers.append({
                "id_number": c[0] if c else "",
                "check_digit": self._at(c, 1),
                "check_digit_scheme": self._at(c, 2),
                "assigning_authority": self._at(c, 3),
                "identifier_type_code": self._at(c, 4),
                "assigning_facility": self._at(c, 5),
            })
        return identifiers

    def _addresses(self, value: Optional[str]) -> list[dict]:
        addresses = []
        for repetition in self._repetitions(value):
            c = self._components(repetition)
            addresses.append({
                "street_address": self._at(c, 0),
                "other_designation": self._at(c, 1),
                "city": self._at(c, 2),
                "state_or_province": self._at(c, 3),
                "zip_or_postal_code": self._at(c, 4),
                "country": self._at(c, 5),
                "address_type": self._at(c, 6),
            })
        return addresses

    def _telecoms(self, value: Optional[str]) -> list[dict]:
        telecoms = []
        for repetition in self._repetitions(value):
            c = self._components(repetition)
            telecoms.append({
                "telephone_number": self._at(c, 0),
                "use_code": self._at(c, 1),
                "equipment_type": self._at(c, 2),
                "communication_address": self._at(c, 3),
            })
        return telecoms

    def _person(self, value: str) -> dict:
        c = self._components(value)
        return {
            "id_number": self._at(c, 0),
            "family_name": self._at(c, 1),
            "given_name": self._at(c, 2),
            "middle_name": self._at(c, 3),
            "suffix": self._at(c, 4),
            "prefix": self._at(c, 5),
            "degree": self._at(c, 6),
        }

    def _persons(self, value: Optional[str]) -> list[dict]:
        return [self._person(r) for r in self._repetitions(value)]

    def _location(self, value: Optional[str]) -> Optional[dict]:
        if not value:
            return None
        c = self._components(value)
        return {
            "point_of_care": self._at(c, 0),
            "room": self._at(c, 1),
            "bed": self._at(c, 2),
            "facility": self._at(c, 3),
            "location_status": self._at(c, 4),
            "person_location_type": self._at(c, 5),
            "building": self._at(c, 6),
            "floor": self._at(c, 7),
        }

    # ------------------------------------------------------------------
    # Segment parsers
    # ------------------------------------------------------------------

    def _parse_segment(self, segment: str, index: int) -> dict:
        segment_type = segment[:3]
        if segment_type == "MSH":
            return self._parse_msh(segment)
        parser = self._segment_parsers.get(segment_type)
        if parser is None:
            return self._parse_generic(segment)
        return parser(self._split_fields(segment))

    def _parse_msh(self, segment: str) -> dict:
        # MSH-1 is the field separator itself, so MSH-n sits at fields[n - 1]
        f = self._split_fields(segment)
        message_type = self._components(f[8] if len(f) > 8 else "")
        return {
            "segment_type": "MSH",
            "field_separator": self.delimiters.field,
            "encoding_characters": self._at(f, 1) or "^~\\&",
            "sending_application": self._at(f, 2) or "",
            "sending_facility": self._at(f, 3) or "",
            "receiving_application": self._at(f, 4) or "",
            "receiving_facility": self._at(f, 5) or "",
            "date_time_of_message": self._at(f, 6) or "",
            "security": self._at(f, 7),
            "message_type": {
                "message_code": self._at(message_type, 0) or "UNK",
                "trigger_event": self._at(message_type, 1) or "",
                "message_structure": self._at(message_type, 2),
            },
            "message_control_id": self._at(f, 9) or "",
            "processing_id": self._at(f, 10) or "P",
            "version_id": self._at(f, 11) or DEFAULT_VERSION,
            "sequence_number": self._to_int(self._at(f, 12)),
            "accept_ack_type": self._at(f, 14),
            "application_ack_type": self._at(f, 15),
            "country_code": self._at(f, 16),
        }

    def _parse_pid(self, f: list[str]) -> dict:
        return {
            "segment_type": "PID",
            "set_id": self._to_int(self._at(f, 1)),
            "patient_id": self._at(f, 2),
            "patient_identifier_list": self._patient_identifiers(self._at(f, 3)),
            "alternate_patient_id": self._at(f, 4),
            "patient_name": self._human_names(self._at(f, 5)),
            "mothers_maiden_name": self._human_name(f[6]) if self._at(f, 6) else None,
            "date_of_birth": self._at(f, 7),
            "administrative_sex": self._at(f, 8),
            "race": self._coded_list(self._at(f, 10)),
            "patient_address": self._addresses(self._at(f, 11)),
            "home_phone": self._telecoms(self._at(f, 13)),
            "business_phone": self._telecoms(self._at(f, 14)),
            "primary_language": self._coded(self._at(f, 15)),
            "marital_status": self._coded(self._at(f, 16)),
            "patient_account_number": self._at(f, 18),
            "ssn": self._at(f, 19),
            "ethnic_group": self._coded_list(self._at(f, 22)),
            "patient_death_date_time": self._at(f, 29),
            "patient_death_indicator": self._at(f, 30),
        }

    def _parse_pv1(self, f: list[str]) -> dict:
        return {
            "segment_type": "PV1",
            "set_id": self._to_int(self._at(f, 1)),
            "patient_class": self._at(f, 2) or "U",
            "assigned_patient_location": self._location(self._at(f, 3)),
            "admission_type": self._at(f, 4),
            "prior_patient_location": self._location(self._at(f, 6)),
            "attending_doctor": self._persons(self._at(f, 7)),
            "referring_doctor": self._persons(self._at(f, 8)),
            "consulting_doctor": self._persons(self._at(f, 9)),
            "hospital_service": self._at(f, 10),
            "admit_source": self._at(f, 14),
            "admitting_doctor": self._persons(self._at(f, 17)),
            "patient_type": self._at(f, 18),
            "visit_number": self._at(f, 19),
            "discharge_disposition": self._at(f, 36),
            "discharged_to_location": self._at(f, 37),
            "admit_date_time": self._at(f, 44),
            "discharge_date_time": self._at(f, 45),
        }

    def _parse_pv2(self, f: list[str]) -> dict:
        return {
            "segment_type": "PV2",
            "prior_pending_location": self._location(self._at(f, 1)),
            "admit_reason": self._coded(self._at(f, 3)),
            "transfer_reason": self._coded(self._at(f, 4)),
            "expected_admit_date_time": self._at(f, 8),
            "expected_discharge_date_time": self._at(f, 9),
            "estimated_length_of_inpatient_stay": self._to_int(self._at(f, 10)),
            "visit_description": self._at(f, 12),
        }

    def _parse_obr(self, f: list[str]) -> dict:
        return {
            "segment_type": "OBR",
            "set_id": self._to_int(self._at(f, 1)),
            "placer_order_number": self._at(f, 2),
            "filler_order_number": self._at(f, 3),
            "universal_service_identifier": self._coded(self._at(f, 4)) or {"identifier": "", "text": "Unknown"},
            "priority": self._at(f, 5),
            "requested_date_time": self._at(f, 6),
            "observation_date_time": self._at(f, 7),
            "specimen_action_code": self._at(f, 11),
            "relevant_clinical_info": self._at(f, 13),
            "ordering_provider": self._persons(self._at(f, 16)),
            "results_rpt_status_chng_date_time": self._at(f, 22),
            "diagnostic_serv_sect_id": self._at(f, 24),
            "result_status": self._at(f, 25),
            "reason_for_study": self._coded_list(self._at(f, 31)),
        }

    def _parse_obx(self, f: list[str]) -> dict:
        return {
            "segment_type": "OBX",
            "set_id": self._to_int(self._at(f, 1)),
            "value_type": self._at(f, 2),
            "observation_identifier": self._coded(self._at(f, 3)) or {"identifier": "", "text": "Unknown"},
            "observation_sub_id": self._at(f, 4),
            "observation_value": self._repetitions(self._at(f, 5)),
            "units": self._coded(self._at(f, 6)),
            "reference_range": self._at(f, 7),
            "abnormal_flags": self._repetitions(self._at(f, 8)),
            "probability": self._to_float(self._at(f, 9)),
            "observation_result_status": self._at(f, 11) or "F",
            "date_time_of_observation": self._at(f, 14),
            "responsible_observer": self._persons(self._at(f, 16)),
            "observation_method": self._coded_list(self._at(f, 17)),
        }

    def _parse_orc(self, f: list[str]) -> dict:
        return {
            "segment_type": "ORC",
            "order_control": self._at(f, 1) or "",
            "placer_order_number": self._at(f, 2),
            "filler_order_number": self._at(f, 3),
            "placer_group_number": self._at(f, 4),
            "order_status": self._at(f, 5),
            "date_time_of_transaction": self._at(f, 9),
            "entered_by": self._persons(self._at(f, 10)),
            "ordering_provider": self._persons(self._at(f, 12)),
            "order_effective_date_time": self._at(f, 15),
            "order_control_code_reason": self._coded(self._at(f, 16)),
        }

    def _parse_dg1(self, f: list[str]) -> dict:
        return {
            "segment_type": "DG1",
            "set_id": self._to_int(self._at(f, 1)) or 1,
            "diagnosis_coding_method": self._at(f, 2),
            "diagnosis_code": self._coded(self._at(f, 3)),
            "diagnosis_description": self._at(f, 4),
            "diagnosis_date_time": self._at(f, 5),
            "diagnosis_type": self._at(f, 6),
            "diagnosis_priority": self._to_int(self._at(f, 15)),
            "diagnosing_clinician": self._persons(self._at(f, 16)),
        }

    def _parse_al1(self, f: list[str]) -> dict:
        return {
            "segment_type": "AL1",
            "set_id": self._to_int(self._at(f, 1)) or 1,
            "allergen_type_code": self._coded(self._at(f, 2)),
            "allergen_code": self._coded(self._at(f, 3)) or {"identifier": "", "text": "Unknown"},
            "allergy_severity_code": self._coded(self._at(f, 4)),
            "allergy_reaction": self._repetitions(self._at(f, 5)),
            "identification_date": self._at(f, 6),
        }

    def _parse_in1(self, f: list[str]) -> dict:
        company_name = self._components(self._at(f, 4) or "")
        return {
            "segment_type": "IN1",
            "set_id": self._to_int(self._at(f, 1)) or 1,
            "health_plan_id": self._coded(self._at(f, 2)),
            "insurance_company_id": self._at(f, 3),
            "insurance_company_name": self._at(company_name, 0),
            "group_number": self._at(f, 8),
            "group_name": self._at(f, 9),
            "plan_effective_date": self._at(f, 12),
            "plan_expiration_date": self._at(f, 13),
            "plan_type": self._at(f, 15),
            "name_of_insured": self._human_names(self._at(f, 16)),
            "insureds_relationship_to_patient": self._coded(self._at(f, 17)),
            "policy_number": self._at(f, 36),
        }

    def _parse_nte(self, f: list[str]) -> dict:
        return {
            "segment_type": "NTE",
            "set_id": self._to_int(self._at(f, 1)),
            "source_of_comment": self._at(f, 2),
            "comment": self._repetitions(self._at(f, 3)),
            "comment_type": self._coded(self._at(f, 4)),
        }

    def _parse_msa(self, f: list[str]) -> dict:
        return {
            "segment_type": "MSA",
            "acknowledgment_code": self._at(f, 1) or "AA",
            "message_control_id": self._at(f, 2) or "",
            "text_message": self._at(f, 3),
            "expected_sequence_number": self._to_int(self._at(f, 4)),
        }

    def _parse_err(self, f: list[str]) -> dict:
        return {
            "segment_type": "ERR",
            "error_location": self._at(f, 2),
            "hl7_error_code": self._coded(self._at(f, 3)) or {"identifier": "0", "text": "Unknown"},
            "severity": self._at(f, 4) or "E",
            "application_error_code": self._coded(self._at(f, 5)),
            "diagnostic_information": self._at(f, 7),
            "user_message": self._at(f, 8),
        }

    def _parse_generic(self, segment: str) -> dict:
        f = self._split_fields(segment)
        return {"segment_type": f[0], "fields": f[1:]}

    # ------------------------------------------------------------------
    # Message assembly
    # ------------------------------------------------------------------

    def _build_message(self, raw: str, header: dict, segments: list[dict]) -> HL7Message:
        message = HL7Message(
            raw=raw,
            delimiters=self.delimiters,
            header=header,
            segments=segments,
            parse_errors=list(self._issues),
        )
        collections: dict[str, list[dict]] = {
            "OBX": message.observations,
            "OBR": message.observation_requests,
            "ORC": message.orders,
            "DG1": message.diagnoses,
            "AL1": message.allergies,
            "IN1": message.insurance,
            "NTE": message.notes,
        }
        for segment in segments:
            segment_type = segment["segment_type"]
            if segment_type == "PID":
                message.patient_identification = segment
            elif segment_type == "PV1":
                message.patient_visit = segment
            elif segment_type in collections:
                collections[segment_type].append(segment)
        return message

    @staticmethod
    def _format_datetime(value: datetime) -> str:
        return value.strftime("%Y%m%d%H%M%S")


def summarize_message(message: HL7Message) -> dict[str, Any]:
    """Segment counts and identifiers for CLI display (no PHI)."""
    counts: dict[str, int] = {}
    for segment in message.segments:
        counts[segment["segment_type"]] = counts.get(segment["segment_type"], 0) + 1
    return {
        "message_type": f"{message.message_code}^{message.trigger_event}",
        "control_id": message.control_id,
        "version": message.header["version_id"],
        "sending_facility": message.header["sending_facility"],
        "segment_counts": counts,
    }
