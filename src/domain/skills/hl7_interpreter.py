"""HL7 v2 Interpreter.

Turns a parsed HL7 v2 message into a reviewable interpretation: which
segment fields land on which FHIR paths, which values are ambiguous, and
which results are abnormal. Ambiguities are sent to the fast model for a
suggested resolution and a short clinical summary; when the model is
unavailable the interpretation is built from OBX abnormal flags alone.

Security Impact:
    - PID values never leave the process; the prompt names PID fields only
    - Interpretations are stored with requires_review=True

Architecture:
    - Parsing is delegated to src.infrastructure.hl7_parser.HL7Parser
    - Mapping and ambiguity detection are pure functions over HL7Message
"""

import json
import logging
import time
from typing import Any, Optional

from src.domain.guardrails import clamp, new_id
from src.domain.ports import ErrorCode, LLMError, ServiceResult, TableQuery
from src.domain.skill_models import HL7Ambiguity, HL7Interpretation, HL7InterpretRequest, SkillResponse
from src.domain.skills.base import BaseSkill, extract_json
from src.domain.utils import utc_now_iso
from src.infrastructure.hl7_parser import HL7Message, HL7Parser

logger = logging.getLogger(__name__)

INTERPRETATIONS_TABLE = "ai_hl7_interpretations"
RULE_BASED_MODEL = "rule_based"

# (segment field, FHIR path) per segment type
FHIR_PATHS = {
    "PID": [
        ("patient_identifier_list", "Patient.identifier"),
        ("patient_name", "Patient.name"),
        ("date_of_birth", "Patient.birthDate"),
        ("administrative_sex", "Patient.gender"),
        ("patient_address", "Patient.address"),
        ("home_phone", "Patient.telecom"),
        ("primary_language", "Patient.communication.language"),
        ("marital_status", "Patient.maritalStatus"),
        ("patient_death_date_time", "Patient.deceasedDateTime"),
    ],
    "PV1": [
        ("patient_class", "Encounter.class"),
        ("assigned_patient_location", "Encounter.location.location"),
        ("attending_doctor", "Encounter.participant.individual"),
        ("hospital_service", "Encounter.serviceType"),
        ("visit_number", "Encounter.identifier"),
        ("admit_date_time", "Encounter.period.start"),
        ("discharge_date_time", "Encounter.period.end"),
        ("discharge_disposition", "Encounter.hospitalization.dischargeDisposition"),
    ],
    "OBR": [
        ("universal_service_identifier", "DiagnosticReport.code"),
        ("observation_date_time", "DiagnosticReport.effectiveDateTime"),
        ("result_status", "DiagnosticReport.status"),
        ("ordering_provider", "DiagnosticReport.performer"),
    ],
    "OBX": [
        ("observation_identifier", "Observation.code"),
        ("observation_value", "Observation.value[x]"),
        ("units", "Observation.valueQuantity.unit"),
        ("reference_range", "Observation.referenceRange.text"),
        ("abnormal_flags", "Observation.interpretation"),
        ("observation_result_status", "Observation.status"),
        ("date_time_of_observation", "Observation.effectiveDateTime"),
    ],
    "ORC": [
        ("order_control", "ServiceRequest.intent"),
        ("order_status", "ServiceRequest.status"),
        ("placer_order_number", "ServiceRequest.identifier"),
        ("ordering_provider", "ServiceRequest.requester"),
    ],
    "DG1": [
        ("diagnosis_code", "Condition.code"),
        ("diagnosis_type", "Condition.category"),
        ("diagnosis_date_time", "Condition.recordedDate"),
    ],
    "AL1": [
        ("allergen_code", "AllergyIntolerance.code"),
        ("allergen_type_code", "AllergyIntolerance.category"),
        ("allergy_severity_code", "AllergyIntolerance.criticality"),
        ("allergy_reaction", "AllergyIntolerance.reaction.manifestation"),
    ],
    "IN1": [
        ("health_plan_id", "Coverage.type"),
        ("insurance_company_name", "Coverage.payor"),
        ("policy_number", "Coverage.subscriberId"),
        ("plan_effective_date", "Coverage.period.start"),
        ("plan_expiration_date", "Coverage.period.end"),
    ],
}

CODING_SYSTEMS = {
    "I9C": "http://hl7.org/fhir/sid/icd-9-cm",
    "I10": "http://hl7.org/fhir/sid/icd-10",
    "I10C": "http://hl7.org/fhir/sid/icd-10-cm",
    "LN": "http://loinc.org",
    "SCT": "http://snomed.info/sct",
    "RXNORM": "http://www.nlm.nih.gov/research/umls/rxnorm",
    "CPT": "http://www.ama-assn.org/go/cpt",
    "NDC": "http://hl7.org/fhir/sid/ndc",
    "CVX": "http://hl7.org/fhir/sid/cvx",
}

PATIENT_CLASSES = {"E", "I", "O", "P", "R", "B", "N"}
ADMINISTRATIVE_SEX = {"M", "F", "O", "U", "A", "N"}
KNOWN_ABNORMAL_FLAGS = {"L", "H", "LL", "HH", "<", ">", "N", "A", "AA", "U", "D", "B", "W", "S", "R", "I"}
ABNORMAL_FLAGS = {"L", "H", "LL", "HH", "<", ">", "A", "AA"}
CRITICAL_FLAGS = {"LL", "HH", "AA"}
PRELIMINARY_STATUSES = {"P", "I", "S"}

DATE_FIELDS = {
    "PID": ["date_of_birth"],
    "PV1": ["admit_date_time", "discharge_date_time"],
    "OBX": ["date_time_of_observation"],
    "DG1": ["diagnosis_date_time"],
}

# Suggested resolution when the model does not provide one
DEFAULT_RESOLUTIONS = {
    "non_numeric_value": "Store as Observation.valueString and flag for review",
    "missing_units": "Store as Observation.valueQuantity without unit; confirm unit with sending lab",
    "unknown_flag": "Map to Observation.interpretation text only",
    "missing_reference": "Omit Observation.referenceRange; interpret value clinically",
    "missing_coding_system": "Use code as text-only CodeableConcept",
    "unknown_coding_system": "Map system to urn:oid and verify with interface team",
    "unknown_sex": "Map Patient.gender to 'unknown'",
    "unknown_patient_class": "Map Encounter.class to ambulatory (AMB)",
    "incomplete_date": "Store the partial date only; confirm with sending system",
    "missing_allergen_type": "Leave AllergyIntolerance.category empty",
    "preliminary_result": "Map Observation.status to 'preliminary'; expect a final result",
}

SYSTEM_PROMPT = (
    "You are a clinical interface analyst. You resolve ambiguous HL7 v2 to FHIR R4 mappings "
    "and summarize laboratory results for clinicians. Respond with valid JSON only."
)


def display_value(value: Any) -> str:
    """Flatten a parsed segment value into display text."""
    if value is None:
        return ""
    if isinstance(value, list):
        return "; ".join(filter(None, (display_value(item) for item in value)))
    if isinstance(value, dict):
        for key in ("text", "identifier", "family_name", "point_of_care", "id_number", "street_address", "telephone_number"):
            if value.get(key):
                return str(value[key])
        return ""
    return str(value)


def map_to_fhir(message: HL7Message) -> list[dict]:
    """FHIR path for every populated, mapped field in the message."""
    mappings = []
    for index, segment in enumerate(message.segments):
        segment_type = segment["segment_type"]
        for field_name, path in FHIR_PATHS.get(segment_type, []):
            value = display_value(segment.get(field_name))
            if value:
                mappings.append({
                    "segment": segment_type,
                    "segmentIndex": index,
                    "field": field_name,
                    "fhirPath": path,
                    "value": value,
                })
    return mappings


def _is_number(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def _ambiguity(segment: str, field: str, value: str, issue: str, kind: str) -> HL7Ambiguity:
    return HL7Ambiguity(segment=segment, field=field, value=value, issue=issue, resolution=DEFAULT_RESOLUTIONS[kind],
                        confidence=0.5)


def detect_ambiguities(message: HL7Message) -> list[HL7Ambiguity]:
    """Values whose FHIR mapping needs a judgment call."""
    found: list[HL7Ambiguity] = []

    pid = message.patient_identification
    if pid and pid.get("administrative_sex") and pid["administrative_sex"].upper() not in ADMINISTRATIVE_SEX:
        found.append(_ambiguity("PID", "administrative_sex", "", "Unrecognized administrative sex", "unknown_sex"))

    pv1 = message.patient_visit
    if pv1 and pv1.get("patient_class") and pv1["patient_class"] not in PATIENT_CLASSES:
        found.append(_ambiguity("PV1", "patient_class", pv1["patient_class"],
                                "Unrecognized patient class", "unknown_patient_class"))

    for obx in message.observations:
        code = obx.get("observation_identifier") or {}
        label = code.get("text") or code.get("identifier") or "Observation"
        values = obx.get("observation_value") or []
        value = values[0] if values else ""
        flags = obx.get("abnormal_flags") or []

        if obx.get("value_type") == "NM":
            if value and not _is_number(value):
                found.append(_ambiguity("OBX", "observation_value", value,
                                        f"{label}: numeric value type with non-numeric value", "non_numeric_value"))
            if value and not obx.get("units"):
                found.append(_ambiguity("OBX", "units", value, f"{label}: missing units for numeric result",
                                        "missing_units"))
            if value and not obx.get("reference_range") and not flags:
                found.append(_ambiguity("OBX", "reference_range", value,
                                        f"{label}: no reference range or abnormal flag", "missing_reference"))

        for flag in flags:
            if flag.upper() not in KNOWN_ABNORMAL_FLAGS:
                found.append(_ambiguity("OBX", "abnormal_flags", flag, f"{label}: unrecognized abnormal flag",
                                        "unknown_flag"))

        if code.get("identifier") and not code.get("coding_system"):
            found.append(_ambiguity("OBX", "observation_identifier", code["identifier"],
                                    f"{label}: observation code has no coding system", "missing_coding_system"))

        if obx.get("observation_result_status") in PRELIMINARY_STATUSES:
            found.append(_ambiguity("OBX", "observation_result_status", obx["observation_result_status"],
                                    f"{label}: preliminary result", "preliminary_result"))

    for dg1 in message.diagnoses:
        code = dg1.get("diagnosis_code") or {}
        system = (code.get("coding_system") or dg1.get("diagnosis_coding_method") or "").upper()
        if code.get("identifier") and not system:
            found.append(_ambiguity("DG1", "diagnosis_code", code["identifier"],
                                    "Diagnosis code has no coding system", "missing_coding_system"))
        elif code.get("identifier") and system not in CODING_SYSTEMS:
            found.append(_ambiguity("DG1", "diagnosis_code", code["identifier"],
                                    f"Unrecognized diagnosis coding system {system}", "unknown_coding_system"))

    for al1 in message.allergies:
        if not al1.get("allergen_type_code"):
            allergen = display_value(al1.get("allergen_code"))
            found.append(_ambiguity("AL1", "allergen_type_code", allergen,
                                    "Allergen type missing; category cannot be determined", "missing_allergen_type"))

    for segment in message.segments:
        segment_type = segment["segment_type"]
        for field_name in DATE_FIELDS.get(segment_type, []):
            value = segment.get(field_name)
            if value and len(value) < 8:
                shown = "" if segment_type == "PID" else value
                found.append(_ambiguity(segment_type, field_name, shown, "Incomplete date", "incomplete_date"))

    return found


def abnormal_results(message: HL7Message) -> list[dict]:
    """OBX results carrying an abnormal flag; HH, LL and AA are critical."""
    results = []
    for obx in message.observations:
        flags = [flag.upper() for flag in obx.get("abnormal_flags") or []]
        flagged = [flag for flag in flags if flag in ABNORMAL_FLAGS]
        if not flagged:
            continue
        code = obx.get("observation_identifier") or {}
        values = obx.get("observation_value") or []
        results.append({
            "test": code.get("text") or code.get("identifier") or "Unknown",
            "code": code.get("identifier") or "",
            "value": values[0] if values else "",
            "units": display_value(obx.get("units")),
            "referenceRange": obx.get("reference_range") or "",
            "flag": flagged[0],
            "critical": any(flag in CRITICAL_FLAGS for flag in flagged),
        })
    return results


def rule_based_summary(message: HL7Message, abnormal: list[dict]) -> str:
    header = f"{message.message_code}^{message.trigger_event} with {len(message.observations)} observation(s)"
    if not abnormal:
        return f"{header}; no abnormal results flagged."
    critical = [result for result in abnormal if result["critical"]]
    details = ", ".join(
        f"{result['test']} {result['value']} {result['units']}".rstrip() + f" ({result['flag']})"
        for result in abnormal
    )
    prefix = f"{len(critical)} critical, " if critical else ""
    return f"{header}; {prefix}{len(abnormal)} abnormal: {details}."


def rule_based_confidence(ambiguities: list[HL7Ambiguity]) -> float:
    return round(clamp(0.7 - 0.05 * len(ambiguities), 0.3, 0.7), 2)


def build_prompt(message: HL7Message, ambiguities: list[HL7Ambiguity], abnormal: list[dict]) -> str:
    listed = [
        {"index": i, "segment": a.segment, "field": a.field, "value": a.value, "issue": a.issue}
        for i, a in enumerate(ambiguities)
    ]
    return f"""Review this HL7 v2 {message.message_code}^{message.trigger_event} message (version {message.header.get("version_id")}).

AMBIGUOUS FIELDS:
{json.dumps(listed, indent=2) if listed else "None"}

ABNORMAL RESULTS:
{json.dumps(abnormal, indent=2) if abnormal else "None"}

For each ambiguous field, state how it should be mapped to FHIR R4 and how confident you are.
Then summarize the clinically relevant findings in 2-3 sentences for a clinician.

Return ONLY valid JSON:
{{
  "resolutions": [{{"index": 0, "resolution": "", "confidence": 0.0}}],
  "clinicalSummary": "",
  "confidence": 0.0
}}"""


class HL7Interpreter(BaseSkill):
    """AI-assisted interpretation of HL7 v2 messages.

    Example Usage:
        ```python
        interpreter = HL7Interpreter(database, llm_router)
        result = interpreter.interpret(HL7InterpretRequest(message=raw, tenant_id=tenant_id))
        if result.is_success():
            for ambiguity in result.data.result.ambiguities:
                print(ambiguity.segment, ambiguity.field, ambiguity.resolution)
        ```
    """

    SKILL_KEY = "hl7_interpreter"
    SKILL_NAME = "hl7_interpreter"

    def __init__(self, database, llm, tracker=None, audit_logger=None, parser: Optional[HL7Parser] = None):
        super().__init__(database, llm, tracker, audit_logger)
        self.parser = parser or HL7Parser(audit_logger=self.audit)

    def interpret(self, request: HL7InterpretRequest) -> ServiceResult[SkillResponse]:
        """Parse, map and interpret one message; the result wraps HL7Interpretation."""
        if not request.message or not request.message.strip():
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, "HL7 message is required")

        started = time.perf_counter()
        parsed = self.parser.parse(request.message)
        if parsed.message is None:
            return ServiceResult.failure_result(
                ErrorCode.INVALID_INPUT, f"Failed to parse HL7 message: {'; '.join(parsed.error_messages)}"
            )

        message = parsed.message
        ambiguities = detect_ambiguities(message)
        abnormal = abnormal_results(message)
        interpretation = HL7Interpretation(
            message_type=f"{message.message_code}^{message.trigger_event}",
            control_id=message.control_id,
            segment_count=len(message.segments),
            fhir_mappings=map_to_fhir(message),
            ambiguities=ambiguities,
            clinical_summary=rule_based_summary(message, abnormal),
            abnormal_results=abnormal,
            parse_errors=parsed.error_messages,
            confidence=rule_based_confidence(ambiguities),
            ai_model=RULE_BASED_MODEL,
        )

        response = None
        if ambiguities or abnormal:
            try:
                response = self.call_model(
                    build_prompt(message, ambiguities, abnormal),
                    system_prompt=SYSTEM_PROMPT,
                    complexity="simple",
                    temperature=0.1,
                    max_tokens=1500,
                    user_id=request.tenant_id,
                )
            except LLMError as e:
                logger.warning(f"HL7 interpretation model call failed; using rule-based result: {e.message}")

        if response is not None:
            self._apply_model_reply(interpretation, response.text, response.model)
            self.log_usage(response, tenant_id=request.tenant_id, patient_id=request.patient_id,
                           request_type="hl7_interpretation", extra={
                               "message_type": interpretation.message_type,
                               "ambiguities": len(ambiguities),
                           })

        interpretation.requires_review = True
        interpretation.interpretation_id = self._store(interpretation, request)

        self.audit.info("HL7_MESSAGE_INTERPRETED", {
            "messageType": interpretation.message_type,
            "controlId": interpretation.control_id,
            "ambiguities": len(ambiguities),
            "abnormalResults": len(abnormal),
            "model": interpretation.ai_model,
        })
        return ServiceResult.success_result(self.envelope(interpretation, interpretation.ai_model, started))

    def _apply_model_reply(self, interpretation: HL7Interpretation, text: str, model: str) -> None:
        parsed = extract_json(text)
        if parsed is None:
            logger.warning("HL7 interpretation reply contained no JSON; keeping rule-based result")
            return

        for item in parsed.get("resolutions") or []:
            if not isinstance(item, dict):
                continue
            index = item.get("index")
            if not isinstance(index, int) or not 0 <= index < len(interpretation.ambiguities):
                continue
            ambiguity = interpretation.ambiguities[index]
            try:
                confidence = float(item.get("confidence", ambiguity.confidence))
            except (TypeError, ValueError):
                logger.debug(f"Ignoring malformed resolution at index {index}")
                continue
            ambiguity.resolution = str(item.get("resolution") or ambiguity.resolution)
            ambiguity.confidence = clamp(confidence, 0.0, 1.0)

        if parsed.get("clinicalSummary"):
            interpretation.clinical_summary = str(parsed["clinicalSummary"])
        try:
            interpretation.confidence = clamp(float(parsed.get("confidence", interpretation.confidence)), 0.0, 1.0)
        except (TypeError, ValueError):
            logger.debug("Ignoring malformed interpretation confidence")
        interpretation.ai_model = model

    def _store(self, interpretation: HL7Interpretation, request: HL7InterpretRequest) -> Optional[str]:
        row = interpretation.to_row()
        row.pop("interpretation_id", None)
        row.update({
            "id": new_id(),
            "tenant_id": request.tenant_id,
            "patient_id": request.patient_id,
            "source_system": request.source_system,
            "created_at": utc_now_iso(),
        })
        result = self.database.insert(INTERPRETATIONS_TABLE, row)
        if result.is_failure():
            logger.warning(f"HL7 interpretation not stored: {result.error.message}")
            return None
        return row["id"]

    def get_recent_interpretations(self, tenant_id: str, limit: int = 20) -> ServiceResult[list[HL7Interpretation]]:
        result = self.database.select(
            TableQuery(INTERPRETATIONS_TABLE)
            .eq("tenant_id", tenant_id)
            .order("created_at", ascending=False)
            .limit(limit)
        )
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to fetch interpretations: {result.error.message}"
            )
        return ServiceResult.success_result([
            HL7Interpretation.model_validate({**row, "interpretation_id": row.get("id")})
            for row in result.data or []
        ])
