"""Tests for HL7Interpreter mapping, ambiguity detection and model resolution."""

import json

import pytest

from src.domain.ports import ServiceResult
from src.domain.skill_models import HL7InterpretRequest
from src.domain.skills.hl7_interpreter import (
    DEFAULT_RESOLUTIONS,
    HL7Interpreter,
    abnormal_results,
    detect_ambiguities,
    map_to_fhir,
    rule_based_confidence,
    rule_based_summary,
)
from src.infrastructure.hl7_parser import HL7Parser


def segment(name: str, fields: dict) -> str:
    values = [""] * (max(fields) + 1)
    values[0] = name
    for index, value in fields.items():
        values[index] = value
    return "|".join(values)


ORU = "\r".join([
    "MSH|^~\\&|LAB|CITYHOSP|CAREOPS|CLINIC|20260301083000||ORU^R01|MSG00001|P|2.5.1",
    segment("PID", {1: "1", 3: "MRN12345^^^CITYHOSP^MR", 5: "DOE^JANE", 7: "19500315", 8: "F"}),
    segment("PV1", {1: "1", 2: "I", 3: "4W^401^A"}),
    segment("OBR", {1: "1", 4: "24323-8^Metabolic panel^LN", 25: "F"}),
    segment("OBX", {1: "1", 2: "NM", 3: "2345-7^Glucose^LN", 5: "245", 6: "mg/dL", 7: "70-99", 8: "HH", 11: "F"}),
    segment("OBX", {1: "2", 2: "NM", 3: "2160-0^Creatinine^LN", 5: "1.1", 6: "mg/dL", 7: "0.6-1.2", 8: "N", 11: "F"}),
    segment("OBX", {1: "3", 2: "NM", 3: "2823-3^Potassium^LN", 5: "3.1", 6: "mmol/L", 7: "3.5-5.1", 8: "L", 11: "P"}),
])

ADT_CLEAN = "\r".join([
    "MSH|^~\\&|ADT|CITYHOSP|CAREOPS|CLINIC|20260301083000||ADT^A01|ADT00042|P|2.5.1",
    segment("PID", {1: "1", 3: "MRN777", 5: "ROE^RICHARD", 7: "19681102", 8: "M"}),
    segment("PV1", {1: "1", 2: "E", 3: "ED^12", 44: "20260301081500"}),
])

ADT_MESSY = "\r".join([
    "MSH|^~\\&|ADT|CITYHOSP|CAREOPS|CLINIC|20260301083000||ADT^A01|ADT00043|P|2.5.1",
    segment("PID", {1: "1", 3: "MRN778", 5: "POE^EDGAR", 7: "1968", 8: "X"}),
    segment("PV1", {1: "1", 2: "Z", 44: "202603"}),
    segment("DG1", {1: "1", 3: "J18.9^Pneumonia^ZZZ"}),
    segment("DG1", {1: "2", 3: "R50.9^Fever"}),
    segment("AL1", {1: "1", 3: "PCN^Penicillin"}),
    segment("OBX", {1: "1", 2: "NM", 3: "8310-5^Temp", 5: "high", 8: "Q"}),
])


def _parse(raw):
    return HL7Parser().parse(raw).message


@pytest.fixture
def interpreter(database, llm):
    return HL7Interpreter(database, llm)


class TestMapping:
    def test_fhir_paths(self):
        mappings = map_to_fhir(_parse(ORU))

        by_path = {(m["fhirPath"], m["value"]) for m in mappings}
        assert ("Patient.name", "DOE") in by_path
        assert ("Patient.birthDate", "19500315") in by_path
        assert ("Encounter.class", "I") in by_path
        assert ("Encounter.location.location", "4W") in by_path
        assert ("Observation.value[x]", "245") in by_path
        assert ("Observation.valueQuantity.unit", "mg/dL") in by_path

    def test_clean_message_has_no_ambiguities(self):
        assert detect_ambiguities(_parse(ADT_CLEAN)) == []

    def test_preliminary_result(self):
        ambiguities = detect_ambiguities(_parse(ORU))

        assert [(a.segment, a.field, a.value) for a in ambiguities] == [
            ("OBX", "observation_result_status", "P"),
        ]
        assert ambiguities[0].resolution == DEFAULT_RESOLUTIONS["preliminary_result"]

    def test_messy_message(self):
        ambiguities = detect_ambiguities(_parse(ADT_MESSY))

        issues = {(a.segment, a.field): a for a in ambiguities}
        assert issues[("PID", "administrative_sex")].value == ""
        assert issues[("PV1", "patient_class")].value == "Z"
        assert ("OBX", "observation_value") in issues
        assert ("OBX", "units") in issues
        assert ("OBX", "reference_range") not in issues
        assert issues[("OBX", "abnormal_flags")].value == "Q"
        assert issues[("OBX", "observation_identifier")].value == "8310-5"
        assert issues[("AL1", "allergen_type_code")].value == "Penicillin"
        dg1 = [a for a in ambiguities if a.segment == "DG1"]
        assert [a.issue for a in dg1] == [
            "Unrecognized diagnosis coding system ZZZ",
            "Diagnosis code has no coding system",
        ]
        dates = [(a.segment, a.field, a.value) for a in ambiguities if a.issue == "Incomplete date"]
        # PID values are withheld
        assert dates == [("PID", "date_of_birth", ""), ("PV1", "admit_date_time", "202603")]

    def test_abnormal_results(self):
        results = abnormal_results(_parse(ORU))

        assert [(r["test"], r["flag"], r["critical"]) for r in results] == [
            ("Glucose", "HH", True),
            ("Potassium", "L", False),
        ]
        assert results[0]["units"] == "mg/dL"

    def test_rule_based_summary(self):
        message = _parse(ORU)

        summary = rule_based_summary(message, abnormal_results(message))

        assert summary == (
            "ORU^R01 with 3 observation(s); 1 critical, 2 abnormal: "
            "Glucose 245 mg/dL (HH), Potassium 3.1 mmol/L (L)."
        )

    def test_rule_based_confidence_bounds(self):
        assert rule_based_confidence([]) == 0.7
        assert rule_based_confidence([object()] * 20) == 0.3


class TestInterpret:
    def test_model_resolves_ambiguities(self, interpreter, llm, llm_reply, database, written_rows, audit_events):
        llm.call.return_value = llm_reply(json.dumps({
            "resolutions": [
                {"index": 0, "resolution": "Map to Observation.status=preliminary", "confidence": 0.92},
                {"index": 7, "resolution": "out of range", "confidence": 0.1},
            ],
            "clinicalSummary": "Critical hyperglycemia with mild hypokalemia.",
            "confidence": 1.4,
        }))

        result = interpreter.interpret(HL7InterpretRequest(message=ORU, tenant_id="tenant-1"))

        interpretation = result.data.result
        assert interpretation.message_type == "ORU^R01"
        assert interpretation.control_id == "MSG00001"
        assert interpretation.segment_count == 7
        assert interpretation.ambiguities[0].resolution == "Map to Observation.status=preliminary"
        assert interpretation.ambiguities[0].confidence == 0.92
        assert interpretation.clinical_summary == "Critical hyperglycemia with mild hypokalemia."
        assert interpretation.confidence == 1.0
        assert interpretation.ai_model == "claude-haiku-4-5"
        assert interpretation.requires_review is True

        stored = written_rows(database.insert, "ai_hl7_interpretations")[0]
        assert interpretation.interpretation_id == stored["id"]
        assert stored["tenant_id"] == "tenant-1"
        assert "DOE" not in llm.call.call_args.args[0]
        assert "HL7_MESSAGE_INTERPRETED" in audit_events()

    def test_clean_message_skips_model(self, interpreter, llm):
        result = interpreter.interpret(HL7InterpretRequest(message=ADT_CLEAN))

        interpretation = result.data.result
        assert interpretation.ai_model == "rule_based"
        assert interpretation.confidence == 0.7
        assert interpretation.clinical_summary == "ADT^A01 with 0 observation(s); no abnormal results flagged."
        llm.call.assert_not_called()

    def test_model_failure_keeps_rule_based_result(self, interpreter, llm):
        llm.call.return_value = ServiceResult.failure_result("AI_SERVICE_ERROR", "down")

        result = interpreter.interpret(HL7InterpretRequest(message=ORU))

        interpretation = result.data.result
        assert interpretation.ai_model == "rule_based"
        assert interpretation.confidence == 0.65
        assert interpretation.clinical_summary.startswith("ORU^R01 with 3 observation(s)")

    def test_storage_failure_is_not_fatal(self, interpreter, database):
        database.insert.return_value = ServiceResult.failure_result("DATABASE_ERROR", "down")

        result = interpreter.interpret(HL7InterpretRequest(message=ADT_CLEAN))

        assert result.is_success()
        assert result.data.result.interpretation_id is None

    @pytest.mark.parametrize("raw, message", [
        ("   ", "HL7 message is required"),
        ("PID|1||MRN1", "Failed to parse HL7 message: Message must start with MSH segment"),
    ])
    def test_invalid_message(self, interpreter, raw, message):
        result = interpreter.interpret(HL7InterpretRequest(message=raw))

        assert result.error_code == "INVALID_INPUT"
        assert result.error.message == message

    def test_recent_interpretations(self, interpreter, database):
        database.select.return_value = ServiceResult.success_result([
            {"id": "int-1", "message_type": "ORU^R01", "ambiguities": [], "confidence": 0.7},
        ])

        result = interpreter.get_recent_interpretations("tenant-1", limit=5)

        assert result.data[0].interpretation_id == "int-1"
        assert database.select.call_args.args[0].limit_value == 5
