"""Tests for CarePlanGenerator."""

import json
from datetime import datetime, timezone

import pytest

from src.domain.ports import ServiceResult
from src.domain.skill_models import CarePlan, CarePlanRequest
from src.domain.skills.care_plan import (
    DEFAULT_REVIEW_REASON,
    FALLBACK_REVIEW_REASON,
    CarePlanGenerator,
    PatientContext,
    UtilizationHistory,
    age_group,
    normalize_plan,
    readmission_risk,
    summarize_utilization,
    template_plan,
)

NOW = datetime(2026, 4, 10, 9, 0, tzinfo=timezone.utc)
PATIENT_ID = "a87ff679-a2f3-4c71-9181-a67b7542122c"

ROWS = {
    "fhir_conditions": [
        {"code": "E11.9", "code_display": "Type 2 diabetes", "clinical_status": "active"},
        {"code": "I10", "code_display": "Essential hypertension", "clinical_status": "active"},
    ],
    "patient_diagnoses": [
        {"icd10_code": "E11.9", "diagnosis_name": "Diabetes", "is_primary": True, "status": "active"},
        {"icd10_code": "N18.3", "diagnosis_name": "CKD stage 3", "is_primary": False, "status": "active"},
    ],
    "fhir_medication_statements": [
        {"medication_display": "Metformin", "dosage": "500 mg", "frequency": "BID"},
    ],
    "fhir_observations": [
        {"code": "8480-6", "value_quantity_value": 150, "value_quantity_unit": "mmHg",
         "effective_datetime": "2026-04-09T08:00:00Z"},
        {"code": "8480-6", "value_quantity_value": 138, "value_quantity_unit": "mmHg",
         "effective_datetime": "2026-04-05T08:00:00Z"},
    ],
    "patient_readmissions": [
        {"admission_date": "2026-03-30", "facility_type": "emergency"},
        {"admission_date": "2026-03-25", "facility_type": "inpatient"},
        {"admission_date": "2026-02-01", "facility_type": "emergency"},
    ],
    "fhir_allergy_intolerances": [{"code_display": "Penicillin"}, {"code_display": None}],
}

SINGLE_ROWS = {
    "profiles": {"dob": "1952-08-20", "preferred_language": "Spanish"},
    "sdoh_assessments": {"transportation_barriers": True, "risk_level": "moderate", "overall_complexity_score": 6},
}


@pytest.fixture
def generator(database, llm):
    database.select.side_effect = lambda query: ServiceResult.success_result(ROWS.get(query.table, []))
    database.select_one.side_effect = lambda query: ServiceResult.success_result(SINGLE_ROWS.get(query.table))
    return CarePlanGenerator(database, llm)


def _request(**overrides):
    values = {"patient_id": PATIENT_ID, "author_id": "nurse-1", "plan_type": "readmission_prevention"}
    values.update(overrides)
    return CarePlanRequest(**values)


class TestHelpers:
    @pytest.mark.parametrize("age, group", [
        (None, "unknown"), (10, "pediatric"), (30, "young_adult"), (50, "adult"), (70, "geriatric"),
    ])
    def test_age_group(self, age, group):
        assert age_group(age) == group

    @pytest.mark.parametrize("history, risk", [
        (UtilizationHistory(), "low"),
        (UtilizationHistory(ed_visits_30_days=1), "medium"),
        (UtilizationHistory(ed_visits_30_days=1, admissions_30_days=1, admissions_90_days=1), "critical"),
        (UtilizationHistory(ed_visits_90_days=2, admissions_90_days=2), "high"),
    ])
    def test_readmission_risk(self, history, risk):
        assert readmission_risk(history) == risk

    def test_summarize_utilization(self):
        history = summarize_utilization(ROWS["patient_readmissions"], NOW)

        assert history.ed_visits_30_days == 1
        assert history.ed_visits_90_days == 2
        assert history.admissions_30_days == 1
        assert history.admissions_90_days == 1
        assert history.readmission_risk == "critical"

    def test_normalize_fills_defaults(self):
        context = PatientContext(
            conditions=[{"code": "E11.9", "display": "Diabetes"}, {"code": "I10", "display": "HTN"}],
        )

        plan = normalize_plan({"title": "Diabetes plan", "reviewReasons": []}, "chronic_care", context, 8)

        assert plan["title"] == "Diabetes plan"
        assert plan["estimatedDuration"] == "8 weeks"
        assert plan["ccmEligible"] is True
        assert plan["tcmEligible"] is False
        assert plan["reviewReasons"] == [DEFAULT_REVIEW_REASON]
        assert plan["icd10Codes"][1] == {"code": "I10", "display": "HTN"}

    def test_template_for_unknown_type_is_chronic_care(self):
        plan = template_plan("something_else", PatientContext())

        assert plan["title"] == "Chronic Care Management Plan"
        assert plan["ccm_eligible"] is True
        assert plan["review_reasons"] == [FALLBACK_REVIEW_REASON]


class TestContext:
    def test_gather_patient_context(self, generator):
        context = generator.gather_patient_context(PATIENT_ID, now=NOW)

        assert context.age_group == "geriatric"
        assert context.preferred_language == "Spanish"
        codes = [(c["code"], c["is_primary"]) for c in context.conditions]
        assert codes == [("E11.9", True), ("I10", False), ("N18.3", False)]
        assert context.vitals["blood_pressure_systolic"]["value"] == 150
        assert context.sdoh_factors["transportation"] == "barriers"
        assert context.sdoh_factors["housing"] == "stable"
        assert context.allergies == ["Penicillin"]
        assert context.utilization.readmission_risk == "critical"

    def test_optional_sections_skipped(self, generator, database):
        context = generator.gather_patient_context(PATIENT_ID, include_sdoh=False, include_medications=False, now=NOW)

        assert context.sdoh_factors is None
        assert context.medications == []
        tables = [call.args[0].table for call in database.select.call_args_list]
        assert "fhir_medication_statements" not in tables


class TestGenerate:
    def test_model_plan(self, generator, llm, llm_reply, database, written_rows):
        llm.call.return_value = llm_reply(json.dumps({
            "title": "Diabetes and CKD Readmission Plan",
            "priority": "high",
            "goals": [{"goal": "A1c below 8", "target": "A1c < 8%", "timeframe": "90 days", "priority": "high"}],
            "confidence": 0.82,
        }), model="claude-sonnet-4-5")

        result = generator.generate_care_plan(_request(), now=NOW)

        plan = result.data.result
        assert result.data.metadata.model == "claude-sonnet-4-5"
        assert plan.title == "Diabetes and CKD Readmission Plan"
        assert plan.plan_type == "readmission_prevention"
        assert plan.ccm_eligible is True
        assert plan.tcm_eligible is True
        assert plan.requires_review is True
        assert plan.review_reasons == [DEFAULT_REVIEW_REASON]
        assert plan.patient_id == PATIENT_ID

        prompt = llm.call.call_args.args[0]
        assert "CARE PLAN TYPE: READMISSION PREVENTION" in prompt
        assert "1. Type 2 diabetes (E11.9) (PRIMARY)" in prompt
        assert "Readmission Risk: CRITICAL" in prompt
        assert "ALLERGIES: Penicillin" in prompt
        usage = written_rows(database.insert, "ai_skill_usage")[0]
        assert usage["request_type"] == "care_plan_readmission_prevention"

    def test_model_failure_uses_template(self, generator, llm, database, written_rows, audit_events):
        llm.call.return_value = ServiceResult.failure_result("AI_SERVICE_ERROR", "overloaded")

        result = generator.generate_care_plan(_request(), now=NOW)

        plan = result.data.result
        assert result.data.metadata.model == "template"
        assert plan.title == "Readmission Prevention Care Plan"
        assert plan.tcm_eligible is True
        assert plan.risk_factors == ["High utilization history"]
        assert plan.review_reasons == [FALLBACK_REVIEW_REASON]
        assert written_rows(database.insert, "ai_skill_usage") == []
        assert audit_events() == ["CARE_PLAN_GENERATION_STARTED", "CARE_PLAN_GENERATED"]

    def test_reply_without_json_uses_template(self, generator, llm, llm_reply):
        llm.call.return_value = llm_reply("Here is a plan in prose.")

        result = generator.generate_care_plan(_request(plan_type="preventive"), now=NOW)

        assert result.data.result.title == "Preventive Care Plan"
        assert result.data.metadata.model == "claude-haiku-4-5"

    def test_invalid_patient_id(self, generator, llm):
        result = generator.generate_care_plan(_request(patient_id="patient-1"))

        assert result.error_code == "INVALID_INPUT"
        assert result.error.message == "Invalid patient ID: must be valid UUID"
        llm.call.assert_not_called()


class TestPersistence:
    def test_save_as_draft(self, generator, database, written_rows):
        database.insert.side_effect = lambda table, row: ServiceResult.success_result(
            [{**row, "created_at": NOW.isoformat()}]
        )
        plan = CarePlan(care_plan_id="plan-1", patient_id=PATIENT_ID, title="Plan", requires_review=False)

        result = generator.save_care_plan(plan, author_id="nurse-1")

        row = written_rows(database.insert, "ai_care_plans")[0]
        assert row["id"] == "plan-1"
        assert "care_plan_id" not in row
        assert row["status"] == "draft"
        assert row["requires_review"] is True
        assert result.data.care_plan_id == "plan-1"
        assert result.data.author_id == "nurse-1"

    def test_approve_only_drafts(self, generator, database):
        result = generator.approve_care_plan("plan-1", "physician-1")

        assert result.error_code == "NOT_FOUND"
        filters = [(f.column, f.value) for f in database.update.call_args.args[0].filters]
        assert ("status", "draft") in filters

    def test_approve(self, generator, database, audit_events):
        database.update.return_value = ServiceResult.success_result([
            {"id": "plan-1", "status": "active", "approved_by": "physician-1", "goals": None},
        ])

        result = generator.approve_care_plan("plan-1", "physician-1")

        assert result.data.status == "active"
        assert result.data.goals == []
        assert "CARE_PLAN_APPROVED" in audit_events()
