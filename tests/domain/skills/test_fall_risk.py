"""Tests for FallRiskPredictor scoring, model parsing and review workflow."""

import json
from datetime import datetime, timezone

import pytest

from src.domain.ports import ServiceResult
from src.domain.skill_models import CategoryScores, FallRiskAssessment, FallRiskRequest
from src.domain.skills.fall_risk import (
    LOW_CONFIDENCE_REASON,
    VERY_HIGH_RISK_REASON,
    FallRiskPredictor,
    PatientData,
    age_from_dob,
    apply_safety_guardrails,
    calculate_preliminary_scores,
    category_for_score,
    fallback_assessment,
    monitoring_for_score,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

CHART = {
    "fhir_conditions": [
        {"code": "G20", "code_display": "Parkinson disease", "clinical_status": "active"},
        {"code": "E11.9", "code_display": "Type 2 diabetes", "clinical_status": "active"},
    ],
    "fhir_medication_statements": [
        {"medication_display": "Oxycodone 5 MG", "status": "active"},
        {"medication_display": "Furosemide 40 MG", "status": "active"},
        {"medication_display": "Metformin 500 MG", "status": "active"},
    ],
    "adverse_events": [
        {"event_date": "2026-03-14", "severity": "minor", "location": "bathroom"},
        {"event_date": "2024-11-02", "severity": "minor", "location": "bedroom"},
    ],
}


def _patient():
    return PatientData(
        age=86,
        conditions=[{"display": row["code_display"]} for row in CHART["fhir_conditions"]],
        medications=[{"name": row["medication_display"]} for row in CHART["fhir_medication_statements"]],
        fall_history=[{"date": row["event_date"]} for row in CHART["adverse_events"]],
    )


@pytest.fixture
def predictor(database, llm):
    database.select_one.return_value = ServiceResult.success_result({"dob": "1940-01-15", "gender": "female"})
    database.select.side_effect = lambda query: ServiceResult.success_result(CHART.get(query.table, []))
    return FallRiskPredictor(database, llm)


def _request(**overrides):
    values = {"patient_id": "patient-123456789", "assessor_id": "nurse-987654321", "tenant_id": "tenant-1"}
    values.update(overrides)
    return FallRiskRequest(**values)


class TestScoring:
    def test_preliminary_scores(self):
        scores = calculate_preliminary_scores(_patient(), NOW)

        assert scores.age == 100
        # only the 2026 fall is inside the last year
        assert scores.fall_history == 50
        assert scores.medications == 50
        assert scores.conditions == 30
        assert scores.mobility == 60
        assert scores.cognitive == 10
        assert scores.sensory == 10
        assert scores.environmental == 20

    def test_polypharmacy_floor(self):
        data = PatientData(age=50, medications=[{"name": f"Vitamin {i}"} for i in range(10)])

        assert calculate_preliminary_scores(data, NOW).medications == 60

    def test_empty_chart(self):
        scores = calculate_preliminary_scores(PatientData(), NOW)

        assert scores.age == 0
        assert scores.mobility == 20
        assert scores.cognitive == 10

    @pytest.mark.parametrize("score, category, monitoring", [
        (75, "very_high", "intensive"),
        (55, "high", "enhanced"),
        (35, "moderate", "standard"),
        (10, "low", "standard"),
    ])
    def test_score_bands(self, score, category, monitoring):
        assert category_for_score(score) == category
        assert monitoring_for_score(score) == monitoring

    def test_age_from_dob(self):
        assert age_from_dob("1940-01-15", NOW) == 86
        assert age_from_dob(None, NOW) is None

    def test_fallback_assessment(self):
        data = _patient()
        body = fallback_assessment(data, calculate_preliminary_scores(data, NOW))

        assert body["overall_risk_score"] == 41
        assert body["risk_category"] == "moderate"
        assert body["confidence"] == 0.5
        assert "Preliminary scoring only" in body["review_reasons"]


class TestGuardrails:
    def _assessment(self, score, confidence, reasons=None):
        return FallRiskAssessment(
            assessment_id="a1", patient_id="p1", assessor_id="n1", assessment_date=NOW.isoformat(),
            overall_risk_score=score, confidence=confidence, requires_review=False,
            review_reasons=reasons or [],
        )

    def test_very_high_and_low_confidence(self):
        assessment = apply_safety_guardrails(self._assessment(90, 0.3))

        assert assessment.requires_review is True
        assert assessment.review_reasons == [VERY_HIGH_RISK_REASON, LOW_CONFIDENCE_REASON]

    def test_no_duplicate_reasons(self):
        assessment = apply_safety_guardrails(self._assessment(90, 0.9, [VERY_HIGH_RISK_REASON]))

        assert assessment.review_reasons == [VERY_HIGH_RISK_REASON]

    def test_moderate_score_only_forces_review(self):
        assessment = apply_safety_guardrails(self._assessment(40, 0.8))

        assert assessment.requires_review is True
        assert assessment.review_reasons == []


class TestAssessRisk:
    def test_model_assessment(self, predictor, llm, llm_reply, database, audit_events, written_rows):
        llm.call.return_value = llm_reply("Assessment:\n" + json.dumps({
            "overallRiskScore": 88,
            "riskCategory": "very_high",
            "morseScaleEstimate": 95,
            "riskFactors": [{"factor": "Opioid use", "category": "medication", "severity": "high",
                             "weight": 0.8, "evidence": "Oxycodone"}],
            "precautions": ["Bed alarm"],
            "confidence": 0.4,
            "plainLanguageExplanation": "Your risk of falling is high.",
        }), model="claude-sonnet-4-5")

        result = predictor.assess_risk(_request(), now=NOW)

        assessment = result.data.result
        assert result.data.metadata.model == "claude-sonnet-4-5"
        assert assessment.overall_risk_score == 88
        assert assessment.patient_age == 86
        assert assessment.age_risk_category == "high"
        assert assessment.monitoring_frequency == "intensive"
        assert assessment.requires_review is True
        assert assessment.review_reasons == [
            "Standard clinical review required", VERY_HIGH_RISK_REASON, LOW_CONFIDENCE_REASON,
        ]
        assert assessment.category_scores.age == 100
        assert llm.call.call_args.kwargs["complexity"] == "complex"
        assert audit_events() == ["FALL_RISK_ASSESSMENT_STARTED", "FALL_RISK_ASSESSMENT_COMPLETED"]
        usage = written_rows(database.insert, "ai_skill_usage")[0]
        assert usage["request_type"] == "fall_risk_prediction"
        assert usage["metadata"]["risk_category"] == "very_high"

    def test_unparseable_reply_uses_preliminary_scores(self, predictor, llm, llm_reply):
        llm.call.return_value = llm_reply("I cannot produce JSON today.")

        result = predictor.assess_risk(_request(), now=NOW)

        assessment = result.data.result
        assert assessment.overall_risk_score == 41
        assert assessment.monitoring_frequency == "enhanced"
        assert "AI response parsing failed - requires manual review" in assessment.review_reasons

    def test_reply_outside_schema_uses_preliminary_scores(self, predictor, llm, llm_reply):
        llm.call.return_value = llm_reply('{"overallRiskScore": 60, "riskCategory": "extreme"}')

        result = predictor.assess_risk(_request(), now=NOW)

        assert result.data.result.risk_category == "moderate"

    def test_model_failure(self, predictor, llm, audit_events):
        llm.call.return_value = ServiceResult.failure_result("AI_SERVICE_ERROR", "rate limited")

        result = predictor.assess_risk(_request(), now=NOW)

        assert result.error_code == "FALL_RISK_ASSESSMENT_FAILED"
        assert "rate limited" in result.error.message
        assert audit_events("ERROR") == ["FALL_RISK_ASSESSMENT_FAILED"]

    def test_missing_ids(self, predictor, llm):
        result = predictor.assess_risk(_request(assessor_id=""))

        assert result.error_code == "INVALID_INPUT"
        llm.call.assert_not_called()

    def test_post_fall_adds_default_factor(self, predictor, llm, llm_reply):
        llm.call.return_value = llm_reply("{}")

        predictor.reassess_after_fall("patient-123456789", "nurse-987654321")

        assert "Recent fall event" in llm.call.call_args.args[0]
        assert "Assessment Context: post_fall" in llm.call.call_args.args[0]


class TestReviewWorkflow:
    def _assessment(self):
        return FallRiskAssessment(
            assessment_id="a1", patient_id="p1", assessor_id="n1", assessment_date=NOW.isoformat(),
            overall_risk_score=72, risk_category="very_high", confidence=0.8,
            category_scores=CategoryScores(age=80),
        )

    def test_save_as_pending_review(self, predictor, database, written_rows):
        database.insert.side_effect = lambda table, row: ServiceResult.success_result(
            [{**row, "id": "row-1", "created_at": NOW.isoformat()}]
        )

        result = predictor.save_assessment(self._assessment())

        row = written_rows(database.insert, "ai_fall_risk_assessments")[0]
        assert row["status"] == "pending_review"
        assert "generated_at" not in row
        assert result.data.id == "row-1"
        assert result.data.category_scores.age == 80

    def test_save_forces_review(self, predictor, database, written_rows):
        database.insert.side_effect = lambda table, row: ServiceResult.success_result([{**row, "id": "row-2"}])
        assessment = self._assessment()
        assessment.overall_risk_score = 92
        assessment.confidence = 0.2
        assessment.requires_review = False

        predictor.save_assessment(assessment)

        row = written_rows(database.insert, "ai_fall_risk_assessments")[0]
        assert row["requires_review"] is True
        assert VERY_HIGH_RISK_REASON in row["review_reasons"]
        assert LOW_CONFIDENCE_REASON in row["review_reasons"]

    def test_save_failure(self, predictor, database):
        database.insert.return_value = ServiceResult.failure_result("DATABASE_ERROR", "constraint")

        result = predictor.save_assessment(self._assessment())

        assert result.error_code == "FALL_RISK_SAVE_FAILED"

    def test_approve_requires_pending(self, predictor):
        result = predictor.approve_assessment("a1", "reviewer-12345")

        assert result.error_code == "NOT_FOUND"

    def test_approve(self, predictor, database, audit_events):
        database.update.return_value = ServiceResult.success_result([{
            **self._assessment().to_row(), "status": "approved", "reviewed_by": "reviewer-12345",
        }])

        result = predictor.approve_assessment("a1", "reviewer-12345", "Agree")

        assert result.data.status == "approved"
        changes = database.update.call_args.args[1]
        assert changes["review_notes"] == "Agree"
        assert "FALL_RISK_ASSESSMENT_APPROVED" in audit_events()

    def test_high_risk_only_approved(self, predictor, database):
        predictor.get_high_risk_patients(min_score=80, limit=5)

        query = database.select.call_args.args[0]
        filters = [(f.column, f.operator, f.value) for f in query.filters]
        assert ("overall_risk_score", "gte", 80) in filters
        assert ("status", "eq", "approved") in filters
        assert query.limit_value == 5

    def test_clinical_display(self):
        text = FallRiskPredictor.format_for_clinical_display(self._assessment())

        assert "Risk Category: VERY HIGH" in text
        assert "Age: 80/100" in text
        assert "AI-GENERATED - REQUIRES CLINICAL REVIEW" in text
