"""Fall Risk Predictor.

Scores a patient's fall risk from demographics, active conditions, active
medications, recent vitals, documented falls and recent check-ins. A
rule-based preliminary score per category (Morse/STRATIFY style) is sent to
the accurate model together with the clinical context; when the model reply
cannot be used the preliminary scores become the assessment.

Safety rules applied to every assessment:

    - requires_review is always True
    - score >= 85 adds "Very high fall risk - urgent review required"
    - confidence < 0.5 adds "Low confidence - requires careful review"

Security Impact:
    - Patient and assessor ids are truncated in audit details
    - Prompts carry clinical context and are never logged

Architecture:
    - BaseSkill subclass over DatabasePort and LLMRouterPort
    - Assessments are persisted to ``ai_fall_risk_assessments`` and only become
      visible to high-risk lists after approval
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from pydantic import ValidationError as ModelValidationError

from src.domain.guardrails import new_id
from src.domain.ports import ErrorCode, LLMError, ServiceResult, TableQuery
from src.domain.skill_models import (
    CategoryScores,
    FallRiskAssessment,
    FallRiskRequest,
    SavedFallRiskAssessment,
    SkillResponse,
)
from src.domain.skills.base import BaseSkill, extract_json
from src.domain.utils import format_datetime, parse_datetime, utc_now

logger = logging.getLogger(__name__)

ASSESSMENTS_TABLE = "ai_fall_risk_assessments"

MIN_CONFIDENCE = 0.5
HIGH_RISK_SCORE = 70
VERY_HIGH_RISK_SCORE = 85

VERY_HIGH_RISK_REASON = "Very high fall risk - urgent review required"
LOW_CONFIDENCE_REASON = "Low confidence - requires careful review"

# LOINC: systolic BP, diastolic BP, heart rate, body weight
VITAL_CODES = ["8480-6", "8462-4", "8867-4", "29463-7"]

HIGH_RISK_MEDICATION_CLASSES = [
    # Sedatives/hypnotics
    "benzodiazepine", "zolpidem", "eszopiclone", "zaleplon",
    # Opioids
    "opioid", "morphine", "oxycodone", "hydrocodone", "fentanyl", "tramadol",
    # Antipsychotics
    "antipsychotic", "haloperidol", "risperidone", "quetiapine", "olanzapine",
    # Tricyclic antidepressants
    "tricyclic", "amitriptyline", "nortriptyline",
    # Anticonvulsants
    "anticonvulsant", "phenytoin", "carbamazepine", "gabapentin", "pregabalin",
    # Antihypertensives
    "antihypertensive", "diuretic", "furosemide", "hydrochlorothiazide",
    "alpha blocker", "doxazosin", "prazosin",
    # Sedating antihistamines
    "diphenhydramine", "hydroxyzine",
    # Muscle relaxants
    "muscle relaxant", "cyclobenzaprine", "methocarbamol",
    # Anticholinergics
    "anticholinergic", "oxybutynin",
]

HIGH_RISK_CONDITIONS = {
    "neurological": [
        "parkinson", "dementia", "alzheimer", "stroke", "cva", "tia",
        "neuropathy", "multiple sclerosis", "epilepsy", "seizure",
        "vertigo", "dizziness", "syncope",
    ],
    "cardiovascular": [
        "orthostatic hypotension", "arrhythmia", "atrial fibrillation",
        "heart failure", "hypotension", "bradycardia",
    ],
    "musculoskeletal": [
        "arthritis", "osteoarthritis", "rheumatoid", "osteoporosis",
        "fracture", "joint replacement", "amputation", "weakness",
        "sarcopenia", "muscle wasting",
    ],
    "sensory": [
        "vision", "blind", "glaucoma", "cataract", "macular degeneration",
        "hearing loss", "deaf",
    ],
    "metabolic": [
        "diabetes", "hypoglycemia", "anemia", "vitamin d deficiency",
        "dehydration", "electrolyte",
    ],
    "cognitive": [
        "cognitive impairment", "confusion", "delirium", "depression",
        "anxiety",
    ],
}

AI_RESULT_FIELDS = (
    "overallRiskScore", "riskCategory", "morseScaleEstimate", "riskFactors", "protectiveFactors",
    "interventions", "precautions", "confidence", "reviewReasons", "plainLanguageExplanation",
)

MOBILITY_CONDITIONS = ["arthritis", "parkinson", "weakness", "amputation", "fracture"]
COGNITIVE_CONDITIONS = ["dementia", "alzheimer", "cognitive", "confusion", "delirium"]
SENSORY_CONDITIONS = ["vision", "blind", "glaucoma", "cataract", "hearing"]


@dataclass
class PatientData:
    """Clinical context gathered for one assessment."""

    age: Optional[int] = None
    gender: Optional[str] = None
    conditions: list[dict] = field(default_factory=list)
    medications: list[dict] = field(default_factory=list)
    recent_vitals: list[dict] = field(default_factory=list)
    fall_history: list[dict] = field(default_factory=list)
    recent_check_ins: list[dict] = field(default_factory=list)


def age_from_dob(dob: Optional[str], now: Optional[datetime] = None) -> Optional[int]:
    born = parse_datetime(dob)
    if born is None:
        return None
    return int(((now or utc_now()) - born).days // 365.25)


def _any_match(texts: list[str], keywords: list[str]) -> bool:
    return any(keyword in text for text in texts for keyword in keywords)


def calculate_preliminary_scores(data: PatientData, now: Optional[datetime] = None) -> CategoryScores:
    """Rule-based 0-100 score per risk category."""
    now = now or utc_now()
    scores = CategoryScores(environmental=20)

    if data.age:
        if data.age >= 85:
            scores.age = 100
        elif data.age >= 80:
            scores.age = 80
        elif data.age >= 75:
            scores.age = 60
        elif data.age >= 65:
            scores.age = 40
        elif data.age >= 55:
            scores.age = 20

    one_year_ago = now - timedelta(days=365)
    fall_dates = [parse_datetime(fall.get("date")) for fall in data.fall_history]
    recent_falls = [d for d in fall_dates if d is not None and d >= one_year_ago]
    if len(recent_falls) >= 3:
        scores.fall_history = 100
    elif len(recent_falls) == 2:
        scores.fall_history = 75
    elif len(recent_falls) == 1:
        scores.fall_history = 50

    med_names = [(med.get("name") or "").lower() for med in data.medications]
    high_risk_meds = [name for name in med_names if any(cls in name for cls in HIGH_RISK_MEDICATION_CLASSES)]
    scores.medications = {0: 0, 1: 25, 2: 50, 3: 75}.get(len(high_risk_meds), 100)
    # Polypharmacy
    if len(med_names) >= 10:
        scores.medications = max(scores.medications, 60)
    elif len(med_names) >= 5:
        scores.medications = max(scores.medications, 30)

    condition_texts = [(c.get("display") or "").lower() for c in data.conditions]
    condition_score = sum(
        15
        for keywords in HIGH_RISK_CONDITIONS.values()
        for keyword in keywords
        if any(keyword in text for text in condition_texts)
    )
    scores.conditions = min(100, condition_score)

    scores.mobility = 60 if _any_match(condition_texts, MOBILITY_CONDITIONS) else 20
    scores.cognitive = 70 if _any_match(condition_texts, COGNITIVE_CONDITIONS) else 10
    scores.sensory = 50 if _any_match(condition_texts, SENSORY_CONDITIONS) else 10
    return scores


def category_for_score(score: float) -> str:
    if score >= 70:
        return "very_high"
    if score >= 50:
        return "high"
    if score >= 30:
        return "moderate"
    return "low"


def monitoring_for_score(score: float) -> str:
    if score >= 70:
        return "intensive"
    if score >= 40:
        return "enhanced"
    return "standard"


def age_risk_category(age: Optional[int]) -> str:
    if not age:
        return "low"
    if age >= 80:
        return "high"
    if age >= 65:
        return "moderate"
    return "low"


def fallback_assessment(data: PatientData, scores: CategoryScores) -> dict:
    """Assessment body built from preliminary scores alone."""
    values = list(scores.model_dump().values())
    avg_score = sum(values) / len(values)
    age = data.age
    return {
        "overall_risk_score": round(avg_score),
        "risk_category": category_for_score(avg_score),
        "morse_scale_estimate": round(avg_score * 1.25),
        "risk_factors": [{
            "factor": f"Age {age} years" if age and age >= 65 else "Age assessment needed",
            "category": "age",
            "severity": "high" if age and age >= 75 else "moderate",
            "weight": scores.age / 100,
            "evidence": "Age >=65 is a primary fall risk factor",
        }],
        "protective_factors": [],
        "interventions": [{
            "intervention": "Complete comprehensive fall risk assessment",
            "priority": "high",
            "category": "monitoring",
            "timeframe": "Within 24 hours",
            "responsible": "Nursing",
            "estimated_risk_reduction": 0.1,
        }],
        "precautions": ["Implement fall precautions per protocol", "Ensure call light within reach"],
        "confidence": 0.5,
        "review_reasons": ["AI response parsing failed - requires manual review", "Preliminary scoring only"],
        "plain_language_explanation": (
            f"Based on available information, fall risk appears to be "
            f"{'higher than average' if avg_score >= 50 else 'moderate'}. "
            f"A healthcare provider should complete a full assessment."
        ),
    }


def apply_safety_guardrails(assessment: FallRiskAssessment) -> FallRiskAssessment:
    """Force review and add the score/confidence review reasons (no duplicates)."""
    assessment.requires_review = True
    reasons = list(assessment.review_reasons or [])
    if assessment.overall_risk_score >= VERY_HIGH_RISK_SCORE and VERY_HIGH_RISK_REASON not in reasons:
        reasons.append(VERY_HIGH_RISK_REASON)
    if assessment.confidence < MIN_CONFIDENCE and LOW_CONFIDENCE_REASON not in reasons:
        reasons.append(LOW_CONFIDENCE_REASON)
    assessment.review_reasons = reasons
    return assessment


def build_prompt(data: PatientData, scores: CategoryScores, context: str, custom_factors: list[str]) -> str:
    conditions = ", ".join(c.get("display") or "" for c in data.conditions) or "None documented"
    medications = ", ".join(m.get("name") or "" for m in data.medications) or "None documented"
    if data.fall_history:
        falls = "; ".join(f"{f.get('date')}: {f.get('severity')} fall at {f.get('location')}" for f in data.fall_history)
    else:
        falls = "No documented falls"
    additional = "ADDITIONAL FACTORS NOTED:\n" + "\n".join(custom_factors) if custom_factors else ""

    return f"""You are a clinical fall risk assessment specialist. Analyze this patient data and provide a comprehensive fall risk assessment.

PATIENT DATA:
- Age: {data.age or "Unknown"}
- Gender: {data.gender or "Unknown"}
- Assessment Context: {context}

ACTIVE CONDITIONS:
{conditions}

CURRENT MEDICATIONS:
{medications}

FALL HISTORY:
{falls}

PRELIMINARY RISK SCORES (0-100):
- Age Risk: {scores.age}
- Fall History: {scores.fall_history}
- Medication Risk: {scores.medications}
- Condition Risk: {scores.conditions}
- Mobility: {scores.mobility}
- Cognitive: {scores.cognitive}
- Sensory: {scores.sensory}
- Environmental: {scores.environmental}

{additional}

Provide a comprehensive fall risk assessment. Consider:
1. Morse Fall Scale criteria (history of falling, secondary diagnosis, ambulatory aid, IV/heparin lock, gait, mental status)
2. Evidence-based risk factors and their weights
3. Specific, actionable interventions prioritized by urgency
4. Plain language explanation for patient/family (6th grade reading level)

Return ONLY valid JSON:
{{
  "overallRiskScore": <0-100>,
  "riskCategory": "low" | "moderate" | "high" | "very_high",
  "morseScaleEstimate": <0-125>,
  "riskFactors": [{{"factor": "", "category": "age|history|medication|condition|mobility|cognitive|sensory|environmental", "severity": "low|moderate|high", "weight": <0-1>, "evidence": "", "interventionSuggestion": ""}}],
  "protectiveFactors": [{{"factor": "", "impact": "", "category": ""}}],
  "interventions": [{{"intervention": "", "priority": "low|medium|high|urgent", "category": "environmental|medication|therapy|equipment|education|monitoring", "timeframe": "", "responsible": "", "estimatedRiskReduction": <0-1>}}],
  "precautions": ["List of fall precautions to implement"],
  "confidence": <0-1>,
  "reviewReasons": ["Reasons requiring clinical review"],
  "plainLanguageExplanation": "Simple explanation for patient/family"
}}"""


class FallRiskPredictor(BaseSkill):
    """AI fall risk assessment with review workflow.

    Example Usage:
        ```python
        predictor = FallRiskPredictor(database, llm_router, tracker)
        result = predictor.screen_on_admission(patient_id, nurse_id)
        if result.is_success():
            assessment = result.data.result
            print(predictor.format_for_clinical_display(assessment))
            predictor.save_assessment(assessment)
        ```
    """

    SKILL_KEY = "fall_risk_predictor"
    SKILL_NAME = "fall_risk_predictor"

    def gather_patient_data(self, patient_id: str, now: Optional[datetime] = None) -> PatientData:
        """Collect the clinical context; missing sources leave their section empty."""
        now = now or utc_now()
        data = PatientData()

        profile = self.database.select_one(TableQuery("profiles", "dob, gender").eq("id", patient_id))
        if profile.is_success() and profile.data:
            data.age = age_from_dob(profile.data.get("dob"), now)
            data.gender = profile.data.get("gender")

        conditions = self.database.select(
            TableQuery("fhir_conditions", "code, code_display, clinical_status")
            .eq("patient_id", patient_id)
            .eq("clinical_status", "active")
            .limit(30)
        )
        if conditions.is_success():
            data.conditions = [
                {"code": row.get("code"), "display": row.get("code_display") or "", "status": row.get("clinical_status")}
                for row in conditions.data or []
            ]

        medications = self.database.select(
            TableQuery("fhir_medication_statements", "medication_display, status")
            .eq("patient_id", patient_id)
            .eq("status", "active")
            .limit(30)
        )
        if medications.is_success():
            data.medications = [
                {"name": row.get("medication_display") or "", "status": row.get("status")}
                for row in medications.data or []
            ]

        vitals = self.database.select(
            TableQuery("fhir_observations", "code_display, value_quantity_value, effective_datetime")
            .eq("patient_id", patient_id)
            .gte("effective_datetime", (now - timedelta(days=30)).isoformat())
            .in_("code", VITAL_CODES)
            .order("effective_datetime", ascending=False)
            .limit(20)
        )
        if vitals.is_success():
            data.recent_vitals = [
                {"type": row.get("code_display"), "value": row.get("value_quantity_value"), "date": row.get("effective_datetime")}
                for row in vitals.data or []
            ]

        falls = self.database.select(
            TableQuery("adverse_events", "event_date, severity, location")
            .eq("patient_id", patient_id)
            .ilike("event_type", "%fall%")
            .order("event_date", ascending=False)
            .limit(10)
        )
        if falls.is_success():
            data.fall_history = [
                {
                    "date": row.get("event_date"),
                    "severity": row.get("severity") or "unknown",
                    "location": row.get("location") or "unknown",
                }
                for row in falls.data or []
            ]

        check_ins = self.database.select(
            TableQuery("daily_check_ins", "created_at, concern_flags")
            .eq("user_id", patient_id)
            .gte("created_at", (now - timedelta(days=7)).isoformat())
            .order("created_at", ascending=False)
            .limit(7)
        )
        if check_ins.is_success():
            data.recent_check_ins = [
                {"date": row.get("created_at"), "concerns": row.get("concern_flags") or []}
                for row in check_ins.data or []
            ]

        return data

    def assess_risk(self, request: FallRiskRequest, now: Optional[datetime] = None) -> ServiceResult[SkillResponse]:
        """Run a fall risk assessment; the result is a SkillResponse wrapping FallRiskAssessment."""
        if not request.patient_id or not request.assessor_id:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, "Patient ID and Assessor ID are required")

        started = time.perf_counter()
        self.audit.info("FALL_RISK_ASSESSMENT_STARTED", {
            "patientId": request.patient_id[:8] + "...",
            "context": request.assessment_context,
        })

        try:
            data = self.gather_patient_data(request.patient_id, now)
            scores = calculate_preliminary_scores(data, now)
            prompt = build_prompt(data, scores, request.assessment_context, request.custom_factors)
            response = self.call_model(prompt, complexity="complex", max_tokens=2000, user_id=request.assessor_id)
        except LLMError as e:
            self.audit.error("FALL_RISK_ASSESSMENT_FAILED", e)
            return ServiceResult.failure_result(
                ErrorCode.FALL_RISK_ASSESSMENT_FAILED, f"Failed to assess fall risk: {e.message}"
            )
        except Exception as e:
            logger.error(f"Fall risk assessment error: {e}")
            self.audit.error("FALL_RISK_ASSESSMENT_ERROR", e)
            return ServiceResult.failure_result(
                ErrorCode.FALL_RISK_ASSESSMENT_FAILED, f"Unexpected error during assessment: {e}"
            )

        assessment = self._build_assessment(request, data, scores, response.text, now)
        apply_safety_guardrails(assessment)

        self.log_usage(response, tenant_id=request.tenant_id, patient_id=request.patient_id,
                       request_type="fall_risk_prediction", extra={
                           "assessment_context": request.assessment_context,
                           "risk_category": assessment.risk_category,
                           "overall_score": assessment.overall_risk_score,
                       })
        self.record_prediction(
            response,
            {"overallRiskScore": assessment.overall_risk_score, "riskCategory": assessment.risk_category},
            tenant_id=request.tenant_id,
            patient_id=request.patient_id,
            confidence=assessment.confidence,
            entity_type="fall_risk_assessment",
            entity_id=assessment.assessment_id,
        )
        self.audit.info("FALL_RISK_ASSESSMENT_COMPLETED", {
            "assessmentId": assessment.assessment_id,
            "riskCategory": assessment.risk_category,
            "overallScore": assessment.overall_risk_score,
            "confidence": assessment.confidence,
        })
        return ServiceResult.success_result(self.envelope(assessment, response.model, started))

    def _build_assessment(
        self,
        request: FallRiskRequest,
        data: PatientData,
        scores: CategoryScores,
        text: str,
        now: Optional[datetime]
    ) -> FallRiskAssessment:
        generated_at = (now or utc_now()).isoformat()
        base = {
            "assessment_id": new_id(),
            "patient_id": request.patient_id,
            "assessor_id": request.assessor_id,
            "assessment_date": generated_at,
            "assessment_context": request.assessment_context,
            "patient_age": data.age,
            "age_risk_category": age_risk_category(data.age),
            "category_scores": scores,
            "generated_at": generated_at,
        }

        parsed = extract_json(text)
        if parsed is not None:
            ai_fields = {key: parsed[key] for key in AI_RESULT_FIELDS if key in parsed}
            if not ai_fields.get("reviewReasons"):
                ai_fields["reviewReasons"] = ["Standard clinical review required"]
            try:
                assessment = FallRiskAssessment.model_validate({**ai_fields, **base})
                assessment.monitoring_frequency = monitoring_for_score(assessment.overall_risk_score)
                return assessment
            except ModelValidationError as e:
                logger.warning(f"Fall risk reply did not match the assessment schema: {e.error_count()} errors")
        else:
            logger.warning("Fall risk reply contained no JSON; using preliminary scores")

        assessment = FallRiskAssessment.model_validate({**fallback_assessment(data, scores), **base})
        assessment.monitoring_frequency = monitoring_for_score(assessment.overall_risk_score)
        return assessment

    # ------------------------------------------------------------------
    # Context shortcuts
    # ------------------------------------------------------------------

    def screen_on_admission(self, patient_id: str, assessor_id: str, tenant_id: Optional[str] = None):
        return self.assess_risk(FallRiskRequest(
            patient_id=patient_id,
            assessor_id=assessor_id,
            tenant_id=tenant_id,
            assessment_context="admission",
            include_environmental_factors=True,
        ))

    def reassess_after_fall(
        self,
        patient_id: str,
        assessor_id: str,
        fall_details: Optional[list[str]] = None,
        tenant_id: Optional[str] = None
    ):
        return self.assess_risk(FallRiskRequest(
            patient_id=patient_id,
            assessor_id=assessor_id,
            tenant_id=tenant_id,
            assessment_context="post_fall",
            custom_factors=fall_details or ["Recent fall event"],
        ))

    def routine_assessment(self, patient_id: str, assessor_id: str, tenant_id: Optional[str] = None):
        return self.assess_risk(FallRiskRequest(
            patient_id=patient_id,
            assessor_id=assessor_id,
            tenant_id=tenant_id,
            assessment_context="routine",
        ))

    # ------------------------------------------------------------------
    # Persistence and review
    # ------------------------------------------------------------------

    def save_assessment(
        self,
        assessment: FallRiskAssessment,
        status: str = "pending_review"
    ) -> ServiceResult[SavedFallRiskAssessment]:
        row = apply_safety_guardrails(assessment).to_row()
        row.pop("generated_at", None)
        row["status"] = status

        result = self.database.insert(ASSESSMENTS_TABLE, row)
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.FALL_RISK_SAVE_FAILED, f"Failed to save assessment: {result.error.message}"
            )

        self.audit.info("FALL_RISK_ASSESSMENT_SAVED", {"assessmentId": assessment.assessment_id, "status": status})
        return ServiceResult.success_result(_saved(result.data[0]))

    def approve_assessment(
        self,
        assessment_id: str,
        reviewer_id: str,
        review_notes: Optional[str] = None
    ) -> ServiceResult[SavedFallRiskAssessment]:
        result = self.database.update(
            TableQuery(ASSESSMENTS_TABLE).eq("assessment_id", assessment_id).eq("status", "pending_review"),
            {
                "status": "approved",
                "reviewed_by": reviewer_id,
                "reviewed_at": utc_now().isoformat(),
                "review_notes": review_notes,
            },
        )
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.FALL_RISK_APPROVAL_FAILED, f"Failed to approve assessment: {result.error.message}"
            )
        if not result.data:
            return ServiceResult.failure_result(
                ErrorCode.NOT_FOUND, "Assessment not found or not in pending review status"
            )

        self.audit.info("FALL_RISK_ASSESSMENT_APPROVED", {
            "assessmentId": assessment_id,
            "reviewerId": reviewer_id[:8] + "...",
        })
        return ServiceResult.success_result(_saved(result.data[0]))

    def get_patient_assessments(
        self,
        patient_id: str,
        limit: Optional[int] = None,
        status: Optional[str] = None
    ) -> ServiceResult[list[SavedFallRiskAssessment]]:
        query = TableQuery(ASSESSMENTS_TABLE).eq("patient_id", patient_id).order("created_at", ascending=False)
        if status:
            query.eq("status", status)
        if limit:
            query.limit(limit)

        result = self.database.select(query)
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to fetch assessments: {result.error.message}"
            )
        return ServiceResult.success_result([_saved(row) for row in result.data or []])

    def get_latest_assessment(self, patient_id: str) -> ServiceResult[Optional[SavedFallRiskAssessment]]:
        result = self.database.select_one(
            TableQuery(ASSESSMENTS_TABLE).eq("patient_id", patient_id).order("created_at", ascending=False).limit(1)
        )
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to fetch assessment: {result.error.message}"
            )
        return ServiceResult.success_result(_saved(result.data) if result.data else None)

    def get_high_risk_patients(
        self,
        min_score: int = HIGH_RISK_SCORE,
        limit: int = 50
    ) -> ServiceResult[list[SavedFallRiskAssessment]]:
        """Approved assessments at or above ``min_score``, highest first."""
        result = self.database.select(
            TableQuery(ASSESSMENTS_TABLE)
            .gte("overall_risk_score", min_score)
            .eq("status", "approved")
            .order("overall_risk_score", ascending=False)
            .limit(limit)
        )
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to fetch high-risk patients: {result.error.message}"
            )
        return ServiceResult.success_result([_saved(row) for row in result.data or []])

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    @staticmethod
    def format_for_clinical_display(assessment: FallRiskAssessment) -> str:
        """Plain-text report for charting and the CLI."""
        heavy = "=" * 60
        light = "-" * 40
        lines = [
            heavy,
            "FALL RISK ASSESSMENT",
            heavy,
            "",
            f"Date: {format_datetime(assessment.assessment_date)}",
            f"Context: {assessment.assessment_context}",
            f"Patient Age: {assessment.patient_age or 'Unknown'}",
            "",
            light,
            "RISK SUMMARY",
            light,
            f"Overall Risk Score: {assessment.overall_risk_score}/100",
            f"Risk Category: {assessment.risk_category.upper().replace('_', ' ')}",
            f"Morse Scale Estimate: {assessment.morse_scale_estimate}/125",
            f"Monitoring Frequency: {assessment.monitoring_frequency}",
            "",
            light,
            "CATEGORY SCORES",
            light,
        ]
        for category, score in assessment.category_scores.model_dump().items():
            lines.append(f"  {category.replace('_', ' ').title()}: {score}/100")
        lines.append("")

        if assessment.risk_factors:
            lines.extend([light, "RISK FACTORS", light])
            for factor in assessment.risk_factors:
                lines.append(f"  [{factor.severity.upper()}] {factor.factor}")
                lines.append(f"    Evidence: {factor.evidence}")
                if factor.intervention_suggestion:
                    lines.append(f"    Suggested: {factor.intervention_suggestion}")
            lines.append("")

        if assessment.interventions:
            lines.extend([light, "RECOMMENDED INTERVENTIONS", light])
            for intervention in assessment.interventions:
                lines.append(f"  [{intervention.priority.upper()}] {intervention.intervention}")
                lines.append(f"    Category: {intervention.category} | Timeframe: {intervention.timeframe}")
                lines.append(f"    Responsible: {intervention.responsible}")
            lines.append("")

        if assessment.precautions:
            lines.extend([light, "FALL PRECAUTIONS", light])
            lines.extend(f"  * {precaution}" for precaution in assessment.precautions)
            lines.append("")

        lines.extend([
            light,
            "PATIENT/FAMILY EXPLANATION",
            light,
            assessment.plain_language_explanation,
            "",
            heavy,
            f"Confidence: {assessment.confidence * 100:.0f}%",
            "AI-GENERATED - REQUIRES CLINICAL REVIEW",
            heavy,
        ])
        return "\n".join(lines)


_LIST_COLUMNS = ("risk_factors", "protective_factors", "interventions", "precautions", "review_reasons")


def _saved(row: dict) -> SavedFallRiskAssessment:
    values = {**row, "generated_at": row.get("created_at")}
    for column in _LIST_COLUMNS:
        values[column] = row.get(column) or []
    values["category_scores"] = row.get("category_scores") or {}
    return SavedFallRiskAssessment.model_validate(values)
