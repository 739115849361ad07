"""Care Plan Generator.

Builds an individualized care plan (goals, interventions, barriers, activities
and care team) from the patient's active conditions, medications, recent
vitals, social determinants, utilization history and allergies.

The accurate model drafts the plan; a per-plan-type template is used when the
model is unavailable or its reply cannot be parsed. Either way the plan is a
draft: ``requires_review`` is always True and the plan is stored with status
``draft`` until a clinician approves it.

Security Impact:
    - Patient ids are redacted in audit details
    - Plans are never activated without an approving clinician

Architecture:
    - BaseSkill subclass over DatabasePort and LLMRouterPort
    - Context sources are optional; a missing table leaves its section empty
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from pydantic import ValidationError as ModelValidationError

from src.domain.guardrails import new_id, validate_uuid
from src.domain.ports import ErrorCode, LLMError, ServiceResult, TableQuery, ValidationError
from src.domain.skill_models import CarePlan, CarePlanRequest, SavedCarePlan, SkillResponse
from src.domain.skills.base import BaseSkill, extract_json
from src.domain.skills.fall_risk import age_from_dob
from src.domain.utils import parse_datetime, utc_now, utc_now_iso

logger = logging.getLogger(__name__)

CARE_PLANS_TABLE = "ai_care_plans"

TEMPLATE_MODEL = "template"
FALLBACK_REVIEW_REASON = "AI generation failed - template-based plan requires complete review"
DEFAULT_REVIEW_REASON = "AI-generated content requires clinician review"

VITAL_CODE_MAP = {
    "8480-6": "blood_pressure_systolic",
    "8462-4": "blood_pressure_diastolic",
    "8867-4": "heart_rate",
    "29463-7": "weight",
    "4548-4": "hba1c",
    "2339-0": "glucose",
    "2093-3": "cholesterol",
}

PLAN_FIELDS = (
    "title", "description", "planType", "priority", "goals", "interventions", "barriers", "activities",
    "careTeam", "estimatedDuration", "reviewSchedule", "successCriteria", "riskFactors", "icd10Codes",
    "ccmEligible", "tcmEligible", "confidence", "evidenceSources", "reviewReasons",
)

DEFAULT_CARE_TEAM = [
    {"role": "nurse", "responsibilities": ["Daily monitoring", "Patient education"]},
    {"role": "care_coordinator", "responsibilities": ["Care plan oversight", "Resource coordination"]},
]

PLAN_TEMPLATES = {
    "readmission_prevention": {
        "title": "Readmission Prevention Care Plan",
        "description": "Focused on preventing hospital readmission through close monitoring and care coordination.",
        "priority": "high",
        "goals": [{
            "goal": "Prevent 30-day readmission",
            "target": "Zero hospital readmissions",
            "timeframe": "30 days",
            "measurement_method": "Hospital admission tracking",
            "priority": "high",
        }],
        "interventions": [
            {
                "intervention": "Post-discharge phone calls",
                "frequency": "Daily for 7 days, then weekly",
                "responsible": "nurse",
                "duration": "4 weeks",
                "rationale": "Early identification of deterioration",
                "billing_eligible": True,
            },
            {
                "intervention": "Medication reconciliation",
                "frequency": "Within 48 hours of discharge",
                "responsible": "pharmacist",
                "duration": "One-time",
                "rationale": "Prevent medication errors",
                "cpt_code": "99495",
                "billing_eligible": True,
            },
        ],
        "tcm_eligible": True,
    },
    "chronic_care": {
        "title": "Chronic Care Management Plan",
        "description": "Comprehensive management of chronic conditions to improve outcomes and quality of life.",
        "priority": "medium",
        "goals": [{
            "goal": "Improve chronic condition control",
            "target": "Meet clinical targets for primary conditions",
            "timeframe": "90 days",
            "measurement_method": "Lab values and clinical assessments",
            "priority": "high",
        }],
        "interventions": [{
            "intervention": "Monthly care coordination calls",
            "frequency": "Monthly",
            "responsible": "care_coordinator",
            "duration": "Ongoing",
            "rationale": "Regular monitoring and support",
            "cpt_code": "99490",
            "billing_eligible": True,
        }],
        "ccm_eligible": True,
    },
    "high_utilizer": {
        "title": "High Utilizer Care Management Plan",
        "description": "Intensive care management to reduce emergency utilization and improve care access.",
        "priority": "critical",
        "goals": [{
            "goal": "Reduce ED visits",
            "target": "Less than 2 ED visits per month",
            "timeframe": "90 days",
            "measurement_method": "ED visit tracking",
            "priority": "high",
        }],
        "interventions": [{
            "intervention": "Weekly care coordination",
            "frequency": "Weekly",
            "responsible": "care_coordinator",
            "duration": "12 weeks",
            "rationale": "Intensive support for high-risk patients",
            "billing_eligible": True,
        }],
    },
    "transitional_care": {
        "title": "Transitional Care Plan",
        "description": "Supporting safe transition from hospital to home or next care setting.",
        "priority": "high",
        "goals": [{
            "goal": "Safe transition to home",
            "target": "No complications within 14 days",
            "timeframe": "14 days",
            "measurement_method": "Follow-up assessments",
            "priority": "high",
        }],
        "interventions": [{
            "intervention": "48-hour post-discharge follow-up",
            "frequency": "Within 48 hours",
            "responsible": "nurse",
            "duration": "One-time",
            "rationale": "Identify early complications",
            "cpt_code": "99495",
            "billing_eligible": True,
        }],
        "tcm_eligible": True,
    },
    "preventive": {
        "title": "Preventive Care Plan",
        "description": "Focused on health maintenance and disease prevention.",
        "priority": "low",
        "goals": [{
            "goal": "Complete all age-appropriate screenings",
            "target": "100% screening compliance",
            "timeframe": "12 months",
            "measurement_method": "Screening completion tracking",
            "priority": "medium",
        }],
        "interventions": [{
            "intervention": "Annual wellness visit coordination",
            "frequency": "Annually",
            "responsible": "care_coordinator",
            "duration": "Ongoing",
            "rationale": "Preventive care access",
            "billing_eligible": True,
        }],
    },
}


@dataclass
class UtilizationHistory:
    ed_visits_30_days: int = 0
    ed_visits_90_days: int = 0
    admissions_30_days: int = 0
    admissions_90_days: int = 0
    readmission_risk: str = "low"


@dataclass
class PatientContext:
    """Clinical context gathered for one care plan."""

    age_group: str = "unknown"
    preferred_language: str = "English"
    conditions: list[dict] = field(default_factory=list)
    medications: list[dict] = field(default_factory=list)
    vitals: dict = field(default_factory=dict)
    sdoh_factors: Optional[dict] = None
    utilization: UtilizationHistory = field(default_factory=UtilizationHistory)
    allergies: list[str] = field(default_factory=list)


def age_group(age: Optional[int]) -> str:
    if age is None:
        return "unknown"
    if age < 18:
        return "pediatric"
    if age < 40:
        return "young_adult"
    if age < 65:
        return "adult"
    return "geriatric"


def readmission_risk(history: UtilizationHistory) -> str:
    """Weighted utilization score: 30-day events count most, admissions more than ED visits."""
    score = (
        history.ed_visits_30_days * 3
        + history.admissions_30_days * 5
        + history.ed_visits_90_days
        + history.admissions_90_days * 2
    )
    if score >= 10:
        return "critical"
    if score >= 6:
        return "high"
    if score >= 3:
        return "medium"
    return "low"


def summarize_utilization(admissions: list[dict], now: datetime) -> UtilizationHistory:
    """Count ED visits and admissions within 30 and 90 days of ``now``."""
    history = UtilizationHistory()
    thirty_days_ago = now - timedelta(days=30)
    for admission in admissions:
        admitted = parse_datetime(admission.get("admission_date"))
        if admitted is None:
            continue
        recent = admitted >= thirty_days_ago
        if admission.get("facility_type") == "emergency":
            history.ed_visits_90_days += 1
            history.ed_visits_30_days += int(recent)
        else:
            history.admissions_90_days += 1
            history.admissions_30_days += int(recent)
    history.readmission_risk = readmission_risk(history)
    return history


def sdoh_factors_from_assessment(row: dict) -> dict:
    return {
        "housing": "unstable" if row.get("housing_instability") else "stable",
        "food": "insecure" if row.get("food_insecurity") else "secure",
        "transportation": "barriers" if row.get("transportation_barriers") else "adequate",
        "social": "isolated" if row.get("social_isolation") else "supported",
        "financial": "strained" if row.get("financial_strain") else "stable",
        "overall_risk": row.get("risk_level") or "unknown",
        "complexity_score": row.get("overall_complexity_score") or 0,
    }


def build_prompt(
    context: PatientContext,
    plan_type: str,
    focus_conditions: list[str],
    care_team_roles: list[str],
    duration_weeks: int
) -> str:
    sections = [
        f"CARE PLAN TYPE: {plan_type.replace('_', ' ').upper()}",
        f"DURATION: {duration_weeks} weeks",
        f"CARE TEAM ROLES: {', '.join(care_team_roles)}",
        "",
        "PATIENT DEMOGRAPHICS:",
        f"- Age Group: {context.age_group}",
        f"- Preferred Language: {context.preferred_language}",
    ]

    if context.conditions:
        sections.extend(["", "ACTIVE CONDITIONS:"])
        for index, condition in enumerate(context.conditions, start=1):
            primary = " (PRIMARY)" if condition.get("is_primary") else ""
            sections.append(f"{index}. {condition['display']} ({condition['code']}){primary}")

    if focus_conditions:
        sections.extend(["", f"FOCUS CONDITIONS (prioritize in plan): {', '.join(focus_conditions)}"])

    if context.medications:
        sections.extend(["", "CURRENT MEDICATIONS:"])
        for med in context.medications:
            sections.append(f"- {med['name']} {med['dosage']} {med['frequency']}".strip())

    if context.vitals:
        sections.extend(["", "RECENT VITALS:"])
        for name, vital in context.vitals.items():
            sections.append(f"- {name.replace('_', ' ')}: {vital['value']} {vital['unit']}".rstrip())

    if context.sdoh_factors:
        sdoh = context.sdoh_factors
        sections.extend([
            "",
            "SOCIAL DETERMINANTS OF HEALTH:",
            f"- Housing: {sdoh['housing']}",
            f"- Food Security: {sdoh['food']}",
            f"- Transportation: {sdoh['transportation']}",
            f"- Social Support: {sdoh['social']}",
            f"- Financial Status: {sdoh['financial']}",
            f"- Overall SDOH Risk: {sdoh['overall_risk']}",
            f"- Complexity Score: {sdoh['complexity_score']}/10",
        ])

    history = context.utilization
    sections.extend([
        "",
        "UTILIZATION HISTORY:",
        f"- ED Visits (30 days): {history.ed_visits_30_days}",
        f"- ED Visits (90 days): {history.ed_visits_90_days}",
        f"- Admissions (30 days): {history.admissions_30_days}",
        f"- Admissions (90 days): {history.admissions_90_days}",
        f"- Readmission Risk: {history.readmission_risk.upper()}",
    ])

    if context.allergies:
        sections.extend(["", f"ALLERGIES: {', '.join(context.allergies)}"])

    body = "\n".join(sections)
    return f"""You are an expert clinical care coordinator creating an evidence-based care plan.

{body}

Generate a comprehensive, individualized care plan following these guidelines:
1. Goals should be SMART (Specific, Measurable, Achievable, Relevant, Time-bound)
2. Interventions should include specific frequencies and responsible parties
3. Address identified SDOH barriers with practical solutions
4. Include CCM/TCM billing eligibility assessment
5. Reference clinical guidelines where applicable

Return a JSON object with this structure:
{{
  "title": "Descriptive care plan title",
  "description": "Brief 2-3 sentence summary of the plan focus",
  "planType": "{plan_type}",
  "priority": "critical|high|medium|low",
  "goals": [{{"goal": "", "target": "", "timeframe": "", "measurementMethod": "", "priority": "high|medium|low", "evidenceBasis": ""}}],
  "interventions": [{{"intervention": "", "frequency": "", "responsible": "", "duration": "", "rationale": "", "cptCode": "", "billingEligible": true}}],
  "barriers": [{{"barrier": "", "category": "transportation|financial|social|cognitive|physical|language|other", "solution": "", "resources": [], "priority": "high|medium|low"}}],
  "activities": [{{"activityType": "appointment|medication|education|monitoring|referral|follow_up", "description": "", "frequency": "", "status": "scheduled|pending"}}],
  "careTeam": [{{"role": "", "responsibilities": []}}],
  "estimatedDuration": "e.g., '12 weeks'",
  "reviewSchedule": "e.g., 'Every 2 weeks'",
  "successCriteria": [],
  "riskFactors": [],
  "icd10Codes": [{{"code": "E11.9", "display": "Type 2 diabetes"}}],
  "ccmEligible": true,
  "tcmEligible": false,
  "confidence": 0.0,
  "evidenceSources": [],
  "reviewReasons": []
}}

Respond with ONLY the JSON object, no other text."""


def normalize_plan(parsed: dict, plan_type: str, context: PatientContext, duration_weeks: int = 12) -> dict:
    """Fill defaults for anything the model left out."""
    plan = {key: parsed[key] for key in PLAN_FIELDS if parsed.get(key) is not None}
    plan.setdefault("title", f"{plan_type.replace('_', ' ')} Care Plan")
    plan.setdefault("description", "AI-generated care plan requiring review.")
    plan.setdefault("planType", plan_type)
    plan.setdefault("estimatedDuration", f"{duration_weeks} weeks")
    plan.setdefault("icd10Codes", [{"code": c["code"], "display": c["display"]} for c in context.conditions])
    plan.setdefault("ccmEligible", len(context.conditions) >= 2)
    plan.setdefault("tcmEligible", context.utilization.admissions_30_days > 0)
    plan.setdefault("confidence", 0.8)
    plan.setdefault("evidenceSources", ["Clinical guidelines", "AI analysis"])
    if not plan.get("reviewReasons"):
        plan["reviewReasons"] = [DEFAULT_REVIEW_REASON]
    return plan


def template_plan(plan_type: str, context: PatientContext, duration_weeks: int = 12) -> dict:
    """Template plan for ``plan_type`` (chronic care for unknown types)."""
    template = PLAN_TEMPLATES.get(plan_type, PLAN_TEMPLATES["chronic_care"])
    return {
        "title": template["title"],
        "description": template["description"],
        "plan_type": plan_type,
        "priority": template["priority"],
        "goals": template["goals"],
        "interventions": template["interventions"],
        "care_team": DEFAULT_CARE_TEAM,
        "estimated_duration": f"{duration_weeks} weeks",
        "success_criteria": ["Goals achieved", "No hospitalizations"],
        "risk_factors": ["High utilization history"] if context.utilization.readmission_risk != "low" else [],
        "icd10_codes": [{"code": c["code"], "display": c["display"]} for c in context.conditions[:5]],
        "ccm_eligible": template.get("ccm_eligible", False) or len(context.conditions) >= 2,
        "tcm_eligible": template.get("tcm_eligible", False),
        "confidence": 0.5,
        "evidence_sources": ["Template-based fallback"],
        "review_reasons": [FALLBACK_REVIEW_REASON],
    }


class CarePlanGenerator(BaseSkill):
    """AI care plan drafting with clinician approval.

    Example Usage:
        ```python
        generator = CarePlanGenerator(database, llm_router, tracker)
        result = generator.generate_care_plan(CarePlanRequest(
            patient_id=patient_id,
            author_id=nurse_id,
            plan_type="readmission_prevention",
        ))
        if result.is_success():
            saved = generator.save_care_plan(result.data.result, author_id=nurse_id)
        ```
    """

    SKILL_KEY = "care_plan_generator"
    SKILL_NAME = "care_plan_generator"

    def gather_patient_context(
        self,
        patient_id: str,
        include_sdoh: bool = True,
        include_medications: bool = True,
        now: Optional[datetime] = None
    ) -> PatientContext:
        now = now or utc_now()
        context = PatientContext()

        profile = self.database.select_one(
            TableQuery("profiles", "dob, preferred_language").eq("id", patient_id)
        )
        if profile.is_success() and profile.data:
            context.age_group = age_group(age_from_dob(profile.data.get("dob"), now))
            context.preferred_language = profile.data.get("preferred_language") or "English"

        conditions = self.database.select(
            TableQuery("fhir_conditions", "code, code_display, clinical_status")
            .eq("patient_id", patient_id)
            .order("recorded_date", ascending=False)
            .limit(20)
        )
        if conditions.is_success():
            context.conditions = [
                {
                    "code": row.get("code") or "",
                    "display": row.get("code_display") or "",
                    "status": row.get("clinical_status") or "active",
                    "is_primary": False,
                }
                for row in conditions.data or []
            ]

        diagnoses = self.database.select(
            TableQuery("patient_diagnoses", "diagnosis_name, icd10_code, is_primary, status")
            .eq("patient_id", patient_id)
            .eq("status", "active")
            .limit(15)
        )
        if diagnoses.is_success():
            by_code = {condition["code"]: condition for condition in context.conditions}
            for row in diagnoses.data or []:
                existing = by_code.get(row.get("icd10_code") or "")
                if existing is not None:
                    existing["is_primary"] = bool(row.get("is_primary"))
                    continue
                context.conditions.append({
                    "code": row.get("icd10_code") or "",
                    "display": row.get("diagnosis_name") or "",
                    "status": row.get("status") or "active",
                    "is_primary": bool(row.get("is_primary")),
                })

        if include_medications:
            medications = self.database.select(
                TableQuery("fhir_medication_statements", "medication_display, dosage, frequency")
                .eq("patient_id", patient_id)
                .eq("status", "active")
                .limit(20)
            )
            if medications.is_success():
                context.medications = [
                    {
                        "name": row.get("medication_display") or "",
                        "dosage": str(row.get("dosage") or ""),
                        "frequency": row.get("frequency") or "",
                    }
                    for row in medications.data or []
                ]

        vitals = self.database.select(
            TableQuery("fhir_observations", "code, value_quantity_value, value_quantity_unit, effective_datetime")
            .eq("patient_id", patient_id)
            .gte("effective_datetime", (now - timedelta(days=7)).isoformat())
            .in_("code", list(VITAL_CODE_MAP))
            .order("effective_datetime", ascending=False)
        )
        if vitals.is_success():
            for row in vitals.data or []:
                name = VITAL_CODE_MAP.get(row.get("code"))
                # Rows are newest first; keep the latest reading per vital
                if name and row.get("value_quantity_value") is not None and name not in context.vitals:
                    context.vitals[name] = {
                        "value": row["value_quantity_value"],
                        "unit": row.get("value_quantity_unit") or "",
                        "date": row.get("effective_datetime"),
                    }

        if include_sdoh:
            sdoh = self.database.select_one(
                TableQuery("sdoh_assessments").eq("patient_id", patient_id).order("assessed_at", ascending=False).limit(1)
            )
            if sdoh.is_success() and sdoh.data:
                context.sdoh_factors = sdoh_factors_from_assessment(sdoh.data)

        admissions = self.database.select(
            TableQuery("patient_readmissions", "admission_date, facility_type")
            .eq("patient_id", patient_id)
            .gte("admission_date", (now - timedelta(days=90)).isoformat())
        )
        if admissions.is_success():
            context.utilization = summarize_utilization(admissions.data or [], now)

        allergies = self.database.select(
            TableQuery("fhir_allergy_intolerances", "code_display").eq("patient_id", patient_id).limit(10)
        )
        if allergies.is_success():
            context.allergies = [row["code_display"] for row in allergies.data or [] if row.get("code_display")]

        return context

    def generate_care_plan(
        self,
        request: CarePlanRequest,
        now: Optional[datetime] = None
    ) -> ServiceResult[SkillResponse]:
        """Draft a care plan; the result is a SkillResponse wrapping CarePlan."""
        try:
            validate_uuid(request.patient_id, "patient ID")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)

        started = time.perf_counter()
        self.audit.info("CARE_PLAN_GENERATION_STARTED", {
            "patientId": request.patient_id[:8] + "...",
            "planType": request.plan_type,
        })

        try:
            context = self.gather_patient_context(
                request.patient_id, request.include_sdoh, request.include_medications, now
            )
        except Exception as e:
            logger.error(f"Care plan context error: {e}")
            self.audit.error("CARE_PLAN_GENERATION_FAILED", e)
            return ServiceResult.failure_result(ErrorCode.OPERATION_FAILED, f"Failed to gather patient context: {e}")

        prompt = build_prompt(
            context, request.plan_type, request.focus_conditions, request.care_team_roles, request.duration_weeks
        )

        response = None
        try:
            response = self.call_model(prompt, complexity="complex", max_tokens=4096, user_id=request.author_id)
        except LLMError as e:
            logger.warning(f"Care plan model call failed; using template: {e.message}")

        plan = self._build_plan(request, context, response.text if response else None, now)
        plan.requires_review = True

        if response is not None:
            self.log_usage(response, tenant_id=request.tenant_id, patient_id=request.patient_id,
                           request_type=f"care_plan_{request.plan_type}", extra={
                               "conditions_count": len(context.conditions),
                               "medications_count": len(context.medications),
                               "has_sdoh": context.sdoh_factors is not None,
                               "utilization_risk": context.utilization.readmission_risk,
                           })
            self.record_prediction(
                response,
                {"planType": plan.plan_type, "priority": plan.priority, "goals": len(plan.goals)},
                tenant_id=request.tenant_id,
                patient_id=request.patient_id,
                confidence=plan.confidence,
                entity_type="care_plan",
                entity_id=plan.care_plan_id,
            )

        self.audit.info("CARE_PLAN_GENERATED", {
            "carePlanId": plan.care_plan_id,
            "planType": plan.plan_type,
            "priority": plan.priority,
            "confidence": plan.confidence,
        })
        return ServiceResult.success_result(self.envelope(plan, response.model if response else TEMPLATE_MODEL, started))

    def _build_plan(
        self,
        request: CarePlanRequest,
        context: PatientContext,
        text: Optional[str],
        now: Optional[datetime]
    ) -> CarePlan:
        base = {
            "care_plan_id": new_id(),
            "patient_id": request.patient_id,
            "generated_at": (now or utc_now()).isoformat(),
        }

        parsed = extract_json(text)
        if parsed is not None:
            normalized = normalize_plan(parsed, request.plan_type, context, request.duration_weeks)
            try:
                return CarePlan.model_validate({**normalized, **base})
            except ModelValidationError as e:
                logger.warning(f"Care plan reply did not match the plan schema: {e.error_count()} errors")
        elif text is not None:
            logger.warning("Care plan reply contained no JSON; using template")

        return CarePlan.model_validate({**template_plan(request.plan_type, context, request.duration_weeks), **base})

    # ------------------------------------------------------------------
    # Persistence and approval
    # ------------------------------------------------------------------

    def save_care_plan(self, plan: CarePlan, author_id: Optional[str] = None) -> ServiceResult[SavedCarePlan]:
        """Store the plan as a draft."""
        row = plan.to_row()
        row.pop("generated_at", None)
        row["id"] = row.pop("care_plan_id", None) or new_id()
        row["status"] = "draft"
        row["requires_review"] = True
        row["author_id"] = author_id

        result = self.database.insert(CARE_PLANS_TABLE, row)
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to save care plan: {result.error.message}"
            )

        self.audit.info("CARE_PLAN_SAVED", {"carePlanId": row["id"], "planType": plan.plan_type})
        return ServiceResult.success_result(_saved(result.data[0]))

    def approve_care_plan(self, care_plan_id: str, approver_id: str) -> ServiceResult[SavedCarePlan]:
        """Activate a draft plan."""
        result = self.database.update(
            TableQuery(CARE_PLANS_TABLE).eq("id", care_plan_id).eq("status", "draft"),
            {"status": "active", "approved_by": approver_id, "approved_at": utc_now_iso()},
        )
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to approve care plan: {result.error.message}"
            )
        if not result.data:
            return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "Care plan not found or not in draft status")

        self.audit.info("CARE_PLAN_APPROVED", {"carePlanId": care_plan_id, "approverId": approver_id[:8] + "..."})
        return ServiceResult.success_result(_saved(result.data[0]))

    def get_patient_care_plans(self, patient_id: str, status: Optional[str] = None) -> ServiceResult[list[SavedCarePlan]]:
        query = TableQuery(CARE_PLANS_TABLE).eq("patient_id", patient_id).order("created_at", ascending=False)
        if status:
            query.eq("status", status)
        result = self.database.select(query)
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to fetch care plans: {result.error.message}"
            )
        return ServiceResult.success_result([_saved(row) for row in result.data or []])


_LIST_COLUMNS = (
    "goals", "interventions", "barriers", "activities", "care_team", "success_criteria",
    "risk_factors", "icd10_codes", "evidence_sources", "review_reasons",
)


def _saved(row: dict) -> SavedCarePlan:
    values = {**row, "care_plan_id": row.get("id"), "generated_at": row.get("created_at")}
    for column in _LIST_COLUMNS:
        values[column] = row.get(column) or []
    return SavedCarePlan.model_validate(values)
