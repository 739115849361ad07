"""Welfare Check Dispatcher.

Ranks seniors for law-enforcement welfare checks. Each run scores every
senior in a tenant from check-in recency and completion, confirmed SDOH
barriers and emergency-contact coverage, writes the day's priority queue and
raises a critical system notification for cases above the tenant's
auto-dispatch threshold.

Priority categories:

    score >= 80  critical
    score >= 60  high
    score >= 40  elevated
    otherwise    routine

Security Impact:
    - Every officer read of the queue is written to ``welfare_check_access_log``
      (officer, badge, department, reason, number of seniors viewed)
    - Officer free text is sanitized before it is stored

Architecture:
    - BaseSkill subclass; the fast model scores each senior and a rule-based
      assessment is used whenever the model reply is unusable
"""

import json
import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from pydantic import ValidationError as ModelValidationError

from src.domain.guardrails import (
    clamp,
    sanitize_text,
    validate_badge_number,
    validate_date,
    validate_enum,
    validate_uuid,
)
from src.domain.law_enforcement_models import (
    PRIORITY_CATEGORIES,
    WELFARE_OUTCOMES,
    OfficerAccessRequest,
    WelfareBatchSummary,
    WelfareCheckAssessment,
    WelfareCheckCompletion,
)
from src.domain.ports import (
    ErrorCode,
    LLMError,
    ServiceResult,
    SkillDisabledError,
    TableQuery,
    ValidationError,
)
from src.domain.skills.base import BaseSkill, extract_json
from src.domain.utils import parse_datetime, today_iso, utc_now_iso

logger = logging.getLogger(__name__)

QUEUE_TABLE = "welfare_check_priority_queue"
ACCESS_LOG_TABLE = "welfare_check_access_log"
ANALYTICS_TABLE = "welfare_check_analytics"

NO_CHECKIN_DAYS = 999
LOOKBACK_DAYS = 30

SYSTEM_PROMPT = """You are a welfare check risk assessment expert for law enforcement.

Analyze senior wellness data and provide priority scoring for welfare check dispatch.

CRITICAL FACTORS:
1. Days since last check-in (7+ days = elevated risk)
2. SDOH barriers (housing, food, transportation)
3. Check-in completion rate
4. Emergency contact availability
5. Recent responses indicating distress

Return JSON:
{
  "priority_score": 0-100,
  "mobility_risk_level": "independent|limited|high_risk|immobile",
  "recommended_action": "wellness_call|in_person_check|immediate_dispatch|caregiver_contact|no_action_needed",
  "risk_factors": ["List of specific risk factors"],
  "notes": "Brief notes for responding officer"
}"""


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from earlier to later."""
    return math.floor((later - earlier).total_seconds() / 86400)


def categorize_priority(score: float) -> str:
    if score >= 80:
        return "critical"
    if score >= 60:
        return "high"
    if score >= 40:
        return "elevated"
    return "routine"


def rule_based_assessment(senior_data: dict) -> dict:
    """Deterministic scoring used when the model is unavailable."""
    score = 0
    risk_factors = []

    days = senior_data["days_since_last_checkin"]
    if days >= 14:
        score += 40
        risk_factors.append("No check-in for 14+ days")
    elif days >= 7:
        score += 25
        risk_factors.append("No check-in for 7+ days")

    barriers = len(senior_data["sdoh_barriers"])
    if barriers > 0:
        score += barriers * 10
        risk_factors.append(f"{barriers} SDOH barriers identified")

    if senior_data["emergency_contacts_count"] == 0:
        score += 20
        risk_factors.append("No emergency contacts on file")

    if senior_data["checkin_count"] < 5:
        score += 15
        risk_factors.append("Low check-in completion rate")

    score = min(100, score)
    if score >= 75:
        action = "immediate_dispatch"
    elif score >= 50:
        action = "in_person_check"
    else:
        action = "wellness_call"

    return {
        "priority_score": score,
        "mobility_risk_level": "limited",
        "recommended_action": action,
        "risk_factors": risk_factors,
        "notes": f"Rule-based assessment: {score} priority score",
        "cost": 0.0,
    }


class WelfareCheckDispatcher(BaseSkill):
    """Daily welfare-check priority queue for officers.

    Example Usage:
        ```python
        dispatcher = WelfareCheckDispatcher(database, llm_router)
        summary = dispatcher.calculate_priority_scores(tenant_id)
        queue = dispatcher.get_dispatch_queue(OfficerAccessRequest(
            tenant_id=tenant_id,
            officer_id=officer_id,
            officer_name="Sgt. Rivera",
            officer_badge_number="PD-4471",
            department_name="Central Precinct",
            request_reason="Morning shift welfare rounds",
            priority_filter="critical",
        ))
        ```
    """

    SKILL_KEY = "welfare_check_dispatcher"
    SKILL_NAME = "welfare_check_dispatcher"
    ENABLED_BY_DEFAULT = False
    AUDIT_CATEGORY = "LAW_ENFORCEMENT"

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def calculate_priority_scores(
        self,
        tenant_id: str,
        assessment_date: Optional[str] = None
    ) -> ServiceResult[WelfareBatchSummary]:
        """Score every senior in the tenant and write the day's queue."""
        assessment_date = assessment_date or today_iso()
        try:
            validate_uuid(tenant_id, "tenantId")
            validate_date(assessment_date, "assessmentDate")
            config = self.require_enabled(tenant_id, "Welfare Check Dispatcher skill not enabled for this tenant")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)
        except SkillDisabledError as e:
            return ServiceResult.failure_result(ErrorCode.SKILL_DISABLED, e.message)

        seniors = self.database.select(
            TableQuery("profiles", "user_id, first_name, last_name, emergency_contacts")
            .eq("tenant_id", tenant_id)
            .eq("role", "senior")
        )
        if seniors.is_failure():
            return ServiceResult.from_failure(seniors)

        threshold = self.config_value(config, "auto_dispatch_threshold")
        summary = WelfareBatchSummary()

        for senior in seniors.data or []:
            senior_id = senior.get("user_id")
            try:
                assessment, cost = self.assess_senior(senior, assessment_date)
            except Exception as e:
                logger.warning(f"Welfare assessment skipped for senior {senior_id}: {e}")
                continue

            stored = self.database.upsert(QUEUE_TABLE, {
                "tenant_id": tenant_id,
                "senior_id": senior_id,
                "calculation_date": assessment_date,
                "priority_score": assessment.priority_score,
                "priority_category": assessment.priority_category,
                "days_since_last_checkin": assessment.days_since_last_checkin,
                "mobility_risk_level": assessment.mobility_risk_level,
                "recommended_action": assessment.recommended_action,
                "risk_factors": assessment.risk_factors,
                "officer_notes": assessment.notes,
                "last_updated": utc_now_iso(),
            }, on_conflict="tenant_id,senior_id,calculation_date")
            if stored.is_failure():
                logger.warning(f"Priority queue write failed for senior {senior_id}: {stored.error.message}")
                continue

            summary.assessed += 1
            setattr(summary, assessment.priority_category, getattr(summary, assessment.priority_category) + 1)
            summary.total_cost += cost

            if (
                assessment.priority_category == "critical"
                and threshold
                and assessment.priority_score >= threshold
            ):
                if self._create_auto_dispatch_alert(tenant_id, assessment):
                    summary.auto_dispatched += 1

        self.audit.info("WELFARE_PRIORITY_SCORES_CALCULATED", {
            "tenantId": tenant_id,
            "assessmentDate": assessment_date,
            **summary.to_row(),
        })
        return ServiceResult.success_result(summary)

    def gather_senior_data(self, senior: dict, assessment_date: str) -> dict:
        senior_id = senior.get("user_id")
        reference = parse_datetime(assessment_date)
        since = (reference - timedelta(days=LOOKBACK_DAYS)).isoformat()

        check_ins = self.database.select(
            TableQuery("daily_check_ins", "created_at, responses")
            .eq("user_id", senior_id)
            .gte("created_at", since)
            .order("created_at", ascending=False)
        )
        check_in_rows = check_ins.data if check_ins.is_success() and check_ins.data else []

        sdoh = self.database.select(
            TableQuery("passive_sdoh_detections", "sdoh_category, risk_level, status")
            .eq("patient_id", senior_id)
            .eq("status", "confirmed")
            .gte("detected_at", since)
        )

        days_since = NO_CHECKIN_DAYS
        if check_in_rows:
            last = parse_datetime(check_in_rows[0].get("created_at"))
            if last is not None:
                days_since = max(0, days_between(reference, last))

        return {
            "days_since_last_checkin": days_since,
            "checkin_count": len(check_in_rows),
            "recent_checkin_responses": [row.get("responses") for row in check_in_rows[:5]],
            "sdoh_barriers": sdoh.data if sdoh.is_success() and sdoh.data else [],
            "emergency_contacts_count": len(senior.get("emergency_contacts") or []),
        }

    def assess_senior(self, senior: dict, assessment_date: str) -> tuple[WelfareCheckAssessment, float]:
        """Score one senior; returns the assessment and the model cost."""
        senior_data = self.gather_senior_data(senior, assessment_date)
        scored = self._model_assessment(senior_data) or rule_based_assessment(senior_data)

        assessment = WelfareCheckAssessment(
            senior_id=senior.get("user_id"),
            priority_score=scored["priority_score"],
            priority_category=categorize_priority(scored["priority_score"]),
            days_since_last_checkin=senior_data["days_since_last_checkin"],
            mobility_risk_level=scored["mobility_risk_level"],
            recommended_action=scored["recommended_action"],
            risk_factors=scored["risk_factors"],
            notes=scored["notes"],
        )
        return assessment, scored["cost"]

    def _model_assessment(self, senior_data: dict) -> Optional[dict]:
        prompt = (
            "Assess welfare check priority:\n\n"
            f"Days since last check-in: {senior_data['days_since_last_checkin']}\n"
            f"Check-ins in last 30 days: {senior_data['checkin_count']}\n"
            f"SDOH barriers: {len(senior_data['sdoh_barriers'])} identified\n"
            f"Emergency contacts: {senior_data['emergency_contacts_count']}\n\n"
            "Recent check-in responses:\n"
            f"{json.dumps(senior_data['recent_checkin_responses'], indent=2, default=str)}\n\n"
            "Provide risk assessment."
        )
        try:
            response = self.call_model(
                prompt,
                system_prompt=SYSTEM_PROMPT,
                complexity="simple",
                temperature=0.1,
                max_tokens=1024,
            )
        except LLMError as e:
            logger.warning(f"Welfare model call failed, using rules: {e.message}")
            return None

        parsed = extract_json(response.text)
        if parsed is None:
            return None
        try:
            checked = WelfareCheckAssessment(
                senior_id="-",
                priority_score=int(round(clamp(float(parsed["priority_score"]), 0, 100))),
                mobility_risk_level=parsed.get("mobility_risk_level") or "limited",
                recommended_action=parsed.get("recommended_action") or "wellness_call",
                risk_factors=parsed.get("risk_factors") or [],
                notes=parsed.get("notes") or "",
            )
        except (KeyError, TypeError, ValueError, ModelValidationError):
            logger.warning("Welfare model reply did not match the expected shape, using rules")
            return None

        return {
            "priority_score": checked.priority_score,
            "mobility_risk_level": checked.mobility_risk_level,
            "recommended_action": checked.recommended_action,
            "risk_factors": checked.risk_factors,
            "notes": checked.notes,
            "cost": response.cost,
        }

    def _create_auto_dispatch_alert(self, tenant_id: str, assessment: WelfareCheckAssessment) -> bool:
        result = self.database.insert("system_notifications", {
            "tenant_id": tenant_id,
            "notification_type": "welfare_check_critical",
            "priority": "critical",
            "title": "Critical Welfare Check Required",
            "message": f"Senior requires immediate welfare check. Priority score: {assessment.priority_score}",
            "metadata": {
                "senior_id": assessment.senior_id,
                "priority_score": assessment.priority_score,
                "recommended_action": assessment.recommended_action,
                "risk_factors": assessment.risk_factors,
            },
        })
        if result.is_failure():
            logger.error(f"Auto-dispatch alert failed for senior {assessment.senior_id}: {result.error.message}")
            return False
        self.audit.warn("WELFARE_CHECK_AUTO_DISPATCHED", {
            "tenantId": tenant_id,
            "seniorId": assessment.senior_id,
            "priorityScore": assessment.priority_score,
        })
        return True

    # ------------------------------------------------------------------
    # Officer access
    # ------------------------------------------------------------------

    def get_dispatch_queue(
        self,
        request: OfficerAccessRequest,
        calculation_date: Optional[str] = None
    ) -> ServiceResult[dict]:
        """Today's ranked queue for an officer; the read is logged.

        Returns:
            ServiceResult with ``{"queue": [WelfareCheckAssessment], "access_log_id": str}``
        """
        try:
            validate_uuid(request.tenant_id, "tenantId")
            validate_uuid(request.officer_id, "officerId")
            badge = validate_badge_number(request.officer_badge_number)
            if request.priority_filter:
                validate_enum(request.priority_filter, PRIORITY_CATEGORIES, "priority category")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)

        officer_name = sanitize_text(request.officer_name, 100)
        department = sanitize_text(request.department_name, 100)
        reason = sanitize_text(request.request_reason, 500)

        query = (
            TableQuery(QUEUE_TABLE)
            .eq("tenant_id", request.tenant_id)
            .eq("calculation_date", calculation_date or today_iso())
            .order("priority_score", ascending=False)
        )
        if request.priority_filter:
            query.eq("priority_category", request.priority_filter)
        if request.limit:
            query.limit(request.limit)

        rows = self.database.select(query)
        if rows.is_failure():
            return ServiceResult.from_failure(rows)
        queue_rows = rows.data or []

        access = self.database.insert(ACCESS_LOG_TABLE, {
            "tenant_id": request.tenant_id,
            "officer_id": request.officer_id,
            "officer_name": officer_name,
            "officer_badge_number": badge,
            "department_name": department,
            "access_reason": reason,
            "seniors_viewed_count": len(queue_rows),
            "priority_filter": request.priority_filter,
            "accessed_at": utc_now_iso(),
        })
        if access.is_failure():
            # Queue is not released without an access record
            self.audit.error("WELFARE_QUEUE_ACCESS_LOG_FAILED", access.error.message, {
                "officerId": request.officer_id,
            })
            return ServiceResult.from_failure(access)
        access_log_id = access.data[0].get("id", "") if access.data else ""

        queue = [
            WelfareCheckAssessment(
                senior_id=row["senior_id"],
                priority_score=row.get("priority_score") or 0,
                priority_category=row.get("priority_category") or "routine",
                days_since_last_checkin=row.get("days_since_last_checkin") or 0,
                mobility_risk_level=row.get("mobility_risk_level") or "limited",
                recommended_action=row.get("recommended_action") or "wellness_call",
                risk_factors=row.get("risk_factors") or [],
                notes=row.get("officer_notes") or "",
            )
            for row in queue_rows
        ]

        self.audit.info("WELFARE_QUEUE_ACCESSED", {
            "officerId": request.officer_id,
            "badge": badge,
            "seniorsViewed": len(queue),
        })
        return ServiceResult.success_result({"queue": queue, "access_log_id": access_log_id})

    def complete_welfare_check(
        self,
        senior_id: str,
        completion: WelfareCheckCompletion,
        calculation_date: Optional[str] = None
    ) -> ServiceResult[bool]:
        try:
            validate_uuid(completion.tenant_id, "tenantId")
            validate_uuid(senior_id, "seniorId")
            validate_uuid(completion.officer_id, "officerId")
            validate_enum(completion.outcome, WELFARE_OUTCOMES, "outcome")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)

        result = self.database.update(
            TableQuery(QUEUE_TABLE)
            .eq("tenant_id", completion.tenant_id)
            .eq("senior_id", senior_id)
            .eq("calculation_date", calculation_date or today_iso()),
            {
                "last_check_completed_at": utc_now_iso(),
                "last_check_outcome": completion.outcome,
                "last_check_officer_id": completion.officer_id,
                "last_check_notes": sanitize_text(completion.notes, 1000),
            },
        )
        if result.is_failure():
            return ServiceResult.from_failure(result)

        self.audit.info("WELFARE_CHECK_COMPLETED", {
            "seniorId": senior_id,
            "officerId": completion.officer_id,
            "outcome": completion.outcome,
        })
        return ServiceResult.success_result(True)

    def get_analytics(self, tenant_id: str, start_date: str, end_date: str) -> ServiceResult[list[dict]]:
        try:
            validate_uuid(tenant_id, "tenantId")
            validate_date(start_date, "startDate")
            validate_date(end_date, "endDate")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)

        result = self.database.select(
            TableQuery(ANALYTICS_TABLE)
            .eq("tenant_id", tenant_id)
            .gte("analytics_date", start_date)
            .lte("analytics_date", end_date)
            .order("analytics_date", ascending=False)
        )
        if result.is_failure():
            return ServiceResult.from_failure(result)
        return ServiceResult.success_result(result.data or [])
