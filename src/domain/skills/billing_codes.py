"""Billing Code Suggester.

Suggests CPT, HCPCS and ICD-10 codes for an encounter and records how the
provider used them. Suggestions for the same diagnosis set and encounter
type are cached so repeat encounters cost nothing.

Review rules:

    overall confidence = mean confidence of all suggested codes
    below the tenant threshold (default 0.85) -> "Confidence below threshold"
    model asks for review                      -> the model's reason

Security Impact:
    - Encounter ids, patient ids and ICD-10 codes are validated before use
    - Chief complaint and keywords are sanitized before reaching the prompt

Architecture:
    - BaseSkill subclass; provider decisions feed AccuracyTracker through
      ``record_billing_code_accuracy``
"""

import logging
from typing import Optional

from pydantic import ValidationError as ModelValidationError

from src.domain.accuracy_models import BilledCode
from src.domain.guardrails import is_valid_icd10, sanitize_text, validate_uuid
from src.domain.ports import (
    ErrorCode,
    LLMError,
    ServiceResult,
    SkillDisabledError,
    TableQuery,
    ValidationError,
)
from src.domain.skill_models import (
    ENCOUNTER_TYPES,
    BillingSuggestionResult,
    EncounterContext,
    SuggestedCodes,
)
from src.domain.skills.base import BaseSkill, extract_json
from src.domain.utils import minutes_between, utc_now_iso

logger = logging.getLogger(__name__)

SUGGESTIONS_TABLE = "ai_billing_suggestions"
CACHE_TABLE = "billing_code_cache"

DEFAULT_CONFIDENCE_THRESHOLD = 0.85
CACHED_CONFIDENCE = 0.95

SYSTEM_PROMPT = (
    "You are a certified medical coder. Suggest billing codes supported by the documentation only. "
    "Never upcode. Return ONLY valid JSON."
)


def cache_key(diagnosis_codes: list[str], encounter_type: str) -> str:
    """Cache key for a diagnosis set: sorted codes plus the encounter type."""
    return f"{'|'.join(sorted(diagnosis_codes))}:{encounter_type}"


def overall_confidence(codes: SuggestedCodes) -> float:
    confidences = [code.confidence for code in codes.all_codes()]
    return sum(confidences) / len(confidences) if confidences else 0.0


def billed_codes(codes: SuggestedCodes) -> list[BilledCode]:
    return [
        *(BilledCode(code=c.code, type="cpt") for c in codes.cpt),
        *(BilledCode(code=c.code, type="hcpcs") for c in codes.hcpcs),
        *(BilledCode(code=c.code, type="icd10") for c in codes.icd10),
    ]


def billed_codes_from_dict(codes: Optional[dict]) -> list[BilledCode]:
    codes = codes or {}
    return [
        BilledCode(code=entry["code"], type=code_type)
        for code_type in ("cpt", "hcpcs", "icd10")
        for entry in codes.get(code_type) or []
        if entry.get("code")
    ]


def validate_encounter(encounter: EncounterContext) -> None:
    """Raise ValidationError for malformed ids, encounter type or ICD-10 codes."""
    validate_uuid(encounter.encounter_id, "encounterId")
    validate_uuid(encounter.patient_id, "patientId")
    validate_uuid(encounter.tenant_id, "tenantId")
    if encounter.provider_id:
        validate_uuid(encounter.provider_id, "providerId")
    if encounter.encounter_type not in ENCOUNTER_TYPES:
        raise ValidationError("Invalid encounterType", details={"field": "encounterType"})
    for code in encounter.diagnosis_codes:
        if not is_valid_icd10(code):
            raise ValidationError(f"Invalid ICD-10 code: {code}", details={"field": "diagnosisCodes"})


def build_prompt(encounter: EncounterContext) -> str:
    lines = [
        "Suggest billing codes for this encounter.",
        "",
        f"Encounter type: {encounter.encounter_type}",
    ]
    duration = minutes_between(encounter.encounter_start, encounter.encounter_end)
    if duration is not None and duration > 0:
        lines.append(f"Duration: {duration} minutes")
    complaint = sanitize_text(encounter.chief_complaint, 500)
    if complaint:
        lines.append(f"Chief complaint: {complaint}")
    if encounter.diagnosis_codes:
        lines.append(f"Documented diagnoses (ICD-10): {', '.join(encounter.diagnosis_codes)}")
    keywords = [k for k in (sanitize_text(word, 100) for word in encounter.condition_keywords) if k]
    if keywords:
        lines.append(f"Condition keywords: {', '.join(keywords)}")
    procedures = [p for p in (sanitize_text(proc, 200) for proc in encounter.procedures_performed) if p]
    if procedures:
        lines.append(f"Procedures performed: {', '.join(procedures)}")
    lines.extend([
        "",
        "Return JSON:",
        '{"cpt": [{"code": "", "description": "", "confidence": 0-1, "rationale": ""}],',
        ' "hcpcs": [...], "icd10": [...], "requiresReview": true|false, "reviewReason": ""}',
    ])
    return "\n".join(lines)


class BillingCodeSuggester(BaseSkill):
    """Billing code suggestions with provider accept/modify/reject.

    Example Usage:
        ```python
        suggester = BillingCodeSuggester(database, llm_router, tracker)
        result = suggester.suggest_codes(EncounterContext(
            encounter_id=encounter_id,
            patient_id=patient_id,
            tenant_id=tenant_id,
            encounter_type="outpatient",
            diagnosis_codes=["E11.9"],
        ))
        if result.is_success() and not result.data.requires_review:
            suggester.accept_suggestion(result.data.suggestion_id, provider_id)
        ```
    """

    SKILL_KEY = "billing_suggester"
    SKILL_NAME = "billing_code_suggester"

    def suggest_codes(self, encounter: EncounterContext) -> ServiceResult[BillingSuggestionResult]:
        try:
            validate_encounter(encounter)
            config = self.require_enabled(encounter.tenant_id, "Billing code suggester is not enabled for this tenant")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)
        except SkillDisabledError as e:
            return ServiceResult.failure_result(ErrorCode.SKILL_DISABLED, e.message)

        threshold = float(self.config_value(config, "confidence_threshold", DEFAULT_CONFIDENCE_THRESHOLD))
        model = self.config_value(config, "model")

        key = cache_key(encounter.diagnosis_codes, encounter.encounter_type) if encounter.diagnosis_codes else None
        cached = self._cached_result(encounter, key) if key else None
        if cached is not None:
            return self._store(encounter, cached, prediction_id=None)

        try:
            response = self.call_model(
                build_prompt(encounter),
                system_prompt=SYSTEM_PROMPT,
                complexity="simple",
                model=model,
                temperature=0.1,
                max_tokens=1500,
                user_id=encounter.tenant_id,
            )
        except LLMError as e:
            self.audit.error("BILLING_SUGGESTION_FAILED", e, {"encounterId": encounter.encounter_id})
            return ServiceResult.failure_result(
                ErrorCode.AI_SERVICE_ERROR, f"AI billing code generation failed: {e.message}"
            )

        parsed = extract_json(response.text)
        try:
            if parsed is None:
                raise ValueError("reply contained no JSON")
            codes = SuggestedCodes.model_validate(parsed)
        except (ValueError, ModelValidationError) as e:
            logger.warning(f"Billing reply unusable for encounter {encounter.encounter_id}: {e}")
            return ServiceResult.failure_result(ErrorCode.AI_SERVICE_ERROR, "AI billing code generation failed")

        confidence = overall_confidence(codes)
        requires_review = False
        review_reason = None
        if confidence < threshold:
            requires_review, review_reason = True, "Confidence below threshold"
        elif parsed.get("requiresReview"):
            requires_review, review_reason = True, parsed.get("reviewReason") or "Model requested review"

        result = BillingSuggestionResult(
            encounter_id=encounter.encounter_id,
            suggested_codes=codes,
            overall_confidence=confidence,
            requires_review=requires_review,
            review_reason=review_reason,
            from_cache=False,
            ai_cost=response.cost,
            ai_model=response.model,
        )

        self.log_usage(response, tenant_id=encounter.tenant_id, patient_id=encounter.patient_id,
                       request_type="billing_code_suggestion")
        prediction_id = self.record_prediction(
            response,
            {"codes": [c.code for c in codes.all_codes()]},
            tenant_id=encounter.tenant_id,
            patient_id=encounter.patient_id,
            confidence=confidence,
            entity_type="encounter",
            entity_id=encounter.encounter_id,
        )
        if key:
            self._write_cache(key, encounter, result)
        return self._store(encounter, result, prediction_id)

    def _cached_result(self, encounter: EncounterContext, key: str) -> Optional[BillingSuggestionResult]:
        hit = self.database.select_one(TableQuery(CACHE_TABLE).eq("cache_key", key))
        if hit.is_failure() or not hit.data:
            return None

        row = hit.data
        confidence = row.get("overall_confidence")
        self.database.rpc("increment_billing_cache_hit", {"p_cache_id": row.get("id")})
        codes = SuggestedCodes(
            cpt=row.get("suggested_cpt_codes") or [],
            hcpcs=row.get("suggested_hcpcs_codes") or [],
            icd10=row.get("suggested_icd10_codes") or [],
        )
        logger.info(f"Billing cache hit for encounter {encounter.encounter_id}")
        return BillingSuggestionResult(
            encounter_id=encounter.encounter_id,
            suggested_codes=codes,
            overall_confidence=CACHED_CONFIDENCE if confidence is None else confidence,
            requires_review=False,
            from_cache=True,
            ai_cost=0.0,
            ai_model=row.get("model_used") or "",
        )

    def _write_cache(self, key: str, encounter: EncounterContext, result: BillingSuggestionResult) -> None:
        codes = result.suggested_codes
        stored = self.database.upsert(CACHE_TABLE, {
            "cache_key": key,
            "encounter_type": encounter.encounter_type,
            "diagnosis_codes": sorted(encounter.diagnosis_codes),
            "suggested_cpt_codes": [c.to_row() for c in codes.cpt],
            "suggested_hcpcs_codes": [c.to_row() for c in codes.hcpcs],
            "suggested_icd10_codes": [c.to_row() for c in codes.icd10],
            "overall_confidence": result.overall_confidence,
            "model_used": result.ai_model,
            "updated_at": utc_now_iso(),
        }, on_conflict="cache_key")
        if stored.is_failure():
            logger.warning(f"Billing cache write failed: {stored.error.message}")

    def _store(
        self,
        encounter: EncounterContext,
        result: BillingSuggestionResult,
        prediction_id: Optional[str]
    ) -> ServiceResult[BillingSuggestionResult]:
        stored = self.database.insert(SUGGESTIONS_TABLE, {
            "encounter_id": encounter.encounter_id,
            "patient_id": encounter.patient_id,
            "tenant_id": encounter.tenant_id,
            "provider_id": encounter.provider_id,
            "suggested_codes": result.suggested_codes.to_row(),
            "overall_confidence": result.overall_confidence,
            "requires_review": result.requires_review,
            "review_reason": result.review_reason,
            "status": "pending",
            "from_cache": result.from_cache,
            "ai_model": result.ai_model,
            "ai_cost": result.ai_cost,
            "ai_prediction_tracking_id": prediction_id,
        })
        if stored.is_failure():
            logger.warning(f"Billing suggestion not stored for {encounter.encounter_id}: {stored.error.message}")
        elif stored.data:
            result.suggestion_id = stored.data[0].get("id")

        self.audit.info("BILLING_CODES_SUGGESTED", {
            "encounterId": encounter.encounter_id,
            "codeCount": len(result.suggested_codes.all_codes()),
            "overallConfidence": round(result.overall_confidence, 3),
            "fromCache": result.from_cache,
        }, category="FINANCIAL")
        return ServiceResult.success_result(result)

    # ------------------------------------------------------------------
    # Provider decisions
    # ------------------------------------------------------------------

    def accept_suggestion(self, suggestion_id: str, provider_id: str) -> ServiceResult[bool]:
        return self._review(suggestion_id, provider_id, "accepted", final_codes=None)

    def modify_suggestion(
        self,
        suggestion_id: str,
        provider_id: str,
        modified_codes: dict,
        notes: Optional[str] = None
    ) -> ServiceResult[bool]:
        return self._review(suggestion_id, provider_id, "modified", final_codes=modified_codes, notes=notes)

    def reject_suggestion(self, suggestion_id: str, provider_id: str, reason: Optional[str] = None) -> ServiceResult[bool]:
        return self._review(suggestion_id, provider_id, "rejected", final_codes={}, notes=reason)

    def _review(
        self,
        suggestion_id: str,
        provider_id: str,
        status: str,
        final_codes: Optional[dict],
        notes: Optional[str] = None
    ) -> ServiceResult[bool]:
        """Apply a provider decision; ``final_codes=None`` means the suggestion was kept as-is."""
        try:
            validate_uuid(suggestion_id, "suggestionId")
            validate_uuid(provider_id, "providerId")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)

        existing = self.database.select_one(TableQuery(SUGGESTIONS_TABLE).eq("id", suggestion_id))
        if existing.is_failure():
            return ServiceResult.from_failure(existing)
        if existing.data is None:
            return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "Billing suggestion not found")

        suggestion = existing.data
        suggested = billed_codes_from_dict(suggestion.get("suggested_codes"))
        final = suggested if final_codes is None else billed_codes_from_dict(final_codes)

        updated = self.database.update(TableQuery(SUGGESTIONS_TABLE).eq("id", suggestion_id), {
            "status": status,
            "final_codes": final_codes if final_codes is not None else suggestion.get("suggested_codes"),
            "review_notes": sanitize_text(notes, 1000) or None,
            "reviewed_by": provider_id,
            "reviewed_at": utc_now_iso(),
        })
        if updated.is_failure():
            return ServiceResult.from_failure(updated)

        prediction_id = suggestion.get("ai_prediction_tracking_id")
        if self.tracker is not None and prediction_id:
            self.tracker.record_billing_code_accuracy(
                prediction_id,
                suggestion.get("encounter_id"),
                suggested,
                final,
                provider_id,
            )

        self.audit.info(f"BILLING_SUGGESTION_{status.upper()}", {
            "suggestionId": suggestion_id,
            "providerId": provider_id[:8] + "...",
        }, category="FINANCIAL")
        return ServiceResult.success_result(True)
