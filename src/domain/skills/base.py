"""AI Skill Base.

Shared plumbing for the AI skills: per-tenant skill configuration, model
calls through the LLM router, JSON extraction from model replies, usage
logging and accuracy tracking.

Every skill reply is wrapped in the same envelope::

    {"result": {...}, "metadata": {"model": "...", "responseTimeMs": 812}}

Security Impact:
    - A skill turned off for a tenant refuses to run (SkillDisabledError)
    - Usage rows carry ids, token counts and cost; never prompt text

Architecture:
    - Skills depend on DatabasePort and LLMRouterPort only
    - Model failures surface as LLMError; each skill decides whether it has
      a rule-based fallback or fails the request
"""

import json
import logging
import re
import time
from typing import Any, Optional

from src.domain.accuracy_models import PredictionRecord
from src.domain.ports import (
    DatabasePort,
    LLMError,
    LLMResponse,
    LLMRouterPort,
    SkillDisabledError,
    TableQuery,
)
from src.domain.skill_models import SkillMetadata, SkillResponse
from src.domain.skills.accuracy_tracking import AccuracyTracker
from src.domain.utils import drop_none, utc_now_iso
from src.infrastructure.audit import AuditLogger

logger = logging.getLogger(__name__)

SKILL_CONFIG_TABLE = "ai_skill_config"
SKILL_USAGE_TABLE = "ai_skill_usage"

_JSON_OBJECT = re.compile(r'\{[\s\S]*\}')
_JSON_ARRAY = re.compile(r'\[[\s\S]*\]')


def extract_json(text: Optional[str]) -> Optional[dict]:
    """Pull the outermost JSON object out of a model reply (None when absent or invalid)."""
    if not text:
        return None
    match = _JSON_OBJECT.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json_array(text: Optional[str]) -> Optional[list]:
    """Pull the outermost JSON array out of a model reply (None when absent or invalid)."""
    if not text:
        return None
    match = _JSON_ARRAY.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, list) else None


class BaseSkill:
    """Base class for AI skills.

    Subclasses set ``SKILL_KEY`` (the column prefix in ``ai_skill_config``,
    e.g. ``billing_suggester``) and ``SKILL_NAME`` (the name recorded in
    usage and accuracy tables).

    Example Usage:
        ```python
        class DischargeSummarizer(BaseSkill):
            SKILL_KEY = "discharge_summarizer"
            SKILL_NAME = "discharge_summarizer"

            def summarize(self, tenant_id, notes):
                self.require_enabled(tenant_id, "Discharge summarizer is not enabled for this tenant")
                response = self.call_model(notes, complexity="simple", user_id=tenant_id)
                return extract_json(response.text)
        ```
    """

    SKILL_KEY = ""
    SKILL_NAME = ""
    ENABLED_BY_DEFAULT = True
    AUDIT_CATEGORY = "CLINICAL"

    def __init__(
        self,
        database: DatabasePort,
        llm: LLMRouterPort,
        tracker: Optional[AccuracyTracker] = None,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.database = database
        self.llm = llm
        self.tracker = tracker
        self.audit = audit_logger or AuditLogger(database, category=self.AUDIT_CATEGORY)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_skill_config(self, tenant_id: Optional[str]) -> dict:
        """Tenant skill configuration; empty when the tenant has none.

        Uses the ``get_ai_skill_config`` database function and falls back to
        reading ``ai_skill_config`` for stores without functions.
        """
        if not tenant_id:
            return {}

        result = self.database.rpc("get_ai_skill_config", {"p_tenant_id": tenant_id})
        if result.is_success() and isinstance(result.data, dict):
            return result.data
        if result.is_success() and isinstance(result.data, list) and result.data:
            return result.data[0]

        row = self.database.select_one(TableQuery(SKILL_CONFIG_TABLE).eq("tenant_id", tenant_id))
        if row.is_failure():
            logger.warning(f"Skill config unavailable for tenant {tenant_id}: {row.error.message}")
            return {}
        return row.data or {}

    def config_value(self, config: dict, name: str, default: Any = None) -> Any:
        value = config.get(f"{self.SKILL_KEY}_{name}")
        return default if value is None else value

    def is_enabled(self, config: dict) -> bool:
        return bool(self.config_value(config, "enabled", self.ENABLED_BY_DEFAULT))

    def require_enabled(self, tenant_id: Optional[str], message: str) -> dict:
        """Return the tenant config, raising SkillDisabledError when the skill is off."""
        config = self.get_skill_config(tenant_id)
        if not self.is_enabled(config):
            raise SkillDisabledError(message, source=self.SKILL_NAME)
        return config

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    def call_model(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        complexity: str = "simple",
        model: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        user_id: Optional[str] = None
    ) -> LLMResponse:
        """Call the router and return its reply.

        Raises:
            LLMError: When the router reports a failure
        """
        result = self.llm.call(
            prompt,
            system_prompt=system_prompt,
            model=model,
            complexity=complexity,
            temperature=temperature,
            max_tokens=max_tokens,
            user_id=user_id,
        )
        if result.is_failure():
            raise LLMError(result.error.message, source=self.SKILL_NAME)
        return result.data

    # ------------------------------------------------------------------
    # Usage and accuracy
    # ------------------------------------------------------------------

    def log_usage(
        self,
        response: Optional[LLMResponse],
        tenant_id: Optional[str] = None,
        patient_id: Optional[str] = None,
        request_type: Optional[str] = None,
        extra: Optional[dict] = None
    ) -> None:
        """Write one ``ai_skill_usage`` row; failures are logged only."""
        row = drop_none({
            "skill_name": self.SKILL_NAME,
            "tenant_id": tenant_id,
            "patient_id": patient_id,
            "request_type": request_type,
            "model": response.model if response else None,
            "input_tokens": response.input_tokens if response else 0,
            "output_tokens": response.output_tokens if response else 0,
            "cost": response.cost if response else 0.0,
            "latency_ms": response.latency_ms if response else None,
            "metadata": extra,
            "created_at": utc_now_iso(),
        })
        result = self.database.insert(SKILL_USAGE_TABLE, row)
        if result.is_failure():
            logger.warning(f"Usage not logged for {self.SKILL_NAME}: {result.error.message}")

    def record_prediction(
        self,
        response: LLMResponse,
        prediction_value: dict,
        tenant_id: Optional[str] = None,
        patient_id: Optional[str] = None,
        confidence: Optional[float] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        skill_name: Optional[str] = None
    ) -> Optional[str]:
        """Record a prediction with the tracker; returns the prediction id when tracked."""
        if self.tracker is None:
            return None
        result = self.tracker.record_prediction(PredictionRecord(
            tenant_id=tenant_id,
            skill_name=skill_name or self.SKILL_NAME,
            prediction_value=prediction_value,
            confidence=confidence,
            patient_id=patient_id,
            entity_type=entity_type,
            entity_id=entity_id,
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cost_usd=response.cost,
            latency_ms=response.latency_ms,
        ))
        if result.is_failure():
            logger.warning(f"Prediction not tracked for {self.SKILL_NAME}: {result.error.message}")
            return None
        return result.data

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    @staticmethod
    def envelope(result: Any, model: str, started: float) -> SkillResponse:
        """Wrap a skill result with model name and elapsed time since ``started`` (perf_counter)."""
        return SkillResponse(
            result=result,
            metadata=SkillMetadata(
                model=model,
                response_time_ms=int((time.perf_counter() - started) * 1000),
                generated_at=utc_now_iso(),
            ),
        )
