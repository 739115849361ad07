"""AI Accuracy Tracking Models.

Predictions made by AI skills are recorded with cost and latency; outcomes
recorded later (provider review, system events, audits) mark each
prediction accurate or not. Prompt versions and A/B experiments let a skill
compare prompts on the same accuracy signal.
"""

from typing import Any, Literal, Optional

from pydantic import Field

from src.domain.schema import CamelModel

PredictionType = Literal["classification", "score", "code", "text", "structured"]
OutcomeSource = Literal["provider_review", "system_event", "manual_audit", "automated"]
PromptType = Literal["system", "user", "template"]
ExperimentWinner = Literal["control", "treatment", "no_difference"]


class PredictionRecord(CamelModel):
    tenant_id: Optional[str] = None
    skill_name: str
    prediction_type: PredictionType = "structured"
    prediction_value: dict[str, Any] = Field(default_factory=dict)
    confidence: Optional[float] = None
    patient_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    model: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cost_usd: Optional[float] = None
    latency_ms: Optional[int] = None


class PredictionOutcome(CamelModel):
    prediction_id: str
    actual_outcome: dict[str, Any] = Field(default_factory=dict)
    is_accurate: bool
    outcome_source: OutcomeSource = "provider_review"
    notes: Optional[str] = None


class AccuracyMetrics(CamelModel):
    skill_name: str
    total_predictions: int = 0
    predictions_with_outcome: int = 0
    accurate_count: int = 0
    inaccurate_count: int = 0
    accuracy_rate: Optional[float] = None
    avg_confidence: Optional[float] = None
    total_cost_usd: float = 0.0
    avg_latency_ms: Optional[int] = None


class PromptVersion(CamelModel):
    id: str
    skill_name: str
    prompt_type: PromptType = "system"
    version_number: int = 1
    prompt_content: str = ""
    description: Optional[str] = None
    is_active: bool = False
    total_uses: int = 0
    accuracy_rate: Optional[float] = None

    @classmethod
    def from_row(cls, row: dict) -> 'PromptVersion':
        return cls(
            id=row["id"],
            skill_name=row["skill_name"],
            prompt_type=row.get("prompt_type") or "system",
            version_number=row.get("version_number") or 1,
            prompt_content=row.get("prompt_content") or "",
            description=row.get("description"),
            is_active=bool(row.get("is_active")),
            total_uses=row.get("total_uses") or 0,
            accuracy_rate=row.get("accuracy_rate"),
        )


class ExperimentConfig(CamelModel):
    experiment_name: str
    skill_name: str
    hypothesis: str = ""
    control_prompt_id: str
    treatment_prompt_id: str
    traffic_split: float = Field(0.5, ge=0.0, le=1.0)
    min_sample_size: int = 100


class ExperimentVariant(CamelModel):
    prompt_id: str
    variant: Literal["control", "treatment"]


class ExperimentResults(CamelModel):
    experiment_name: str
    control_predictions: int = 0
    control_accurate: int = 0
    treatment_predictions: int = 0
    treatment_accurate: int = 0
    p_value: Optional[float] = None
    is_significant: bool = False
    winner: Optional[ExperimentWinner] = None


class BilledCode(CamelModel):
    code: str
    type: str = "cpt"
