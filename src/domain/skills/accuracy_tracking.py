"""AI Accuracy Tracking.

Records every AI prediction, the outcome learned later, and rolls both up
into per-skill accuracy. Also manages prompt versions and A/B experiments
that compare two prompts on the same accuracy signal.

Architecture:
    - Predictions and outcomes go through database functions
      (``record_ai_prediction``, ``record_prediction_outcome``) so counters on
      prompt versions and experiments update atomically
    - Per-skill metrics are computed with pandas over the fetched predictions
    - Experiment significance uses a two-proportion z-test (p < 0.05)
"""

import logging
import math
import random
from typing import Optional

import pandas as pd

from src.domain.accuracy_models import (
    AccuracyMetrics,
    BilledCode,
    ExperimentConfig,
    ExperimentResults,
    ExperimentVariant,
    PredictionOutcome,
    PredictionRecord,
    PromptVersion,
)
from src.domain.ports import DatabasePort, ErrorCode, ServiceResult, TableQuery
from src.domain.utils import days_ago_iso, utc_now_iso

logger = logging.getLogger(__name__)

PREDICTIONS_TABLE = "ai_predictions"
PROMPTS_TABLE = "ai_prompt_versions"
EXPERIMENTS_TABLE = "ai_prompt_experiments"
BILLING_ACCURACY_TABLE = "billing_code_accuracy"
SDOH_ACCURACY_TABLE = "sdoh_detection_accuracy"

SIGNIFICANCE_LEVEL = 0.05
BILLING_ACCEPTANCE_THRESHOLD = 0.7


def normal_cdf(x: float) -> float:
    """Standard normal cumulative distribution."""
    return 0.5 * (1.0 + math.erf(x / math.sqrt(2.0)))


def two_proportion_p_value(
    control_n: int,
    control_successes: int,
    treatment_n: int,
    treatment_successes: int
) -> Optional[float]:
    """Two-tailed p-value comparing two success rates (None without data in both arms)."""
    if control_n <= 0 or treatment_n <= 0:
        return None
    control_p = control_successes / control_n
    treatment_p = treatment_successes / treatment_n
    pooled = (control_successes + treatment_successes) / (control_n + treatment_n)
    se = math.sqrt(pooled * (1 - pooled) * (1 / control_n + 1 / treatment_n))
    z = (treatment_p - control_p) / se if se > 0 else 0.0
    return 2 * (1 - normal_cdf(abs(z)))


class AccuracyTracker:
    """Prediction/outcome ledger, prompt versions and experiments.

    Example Usage:
        ```python
        tracker = AccuracyTracker(database)
        recorded = tracker.record_prediction(PredictionRecord(
            skill_name="billing_code_suggester",
            prediction_value={"codes": ["99213"]},
            model=response.model,
        ))
        tracker.record_outcome(PredictionOutcome(prediction_id=recorded.data, is_accurate=True))
        ```
    """

    def __init__(self, database: DatabasePort, rng: Optional[random.Random] = None):
        self.database = database
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Predictions and outcomes
    # ------------------------------------------------------------------

    def record_prediction(self, record: PredictionRecord) -> ServiceResult[str]:
        """Store a prediction and return its id."""
        result = self.database.rpc("record_ai_prediction", {
            "p_tenant_id": record.tenant_id,
            "p_skill_name": record.skill_name,
            "p_prediction_type": record.prediction_type,
            "p_prediction_value": record.prediction_value,
            "p_confidence": record.confidence,
            "p_patient_id": record.patient_id,
            "p_entity_type": record.entity_type,
            "p_entity_id": record.entity_id,
            "p_model": record.model,
            "p_input_tokens": record.input_tokens,
            "p_output_tokens": record.output_tokens,
            "p_cost": record.cost_usd,
            "p_latency_ms": record.latency_ms,
        })
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to record prediction: {result.error.message}"
            )
        return ServiceResult.success_result(str(result.data) if result.data is not None else None)

    def record_outcome(self, outcome: PredictionOutcome) -> ServiceResult[bool]:
        result = self.database.rpc("record_prediction_outcome", {
            "p_prediction_id": outcome.prediction_id,
            "p_actual_outcome": outcome.actual_outcome,
            "p_is_accurate": outcome.is_accurate,
            "p_outcome_source": outcome.outcome_source,
            "p_notes": outcome.notes,
        })
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to record outcome: {result.error.message}"
            )
        return ServiceResult.success_result(True)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_accuracy_dashboard(self, tenant_id: Optional[str] = None, days: int = 30) -> ServiceResult[list[AccuracyMetrics]]:
        """Per-skill roll-up for the accuracy dashboard."""
        result = self.database.rpc("get_accuracy_dashboard", {"p_tenant_id": tenant_id, "p_days": days})
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to get dashboard: {result.error.message}"
            )

        metrics = [
            AccuracyMetrics(
                skill_name=row["skill_name"],
                total_predictions=row.get("total_predictions") or 0,
                predictions_with_outcome=row.get("predictions_with_outcome") or 0,
                accurate_count=row.get("accurate_count") or 0,
                inaccurate_count=row.get("inaccurate_count") or 0,
                accuracy_rate=row.get("accuracy_rate"),
                avg_confidence=row.get("avg_confidence"),
                total_cost_usd=row.get("total_cost") or 0.0,
            )
            for row in result.data or []
        ]
        return ServiceResult.success_result(metrics)

    def get_skill_accuracy(
        self,
        skill_name: str,
        days: int = 30,
        tenant_id: Optional[str] = None
    ) -> ServiceResult[AccuracyMetrics]:
        """Accuracy, confidence, cost and latency for one skill over a window."""
        query = (
            TableQuery(PREDICTIONS_TABLE, "is_accurate, confidence_score, cost_usd, latency_ms")
            .eq("skill_name", skill_name)
            .gte("predicted_at", days_ago_iso(days))
        )
        if tenant_id:
            query.eq("tenant_id", tenant_id)

        result = self.database.select(query)
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to get skill accuracy: {result.error.message}"
            )
        return ServiceResult.success_result(summarize_predictions(skill_name, result.data or []))

    # ------------------------------------------------------------------
    # Prompt versions
    # ------------------------------------------------------------------

    def get_active_prompt(self, skill_name: str, prompt_type: str = "system") -> ServiceResult[Optional[PromptVersion]]:
        result = self.database.select_one(
            TableQuery(PROMPTS_TABLE)
            .eq("skill_name", skill_name)
            .eq("prompt_type", prompt_type)
            .eq("is_active", True)
        )
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to get prompt: {result.error.message}"
            )
        return ServiceResult.success_result(PromptVersion.from_row(result.data) if result.data else None)

    def create_prompt_version(
        self,
        skill_name: str,
        prompt_type: str,
        prompt_content: str,
        description: Optional[str] = None,
        change_notes: Optional[str] = None
    ) -> ServiceResult[PromptVersion]:
        """Add the next (inactive) version of a skill's prompt."""
        latest = self.database.select(
            TableQuery(PROMPTS_TABLE, "version_number")
            .eq("skill_name", skill_name)
            .eq("prompt_type", prompt_type)
            .order("version_number", ascending=False)
            .limit(1)
        )
        if latest.is_failure():
            return ServiceResult.from_failure(latest)
        next_version = latest.data[0]["version_number"] + 1 if latest.data else 1

        result = self.database.insert(PROMPTS_TABLE, {
            "skill_name": skill_name,
            "prompt_type": prompt_type,
            "version_number": next_version,
            "prompt_content": prompt_content,
            "description": description,
            "change_notes": change_notes,
            "is_active": False,
            "is_default": False,
        })
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to create prompt: {result.error.message}"
            )
        logger.info(f"Created prompt version {next_version} for {skill_name}/{prompt_type}")
        return ServiceResult.success_result(PromptVersion.from_row(result.data[0]))

    def activate_prompt_version(self, prompt_id: str) -> ServiceResult[bool]:
        """Make one version active, deactivating its siblings."""
        prompt = self.database.select_one(TableQuery(PROMPTS_TABLE, "skill_name, prompt_type").eq("id", prompt_id))
        if prompt.is_failure():
            return ServiceResult.from_failure(prompt)
        if prompt.data is None:
            return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "Prompt version not found")

        now = utc_now_iso()
        deactivated = self.database.update(
            TableQuery(PROMPTS_TABLE)
            .eq("skill_name", prompt.data["skill_name"])
            .eq("prompt_type", prompt.data["prompt_type"])
            .eq("is_active", True),
            {"is_active": False, "deactivated_at": now},
        )
        if deactivated.is_failure():
            return ServiceResult.from_failure(deactivated)

        activated = self.database.update(
            TableQuery(PROMPTS_TABLE).eq("id", prompt_id),
            {"is_active": True, "activated_at": now},
        )
        if activated.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to activate prompt: {activated.error.message}"
            )
        return ServiceResult.success_result(True)

    def get_prompt_history(self, skill_name: str, prompt_type: str = "system") -> ServiceResult[list[PromptVersion]]:
        result = self.database.select(
            TableQuery(PROMPTS_TABLE)
            .eq("skill_name", skill_name)
            .eq("prompt_type", prompt_type)
            .order("version_number", ascending=False)
        )
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to get history: {result.error.message}"
            )
        return ServiceResult.success_result([PromptVersion.from_row(row) for row in result.data or []])

    # ------------------------------------------------------------------
    # Experiments
    # ------------------------------------------------------------------

    def create_experiment(self, config: ExperimentConfig) -> ServiceResult[str]:
        result = self.database.insert(EXPERIMENTS_TABLE, {**config.to_row(), "status": "draft"})
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to create experiment: {result.error.message}"
            )
        return ServiceResult.success_result(result.data[0]["id"])

    def start_experiment(self, experiment_id: str) -> ServiceResult[bool]:
        result = self.database.update(
            TableQuery(EXPERIMENTS_TABLE).eq("id", experiment_id).eq("status", "draft"),
            {"status": "running", "start_at": utc_now_iso()},
        )
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to start experiment: {result.error.message}"
            )
        if not result.data:
            return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "Experiment not found or not in draft status")
        return ServiceResult.success_result(True)

    def get_experiment_variant(self, experiment_name: str) -> ServiceResult[Optional[ExperimentVariant]]:
        """Pick control or treatment by the experiment's traffic split (None when not running)."""
        result = self.database.select_one(
            TableQuery(EXPERIMENTS_TABLE)
            .eq("experiment_name", experiment_name)
            .eq("status", "running")
        )
        if result.is_failure() or result.data is None:
            return ServiceResult.success_result(None)

        experiment = result.data
        split = experiment.get("traffic_split")
        split = 0.5 if split is None else float(split)
        uses_treatment = self._rng.random() < split
        return ServiceResult.success_result(ExperimentVariant(
            prompt_id=experiment["treatment_prompt_id"] if uses_treatment else experiment["control_prompt_id"],
            variant="treatment" if uses_treatment else "control",
        ))

    def get_experiment_results(self, experiment_id: str) -> ServiceResult[ExperimentResults]:
        result = self.database.select_one(TableQuery(EXPERIMENTS_TABLE).eq("id", experiment_id))
        if result.is_failure() or result.data is None:
            return ServiceResult.failure_result(ErrorCode.NOT_FOUND, "Experiment not found")
        return ServiceResult.success_result(evaluate_experiment(result.data))

    # ------------------------------------------------------------------
    # Skill-specific outcomes
    # ------------------------------------------------------------------

    def record_billing_code_accuracy(
        self,
        prediction_id: str,
        encounter_id: str,
        suggested_codes: list[BilledCode],
        final_codes: list[BilledCode],
        reviewed_by: str,
        suggested_revenue: Optional[float] = None,
        actual_revenue: Optional[float] = None
    ) -> ServiceResult[bool]:
        """Compare suggested and billed codes; accurate when >= 70% of suggestions were kept."""
        suggested_set = {c.code for c in suggested_codes}
        final_set = {c.code for c in final_codes}
        accepted = sum(1 for c in final_codes if c.code in suggested_set)
        rejected = sum(1 for c in suggested_codes if c.code not in final_set)
        added = sum(1 for c in final_codes if c.code not in suggested_set)

        revenue_delta = None
        if actual_revenue is not None and suggested_revenue is not None:
            revenue_delta = actual_revenue - suggested_revenue

        result = self.database.insert(BILLING_ACCURACY_TABLE, {
            "prediction_id": prediction_id,
            "encounter_id": encounter_id,
            "suggested_codes": [c.to_row() for c in suggested_codes],
            "final_codes_used": [c.to_row() for c in final_codes],
            "codes_accepted": accepted,
            "codes_rejected": rejected,
            "codes_added_by_provider": added,
            "suggested_revenue": suggested_revenue,
            "actual_revenue": actual_revenue,
            "revenue_delta": revenue_delta,
            "reviewed_by": reviewed_by,
            "reviewed_at": utc_now_iso(),
        })
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to record billing accuracy: {result.error.message}"
            )

        total = len(suggested_codes)
        is_accurate = total > 0 and accepted / total >= BILLING_ACCEPTANCE_THRESHOLD
        outcome = self.record_outcome(PredictionOutcome(
            prediction_id=prediction_id,
            actual_outcome={
                "finalCodes": [c.code for c in final_codes],
                "accepted": accepted,
                "rejected": rejected,
                "addedByProvider": added,
            },
            is_accurate=is_accurate,
        ))
        if outcome.is_failure():
            logger.warning(f"Billing outcome not recorded for prediction {prediction_id}: {outcome.error.message}")
        return ServiceResult.success_result(True)

    def record_sdoh_detection_accuracy(
        self,
        detection_id: str,
        prediction_id: str,
        was_confirmed: bool,
        was_false_positive: bool,
        reviewed_by: str
    ) -> ServiceResult[bool]:
        result = self.database.insert(SDOH_ACCURACY_TABLE, {
            "detection_id": detection_id,
            "prediction_id": prediction_id,
            "was_confirmed": was_confirmed,
            "was_dismissed": not was_confirmed,
            "was_false_positive": was_false_positive,
            "reviewed_by": reviewed_by,
            "reviewed_at": utc_now_iso(),
        })
        if result.is_failure():
            return ServiceResult.failure_result(
                ErrorCode.DATABASE_ERROR, f"Failed to record SDOH accuracy: {result.error.message}"
            )

        outcome = self.record_outcome(PredictionOutcome(
            prediction_id=prediction_id,
            actual_outcome={"wasConfirmed": was_confirmed, "wasFalsePositive": was_false_positive},
            is_accurate=was_confirmed and not was_false_positive,
        ))
        if outcome.is_failure():
            logger.warning(f"SDOH outcome not recorded for prediction {prediction_id}: {outcome.error.message}")
        return ServiceResult.success_result(True)


def summarize_predictions(skill_name: str, rows: list[dict]) -> AccuracyMetrics:
    """Roll prediction rows up into AccuracyMetrics."""
    if not rows:
        return AccuracyMetrics(skill_name=skill_name)

    df = pd.DataFrame(rows, columns=["is_accurate", "confidence_score", "cost_usd", "latency_ms"])
    with_outcome = df[df["is_accurate"].notna()]
    accurate = int(with_outcome["is_accurate"].astype(bool).sum())
    evaluated = len(with_outcome)

    return AccuracyMetrics(
        skill_name=skill_name,
        total_predictions=len(df),
        predictions_with_outcome=evaluated,
        accurate_count=accurate,
        inaccurate_count=evaluated - accurate,
        accuracy_rate=accurate / evaluated if evaluated else None,
        avg_confidence=float(pd.to_numeric(df["confidence_score"], errors="coerce").fillna(0).mean()),
        total_cost_usd=float(pd.to_numeric(df["cost_usd"], errors="coerce").fillna(0).sum()),
        avg_latency_ms=int(round(pd.to_numeric(df["latency_ms"], errors="coerce").fillna(0).mean())),
    )


def evaluate_experiment(row: dict) -> ExperimentResults:
    """Significance and winner for an experiment row."""
    control_n = row.get("control_predictions") or 0
    control_ok = row.get("control_accurate") or 0
    treatment_n = row.get("treatment_predictions") or 0
    treatment_ok = row.get("treatment_accurate") or 0

    p_value = two_proportion_p_value(control_n, control_ok, treatment_n, treatment_ok)
    significant = p_value is not None and p_value < SIGNIFICANCE_LEVEL

    winner = "no_difference"
    if significant:
        winner = "treatment" if treatment_ok / treatment_n > control_ok / control_n else "control"

    return ExperimentResults(
        experiment_name=row.get("experiment_name") or "",
        control_predictions=control_n,
        control_accurate=control_ok,
        treatment_predictions=treatment_n,
        treatment_accurate=treatment_ok,
        p_value=p_value,
        is_significant=significant,
        winner=winner,
    )
