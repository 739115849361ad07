"""Tests for AccuracyTracker, prediction roll-ups and experiment statistics."""

import random

import pytest

from src.domain.accuracy_models import (
    BilledCode,
    ExperimentConfig,
    PredictionOutcome,
    PredictionRecord,
)
from src.domain.ports import ServiceResult
from src.domain.skills.accuracy_tracking import (
    AccuracyTracker,
    evaluate_experiment,
    summarize_predictions,
    two_proportion_p_value,
)


@pytest.fixture
def tracker(database):
    return AccuracyTracker(database, rng=random.Random(7))


def _filters(query):
    return [(f.column, f.operator, f.value) for f in query.filters]


class TestPredictions:
    def test_record_prediction_calls_function(self, tracker, database):
        database.rpc.return_value = ServiceResult.success_result("pred-1")
        record = PredictionRecord(
            tenant_id="tenant-1",
            skill_name="fall_risk_predictor",
            prediction_value={"riskCategory": "high"},
            confidence=0.82,
            model="claude-sonnet-4-5",
            cost_usd=0.01,
        )

        result = tracker.record_prediction(record)

        assert result.data == "pred-1"
        name, params = database.rpc.call_args.args
        assert name == "record_ai_prediction"
        assert params["p_skill_name"] == "fall_risk_predictor"
        assert params["p_prediction_value"] == {"riskCategory": "high"}
        assert params["p_cost"] == 0.01

    def test_record_prediction_failure(self, tracker, database):
        database.rpc.return_value = ServiceResult.failure_result("DATABASE_ERROR", "function missing")

        result = tracker.record_prediction(PredictionRecord(skill_name="x", model="m"))

        assert result.error_code == "DATABASE_ERROR"
        assert "function missing" in result.error.message

    def test_record_outcome(self, tracker, database):
        result = tracker.record_outcome(PredictionOutcome(prediction_id="pred-1", is_accurate=False))

        assert result.data is True
        name, params = database.rpc.call_args.args
        assert name == "record_prediction_outcome"
        assert params["p_is_accurate"] is False
        assert params["p_outcome_source"] == "provider_review"


class TestMetrics:
    def test_dashboard_maps_rows(self, tracker, database):
        database.rpc.return_value = ServiceResult.success_result([
            {"skill_name": "billing_code_suggester", "total_predictions": 40, "accurate_count": 30,
             "predictions_with_outcome": 35, "accuracy_rate": 0.857, "total_cost": 1.25},
        ])

        result = tracker.get_accuracy_dashboard("tenant-1", days=7)

        metrics = result.data[0]
        assert metrics.skill_name == "billing_code_suggester"
        assert metrics.total_cost_usd == 1.25
        assert metrics.inaccurate_count == 0
        assert database.rpc.call_args.args[1] == {"p_tenant_id": "tenant-1", "p_days": 7}

    def test_skill_accuracy_scopes_tenant(self, tracker, database):
        tracker.get_skill_accuracy("fall_risk_predictor", tenant_id="tenant-1")

        filters = _filters(database.select.call_args.args[0])
        assert ("skill_name", "eq", "fall_risk_predictor") in filters
        assert ("tenant_id", "eq", "tenant-1") in filters

    def test_summarize_predictions(self):
        rows = [
            {"is_accurate": True, "confidence_score": 0.9, "cost_usd": 0.01, "latency_ms": 1000},
            {"is_accurate": False, "confidence_score": 0.7, "cost_usd": 0.02, "latency_ms": 2000},
            {"is_accurate": None, "confidence_score": 0.8, "cost_usd": 0.03, "latency_ms": 3000},
        ]

        metrics = summarize_predictions("care_plan_generator", rows)

        assert metrics.total_predictions == 3
        assert metrics.predictions_with_outcome == 2
        assert metrics.accurate_count == 1
        assert metrics.inaccurate_count == 1
        assert metrics.accuracy_rate == 0.5
        assert metrics.avg_confidence == pytest.approx(0.8)
        assert metrics.total_cost_usd == pytest.approx(0.06)
        assert metrics.avg_latency_ms == 2000

    def test_summarize_without_rows(self):
        metrics = summarize_predictions("hl7_interpreter", [])

        assert metrics.total_predictions == 0
        assert metrics.accuracy_rate is None


class TestPromptVersions:
    def test_create_increments_version(self, tracker, database):
        database.select.return_value = ServiceResult.success_result([{"version_number": 3}])
        database.insert.side_effect = lambda table, row: ServiceResult.success_result([{**row, "id": "prompt-4"}])

        result = tracker.create_prompt_version("billing_code_suggester", "system", "You are a coder.")

        assert result.data.version_number == 4
        assert result.data.is_active is False
        assert result.data.id == "prompt-4"

    def test_first_version_is_one(self, tracker, database):
        database.insert.side_effect = lambda table, row: ServiceResult.success_result([{**row, "id": "prompt-1"}])

        result = tracker.create_prompt_version("hl7_interpreter", "user", "Interpret this.")

        assert result.data.version_number == 1

    def test_activate_deactivates_siblings(self, tracker, database):
        database.select_one.return_value = ServiceResult.success_result(
            {"skill_name": "fall_risk_predictor", "prompt_type": "system"}
        )

        result = tracker.activate_prompt_version("prompt-2")

        assert result.data is True
        first, second = database.update.call_args_list
        assert ("is_active", "eq", True) in _filters(first.args[0])
        assert first.args[1]["is_active"] is False
        assert _filters(second.args[0]) == [("id", "eq", "prompt-2")]
        assert second.args[1]["is_active"] is True

    def test_activate_unknown_prompt(self, tracker):
        result = tracker.activate_prompt_version("missing")

        assert result.error_code == "NOT_FOUND"

    def test_active_prompt_none(self, tracker):
        result = tracker.get_active_prompt("fall_risk_predictor")

        assert result.is_success()
        assert result.data is None


class TestExperiments:
    def test_create_starts_as_draft(self, tracker, database):
        database.insert.return_value = ServiceResult.success_result([{"id": "exp-1"}])
        config = ExperimentConfig(
            experiment_name="shorter-system-prompt",
            skill_name="billing_code_suggester",
            control_prompt_id="p1",
            treatment_prompt_id="p2",
        )

        result = tracker.create_experiment(config)

        assert result.data == "exp-1"
        assert database.insert.call_args.args[1]["status"] == "draft"

    def test_start_requires_draft(self, tracker):
        result = tracker.start_experiment("exp-1")

        assert result.error_code == "NOT_FOUND"

    @pytest.mark.parametrize("split, expected", [(1.0, "treatment"), (0.0, "control")])
    def test_variant_follows_split(self, tracker, database, split, expected):
        database.select_one.return_value = ServiceResult.success_result({
            "control_prompt_id": "p1", "treatment_prompt_id": "p2", "traffic_split": split,
        })

        result = tracker.get_experiment_variant("shorter-system-prompt")

        assert result.data.variant == expected
        assert result.data.prompt_id == ("p2" if expected == "treatment" else "p1")

    def test_missing_split_defaults_to_half(self, tracker, database):
        database.select_one.return_value = ServiceResult.success_result({
            "control_prompt_id": "p1", "treatment_prompt_id": "p2", "traffic_split": None,
        })

        variants = [tracker.get_experiment_variant("shorter-system-prompt").data.variant for _ in range(200)]

        assert 60 < variants.count("treatment") < 140

    def test_zero_split_never_picks_treatment(self, tracker, database):
        database.select_one.return_value = ServiceResult.success_result({
            "control_prompt_id": "p1", "treatment_prompt_id": "p2", "traffic_split": 0.0,
        })

        variants = {tracker.get_experiment_variant("shorter-system-prompt").data.variant for _ in range(200)}

        assert variants == {"control"}

    def test_variant_none_when_not_running(self, tracker):
        assert tracker.get_experiment_variant("unknown").data is None

    def test_p_value_without_data(self):
        assert two_proportion_p_value(0, 0, 10, 5) is None

    def test_significant_treatment_wins(self):
        results = evaluate_experiment({
            "experiment_name": "exp",
            "control_predictions": 200, "control_accurate": 120,
            "treatment_predictions": 200, "treatment_accurate": 160,
        })

        assert results.is_significant is True
        assert results.p_value < 0.05
        assert results.winner == "treatment"

    def test_small_difference_is_no_difference(self):
        results = evaluate_experiment({
            "control_predictions": 50, "control_accurate": 30,
            "treatment_predictions": 50, "treatment_accurate": 31,
        })

        assert results.is_significant is False
        assert results.winner == "no_difference"


class TestSkillOutcomes:
    def test_billing_accuracy_threshold(self, tracker, database, written_rows):
        suggested = [BilledCode(code="99213"), BilledCode(code="36415"), BilledCode(code="E11.9", type="icd10")]
        final = [BilledCode(code="99213"), BilledCode(code="E11.9", type="icd10"), BilledCode(code="99214")]

        result = tracker.record_billing_code_accuracy(
            "pred-1", "enc-1", suggested, final, "coder-1", suggested_revenue=120.0, actual_revenue=150.0
        )

        assert result.data is True
        row = written_rows(database.insert, "billing_code_accuracy")[0]
        assert row["codes_accepted"] == 2
        assert row["codes_rejected"] == 1
        assert row["codes_added_by_provider"] == 1
        assert row["revenue_delta"] == 30.0
        # 2 of 3 kept is below the 70% bar
        assert database.rpc.call_args.args[1]["p_is_accurate"] is False

    def test_sdoh_false_positive_is_inaccurate(self, tracker, database):
        tracker.record_sdoh_detection_accuracy("det-1", "pred-1", True, True, "sw-1")

        assert database.rpc.call_args.args[1]["p_is_accurate"] is False
