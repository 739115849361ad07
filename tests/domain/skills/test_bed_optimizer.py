"""Tests for BedOptimizer scoring, fallbacks and bed matching."""

import json
from datetime import datetime, timezone

import pytest

from src.domain.bed_models import IncomingPatient
from src.domain.ports import ServiceResult
from src.domain.skills.bed_optimizer import (
    BedOptimizer,
    capacity_from_board,
    capacity_score,
    efficiency_score,
    historical_averages,
    rule_based_assignment,
    rule_based_discharges,
    score_bed,
    shift_start,
    unit_bottlenecks,
    unit_opportunities,
)

# Tuesday
NOW = datetime(2026, 3, 3, 10, 0, tzinfo=timezone.utc)
TENANT_ID = "1679091c-5a88-4faf-9fb5-e6087eb1b2dc"


def _bed(label, unit_id, unit_name, status, **extra):
    return {"bed_id": label, "bed_label": label, "unit_id": unit_id, "unit_name": unit_name, "status": status, **extra}


BOARD = [
    _bed("ICU-1", "u-icu", "ICU", "occupied", patient_id="p1", patient_name="Ann B.",
         assigned_at="2026-02-27T09:00:00Z", expected_discharge_date="2026-03-03"),
    _bed("ICU-2", "u-icu", "ICU", "occupied", patient_id="p2", patient_name="Carl D.",
         assigned_at="2026-03-01T09:00:00Z", expected_discharge_date="2026-03-04"),
    _bed("ICU-3", "u-icu", "ICU", "occupied", patient_id="p3", expected_discharge_date="2026-03-10"),
    _bed("ICU-4", "u-icu", "ICU", "occupied", patient_id="p4"),
    *[_bed(f"4W-{i}", "u-ms", "Med-Surg", "occupied", patient_id=f"m{i}") for i in range(3)],
    *[_bed(f"4W-{i}", "u-ms", "Med-Surg", "available") for i in range(3, 8)],
    _bed("4W-8", "u-ms", "Med-Surg", "dirty"),
    _bed("4W-9", "u-ms", "Med-Surg", "cleaning"),
]

AVAILABLE_BEDS = [
    {"id": "bed-1", "bed_label": "ICU-101", "unit_id": "u-icu", "bed_type": "icu", "has_telemetry": True},
    {"id": "bed-2", "bed_label": "4W-12", "unit_id": "u-ms", "bed_type": "standard", "has_telemetry": True},
    {"id": "bed-3", "bed_label": "4W-14", "unit_id": "u-ms", "bed_type": "standard", "has_telemetry": False},
]

UNITS = [
    {"id": "u-icu", "unit_name": "ICU", "unit_type": "icu"},
    {"id": "u-ms", "unit_name": "Med-Surg", "unit_type": "med_surg"},
]


def _unit(total, occupied, available=0, pending_clean=0):
    return {"total_beds": total, "occupied_count": occupied, "available_count": available,
            "pending_clean_count": pending_clean}


@pytest.fixture
def optimizer(database, llm):
    def rpc(name, params):
        if name == "get_bed_board_view":
            return ServiceResult.success_result(BOARD)
        return ServiceResult.success_result(None)

    tables = {"beds": AVAILABLE_BEDS, "hospital_units": UNITS}
    database.rpc.side_effect = rpc
    database.select.side_effect = lambda query: ServiceResult.success_result(tables.get(query.table, []))
    return BedOptimizer(database, llm)


class TestScores:
    @pytest.mark.parametrize("occupied, expected", [(85, 100), (95, 80), (50, 30), (0, 0)])
    def test_capacity_score(self, occupied, expected):
        assert round(capacity_score([_unit(100, occupied)])) == expected

    def test_efficiency_score(self):
        assert efficiency_score([_unit(100, 80)]) == 90
        assert efficiency_score([_unit(100, 50)]) == 65
        assert efficiency_score([_unit(100, 70, pending_clean=6)]) == 75

    def test_bottlenecks_and_opportunities(self):
        assert unit_bottlenecks(_unit(10, 10, 0, 3)) == [
            "Critical occupancy", "Bed turnaround delays", "No available beds",
        ]
        assert unit_opportunities(_unit(20, 6, 8)) == ["Accept overflow patients", "Elective admission capacity"]
        assert unit_opportunities(_unit(10, 8, 2)) == []

    def test_capacity_from_board(self):
        units = {u["unit_name"]: u for u in capacity_from_board(BOARD)}

        assert units["ICU"] == {"unit_id": "u-icu", "unit_name": "ICU", "total_beds": 4, "occupied_count": 4,
                                "available_count": 0, "pending_clean_count": 0}
        assert units["Med-Surg"]["total_beds"] == 10
        assert units["Med-Surg"]["available_count"] == 5
        assert units["Med-Surg"]["pending_clean_count"] == 2
        assert capacity_from_board([]) == []

    def test_historical_averages_same_weekday(self):
        history = [
            {"census_date": "2026-02-24", "discharges_count": 8, "admissions_count": 10},
            {"census_date": "2026-02-17", "discharges_count": 6, "admissions_count": 12},
            {"census_date": "2026-02-18", "discharges_count": 20, "admissions_count": 20},
        ]

        assert historical_averages(history, "Tuesday") == (7.0, 11.0)
        assert historical_averages(history, "Friday") == (5.0, 6.0)
        assert historical_averages([], "Tuesday") == (5.0, 6.0)

    def test_shift_start(self):
        assert shift_start(NOW, 0) == datetime(2026, 3, 4, 7, 0, tzinfo=timezone.utc)
        assert shift_start(NOW, 8) == datetime(2026, 3, 3, 15, 0, tzinfo=timezone.utc)
        assert shift_start(NOW, 16) == datetime(2026, 3, 3, 23, 0, tzinfo=timezone.utc)


class TestRuleBased:
    def test_discharges_from_expected_dates(self):
        candidates = rule_based_discharges([b for b in BOARD if b["status"] == "occupied"], NOW)

        assert [(c.bed_label, c.discharge_readiness, c.current_los) for c in candidates] == [
            ("ICU-1", "likely_today", 4),
            ("ICU-2", "likely_tomorrow", 2),
        ]
        assert candidates[0].confidence == 0.5

    @pytest.mark.parametrize("patient, bed, expected", [
        (IncomingPatient(requires_telemetry=True), {"has_telemetry": False}, 0),
        (IncomingPatient(is_bariatric=True), {"bed_type": "standard"}, 0),
        (IncomingPatient(preferred_unit_type="med_surg"), {"unit_type": "med_surg"}, 80),
        (IncomingPatient(acuity_level="critical"), {"bed_type": "icu"}, 75),
        (IncomingPatient(), {"bed_type": "icu"}, 40),
        (IncomingPatient(), {"has_negative_pressure": True, "has_telemetry": True}, 45),
    ])
    def test_score_bed(self, patient, bed, expected):
        assert score_bed(patient, bed) == expected

    def test_rule_based_assignment(self):
        units = {u["id"]: u for u in UNITS}
        beds = [{**bed, "unit_type": units[bed["unit_id"]]["unit_type"]} for bed in AVAILABLE_BEDS]
        patient = IncomingPatient(requires_telemetry=True, preferred_unit_type="med_surg")

        recommendation = rule_based_assignment(patient, beds)

        assert recommendation.recommended_bed_id == "bed-2"
        assert recommendation.match_score == 80
        assert recommendation.match_factors["unitPreference"] is True
        assert [(alt.bed_id, alt.match_score) for alt in recommendation.alternative_beds] == [("bed-1", 40)]


class TestReport:
    def test_report_with_model_unavailable(self, optimizer, llm, audit_events):
        llm.call.return_value = ServiceResult.failure_result("AI_SERVICE_ERROR", "down")

        result = optimizer.generate_optimization_report(TENANT_ID, now=NOW)

        report = result.data
        assert report.current_occupancy_rate == 0.5
        assert report.overall_capacity_score == 30
        assert report.overall_efficiency_score == 65
        assert report.ai_model == "fallback"
        assert report.total_ai_cost == 0.0
        assert [f.shift_period for f in report.forecasts] == ["day", "evening", "night"]
        day = report.forecasts[0]
        assert day.predicted_census == 7
        assert day.predicted_available_beds == 7
        assert day.predicted_discharges == 5
        assert day.risk_level == "low"
        assert day.factors.day_of_week == "Wednesday"
        assert [d.bed_label for d in report.discharge_recommendations] == ["ICU-1", "ICU-2"]
        assert [(i.severity, i.title) for i in report.insights] == [
            ("critical", "ICU at critical capacity"),
            ("info", "Med-Surg underutilized"),
        ]
        icu = next(u for u in report.unit_breakdown if u.unit_name == "ICU")
        assert icu.bottlenecks == ["Critical occupancy", "No available beds"]
        assert audit_events() == ["BED_OPTIMIZATION_REPORT_GENERATED"]

    def test_invalid_tenant(self, optimizer):
        result = optimizer.generate_optimization_report("tenant-1")

        assert result.error_code == "INVALID_INPUT"

    def test_model_forecast(self, optimizer, llm, llm_reply):
        llm.call.return_value = llm_reply(json.dumps({
            "predictedCensus": 9, "predictedDischarges": 3, "predictedAdmissions": 5,
            "predictedAvailableBeds": 5, "confidenceLevel": 1.5, "riskLevel": "high",
            "recommendations": ["Open surge beds"],
        }), model="claude-sonnet-4-5", cost=0.01)
        units = capacity_from_board(BOARD)

        forecasts = optimizer.generate_capacity_forecasts(TENANT_ID, BOARD, units, [], [], NOW)

        assert [f.ai_model for f in forecasts] == ["claude-sonnet-4-5"] * 3
        assert forecasts[0].predicted_census == 9
        assert forecasts[0].confidence_level == 1.0
        assert forecasts[0].recommendations == ["Open surge beds"]
        assert "Tuesday evening shift" in llm.call.call_args_list[1].args[0]

    def test_forecast_reply_outside_schema_falls_back(self, optimizer, llm, llm_reply):
        llm.call.return_value = llm_reply('{"predictedCensus": 9, "riskLevel": "extreme"}')

        forecasts = optimizer.generate_capacity_forecasts(TENANT_ID, BOARD, capacity_from_board(BOARD), [], [], NOW)

        assert {f.ai_model for f in forecasts} == {"fallback"}

    def test_model_discharge_candidates(self, optimizer, llm, llm_reply):
        llm.call.return_value = llm_reply("Candidates: " + json.dumps([
            {"patientId": "p3", "bedLabel": "ICU-3", "currentLOS": 6, "dischargeReadiness": "ready", "confidence": 0.9},
            {"patientId": "p9", "dischargeReadiness": "someday"},
        ]))

        candidates = optimizer.generate_discharge_recommendations(TENANT_ID, BOARD, NOW)

        assert [(c.bed_label, c.current_los, c.discharge_readiness) for c in candidates] == [("ICU-3", 6, "ready")]

    def test_no_occupied_beds(self, optimizer, llm):
        assert optimizer.generate_discharge_recommendations(TENANT_ID, [], NOW) == []
        llm.call.assert_not_called()


class TestBedAssignment:
    PATIENT = IncomingPatient(patient_id="p-new", requires_telemetry=True, preferred_unit_type="med_surg")

    def test_model_pick_must_be_available(self, optimizer, llm, llm_reply):
        llm.call.return_value = llm_reply(json.dumps({"recommendedBedId": "bed-9", "matchScore": 99}))

        result = optimizer.recommend_bed_assignment(TENANT_ID, self.PATIENT)

        assert result.data.recommended_bed_id == "bed-2"
        assert result.data.ai_rationale.startswith("Rule-based match")

    def test_model_pick_accepted(self, optimizer, llm, llm_reply, database, written_rows, audit_events):
        llm.call.return_value = llm_reply(json.dumps({
            "recommendedBedId": "bed-1", "bedLabel": "ICU-101", "unitName": "ICU", "matchScore": 70,
            "aiRationale": "Telemetry available",
        }))

        result = optimizer.recommend_bed_assignment(TENANT_ID, self.PATIENT)

        assert result.data.recommended_bed_id == "bed-1"
        assert result.data.match_score == 70
        assert written_rows(database.insert, "ai_skill_usage")[0]["request_type"] == "bed_assignment"
        assert "BED_ASSIGNMENT_RECOMMENDED" in audit_events()
        assert "ICU-101 (ICU) id=bed-1" in llm.call.call_args.args[0]

    def test_no_available_beds(self, optimizer, database, llm):
        database.select.side_effect = None
        database.select.return_value = ServiceResult.success_result([])

        result = optimizer.recommend_bed_assignment(TENANT_ID, self.PATIENT)

        assert result.error_code == "NO_BEDS_AVAILABLE"
        llm.call.assert_not_called()

    def test_no_bed_meets_requirements(self, optimizer, llm):
        llm.call.return_value = ServiceResult.failure_result("AI_SERVICE_ERROR", "down")

        result = optimizer.recommend_bed_assignment(TENANT_ID, IncomingPatient(requires_negative_pressure=True))

        assert result.error_code == "ASSIGNMENT_FAILED"
