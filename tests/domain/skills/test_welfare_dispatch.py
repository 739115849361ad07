"""Tests for WelfareCheckDispatcher scoring and officer queue access."""

import json

import pytest

from src.domain.law_enforcement_models import OfficerAccessRequest, WelfareCheckCompletion
from src.domain.ports import ServiceResult
from src.domain.skills.welfare_dispatch import (
    NO_CHECKIN_DAYS,
    WelfareCheckDispatcher,
    categorize_priority,
    rule_based_assessment,
)

TENANT_ID = "e4da3b7f-bbce-4345-9777-2b0674a318d5"
OFFICER_ID = "1f0e3dad-9990-4345-9b7c-4b5a6f7e8d9c"
ISOLATED = "c4ca4238-a0b9-4382-8dcc-509a6f75849b"
CONNECTED = "c81e728d-9d4c-4f63-9f06-7c1b2a3d4e5f"
DATE = "2026-05-10"

SENIORS = [
    {"user_id": ISOLATED, "first_name": "Ada", "last_name": "Moss", "emergency_contacts": []},
    {"user_id": CONNECTED, "first_name": "Ben", "last_name": "Ortiz",
     "emergency_contacts": [{"name": "Carla", "phone": "555-0100"}]},
]

CHECK_INS = {
    ISOLATED: [],
    CONNECTED: [{"created_at": f"2026-05-0{day}T18:00:00Z", "responses": {"mood": "good"}} for day in range(7, 1, -1)],
}

SDOH = {
    ISOLATED: [{"sdoh_category": "food", "status": "confirmed"}, {"sdoh_category": "housing", "status": "confirmed"}],
    CONNECTED: [],
}

CONFIG = {"welfare_check_dispatcher_enabled": True, "welfare_check_dispatcher_auto_dispatch_threshold": 85}


def _filter_value(query, column):
    return next(f.value for f in query.filters if f.column == column)


def _senior(data=None, **overrides):
    values = {
        "days_since_last_checkin": 3,
        "checkin_count": 10,
        "recent_checkin_responses": [],
        "sdoh_barriers": [],
        "emergency_contacts_count": 1,
    }
    values.update(overrides)
    return values


@pytest.fixture
def dispatcher(database, llm):
    def select(query):
        if query.table == "profiles":
            return ServiceResult.success_result(SENIORS)
        if query.table == "daily_check_ins":
            return ServiceResult.success_result(CHECK_INS[_filter_value(query, "user_id")])
        if query.table == "passive_sdoh_detections":
            return ServiceResult.success_result(SDOH[_filter_value(query, "patient_id")])
        return ServiceResult.success_result([])

    database.select.side_effect = select
    database.rpc.side_effect = lambda name, params: ServiceResult.success_result(
        CONFIG if name == "get_ai_skill_config" else None
    )
    llm.call.return_value = ServiceResult.failure_result("AI_SERVICE_ERROR", "down")
    return WelfareCheckDispatcher(database, llm)


class TestRules:
    @pytest.mark.parametrize("score, category", [
        (95, "critical"), (80, "critical"), (79, "high"), (60, "high"), (40, "elevated"), (39, "routine"),
    ])
    def test_categorize_priority(self, score, category):
        assert categorize_priority(score) == category

    def test_isolated_senior(self):
        scored = rule_based_assessment(_senior(
            days_since_last_checkin=NO_CHECKIN_DAYS, checkin_count=0,
            sdoh_barriers=[{}, {}], emergency_contacts_count=0,
        ))

        assert scored["priority_score"] == 95
        assert scored["recommended_action"] == "immediate_dispatch"
        assert scored["risk_factors"] == [
            "No check-in for 14+ days",
            "2 SDOH barriers identified",
            "No emergency contacts on file",
            "Low check-in completion rate",
        ]
        assert scored["cost"] == 0.0

    @pytest.mark.parametrize("overrides, score, action", [
        ({}, 0, "wellness_call"),
        ({"days_since_last_checkin": 7}, 25, "wellness_call"),
        ({"days_since_last_checkin": 8, "emergency_contacts_count": 0, "checkin_count": 2}, 60, "in_person_check"),
        ({"sdoh_barriers": [{}] * 12}, 100, "immediate_dispatch"),
    ])
    def test_scores_and_actions(self, overrides, score, action):
        scored = rule_based_assessment(_senior(**overrides))

        assert scored["priority_score"] == score
        assert scored["recommended_action"] == action


class TestCalculatePriorityScores:
    def test_rule_based_batch(self, dispatcher, database, written_rows, audit_events):
        result = dispatcher.calculate_priority_scores(TENANT_ID, DATE)

        summary = result.data
        assert summary.assessed == 2
        assert summary.critical == 1
        assert summary.routine == 1
        assert summary.auto_dispatched == 1
        assert summary.total_cost == 0.0

        rows = {row["senior_id"]: row for row in written_rows(database.upsert, "welfare_check_priority_queue")}
        assert rows[ISOLATED]["priority_score"] == 95
        assert rows[ISOLATED]["days_since_last_checkin"] == NO_CHECKIN_DAYS
        assert rows[CONNECTED]["days_since_last_checkin"] == 2
        assert rows[CONNECTED]["priority_category"] == "routine"
        assert database.upsert.call_args.kwargs["on_conflict"] == "tenant_id,senior_id,calculation_date"

        alert = written_rows(database.insert, "system_notifications")[0]
        assert alert["notification_type"] == "welfare_check_critical"
        assert alert["metadata"]["senior_id"] == ISOLATED
        assert audit_events("WARNING") == ["WELFARE_CHECK_AUTO_DISPATCHED"]
        assert "WELFARE_PRIORITY_SCORES_CALCULATED" in audit_events("INFO")

    def test_model_scores(self, dispatcher, llm, llm_reply):
        llm.call.return_value = llm_reply(json.dumps({
            "priority_score": 72.6,
            "mobility_risk_level": "high_risk",
            "recommended_action": "in_person_check",
            "risk_factors": ["Lives alone"],
            "notes": "Knock loudly",
        }))

        result = dispatcher.calculate_priority_scores(TENANT_ID, DATE)

        assert result.data.high == 2
        assert result.data.auto_dispatched == 0
        assert result.data.total_cost == pytest.approx(0.004)
        assert llm.call.call_args.kwargs["temperature"] == 0.1
        assert "Days since last check-in: 2" in llm.call.call_args.args[0]
        assert '"mood": "good"' in llm.call.call_args.args[0]

    def test_reply_outside_schema_uses_rules(self, dispatcher, llm, llm_reply):
        llm.call.return_value = llm_reply('{"priority_score": 50, "recommended_action": "call_swat"}')

        assessment, cost = dispatcher.assess_senior(SENIORS[0], DATE)

        assert assessment.priority_score == 95
        assert assessment.notes == "Rule-based assessment: 95 priority score"
        assert cost == 0.0

    def test_failed_queue_write_is_not_counted(self, dispatcher, database):
        database.upsert.return_value = ServiceResult.failure_result("DATABASE_ERROR", "down")

        result = dispatcher.calculate_priority_scores(TENANT_ID, DATE)

        assert result.data.assessed == 0
        assert result.data.auto_dispatched == 0

    def test_no_threshold_no_dispatch(self, dispatcher, database, written_rows):
        database.rpc.side_effect = lambda name, params: ServiceResult.success_result(
            {"welfare_check_dispatcher_enabled": True}
        )

        result = dispatcher.calculate_priority_scores(TENANT_ID, DATE)

        assert result.data.critical == 1
        assert written_rows(database.insert, "system_notifications") == []

    def test_disabled_by_default(self, dispatcher, database, llm):
        database.rpc.side_effect = None

        result = dispatcher.calculate_priority_scores(TENANT_ID, DATE)

        assert result.error_code == "SKILL_DISABLED"
        llm.call.assert_not_called()

    @pytest.mark.parametrize("tenant_id, date", [("tenant-1", DATE), (TENANT_ID, "10/05/2026")])
    def test_invalid_input(self, dispatcher, tenant_id, date):
        result = dispatcher.calculate_priority_scores(tenant_id, date)

        assert result.error_code == "INVALID_INPUT"


class TestDispatchQueue:
    QUEUE = [
        {"senior_id": ISOLATED, "priority_score": 95, "priority_category": "critical",
         "days_since_last_checkin": 999, "recommended_action": "immediate_dispatch",
         "risk_factors": ["No emergency contacts on file"], "officer_notes": "Check rear door"},
        {"senior_id": CONNECTED, "priority_score": 88, "priority_category": "critical"},
    ]

    @pytest.fixture
    def request_(self):
        return OfficerAccessRequest(
            tenant_id=TENANT_ID,
            officer_id=OFFICER_ID,
            officer_name="Sgt. <Rivera>",
            officer_badge_number="pd-4471",
            department_name="Central Precinct",
            request_reason="Morning rounds; DROP TABLE",
            priority_filter="critical",
            limit=5,
        )

    @pytest.fixture
    def queue_db(self, database):
        database.select.side_effect = None
        database.select.return_value = ServiceResult.success_result(self.QUEUE)
        database.insert.side_effect = lambda table, row: ServiceResult.success_result(
            [{"id": "log-1"}] if table == "welfare_check_access_log" else []
        )
        return database

    def test_queue_read_is_logged(self, dispatcher, queue_db, request_, written_rows, audit_events):
        result = dispatcher.get_dispatch_queue(request_, calculation_date=DATE)

        queue = result.data["queue"]
        assert [entry.senior_id for entry in queue] == [ISOLATED, CONNECTED]
        assert queue[0].notes == "Check rear door"
        assert queue[1].recommended_action == "wellness_call"
        assert result.data["access_log_id"] == "log-1"

        access = written_rows(queue_db.insert, "welfare_check_access_log")[0]
        assert access["officer_name"] == "Sgt. Rivera"
        assert access["officer_badge_number"] == "PD-4471"
        assert access["access_reason"] == "Morning rounds DROP TABLE"
        assert access["seniors_viewed_count"] == 2

        query = queue_db.select.call_args.args[0]
        assert ("priority_category", "critical") in [(f.column, f.value) for f in query.filters]
        assert query.ordering == [("priority_score", False)]
        assert query.limit_value == 5
        assert "WELFARE_QUEUE_ACCESSED" in audit_events()

    def test_queue_withheld_without_access_record(self, dispatcher, queue_db, request_, audit_events):
        queue_db.insert.side_effect = lambda table, row: (
            ServiceResult.failure_result("DATABASE_ERROR", "insert failed")
            if table == "welfare_check_access_log" else ServiceResult.success_result([])
        )

        result = dispatcher.get_dispatch_queue(request_, calculation_date=DATE)

        assert result.is_success() is False
        assert result.error_code == "DATABASE_ERROR"
        assert audit_events("ERROR") == ["WELFARE_QUEUE_ACCESS_LOG_FAILED"]

    @pytest.mark.parametrize("overrides, message", [
        ({"officer_badge_number": "PD 44!"}, "Invalid badge number: must be alphanumeric, max 20 characters"),
        ({"priority_filter": "urgent"}, "Invalid priority category: urgent"),
        ({"officer_id": "officer-7"}, "Invalid officerId: must be valid UUID"),
    ])
    def test_invalid_request(self, dispatcher, queue_db, request_, overrides, message):
        result = dispatcher.get_dispatch_queue(request_.model_copy(update=overrides))

        assert result.error_code == "INVALID_INPUT"
        assert result.error.message == message
        queue_db.select.assert_not_called()


class TestCompletionAndAnalytics:
    def test_complete_welfare_check(self, dispatcher, database, audit_events):
        completion = WelfareCheckCompletion(
            tenant_id=TENANT_ID, officer_id=OFFICER_ID, outcome="needs_assistance", notes="Fell; <EMS> called",
        )

        result = dispatcher.complete_welfare_check(ISOLATED, completion, calculation_date=DATE)

        assert result.data is True
        query, changes = database.update.call_args.args
        assert [(f.column, f.value) for f in query.filters] == [
            ("tenant_id", TENANT_ID), ("senior_id", ISOLATED), ("calculation_date", DATE),
        ]
        assert changes["last_check_outcome"] == "needs_assistance"
        assert changes["last_check_notes"] == "Fell EMS called"
        assert "WELFARE_CHECK_COMPLETED" in audit_events()

    def test_complete_invalid_senior(self, dispatcher, database):
        completion = WelfareCheckCompletion(tenant_id=TENANT_ID, officer_id=OFFICER_ID, outcome="safe")

        result = dispatcher.complete_welfare_check("senior-1", completion)

        assert result.error_code == "INVALID_INPUT"
        database.update.assert_not_called()

    def test_analytics_range(self, dispatcher, database):
        database.select.side_effect = None
        database.select.return_value = ServiceResult.success_result([{"analytics_date": "2026-05-09"}])

        result = dispatcher.get_analytics(TENANT_ID, "2026-05-01", "2026-05-09")

        assert result.data == [{"analytics_date": "2026-05-09"}]
        query = database.select.call_args.args[0]
        assert [(f.column, f.operator) for f in query.filters] == [
            ("tenant_id", "eq"), ("analytics_date", "gte"), ("analytics_date", "lte"),
        ]

    def test_analytics_invalid_date(self, dispatcher):
        result = dispatcher.get_analytics(TENANT_ID, "May 1", "2026-05-09")

        assert result.error_code == "INVALID_INPUT"
