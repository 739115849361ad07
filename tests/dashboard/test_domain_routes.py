"""Tests for bed, transfer, welfare, reminder, notification, skill and accuracy routes.

Services are replaced with mocks; these tests check request parsing,
argument passing and the ServiceResult envelope, not service behavior.
"""

from unittest.mock import Mock

import pytest

from src.dashboard.api import dependencies
from src.domain.bed_models import IncomingPatient
from src.domain.notification_models import ChannelResult, NotificationResult
from src.domain.ports import ErrorCode, ServiceResult


def ok(data=None):
    return ServiceResult.success_result(data)


def fail(code, message="nope"):
    return ServiceResult.failure_result(code, message)


@pytest.fixture
def service(overrides):
    """Install a Mock for one dependency: ``service(get_bed_service)``."""
    def install(dependency):
        mock = Mock()
        overrides[dependency] = lambda: mock
        return mock
    return install


class TestBedRoutes:
    def test_board_passes_filters(self, client, service):
        beds = service(dependencies.get_bed_service)
        beds.get_bed_board.return_value = ok([{"bed_id": "b1", "bed_label": "ICU-1", "status": "available"}])

        response = client.get("/api/beds/board", params={"unitId": "u-icu"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": [{"bedId": "b1", "bedLabel": "ICU-1", "status": "available"}],
        }
        beds.get_bed_board.assert_called_once_with(unit_id="u-icu", facility_id=None)

    def test_available_beds_capabilities(self, client, service):
        beds = service(dependencies.get_bed_service)
        beds.find_available_beds.return_value = ok([])

        client.get("/api/beds/available", params={"requiresTelemetry": "true", "bedType": "icu"})

        beds.find_available_beds.assert_called_once_with(
            unit_id=None,
            bed_type="icu",
            requires_telemetry=True,
            requires_isolation=None,
            requires_negative_pressure=None,
        )

    def test_assign(self, client, service):
        beds = service(dependencies.get_bed_service)
        beds.assign_patient_to_bed.return_value = ok("assignment-1")

        response = client.post("/api/beds/assign", json={"patientId": "p-1", "bedId": "b-2", "expectedLosDays": 3})

        assert response.json()["data"] == "assignment-1"
        beds.assign_patient_to_bed.assert_called_once_with("p-1", "b-2", 3)

    def test_invalid_status(self, client, service):
        service(dependencies.get_bed_service)

        response = client.put("/api/beds/b-1/status", json={"status": "on_fire"})

        assert response.status_code == 422

    def test_not_found(self, client, service):
        beds = service(dependencies.get_bed_service)
        beds.discharge_patient.return_value = fail(ErrorCode.NOT_FOUND, "No active assignment for patient")

        response = client.post("/api/beds/discharge", json={"patientId": "p-9"})

        assert response.status_code == 404
        assert response.json()["detail"] == {"code": "NOT_FOUND", "message": "No active assignment for patient"}
        beds.discharge_patient.assert_called_once_with("p-9", "Home")

    def test_recommendation_conflict_when_no_beds(self, client, service):
        optimizer = service(dependencies.get_bed_optimizer)
        optimizer.recommend_bed_assignment.return_value = fail(ErrorCode.NO_BEDS_AVAILABLE, "No available beds")

        response = client.post("/api/beds/recommendation", json={
            "tenantId": "t-1",
            "patient": {"patientId": "p-1", "acuityLevel": "high", "requiresTelemetry": True, "expectedLOS": 4},
        })

        assert response.status_code == 409
        tenant_id, patient = optimizer.recommend_bed_assignment.call_args.args
        assert tenant_id == "t-1"
        assert isinstance(patient, IncomingPatient)
        assert patient.requires_telemetry is True
        assert patient.expected_los == 4

    def test_forecast_history_requires_dates(self, client, service):
        service(dependencies.get_bed_service)

        assert client.get("/api/beds/units/u-1/forecasts").status_code == 422


class TestTransferRoutes:
    def test_create(self, client, service):
        transfers = service(dependencies.get_transfer_service)
        transfers.create_transfer_request.return_value = ok({"id": "tr-1", "status": "pending"})

        response = client.post("/api/transfers", json={
            "patientId": "p-1",
            "sendingFacilityId": "f-1",
            "reasonForTransfer": "Needs cath lab",
            "urgency": "emergent",
            "requiresCardiacMonitoring": True,
        })

        assert response.status_code == 201
        request = transfers.create_transfer_request.call_args.args[0]
        assert request.urgency == "emergent"
        assert request.requires_cardiac_monitoring is True

    def test_invalid_urgency(self, client, service):
        service(dependencies.get_transfer_service)

        response = client.post("/api/transfers", json={
            "patientId": "p-1", "sendingFacilityId": "f-1", "reasonForTransfer": "x", "urgency": "whenever",
        })

        assert response.status_code == 422

    def test_active_filters(self, client, service):
        transfers = service(dependencies.get_transfer_service)
        transfers.get_active_transfers.return_value = ok([])

        client.get("/api/transfers", params={"status": "pending", "urgency": "critical"})

        transfers.get_active_transfers.assert_called_once_with(
            status="pending", urgency="critical", sending_facility_id=None, receiving_facility_id=None
        )

    def test_invalid_transition(self, client, service):
        transfers = service(dependencies.get_transfer_service)
        transfers.complete_transfer.return_value = fail(
            ErrorCode.INVALID_INPUT, "Cannot complete a transfer in status pending"
        )

        response = client.post("/api/transfers/tr-1/complete")

        assert response.status_code == 400

    def test_cancel(self, client, service):
        transfers = service(dependencies.get_transfer_service)
        transfers.cancel_transfer.return_value = ok({"id": "tr-1", "status": "cancelled"})

        client.post("/api/transfers/tr-1/cancel", json={"cancellationReason": "Family declined"})

        transfers.cancel_transfer.assert_called_once_with("tr-1", "Family declined")


class TestWelfareRoutes:
    def test_dispatch_queue(self, client, service):
        dispatcher = service(dependencies.get_welfare_dispatcher)
        dispatcher.get_dispatch_queue.return_value = ok([{"senior_id": "s-1", "priority_score": 95}])

        response = client.post("/api/welfare/dispatch-queue", params={"calculationDate": "2026-05-10"}, json={
            "tenantId": "t-1",
            "officerId": "o-1",
            "officerName": "Sgt. Rivera",
            "officerBadgeNumber": "pd-4471",
            "departmentName": "Metro PD",
            "requestReason": "Morning rounds",
        })

        assert response.json()["data"] == [{"seniorId": "s-1", "priorityScore": 95}]
        request = dispatcher.get_dispatch_queue.call_args.args[0]
        assert request.officer_badge_number == "pd-4471"
        assert dispatcher.get_dispatch_queue.call_args.kwargs == {"calculation_date": "2026-05-10"}

    def test_dispatch_queue_requires_officer_fields(self, client, service):
        service(dependencies.get_welfare_dispatcher)

        response = client.post("/api/welfare/dispatch-queue", json={"tenantId": "t-1"})

        assert response.status_code == 422

    def test_skill_disabled_is_forbidden(self, client, service):
        dispatcher = service(dependencies.get_welfare_dispatcher)
        dispatcher.calculate_priority_scores.return_value = fail(ErrorCode.SKILL_DISABLED, "Welfare dispatch is disabled")

        response = client.post("/api/welfare/priority", json={"tenantId": "t-1"})

        assert response.status_code == 403
        dispatcher.calculate_priority_scores.assert_called_once_with("t-1", assessment_date=None)

    def test_missed_check_ins(self, client, service):
        law_enforcement = service(dependencies.get_law_enforcement_service)
        law_enforcement.get_missed_check_in_alerts.return_value = ok([{"patient_id": "s-1", "urgency": "high"}])

        data = client.get("/api/welfare/missed-check-ins").json()["data"]

        assert data == [{"patientId": "s-1", "urgency": "high"}]


class TestAppointmentRoutes:
    def test_due_reminders(self, client, service):
        reminders = service(dependencies.get_reminder_service)
        reminders.get_appointments_needing_reminders.return_value = ok([])

        client.get("/api/appointments/reminders/due", params={"reminderType": "1h", "batchSize": 20})

        reminders.get_appointments_needing_reminders.assert_called_once_with("1h", batch_size=20)

    def test_invalid_reminder_type(self, client, service):
        service(dependencies.get_reminder_service)

        response = client.get("/api/appointments/reminders/due", params={"reminderType": "2d"})

        assert response.status_code == 422

    def test_run(self, client, service):
        dispatcher = service(dependencies.get_reminder_dispatcher)
        dispatcher.run.return_value = ok({"processed": 3, "sms_sent": 2, "push_sent": 1, "failed": 0})

        response = client.post("/api/appointments/reminders/run", json={"reminderType": "24h"})

        assert response.json()["data"]["smsSent"] == 2
        dispatcher.run.assert_called_once_with("24h", batch_size=100)


class TestNotificationRoutes:
    def test_send(self, client, service):
        notifications = service(dependencies.get_notification_service)
        notifications.send.return_value = ok(NotificationResult(
            success=True,
            notification_id="n-1",
            channel_results={"in_app": ChannelResult(success=True), "slack": ChannelResult(error="Slack not configured")},
        ))

        response = client.post("/api/notifications/send", json={
            "title": "ICU at capacity",
            "body": "No beds",
            "category": "clinical",
            "priority": "urgent",
            "target": {"userId": "u-1"},
        })

        data = response.json()["data"]
        assert data["notificationId"] == "n-1"
        assert data["channelResults"]["slack"] == {"success": False, "error": "Slack not configured"}
        assert notifications.send.call_args.args[0].priority == "urgent"

    def test_unread_count_requires_user(self, client, service):
        service(dependencies.get_notification_service)

        assert client.get("/api/notifications/unread/count").status_code == 422


class TestSkillRoutes:
    def test_high_risk_patients(self, client, service):
        fall_risk = service(dependencies.get_fall_risk_predictor)
        fall_risk.get_high_risk_patients.return_value = ok([])

        client.get("/api/skills/fall-risk/high-risk", params={"minScore": 80})

        fall_risk.get_high_risk_patients.assert_called_once_with(min_score=80, limit=50)

    def test_ai_unavailable(self, client, service):
        hl7 = service(dependencies.get_hl7_interpreter)
        hl7.get_recent_interpretations.return_value = fail(ErrorCode.AI_SERVICE_ERROR, "AI service error")

        response = client.get("/api/skills/hl7/interpretations", params={"tenantId": "t-1"})

        assert response.status_code == 503

    def test_modify_requires_codes(self, client, service):
        billing = service(dependencies.get_billing_suggester)

        response = client.post("/api/skills/billing-codes/s-1/modify", json={"providerId": "dr-1"})

        assert response.status_code == 400
        billing.modify_suggestion.assert_not_called()

    def test_reject(self, client, service):
        billing = service(dependencies.get_billing_suggester)
        billing.reject_suggestion.return_value = ok(None)

        response = client.post("/api/skills/billing-codes/s-1/reject", json={"providerId": "dr-1", "reason": "Wrong level"})

        assert response.json() == {"success": True, "data": None}
        billing.reject_suggestion.assert_called_once_with("s-1", "dr-1", reason="Wrong level")


class TestAccuracyRoutes:
    def test_create_experiment(self, client, service):
        tracker = service(dependencies.get_accuracy_tracker)
        tracker.create_experiment.return_value = ok("exp-1")

        response = client.post("/api/accuracy/experiments", json={
            "experimentName": "concise-prompt",
            "skillName": "billing_code_suggester",
            "controlPromptId": "p-1",
            "treatmentPromptId": "p-2",
            "trafficSplit": 0.2,
        })

        assert response.status_code == 201
        assert tracker.create_experiment.call_args.args[0].traffic_split == 0.2

    def test_traffic_split_bounds(self, client, service):
        service(dependencies.get_accuracy_tracker)

        response = client.post("/api/accuracy/experiments", json={
            "experimentName": "x", "skillName": "y", "controlPromptId": "a", "treatmentPromptId": "b", "trafficSplit": 1.5,
        })

        assert response.status_code == 422

    def test_dashboard_days_bounds(self, client, service):
        service(dependencies.get_accuracy_tracker)

        assert client.get("/api/accuracy/dashboard", params={"days": 0}).status_code == 422
