"""Tests for appointment reminders: DND window, message text, bookkeeping and dispatch."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from src.domain.appointment_models import ReminderPreferencesUpdate, ReminderSendResult
from src.domain.notification_models import ChannelResult, NotificationResult
from src.domain.ports import ServiceResult
from src.domain.services import AppointmentReminderService, ReminderDispatcher
from src.domain.services.appointment_reminders import (
    format_appointment_for_reminder,
    generate_reminder_message,
    is_in_dnd_window,
)

# 22:00 in Chicago (UTC-6 in January)
LATE_EVENING_UTC = datetime(2026, 1, 6, 4, 0, tzinfo=timezone.utc)
# 10:00 in Chicago
MORNING_UTC = datetime(2026, 1, 5, 16, 0, tzinfo=timezone.utc)


class TestDndWindow:
    def test_window_spanning_midnight(self):
        assert is_in_dnd_window("22:00", "07:00", "America/Chicago", now=LATE_EVENING_UTC)
        assert not is_in_dnd_window("22:00", "07:00", "America/Chicago", now=MORNING_UTC)

    def test_same_day_window(self):
        assert is_in_dnd_window("09:00", "12:00", "America/Chicago", now=MORNING_UTC)
        assert not is_in_dnd_window("10:01", "12:00", "America/Chicago", now=MORNING_UTC)

    def test_start_inclusive_end_exclusive(self):
        assert is_in_dnd_window("10:00", "11:00", "America/Chicago", now=MORNING_UTC)
        assert not is_in_dnd_window("09:00", "10:00", "America/Chicago", now=MORNING_UTC)

    @pytest.mark.parametrize("start,end,tz", [
        (None, "07:00", "America/Chicago"),
        ("22:00", None, "America/Chicago"),
        ("late", "07:00", "America/Chicago"),
        ("22:00", "07:00", "Mars/Olympus_Mons"),
    ])
    def test_missing_or_malformed_never_blocks(self, start, end, tz):
        assert not is_in_dnd_window(start, end, tz, now=LATE_EVENING_UTC)


class TestMessages:
    def test_format_appointment_for_reminder(self):
        formatted = format_appointment_for_reminder(datetime(2026, 1, 5, 20, 30, tzinfo=timezone.utc), "America/Chicago")

        assert formatted == {"date": "Monday, January 5, 2026", "time": "2:30 PM"}

    def test_messages_use_first_name(self):
        day_before = generate_reminder_message("24h", "Maria Lopez", "Dr. Chen", "Monday, January 5, 2026", "2:30 PM")
        hour_before = generate_reminder_message("1h", "Maria Lopez", "Dr. Chen", "Monday, January 5, 2026", "2:30 PM")
        soon = generate_reminder_message("15m", "Maria Lopez", "Dr. Chen", "Monday, January 5, 2026", "2:30 PM")

        assert day_before.startswith("Hi Maria, this is a reminder that you have a telehealth appointment tomorrow")
        assert "Lopez" not in day_before
        assert hour_before == (
            "Hi Maria, your telehealth appointment with Dr. Chen is in 1 hour at 2:30 PM. "
            "Please be ready to join the video call."
        )
        assert soon.endswith("starts in 15 minutes. Please join the video call now.")

    def test_unknown_type_gets_generic_message(self):
        message = generate_reminder_message("2d", "Maria Lopez", "Dr. Chen", "Monday, January 5, 2026", "2:30 PM")

        assert message == (
            "Hi Maria, you have a telehealth appointment with Dr. Chen on Monday, January 5, 2026 at 2:30 PM."
        )


@pytest.fixture
def service(database):
    return AppointmentReminderService(database)


class TestPreferences:
    def test_defaults_when_none_stored(self, service, database):
        database.rpc.return_value = ServiceResult.success_result([])

        preferences = service.get_reminder_preferences("u1").data

        assert preferences.user_id == "u1"
        assert preferences.reminder_24h_enabled is True
        assert preferences.reminder_15m_enabled is False
        assert preferences.timezone == "America/Chicago"

    def test_stored_preferences(self, service, database):
        database.rpc.return_value = ServiceResult.success_result([{
            "user_id": "u1", "reminder_24h_enabled": True, "sms_enabled": None,
            "dnd_start_time": "22:00:00", "timezone": "America/New_York",
        }])

        preferences = service.get_reminder_preferences("u1").data

        assert preferences.sms_enabled is False
        assert preferences.reminder_1h_enabled is False
        assert preferences.dnd_start_time == "22:00:00"
        assert preferences.timezone == "America/New_York"

    def test_update_rejects_unknown_timezone(self, service, database):
        result = service.update_reminder_preferences(ReminderPreferencesUpdate(timezone="Nowhere/Special"), "u1")

        assert result.error_code == "INVALID_INPUT"
        assert result.error.message == "Invalid timezone: Nowhere/Special"
        database.rpc.assert_not_called()

    def test_update_preferences(self, service, database, audit_events):
        database.rpc.return_value = ServiceResult.success_result({"success": True})

        result = service.update_reminder_preferences(ReminderPreferencesUpdate(sms_enabled=False), "u1")

        assert result.data == {"updated": True}
        function, params = database.rpc.call_args.args
        assert function == "update_user_reminder_preferences"
        assert params["p_sms_enabled"] is False
        assert params["p_push_enabled"] is None
        assert params["p_user_id"] == "u1"
        assert audit_events() == ["REMINDER_PREFERENCES_UPDATED"]

    def test_update_reports_function_error(self, service, database):
        database.rpc.return_value = ServiceResult.success_result({"success": False, "error": "Not authenticated"})

        result = service.update_reminder_preferences(ReminderPreferencesUpdate(sms_enabled=True), "u1")

        assert result.error_code == "OPERATION_FAILED"
        assert result.error.message == "Not authenticated"


class TestBookkeeping:
    def test_rejects_unknown_reminder_type(self, service, database):
        result = service.get_appointments_needing_reminders("2h")

        assert result.error_code == "INVALID_INPUT"
        database.rpc.assert_not_called()

    def test_appointments_needing_reminders(self, service, database):
        database.rpc.return_value = ServiceResult.success_result([{
            "appointment_id": "a1",
            "patient_id": "p1",
            "patient_name": "Maria Lopez",
            "appointment_time": "2026-01-05T20:30:00+00:00",
            "sms_enabled": True,
            "duration_minutes": None,
        }])

        (appointment,) = service.get_appointments_needing_reminders("24h", batch_size=10).data

        assert appointment.appointment_id == "a1"
        assert appointment.duration_minutes == 30
        assert appointment.sms_enabled is True
        assert appointment.push_enabled is False
        assert appointment.timezone == "America/Chicago"
        database.rpc.assert_called_once_with(
            "get_appointments_needing_reminders", {"p_reminder_type": "24h", "p_batch_size": 10}
        )

    def test_mark_reminder_sent(self, service, database, audit_events):
        database.rpc.return_value = ServiceResult.success_result(
            {"success": True, "log_id": "log-1", "status": "partial"}
        )

        result = service.mark_reminder_sent("a1", "1h", ReminderSendResult(sms_sent=True, sms_sid="SM1"))

        assert result.data == {"log_id": "log-1", "status": "partial"}
        params = database.rpc.call_args.args[1]
        assert params["p_sms_sid"] == "SM1"
        assert params["p_push_sent"] is False
        assert audit_events() == ["APPOINTMENT_REMINDER_SENT"]

    def test_reset_appointment_reminders(self, service, database):
        database.rpc.return_value = ServiceResult.success_result(True)

        assert service.reset_appointment_reminders("a1").data == {"reset": True}

    def test_rpc_exception(self, service, database, audit_events):
        database.rpc.side_effect = RuntimeError("connection reset")

        result = service.reset_appointment_reminders("a1")

        assert result.error_code == "UNKNOWN_ERROR"
        assert result.error.message == "Failed to reset appointment reminders"
        assert audit_events("ERROR") == ["RESET_APPOINTMENT_REMINDERS_FAILED"]

    def test_reminder_logs(self, service, database):
        database.select.return_value = ServiceResult.success_result([{
            "id": "log-1", "appointment_id": "a1", "patient_id": None, "reminder_type": "1h",
            "sms_sent": True, "push_sent": None, "status": "sent",
        }])

        (entry,) = service.get_reminder_logs("a1").data

        assert entry.patient_id == ""
        assert entry.sms_sent is True
        assert entry.push_sent is False


class TestDispatcher:
    def _appointment(self, appointment_id, **overrides):
        row = {
            "appointment_id": appointment_id,
            "patient_id": f"patient-{appointment_id}",
            "patient_name": "Maria Lopez",
            "patient_phone": "+15551234567",
            "provider_name": "Dr. Chen",
            "appointment_time": "2026-01-06T15:00:00+00:00",
            "sms_enabled": True,
            "push_enabled": False,
            "timezone": "America/Chicago",
        }
        row.update(overrides)
        return row

    @pytest.fixture
    def notifications(self):
        service = Mock()
        service.send_system_notification.return_value = ServiceResult.success_result(NotificationResult(
            success=True, channel_results={"push": ChannelResult(success=True)}
        ))
        return service

    def test_run_sends_and_skips_dnd(self, service, database, functions, notifications):
        due = [
            self._appointment("a1"),
            self._appointment("a2", dnd_start_time="21:00", dnd_end_time="07:00"),
            self._appointment("a3", sms_enabled=False, push_enabled=True),
        ]

        def rpc(function, params=None):
            if function == "get_appointments_needing_reminders":
                return ServiceResult.success_result(due)
            return ServiceResult.success_result({"success": True, "status": "sent"})

        database.rpc.side_effect = rpc
        functions.invoke.return_value = ServiceResult.success_result({"sid": "SM123"})
        dispatcher = ReminderDispatcher(service, notifications, functions)

        summary = dispatcher.run("24h", now=LATE_EVENING_UTC).data

        assert summary.found == 3
        assert summary.skipped_dnd == 1
        assert summary.sent == 2
        assert summary.failed == 0
        sms_to, sms_body = functions.invoke.call_args.args
        assert sms_to == "send-sms"
        assert sms_body["to"] == "+15551234567"
        assert sms_body["message"].startswith("Hi Maria")
        target = notifications.send_system_notification.call_args.args[0]
        assert target.user_id == "patient-a3"

        marked = [c.args[1] for c in database.rpc.call_args_list if c.args[0] == "mark_reminder_sent"]
        assert [params["p_appointment_id"] for params in marked] == ["a1", "a3"]
        assert marked[0]["p_sms_sid"] == "SM123"

    def test_undelivered_reminder_counts_as_failed(self, service, database, functions, notifications):
        def rpc(function, params=None):
            if function == "get_appointments_needing_reminders":
                return ServiceResult.success_result([self._appointment("a1")])
            return ServiceResult.success_result({"success": True, "status": "failed"})

        database.rpc.side_effect = rpc
        functions.invoke.return_value = ServiceResult.failure_result("EXTERNAL_SERVICE_ERROR", "Twilio error")

        summary = ReminderDispatcher(service, notifications, functions).run("1h", now=MORNING_UTC).data

        assert summary.sent == 0
        assert summary.failed == 1

    def test_lookup_failure_fails_run(self, service, database, functions, notifications):
        database.rpc.return_value = ServiceResult.failure_result("DATABASE_ERROR", "timeout")

        result = ReminderDispatcher(service, notifications, functions).run("15m")

        assert result.error_code == "DATABASE_ERROR"
