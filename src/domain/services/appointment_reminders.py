"""Appointment Reminder Service.

Reminder preferences (timing, channels, do-not-disturb window), selection of
appointments due for a 24h / 1h / 15m reminder, delivery logging and the
batch dispatcher that sends due reminders.

Security Impact:
    - Reminder text carries only first name, provider and time
    - Preference changes and sent reminders are audited

Architecture:
    - ``AppointmentReminderService`` wraps the reminder rpc functions
    - Pure helpers (DND window, formatting, message text) are module functions
    - ``ReminderDispatcher`` is the batch job run by the CLI
"""

import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.domain.appointment_models import (
    DEFAULT_TIMEZONE,
    REMINDER_TYPES,
    AppointmentNeedingReminder,
    ReminderLogEntry,
    ReminderPreferences,
    ReminderPreferencesUpdate,
    ReminderRunSummary,
    ReminderSendResult,
)
from src.domain.guardrails import validate_enum
from src.domain.notification_models import NotificationTarget
from src.domain.ports import (
    DatabasePort,
    ErrorCode,
    FunctionsPort,
    ServiceResult,
    TableQuery,
    ValidationError,
)
from src.domain.utils import first_name, format_long_date, format_time, utc_now
from src.infrastructure.audit import AuditLogger

logger = logging.getLogger(__name__)

REMINDER_LOG_TABLE = "appointment_reminder_log"


# ============================================================================
# Pure helpers
# ============================================================================

def _minutes_of_day(value: str) -> int:
    hour, minute = value.split(":")[:2]
    return int(hour) * 60 + int(minute)


def is_in_dnd_window(
    dnd_start_time: Optional[str],
    dnd_end_time: Optional[str],
    tz_name: str = DEFAULT_TIMEZONE,
    now: Optional[datetime] = None
) -> bool:
    """Return True if ``now`` (in the user's timezone) falls inside the DND window.

    Windows are "HH:MM" strings; a start later than the end spans midnight
    (e.g. 22:00-08:00). Start is inclusive, end exclusive. Malformed values
    or unknown timezones never block a reminder.
    """
    if not dnd_start_time or not dnd_end_time:
        return False

    try:
        local = (now or utc_now()).astimezone(ZoneInfo(tz_name))
        start = _minutes_of_day(dnd_start_time)
        end = _minutes_of_day(dnd_end_time)
    except (ValueError, ZoneInfoNotFoundError):
        return False

    current = local.hour * 60 + local.minute
    if start > end:
        return current >= start or current < end
    return start <= current < end


def format_appointment_for_reminder(appointment_time: datetime, tz_name: str = DEFAULT_TIMEZONE) -> dict:
    """Return ``{"date": "Monday, January 5, 2026", "time": "2:30 PM"}`` in the given timezone."""
    local = appointment_time.astimezone(ZoneInfo(tz_name))
    return {"date": format_long_date(local), "time": format_time(local)}


def generate_reminder_message(
    reminder_type: str,
    patient_name: str,
    provider_name: str,
    appointment_date: str,
    appointment_time: str
) -> str:
    name = first_name(patient_name)
    if reminder_type == "24h":
        return (
            f"Hi {name}, this is a reminder that you have a telehealth appointment tomorrow with "
            f"{provider_name} at {appointment_time}. Please ensure you have a stable internet "
            f"connection and a quiet space for your visit."
        )
    if reminder_type == "1h":
        return (
            f"Hi {name}, your telehealth appointment with {provider_name} is in 1 hour at "
            f"{appointment_time}. Please be ready to join the video call."
        )
    if reminder_type == "15m":
        return (
            f"Hi {name}, your telehealth appointment with {provider_name} starts in 15 minutes. "
            f"Please join the video call now."
        )
    return (
        f"Hi {name}, you have a telehealth appointment with {provider_name} on "
        f"{appointment_date} at {appointment_time}."
    )


def _first_row(data):
    if isinstance(data, list):
        return data[0] if data else None
    return data


# ============================================================================
# Service
# ============================================================================

class AppointmentReminderService:
    """Reminder preferences and reminder bookkeeping."""

    def __init__(self, database: DatabasePort, audit_logger: Optional[AuditLogger] = None):
        self.database = database
        self.audit = audit_logger or AuditLogger(database, category="CLINICAL")

    def _db_failure(self, event_type: str, result: ServiceResult, details: dict) -> ServiceResult:
        self.audit.error(event_type, result.error.message, details)
        return ServiceResult.from_failure(result)

    def _unexpected(self, event_type: str, error: Exception, message: str, details: dict) -> ServiceResult:
        logger.error(f"{message}: {error}")
        self.audit.error(event_type, error, details)
        return ServiceResult.failure_result(ErrorCode.UNKNOWN_ERROR, message)

    def get_reminder_preferences(self, user_id: Optional[str] = None) -> ServiceResult[ReminderPreferences]:
        """Stored preferences, or the defaults when the user has none."""
        details = {"userId": user_id}
        try:
            result = self.database.rpc("get_user_reminder_preferences", {"p_user_id": user_id})
            if result.is_failure():
                return self._db_failure("GET_REMINDER_PREFERENCES_FAILED", result, details)

            row = _first_row(result.data)
            if not row:
                return ServiceResult.success_result(ReminderPreferences(user_id=user_id or ""))

            return ServiceResult.success_result(ReminderPreferences(
                user_id=str(row.get("user_id") or ""),
                reminder_24h_enabled=row.get("reminder_24h_enabled") is True,
                reminder_1h_enabled=row.get("reminder_1h_enabled") is True,
                reminder_15m_enabled=row.get("reminder_15m_enabled") is True,
                sms_enabled=row.get("sms_enabled") is True,
                push_enabled=row.get("push_enabled") is True,
                email_enabled=row.get("email_enabled") is True,
                dnd_start_time=str(row["dnd_start_time"]) if row.get("dnd_start_time") else None,
                dnd_end_time=str(row["dnd_end_time"]) if row.get("dnd_end_time") else None,
                timezone=str(row.get("timezone") or DEFAULT_TIMEZONE),
            ))
        except Exception as e:
            return self._unexpected("GET_REMINDER_PREFERENCES_FAILED", e, "Failed to get reminder preferences", details)

    def update_reminder_preferences(
        self,
        preferences: ReminderPreferencesUpdate,
        user_id: Optional[str] = None
    ) -> ServiceResult[dict]:
        """Apply a partial update; unset fields keep their stored value."""
        changes = sorted(preferences.model_dump(exclude_none=True))
        details = {"userId": user_id, "changes": changes}
        if preferences.timezone:
            try:
                ZoneInfo(preferences.timezone)
            except (ValueError, ZoneInfoNotFoundError):
                return ServiceResult.failure_result(
                    ErrorCode.INVALID_INPUT, f"Invalid timezone: {preferences.timezone}"
                )

        params = {f"p_{name}": value for name, value in preferences.model_dump().items()}
        params["p_user_id"] = user_id
        try:
            result = self.database.rpc("update_user_reminder_preferences", params)
            if result.is_failure():
                return self._db_failure("UPDATE_REMINDER_PREFERENCES_FAILED", result, details)

            payload = result.data or {}
            if payload.get("success") is not True:
                return ServiceResult.failure_result(
                    ErrorCode.OPERATION_FAILED, str(payload.get("error") or "Failed to update preferences")
                )

            self.audit.info("REMINDER_PREFERENCES_UPDATED", details)
            return ServiceResult.success_result({"updated": True})
        except Exception as e:
            return self._unexpected(
                "UPDATE_REMINDER_PREFERENCES_FAILED", e, "Failed to update reminder preferences", details
            )

    def get_appointments_needing_reminders(
        self,
        reminder_type: str,
        batch_size: int = 100
    ) -> ServiceResult[list[AppointmentNeedingReminder]]:
        details = {"reminderType": reminder_type, "batchSize": batch_size}
        try:
            validate_enum(reminder_type, REMINDER_TYPES, "reminderType")
        except ValidationError as e:
            return ServiceResult.failure_result(ErrorCode.INVALID_INPUT, e.message)

        try:
            result = self.database.rpc("get_appointments_needing_reminders", {
                "p_reminder_type": reminder_type,
                "p_batch_size": batch_size,
            })
            if result.is_failure():
                return self._db_failure("GET_APPOINTMENTS_NEEDING_REMINDERS_FAILED", result, details)

            appointments = [
                AppointmentNeedingReminder(
                    appointment_id=str(row.get("appointment_id") or ""),
                    patient_id=str(row.get("patient_id") or ""),
                    patient_name=str(row.get("patient_name") or ""),
                    patient_phone=row.get("patient_phone") or None,
                    patient_email=row.get("patient_email") or None,
                    provider_name=str(row.get("provider_name") or ""),
                    appointment_time=row["appointment_time"],
                    duration_minutes=int(row.get("duration_minutes") or 30),
                    encounter_type=str(row.get("encounter_type") or "outpatient"),
                    reason_for_visit=row.get("reason_for_visit") or None,
                    tenant_id=row.get("tenant_id") or None,
                    sms_enabled=row.get("sms_enabled") is True,
                    push_enabled=row.get("push_enabled") is True,
                    email_enabled=row.get("email_enabled") is True,
                    dnd_start_time=str(row["dnd_start_time"]) if row.get("dnd_start_time") else None,
                    dnd_end_time=str(row["dnd_end_time"]) if row.get("dnd_end_time") else None,
                    timezone=str(row.get("timezone") or DEFAULT_TIMEZONE),
                )
                for row in result.data or []
            ]
            return ServiceResult.success_result(appointments)
        except Exception as e:
            return self._unexpected(
                "GET_APPOINTMENTS_NEEDING_REMINDERS_FAILED", e, "Failed to get appointments needing reminders", details
            )

    def mark_reminder_sent(
        self,
        appointment_id: str,
        reminder_type: str,
        result: ReminderSendResult
    ) -> ServiceResult[dict]:
        """Log delivery; the database derives sent / partial / failed from channel flags."""
        details = {"appointmentId": appointment_id, "reminderType": reminder_type}
        try:
            response = self.database.rpc("mark_reminder_sent", {
                "p_appointment_id": appointment_id,
                "p_reminder_type": reminder_type,
                "p_sms_sent": result.sms_sent,
                "p_sms_sid": result.sms_sid,
                "p_push_sent": result.push_sent,
                "p_email_sent": result.email_sent,
            })
            if response.is_failure():
                return self._db_failure("MARK_REMINDER_SENT_FAILED", response, details)

            payload = response.data or {}
            if payload.get("success") is not True:
                return ServiceResult.failure_result(
                    ErrorCode.OPERATION_FAILED, str(payload.get("error") or "Failed to mark reminder sent")
                )

            self.audit.info("APPOINTMENT_REMINDER_SENT", {
                **details,
                "smsSent": result.sms_sent,
                "pushSent": result.push_sent,
                "emailSent": result.email_sent,
                "status": payload.get("status"),
            })
            return ServiceResult.success_result({
                "log_id": str(payload.get("log_id") or ""),
                "status": str(payload.get("status") or "sent"),
            })
        except Exception as e:
            return self._unexpected("MARK_REMINDER_SENT_FAILED", e, "Failed to mark reminder as sent", details)

    def reset_appointment_reminders(self, appointment_id: str) -> ServiceResult[dict]:
        """Clear sent flags after an appointment is rescheduled."""
        details = {"appointmentId": appointment_id}
        try:
            result = self.database.rpc("reset_appointment_reminders", {"p_appointment_id": appointment_id})
            if result.is_failure():
                return self._db_failure("RESET_APPOINTMENT_REMINDERS_FAILED", result, details)

            self.audit.info("APPOINTMENT_REMINDERS_RESET", details)
            return ServiceResult.success_result({"reset": result.data is True})
        except Exception as e:
            return self._unexpected(
                "RESET_APPOINTMENT_REMINDERS_FAILED", e, "Failed to reset appointment reminders", details
            )

    def get_reminder_logs(self, appointment_id: str) -> ServiceResult[list[ReminderLogEntry]]:
        details = {"appointmentId": appointment_id}
        try:
            result = self.database.select(
                TableQuery(REMINDER_LOG_TABLE)
                .eq("appointment_id", appointment_id)
                .order("created_at", ascending=False)
            )
            if result.is_failure():
                return self._db_failure("GET_REMINDER_LOGS_FAILED", result, details)

            logs = [
                ReminderLogEntry.model_validate({
                    **row,
                    "patient_id": row.get("patient_id") or "",
                    "sms_sent": row.get("sms_sent") is True,
                    "push_sent": row.get("push_sent") is True,
                    "email_sent": row.get("email_sent") is True,
                })
                for row in result.data or []
            ]
            return ServiceResult.success_result(logs)
        except Exception as e:
            return self._unexpected("GET_REMINDER_LOGS_FAILED", e, "Failed to get reminder logs", details)


# ============================================================================
# Dispatcher
# ============================================================================

class ReminderDispatcher:
    """Sends due reminders of one type and records each delivery.

    SMS goes through the ``send-sms`` remote function and push through the
    notification service. Appointments inside the patient's do-not-disturb
    window are skipped and picked up by a later run.

    Example Usage:
        ```python
        dispatcher = ReminderDispatcher(reminders, notifications, functions)
        summary = dispatcher.run("1h")
        print(summary.sent, summary.skipped_dnd)
        ```
    """

    def __init__(self, reminders: AppointmentReminderService, notifications, functions: FunctionsPort):
        self.reminders = reminders
        self.notifications = notifications
        self.functions = functions

    def run(
        self,
        reminder_type: str,
        batch_size: int = 100,
        now: Optional[datetime] = None
    ) -> ServiceResult[ReminderRunSummary]:
        due = self.reminders.get_appointments_needing_reminders(reminder_type, batch_size)
        if due.is_failure():
            return ServiceResult.from_failure(due)

        summary = ReminderRunSummary(reminder_type=reminder_type, found=len(due.data))
        for appointment in due.data:
            if is_in_dnd_window(appointment.dnd_start_time, appointment.dnd_end_time, appointment.timezone, now):
                summary.skipped_dnd += 1
                continue

            outcome = self.deliver(appointment, reminder_type)
            marked = self.reminders.mark_reminder_sent(appointment.appointment_id, reminder_type, outcome)
            delivered = outcome.sms_sent or outcome.push_sent or outcome.email_sent
            if marked.is_success() and delivered:
                summary.sent += 1
            else:
                summary.failed += 1

        logger.info(
            f"Reminder run {reminder_type}: found={summary.found} sent={summary.sent} "
            f"skipped_dnd={summary.skipped_dnd} failed={summary.failed}"
        )
        return ServiceResult.success_result(summary)

    def deliver(self, appointment: AppointmentNeedingReminder, reminder_type: str) -> ReminderSendResult:
        formatted = format_appointment_for_reminder(appointment.appointment_time, appointment.timezone)
        message = generate_reminder_message(
            reminder_type,
            appointment.patient_name,
            appointment.provider_name,
            formatted["date"],
            formatted["time"],
        )
        outcome = ReminderSendResult()

        if appointment.sms_enabled and appointment.patient_phone:
            sms = self.functions.invoke("send-sms", {"to": appointment.patient_phone, "message": message})
            if sms.is_success():
                outcome.sms_sent = True
                outcome.sms_sid = (sms.data or {}).get("sid") if isinstance(sms.data, dict) else None
            else:
                logger.warning(f"SMS reminder failed for appointment {appointment.appointment_id}")

        if appointment.push_enabled:
            push = self.notifications.send_system_notification(
                NotificationTarget(user_id=appointment.patient_id, tenant_id=appointment.tenant_id),
                f"Appointment Reminder - {formatted['date']}",
                message,
                category="appointment",
                channels=["push"],
            )
            outcome.push_sent = push.is_success() and push.data.channel_results["push"].success

        return outcome
