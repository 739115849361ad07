"""Appointment Reminder Models.

Reminder preferences, appointments due for a reminder, delivery results and
the reminder log. Times are kept as ISO strings or aware datetimes; the
patient's IANA timezone drives formatting and do-not-disturb checks.
"""

from datetime import datetime
from typing import Literal, Optional

from src.domain.schema import CamelModel

ReminderType = Literal["24h", "1h", "15m"]
ReminderStatus = Literal["pending", "sent", "partial", "failed", "skipped"]

REMINDER_TYPES = ("24h", "1h", "15m")
DEFAULT_TIMEZONE = "America/Chicago"


class ReminderPreferences(CamelModel):
    user_id: str = ""
    reminder_24h_enabled: bool = True
    reminder_1h_enabled: bool = True
    reminder_15m_enabled: bool = False
    sms_enabled: bool = True
    push_enabled: bool = True
    email_enabled: bool = False
    dnd_start_time: Optional[str] = None
    dnd_end_time: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE


class ReminderPreferencesUpdate(CamelModel):
    """Partial update; unset fields keep their stored value."""

    reminder_24h_enabled: Optional[bool] = None
    reminder_1h_enabled: Optional[bool] = None
    reminder_15m_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    dnd_start_time: Optional[str] = None
    dnd_end_time: Optional[str] = None
    timezone: Optional[str] = None


class AppointmentNeedingReminder(CamelModel):
    appointment_id: str
    patient_id: str
    patient_name: str = ""
    patient_phone: Optional[str] = None
    patient_email: Optional[str] = None
    provider_name: str = ""
    appointment_time: datetime
    duration_minutes: int = 30
    encounter_type: str = "outpatient"
    reason_for_visit: Optional[str] = None
    tenant_id: Optional[str] = None
    sms_enabled: bool = False
    push_enabled: bool = False
    email_enabled: bool = False
    dnd_start_time: Optional[str] = None
    dnd_end_time: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE


class ReminderSendResult(CamelModel):
    sms_sent: bool = False
    sms_sid: Optional[str] = None
    push_sent: bool = False
    email_sent: bool = False


class ReminderLogEntry(CamelModel):
    id: str
    appointment_id: str
    patient_id: str = ""
    reminder_type: ReminderType
    sms_sent: bool = False
    sms_sid: Optional[str] = None
    sms_status: Optional[str] = None
    push_sent: bool = False
    push_status: Optional[str] = None
    email_sent: bool = False
    email_status: Optional[str] = None
    status: ReminderStatus = "pending"
    skip_reason: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ReminderRunSummary(CamelModel):
    """Outcome of one reminder dispatch run."""

    reminder_type: ReminderType
    found: int = 0
    sent: int = 0
    skipped_dnd: int = 0
    failed: int = 0
