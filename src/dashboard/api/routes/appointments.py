"""Appointment reminder endpoints: preferences, due reminders, dispatch runs and logs."""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from src.dashboard.api.dependencies import ReminderDispatcherDep, ReminderServiceDep
from src.dashboard.api.responses import respond
from src.dashboard.models.requests import ReminderRunBody
from src.domain.appointment_models import ReminderPreferencesUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/appointments", tags=["appointments"])

REMINDER_TYPE_PATTERN = "^(24h|1h|15m)$"


@router.get("/reminder-preferences")
def get_reminder_preferences(reminders: ReminderServiceDep, user_id: Optional[str] = Query(None, alias="userId")):
    """Stored reminder preferences (defaults when the user has none)."""
    return respond(reminders.get_reminder_preferences(user_id))


@router.put("/reminder-preferences")
def update_reminder_preferences(
    preferences: ReminderPreferencesUpdate,
    reminders: ReminderServiceDep,
    user_id: Optional[str] = Query(None, alias="userId"),
):
    return respond(reminders.update_reminder_preferences(preferences, user_id=user_id))


@router.get("/reminders/due")
def get_appointments_needing_reminders(
    reminders: ReminderServiceDep,
    reminder_type: str = Query(..., alias="reminderType", pattern=REMINDER_TYPE_PATTERN),
    batch_size: int = Query(100, alias="batchSize", ge=1, le=1000),
):
    return respond(reminders.get_appointments_needing_reminders(reminder_type, batch_size=batch_size))


@router.post("/reminders/run")
def run_reminders(body: ReminderRunBody, dispatcher: ReminderDispatcherDep):
    """Send one batch of due reminders of the given type."""
    return respond(dispatcher.run(body.reminder_type, batch_size=body.batch_size))


@router.get("/{appointment_id}/reminders")
def get_reminder_logs(appointment_id: str, reminders: ReminderServiceDep):
    return respond(reminders.get_reminder_logs(appointment_id))


@router.post("/{appointment_id}/reminders/reset")
def reset_appointment_reminders(appointment_id: str, reminders: ReminderServiceDep):
    """Clear sent flags after a reschedule so reminders go out again."""
    return respond(reminders.reset_appointment_reminders(appointment_id))
