"""Display labels and colors for dashboard enums.

Each table maps an enum value to ``(label, hex color)``. The API exposes
them so dashboards render consistent badges; the CLI uses the labels.
"""

from typing import Optional

NEUTRAL_COLOR = "#6c757d"

BED_STATUS = {
    "available": ("Available", "#28a745"),
    "occupied": ("Occupied", "#007bff"),
    "dirty": ("Needs Cleaning", "#fd7e14"),
    "cleaning": ("Cleaning", "#ffc107"),
    "blocked": ("Blocked", "#6c757d"),
    "maintenance": ("Maintenance", "#6f42c1"),
    "reserved": ("Reserved", "#17a2b8"),
}

BED_TYPE = {
    "standard": ("Standard", "#007bff"),
    "icu": ("ICU", "#dc3545"),
    "step_down": ("Step-Down", "#fd7e14"),
    "telemetry": ("Telemetry", "#17a2b8"),
    "isolation": ("Isolation", "#ffc107"),
    "negative_pressure": ("Negative Pressure", "#e83e8c"),
    "bariatric": ("Bariatric", "#6f42c1"),
    "pediatric": ("Pediatric", "#20c997"),
    "labor_delivery": ("Labor & Delivery", "#e83e8c"),
}

TRANSFER_URGENCY = {
    "routine": ("Routine", "#28a745"),
    "urgent": ("Urgent", "#ffc107"),
    "emergent": ("Emergent", "#fd7e14"),
    "critical": ("Critical", "#dc3545"),
}

TRANSFER_STATUS = {
    "pending": ("Pending", "#ffc107"),
    "reviewing": ("Under Review", "#17a2b8"),
    "approved": ("Approved", "#28a745"),
    "denied": ("Denied", "#dc3545"),
    "scheduled": ("Scheduled", "#007bff"),
    "in_transit": ("In Transit", "#6f42c1"),
    "arrived": ("Arrived", "#20c997"),
    "completed": ("Completed", "#6c757d"),
    "cancelled": ("Cancelled", "#343a40"),
}

WELFARE_PRIORITY = {
    "routine": ("Routine", "#28a745"),
    "elevated": ("Elevated", "#ffc107"),
    "high": ("High", "#fd7e14"),
    "critical": ("Critical", "#dc3545"),
}

WELFARE_OUTCOME = {
    "safe": ("Safe", "#28a745"),
    "needs_assistance": ("Needs Assistance", "#ffc107"),
    "emergency_services_called": ("Emergency Services Called", "#dc3545"),
    "no_contact": ("No Contact", "#6c757d"),
}

CHECK_IN_STATUS = {
    "ok": ("OK", "#28a745"),
    "pending": ("Pending", "#6c757d"),
    "overdue": ("Overdue", "#fd7e14"),
    "critical": ("Critical", "#dc3545"),
}

RESPONSE_PRIORITY = {
    "standard": ("Standard (6+ hours)", "#28a745"),
    "high": ("High (4 hours)", "#fd7e14"),
    "critical": ("Critical (2 hours)", "#dc3545"),
}

NOTIFICATION_PRIORITY = {
    "low": ("Low", "#6c757d"),
    "normal": ("Normal", "#007bff"),
    "high": ("High", "#fd7e14"),
    "urgent": ("Urgent", "#dc3545"),
}

NOTIFICATION_CATEGORY = {
    "system": ("System", "#6c757d"),
    "security": ("Security", "#dc3545"),
    "clinical": ("Clinical", "#007bff"),
    "appointment": ("Appointment", "#17a2b8"),
    "medication": ("Medication", "#6f42c1"),
    "wellness": ("Wellness", "#28a745"),
    "alert": ("Alert", "#fd7e14"),
    "message": ("Message", "#20c997"),
}

FALL_RISK_CATEGORY = {
    "low": ("Low Risk", "#28a745"),
    "moderate": ("Moderate Risk", "#ffc107"),
    "high": ("High Risk", "#fd7e14"),
    "very_high": ("Very High Risk", "#dc3545"),
}

CAPACITY_RISK = {
    "low": ("Low", "#17a2b8"),
    "moderate": ("Moderate", "#28a745"),
    "high": ("High", "#fd7e14"),
    "critical": ("Critical", "#dc3545"),
}

REMINDER_TYPE = {
    "24h": ("24 Hours Before", "#007bff"),
    "1h": ("1 Hour Before", "#fd7e14"),
    "15m": ("15 Minutes Before", "#dc3545"),
}

REMINDER_STATUS = {
    "pending": ("Pending", "#6c757d"),
    "sent": ("Sent", "#28a745"),
    "partial": ("Partially Sent", "#ffc107"),
    "failed": ("Failed", "#dc3545"),
    "skipped": ("Skipped", "#6c757d"),
}

TABLES = {
    "bed_status": BED_STATUS,
    "bed_type": BED_TYPE,
    "transfer_urgency": TRANSFER_URGENCY,
    "transfer_status": TRANSFER_STATUS,
    "welfare_priority": WELFARE_PRIORITY,
    "welfare_outcome": WELFARE_OUTCOME,
    "check_in_status": CHECK_IN_STATUS,
    "response_priority": RESPONSE_PRIORITY,
    "notification_priority": NOTIFICATION_PRIORITY,
    "notification_category": NOTIFICATION_CATEGORY,
    "fall_risk_category": FALL_RISK_CATEGORY,
    "capacity_risk": CAPACITY_RISK,
    "reminder_type": REMINDER_TYPE,
    "reminder_status": REMINDER_STATUS,
}


def _fallback_label(key: Optional[str]) -> str:
    if not key:
        return "Unknown"
    return key.replace("_", " ").title()


def get_label(table: dict, key: Optional[str]) -> str:
    """Display label for key, or the title-cased key when unmapped."""
    entry = table.get(key) if key else None
    return entry[0] if entry else _fallback_label(key)


def get_color(table: dict, key: Optional[str]) -> str:
    """Hex color for key, or the neutral grey when unmapped."""
    entry = table.get(key) if key else None
    return entry[1] if entry else NEUTRAL_COLOR


def as_options(table: dict) -> list[dict]:
    """Render a table as ``[{"value", "label", "color"}]`` for select inputs."""
    return [{"value": key, "label": label, "color": color} for key, (label, color) in table.items()]
