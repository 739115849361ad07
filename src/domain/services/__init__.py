"""Domain Services.

One service per feature area. Services depend only on the ports in
``src.domain.ports`` and return ``ServiceResult`` envelopes; adapters are
injected by the composition root (``src.main``).
"""

from src.domain.services.appointment_reminders import AppointmentReminderService, ReminderDispatcher
from src.domain.services.bed_management import BedManagementService
from src.domain.services.law_enforcement import LawEnforcementService
from src.domain.services.notifications import NotificationService
from src.domain.services.transfer_center import TransferCenterService

__all__ = [
    'AppointmentReminderService',
    'BedManagementService',
    'LawEnforcementService',
    'NotificationService',
    'ReminderDispatcher',
    'TransferCenterService',
]
