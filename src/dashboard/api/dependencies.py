"""Dependency injection for the CareOps API.

This module provides dependency injection functions for FastAPI. Adapters
and services are built once by the composition root (``src.main``) and
cached; routes receive individual services through the ``*Dep`` aliases so
tests can override any one of them with ``app.dependency_overrides``.
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from src.adapters.llm import AnthropicRouter
from src.domain.ports import DatabasePort
from src.domain.services import (
    AppointmentReminderService,
    BedManagementService,
    LawEnforcementService,
    NotificationService,
    ReminderDispatcher,
    TransferCenterService,
)
from src.domain.skills import (
    AccuracyTracker,
    BedOptimizer,
    BillingCodeSuggester,
    CarePlanGenerator,
    FallRiskPredictor,
    HL7Interpreter,
    WelfareCheckDispatcher,
)
from src.main import ServiceContainer

logger = logging.getLogger(__name__)


@lru_cache()
def get_container() -> ServiceContainer:
    """Get the service container (cached).

    Raises:
        ValueError: If the configured database type is unsupported

    Security Impact:
        - Uses the secure configuration manager; credentials stay in SecretStr
    """
    logger.debug("Building service container from settings")
    return ServiceContainer.from_settings()


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


def get_database(container: ContainerDep) -> DatabasePort:
    return container.database


def get_llm_router(container: ContainerDep) -> AnthropicRouter:
    return container.llm


def get_bed_service(container: ContainerDep) -> BedManagementService:
    return container.beds


def get_transfer_service(container: ContainerDep) -> TransferCenterService:
    return container.transfers


def get_law_enforcement_service(container: ContainerDep) -> LawEnforcementService:
    return container.law_enforcement


def get_notification_service(container: ContainerDep) -> NotificationService:
    return container.notifications


def get_reminder_service(container: ContainerDep) -> AppointmentReminderService:
    return container.reminders


def get_reminder_dispatcher(container: ContainerDep) -> ReminderDispatcher:
    return container.reminder_dispatcher


def get_accuracy_tracker(container: ContainerDep) -> AccuracyTracker:
    return container.tracker


def get_fall_risk_predictor(container: ContainerDep) -> FallRiskPredictor:
    return container.fall_risk


def get_care_plan_generator(container: ContainerDep) -> CarePlanGenerator:
    return container.care_plans


def get_billing_suggester(container: ContainerDep) -> BillingCodeSuggester:
    return container.billing


def get_hl7_interpreter(container: ContainerDep) -> HL7Interpreter:
    return container.hl7


def get_bed_optimizer(container: ContainerDep) -> BedOptimizer:
    return container.bed_optimizer


def get_welfare_dispatcher(container: ContainerDep) -> WelfareCheckDispatcher:
    return container.welfare_dispatch


DatabaseDep = Annotated[DatabasePort, Depends(get_database)]
LLMRouterDep = Annotated[AnthropicRouter, Depends(get_llm_router)]
BedServiceDep = Annotated[BedManagementService, Depends(get_bed_service)]
TransferServiceDep = Annotated[TransferCenterService, Depends(get_transfer_service)]
LawEnforcementDep = Annotated[LawEnforcementService, Depends(get_law_enforcement_service)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
ReminderServiceDep = Annotated[AppointmentReminderService, Depends(get_reminder_service)]
ReminderDispatcherDep = Annotated[ReminderDispatcher, Depends(get_reminder_dispatcher)]
AccuracyTrackerDep = Annotated[AccuracyTracker, Depends(get_accuracy_tracker)]
FallRiskDep = Annotated[FallRiskPredictor, Depends(get_fall_risk_predictor)]
CarePlanDep = Annotated[CarePlanGenerator, Depends(get_care_plan_generator)]
BillingDep = Annotated[BillingCodeSuggester, Depends(get_billing_suggester)]
HL7InterpreterDep = Annotated[HL7Interpreter, Depends(get_hl7_interpreter)]
BedOptimizerDep = Annotated[BedOptimizer, Depends(get_bed_optimizer)]
WelfareDispatcherDep = Annotated[WelfareCheckDispatcher, Depends(get_welfare_dispatcher)]
