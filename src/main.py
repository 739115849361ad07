"""Composition root for CareOps.

Builds the configured adapters (database, remote functions, language model,
Slack) and wires every domain service and AI skill on top of them. The API
and the CLI both obtain their services from here.

Security Impact:
    - Credentials come from the configuration manager (SecretStr) and are
      never logged; only the store type and host are
    - Remote functions are only reachable through the hosted platform;
      other stores get a FunctionsPort that refuses every call

Architecture:
    - Follows Hexagonal Architecture principles
    - Adapters are selected from ``DatabaseConfig.db_type``
    - Services and skills depend on ports only; this module is the single
      place where concrete adapters are chosen
"""

import logging
from typing import Optional

from src.adapters.database import (
    DuckDBAdapter,
    HostedDatabaseAdapter,
    OfflineFunctions,
    PostgreSQLAdapter,
)
from src.adapters.llm import AnthropicRouter
from src.adapters.notifications import SlackWebhookChannel
from src.domain.ports import DatabasePort, FunctionsPort, LLMRouterPort
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
from src.infrastructure.config_manager import DatabaseConfig, LLMConfig, NotificationConfig
from src.infrastructure.settings import settings

logger = logging.getLogger(__name__)


def create_database_adapter(db_config: Optional[DatabaseConfig] = None) -> DatabasePort:
    """Create the database adapter for the configured store.

    Raises:
        ValueError: If the database type is unsupported
    """
    db_config = db_config or settings.db_config

    if db_config.db_type == "hosted":
        logger.info(f"Using hosted database at {db_config.url}")
        return HostedDatabaseAdapter(db_config)
    elif db_config.db_type == "postgresql":
        logger.info(f"Using PostgreSQL database on host {db_config.host or '(connection string)'}")
        return PostgreSQLAdapter(db_config=db_config)
    elif db_config.db_type == "duckdb":
        logger.info(f"Using DuckDB database at {db_config.db_path or ':memory:'}")
        adapter = DuckDBAdapter(db_config=db_config)
        adapter.initialize_schema()
        return adapter
    else:
        raise ValueError(f"Unsupported database type: {db_config.db_type}")


def create_functions_port(database: DatabasePort) -> FunctionsPort:
    """The hosted adapter doubles as the functions port; other stores go offline."""
    if isinstance(database, FunctionsPort):
        return database
    return OfflineFunctions(getattr(database, "db_type", "local"))


def create_llm_router(llm_config: Optional[LLMConfig] = None) -> AnthropicRouter:
    llm_config = llm_config or settings.llm_config
    if not llm_config.is_configured:
        logger.warning("Language model API key is not configured; AI skills will use fallbacks or fail")
    return AnthropicRouter(llm_config)


def create_slack_channel(config: Optional[NotificationConfig] = None) -> Optional[SlackWebhookChannel]:
    config = config or settings.notification_config
    if not config.slack_configured:
        return None
    return SlackWebhookChannel(config)


class ServiceContainer:
    """All services and skills built over one set of adapters.

    Example Usage:
        ```python
        container = ServiceContainer.from_settings()
        board = container.beds.get_bed_board(unit_id=unit_id)
        report = container.bed_optimizer.generate_optimization_report(tenant_id)
        container.close()
        ```
    """

    def __init__(
        self,
        database: DatabasePort,
        functions: FunctionsPort,
        llm: LLMRouterPort,
        slack: Optional[SlackWebhookChannel] = None
    ):
        self.database = database
        self.functions = functions
        self.llm = llm
        self.slack = slack

        # Services
        self.beds = BedManagementService(database, functions)
        self.transfers = TransferCenterService(database)
        self.law_enforcement = LawEnforcementService(database, functions)
        self.notifications = NotificationService(database, functions, slack=slack)
        self.reminders = AppointmentReminderService(database)
        self.reminder_dispatcher = ReminderDispatcher(self.reminders, self.notifications, functions)

        # AI skills
        self.tracker = AccuracyTracker(database)
        self.fall_risk = FallRiskPredictor(database, llm, self.tracker)
        self.care_plans = CarePlanGenerator(database, llm, self.tracker)
        self.billing = BillingCodeSuggester(database, llm, self.tracker)
        self.hl7 = HL7Interpreter(database, llm, self.tracker)
        self.bed_optimizer = BedOptimizer(database, llm, self.tracker)
        self.welfare_dispatch = WelfareCheckDispatcher(database, llm, self.tracker)

    @classmethod
    def from_settings(cls) -> 'ServiceContainer':
        database = create_database_adapter()
        return cls(
            database=database,
            functions=create_functions_port(database),
            llm=create_llm_router(),
            slack=create_slack_channel(),
        )

    def close(self) -> None:
        """Release adapter connections (database, model client, webhook client)."""
        for resource in (self.llm, self.slack):
            close = getattr(resource, "close", None)
            if close is not None:
                close()
        self.database.close()
