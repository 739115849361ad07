"""Application Settings and Configuration.

This module provides application-wide settings that combine configuration
from the configuration manager with application-specific defaults.

Security Impact:
    - Settings are loaded from secure configuration sources
    - Sensitive values are never logged
    - Defaults are provided for development convenience
"""

import os
from typing import Optional

from src.infrastructure.config_manager import (
    ConfigManager,
    DatabaseConfig,
    LLMConfig,
    NotificationConfig,
)

# Application metadata
APP_NAME = "CareOps"
APP_VERSION = "1.0.0"

# Dashboards refresh on a fixed interval instead of holding a push subscription
DEFAULT_POLL_INTERVAL_SECONDS = 30

# Seniors assessed per welfare priority batch
DEFAULT_WELFARE_BATCH_SIZE = 50

# Appointments fetched per reminder run
DEFAULT_REMINDER_BATCH_SIZE = 100


class Settings:
    """Application settings loaded from configuration manager and environment.

    Security Impact:
        - Credentials are managed securely via the config models (SecretStr)
        - Settings are validated before use
        - Sensitive values are never exposed in logs
    """

    def __init__(self):
        """Initialize settings from environment (config sections load lazily)."""
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv("CO_APP_NAME", APP_NAME)
        self.app_version = APP_VERSION

        # Logging
        self.log_level = os.getenv("CO_LOG_LEVEL", "INFO")
        self.json_logs = os.getenv("CO_JSON_LOGS", "true").lower() == "true"

        # API server
        self.api_host = os.getenv("CO_API_HOST", "0.0.0.0")
        self.api_port = int(os.getenv("CO_API_PORT", "8000"))
        self.cors_origins = [
            origin.strip()
            for origin in os.getenv("CO_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
            if origin.strip()
        ]
        self.rate_limit_per_minute = int(os.getenv("CO_RATE_LIMIT_PER_MINUTE", "120"))

        # Dashboards and batch jobs
        self.poll_interval_seconds = int(os.getenv("CO_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL_SECONDS)))
        self.welfare_batch_size = int(os.getenv("CO_WELFARE_BATCH_SIZE", str(DEFAULT_WELFARE_BATCH_SIZE)))
        self.reminder_batch_size = int(os.getenv("CO_REMINDER_BATCH_SIZE", str(DEFAULT_REMINDER_BATCH_SIZE)))

        # Circuit breaker around the language model
        self.circuit_breaker_enabled = os.getenv("CO_CIRCUIT_BREAKER_ENABLED", "true").lower() == "true"

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def db_config(self) -> DatabaseConfig:
        """Database configuration, loaded lazily on first access."""
        return self.config_manager.get_database_config()

    @property
    def llm_config(self) -> LLMConfig:
        return self.config_manager.get_llm_config()

    @property
    def notification_config(self) -> NotificationConfig:
        return self.config_manager.get_notification_config()

    def get_db_path(self) -> str:
        """Get database path for DuckDB.

        Returns:
            Database path or ':memory:' for in-memory database
        """
        if self.db_config.db_type == "duckdb":
            return self.db_config.db_path or ":memory:"
        raise ValueError(f"Database type '{self.db_config.db_type}' does not use db_path")

    def get_connection_string(self) -> str:
        """Get database connection string.

        Security Impact:
            - Password is retrieved from SecretStr but not logged
        """
        return self.db_config.get_connection_string()


# Global settings instance
settings = Settings()
