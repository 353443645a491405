"""Application Settings and Configuration.

This module provides application-wide settings that combine configuration
from the configuration manager with application-specific defaults.

Security Impact:
    - Settings are loaded from secure configuration sources
    - Sensitive values are never logged
"""

import os
from typing import Optional

from clinical_coding.infrastructure.config_manager import (
    AnalyticsConfig,
    ConfigManager,
    DatabaseConfig,
    QueueConfig,
    ReconcileSettings,
    SuggestionConfig,
    WebhookConfig,
)

# Application metadata
APP_NAME = "Clinical Coding Workflow"
APP_VERSION = "0.1.0"

# Default page size for audit listings
DEFAULT_AUDIT_LIMIT = 200


class Settings:
    """Application settings loaded from configuration manager and environment.

    Configuration sections are loaded lazily on first access, so importing
    this module never fails on a bad environment.
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        self._config_manager = config_manager

        self.app_name = os.getenv("CC_APP_NAME", APP_NAME)
        self.log_level = os.getenv("CC_LOG_LEVEL", "INFO")
        self.json_logs = os.getenv("CC_JSON_LOGS", "false").lower() == "true"
        self.embedded_worker = os.getenv("CC_EMBEDDED_WORKER", "false").lower() == "true"
        self.cors_origins = [
            origin.strip()
            for origin in os.getenv("CC_CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def db_config(self) -> DatabaseConfig:
        return self.config_manager.get_database_config()

    @property
    def queue(self) -> QueueConfig:
        return self.config_manager.get_queue_config()

    @property
    def reconcile(self) -> ReconcileSettings:
        return self.config_manager.get_reconcile_settings()

    @property
    def webhook(self) -> WebhookConfig:
        return self.config_manager.get_webhook_config()

    @property
    def analytics(self) -> AnalyticsConfig:
        return self.config_manager.get_analytics_config()

    @property
    def suggestion(self) -> SuggestionConfig:
        return self.config_manager.get_suggestion_config()

    def get_db_path(self) -> str:
        """Database path or ':memory:' for an in-memory database."""
        return self.db_config.db_path or ":memory:"


# Global settings instance
settings = Settings()
