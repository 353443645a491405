"""Configuration Manager for Secure Credential Handling.

This module provides a configuration manager for the database location, the
dead-letter queue backend, reconciler tuning, the webhook shared secret, the
analytics sink and the suggestion engine. Secrets are held as SecretStr so
they never appear in logs or reprs.

Security Impact:
    - The webhook secret, Redis URL and API tokens are never logged
    - Configuration is validated before use (fail fast)
    - An absent webhook secret is representable and makes every webhook call unauthorized

Architecture:
    - Infrastructure layer isolated from domain
    - Type-safe configuration using Pydantic models
    - Environment variables (with .env support) or a JSON file as sources
"""

import json
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "CC_"

# Relative to the working directory; ":memory:" keeps everything in-process
DEFAULT_DB_PATH = "clinical_coding.duckdb"


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None and v != ""}


class DatabaseConfig(BaseModel):
    """DuckDB location.

    Parameters:
        db_path: Path to database file, or ':memory:'
    """

    db_type: str = Field("duckdb", description="Database type")
    db_path: Optional[str] = Field(DEFAULT_DB_PATH, description="Path to database file")

    @field_validator("db_type")
    @classmethod
    def validate_db_type(cls, v: str) -> str:
        """Validate database type."""
        if v.lower() != "duckdb":
            raise ValueError(f"Unsupported database type: {v}. Supported: ['duckdb']")
        return v.lower()

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate the parent directory exists (the file may not exist yet)."""
        if v is None or v == ":memory:":
            return v
        db_path_obj = Path(v)
        if not db_path_obj.parent.exists():
            raise ValueError(f"Database directory does not exist: {db_path_obj.parent}")
        return str(db_path_obj)


class QueueConfig(BaseModel):
    """Dead-letter queue backend selection and delivery tuning.

    Parameters:
        provider: 'durable' (DuckDB table with visibility timeout) or 'broker' (Redis Streams)
        queue_name: Table key or stream name
        visibility_timeout_seconds: How long a received message stays hidden
        retry_delay_seconds: Wait before a failed message is redelivered
        max_attempts: Deliveries before a failing message is quarantined
        poll_interval_seconds: Consumer sleep when the queue is empty
        redis_url: Redis connection URL (secret)
    """

    provider: str = Field("durable", description="durable | broker")
    queue_name: str = Field("deadletters", min_length=1)
    visibility_timeout_seconds: float = Field(60.0, gt=0)
    retry_delay_seconds: float = Field(600.0, ge=0)
    max_attempts: int = Field(5, ge=1)
    poll_interval_seconds: float = Field(5.0, gt=0)
    redis_url: Optional[SecretStr] = Field(None, description="Redis URL (secret)")

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        supported = ["durable", "broker"]
        if v.lower() not in supported:
            raise ValueError(f"Unsupported queue provider: {v}. Supported: {supported}")
        return v.lower()


class ReconcileSettings(BaseModel):
    """Reconciler tuning.

    Parameters:
        min_interval_minutes: Debounce window between applied re-suggestions
        serialize_per_episode: Serialise reconciliations of the same episode in-process
        resuggest_on_replay: Dead-letter replays run the full reconciliation
        strict_transitions: Enforce Draft -> Submitted -> Approved/Rejected
    """

    min_interval_minutes: float = Field(5.0, ge=0)
    serialize_per_episode: bool = True
    resuggest_on_replay: bool = False
    strict_transitions: bool = False

    @property
    def min_interval(self) -> timedelta:
        return timedelta(minutes=self.min_interval_minutes)


class WebhookConfig(BaseModel):
    """Shared secret for signed webhook calls."""

    flow_secret: Optional[SecretStr] = Field(None, description="HMAC shared secret (secret)")

    def secret_bytes(self) -> Optional[bytes]:
        if self.flow_secret is None:
            return None
        value = self.flow_secret.get_secret_value()
        return value.encode("utf-8") if value else None


class AnalyticsConfig(BaseModel):
    """Best-effort analytics sink.

    Parameters:
        provider: 'none', 'http' (push-rows API) or 'duckdb' (local table)
        url: Base URL of the push-rows API
        token: Bearer token for the API (secret)
        timeout_seconds: Upper bound on one push
        table: Destination table for delta rows
    """

    provider: str = Field("none")
    url: Optional[str] = None
    token: Optional[SecretStr] = None
    timeout_seconds: float = Field(10.0, gt=0)
    table: str = Field("SuggestionDeltas", min_length=1)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        supported = ["none", "http", "duckdb"]
        if v.lower() not in supported:
            raise ValueError(f"Unsupported analytics provider: {v}. Supported: {supported}")
        return v.lower()


class SuggestionConfig(BaseModel):
    """Suggestion engine selection.

    Parameters:
        provider: 'rule' (keyword rules) or 'http' (model endpoint with the rules as fallback)
        url: Endpoint accepting a narrative and returning code sets
        token: Bearer token for the endpoint (secret)
        timeout_seconds: Upper bound on one suggestion call
    """

    provider: str = Field("rule")
    url: Optional[str] = None
    token: Optional[SecretStr] = None
    timeout_seconds: float = Field(30.0, gt=0)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        supported = ["rule", "http"]
        if v.lower() not in supported:
            raise ValueError(f"Unsupported suggestion provider: {v}. Supported: {supported}")
        return v.lower()


class ConfigManager:
    """Configuration manager for workflow settings and secrets.

    Example Usage:
        ```python
        # Load from environment variables
        config = ConfigManager.from_environment()
        queue_config = config.get_queue_config()

        # Load from file
        config = ConfigManager.from_file("config.json")
        db_config = config.get_database_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        self._config_data = config_data
        self._database_config: Optional[DatabaseConfig] = None
        self._queue_config: Optional[QueueConfig] = None
        self._reconcile_settings: Optional[ReconcileSettings] = None
        self._webhook_config: Optional[WebhookConfig] = None
        self._analytics_config: Optional[AnalyticsConfig] = None
        self._suggestion_config: Optional[SuggestionConfig] = None

    @classmethod
    def from_environment(cls, env_file: Optional[str] = None) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - CC_DB_PATH: DuckDB file (default ./clinical_coding.duckdb, or ":memory:")
            - CC_QUEUE_PROVIDER, CC_QUEUE_NAME, CC_QUEUE_VISIBILITY_TIMEOUT,
              CC_QUEUE_RETRY_DELAY, CC_QUEUE_MAX_ATTEMPTS, CC_QUEUE_POLL_INTERVAL
            - CC_REDIS_URL: Redis URL for the broker backend (secret)
            - CC_RESUGGEST_MIN_INTERVAL_MINUTES, CC_RESUGGEST_SERIALIZE,
              CC_RESUGGEST_ON_REPLAY, CC_STRICT_TRANSITIONS
            - CC_WEBHOOK_FLOW_SECRET: HMAC shared secret (secret)
            - CC_ANALYTICS_PROVIDER, CC_ANALYTICS_URL, CC_ANALYTICS_TOKEN (secret),
              CC_ANALYTICS_TIMEOUT, CC_ANALYTICS_TABLE
            - CC_SUGGESTION_PROVIDER, CC_SUGGESTION_URL, CC_SUGGESTION_TOKEN (secret),
              CC_SUGGESTION_TIMEOUT

        A .env file in the working directory (or ``env_file``) is loaded first;
        variables already set in the environment win.
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment variables from {env_path}")

        config_data = {
            "database": _drop_none({
                "db_path": os.getenv(f"{ENV_PREFIX}DB_PATH"),
            }),
            "queue": _drop_none({
                "provider": os.getenv(f"{ENV_PREFIX}QUEUE_PROVIDER"),
                "queue_name": os.getenv(f"{ENV_PREFIX}QUEUE_NAME"),
                "visibility_timeout_seconds": os.getenv(f"{ENV_PREFIX}QUEUE_VISIBILITY_TIMEOUT"),
                "retry_delay_seconds": os.getenv(f"{ENV_PREFIX}QUEUE_RETRY_DELAY"),
                "max_attempts": os.getenv(f"{ENV_PREFIX}QUEUE_MAX_ATTEMPTS"),
                "poll_interval_seconds": os.getenv(f"{ENV_PREFIX}QUEUE_POLL_INTERVAL"),
                "redis_url": os.getenv(f"{ENV_PREFIX}REDIS_URL"),
            }),
            "reconcile": _drop_none({
                "min_interval_minutes": os.getenv(f"{ENV_PREFIX}RESUGGEST_MIN_INTERVAL_MINUTES"),
                "serialize_per_episode": _env_bool(f"{ENV_PREFIX}RESUGGEST_SERIALIZE"),
                "resuggest_on_replay": _env_bool(f"{ENV_PREFIX}RESUGGEST_ON_REPLAY"),
                "strict_transitions": _env_bool(f"{ENV_PREFIX}STRICT_TRANSITIONS"),
            }),
            "webhook": _drop_none({
                "flow_secret": os.getenv(f"{ENV_PREFIX}WEBHOOK_FLOW_SECRET"),
            }),
            "analytics": _drop_none({
                "provider": os.getenv(f"{ENV_PREFIX}ANALYTICS_PROVIDER"),
                "url": os.getenv(f"{ENV_PREFIX}ANALYTICS_URL"),
                "token": os.getenv(f"{ENV_PREFIX}ANALYTICS_TOKEN"),
                "timeout_seconds": os.getenv(f"{ENV_PREFIX}ANALYTICS_TIMEOUT"),
                "table": os.getenv(f"{ENV_PREFIX}ANALYTICS_TABLE"),
            }),
            "suggestion": _drop_none({
                "provider": os.getenv(f"{ENV_PREFIX}SUGGESTION_PROVIDER"),
                "url": os.getenv(f"{ENV_PREFIX}SUGGESTION_URL"),
                "token": os.getenv(f"{ENV_PREFIX}SUGGESTION_TOKEN"),
                "timeout_seconds": os.getenv(f"{ENV_PREFIX}SUGGESTION_TIMEOUT"),
            }),
        }

        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file with the same sections as the environment.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        # Files may hold the webhook secret
        stat_info = config_file.stat()
        if stat_info.st_mode & 0o077 != 0:
            logger.warning(
                f"Configuration file has overly permissive permissions: {config_path}. "
                "Consider setting to 600 for credential files."
            )

        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        return cls(config_data)

    def get_database_config(self) -> DatabaseConfig:
        if self._database_config is None:
            self._database_config = DatabaseConfig(**self._config_data.get("database", {}))
        return self._database_config

    def get_queue_config(self) -> QueueConfig:
        if self._queue_config is None:
            self._queue_config = QueueConfig(**self._config_data.get("queue", {}))
        return self._queue_config

    def get_reconcile_settings(self) -> ReconcileSettings:
        if self._reconcile_settings is None:
            self._reconcile_settings = ReconcileSettings(**self._config_data.get("reconcile", {}))
        return self._reconcile_settings

    def get_webhook_config(self) -> WebhookConfig:
        if self._webhook_config is None:
            self._webhook_config = WebhookConfig(**self._config_data.get("webhook", {}))
        return self._webhook_config

    def get_analytics_config(self) -> AnalyticsConfig:
        if self._analytics_config is None:
            self._analytics_config = AnalyticsConfig(**self._config_data.get("analytics", {}))
        return self._analytics_config

    def get_suggestion_config(self) -> SuggestionConfig:
        if self._suggestion_config is None:
            self._suggestion_config = SuggestionConfig(**self._config_data.get("suggestion", {}))
        return self._suggestion_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key (e.g. "queue.provider")."""
        keys = key.split(".")
        value = self._config_data

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


# ============================================================================
# Convenience Functions
# ============================================================================

def get_database_config() -> DatabaseConfig:
    """Database configuration from the environment."""
    return ConfigManager.from_environment().get_database_config()
