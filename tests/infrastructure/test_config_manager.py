"""Tests for ConfigManager: environment and file sources, validation and secrets."""

import json
import os
from datetime import timedelta

import pytest
from pydantic import ValidationError

from clinical_coding.infrastructure.config_manager import ConfigManager


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Remove CC_ variables and run from an empty directory so no .env is picked up."""
    for name in list(os.environ):
        if name.startswith("CC_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestFromEnvironment:

    def test_defaults(self, clean_env):
        config = ConfigManager.from_environment()

        assert config.get_database_config().db_path == "clinical_coding.duckdb"
        assert config.get_queue_config().provider == "durable"
        assert config.get_queue_config().max_attempts == 5
        assert config.get_reconcile_settings().min_interval == timedelta(minutes=5)
        assert config.get_reconcile_settings().serialize_per_episode is True
        assert config.get_reconcile_settings().strict_transitions is False
        assert config.get_webhook_config().secret_bytes() is None
        assert config.get_analytics_config().provider == "none"
        assert config.get_suggestion_config().provider == "rule"

    def test_reads_prefixed_variables(self, clean_env):
        clean_env.setenv("CC_QUEUE_PROVIDER", "BROKER")
        clean_env.setenv("CC_REDIS_URL", "redis://cache:6379/0")
        clean_env.setenv("CC_QUEUE_MAX_ATTEMPTS", "7")
        clean_env.setenv("CC_RESUGGEST_MIN_INTERVAL_MINUTES", "0")
        clean_env.setenv("CC_RESUGGEST_SERIALIZE", "false")
        clean_env.setenv("CC_STRICT_TRANSITIONS", "yes")
        clean_env.setenv("CC_WEBHOOK_FLOW_SECRET", "s3cret")
        clean_env.setenv("CC_SUGGESTION_PROVIDER", "HTTP")
        clean_env.setenv("CC_SUGGESTION_URL", "https://coder.example/suggest")
        clean_env.setenv("CC_SUGGESTION_TIMEOUT", "5")

        config = ConfigManager.from_environment()
        queue = config.get_queue_config()
        reconcile = config.get_reconcile_settings()

        assert queue.provider == "broker"
        assert queue.max_attempts == 7
        assert queue.redis_url.get_secret_value() == "redis://cache:6379/0"
        assert reconcile.min_interval == timedelta(0)
        assert reconcile.serialize_per_episode is False
        assert reconcile.strict_transitions is True
        assert config.get_webhook_config().secret_bytes() == b"s3cret"
        suggestion = config.get_suggestion_config()
        assert (suggestion.provider, suggestion.url, suggestion.timeout_seconds) == (
            "http", "https://coder.example/suggest", 5.0
        )

    def test_env_file_is_loaded_without_overriding(self, clean_env, tmp_path):
        env_file = tmp_path / "workflow.env"
        # Registered with monkeypatch so the value loaded from the file is removed afterwards
        clean_env.setenv("CC_ANALYTICS_PROVIDER", "placeholder")
        clean_env.delenv("CC_ANALYTICS_PROVIDER")
        env_file.write_text("CC_ANALYTICS_PROVIDER=duckdb\nCC_QUEUE_NAME=from-file\n")
        clean_env.setenv("CC_QUEUE_NAME", "from-env")

        config = ConfigManager.from_environment(env_file=str(env_file))

        assert config.get_analytics_config().provider == "duckdb"
        assert config.get_queue_config().queue_name == "from-env"

    def test_secrets_are_masked(self, clean_env):
        clean_env.setenv("CC_WEBHOOK_FLOW_SECRET", "do-not-print")
        clean_env.setenv("CC_ANALYTICS_TOKEN", "bearer-token")

        config = ConfigManager.from_environment()

        assert "do-not-print" not in repr(config.get_webhook_config())
        assert "bearer-token" not in repr(config.get_analytics_config())

    def test_invalid_provider_fails_fast(self, clean_env):
        clean_env.setenv("CC_QUEUE_PROVIDER", "sqs")

        with pytest.raises(ValidationError, match="Unsupported queue provider"):
            ConfigManager.from_environment().get_queue_config()


class TestFromFile:

    def test_loads_json_sections(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "database": {"db_path": str(tmp_path / "workflow.duckdb")},
            "reconcile": {"min_interval_minutes": 10},
        }))
        path.chmod(0o600)

        config = ConfigManager.from_file(str(path))

        assert config.get_database_config().db_path.endswith("workflow.duckdb")
        assert config.get_reconcile_settings().min_interval == timedelta(minutes=10)
        assert config.get("reconcile.min_interval_minutes") == 10
        assert config.get("reconcile.missing", "fallback") == "fallback"
        assert config.get("database.db_path.nested", "x") == "x"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigManager.from_file(str(tmp_path / "absent.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="Invalid JSON"):
            ConfigManager.from_file(str(path))

    def test_database_directory_must_exist(self, tmp_path):
        config = ConfigManager({"database": {"db_path": str(tmp_path / "nope" / "db.duckdb")}})
        with pytest.raises(ValidationError, match="does not exist"):
            config.get_database_config()

    def test_unsupported_analytics_provider(self):
        with pytest.raises(ValidationError):
            ConfigManager({"analytics": {"provider": "kafka"}}).get_analytics_config()
