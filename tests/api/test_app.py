"""Tests for application startup and shutdown."""

import pytest
from fastapi.testclient import TestClient

from clinical_coding.api import main
from clinical_coding.infrastructure.config_manager import ConfigManager
from clinical_coding.infrastructure.settings import Settings
from tests.api.conftest import make_client


@pytest.fixture
def file_settings(tmp_path, monkeypatch):
    settings = Settings(ConfigManager({
        "database": {"db_path": str(tmp_path / "api.duckdb")},
        "queue": {"provider": "durable"},
    }))
    monkeypatch.setattr(main, "settings", settings)
    return settings


def test_lifespan_builds_one_container(file_settings, tmp_path):
    app = main.create_app()

    with TestClient(app) as client:
        container = app.state.container
        assert container.storage.db_path == str(tmp_path / "api.duckdb")
        assert client.get("/health").json()["status"] == "ok"
        assert client.get("/episodes-open").status_code == 200
        assert app.state.container is container

    assert app.state.container is None
    assert container.storage._connection is None


def test_requests_before_startup_fail_cleanly(file_settings):
    client = TestClient(main.create_app())

    response = client.get("/audit")

    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"


def test_overridden_container_is_left_open(container):
    with make_client(container) as client:
        assert client.get("/health").status_code == 200

    assert container.storage._connection is not None
