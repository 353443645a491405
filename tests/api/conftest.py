"""API fixtures: the application wired to an in-memory container."""

import json
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from clinical_coding.api.dependencies import get_container
from clinical_coding.api.main import create_app
from clinical_coding.container import build_container
from clinical_coding.domain.models import Diagnosis
from clinical_coding.infrastructure.signatures import compute_signature
from tests.support import WEBHOOK_SECRET, FailingSuggestionEngine, make_settings, pneumonia_episode

RESPONSE_TEXT = "Confirms background COPD. CXR done and oxygen given."


def make_client(container) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_container] = lambda: container
    return TestClient(app)


@pytest.fixture
def client(container):
    with make_client(container) as test_client:
        yield test_client


@pytest.fixture
def strict_container(storage, clock, rule_engine, analytics):
    return build_container(
        make_settings(strict_transitions=True),
        storage=storage,
        engine=rule_engine,
        analytics=analytics,
        clock=clock,
    )


@pytest.fixture
def strict_client(strict_container):
    with make_client(strict_container) as test_client:
        yield test_client


@pytest.fixture
def failing_container(storage, clock, analytics):
    return build_container(
        make_settings(),
        storage=storage,
        engine=FailingSuggestionEngine(),
        analytics=analytics,
        clock=clock,
    )


@pytest.fixture
def failing_client(failing_container):
    with make_client(failing_container) as test_client:
        yield test_client


@pytest.fixture
def seeded(storage):
    """A Draft pneumonia episode coded J18.1 with one open clinician query."""

    def seed(container):
        episode = pneumonia_episode(diagnoses=[Diagnosis(code="J18.1", is_primary=True)])
        storage.add_episode(episode)
        query = container.queries.create_query(
            episode.episode_id, "dr.jones", "Comorbidities", "Any chronic lung disease?", "coder.a"
        )
        return episode, query

    return seed


def signed_webhook(
    client: TestClient,
    query_id: str,
    responder: str = "dr.jones",
    text: str = RESPONSE_TEXT,
    raw: Optional[bytes] = None,
    signature: Optional[str] = None,
):
    body = raw if raw is not None else json.dumps({"responder": responder, "responseText": text}).encode()
    headers = {"Content-Type": "application/json"}
    header = signature if signature is not None else compute_signature(WEBHOOK_SECRET, body)
    if header:
        headers["X-Signature"] = header
    return client.post(f"/webhooks/flow/queries/{query_id}/response", content=body, headers=headers)
