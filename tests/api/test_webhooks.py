"""Tests for the signed clinician-response webhook."""

import json

from clinical_coding.container import build_container
from clinical_coding.domain.models import AuditAction
from clinical_coding.infrastructure.config_manager import ConfigManager
from clinical_coding.infrastructure.settings import Settings
from tests.api.conftest import RESPONSE_TEXT, make_client, signed_webhook


def audit_count(container) -> int:
    return len(container.audit_log.list_recent(limit=1000))


class TestSignature:

    def test_wrong_signature_is_rejected_without_side_effects(self, client, container, seeded):
        episode, query = seeded(container)
        before = audit_count(container)

        response = signed_webhook(client, query.query_id, signature="sha256=<wrong>")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        assert audit_count(container) == before
        assert [d.code for d in container.episodes.get(episode.episode_id).diagnoses] == ["J18.1"]
        assert container.queries.get_query(query.query_id).response_text is None

    def test_missing_signature(self, client, container, seeded):
        _, query = seeded(container)

        response = signed_webhook(client, query.query_id, signature="")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_unknown_query_with_bad_signature_is_still_401(self, client):
        response = signed_webhook(client, "3f0c9a4e-0000-4000-8000-000000000000", signature="sha256=00")
        assert response.status_code == 401


class TestReconciliation:

    def test_applies_then_debounces(self, client, container, seeded, analytics):
        episode, query = seeded(container)

        first = signed_webhook(client, query.query_id)
        second = signed_webhook(client, query.query_id, text="Also on home oxygen.")

        assert first.status_code == 204
        assert second.status_code == 202

        stored = container.episodes.get(episode.episode_id)
        assert [d.code for d in stored.diagnoses] == ["J18.1", "J44.9"]
        assert [p.code for p in stored.procedures] == ["U20.1", "E85.2"]
        assert RESPONSE_TEXT in stored.source_text

        actions = [e.action for e in container.audit_log.list_recent() if e.entity_id == episode.episode_id]
        assert actions.count(AuditAction.RESUGGESTION_APPLIED) == 1
        assert actions.count(AuditAction.RESUGGESTION_SKIPPED_DEBOUNCE) == 1
        assert len(analytics.pushes) == 1
        assert analytics.pushes[0]["rows"][0]["DxAdded"] == "J44.9"

    def test_applies_again_after_the_window(self, client, container, seeded, clock):
        _, query = seeded(container)

        assert signed_webhook(client, query.query_id).status_code == 204
        clock.advance(minutes=5)
        assert signed_webhook(client, query.query_id, text="No further change.").status_code == 204

    def test_non_json_body_is_used_as_response_text(self, client, container, seeded):
        _, query = seeded(container)

        response = signed_webhook(client, query.query_id, raw=b"COPD confirmed by phone")

        assert response.status_code == 204
        assert container.queries.get_query(query.query_id).response_text == "COPD confirmed by phone"

    def test_unknown_query(self, client):
        response = signed_webhook(client, "3f0c9a4e-0000-4000-8000-000000000000")
        assert response.status_code == 404

    def test_engine_failure_is_captured_as_dead_letter(self, failing_client, failing_container, seeded):
        episode, query = seeded(failing_container)

        response = signed_webhook(failing_client, query.query_id)

        assert response.status_code == 202
        assert response.json() == {"status": "queued"}

        records = failing_container.dead_letters.list()
        assert len(records) == 1
        payload = json.loads(records[0].payload_json)
        assert payload == {"queryId": query.query_id, "responder": "dr.jones", "responseText": RESPONSE_TEXT}
        assert failing_container.queue.depth() == 1

        # The response itself is recorded; the codes are untouched
        assert failing_container.queries.get_query(query.query_id).response_text == RESPONSE_TEXT
        assert [d.code for d in failing_container.episodes.get(episode.episode_id).diagnoses] == ["J18.1"]


def test_unconfigured_secret_rejects_every_call(storage, clock, rule_engine, analytics, seeded):
    settings = Settings(ConfigManager({"queue": {"provider": "durable"}, "webhook": {}}))
    container = build_container(settings, storage=storage, engine=rule_engine, analytics=analytics, clock=clock)
    _, query = seeded(container)
    before = audit_count(container)

    with make_client(container) as client:
        response = signed_webhook(client, query.query_id)

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert audit_count(container) == before
