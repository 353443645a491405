"""Tests for the audit, dead-letter, health and root endpoints."""

from clinical_coding.domain.services.dead_letters import build_payload
from tests.api.conftest import RESPONSE_TEXT, signed_webhook


class TestAudit:

    def test_newest_first(self, client, container, seeded):
        _, query = seeded(container)
        signed_webhook(client, query.query_id)

        entries = client.get("/audit", params={"limit": 10}).json()

        assert [e["action"] for e in entries] == [
            "ReSuggestionApplied",
            "ClinicianQueryCreated",
        ]
        assert entries[0]["payload"]["kind"] == "code_change"
        assert entries[0]["payload"]["dxAdded"] == ["J44.9"]

    def test_filter_by_episode(self, client, container, seeded):
        episode, query = seeded(container)
        signed_webhook(client, query.query_id)

        entries = client.get("/audit", params={"limit": 1, "episode_id": episode.episode_id}).json()

        assert [e["action"] for e in entries] == ["ReSuggestionApplied"]
        assert client.get("/audit", params={"episode_id": "missing"}).json() == []

    def test_limit_bounds(self, client):
        assert client.get("/audit", params={"limit": 0}).status_code == 422
        assert client.get("/audit", params={"limit": 1001}).status_code == 422

    def test_audit_is_read_only(self, client):
        assert client.delete("/audit").status_code == 405


class TestDeadLetters:

    def test_list_and_get(self, failing_client, failing_container, seeded):
        _, query = seeded(failing_container)
        signed_webhook(failing_client, query.query_id)

        listed = failing_client.get("/dead-letters").json()
        assert len(listed) == 1
        assert listed[0]["kind"] == "FlowQueryResponse"
        assert "engine down" in listed[0]["error"]

        fetched = failing_client.get(f"/dead-letters/{listed[0]['deadLetterId']}")
        assert fetched.status_code == 200
        assert fetched.json()["payloadJson"] == listed[0]["payloadJson"]

    def test_retry_records_the_response(self, client, container, seeded):
        _, query = seeded(container)
        record = container.dead_letters.capture(
            build_payload(query.query_id, "dr.jones", RESPONSE_TEXT), "engine down", enqueue=False
        )

        response = client.post(f"/dead-letters/{record.dead_letter_id}/retry")

        assert response.status_code == 204
        assert container.queries.get_query(query.query_id).response_text == RESPONSE_TEXT
        assert container.dead_letters.get(record.dead_letter_id).attempts == 1

    def test_retry_malformed_payload(self, client, container):
        record = container.dead_letters.capture("not json", "bad body", enqueue=False)

        response = client.post(f"/dead-letters/{record.dead_letter_id}/retry")

        assert response.status_code == 422
        assert response.json()["error"] == "MalformedPayloadError"
        assert container.dead_letters.get(record.dead_letter_id).attempts == 1

    def test_retry_for_missing_query(self, client, container):
        payload = build_payload("3f0c9a4e-0000-4000-8000-000000000000", None, "late reply")
        record = container.dead_letters.capture(payload, "query vanished", enqueue=False)

        assert client.post(f"/dead-letters/{record.dead_letter_id}/retry").status_code == 404

    def test_unknown_dead_letter(self, client):
        assert client.get("/dead-letters/missing").status_code == 404
        assert client.post("/dead-letters/missing/retry").status_code == 404


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "connected"
        assert body["queueProvider"] == "durable"
        assert body["queueDepth"] == 0

    def test_request_id_is_echoed_or_generated(self, client):
        echoed = client.get("/health", headers={"X-Request-ID": "req-42"})
        generated = client.get("/health")

        assert echoed.headers["X-Request-ID"] == "req-42"
        assert len(generated.headers["X-Request-ID"]) == 32

    def test_root(self, client):
        body = client.get("/").json()
        assert body["docs"] == "/api/docs"
