"""Tests for the DuckDB storage adapter."""

from datetime import date, timedelta

import pytest

from clinical_coding.adapters.storage import DuckDBAdapter
from clinical_coding.domain.models import (
    AuditAction,
    ClinicianQuery,
    Diagnosis,
    EpisodeStatus,
    Procedure,
    RevertRequest,
    RevertStatus,
)
from clinical_coding.domain.ports import NotFoundError, StorageError
from clinical_coding.infrastructure.config_manager import DatabaseConfig
from tests.support import START, pneumonia_episode


class TestDuckDBAdapterSetup:
    """Connection and schema handling."""

    def test_defaults_to_memory(self):
        assert DuckDBAdapter().db_path == ":memory:"

    def test_config_takes_precedence(self, tmp_path):
        config = DatabaseConfig(db_path=str(tmp_path / "coding.duckdb"))
        adapter = DuckDBAdapter(db_config=config, db_path="ignored.duckdb")
        assert adapter.db_path == str(tmp_path / "coding.duckdb")

    def test_missing_directory_is_rejected(self, tmp_path):
        with pytest.raises(StorageError):
            DuckDBAdapter(db_path=str(tmp_path / "nope" / "coding.duckdb"))

    def test_schema_is_idempotent(self, storage):
        assert storage.initialize_schema().is_success()
        assert storage.initialize_schema().is_success()

    def test_file_database_persists(self, tmp_path):
        path = str(tmp_path / "coding.duckdb")
        episode = pneumonia_episode()

        first = DuckDBAdapter(db_path=path)
        first.initialize_schema()
        first.add_episode(episode)
        first.close()

        second = DuckDBAdapter(db_path=path)
        try:
            assert second.get_episode(episode.episode_id).patient_name == episode.patient_name
        finally:
            second.close()


class TestEpisodes:
    def test_round_trip_keeps_code_order(self, storage):
        episode = pneumonia_episode(
            diagnoses=[Diagnosis(code="J44.9"), Diagnosis(code="J18.1", is_primary=True)],
            procedures=[Procedure(code="E85.2", performed_on=date(2025, 3, 2)), Procedure(code="U20.1")],
        )
        storage.add_episode(episode)

        stored = storage.get_episode(episode.episode_id)

        assert [d.code for d in stored.diagnoses] == ["J44.9", "J18.1"]
        assert stored.diagnoses[1].is_primary
        assert stored.procedures[0].performed_on == date(2025, 3, 2)
        assert stored.admission_date == date(2025, 3, 1)

    def test_replace_codes_and_narrative(self, storage):
        episode = pneumonia_episode(diagnoses=[Diagnosis(code="J18.1")])
        storage.add_episode(episode)

        storage.replace_episode_codes(episode.episode_id, [Diagnosis(code="J44.9")], [], source_text="updated")

        stored = storage.get_episode(episode.episode_id)
        assert [d.code for d in stored.diagnoses] == ["J44.9"]
        assert stored.source_text == "updated"

    def test_replace_codes_for_missing_episode(self, storage):
        with pytest.raises(NotFoundError):
            storage.replace_episode_codes("missing", [], [])

    def test_list_filters_by_status(self, storage):
        draft = pneumonia_episode()
        submitted = pneumonia_episode(status=EpisodeStatus.SUBMITTED)
        storage.add_episode(draft)
        storage.add_episode(submitted)

        listed = storage.list_episodes(status=EpisodeStatus.SUBMITTED)

        assert [e.episode_id for e in listed] == [submitted.episode_id]

    def test_list_filters_by_several_statuses(self, storage):
        episodes = {s: pneumonia_episode(status=s) for s in EpisodeStatus}
        for episode in episodes.values():
            storage.add_episode(episode)

        listed = storage.list_episodes(statuses=[EpisodeStatus.DRAFT, EpisodeStatus.SUBMITTED])

        assert {e.episode_id for e in listed} == {
            episodes[EpisodeStatus.DRAFT].episode_id,
            episodes[EpisodeStatus.SUBMITTED].episode_id,
        }

    def test_list_without_filter_returns_all_statuses(self, storage):
        for status in EpisodeStatus:
            storage.add_episode(pneumonia_episode(status=status))

        assert len(storage.list_episodes(statuses=[])) == len(EpisodeStatus)


class TestTransactions:
    def test_rollback_discards_all_writes(self, storage, audit_log):
        episode = pneumonia_episode()

        with pytest.raises(RuntimeError):
            with storage.transaction():
                storage.add_episode(episode)
                audit_log.record(action=AuditAction.EPISODE_CREATED, entity_id=episode.episode_id)
                raise RuntimeError("abort")

        assert storage.get_episode(episode.episode_id) is None
        assert audit_log.list_recent() == []

    def test_nested_blocks_commit_once(self, storage):
        first, second = pneumonia_episode(), pneumonia_episode()

        with storage.transaction():
            storage.add_episode(first)
            with storage.transaction():
                storage.add_episode(second)

        assert storage.get_episode(first.episode_id) is not None
        assert storage.get_episode(second.episode_id) is not None


class TestRevertRequests:
    def test_resolve_only_once(self, storage):
        request = RevertRequest(episode_id="ep-1", audit_id="a-1", requested_by="reviewer.a")
        storage.add_revert_request(request)

        assert storage.resolve_revert_request(request.request_id, RevertStatus.APPROVED, "reviewer.b", START)
        assert not storage.resolve_revert_request(request.request_id, RevertStatus.REJECTED, "reviewer.c", START)

        stored = storage.get_revert_request(request.request_id)
        assert stored.status == RevertStatus.APPROVED
        assert stored.resolved_by == "reviewer.b"
        assert stored.resolved_on == START


class TestQueries:
    def test_update_response(self, storage):
        query = ClinicianQuery(episode_id="ep-1", to_clinician="dr.jones", body="?")
        storage.add_query(query)

        assert storage.update_query_response(query.query_id, "dr.jones", "Yes", START + timedelta(hours=1))
        assert not storage.update_query_response("missing", "dr.jones", "Yes", START)

        stored = storage.get_query(query.query_id)
        assert stored.response_text == "Yes"
        assert stored.responded_on == START + timedelta(hours=1)
