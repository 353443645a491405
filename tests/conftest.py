"""Shared fixtures: in-memory DuckDB storage, a controllable clock and stub collaborators."""

import pytest

from clinical_coding.adapters.queues import DurableQueue
from clinical_coding.adapters.storage import DuckDBAdapter
from clinical_coding.adapters.suggestion import RuleBasedSuggestionEngine
from clinical_coding.container import build_container
from clinical_coding.domain.services import AuditLog
from tests.support import TODAY, FakeClock, RecordingAnalyticsSink, make_settings


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    adapter = DuckDBAdapter(db_path=":memory:")
    result = adapter.initialize_schema()
    assert result.is_success()
    yield adapter
    adapter.close()


@pytest.fixture
def audit_log(storage):
    return AuditLog(storage)


@pytest.fixture
def rule_engine():
    return RuleBasedSuggestionEngine(today=lambda: TODAY)


@pytest.fixture
def analytics():
    return RecordingAnalyticsSink()


@pytest.fixture
def container(storage, clock, rule_engine, analytics):
    """Fully wired services over one in-memory database."""
    return build_container(
        make_settings(),
        storage=storage,
        queue=DurableQueue(storage, clock=clock),
        engine=rule_engine,
        analytics=analytics,
        clock=clock,
    )
