"""Test doubles and builders shared across the suite."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from clinical_coding.domain.models import Diagnosis, Episode, Procedure
from clinical_coding.domain.ports import AnalyticsSink, Result, Suggestion, SuggestionEngine
from clinical_coding.infrastructure.config_manager import ConfigManager
from clinical_coding.infrastructure.settings import Settings

WEBHOOK_SECRET = "test-flow-secret"
START = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)
TODAY = date(2025, 3, 3)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class StaticSuggestionEngine(SuggestionEngine):
    """Returns the same suggestion every time and counts calls."""

    def __init__(self, diagnoses: List[Diagnosis], procedures: List[Procedure]):
        self.suggestion = Suggestion(diagnoses=diagnoses, procedures=procedures)
        self.calls = 0

    async def suggest(self, episode: Episode) -> Suggestion:
        self.calls += 1
        return self.suggestion


class FailingSuggestionEngine(SuggestionEngine):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error or RuntimeError("engine down")
        self.calls = 0

    async def suggest(self, episode: Episode) -> Suggestion:
        self.calls += 1
        raise self.error


class GatedSuggestionEngine(SuggestionEngine):
    """Delegates to ``inner`` once ``gate`` is set; counts calls that reached the engine."""

    def __init__(self, inner: SuggestionEngine):
        self.inner = inner
        self.gate = asyncio.Event()
        self.waiting = 0

    async def suggest(self, episode: Episode) -> Suggestion:
        self.waiting += 1
        await self.gate.wait()
        return await self.inner.suggest(episode)


class RecordingAnalyticsSink(AnalyticsSink):
    def __init__(self, result: Optional[Result] = None):
        self.pushes: List[Dict[str, Any]] = []
        self.result = result

    async def push_rows(self, table_name: str, rows: List[Dict[str, Any]]) -> Result[int]:
        self.pushes.append({"table": table_name, "rows": rows})
        return self.result or Result.success_result(len(rows))


def make_settings(**reconcile: Any) -> Settings:
    """Settings with an in-memory database, durable queue and a known webhook secret."""
    return Settings(ConfigManager({
        "database": {"db_path": ":memory:"},
        "queue": {"provider": "durable", "max_attempts": 3},
        "reconcile": {"min_interval_minutes": 5, **reconcile},
        "webhook": {"flow_secret": WEBHOOK_SECRET},
        "analytics": {"provider": "none"},
    }))


def pneumonia_episode(**overrides: Any) -> Episode:
    fields = dict(
        nhs_number="9434765919",
        patient_name="Test Patient",
        admission_date=date(2025, 3, 1),
        specialty="Respiratory Medicine",
        source_text="Admitted with pneumonia.",
    )
    fields.update(overrides)
    return Episode(**fields)
