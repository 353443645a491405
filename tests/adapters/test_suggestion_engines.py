"""Tests for the rule-based, HTTP and composite suggestion engines."""

import json
from datetime import date

import httpx
import pytest

from clinical_coding.adapters.suggestion import (
    CompositeSuggestionEngine,
    HttpSuggestionEngine,
    RuleBasedSuggestionEngine,
)
from clinical_coding.domain.models import Diagnosis
from clinical_coding.domain.ports import ExternalUnavailableError
from tests.support import TODAY, FailingSuggestionEngine, StaticSuggestionEngine, pneumonia_episode

NARRATIVE = (
    "Admitted with community acquired pneumonia. Background of COPD. "
    "CXR confirmed right lower lobe consolidation. Given nebulised salbutamol and oxygen."
)


class TestRuleBasedSuggestionEngine:

    @pytest.mark.asyncio
    async def test_respiratory_narrative(self, rule_engine):
        suggestion = await rule_engine.suggest(pneumonia_episode(source_text=NARRATIVE))

        assert [(d.code, d.is_primary) for d in suggestion.diagnoses] == [("J18.1", True), ("J44.9", False)]
        assert [p.code for p in suggestion.procedures] == ["U20.1", "E85.3", "E85.2"]
        assert all(p.performed_on == TODAY for p in suggestion.procedures)

    @pytest.mark.asyncio
    async def test_keywords_are_case_insensitive(self, rule_engine):
        suggestion = await rule_engine.suggest(pneumonia_episode(source_text="CHRONIC OBSTRUCTIVE airways disease"))
        assert [d.code for d in suggestion.diagnoses] == ["J44.9"]
        assert suggestion.procedures == []

    @pytest.mark.asyncio
    async def test_nothing_matches(self):
        suggestion = await RuleBasedSuggestionEngine().suggest(pneumonia_episode(source_text=""))
        assert suggestion.diagnoses == []
        assert suggestion.procedures == []


class TestCompositeSuggestionEngine:

    @pytest.mark.asyncio
    async def test_primary_result_wins(self):
        primary = StaticSuggestionEngine([Diagnosis(code="A09", is_primary=True)], [])
        fallback = StaticSuggestionEngine([Diagnosis(code="J18.1")], [])

        suggestion = await CompositeSuggestionEngine(primary, fallback).suggest(pneumonia_episode())

        assert [d.code for d in suggestion.diagnoses] == ["A09"]
        assert fallback.calls == 0

    @pytest.mark.asyncio
    async def test_falls_back_on_empty(self, rule_engine):
        primary = StaticSuggestionEngine([], [])

        suggestion = await CompositeSuggestionEngine(primary, rule_engine).suggest(pneumonia_episode())

        assert primary.calls == 1
        assert [d.code for d in suggestion.diagnoses] == ["J18.1"]

    @pytest.mark.asyncio
    async def test_falls_back_when_primary_unavailable(self, rule_engine):
        primary = FailingSuggestionEngine(ExternalUnavailableError("model offline"))

        suggestion = await CompositeSuggestionEngine(primary, rule_engine).suggest(pneumonia_episode())

        assert primary.calls == 1
        assert [d.code for d in suggestion.diagnoses] == ["J18.1"]

    @pytest.mark.asyncio
    async def test_primary_errors_propagate(self, rule_engine):
        engine = CompositeSuggestionEngine(FailingSuggestionEngine(RuntimeError("model offline")), rule_engine)

        with pytest.raises(RuntimeError, match="model offline"):
            await engine.suggest(pneumonia_episode())


def http_engine(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpSuggestionEngine("https://coder.example/suggest", token="t0ken", client=client)


class TestHttpSuggestionEngine:
    """Model endpoint calls; every failure is ExternalUnavailableError."""

    @pytest.mark.asyncio
    async def test_posts_narrative_and_reads_codes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "diagnoses": [{"code": "J18.1", "isPrimary": True}, {"code": "J44.9"}],
                "procedures": [{"code": "E85.2", "performedOn": "2025-03-01"}],
            })

        episode = pneumonia_episode(source_text=NARRATIVE)
        suggestion = await http_engine(handler).suggest(episode)

        assert seen["auth"] == "Bearer t0ken"
        assert seen["body"] == {
            "episodeId": episode.episode_id,
            "specialty": "Respiratory Medicine",
            "narrative": NARRATIVE,
        }
        assert [(d.code, d.is_primary) for d in suggestion.diagnoses] == [("J18.1", True), ("J44.9", False)]
        assert suggestion.procedures[0].performed_on == date(2025, 3, 1)

    @pytest.mark.asyncio
    async def test_missing_sets_mean_no_suggestion(self):
        suggestion = await http_engine(lambda request: httpx.Response(200, json={})).suggest(pneumonia_episode())

        assert suggestion.diagnoses == []
        assert suggestion.procedures == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(500),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json={"diagnoses": [{"description": "no code"}]}),
    ])
    async def test_bad_responses_are_unavailable(self, response):
        with pytest.raises(ExternalUnavailableError):
            await http_engine(lambda request: response).suggest(pneumonia_episode())

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ExternalUnavailableError, match="Suggestion endpoint failed"):
            await http_engine(handler).suggest(pneumonia_episode())

    @pytest.mark.asyncio
    async def test_composite_uses_rules_when_endpoint_is_down(self, rule_engine):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        engine = CompositeSuggestionEngine(http_engine(handler), rule_engine)
        suggestion = await engine.suggest(pneumonia_episode(source_text=NARRATIVE))

        assert [d.code for d in suggestion.diagnoses] == ["J18.1", "J44.9"]
