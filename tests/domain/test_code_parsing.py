"""Tests for upload comparison and code list parsing."""

import json
from datetime import date

import pytest

from clinical_coding.domain.services.code_parsing import (
    CodeComparisonService,
    guess_codes_from_text,
    narrative_preview,
    parse_codes,
)
from tests.support import FailingSuggestionEngine
from clinical_coding.domain.ports import ExternalUnavailableError

CSV_CODES = """Code,Description,IsPrimary
J18.9,Pneumonia unspecified,true
I10,Hypertension,false

Code,Description,PerformedOn
U20.1,Chest X-ray,2025-03-01
"""


class TestParseCodes:
    """JSON, CSV and empty inputs."""

    def test_json_codes(self):
        text = json.dumps({
            "diagnoses": [{"code": "J18.9", "description": "Pneumonia", "isPrimary": True}],
            "procedures": [{"code": "U20.1", "performedOn": "2025-03-01"}],
        })

        dx, px = parse_codes(text)

        assert dx[0].code == "J18.9" and dx[0].is_primary
        assert px[0].performed_on == date(2025, 3, 1)

    def test_csv_blocks(self):
        dx, px = parse_codes(CSV_CODES)

        assert [d.code for d in dx] == ["J18.9", "I10"]
        assert dx[0].is_primary and not dx[1].is_primary
        assert px[0].code == "U20.1"
        assert px[0].performed_on == date(2025, 3, 1)

    @pytest.mark.parametrize("text", [None, "", "   ", "just some words", json.dumps({"other": 1})])
    def test_nothing_usable(self, text):
        assert parse_codes(text) is None


class TestGuessCodes:
    def test_skims_icd10_and_opcs4_tokens(self):
        dx, px = guess_codes_from_text("Coded J18.1 and j44.9? Also J18.1 again, procedure E85.2.")

        assert [d.code for d in dx][:1] == ["J18.1"]
        assert dx[0].is_primary
        assert "E85.2" in [p.code for p in px]

    def test_empty_narrative(self):
        assert guess_codes_from_text("") == ([], [])


class TestCodeComparisonService:
    """Comparison against the engine, with no writes."""

    def test_preview_is_truncated(self):
        text = "x" * 900
        assert narrative_preview(text) == "x" * 800 + "…"
        assert narrative_preview("short") == "short"

    @pytest.mark.asyncio
    async def test_compare_supplied_codes(self, rule_engine, storage):
        service = CodeComparisonService(rule_engine)

        result = await service.compare("Pneumonia with COPD. Oxygen given.", CSV_CODES)

        assert result.dx_delta.added == ["J18.1", "J44.9"]
        assert result.dx_delta.removed == ["J18.9", "I10"]
        assert result.px_delta.added == ["E85.2"]
        assert result.px_delta.removed == ["U20.1"]
        assert storage.list_episodes() == []

    @pytest.mark.asyncio
    async def test_compare_wraps_engine_errors(self):
        service = CodeComparisonService(FailingSuggestionEngine())
        with pytest.raises(ExternalUnavailableError):
            await service.compare("Pneumonia")
