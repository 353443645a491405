"""Upload Comparison.

Parses caller-supplied code lists for an uploaded narrative and compares them
with what the suggestion engine proposes for the same text. Nothing is written
to storage.

Supported code formats:
    - JSON: ``{"diagnoses": [{"code", "description", "isPrimary"}],
      "procedures": [{"code", "description", "performedOn"}]}``
    - CSV: up to two blocks separated by a blank line, one headed
      ``Code,Description,IsPrimary`` and one ``Code,Description,PerformedOn``

When no codes are supplied, ICD-10 and OPCS-4 shaped tokens are skimmed from
the narrative itself.
"""

import io
import json
import logging
import re
from typing import List, Optional, Tuple

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from clinical_coding.domain.models import CamelModel, CodeDelta, Diagnosis, Episode, Procedure
from clinical_coding.domain.ports import ExternalUnavailableError, SuggestionEngine
from clinical_coding.domain.services.code_differ import diff_codes

logger = logging.getLogger(__name__)

ICD10_PATTERN = re.compile(r"\b[A-TV-Z][0-9]{2}(?:\.[0-9A-Za-z]+)?\b")
OPCS4_PATTERN = re.compile(r"\b[A-Z][0-9]{2}\.[0-9A-Z]\b")

DX_HEADER = re.compile(r"^\s*Code\s*,\s*Description\s*,\s*IsPrimary", re.IGNORECASE)
PX_HEADER = re.compile(r"^\s*Code\s*,\s*Description\s*,\s*PerformedOn", re.IGNORECASE)

PREVIEW_LENGTH = 800

CodeSets = Tuple[List[Diagnosis], List[Procedure]]


class CodeSetComparison(CamelModel):
    """Old and suggested code sets for an uploaded narrative."""

    narrative_preview: str
    old_dx: List[Diagnosis]
    new_dx: List[Diagnosis]
    old_px: List[Procedure]
    new_px: List[Procedure]
    dx_delta: CodeDelta
    px_delta: CodeDelta


def _parse_json(text: str) -> Optional[CodeSets]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict) or not ({"diagnoses", "procedures"} & set(data)):
        return None
    try:
        dx = [Diagnosis.model_validate(item) for item in data.get("diagnoses") or []]
        px = [Procedure.model_validate(item) for item in data.get("procedures") or []]
    except (PydanticValidationError, TypeError) as e:
        logger.debug(f"Supplied JSON codes did not validate: {e}")
        return None
    return dx, px


def _read_block(block: str) -> pd.DataFrame:
    return pd.read_csv(io.StringIO(block), dtype=str, keep_default_na=False, skipinitialspace=True)


def _parse_csv(text: str) -> Optional[CodeSets]:
    dx: List[Diagnosis] = []
    px: List[Procedure] = []

    for block in re.split(r"\r?\n\s*\r?\n+", text.strip()):
        lines = [line for line in block.strip().splitlines() if line.strip()]
        if not lines:
            continue
        try:
            if DX_HEADER.match(lines[0]):
                frame = _read_block("\n".join(lines))
                for row in frame.itertuples(index=False):
                    if not str(row[0]).strip():
                        continue
                    dx.append(Diagnosis(
                        code=str(row[0]).strip(),
                        description=str(row[1]).strip() if len(row) > 1 else "",
                        is_primary=len(row) > 2 and str(row[2]).strip().lower() == "true",
                    ))
            elif PX_HEADER.match(lines[0]):
                frame = _read_block("\n".join(lines))
                for row in frame.itertuples(index=False):
                    if not str(row[0]).strip():
                        continue
                    performed = pd.to_datetime(row[2], errors="coerce") if len(row) > 2 and row[2] else None
                    px.append(Procedure(
                        code=str(row[0]).strip(),
                        description=str(row[1]).strip() if len(row) > 1 else "",
                        performed_on=None if performed is None or pd.isna(performed) else performed.date(),
                    ))
        except (ValueError, pd.errors.ParserError) as e:
            logger.debug(f"Skipping unreadable CSV block: {e}")
            continue

    if dx or px:
        return dx, px
    return None


def parse_codes(codes_text: Optional[str]) -> Optional[CodeSets]:
    """Parse supplied codes as JSON, then CSV. Returns None when nothing usable is found."""
    if not codes_text or not codes_text.strip():
        return None
    return _parse_json(codes_text) or _parse_csv(codes_text)


def guess_codes_from_text(narrative: str) -> CodeSets:
    """Skim ICD-10 and OPCS-4 shaped tokens from free text. The first ICD-10 match is primary."""
    icd: List[str] = []
    for match in ICD10_PATTERN.findall(narrative or ""):
        if match.upper() not in {c.upper() for c in icd}:
            icd.append(match)
    opcs: List[str] = []
    for match in OPCS4_PATTERN.findall(narrative or ""):
        if match.upper() not in {c.upper() for c in opcs}:
            opcs.append(match)

    dx = [Diagnosis(code=code, is_primary=(i == 0)) for i, code in enumerate(icd)]
    px = [Procedure(code=code) for code in opcs]
    return dx, px


def narrative_preview(text: str) -> str:
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "…"
    return text


class CodeComparisonService:
    """Compare supplied (or skimmed) codes with the engine's suggestion for a narrative."""

    def __init__(self, engine: SuggestionEngine):
        self.engine = engine

    async def compare(self, narrative: str, codes_text: Optional[str] = None) -> CodeSetComparison:
        old_dx, old_px = parse_codes(codes_text) or guess_codes_from_text(narrative)

        episode = Episode(
            nhs_number="0000000000",
            patient_name="Uploaded Case",
            specialty="Unknown",
            source_text=narrative,
        )
        try:
            suggestion = await self.engine.suggest(episode)
        except ExternalUnavailableError:
            raise
        except Exception as e:
            raise ExternalUnavailableError(f"Suggestion engine failed: {e}") from e

        return CodeSetComparison(
            narrative_preview=narrative_preview(narrative),
            old_dx=old_dx,
            new_dx=list(suggestion.diagnoses),
            old_px=old_px,
            new_px=list(suggestion.procedures),
            dx_delta=diff_codes(old_dx, suggestion.diagnoses),
            px_delta=diff_codes(old_px, suggestion.procedures),
        )
