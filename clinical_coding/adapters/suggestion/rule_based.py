"""Rule-based suggestion engine.

Keyword rules over the lower-cased narrative. Used as the default engine and
as the fallback of CompositeSuggestionEngine; it never raises and returns empty
lists when nothing matches.
"""

import logging
from datetime import date
from typing import Callable, List, NamedTuple, Tuple

from clinical_coding.domain.models import Diagnosis, Episode, Procedure, utc_now
from clinical_coding.domain.ports import Suggestion, SuggestionEngine

logger = logging.getLogger(__name__)


class Rule(NamedTuple):
    keywords: Tuple[str, ...]
    code: str
    description: str
    is_primary: bool = False


DIAGNOSIS_RULES = (
    Rule(("pneumonia",), "J18.1", "Lobar pneumonia, unspecified", True),
    Rule(("copd", "chronic obstructive"), "J44.9", "Chronic obstructive pulmonary disease, unspecified"),
)

PROCEDURE_RULES = (
    Rule(("chest x-ray", "cxr"), "U20.1", "Diagnostic X-ray of chest"),
    Rule(("nebulis",), "E85.3", "Nebulisation therapy"),
    Rule(("oxygen",), "E85.2", "Administration of oxygen therapy"),
)


class RuleBasedSuggestionEngine(SuggestionEngine):
    """Suggest codes from keyword rules.

    Parameters:
        today: Date source for procedure ``performed_on``
    """

    def __init__(self, today: Callable[[], date] = lambda: utc_now().date()):
        self.today = today

    async def suggest(self, episode: Episode) -> Suggestion:
        text = (episode.source_text or "").lower()

        diagnoses: List[Diagnosis] = [
            Diagnosis(code=rule.code, description=rule.description, is_primary=rule.is_primary)
            for rule in DIAGNOSIS_RULES
            if any(keyword in text for keyword in rule.keywords)
        ]
        performed_on = self.today()
        procedures: List[Procedure] = [
            Procedure(code=rule.code, description=rule.description, performed_on=performed_on)
            for rule in PROCEDURE_RULES
            if any(keyword in text for keyword in rule.keywords)
        ]

        logger.info(
            f"Rule-based suggestion produced {len(diagnoses)} diagnoses and {len(procedures)} procedures"
        )
        return Suggestion(diagnoses=diagnoses, procedures=procedures)
