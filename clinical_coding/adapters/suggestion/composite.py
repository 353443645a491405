"""Composite suggestion engine: primary engine with a fallback."""

import logging

from clinical_coding.domain.models import Episode
from clinical_coding.domain.ports import ExternalUnavailableError, Suggestion, SuggestionEngine

logger = logging.getLogger(__name__)


class CompositeSuggestionEngine(SuggestionEngine):
    """Ask ``primary`` first; if it suggests nothing or is unavailable, ask ``fallback``.

    Any other error from the primary engine propagates unchanged.
    """

    def __init__(self, primary: SuggestionEngine, fallback: SuggestionEngine):
        self.primary = primary
        self.fallback = fallback

    async def suggest(self, episode: Episode) -> Suggestion:
        try:
            result = await self.primary.suggest(episode)
        except ExternalUnavailableError as e:
            logger.info(f"Primary engine {type(self.primary).__name__} unavailable ({e}); using fallback")
            return await self.fallback.suggest(episode)

        if result.diagnoses or result.procedures:
            return result

        logger.info(f"Primary engine {type(self.primary).__name__} returned nothing; using fallback")
        return await self.fallback.suggest(episode)

    async def close(self) -> None:
        await self.primary.close()
        await self.fallback.close()
