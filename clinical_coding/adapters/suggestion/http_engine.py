"""HTTP suggestion engine.

Asks a model-backed coding endpoint for suggestions:

    POST {url}   {"episodeId": ..., "specialty": ..., "narrative": ...}

and expects ``{"diagnoses": [...], "procedures": [...]}`` in the same camelCase
shape as the episode's codes. Any transport error, non-2xx status or
unreadable body raises ExternalUnavailableError, which is what lets
CompositeSuggestionEngine fall back to the keyword rules.
"""

import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from clinical_coding.domain.models import Diagnosis, Episode, Procedure
from clinical_coding.domain.ports import ExternalUnavailableError, Suggestion, SuggestionEngine

logger = logging.getLogger(__name__)


class SuggestionBody(BaseModel):
    diagnoses: List[Diagnosis] = Field(default_factory=list)
    procedures: List[Procedure] = Field(default_factory=list)


class HttpSuggestionEngine(SuggestionEngine):
    """Suggestion engine backed by an HTTP endpoint.

    Parameters:
        url: Endpoint URL
        token: Bearer token
        timeout_seconds: Per-request timeout
        client: Optional pre-built httpx.AsyncClient (tests inject a MockTransport)
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.url = url
        self.token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def suggest(self, episode: Episode) -> Suggestion:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            response = await self._client.post(
                self.url,
                json={
                    "episodeId": episode.episode_id,
                    "specialty": episode.specialty,
                    "narrative": episode.source_text,
                },
                headers=headers,
            )
            response.raise_for_status()
            body = SuggestionBody.model_validate(response.json())
        except httpx.HTTPError as e:
            logger.warning(f"Suggestion endpoint unavailable for episode {episode.episode_id}: {type(e).__name__}")
            raise ExternalUnavailableError(f"Suggestion endpoint failed: {e}") from e
        except (ValueError, ValidationError) as e:
            logger.warning(f"Suggestion endpoint returned an unreadable body for episode {episode.episode_id}")
            raise ExternalUnavailableError(f"Suggestion endpoint returned an invalid body: {e}") from e

        logger.debug(
            f"Suggestion endpoint returned {len(body.diagnoses)} diagnoses and "
            f"{len(body.procedures)} procedures for episode {episode.episode_id}"
        )
        return Suggestion(diagnoses=body.diagnoses, procedures=body.procedures)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
