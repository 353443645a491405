"""Worklist and export endpoints.

The open-episode worklist and flat CSV/JSON exports of recent episodes.
"""

import logging
from typing import Any, List

from fastapi import APIRouter, Query, Response

from clinical_coding.api.dependencies import ContainerDep
from clinical_coding.api.schemas import EpisodeSummary
from clinical_coding.domain.services.episode_export import EXPORT_LIMIT, episodes_to_csv, episodes_to_records

logger = logging.getLogger(__name__)

router = APIRouter(tags=["exports"])


@router.get("/episodes-open", response_model=List[EpisodeSummary])
async def list_open_episodes(
    container: ContainerDep,
    limit: int = Query(50, ge=1, le=1000),
) -> List[EpisodeSummary]:
    """Draft and Submitted episodes, newest first."""
    return [EpisodeSummary.from_episode(e) for e in container.episodes.list_open(limit=limit)]


@router.get("/export/episodes.csv")
async def export_episodes_csv(container: ContainerDep) -> Response:
    episodes = container.episodes.list(limit=EXPORT_LIMIT)
    logger.info(f"Exporting {len(episodes)} episodes as CSV")
    return Response(
        content=episodes_to_csv(episodes),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="episodes.csv"'},
    )


@router.get("/export/episodes.json")
async def export_episodes_json(container: ContainerDep) -> List[Any]:
    return episodes_to_records(container.episodes.list(limit=EXPORT_LIMIT))
