"""Episode endpoints.

Creation, review transitions, suggestion previews, the latest code diff, the
dual-control revert flow and clinician query creation.
"""

import logging
from typing import Optional

from fastapi import APIRouter, File, Form, Query, Response, UploadFile, status

from clinical_coding.api.dependencies import ContainerDep, UserDep
from clinical_coding.api.schemas import (
    CodeDiffResponse,
    CreatedResponse,
    DiagnosisSets,
    EpisodeCreateRequest,
    EpisodeListResponse,
    ProcedureSets,
    QueryCreateRequest,
    SuggestionResponse,
)
from clinical_coding.domain.models import AuditAction, Episode, EpisodeStatus
from clinical_coding.domain.ports import ExternalUnavailableError, NotFoundError
from clinical_coding.domain.services.code_parsing import CodeSetComparison

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/episodes", tags=["episodes"])


def _no_content() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("", response_model=Episode, status_code=status.HTTP_201_CREATED)
async def create_episode(
    body: EpisodeCreateRequest,
    container: ContainerDep,
    user: UserDep,
    response: Response,
) -> Episode:
    """Create a Draft episode with codes suggested from its narrative."""
    episode = await container.episodes.create(body.to_episode(), user, engine=container.engine)
    response.headers["Location"] = f"/episodes/{episode.episode_id}"
    return episode


@router.get("", response_model=EpisodeListResponse)
async def list_episodes(
    container: ContainerDep,
    limit: int = Query(200, ge=1, le=1000),
    status_filter: Optional[EpisodeStatus] = Query(None, alias="status"),
) -> EpisodeListResponse:
    items = container.episodes.list(limit=limit, status=status_filter)
    return EpisodeListResponse(items=items, total=len(items), page=1, page_size=len(items))


@router.post("/suggest", response_model=SuggestionResponse)
async def suggest_codes(body: EpisodeCreateRequest, container: ContainerDep) -> SuggestionResponse:
    """Suggest codes for a narrative without storing anything."""
    try:
        suggestion = await container.engine.suggest(body.to_episode())
    except ExternalUnavailableError:
        raise
    except Exception as e:
        raise ExternalUnavailableError(f"Suggestion engine failed: {e}") from e
    return SuggestionResponse(diagnoses=list(suggestion.diagnoses), procedures=list(suggestion.procedures))


@router.post("/compare-upload", response_model=CodeSetComparison)
async def compare_upload(
    container: ContainerDep,
    file: UploadFile = File(..., description="Narrative text file"),
    codes: Optional[str] = Form(None, description="Existing codes as JSON or two-block CSV"),
) -> CodeSetComparison:
    """Compare supplied (or skimmed) codes with suggestions for an uploaded narrative. No write."""
    raw = await file.read()
    narrative = raw.decode("utf-8", errors="replace")
    return await container.comparison.compare(narrative, codes)


@router.get("/{episode_id}", response_model=Episode)
async def get_episode(episode_id: str, container: ContainerDep) -> Episode:
    return container.episodes.get(episode_id)


@router.post("/{episode_id}/submit", status_code=status.HTTP_204_NO_CONTENT)
async def submit_episode(episode_id: str, container: ContainerDep, user: UserDep) -> Response:
    container.episodes.submit(episode_id, user)
    return _no_content()


@router.post("/{episode_id}/approve", status_code=status.HTTP_204_NO_CONTENT)
async def approve_episode(
    episode_id: str,
    container: ContainerDep,
    user: UserDep,
    notes: Optional[str] = Query(None, max_length=2000),
) -> Response:
    container.episodes.approve(episode_id, user, notes)
    return _no_content()


@router.post("/{episode_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
async def reject_episode(
    episode_id: str,
    container: ContainerDep,
    user: UserDep,
    notes: Optional[str] = Query(None, max_length=2000),
) -> Response:
    container.episodes.reject(episode_id, user, notes)
    return _no_content()


@router.get("/{episode_id}/code-diff", response_model=CodeDiffResponse)
async def get_code_diff(episode_id: str, container: ContainerDep) -> CodeDiffResponse:
    """Old and new code sets from the most recent applied re-suggestion."""
    container.episodes.get(episode_id)
    entry = container.audit_log.get_last_event_for_episode(episode_id, AuditAction.RESUGGESTION_APPLIED)
    if entry is None:
        raise NotFoundError(
            f"Episode {episode_id} has no applied re-suggestion",
            entity_type="AuditEntry",
            entity_id=episode_id,
        )
    change = entry.code_change()
    return CodeDiffResponse(
        audit_id=entry.audit_id,
        timestamp=entry.timestamp,
        dx=DiagnosisSets(old=change.old_dx, new=change.new_dx),
        px=ProcedureSets(old=change.old_px, new=change.new_px),
        dx_added=change.dx_added,
        dx_removed=change.dx_removed,
        px_added=change.px_added,
        px_removed=change.px_removed,
    )


@router.post("/{episode_id}/revert-request", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def request_revert(
    episode_id: str,
    container: ContainerDep,
    user: UserDep,
    response: Response,
    audit_id: str = Query(..., description="ReSuggestionApplied audit entry to undo"),
) -> CreatedResponse:
    """Open a revert request. A different reviewer must approve it."""
    request = container.reverts.request_revert(episode_id, audit_id, user)
    response.headers["Location"] = f"/reverts/{request.request_id}"
    return CreatedResponse(id=request.request_id)


@router.post("/{episode_id}/revert-approve", status_code=status.HTTP_204_NO_CONTENT)
async def approve_revert(
    episode_id: str,
    container: ContainerDep,
    user: UserDep,
    request_id: str = Query(...),
) -> Response:
    container.reverts.approve_revert(request_id, episode_id, user)
    return _no_content()


@router.post("/{episode_id}/revert-reject", status_code=status.HTTP_204_NO_CONTENT)
async def reject_revert(
    episode_id: str,
    container: ContainerDep,
    user: UserDep,
    request_id: str = Query(...),
) -> Response:
    container.reverts.reject_revert(request_id, episode_id, user)
    return _no_content()


@router.post("/{episode_id}/revert", status_code=status.HTTP_204_NO_CONTENT)
async def direct_revert(
    episode_id: str,
    container: ContainerDep,
    user: UserDep,
    audit_id: str = Query(...),
) -> Response:
    """Single-reviewer revert of a re-suggestion."""
    container.reverts.revert(episode_id, audit_id, user)
    return _no_content()


@router.post("/{episode_id}/queries", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_query(
    episode_id: str,
    body: QueryCreateRequest,
    container: ContainerDep,
    user: UserDep,
    response: Response,
) -> CreatedResponse:
    query = container.queries.create_query(episode_id, body.to_clinician, body.subject, body.body, user)
    response.headers["Location"] = f"/queries/{query.query_id}"
    return CreatedResponse(id=query.query_id)
