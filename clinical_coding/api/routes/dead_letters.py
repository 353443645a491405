"""Dead-letter inspection and manual retry."""

import logging
from typing import List

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from clinical_coding.api.dependencies import ContainerDep
from clinical_coding.domain.models import DeadLetter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dead-letters", tags=["dead-letters"])

# Processor failure types and the status each one maps to
RETRY_FAILURE_STATUS = {
    "MalformedPayloadError": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "NotFoundError": status.HTTP_404_NOT_FOUND,
}


@router.get("", response_model=List[DeadLetter])
async def list_dead_letters(
    container: ContainerDep,
    limit: int = Query(100, ge=1, le=1000),
) -> List[DeadLetter]:
    return container.dead_letters.list(limit=limit)


@router.get("/{dead_letter_id}", response_model=DeadLetter)
async def get_dead_letter(dead_letter_id: str, container: ContainerDep) -> DeadLetter:
    return container.dead_letters.get(dead_letter_id)


@router.post("/{dead_letter_id}/retry")
async def retry_dead_letter(dead_letter_id: str, container: ContainerDep) -> Response:
    """Replay a dead letter now. Idempotent; the attempt is recorded either way."""
    result = await container.dead_letters.retry(dead_letter_id)
    if result.is_success():
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    status_code = RETRY_FAILURE_STATUS.get(result.error_type, status.HTTP_503_SERVICE_UNAVAILABLE)
    return JSONResponse(status_code=status_code, content={"error": result.error_type, "detail": result.error})
