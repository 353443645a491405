"""Authenticated clinician query response endpoint."""

import logging

from fastapi import APIRouter, Response, status

from clinical_coding.api.dependencies import ContainerDep, UserDep
from clinical_coding.api.schemas import QueryResponseRequest
from clinical_coding.domain.models import ClinicianQuery

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queries", tags=["queries"])


@router.get("/{query_id}", response_model=ClinicianQuery)
async def get_query(query_id: str, container: ContainerDep) -> ClinicianQuery:
    return container.queries.get_query(query_id)


@router.post("/{query_id}/response", status_code=status.HTTP_204_NO_CONTENT)
async def record_response(
    query_id: str,
    body: QueryResponseRequest,
    container: ContainerDep,
    user: UserDep,
) -> Response:
    """Record a response entered by an authenticated user. Does not re-suggest codes."""
    container.queries.respond(query_id, body.responder or user, body.response_text)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
