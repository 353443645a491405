"""Health check endpoint."""

import logging

from fastapi import APIRouter

from clinical_coding.adapters.queues import DurableQueue
from clinical_coding.api.dependencies import ContainerDep
from clinical_coding.api.schemas import HealthResponse
from clinical_coding.domain.models import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(container: ContainerDep) -> HealthResponse:
    """Report database connectivity and queue backend.

    Security Impact:
        - Only checks connectivity, no sensitive data exposed
    """
    database = "connected"
    depth = None
    try:
        with container.storage.transaction() as conn:
            conn.execute("SELECT 1").fetchone()
        if isinstance(container.queue, DurableQueue):
            depth = container.queue.depth()
    except Exception as e:
        logger.warning(f"Database health check failed: {str(e)}")
        database = "disconnected"

    return HealthResponse(
        status="ok" if database == "connected" else "degraded",
        time=utc_now(),
        database=database,
        queue_provider=container.settings.queue.provider,
        queue_depth=depth,
    )
