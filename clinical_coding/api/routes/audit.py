"""Audit log endpoint.

Read-only: the audit trail exposes no update or delete route.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query

from clinical_coding.api.dependencies import ContainerDep
from clinical_coding.domain.models import AuditEntry
from clinical_coding.infrastructure.settings import DEFAULT_AUDIT_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=List[AuditEntry])
async def list_audit(
    container: ContainerDep,
    limit: int = Query(DEFAULT_AUDIT_LIMIT, ge=1, le=1000, description="Maximum number of entries"),
    episode_id: Optional[str] = Query(None, description="Only entries for this episode"),
) -> List[AuditEntry]:
    """Most recent audit entries, newest first."""
    return container.audit_log.list_recent(limit=limit, entity_id=episode_id)
