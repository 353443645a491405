"""Audit Log Service.

This module provides the append-only audit trail of the coding workflow. Every
state transition, code change, revert and clinician interaction is recorded
here, and prior code states are reconstructed only from these entries.

Security Impact:
    - Creates immutable audit trail of all episode changes
    - Entries are never updated or deleted
    - Code-changing entries always carry a before/after snapshot

Architecture:
    - Domain service on top of StoragePort
    - Writes participate in the caller's storage transaction when one is open
"""

import logging
from datetime import datetime
from typing import List, Optional

from clinical_coding.domain.models import (
    AuditAction,
    AuditEntry,
    AuditPayload,
    CodeChangePayload,
    EmptyPayload,
    utc_now,
)
from clinical_coding.domain.ports import StoragePort

logger = logging.getLogger(__name__)


class AuditLog:
    """Append-only log of workflow events.

    Example Usage:
        ```python
        audit_log = AuditLog(storage)
        audit_log.record(
            action=AuditAction.EPISODE_SUBMITTED,
            entity_id=episode.episode_id,
            performed_by="coder.a",
        )
        last = audit_log.get_last_event_for_episode(
            episode.episode_id, AuditAction.RESUGGESTION_APPLIED
        )
        ```
    """

    def __init__(self, storage: StoragePort):
        self.storage = storage

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Persist an entry. Returns the same entry for chaining."""
        self.storage.append_audit(entry)
        logger.debug(
            f"Audit: {entry.action.value} on {entry.entity_type}:{entry.entity_id} "
            f"by {entry.performed_by}"
        )
        return entry

    def record(
        self,
        action: AuditAction,
        entity_id: str,
        performed_by: str = "system",
        payload: Optional[AuditPayload] = None,
        entity_type: str = "Episode",
        timestamp: Optional[datetime] = None
    ) -> AuditEntry:
        """Build and append an entry in one call."""
        entry = AuditEntry(
            timestamp=timestamp or utc_now(),
            action=action,
            entity_id=entity_id,
            entity_type=entity_type,
            performed_by=performed_by or "system",
            payload=payload if payload is not None else EmptyPayload(),
        )
        return self.append(entry)

    def list_recent(self, limit: int = 200, entity_id: Optional[str] = None) -> List[AuditEntry]:
        """Most recent entries first, optionally only those for one episode or query."""
        return self.storage.list_audit(limit=max(1, limit), entity_id=entity_id)

    def get_by_id(self, audit_id: str) -> Optional[AuditEntry]:
        return self.storage.get_audit(audit_id)

    def get_last_event_for_episode(self, episode_id: str, action: AuditAction) -> Optional[AuditEntry]:
        return self.storage.get_last_audit_for_entity(episode_id, action)

    def last_code_change(self, episode_id: str) -> Optional[CodeChangePayload]:
        """Snapshot carried by the latest ReSuggestionApplied entry for an episode."""
        entry = self.get_last_event_for_episode(episode_id, AuditAction.RESUGGESTION_APPLIED)
        if entry is None:
            return None
        return entry.code_change()
