"""Dual-Control Revert Workflow.

Restores an episode's codes to the pre-change snapshot captured by a prior
audit entry. A revert is requested by one principal and approved or rejected
by another:

    Pending -> {Approved, Rejected}

Security Impact:
    - Approval by the requester is refused with UnauthorizedError before any
      state is inspected, so separation of duties holds in every state
    - Status resolution, code replacement and the audit entry commit together
    - The audit entry of every revert carries its own before/after snapshot,
      so a revert can itself be reverted

Architecture:
    - Domain service on top of StoragePort and AuditLog
    - Snapshots are read only from the audit log, never from episode history
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from clinical_coding.domain.models import (
    AuditAction,
    AuditEntry,
    CodeChangePayload,
    Episode,
    RevertRequest,
    RevertRequestPayload,
    RevertStatus,
    utc_now,
)
from clinical_coding.domain.ports import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StoragePort,
    UnauthorizedError,
)
from clinical_coding.domain.services.audit_log import AuditLog
from clinical_coding.domain.services.code_differ import compute_code_change

logger = logging.getLogger(__name__)


class RevertWorkflow:
    """Request, resolve and apply reverts of re-suggestion events.

    Example Usage:
        ```python
        workflow = RevertWorkflow(storage, audit_log)
        request = workflow.request_revert(episode_id, audit_id, "coder.a")
        workflow.approve_revert(request.request_id, episode_id, "coder.b")
        ```
    """

    def __init__(
        self,
        storage: StoragePort,
        audit_log: AuditLog,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.audit_log = audit_log
        self.clock = clock

    def get_request(self, request_id: str) -> RevertRequest:
        request = self.storage.get_revert_request(request_id)
        if request is None:
            raise NotFoundError(
                f"Revert request {request_id} not found",
                entity_type="RevertRequest",
                entity_id=request_id,
            )
        return request

    def request_revert(self, episode_id: str, audit_id: str, requester: str) -> RevertRequest:
        """Create a Pending request to revert ``episode_id`` to the snapshot in ``audit_id``.

        Raises:
            NotFoundError: If the episode or audit entry does not exist
            InvalidStateError: If the audit entry is not a revertable code change of this episode
        """
        self._load_episode(episode_id)
        self._load_snapshot(episode_id, audit_id)

        now = self.clock()
        request = RevertRequest(
            episode_id=episode_id,
            audit_id=audit_id,
            requested_by=requester,
            requested_on=now,
        )
        with self.storage.transaction():
            self.storage.add_revert_request(request)
            self.audit_log.record(
                action=AuditAction.REVERT_REQUESTED,
                entity_id=episode_id,
                performed_by=requester,
                payload=RevertRequestPayload(request_id=request.request_id, audit_id=audit_id),
                timestamp=now,
            )

        logger.info(f"Revert {request.request_id} requested for episode {episode_id} by {requester}")
        return request

    def approve_revert(self, request_id: str, episode_id: str, approver: str) -> Episode:
        return self.resolve_revert(request_id, episode_id, approver, RevertStatus.APPROVED)

    def reject_revert(self, request_id: str, episode_id: str, approver: str) -> Episode:
        return self.resolve_revert(request_id, episode_id, approver, RevertStatus.REJECTED)

    def resolve_revert(
        self,
        request_id: str,
        episode_id: str,
        approver: str,
        outcome: RevertStatus
    ) -> Episode:
        """Approve or reject a pending revert request.

        Check order: request exists, approver differs from requester, episode
        matches, request is still Pending.

        Returns:
            Episode: The episode after resolution

        Raises:
            NotFoundError: Request, episode or target audit entry missing
            UnauthorizedError: ``approver`` is the requester
            InvalidStateError: Episode mismatch or target is not revertable
            ConflictError: Request already resolved
        """
        if outcome == RevertStatus.PENDING:
            raise ValueError("Outcome must be Approved or Rejected")

        request = self.get_request(request_id)

        if (approver or "").strip().lower() == request.requested_by.strip().lower():
            logger.warning(f"Revert {request_id}: approver {approver} is the requester")
            raise UnauthorizedError("Approver must differ from requester")

        if request.episode_id != episode_id:
            raise InvalidStateError(f"Revert request {request_id} does not belong to episode {episode_id}")

        if request.status != RevertStatus.PENDING:
            raise ConflictError(f"Revert request {request_id} is already {request.status.value}")

        now = self.clock()

        if outcome == RevertStatus.REJECTED:
            with self.storage.transaction():
                self._resolve(request, outcome, approver, now)
                self.audit_log.record(
                    action=AuditAction.REVERT_REJECTED,
                    entity_id=episode_id,
                    performed_by=approver,
                    payload=RevertRequestPayload(request_id=request_id, audit_id=request.audit_id),
                    timestamp=now,
                )
            logger.info(f"Revert {request_id} rejected by {approver}")
            return self._load_episode(episode_id)

        with self.storage.transaction():
            # Read under the transaction so the pre-revert codes are the ones replaced
            episode, snapshot = self._load_target(episode_id, request.audit_id)
            self._resolve(request, outcome, approver, now)
            self._apply(episode, snapshot, request.audit_id, approver, now, revert_request_id=request_id)

        logger.info(f"Revert {request_id} approved by {approver}; episode {episode_id} restored")
        return self._load_episode(episode_id)

    def revert(self, episode_id: str, audit_id: str, user: str) -> Episode:
        """Direct, single-step revert without a pending request.

        Replaying the same revert yields the same code set.
        """
        now = self.clock()
        with self.storage.transaction():
            episode, snapshot = self._load_target(episode_id, audit_id)
            self._apply(episode, snapshot, audit_id, user, now)
        logger.info(f"Episode {episode_id} reverted to audit {audit_id} by {user}")
        return self._load_episode(episode_id)

    def _resolve(self, request: RevertRequest, outcome: RevertStatus, approver: str, now: datetime) -> None:
        # Conditional on Pending so a concurrent resolver cannot win twice
        if not self.storage.resolve_revert_request(request.request_id, outcome, approver, now):
            raise ConflictError(f"Revert request {request.request_id} is no longer Pending")

    def _apply(
        self,
        episode: Episode,
        snapshot: CodeChangePayload,
        audit_id: str,
        user: str,
        now: datetime,
        revert_request_id: Optional[str] = None
    ) -> AuditEntry:
        change = compute_code_change(
            episode.diagnoses,
            episode.procedures,
            snapshot.old_dx,
            snapshot.old_px,
            source_audit_id=audit_id,
            revert_request_id=revert_request_id,
        )
        self.storage.replace_episode_codes(episode.episode_id, snapshot.old_dx, snapshot.old_px)
        return self.audit_log.record(
            action=AuditAction.RESUGGESTION_REVERTED,
            entity_id=episode.episode_id,
            performed_by=user,
            payload=change,
            timestamp=now,
        )

    def _load_target(self, episode_id: str, audit_id: str) -> Tuple[Episode, CodeChangePayload]:
        episode = self._load_episode(episode_id)
        return episode, self._load_snapshot(episode_id, audit_id)

    def _load_episode(self, episode_id: str) -> Episode:
        episode = self.storage.get_episode(episode_id)
        if episode is None:
            raise NotFoundError(f"Episode {episode_id} not found", entity_type="Episode", entity_id=episode_id)
        return episode

    def _load_snapshot(self, episode_id: str, audit_id: str) -> CodeChangePayload:
        entry = self.audit_log.get_by_id(audit_id)
        if entry is None:
            raise NotFoundError(f"Audit entry {audit_id} not found", entity_type="AuditEntry", entity_id=audit_id)
        if entry.entity_id != episode_id:
            raise InvalidStateError(f"Audit entry {audit_id} does not belong to episode {episode_id}")
        snapshot = entry.code_change()
        if snapshot is None:
            raise InvalidStateError(f"Audit entry {audit_id} ({entry.action.value}) carries no code snapshot")
        return snapshot
