"""Episode State Machine.

Governs the coding workflow status of an episode:

    Draft -> Submitted -> {Approved, Rejected}

Every transition writes exactly one audit entry naming the acting user.

By default transitions are permissive (any transition is accepted from any
state), which keeps existing clients working. ``strict_transitions=True``
enforces the diagram above and raises InvalidTransitionError otherwise.
Code changes made later by the reconciler or a revert never alter status.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional

from clinical_coding.domain.models import (
    AuditAction,
    Episode,
    EpisodeSnapshotPayload,
    EpisodeStatus,
    ReviewPayload,
    utc_now,
)
from clinical_coding.domain.ports import (
    ExternalUnavailableError,
    InvalidTransitionError,
    NotFoundError,
    StoragePort,
    SuggestionEngine,
)
from clinical_coding.domain.services.audit_log import AuditLog

logger = logging.getLogger(__name__)

# Statuses still awaiting a review decision
OPEN_STATUSES = (EpisodeStatus.DRAFT, EpisodeStatus.SUBMITTED)

# Source states each transition accepts in strict mode
ALLOWED_TRANSITIONS: Dict[str, FrozenSet[EpisodeStatus]] = {
    "submit": frozenset({EpisodeStatus.DRAFT}),
    "approve": frozenset({EpisodeStatus.SUBMITTED}),
    "reject": frozenset({EpisodeStatus.SUBMITTED}),
}


class EpisodeWorkflow:
    """Create episodes and move them through review.

    Parameters:
        storage: Persistence port
        audit_log: Audit log service sharing the same storage
        strict_transitions: Enforce the Draft/Submitted/terminal diagram
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        storage: StoragePort,
        audit_log: AuditLog,
        strict_transitions: bool = False,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.audit_log = audit_log
        self.strict_transitions = strict_transitions
        self.clock = clock

    async def create(self, episode: Episode, user: str, engine: Optional[SuggestionEngine] = None) -> Episode:
        """Create an episode, optionally seeding its codes from the suggestion engine.

        The engine call happens before anything is written, so a failing or
        cancelled engine leaves no trace.

        Raises:
            ExternalUnavailableError: If the engine raises
        """
        if engine is not None:
            try:
                suggestion = await engine.suggest(episode)
            except ExternalUnavailableError:
                raise
            except Exception as e:
                raise ExternalUnavailableError(f"Suggestion engine failed: {e}") from e
            episode.diagnoses = list(suggestion.diagnoses)
            episode.procedures = list(suggestion.procedures)

        episode.status = EpisodeStatus.DRAFT
        episode.created_on = self.clock()

        with self.storage.transaction():
            self.storage.add_episode(episode)
            self.audit_log.record(
                action=AuditAction.EPISODE_CREATED,
                entity_id=episode.episode_id,
                performed_by=user,
                payload=EpisodeSnapshotPayload(episode=episode),
                timestamp=self.clock(),
            )

        logger.info(
            f"Created episode {episode.episode_id} with {len(episode.diagnoses)} diagnoses "
            f"and {len(episode.procedures)} procedures"
        )
        return episode

    def get(self, episode_id: str) -> Episode:
        episode = self.storage.get_episode(episode_id)
        if episode is None:
            raise NotFoundError(f"Episode {episode_id} not found", entity_type="Episode", entity_id=episode_id)
        return episode

    def list(self, limit: int = 50, status: Optional[EpisodeStatus] = None) -> List[Episode]:
        return self.storage.list_episodes(limit=limit, status=status)

    def list_open(self, limit: int = 50) -> List[Episode]:
        """Most recent episodes that are neither approved nor rejected."""
        return self.storage.list_episodes(limit=limit, statuses=OPEN_STATUSES)

    def submit(self, episode_id: str, user: str) -> Episode:
        episode = self._load_for("submit", episode_id)
        now = self.clock()
        episode.status = EpisodeStatus.SUBMITTED
        episode.submitted_by = user
        episode.submitted_on = now
        return self._commit(episode, AuditAction.EPISODE_SUBMITTED, user, now)

    def approve(self, episode_id: str, user: str, notes: Optional[str] = None) -> Episode:
        return self._review("approve", episode_id, user, notes, EpisodeStatus.APPROVED, AuditAction.EPISODE_APPROVED)

    def reject(self, episode_id: str, user: str, notes: Optional[str] = None) -> Episode:
        return self._review("reject", episode_id, user, notes, EpisodeStatus.REJECTED, AuditAction.EPISODE_REJECTED)

    def _review(
        self,
        transition: str,
        episode_id: str,
        user: str,
        notes: Optional[str],
        target: EpisodeStatus,
        action: AuditAction
    ) -> Episode:
        episode = self._load_for(transition, episode_id)
        now = self.clock()
        episode.status = target
        episode.reviewed_by = user
        episode.reviewed_on = now
        episode.review_notes = notes
        return self._commit(episode, action, user, now, ReviewPayload(notes=notes))

    def _load_for(self, transition: str, episode_id: str) -> Episode:
        episode = self.get(episode_id)
        if self.strict_transitions and episode.status not in ALLOWED_TRANSITIONS[transition]:
            raise InvalidTransitionError(
                f"Cannot {transition} episode {episode_id} in status {episode.status.value}",
                current=episode.status,
                transition=transition,
            )
        return episode

    def _commit(
        self,
        episode: Episode,
        action: AuditAction,
        user: str,
        now: datetime,
        payload: Optional[ReviewPayload] = None
    ) -> Episode:
        with self.storage.transaction():
            self.storage.update_episode_status(episode)
            self.audit_log.record(
                action=action,
                entity_id=episode.episode_id,
                performed_by=user,
                payload=payload,
                timestamp=now,
            )
        logger.info(f"Episode {episode.episode_id} -> {episode.status.value} by {user}")
        return episode
