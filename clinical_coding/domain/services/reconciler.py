"""Debounced Re-Suggestion Reconciler.

Consumes a verified clinician response to a coding query and, unless a
re-suggestion was applied to the same episode very recently, re-runs the
suggestion engine over the updated narrative and replaces the episode's codes.

Steps:
    1. Record the response on the query (idempotent)
    2. Resolve the parent episode; stop if absent
    3. Debounce against the latest ReSuggestionApplied entry
    4. Append the response to the narrative and call the suggestion engine
    5. Diff current codes against the suggestion
    6. Replace codes and narrative
    7. Audit ReSuggestionApplied with the full snapshot (6 and 7 commit together)
    8. Push a delta row to analytics, best effort

Security Impact:
    - Nothing beyond step 1 is written until the engine call has returned, so a
      cancelled or failed reconciliation leaves the episode untouched
    - Analytics failures never roll back or hide the audit entry

Concurrency:
    With ``serialize_per_episode`` a per-episode asyncio.Lock covers steps
    3 to 7, so a concurrent second call observes the first call's audit entry
    and is debounced. Without it two overlapping calls can both apply; the
    code replacement is a full-set replace, so the last writer wins.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Dict, NamedTuple, Optional

from clinical_coding.domain.models import (
    AuditAction,
    AuditEntry,
    CodeChangePayload,
    DebounceSkipPayload,
    Episode,
    utc_now,
)
from clinical_coding.domain.ports import (
    AnalyticsSink,
    ExternalUnavailableError,
    StoragePort,
    SuggestionEngine,
)
from clinical_coding.domain.services.audit_log import AuditLog
from clinical_coding.domain.services.code_differ import compute_code_change
from clinical_coding.domain.services.query_service import QueryService

logger = logging.getLogger(__name__)

APPLIED = "applied"
DEBOUNCED = "debounced"
NO_EPISODE = "no_episode"


@dataclass(frozen=True)
class ReconcilerConfig:
    """Explicit reconciler settings.

    Attributes:
        min_interval: Minimum age of the last applied re-suggestion before another may run
        serialize_per_episode: Hold a per-episode lock across the debounce check and commit
        analytics_timeout_seconds: Upper bound on the best-effort analytics push
        analytics_table: Analytics table receiving delta rows
    """

    min_interval: timedelta = timedelta(minutes=5)
    serialize_per_episode: bool = True
    analytics_timeout_seconds: float = 10.0
    analytics_table: str = "SuggestionDeltas"


class ReconcileOutcome(NamedTuple):
    status: str
    episode_id: Optional[str] = None
    audit_entry: Optional[AuditEntry] = None


def annotate_narrative(narrative: str, responder: Optional[str], text: str, when: datetime) -> str:
    """Append a clinician response to the narrative, tagged with responder and UTC time."""
    stamp = when.strftime("%Y-%m-%d %H:%M:%SZ")
    return f"{narrative or ''}\n\nClinician response ({responder or 'unknown'} on {stamp}):\n{text}"


def delta_row(episode_id: str, change: CodeChangePayload, when: datetime) -> dict:
    """Analytics row summarising one applied re-suggestion."""
    return {
        "EpisodeId": episode_id,
        "EventUtc": when.isoformat(),
        "DxAdded": "|".join(change.dx_added),
        "DxRemoved": "|".join(change.dx_removed),
        "PxAdded": "|".join(change.px_added),
        "PxRemoved": "|".join(change.px_removed),
    }


class Reconciler:
    """Apply clinician responses to episodes with debounce.

    Example Usage:
        ```python
        reconciler = Reconciler(storage, audit_log, queries, engine, analytics)
        outcome = await reconciler.reconcile(query_id, "dr.jones", "Confirms COPD")
        if outcome.status == "debounced":
            ...
        ```
    """

    def __init__(
        self,
        storage: StoragePort,
        audit_log: AuditLog,
        queries: QueryService,
        engine: SuggestionEngine,
        analytics: AnalyticsSink,
        config: Optional[ReconcilerConfig] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.audit_log = audit_log
        self.queries = queries
        self.engine = engine
        self.analytics = analytics
        self.config = config or ReconcilerConfig()
        self.clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    def record_response(self, query_id: str, responder: Optional[str], response_text: str):
        """Step 1 only. Safe to call any number of times with the same response."""
        return self.queries.record_response(query_id, responder, response_text)

    async def reconcile(
        self,
        query_id: str,
        responder: Optional[str],
        response_text: str,
        raw_body: Optional[str] = None
    ) -> ReconcileOutcome:
        """Run the full reconciliation for one clinician response.

        Raises:
            NotFoundError: If the query does not exist
            ExternalUnavailableError: If the suggestion engine fails
        """
        query = self.record_response(query_id, responder, response_text)

        if self.storage.get_episode(query.episode_id) is None:
            logger.info(f"Query {query_id}: parent episode {query.episode_id} absent, nothing to reconcile")
            return ReconcileOutcome(status=NO_EPISODE, episode_id=query.episode_id)

        async with self._episode_lock(query.episode_id):
            outcome = await self._reconcile_episode(query.episode_id, query_id, responder, response_text, raw_body)

        if outcome.status == APPLIED:
            await self._push_analytics(outcome.episode_id, outcome.audit_entry)
        return outcome

    async def _reconcile_episode(
        self,
        episode_id: str,
        query_id: str,
        responder: Optional[str],
        response_text: str,
        raw_body: Optional[str]
    ) -> ReconcileOutcome:
        episode = self.storage.get_episode(episode_id)
        if episode is None:
            return ReconcileOutcome(status=NO_EPISODE, episode_id=episode_id)

        now = self.clock()
        last = self.audit_log.get_last_event_for_episode(episode_id, AuditAction.RESUGGESTION_APPLIED)
        if last is not None and now - last.timestamp < self.config.min_interval:
            entry = self.audit_log.record(
                action=AuditAction.RESUGGESTION_SKIPPED_DEBOUNCE,
                entity_id=episode_id,
                performed_by=responder or "system",
                payload=DebounceSkipPayload(
                    query_id=query_id,
                    responder=responder,
                    response_text=response_text,
                    last_applied_audit_id=last.audit_id,
                    raw_body=raw_body,
                ),
                timestamp=now,
            )
            logger.info(
                f"Episode {episode_id}: re-suggestion debounced (last applied {last.audit_id})",
                extra={"episode_id": episode_id, "query_id": query_id}
            )
            return ReconcileOutcome(status=DEBOUNCED, episode_id=episode_id, audit_entry=entry)

        narrative = annotate_narrative(episode.source_text, responder, response_text, now)
        working: Episode = episode.model_copy(update={"source_text": narrative})

        try:
            suggestion = await self.engine.suggest(working)
        except ExternalUnavailableError:
            raise
        except Exception as e:
            logger.error(
                f"Episode {episode_id}: suggestion engine failed: {e}",
                extra={"episode_id": episode_id, "query_id": query_id}
            )
            raise ExternalUnavailableError(f"Suggestion engine failed: {e}") from e

        change = compute_code_change(
            episode.diagnoses,
            episode.procedures,
            suggestion.diagnoses,
            suggestion.procedures,
        )

        committed_on = self.clock()
        with self.storage.transaction():
            self.storage.replace_episode_codes(
                episode_id,
                list(suggestion.diagnoses),
                list(suggestion.procedures),
                source_text=narrative,
            )
            entry = self.audit_log.record(
                action=AuditAction.RESUGGESTION_APPLIED,
                entity_id=episode_id,
                performed_by=responder or "system",
                payload=change,
                timestamp=committed_on,
            )

        logger.info(
            f"Episode {episode_id}: re-suggestion applied "
            f"(dx +{len(change.dx_added)}/-{len(change.dx_removed)}, "
            f"px +{len(change.px_added)}/-{len(change.px_removed)})",
            extra={"episode_id": episode_id, "query_id": query_id}
        )
        return ReconcileOutcome(status=APPLIED, episode_id=episode_id, audit_entry=entry)

    async def _push_analytics(self, episode_id: str, entry: AuditEntry) -> None:
        change = entry.code_change()
        rows = [delta_row(episode_id, change, entry.timestamp)]
        try:
            result = await asyncio.wait_for(
                self.analytics.push_rows(self.config.analytics_table, rows),
                timeout=self.config.analytics_timeout_seconds,
            )
            if result.is_failure():
                logger.warning(f"Analytics push for episode {episode_id} failed: {result.error}")
        except asyncio.TimeoutError:
            logger.warning(
                f"Analytics push for episode {episode_id} timed out after "
                f"{self.config.analytics_timeout_seconds}s"
            )
        except Exception as e:
            logger.warning(f"Analytics push for episode {episode_id} failed: {e}")

    @asynccontextmanager
    async def _episode_lock(self, episode_id: str) -> AsyncIterator[None]:
        if not self.config.serialize_per_episode:
            yield
            return
        lock = self._locks.setdefault(episode_id, asyncio.Lock())
        self._lock_holders[episode_id] = self._lock_holders.get(episode_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # Drop the lock once no task holds or awaits it
            self._lock_holders[episode_id] -= 1
            if not self._lock_holders[episode_id]:
                del self._lock_holders[episode_id]
                del self._locks[episode_id]
