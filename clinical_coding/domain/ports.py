"""Domain Ports - Abstract Contracts for the Coding Workflow.

This module defines the Port interfaces (abstract contracts) that Adapters must
implement, the Result type used where failure is data rather than control flow,
and the workflow error hierarchy.

Following Hexagonal Architecture, the Domain Core defines what it needs, not how
it's provided: persistence, the suggestion engine, the analytics sink and the
dead-letter queue backend are all collaborators behind these ports.

Security Impact:
    - Storage ports expose no update or delete for audit entries
    - Authorization failures are distinguishable from not-found failures
    - Queue ports never acknowledge a message on the caller's behalf

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (DuckDB, Redis, HTTP, rule-based engine, etc.) implement these ports
    - Domain services depend only on these contracts
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, List, NamedTuple, Optional, Sequence, TypeVar, Union

from clinical_coding.domain.models import (
    AuditAction,
    AuditEntry,
    ClinicianQuery,
    DeadLetter,
    Diagnosis,
    Episode,
    EpisodeStatus,
    Procedure,
    QueueMessage,
    RevertRequest,
    RevertStatus,
)

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Used where a failure is an expected outcome the caller reacts to (an
    analytics push that did not land, a dead-letter payload that could not be
    processed) rather than an error to propagate.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (MalformedPayloadError, NotFoundError, etc.)
        error_details: Additional error context

    Example:
        ```python
        result = await processor.process(payload)
        if result.is_success():
            queue.ack(message)
        else:
            queue.abandon(message, result.error)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(
            success=True,
            value=value,
            error=None,
            error_type=None,
            error_details=None
        )

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "MalformedPayloadError")
            error_details: Additional context

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class WorkflowError(Exception):
    """Base exception for all coding workflow errors."""
    pass


class NotFoundError(WorkflowError):
    """Raised when an episode, audit entry, request, query or dead letter is absent.

    Attributes:
        entity_type: Kind of entity that was looked up
        entity_id: Identifier that was not found
    """

    def __init__(self, message: str, entity_type: Optional[str] = None, entity_id: Optional[str] = None):
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id


class UnauthorizedError(WorkflowError):
    """Raised when a signature is missing/invalid or a principal may not act.

    Revert approvals by the original requester raise this error so callers can
    tell "you're not allowed" apart from "nothing there" and "bad state".
    """
    pass


class InvalidStateError(WorkflowError):
    """Raised when an operation does not fit the current state of an entity."""
    pass


class InvalidTransitionError(InvalidStateError):
    """Raised by strict workflows when an episode status transition is not allowed.

    Attributes:
        current: Status the episode is in
        transition: Name of the attempted transition
    """

    def __init__(self, message: str, current: Optional[EpisodeStatus] = None, transition: Optional[str] = None):
        super().__init__(message)
        self.current = current
        self.transition = transition


class ConflictError(InvalidStateError):
    """Raised when resolving a revert request that is already resolved."""
    pass


class ExternalUnavailableError(WorkflowError):
    """Raised when the suggestion engine or another external service is unreachable."""
    pass


class MalformedPayloadError(WorkflowError):
    """Raised when an inbound or dead-lettered payload cannot be parsed.

    Attributes:
        payload: The offending payload (may be truncated)
    """

    def __init__(self, message: str, payload: Optional[str] = None):
        super().__init__(message)
        self.payload = payload[:500] if payload else payload


class StorageError(WorkflowError):
    """Raised when a persistence operation fails.

    Attributes:
        operation: The storage operation that failed
        details: Additional error context
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}


# ============================================================================
# Storage Port
# ============================================================================

class StoragePort(ABC):
    """Abstract contract for durable storage of workflow records.

    Key Principles:
        - Audit entries are insert-only: there is no update or delete method
        - Episode codes are replaced as whole sets, never patched
        - Multi-step writes are grouped with ``transaction()``

    Example Usage:
        ```python
        with storage.transaction():
            storage.replace_episode_codes(episode_id, new_dx, new_px)
            storage.append_audit(entry)
        ```
    """

    @abstractmethod
    def initialize_schema(self) -> Result[None]:
        """Create tables if they do not exist."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Return a re-entrant context manager wrapping one atomic unit of work.

        The outermost block commits on success and rolls back on any exception.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    # Episodes ---------------------------------------------------------------

    @abstractmethod
    def add_episode(self, episode: Episode) -> str:
        pass

    @abstractmethod
    def get_episode(self, episode_id: str) -> Optional[Episode]:
        pass

    @abstractmethod
    def list_episodes(
        self,
        limit: int = 50,
        status: Optional[EpisodeStatus] = None,
        statuses: Optional[Sequence[EpisodeStatus]] = None
    ) -> List[Episode]:
        """Newest first. ``status`` takes precedence over ``statuses``."""
        pass

    @abstractmethod
    def update_episode_status(self, episode: Episode) -> None:
        """Persist status and submission/review fields of an episode.

        Codes and narrative are not touched.

        Raises:
            NotFoundError: If the episode does not exist
        """
        pass

    @abstractmethod
    def replace_episode_codes(
        self,
        episode_id: str,
        diagnoses: List[Diagnosis],
        procedures: List[Procedure],
        source_text: Optional[str] = None
    ) -> None:
        """Atomically replace all codes of an episode.

        Deletes every current diagnosis and procedure and inserts the given
        sets. When ``source_text`` is provided the narrative is replaced in the
        same unit of work.

        Raises:
            NotFoundError: If the episode does not exist
        """
        pass

    # Audit log --------------------------------------------------------------

    @abstractmethod
    def append_audit(self, entry: AuditEntry) -> str:
        pass

    @abstractmethod
    def get_audit(self, audit_id: str) -> Optional[AuditEntry]:
        pass

    @abstractmethod
    def list_audit(self, limit: int = 200, entity_id: Optional[str] = None) -> List[AuditEntry]:
        """Most recent entries first, optionally only those for one entity."""
        pass

    @abstractmethod
    def get_last_audit_for_entity(self, entity_id: str, action: AuditAction) -> Optional[AuditEntry]:
        """Most recent entry of ``action`` for the entity, by timestamp descending."""
        pass

    # Revert requests --------------------------------------------------------

    @abstractmethod
    def add_revert_request(self, request: RevertRequest) -> str:
        pass

    @abstractmethod
    def get_revert_request(self, request_id: str) -> Optional[RevertRequest]:
        pass

    @abstractmethod
    def resolve_revert_request(
        self,
        request_id: str,
        status: RevertStatus,
        resolved_by: str,
        resolved_on: datetime
    ) -> bool:
        """Move a Pending request to ``status``.

        Returns:
            bool: False if the request was not Pending (nothing was changed)
        """
        pass

    # Clinician queries ------------------------------------------------------

    @abstractmethod
    def add_query(self, query: ClinicianQuery) -> str:
        pass

    @abstractmethod
    def get_query(self, query_id: str) -> Optional[ClinicianQuery]:
        pass

    @abstractmethod
    def update_query_response(
        self,
        query_id: str,
        responded_by: Optional[str],
        response_text: str,
        responded_on: datetime
    ) -> bool:
        """Record a response. Returns False if the query does not exist."""
        pass

    # Dead letters -----------------------------------------------------------

    @abstractmethod
    def add_dead_letter(self, dead_letter: DeadLetter) -> str:
        pass

    @abstractmethod
    def get_dead_letter(self, dead_letter_id: str) -> Optional[DeadLetter]:
        pass

    @abstractmethod
    def list_dead_letters(self, limit: int = 100) -> List[DeadLetter]:
        pass

    @abstractmethod
    def record_dead_letter_attempt(
        self,
        dead_letter_id: str,
        tried_on: datetime,
        error: Optional[str] = None
    ) -> None:
        """Increment the attempt counter and stamp the last try time."""
        pass


# ============================================================================
# Suggestion Engine Port
# ============================================================================

class Suggestion(NamedTuple):
    """Codes suggested for an episode narrative."""
    diagnoses: List[Diagnosis]
    procedures: List[Procedure]


class SuggestionEngine(ABC):
    """Abstract contract for narrative-to-code suggestion.

    The engine is a black box to the workflow. An empty result is the
    documented way to signal "no suggestion"; engines must not raise for it.
    Engines that cannot reach their backend should raise
    ExternalUnavailableError.
    """

    @abstractmethod
    async def suggest(self, episode: Episode) -> Suggestion:
        """Suggest diagnoses and procedures for the episode's narrative."""
        pass

    async def close(self) -> None:
        return None


# ============================================================================
# Analytics Sink Port
# ============================================================================

class AnalyticsSink(ABC):
    """Abstract contract for best-effort analytics row pushes.

    Failures are reported as a failure Result; the commit path never depends
    on them.
    """

    @abstractmethod
    async def push_rows(self, table_name: str, rows: List[dict[str, Any]]) -> Result[int]:
        """Push rows to ``table_name``. Returns the number of rows accepted."""
        pass

    async def close(self) -> None:
        return None


# ============================================================================
# Queue Backend Port
# ============================================================================

class QueueBackend(ABC):
    """Abstract contract for an at-least-once dead-letter queue.

    Key Principles:
        - ``enqueue`` durably stores an opaque payload
        - ``receive`` hides the message from other consumers without removing it
        - Only ``ack`` removes a message; ``abandon`` makes it available again
        - A received message that is neither acked nor abandoned reappears
          after the backend's visibility/lock timeout

    Example Usage:
        ```python
        message = queue.receive()
        if message is not None:
            result = await processor.process(message.payload)
            if result.is_success():
                queue.ack(message)
            else:
                queue.abandon(message, result.error)
        ```
    """

    @abstractmethod
    def enqueue(self, payload: str) -> str:
        """Store a payload. Returns the backend message id."""
        pass

    @abstractmethod
    def receive(self) -> Optional[QueueMessage]:
        """Receive at most one message, or None if the queue has nothing visible."""
        pass

    @abstractmethod
    def ack(self, message: QueueMessage) -> None:
        pass

    @abstractmethod
    def abandon(self, message: QueueMessage, error: str = "") -> None:
        pass

    def close(self) -> None:
        return None
