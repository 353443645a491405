"""Domain Models for the Clinical Coding Workflow.

This module defines the core entities of the coding workflow: episodes and
their diagnosis/procedure codes, the append-only audit trail, revert requests,
clinician queries and dead-lettered payloads.

Security Impact:
    - Audit entries are immutable (frozen) once constructed
    - Every audit entry that changes codes must carry a full before/after snapshot
    - Narrative text may contain PHI and is never logged by these models

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Models are validated by Pydantic before use
    - JSON shape uses camelCase aliases so stored payloads and API bodies match
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a new entity identifier."""
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    """Base model serialising field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Enumerations
# ============================================================================

class EpisodeStatus(str, Enum):
    """Workflow status of an episode."""
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class RevertStatus(str, Enum):
    """Outcome state of a dual-control revert request."""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class AuditAction(str, Enum):
    """Closed vocabulary of audit actions."""
    EPISODE_CREATED = "EpisodeCreated"
    EPISODE_SUBMITTED = "EpisodeSubmitted"
    EPISODE_APPROVED = "EpisodeApproved"
    EPISODE_REJECTED = "EpisodeRejected"
    RESUGGESTION_APPLIED = "ReSuggestionApplied"
    RESUGGESTION_SKIPPED_DEBOUNCE = "ReSuggestionSkipped_Debounce"
    RESUGGESTION_REVERTED = "ReSuggestionReverted"
    REVERT_REQUESTED = "RevertRequested"
    REVERT_REJECTED = "RevertRejected"
    CLINICIAN_QUERY_CREATED = "ClinicianQueryCreated"
    CLINICIAN_QUERY_RESPONDED = "ClinicianQueryResponded"


# Actions that replace an episode's codes; their entries must embed a snapshot.
CODE_CHANGING_ACTIONS = frozenset({
    AuditAction.RESUGGESTION_APPLIED,
    AuditAction.RESUGGESTION_REVERTED,
})


# ============================================================================
# Codes and Episodes
# ============================================================================

class Diagnosis(CamelModel):
    """A diagnosis code (ICD-10) attached to an episode.

    Parameters:
        code: Coding-system code (e.g. 'J18.1')
        description: Human readable description
        is_primary: True for the primary diagnosis of the episode
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=1, description="ICD-10 code")
    description: str = Field("", description="Code description")
    is_primary: bool = Field(False, description="Primary diagnosis flag")


class Procedure(CamelModel):
    """A procedure code (OPCS-4) attached to an episode.

    Parameters:
        code: Coding-system code (e.g. 'E85.2')
        description: Human readable description
        performed_on: Date the procedure was performed (if known)
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=1, description="OPCS-4 code")
    description: str = Field("", description="Code description")
    performed_on: Optional[date] = Field(None, description="Date performed")


class Episode(CamelModel):
    """A patient encounter being coded.

    The episode's codes are only ever replaced as whole sets, never patched
    field by field. Status changes go through the episode workflow; the
    reconciler and revert workflow replace codes without touching status.
    """

    model_config = ConfigDict(validate_assignment=True)

    episode_id: str = Field(default_factory=new_id)
    nhs_number: str = Field("", max_length=20)
    patient_name: str = Field("", max_length=200)
    admission_date: date = Field(default_factory=lambda: utc_now().date())
    discharge_date: Optional[date] = None
    specialty: str = Field("Respiratory Medicine", max_length=100)
    source_text: str = Field("", description="Free-text narrative")
    diagnoses: List[Diagnosis] = Field(default_factory=list)
    procedures: List[Procedure] = Field(default_factory=list)
    status: EpisodeStatus = EpisodeStatus.DRAFT
    submitted_by: Optional[str] = None
    submitted_on: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_on: Optional[datetime] = None
    review_notes: Optional[str] = None
    created_on: datetime = Field(default_factory=utc_now)


class ClinicianQuery(CamelModel):
    """An outbound question to a clinician about an episode."""

    query_id: str = Field(default_factory=new_id)
    episode_id: str
    to_clinician: str = Field("", max_length=200)
    subject: str = Field("Clinical Coding Query", max_length=200)
    body: str = ""
    created_on: datetime = Field(default_factory=utc_now)
    created_by: str = "system"
    external_reference: Optional[str] = None
    response_text: Optional[str] = None
    responded_on: Optional[datetime] = None
    responded_by: Optional[str] = None


class RevertRequest(CamelModel):
    """A request to restore an episode's codes from a prior audit entry.

    Invariants:
        - resolved_by must differ from requested_by (dual control)
        - Only one transition out of Pending is ever permitted
    """

    request_id: str = Field(default_factory=new_id)
    episode_id: str
    audit_id: str
    requested_by: str
    requested_on: datetime = Field(default_factory=utc_now)
    status: RevertStatus = RevertStatus.PENDING
    resolved_by: Optional[str] = None
    resolved_on: Optional[datetime] = None


class DeadLetter(CamelModel):
    """A payload held for retry after it could not be processed."""

    dead_letter_id: str = Field(default_factory=new_id)
    kind: str = "FlowQueryResponse"
    payload_json: str = ""
    error: str = ""
    attempts: int = 0
    created_on: datetime = Field(default_factory=utc_now)
    last_tried_on: Optional[datetime] = None
    quarantined: bool = False


# ============================================================================
# Audit Payloads (tagged union)
# ============================================================================

class EmptyPayload(CamelModel):
    kind: Literal["empty"] = "empty"


class EpisodeSnapshotPayload(CamelModel):
    kind: Literal["episode_snapshot"] = "episode_snapshot"
    episode: Episode


class ReviewPayload(CamelModel):
    kind: Literal["review"] = "review"
    notes: Optional[str] = None


class CodeChangePayload(CamelModel):
    """Full before/after snapshot of an episode's code sets.

    Serialised as ``{oldDx, oldPx, newDx, newPx, dxAdded, dxRemoved, pxAdded,
    pxRemoved}``. The ``old_*`` sets are what a revert restores.
    """

    kind: Literal["code_change"] = "code_change"
    old_dx: List[Diagnosis] = Field(default_factory=list)
    old_px: List[Procedure] = Field(default_factory=list)
    new_dx: List[Diagnosis] = Field(default_factory=list)
    new_px: List[Procedure] = Field(default_factory=list)
    dx_added: List[str] = Field(default_factory=list)
    dx_removed: List[str] = Field(default_factory=list)
    px_added: List[str] = Field(default_factory=list)
    px_removed: List[str] = Field(default_factory=list)
    source_audit_id: Optional[str] = None
    revert_request_id: Optional[str] = None


class RevertRequestPayload(CamelModel):
    kind: Literal["revert_request"] = "revert_request"
    request_id: str
    audit_id: str


class DebounceSkipPayload(CamelModel):
    kind: Literal["debounce_skip"] = "debounce_skip"
    query_id: str
    responder: Optional[str] = None
    response_text: str = ""
    last_applied_audit_id: str
    raw_body: Optional[str] = None


class ClinicianQueryPayload(CamelModel):
    kind: Literal["clinician_query"] = "clinician_query"
    query: ClinicianQuery


class QueryResponsePayload(CamelModel):
    kind: Literal["query_response"] = "query_response"
    query_id: str
    responder: Optional[str] = None
    response_text: str = ""


AuditPayload = Annotated[
    Union[
        EmptyPayload,
        EpisodeSnapshotPayload,
        ReviewPayload,
        CodeChangePayload,
        RevertRequestPayload,
        DebounceSkipPayload,
        ClinicianQueryPayload,
        QueryResponsePayload,
    ],
    Field(discriminator="kind"),
]


class AuditEntry(CamelModel):
    """Immutable record of one workflow event.

    Once written an entry is never updated or deleted. It is the only source
    from which a prior code state can be reconstructed.

    Parameters:
        audit_id: Unique identifier
        timestamp: UTC time of the event
        performed_by: Acting principal
        action: Closed-vocabulary action tag
        entity_type: Subject entity type (Episode, ClinicianQuery)
        entity_id: Subject entity identifier
        payload: Typed event payload
    """

    model_config = ConfigDict(frozen=True)

    audit_id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utc_now)
    performed_by: str = "system"
    action: AuditAction
    entity_type: str = "Episode"
    entity_id: str
    payload: AuditPayload = Field(default_factory=EmptyPayload)

    @model_validator(mode="after")
    def require_snapshot_for_code_changes(self) -> "AuditEntry":
        """Reject code-changing entries that do not embed a snapshot."""
        if self.action in CODE_CHANGING_ACTIONS and not isinstance(self.payload, CodeChangePayload):
            raise ValueError(f"{self.action.value} entries must carry a code_change payload")
        return self

    def code_change(self) -> Optional[CodeChangePayload]:
        """Return the code snapshot carried by this entry, if any."""
        if isinstance(self.payload, CodeChangePayload):
            return self.payload
        return None


# ============================================================================
# Value objects
# ============================================================================

class CodeDelta(CamelModel):
    """Codes added and removed between two code collections."""

    model_config = ConfigDict(frozen=True)

    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)


class QueueMessage(BaseModel):
    """A message received from a queue backend.

    Parameters:
        message_id: Backend message identifier
        payload: Opaque message body
        delivery_count: How many times this payload has been delivered
        receipt: Backend-specific token needed to ack or abandon
    """

    message_id: str
    payload: str
    delivery_count: int = 1
    receipt: Optional[str] = None
