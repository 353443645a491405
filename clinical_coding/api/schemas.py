"""Request and response bodies for the API.

Bodies use camelCase on the wire like the domain models they wrap.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from clinical_coding.domain.models import CamelModel, Diagnosis, Episode, EpisodeStatus, Procedure


class EpisodeCreateRequest(CamelModel):
    """Episode fields a coder supplies; codes come from the suggestion engine."""

    nhs_number: str = Field("", max_length=20)
    patient_name: str = Field("", max_length=200)
    admission_date: Optional[date] = None
    discharge_date: Optional[date] = None
    specialty: str = Field("Respiratory Medicine", max_length=100)
    source_text: str = ""

    def to_episode(self) -> Episode:
        data = self.model_dump(exclude_none=True)
        return Episode(**data)


class EpisodeListResponse(CamelModel):
    items: List[Episode]
    total: int
    page: int = 1
    page_size: int


class EpisodeSummary(CamelModel):
    """Row of the open-episode worklist."""

    episode_id: str
    patient_name: str
    admission_date: date
    discharge_date: Optional[date] = None
    specialty: str
    status: EpisodeStatus

    @classmethod
    def from_episode(cls, episode: Episode) -> "EpisodeSummary":
        return cls(
            episode_id=episode.episode_id,
            patient_name=episode.patient_name,
            admission_date=episode.admission_date,
            discharge_date=episode.discharge_date,
            specialty=episode.specialty,
            status=episode.status,
        )


class SuggestionResponse(CamelModel):
    diagnoses: List[Diagnosis]
    procedures: List[Procedure]


class DiagnosisSets(CamelModel):
    old: List[Diagnosis]
    new: List[Diagnosis]


class ProcedureSets(CamelModel):
    old: List[Procedure]
    new: List[Procedure]


class CodeDiffResponse(CamelModel):
    """Most recent applied re-suggestion for an episode."""

    audit_id: str
    timestamp: datetime
    dx: DiagnosisSets
    px: ProcedureSets
    dx_added: List[str]
    dx_removed: List[str]
    px_added: List[str]
    px_removed: List[str]


class QueryCreateRequest(CamelModel):
    to_clinician: str = Field(..., min_length=1, max_length=200)
    subject: Optional[str] = Field(None, max_length=200)
    body: str = Field(..., min_length=1)


class QueryResponseRequest(CamelModel):
    """Authenticated response. The responder defaults to the acting principal."""

    responder: Optional[str] = None
    response_text: str


class CreatedResponse(CamelModel):
    id: str


class HealthResponse(CamelModel):
    status: str
    time: datetime
    database: str
    queue_provider: str
    queue_depth: Optional[int] = None
