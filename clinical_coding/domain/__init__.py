"""Domain layer for the clinical coding workflow.

This module contains the core business logic: episode, audit and revert
models, the ports that adapters implement, and the workflow services.
All domain models are pure Python with no external dependencies beyond Pydantic.
"""

from .models import (
    AuditAction,
    AuditEntry,
    ClinicianQuery,
    CodeChangePayload,
    DeadLetter,
    Diagnosis,
    Episode,
    EpisodeStatus,
    Procedure,
    RevertRequest,
    RevertStatus,
)

__all__ = [
    "AuditAction",
    "AuditEntry",
    "ClinicianQuery",
    "CodeChangePayload",
    "DeadLetter",
    "Diagnosis",
    "Episode",
    "EpisodeStatus",
    "Procedure",
    "RevertRequest",
    "RevertStatus",
]
