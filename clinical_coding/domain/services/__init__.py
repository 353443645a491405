"""Domain Services.

This package contains domain services that implement the coding workflow
on top of the ports, without infrastructure dependencies.
"""

from clinical_coding.domain.services.audit_log import AuditLog
from clinical_coding.domain.services.code_differ import apply_delta, compute_code_change, diff_codes
from clinical_coding.domain.services.code_parsing import CodeComparisonService
from clinical_coding.domain.services.dead_letters import DeadLetterProcessor, DeadLetterService
from clinical_coding.domain.services.episode_workflow import EpisodeWorkflow
from clinical_coding.domain.services.query_service import QueryService
from clinical_coding.domain.services.reconciler import ReconcileOutcome, Reconciler, ReconcilerConfig
from clinical_coding.domain.services.revert_workflow import RevertWorkflow

__all__ = [
    'AuditLog',
    'CodeComparisonService',
    'DeadLetterProcessor',
    'DeadLetterService',
    'EpisodeWorkflow',
    'QueryService',
    'ReconcileOutcome',
    'Reconciler',
    'ReconcilerConfig',
    'RevertWorkflow',
    'apply_delta',
    'compute_code_change',
    'diff_codes',
]
