"""Clinician query service: outbound questions and their responses."""

import logging
from datetime import datetime
from typing import Callable, Optional

from clinical_coding.domain.models import (
    AuditAction,
    ClinicianQuery,
    ClinicianQueryPayload,
    QueryResponsePayload,
    utc_now,
)
from clinical_coding.domain.ports import NotFoundError, StoragePort
from clinical_coding.domain.services.audit_log import AuditLog

logger = logging.getLogger(__name__)


class QueryService:
    """Create clinician queries and record their responses."""

    def __init__(
        self,
        storage: StoragePort,
        audit_log: AuditLog,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.audit_log = audit_log
        self.clock = clock

    def get_query(self, query_id: str) -> ClinicianQuery:
        query = self.storage.get_query(query_id)
        if query is None:
            raise NotFoundError(f"Query {query_id} not found", entity_type="ClinicianQuery", entity_id=query_id)
        return query

    def create_query(
        self,
        episode_id: str,
        to_clinician: str,
        subject: Optional[str],
        body: str,
        user: str
    ) -> ClinicianQuery:
        """Create a query for an existing episode.

        Raises:
            NotFoundError: If the episode does not exist
        """
        if self.storage.get_episode(episode_id) is None:
            raise NotFoundError(f"Episode {episode_id} not found", entity_type="Episode", entity_id=episode_id)

        now = self.clock()
        query = ClinicianQuery(
            episode_id=episode_id,
            to_clinician=to_clinician,
            subject=subject or "Clinical Coding Query",
            body=body,
            created_by=user,
            created_on=now,
        )
        with self.storage.transaction():
            self.storage.add_query(query)
            self.audit_log.record(
                action=AuditAction.CLINICIAN_QUERY_CREATED,
                entity_id=episode_id,
                performed_by=user,
                payload=ClinicianQueryPayload(query=query),
                timestamp=now,
            )
        logger.info(f"Created clinician query {query.query_id} for episode {episode_id}")
        return query

    def record_response(self, query_id: str, responder: Optional[str], response_text: str) -> ClinicianQuery:
        """Record a response on the query.

        Idempotent: recording the same responder and text again leaves the
        stored query, including its response timestamp, unchanged.

        Raises:
            NotFoundError: If the query does not exist
        """
        query = self.get_query(query_id)
        if query.response_text == response_text and query.responded_by == responder:
            logger.debug(f"Query {query_id}: response already recorded")
            return query

        now = self.clock()
        if not self.storage.update_query_response(query_id, responder, response_text, now):
            raise NotFoundError(f"Query {query_id} not found", entity_type="ClinicianQuery", entity_id=query_id)

        query.response_text = response_text
        query.responded_by = responder
        query.responded_on = now
        return query

    def respond(self, query_id: str, responder: str, response_text: str) -> ClinicianQuery:
        """Authenticated response path: record the response and audit it."""
        with self.storage.transaction():
            query = self.record_response(query_id, responder, response_text)
            self.audit_log.record(
                action=AuditAction.CLINICIAN_QUERY_RESPONDED,
                entity_id=query.episode_id,
                performed_by=responder,
                payload=QueryResponsePayload(
                    query_id=query_id,
                    responder=responder,
                    response_text=response_text,
                ),
                timestamp=self.clock(),
            )
        return query
