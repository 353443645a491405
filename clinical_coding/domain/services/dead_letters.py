"""Dead-Letter Processing.

Clinician-response payloads that could not be applied when they arrived are
held as dead letters and replayed later, either by the queue consumer or by an
operator retrying a specific record.

Payload shape (JSON):
    ``{"queryId": "<uuid>", "responder": "<name>", "responseText": "<text>"}``
    ``responseText`` falls back to the whole payload when absent.

Security Impact:
    - Replays are idempotent: recording the same response twice changes nothing
    - Malformed payloads are reported, never silently acknowledged
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional

from clinical_coding.domain.models import DeadLetter, utc_now
from clinical_coding.domain.ports import (
    MalformedPayloadError,
    NotFoundError,
    QueueBackend,
    Result,
    StoragePort,
    WorkflowError,
)
from clinical_coding.domain.services.reconciler import Reconciler

logger = logging.getLogger(__name__)

FLOW_QUERY_RESPONSE = "FlowQueryResponse"


class QueryResponseMessage(NamedTuple):
    query_id: str
    responder: Optional[str]
    response_text: str


def build_payload(query_id: str, responder: Optional[str], response_text: str) -> str:
    """Serialise a clinician response for the dead-letter queue."""
    return json.dumps({"queryId": query_id, "responder": responder, "responseText": response_text})


class DeadLetterProcessor:
    """Replay one dead-lettered clinician response.

    Parameters:
        reconciler: Reconciler whose response-recording step is invoked
        resuggest_on_replay: Run the full debounced reconciliation instead of
            only recording the response
    """

    def __init__(self, reconciler: Reconciler, resuggest_on_replay: bool = False):
        self.reconciler = reconciler
        self.resuggest_on_replay = resuggest_on_replay

    @staticmethod
    def parse_payload(payload: str) -> QueryResponseMessage:
        """Parse a payload into its query id, responder and response text.

        Raises:
            MalformedPayloadError: Not a JSON object, or queryId missing or not a UUID
        """
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise MalformedPayloadError(f"Payload is not valid JSON: {e}", payload=payload) from e
        if not isinstance(data, dict):
            raise MalformedPayloadError("Payload must be a JSON object", payload=payload)

        raw_id = data.get("queryId")
        try:
            query_id = str(uuid.UUID(str(raw_id))) if raw_id else None
        except ValueError:
            query_id = None
        if query_id is None:
            raise MalformedPayloadError("Payload has no valid queryId", payload=payload)

        responder = data.get("responder")
        text = data.get("responseText")
        return QueryResponseMessage(
            query_id=query_id,
            responder=str(responder) if responder is not None else None,
            response_text=str(text) if text is not None else payload,
        )

    async def process(self, payload: str) -> Result[str]:
        """Process a payload. Safe to invoke repeatedly with the same payload.

        Returns:
            Result[str]: The query id on success; failure with error type otherwise
        """
        try:
            message = self.parse_payload(payload)
        except MalformedPayloadError as e:
            logger.warning(f"Dead letter payload malformed: {e}")
            return Result.failure_result(e)

        try:
            if self.resuggest_on_replay:
                await self.reconciler.reconcile(
                    message.query_id,
                    message.responder,
                    message.response_text,
                    raw_body=payload,
                )
            else:
                self.reconciler.record_response(message.query_id, message.responder, message.response_text)
        except WorkflowError as e:
            logger.warning(
                f"Dead letter for query {message.query_id} failed: {e}",
                extra={"query_id": message.query_id}
            )
            return Result.failure_result(e, error_details={"query_id": message.query_id})

        return Result.success_result(message.query_id)


class DeadLetterService:
    """Capture, list and manually retry dead letters.

    Example Usage:
        ```python
        service = DeadLetterService(storage, queue, processor)
        record = service.capture(payload, "suggestion engine unavailable")
        result = await service.retry(record.dead_letter_id)
        ```
    """

    def __init__(
        self,
        storage: StoragePort,
        queue: Optional[QueueBackend],
        processor: DeadLetterProcessor,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.queue = queue
        self.processor = processor
        self.clock = clock

    def capture(
        self,
        payload: str,
        error: str,
        kind: str = FLOW_QUERY_RESPONSE,
        enqueue: bool = True
    ) -> DeadLetter:
        """Persist a dead-letter record and hand the payload to the queue.

        The record is written first so the payload stays retryable by id even
        if the queue rejects it.
        """
        record = DeadLetter(kind=kind, payload_json=payload, error=error, created_on=self.clock())
        self.storage.add_dead_letter(record)
        logger.warning(
            f"Captured dead letter {record.dead_letter_id} ({kind}): {error}",
            extra={"dead_letter_id": record.dead_letter_id}
        )

        if enqueue and self.queue is not None:
            try:
                self.queue.enqueue(payload)
            except Exception as e:
                logger.error(f"Could not enqueue dead letter {record.dead_letter_id}: {e}")
        return record

    def quarantine(self, payload: str, error: str, attempts: int, kind: str = FLOW_QUERY_RESPONSE) -> DeadLetter:
        """Record a payload that exhausted its delivery attempts."""
        now = self.clock()
        record = DeadLetter(
            kind=kind,
            payload_json=payload,
            error=error,
            attempts=attempts,
            created_on=now,
            last_tried_on=now,
            quarantined=True,
        )
        self.storage.add_dead_letter(record)
        logger.error(
            f"Quarantined dead letter {record.dead_letter_id} after {attempts} attempts: {error}",
            extra={"dead_letter_id": record.dead_letter_id}
        )
        return record

    def get(self, dead_letter_id: str) -> DeadLetter:
        record = self.storage.get_dead_letter(dead_letter_id)
        if record is None:
            raise NotFoundError(
                f"Dead letter {dead_letter_id} not found",
                entity_type="DeadLetter",
                entity_id=dead_letter_id,
            )
        return record

    def list(self, limit: int = 100) -> List[DeadLetter]:
        return self.storage.list_dead_letters(limit=limit)

    async def retry(self, dead_letter_id: str) -> Result[str]:
        """Re-process a dead letter by id.

        The attempt counter and last-tried time are updated whatever the outcome.

        Raises:
            NotFoundError: If no dead letter has this id
        """
        record = self.get(dead_letter_id)
        try:
            result = await self.processor.process(record.payload_json)
        except Exception as e:
            logger.exception(
                f"Unexpected error retrying dead letter {dead_letter_id}",
                extra={"dead_letter_id": dead_letter_id}
            )
            result = Result.failure_result(e)
        self.storage.record_dead_letter_attempt(
            dead_letter_id,
            self.clock(),
            error=None if result.is_success() else result.error,
        )
        logger.info(
            f"Retried dead letter {dead_letter_id}: "
            f"{'success' if result.is_success() else 'failed (' + str(result.error) + ')'}"
        )
        return result
