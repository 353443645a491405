"""Signed webhook for clinician responses from the messaging flow.

The body is read raw so the signature covers the exact bytes sent. Every
signature failure gets the same 401 body and causes no side effects. Once the
signature is verified, a response is never lost: if reconciliation fails it is
captured as a dead letter for replay.
"""

import json
import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from clinical_coding.api.dependencies import ContainerDep
from clinical_coding.domain.ports import NotFoundError
from clinical_coding.domain.services.dead_letters import build_payload
from clinical_coding.domain.services.reconciler import DEBOUNCED
from clinical_coding.infrastructure.signatures import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "x-signature"
UNAUTHORIZED_BODY = {"error": "Unauthorized"}


def parse_flow_body(body: str) -> Tuple[Optional[str], str]:
    """Responder and response text from a webhook body.

    ``responseText`` falls back to the raw body, including when the body is
    not a JSON object.
    """
    try:
        data = json.loads(body)
    except ValueError:
        return None, body
    if not isinstance(data, dict):
        return None, body

    responder = data.get("responder")
    text = data.get("responseText")
    return (
        str(responder) if responder is not None else None,
        str(text) if text is not None else body,
    )


@router.post("/flow/queries/{query_id}/response")
async def flow_query_response(query_id: str, request: Request, container: ContainerDep) -> Response:
    """Apply a clinician response and re-suggest codes, with debounce.

    Responses:
        204: Applied (or the query has no episode)
        202: Debounced, or captured as a dead letter
        401: Signature missing, malformed or wrong
        404: Unknown query
    """
    raw = await request.body()
    secret = container.settings.webhook.secret_bytes()
    if not verify_signature(secret, raw, request.headers.get(SIGNATURE_HEADER)):
        logger.warning(f"Rejected webhook for query {query_id}: signature verification failed")
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=UNAUTHORIZED_BODY)

    body = raw.decode("utf-8", errors="replace")
    responder, text = parse_flow_body(body)

    try:
        outcome = await container.reconciler.reconcile(query_id, responder, text, raw_body=body)
    except NotFoundError:
        raise
    except Exception as e:
        logger.error(f"Reconciliation for query {query_id} failed, capturing dead letter: {e}")
        container.dead_letters.capture(build_payload(query_id, responder, text), str(e))
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content={"status": "queued"})

    if outcome.status == DEBOUNCED:
        return Response(status_code=status.HTTP_202_ACCEPTED)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
