"""HTTP analytics sink.

Pushes rows to a push-rows style API:

    POST {base_url}/tables/{table}/rows   {"rows": [...]}

with a bearer token. Every failure (missing configuration, transport error,
non-2xx status) is returned as a failure Result and never raised.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from clinical_coding.domain.ports import AnalyticsSink, ExternalUnavailableError, Result

logger = logging.getLogger(__name__)


class HttpAnalyticsSink(AnalyticsSink):
    """Analytics sink backed by an HTTP push-rows API.

    Parameters:
        base_url: API base URL
        token: Bearer token
        timeout_seconds: Per-request timeout
        client: Optional pre-built httpx.AsyncClient (tests inject a MockTransport)
    """

    def __init__(
        self,
        base_url: Optional[str],
        token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def push_rows(self, table_name: str, rows: List[Dict[str, Any]]) -> Result[int]:
        if not self.base_url or not self.token:
            return Result.failure_result(
                ExternalUnavailableError("Analytics sink is not configured"),
                error_type="ExternalUnavailableError"
            )

        url = f"{self.base_url}/tables/{table_name}/rows"
        try:
            response = await self._client.post(
                url,
                json={"rows": rows},
                headers={"Authorization": f"Bearer {self.token}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Analytics push to {table_name} failed: {type(e).__name__}")
            return Result.failure_result(
                ExternalUnavailableError(f"Analytics push failed: {e}"),
                error_type="ExternalUnavailableError"
            )

        logger.info(f"Analytics push rows to {table_name}: {response.status_code}")
        if response.is_success:
            return Result.success_result(len(rows))
        return Result.failure_result(
            f"Analytics API returned {response.status_code}",
            error_type="ExternalUnavailableError",
            error_details={"status_code": response.status_code}
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
