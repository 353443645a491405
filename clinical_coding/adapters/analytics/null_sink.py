"""Analytics sink that accepts and discards rows."""

import logging
from typing import Any, Dict, List

from clinical_coding.domain.ports import AnalyticsSink, Result

logger = logging.getLogger(__name__)


class NullAnalyticsSink(AnalyticsSink):

    async def push_rows(self, table_name: str, rows: List[Dict[str, Any]]) -> Result[int]:
        logger.debug(f"Discarding {len(rows)} analytics rows for {table_name}")
        return Result.success_result(0)
