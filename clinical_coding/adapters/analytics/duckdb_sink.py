"""DuckDB analytics sink.

Appends rows to a local DuckDB table through a pandas DataFrame, creating the
table from the first batch's columns.
"""

import logging
import re
from typing import Any, Dict, List

import duckdb
import pandas as pd

from clinical_coding.adapters.storage.duckdb_adapter import DuckDBAdapter
from clinical_coding.domain.ports import AnalyticsSink, Result, StorageError

logger = logging.getLogger(__name__)

TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class DuckDBAnalyticsSink(AnalyticsSink):
    """Analytics sink writing into the workflow's DuckDB database."""

    def __init__(self, storage: DuckDBAdapter):
        self.storage = storage

    async def push_rows(self, table_name: str, rows: List[Dict[str, Any]]) -> Result[int]:
        if not TABLE_NAME_PATTERN.match(table_name):
            return Result.failure_result(
                f"Invalid analytics table name: {table_name}",
                error_type="ValueError"
            )
        if not rows:
            return Result.success_result(0)

        df = pd.DataFrame(rows)
        try:
            with self.storage.transaction() as conn:
                conn.register("analytics_rows", df)
                try:
                    conn.execute(f'CREATE TABLE IF NOT EXISTS "{table_name}" AS SELECT * FROM analytics_rows LIMIT 0')
                    conn.execute(f'INSERT INTO "{table_name}" BY NAME SELECT * FROM analytics_rows')
                finally:
                    conn.unregister("analytics_rows")
        except (duckdb.Error, StorageError) as e:
            logger.warning(f"Analytics rows for {table_name} not written: {e}")
            return Result.failure_result(e, error_type="StorageError")

        logger.debug(f"Wrote {len(df)} analytics rows to {table_name}")
        return Result.success_result(len(df))
