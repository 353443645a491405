"""Storage adapters."""

from clinical_coding.adapters.storage.duckdb_adapter import DuckDBAdapter

__all__ = ["DuckDBAdapter"]
