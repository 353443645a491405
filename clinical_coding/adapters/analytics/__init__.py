"""Analytics sink adapters."""

from clinical_coding.adapters.analytics.duckdb_sink import DuckDBAnalyticsSink
from clinical_coding.adapters.analytics.http_sink import HttpAnalyticsSink
from clinical_coding.adapters.analytics.null_sink import NullAnalyticsSink

__all__ = ["DuckDBAnalyticsSink", "HttpAnalyticsSink", "NullAnalyticsSink"]
