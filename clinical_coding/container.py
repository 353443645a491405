"""Service wiring.

Builds the storage adapter, queue backend, suggestion engine, analytics sink
and domain services from settings. The API, the dead-letter worker and the
CLI all obtain their collaborators here, so the queue backend is chosen once
per process and never mixed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from clinical_coding.adapters.analytics import DuckDBAnalyticsSink, HttpAnalyticsSink, NullAnalyticsSink
from clinical_coding.adapters.queues import DurableQueue, RedisStreamQueue
from clinical_coding.adapters.storage import DuckDBAdapter
from clinical_coding.adapters.suggestion import (
    CompositeSuggestionEngine,
    HttpSuggestionEngine,
    RuleBasedSuggestionEngine,
)
from clinical_coding.domain.models import utc_now
from clinical_coding.domain.ports import AnalyticsSink, QueueBackend, StorageError, SuggestionEngine
from clinical_coding.domain.services import (
    AuditLog,
    CodeComparisonService,
    DeadLetterProcessor,
    DeadLetterService,
    EpisodeWorkflow,
    QueryService,
    Reconciler,
    ReconcilerConfig,
    RevertWorkflow,
)
from clinical_coding.infrastructure.config_manager import AnalyticsConfig, QueueConfig, SuggestionConfig
from clinical_coding.infrastructure.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler or worker needs."""

    settings: Settings
    storage: DuckDBAdapter
    queue: QueueBackend
    engine: SuggestionEngine
    analytics: AnalyticsSink
    audit_log: AuditLog
    episodes: EpisodeWorkflow
    reverts: RevertWorkflow
    queries: QueryService
    reconciler: Reconciler
    comparison: CodeComparisonService
    dead_letter_processor: DeadLetterProcessor
    dead_letters: DeadLetterService

    def close(self) -> None:
        self.queue.close()
        self.storage.close()

    async def aclose(self) -> None:
        """Close the HTTP clients, then the queue and storage."""
        await self.engine.close()
        await self.analytics.close()
        self.close()


def build_queue(config: QueueConfig, storage: DuckDBAdapter, clock: Callable[[], datetime] = utc_now) -> QueueBackend:
    """Create the configured queue backend."""
    if config.provider == "broker":
        if config.redis_url is None:
            raise ValueError("CC_REDIS_URL is required for the broker queue provider")
        logger.info(f"Using Redis Streams dead-letter queue '{config.queue_name}'")
        return RedisStreamQueue.from_url(
            config.redis_url.get_secret_value(),
            stream=config.queue_name,
            visibility_timeout=timedelta(seconds=config.visibility_timeout_seconds),
            retry_delay=timedelta(seconds=config.retry_delay_seconds),
            clock=clock,
        )

    logger.info(f"Using durable dead-letter queue '{config.queue_name}'")
    if storage.db_path == ":memory:":
        logger.warning(
            "Durable dead-letter queue is on an in-memory database: messages are lost on restart "
            "and no other process can consume them"
        )
    return DurableQueue(
        storage,
        queue_name=config.queue_name,
        visibility_timeout=timedelta(seconds=config.visibility_timeout_seconds),
        retry_delay=timedelta(seconds=config.retry_delay_seconds),
        clock=clock,
    )


def build_engine(config: SuggestionConfig) -> SuggestionEngine:
    """Create the configured suggestion engine."""
    if config.provider == "http":
        if not config.url:
            raise ValueError("CC_SUGGESTION_URL is required for the http suggestion provider")
        logger.info("Using HTTP suggestion engine with rule-based fallback")
        primary = HttpSuggestionEngine(
            config.url,
            token=config.token.get_secret_value() if config.token else None,
            timeout_seconds=config.timeout_seconds,
        )
        return CompositeSuggestionEngine(primary, RuleBasedSuggestionEngine())
    return RuleBasedSuggestionEngine()


def build_analytics(config: AnalyticsConfig, storage: DuckDBAdapter) -> AnalyticsSink:
    """Create the configured analytics sink."""
    if config.provider == "http":
        return HttpAnalyticsSink(
            config.url,
            token=config.token.get_secret_value() if config.token else None,
            timeout_seconds=config.timeout_seconds,
        )
    if config.provider == "duckdb":
        return DuckDBAnalyticsSink(storage)
    return NullAnalyticsSink()


def build_container(
    settings: Settings,
    storage: Optional[DuckDBAdapter] = None,
    queue: Optional[QueueBackend] = None,
    engine: Optional[SuggestionEngine] = None,
    analytics: Optional[AnalyticsSink] = None,
    clock: Callable[[], datetime] = utc_now
) -> ServiceContainer:
    """Wire adapters and services. Explicit arguments override the settings."""
    if storage is None:
        storage = DuckDBAdapter(db_config=settings.db_config)
    result = storage.initialize_schema()
    if result.is_failure():
        raise StorageError(result.error, operation="initialize_schema")

    queue = queue or build_queue(settings.queue, storage, clock)
    engine = engine or build_engine(settings.suggestion)
    analytics = analytics or build_analytics(settings.analytics, storage)
    tuning = settings.reconcile

    audit_log = AuditLog(storage)
    queries = QueryService(storage, audit_log, clock=clock)
    reconciler = Reconciler(
        storage,
        audit_log,
        queries,
        engine,
        analytics,
        config=ReconcilerConfig(
            min_interval=tuning.min_interval,
            serialize_per_episode=tuning.serialize_per_episode,
            analytics_timeout_seconds=settings.analytics.timeout_seconds,
            analytics_table=settings.analytics.table,
        ),
        clock=clock,
    )
    processor = DeadLetterProcessor(reconciler, resuggest_on_replay=tuning.resuggest_on_replay)

    return ServiceContainer(
        settings=settings,
        storage=storage,
        queue=queue,
        engine=engine,
        analytics=analytics,
        audit_log=audit_log,
        episodes=EpisodeWorkflow(storage, audit_log, strict_transitions=tuning.strict_transitions, clock=clock),
        reverts=RevertWorkflow(storage, audit_log, clock=clock),
        queries=queries,
        reconciler=reconciler,
        comparison=CodeComparisonService(engine),
        dead_letter_processor=processor,
        dead_letters=DeadLetterService(storage, queue, processor, clock=clock),
    )
