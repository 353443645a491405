"""Dead-letter queue backends."""

from clinical_coding.adapters.queues.durable_queue import DurableQueue
from clinical_coding.adapters.queues.redis_stream_queue import RedisStreamQueue

__all__ = ["DurableQueue", "RedisStreamQueue"]
