"""Broker queue on Redis Streams.

Messages are stream entries read through a consumer group, which gives
explicit acknowledgement and a pending-entries list per consumer:

    - enqueue: XADD {payload, retry=0}
    - receive: promote due retries, then XAUTOCLAIM entries idle longer than
      the visibility timeout, otherwise XREADGROUP one new entry
    - ack: XACK + XDEL
    - abandon: ZADD the payload to ``<stream>:retry`` scored with the time it
      becomes due, then XACK + XDEL the original, all in one MULTI/EXEC

An abandoned payload is re-added to the stream only once ``retry_delay`` has
passed, so a failing message is not redelivered immediately. The delivery
count of a message is its ``retry`` annotation plus the number of times the
current entry has been delivered (from XPENDING).
"""

import json
import logging
import socket
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

import redis

from clinical_coding.domain.models import QueueMessage, utc_now
from clinical_coding.domain.ports import QueueBackend

logger = logging.getLogger(__name__)

# Due retries moved back onto the stream per receive
PROMOTE_BATCH = 10


class RedisStreamQueue(QueueBackend):
    """Redis Streams implementation of QueueBackend.

    Parameters:
        client: redis.Redis client created with ``decode_responses=True``
        stream: Stream key
        group: Consumer group name
        consumer: Consumer name (defaults to host name plus a random suffix)
        visibility_timeout: Idle time after which another consumer may claim an entry
        retry_delay: How long an abandoned payload waits before redelivery
        block_ms: Optional XREADGROUP block time; None returns immediately
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        client: redis.Redis,
        stream: str = "deadletters",
        group: str = "deadletter-workers",
        consumer: Optional[str] = None,
        visibility_timeout: timedelta = timedelta(minutes=1),
        retry_delay: timedelta = timedelta(minutes=10),
        block_ms: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.client = client
        self.stream = stream
        self.retry_key = f"{stream}:retry"
        self.group = group
        self.consumer = consumer or f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"
        self.visibility_timeout = visibility_timeout
        self.retry_delay = retry_delay
        self.block_ms = block_ms
        self.clock = clock
        self._group_ready = False

    @classmethod
    def from_url(cls, url: str, **kwargs) -> 'RedisStreamQueue':
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def _ensure_group(self) -> None:
        if self._group_ready:
            return
        try:
            self.client.xgroup_create(self.stream, self.group, id="0", mkstream=True)
            logger.info(f"Created consumer group {self.group} on stream {self.stream}")
        except redis.exceptions.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
        self._group_ready = True

    def enqueue(self, payload: str) -> str:
        self._ensure_group()
        message_id = self.client.xadd(self.stream, {"payload": payload, "retry": "0"})
        logger.debug(f"Enqueued message {message_id} on stream {self.stream}")
        return message_id

    def receive(self) -> Optional[QueueMessage]:
        self._ensure_group()
        self._promote_due()

        entry = self._claim_stale()
        if entry is None:
            entry = self._read_new()
        if entry is None:
            return None

        entry_id, fields = entry
        if fields is None:
            # Entry was deleted while pending; drop it from the PEL
            self.client.xack(self.stream, self.group, entry_id)
            return None

        retry = int(fields.get("retry", 0) or 0)
        return QueueMessage(
            message_id=entry_id,
            payload=fields.get("payload", ""),
            delivery_count=retry + self._times_delivered(entry_id),
            receipt=entry_id,
        )

    def _promote_due(self) -> None:
        """Move abandoned payloads whose retry delay has passed back onto the stream."""
        now = self.clock().timestamp()
        for _ in range(PROMOTE_BATCH):
            with self.client.pipeline() as pipe:
                try:
                    pipe.watch(self.retry_key)
                    due = pipe.zrangebyscore(self.retry_key, "-inf", now, start=0, num=1)
                    if not due:
                        return
                    entry = json.loads(due[0])
                    pipe.multi()
                    pipe.zrem(self.retry_key, due[0])
                    pipe.xadd(self.stream, {"payload": entry["payload"], "retry": str(entry["retry"])})
                    pipe.execute()
                except redis.exceptions.WatchError:
                    # Another consumer promoted it first
                    continue

    def _claim_stale(self):
        min_idle_ms = int(self.visibility_timeout.total_seconds() * 1000)
        result = self.client.xautoclaim(
            self.stream, self.group, self.consumer, min_idle_time=min_idle_ms, start_id="0-0", count=1
        )
        claimed = result[1] if result and len(result) > 1 else []
        if not claimed:
            return None
        logger.info(f"Reclaimed stale entry {claimed[0][0]} from stream {self.stream}")
        return claimed[0]

    def _read_new(self):
        response = self.client.xreadgroup(
            self.group, self.consumer, {self.stream: ">"}, count=1, block=self.block_ms
        )
        if not response:
            return None
        _, entries = response[0]
        if not entries:
            return None
        return entries[0]

    def _times_delivered(self, entry_id: str) -> int:
        pending = self.client.xpending_range(self.stream, self.group, min=entry_id, max=entry_id, count=1)
        if not pending:
            return 1
        return int(pending[0].get("times_delivered", 1))

    def ack(self, message: QueueMessage) -> None:
        pipe = self.client.pipeline(transaction=True)
        pipe.xack(self.stream, self.group, message.receipt)
        pipe.xdel(self.stream, message.receipt)
        pipe.execute()

    def abandon(self, message: QueueMessage, error: str = "") -> None:
        """Park the payload until its retry delay passes, then drop the original entry."""
        due = self.clock() + self.retry_delay
        parked = json.dumps({
            "id": uuid.uuid4().hex,
            "payload": message.payload,
            "retry": message.delivery_count,
            "last_error": (error or "")[:500],
        })
        pipe = self.client.pipeline(transaction=True)
        pipe.zadd(self.retry_key, {parked: due.timestamp()})
        pipe.xack(self.stream, self.group, message.receipt)
        pipe.xdel(self.stream, message.receipt)
        pipe.execute()
        logger.info(
            f"Abandoned entry {message.receipt} (delivery {message.delivery_count}); "
            f"due again at {due.isoformat()}"
        )

    def close(self) -> None:
        self.client.close()
