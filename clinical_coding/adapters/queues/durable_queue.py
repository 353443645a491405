"""Durable queue with visibility timeout.

Messages live in the ``queue_messages`` table of the workflow's DuckDB
database. Receiving a message hides it for ``visibility_timeout`` and hands
out a fresh pop receipt; only ``ack`` with the current receipt deletes it.
A message that is neither acked nor abandoned becomes visible again once its
timeout passes, which gives at-least-once delivery.

Security Impact:
    - A stale receipt (message already redelivered elsewhere) cannot delete the message
    - Payloads are stored verbatim and never logged
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from clinical_coding.adapters.storage.duckdb_adapter import DuckDBAdapter, to_db_timestamp
from clinical_coding.domain.models import QueueMessage, utc_now
from clinical_coding.domain.ports import QueueBackend

logger = logging.getLogger(__name__)

QUEUE_SCHEMA = """
    CREATE TABLE IF NOT EXISTS queue_messages (
        message_id VARCHAR PRIMARY KEY,
        queue_name VARCHAR NOT NULL,
        payload VARCHAR NOT NULL,
        enqueued_on TIMESTAMP NOT NULL,
        visible_on TIMESTAMP NOT NULL,
        dequeue_count INTEGER NOT NULL DEFAULT 0,
        pop_receipt VARCHAR,
        last_error VARCHAR
    )
"""


class DurableQueue(QueueBackend):
    """Visibility-timeout queue stored in DuckDB.

    Parameters:
        storage: DuckDB adapter whose connection and transactions are shared
        queue_name: Logical queue name (several queues may share the table)
        visibility_timeout: How long a received message stays hidden
        retry_delay: How long an abandoned message stays hidden
        clock: Source of the current UTC time

    Example Usage:
        ```python
        queue = DurableQueue(storage, visibility_timeout=timedelta(minutes=1))
        queue.enqueue(payload)
        message = queue.receive()
        queue.ack(message)
        ```
    """

    def __init__(
        self,
        storage: DuckDBAdapter,
        queue_name: str = "deadletters",
        visibility_timeout: timedelta = timedelta(minutes=1),
        retry_delay: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.queue_name = queue_name
        self.visibility_timeout = visibility_timeout
        self.retry_delay = retry_delay
        self.clock = clock
        self._table_ready = False

    def _ensure_table(self) -> None:
        if not self._table_ready:
            with self.storage.transaction() as conn:
                conn.execute(QUEUE_SCHEMA)
            self._table_ready = True

    def enqueue(self, payload: str) -> str:
        self._ensure_table()
        message_id = str(uuid.uuid4())
        now = to_db_timestamp(self.clock())
        with self.storage.transaction() as conn:
            conn.execute(
                """
                INSERT INTO queue_messages (message_id, queue_name, payload, enqueued_on, visible_on, dequeue_count)
                VALUES (?, ?, ?, ?, ?, 0)
                """,
                [message_id, self.queue_name, payload, now, now]
            )
        logger.debug(f"Enqueued message {message_id} on {self.queue_name}")
        return message_id

    def receive(self) -> Optional[QueueMessage]:
        self._ensure_table()
        now = self.clock()
        with self.storage.transaction() as conn:
            row = conn.execute(
                """
                SELECT message_id, payload, dequeue_count FROM queue_messages
                WHERE queue_name = ? AND visible_on <= ?
                ORDER BY visible_on, enqueued_on, message_id
                LIMIT 1
                """,
                [self.queue_name, to_db_timestamp(now)]
            ).fetchone()
            if row is None:
                return None

            message_id, payload, dequeue_count = row
            receipt = str(uuid.uuid4())
            conn.execute(
                """
                UPDATE queue_messages
                SET visible_on = ?, dequeue_count = dequeue_count + 1, pop_receipt = ?
                WHERE message_id = ?
                """,
                [to_db_timestamp(now + self.visibility_timeout), receipt, message_id]
            )

        return QueueMessage(
            message_id=message_id,
            payload=payload,
            delivery_count=dequeue_count + 1,
            receipt=receipt,
        )

    def ack(self, message: QueueMessage) -> None:
        self._ensure_table()
        with self.storage.transaction() as conn:
            deleted = conn.execute(
                "DELETE FROM queue_messages WHERE message_id = ? AND pop_receipt = ? RETURNING message_id",
                [message.message_id, message.receipt]
            ).fetchall()
        if not deleted:
            logger.warning(f"Ack for message {message.message_id} ignored: receipt no longer current")

    def abandon(self, message: QueueMessage, error: str = "") -> None:
        """Hide the message for ``retry_delay`` before it may be received again."""
        self._ensure_table()
        with self.storage.transaction() as conn:
            updated = conn.execute(
                """
                UPDATE queue_messages
                SET visible_on = ?, last_error = ?
                WHERE message_id = ? AND pop_receipt = ?
                RETURNING message_id
                """,
                [
                    to_db_timestamp(self.clock() + self.retry_delay),
                    (error or "")[:500],
                    message.message_id,
                    message.receipt,
                ]
            ).fetchall()
        if not updated:
            logger.warning(f"Abandon for message {message.message_id} ignored: receipt no longer current")

    def depth(self) -> int:
        """Number of messages in the queue, visible or not."""
        self._ensure_table()
        with self.storage.transaction() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM queue_messages WHERE queue_name = ?", [self.queue_name]
            ).fetchone()[0]
