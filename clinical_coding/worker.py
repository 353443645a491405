"""Dead-Letter Consumer.

Long-running loop that replays queued clinician responses. Exactly one message
is in flight at a time. A message is acknowledged only after it was processed
successfully; otherwise it is abandoned for redelivery. Once a failing message
has been delivered ``max_attempts`` times it is recorded as a quarantined dead
letter and acknowledged, so a poison message cannot loop forever.
"""

import asyncio
import logging
import signal
from typing import Optional

from clinical_coding.domain.ports import QueueBackend, Result
from clinical_coding.domain.services.dead_letters import DeadLetterProcessor, DeadLetterService

logger = logging.getLogger(__name__)

EMPTY = "empty"
ACKED = "acked"
ABANDONED = "abandoned"
QUARANTINED = "quarantined"


class DeadLetterConsumer:
    """Receive, process, then ack/abandon/quarantine one message at a time.

    Parameters:
        queue: Configured queue backend
        processor: Replays one payload
        dead_letters: Records quarantined payloads
        max_attempts: Deliveries before a failing message is quarantined
        poll_interval_seconds: Sleep when the queue is empty
    """

    def __init__(
        self,
        queue: QueueBackend,
        processor: DeadLetterProcessor,
        dead_letters: DeadLetterService,
        max_attempts: int = 5,
        poll_interval_seconds: float = 5.0
    ):
        self.queue = queue
        self.processor = processor
        self.dead_letters = dead_letters
        self.max_attempts = max_attempts
        self.poll_interval_seconds = poll_interval_seconds

    async def run_once(self) -> str:
        """Handle at most one message. Returns what happened to it."""
        message = self.queue.receive()
        if message is None:
            return EMPTY

        try:
            result = await self.processor.process(message.payload)
        except Exception as e:
            logger.exception(
                f"Unexpected error processing message {message.message_id}",
                extra={"message_id": message.message_id}
            )
            result = Result.failure_result(e)

        if result.is_success():
            self.queue.ack(message)
            logger.info(
                f"Processed message {message.message_id} (query {result.value})",
                extra={"message_id": message.message_id, "query_id": result.value}
            )
            return ACKED

        error = result.error or "processing failed"
        if message.delivery_count >= self.max_attempts:
            self.dead_letters.quarantine(message.payload, error, message.delivery_count)
            self.queue.ack(message)
            return QUARANTINED

        self.queue.abandon(message, error)
        logger.warning(
            f"Message {message.message_id} failed on delivery {message.delivery_count}/"
            f"{self.max_attempts}: {error}",
            extra={"message_id": message.message_id}
        )
        return ABANDONED

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Consume until ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        logger.info(f"Dead-letter consumer started using {type(self.queue).__name__}")

        while not stop_event.is_set():
            try:
                outcome = await self.run_once()
            except Exception:
                logger.exception("Queue operation failed; backing off")
                outcome = EMPTY

            if outcome == EMPTY:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval_seconds)
                except asyncio.TimeoutError:
                    pass

        logger.info("Dead-letter consumer stopped")


def build_consumer(container) -> DeadLetterConsumer:
    """Consumer wired to a ServiceContainer's queue, processor and settings."""
    queue_config = container.settings.queue
    return DeadLetterConsumer(
        container.queue,
        container.dead_letter_processor,
        container.dead_letters,
        max_attempts=queue_config.max_attempts,
        poll_interval_seconds=queue_config.poll_interval_seconds,
    )


async def run_worker(container) -> None:
    """Run the consumer for a wired ServiceContainer until SIGINT/SIGTERM."""
    consumer = build_consumer(container)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms (Windows)
            pass

    try:
        await consumer.run(stop_event)
    finally:
        await container.aclose()
