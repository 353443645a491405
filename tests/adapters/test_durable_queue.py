"""Tests for the DuckDB-backed visibility-timeout queue."""

from datetime import timedelta

import pytest

from clinical_coding.adapters.queues import DurableQueue


@pytest.fixture
def queue(storage, clock):
    return DurableQueue(
        storage,
        visibility_timeout=timedelta(minutes=1),
        retry_delay=timedelta(minutes=10),
        clock=clock,
    )


class TestDurableQueue:
    """Visibility, receipts and redelivery."""

    def test_receive_hides_message_until_timeout(self, queue, clock):
        queue.enqueue("payload-1")

        first = queue.receive()
        assert first.payload == "payload-1"
        assert first.delivery_count == 1
        assert queue.receive() is None

        clock.advance(seconds=61)
        again = queue.receive()
        assert again.message_id == first.message_id
        assert again.delivery_count == 2
        assert again.receipt != first.receipt

    def test_ack_deletes(self, queue):
        queue.enqueue("payload-1")
        message = queue.receive()

        queue.ack(message)

        assert queue.depth() == 0

    def test_stale_receipt_cannot_ack(self, queue, clock):
        queue.enqueue("payload-1")
        stale = queue.receive()
        clock.advance(minutes=2)
        current = queue.receive()

        queue.ack(stale)
        assert queue.depth() == 1

        queue.ack(current)
        assert queue.depth() == 0

    def test_abandon_delays_redelivery(self, queue, clock):
        queue.enqueue("payload-1")
        message = queue.receive()

        queue.abandon(message, "engine down")

        clock.advance(minutes=5)
        assert queue.receive() is None
        clock.advance(minutes=5)
        assert queue.receive().delivery_count == 2

    def test_fifo_by_visibility(self, queue, clock):
        queue.enqueue("first")
        clock.advance(seconds=1)
        queue.enqueue("second")

        assert queue.receive().payload == "first"
        assert queue.receive().payload == "second"

    def test_queues_are_isolated_by_name(self, storage, clock, queue):
        other = DurableQueue(storage, queue_name="other", clock=clock)
        other.enqueue("elsewhere")

        assert queue.receive() is None
        assert other.receive().payload == "elsewhere"
