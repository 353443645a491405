"""Tests for the Redis Streams queue, against a mocked client."""

import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import redis

from clinical_coding.adapters.queues import RedisStreamQueue
from tests.support import FakeClock


@pytest.fixture
def client():
    client = MagicMock()
    client.xautoclaim.return_value = ["0-0", [], []]
    client.xreadgroup.return_value = []
    client.xpending_range.return_value = [{"message_id": "1-0", "times_delivered": 1}]
    pipe = client.pipeline.return_value
    pipe.__enter__.return_value = pipe
    pipe.zrangebyscore.return_value = []
    return client


@pytest.fixture
def queue(client):
    return RedisStreamQueue(client, stream="dl", group="workers", consumer="c1", visibility_timeout=timedelta(seconds=30))


class TestRedisStreamQueue:
    """Stream commands issued for each queue operation."""

    def test_group_is_created_once(self, queue, client):
        queue.enqueue("a")
        queue.enqueue("b")

        client.xgroup_create.assert_called_once_with("dl", "workers", id="0", mkstream=True)
        client.xadd.assert_called_with("dl", {"payload": "b", "retry": "0"})

    def test_existing_group_is_accepted(self, queue, client):
        client.xgroup_create.side_effect = redis.exceptions.ResponseError("BUSYGROUP Consumer Group name already exists")
        queue.enqueue("a")
        client.xadd.assert_called_once()

    def test_other_group_errors_propagate(self, queue, client):
        client.xgroup_create.side_effect = redis.exceptions.ResponseError("WRONGTYPE")
        with pytest.raises(redis.exceptions.ResponseError):
            queue.enqueue("a")

    def test_receive_empty(self, queue):
        assert queue.receive() is None

    def test_receive_new_entry(self, queue, client):
        client.xreadgroup.return_value = [["dl", [("1-0", {"payload": "p", "retry": "0"})]]]

        message = queue.receive()

        assert message.message_id == "1-0"
        assert message.payload == "p"
        assert message.delivery_count == 1
        client.xautoclaim.assert_called_once_with(
            "dl", "workers", "c1", min_idle_time=30000, start_id="0-0", count=1
        )

    def test_stale_entry_is_claimed_first(self, queue, client):
        client.xautoclaim.return_value = ["0-0", [("1-0", {"payload": "p", "retry": "2"})], []]
        client.xpending_range.return_value = [{"message_id": "1-0", "times_delivered": 2}]

        message = queue.receive()

        assert message.delivery_count == 4
        client.xreadgroup.assert_not_called()

    def test_deleted_pending_entry_is_acked_away(self, queue, client):
        client.xautoclaim.return_value = ["0-0", [("1-0", None)], []]

        assert queue.receive() is None
        client.xack.assert_called_once_with("dl", "workers", "1-0")

    def test_ack_and_abandon_use_a_transaction(self, queue, client):
        client.xreadgroup.return_value = [["dl", [("1-0", {"payload": "p", "retry": "0"})]]]
        message = queue.receive()
        pipe = client.pipeline.return_value

        queue.abandon(message, "engine down")

        client.pipeline.assert_called_with(transaction=True)
        (parked, _), = pipe.zadd.call_args.args[1].items()
        assert pipe.zadd.call_args.args[0] == "dl:retry"
        assert json.loads(parked)["retry"] == 1
        assert json.loads(parked)["last_error"] == "engine down"
        pipe.xadd.assert_not_called()
        pipe.xack.assert_called_once_with("dl", "workers", "1-0")
        pipe.xdel.assert_called_once_with("dl", "1-0")
        pipe.execute.assert_called_once()

        pipe.reset_mock()
        queue.ack(message)
        pipe.xack.assert_called_once_with("dl", "workers", "1-0")
        pipe.xdel.assert_called_once_with("dl", "1-0")
        pipe.xadd.assert_not_called()

    def test_from_url_decodes_responses(self, monkeypatch):
        created = {}

        def fake_from_url(url, **kwargs):
            created.update(url=url, **kwargs)
            return MagicMock()

        monkeypatch.setattr(redis.Redis, "from_url", fake_from_url)
        RedisStreamQueue.from_url("redis://localhost:6379/0", stream="dl")

        assert created == {"url": "redis://localhost:6379/0", "decode_responses": True}


class TestRetryDelay:
    """Abandoned payloads wait in a sorted set until they are due."""

    @pytest.fixture
    def parked(self, client):
        scores = {}
        pipe = client.pipeline.return_value
        pipe.zadd.side_effect = lambda key, mapping: scores.update(mapping)
        pipe.zrangebyscore.side_effect = lambda key, low, high, start, num: [
            member for member, score in sorted(scores.items(), key=lambda item: item[1]) if score <= high
        ][start:start + num]
        pipe.zrem.side_effect = lambda key, member: scores.pop(member)
        return scores

    def test_failed_message_is_not_redelivered_before_the_delay(self, client, parked):
        clock = FakeClock()
        queue = RedisStreamQueue(
            client, stream="dl", group="workers", consumer="c1",
            retry_delay=timedelta(minutes=10), clock=clock,
        )
        pipe = client.pipeline.return_value
        client.xreadgroup.return_value = [["dl", [("1-0", {"payload": "p", "retry": "0"})]]]
        queue.abandon(queue.receive(), "engine down")
        client.xreadgroup.return_value = []

        for _ in range(5):
            assert queue.receive() is None
        clock.advance(minutes=9, seconds=59)
        assert queue.receive() is None
        pipe.xadd.assert_not_called()
        assert len(parked) == 1

        clock.advance(seconds=1)
        queue.receive()

        pipe.xadd.assert_called_once_with("dl", {"payload": "p", "retry": "1"})
        assert parked == {}

    def test_lost_watch_race_is_skipped(self, client, parked):
        queue = RedisStreamQueue(client, stream="dl", group="workers", consumer="c1", retry_delay=timedelta(0))
        pipe = client.pipeline.return_value
        parked[json.dumps({"payload": "p", "retry": 1})] = 0.0
        attempts = []

        def execute():
            attempts.append(1)
            if len(attempts) == 1:
                raise redis.exceptions.WatchError()
            parked.clear()

        pipe.zrem.side_effect = None
        pipe.execute.side_effect = execute

        queue.receive()

        assert len(attempts) == 2
        assert parked == {}
