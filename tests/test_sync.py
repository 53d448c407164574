"""Tests for the sync engine: ordering, outcome policy, exclusivity and events."""

import asyncio
import json
import time

import pytest

from poolsync import (
    OfflineQueue, QueueStore, Connectivity, NetworkError,
    memory_storage, classify, QUEUE_KEY,
    DELIVERED, DROP, HALT,
    SYNC_START, SYNC_PROGRESS, SYNC_END,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code


class FakeTransport:
    """Replays scripted outcomes: an int is a status code, an exception is raised."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def send(self, method, url, body=None, headers=None, params=None):
        self.calls.append(url)
        outcome = self.outcomes.pop(0) if self.outcomes else 200
        if isinstance(outcome, BaseException):
            raise outcome
        return FakeResponse(outcome)


def _queue(*outcomes, online=True):
    transport = FakeTransport(*outcomes)
    queue = OfflineQueue(QueueStore(memory_storage()), transport, Connectivity(online))
    return queue, transport


def _fill(queue, *urls):
    return [queue.enqueue("POST", url, {"n": i}) for i, url in enumerate(urls)]


# ---------------------------------------------------------------------------
# Outcome policy
# ---------------------------------------------------------------------------

class TestClassify:
    @pytest.mark.parametrize("status", [200, 201, 204, 299])
    def test_success(self, status):
        assert classify(status) == DELIVERED

    @pytest.mark.parametrize("status", [401, 403, 500, 502, 503, 599])
    def test_halts(self, status):
        assert classify(status) == HALT

    @pytest.mark.parametrize("status", [302, 400, 404, 409, 410, 422, 429])
    def test_drops(self, status):
        assert classify(status) == DROP


# ---------------------------------------------------------------------------
# Drain passes
# ---------------------------------------------------------------------------

class TestDrain:
    def test_all_success_empties_queue(self):
        queue, transport = _queue()
        _fill(queue, "/a", "/b", "/c", "/d")
        before = int(time.time() * 1000)
        summary = asyncio.run(queue.sync_now())
        assert summary == {"delivered": 4, "dropped": 0, "remaining": 0, "halted": False}
        assert queue.length == 0
        assert queue.get_status()["last_sync_at"] >= before

    def test_fifo_order(self):
        queue, transport = _queue()
        _fill(queue, "/first", "/second", "/third")
        asyncio.run(queue.sync_now())
        assert transport.calls == ["/first", "/second", "/third"]

    def test_empty_queue_is_noop(self):
        queue, transport = _queue()
        seen = []
        queue.subscribe(lambda evt, st: seen.append(evt["type"]))
        assert asyncio.run(queue.sync_now()) is None
        assert transport.calls == []
        assert seen == []
        assert queue.get_status()["last_sync_at"] is None

    def test_conflict_is_dropped_and_pass_continues(self):
        queue, transport = _queue(409, 200)
        _fill(queue, "/conflict", "/next")
        summary = asyncio.run(queue.sync_now())
        assert transport.calls == ["/conflict", "/next"]
        assert summary["dropped"] == 1
        assert summary["delivered"] == 1
        assert queue.length == 0

    def test_unprocessable_is_dropped(self):
        queue, _ = _queue(422)
        _fill(queue, "/bad")
        asyncio.run(queue.sync_now())
        assert queue.length == 0
        assert queue.get_status()["last_sync_at"] is not None

    def test_server_error_halts_with_rest_kept(self):
        queue, transport = _queue(500, 200)
        ids = _fill(queue, "/first", "/second")
        summary = asyncio.run(queue.sync_now())
        assert transport.calls == ["/first"]
        assert [op["id"] for op in queue.operations] == ids
        assert summary["halted"] is True
        assert queue.get_status()["last_sync_at"] is None

    def test_first_fails_second_never_attempted(self):
        queue, transport = _queue(500, 200)
        first, _ = _fill(queue, "/first", "/second")
        asyncio.run(queue.sync_now())
        queue_ids = [op["id"] for op in queue.operations]
        assert queue_ids[0] == first
        assert "/second" not in transport.calls

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_error_halts_and_keeps_operation(self, status):
        queue, transport = _queue(200, status, 200)
        ids = _fill(queue, "/a", "/b", "/c")
        summary = asyncio.run(queue.sync_now())
        assert transport.calls == ["/a", "/b"]
        assert [op["id"] for op in queue.operations] == ids[1:]
        assert summary == {"delivered": 1, "dropped": 0, "remaining": 2, "halted": True}

    def test_network_error_mid_pass_keeps_operation(self):
        queue, transport = _queue(200, NetworkError("connection reset"))
        ids = _fill(queue, "/a", "/b", "/c")
        summary = asyncio.run(queue.sync_now())
        assert transport.calls == ["/a", "/b"]
        assert [op["id"] for op in queue.operations] == ids[1:]
        assert summary["halted"] is True

    def test_timeout_counts_as_network_error(self):
        queue, _ = _queue(TimeoutError())
        _fill(queue, "/slow")
        asyncio.run(queue.sync_now())
        assert queue.length == 1

    def test_offline_stops_before_sending(self):
        queue, transport = _queue(online=False)
        _fill(queue, "/a")
        summary = asyncio.run(queue.sync_now())
        assert transport.calls == []
        assert summary["halted"] is True
        assert queue.length == 1

    def test_going_offline_between_operations(self):
        queue, transport = _queue()
        _fill(queue, "/a", "/b")

        def on_event(evt, st):
            if evt["type"] == SYNC_PROGRESS:
                queue.connectivity.set_online(False)

        queue.subscribe(on_event)
        asyncio.run(queue.sync_now())
        assert transport.calls == ["/a"]
        assert queue.length == 1

    def test_retry_after_halt_delivers(self):
        queue, transport = _queue(503, 200, 200)
        _fill(queue, "/a", "/b")
        asyncio.run(queue.sync_now())
        assert queue.length == 2
        asyncio.run(queue.sync_now())
        assert queue.length == 0
        assert transport.calls == ["/a", "/a", "/b"]

    def test_enqueue_during_pass_is_kept(self):
        queue, transport = _queue()
        _fill(queue, "/a")
        original_send = transport.send

        async def send(method, url, body=None, headers=None, params=None):
            if url == "/a":
                queue.enqueue("POST", "/late")
            return await original_send(method, url, body, headers, params)

        transport.send = send
        asyncio.run(queue.sync_now())
        assert transport.calls == ["/a", "/late"]
        assert queue.length == 0

    def test_unpersisted_removal_halts(self):
        storage = memory_storage()
        queue = OfflineQueue(QueueStore(storage), FakeTransport(), Connectivity(True))
        _fill(queue, "/a", "/b")

        def refuse(key, value):
            raise OSError("read-only filesystem")

        storage.set = refuse
        summary = asyncio.run(queue.sync_now())
        assert queue.transport.calls == ["/a"]
        assert summary["halted"] is True
        assert queue.length == 2

    def test_malformed_head_does_not_block_queue(self):
        storage = memory_storage()
        storage.set(QUEUE_KEY, json.dumps([
            {"id": "x"},
            {"id": "y", "method": "POST", "url": "/ok", "body": None, "headers": None, "enqueued_at": 1},
        ]))
        transport = FakeTransport()
        queue = OfflineQueue(QueueStore(storage), transport, Connectivity(True))
        summary = asyncio.run(queue.sync_now())
        assert transport.calls == ["/ok"]
        assert summary == {"delivered": 1, "dropped": 0, "remaining": 0, "halted": False}
        assert json.loads(storage.get(QUEUE_KEY)) == []

    def test_sends_stored_body_and_headers(self):
        queue, _ = _queue()
        captured = []

        async def send(method, url, body=None, headers=None, params=None):
            captured.append((method, url, body, headers))
            return FakeResponse(204)

        queue.transport.send = send
        queue.enqueue("PUT", "/api/updateReading", {"ph": 7.6}, {"X-Test": "1"})
        asyncio.run(queue.sync_now())
        assert captured == [("PUT", "/api/updateReading", {"ph": 7.6}, {"X-Test": "1"})]


# ---------------------------------------------------------------------------
# Exclusivity
# ---------------------------------------------------------------------------

class TestSingleFlight:
    def test_concurrent_calls_share_one_pass(self):
        queue, transport = _queue()
        _fill(queue, "/a", "/b")

        async def main():
            gate = asyncio.Event()
            original_send = transport.send

            async def gated(method, url, body=None, headers=None, params=None):
                await gate.wait()
                return await original_send(method, url, body, headers, params)

            transport.send = gated
            first = asyncio.ensure_future(queue.sync_now())
            await asyncio.sleep(0)
            assert queue.syncing is True
            second = asyncio.ensure_future(queue.sync_now())
            await asyncio.sleep(0)
            gate.set()
            return await asyncio.gather(first, second)

        first, second = asyncio.run(main())
        assert transport.calls == ["/a", "/b"]
        assert first == second
        assert queue.syncing is False

    def test_status_reports_syncing(self):
        queue, _ = _queue()
        _fill(queue, "/a")
        seen = []
        queue.subscribe(lambda evt, st: seen.append((evt["type"], st["syncing"])))
        asyncio.run(queue.sync_now())
        assert seen == [(SYNC_START, True), (SYNC_PROGRESS, True), (SYNC_END, False)]

    def test_flag_reset_after_unexpected_error(self):
        queue, _ = _queue(KeyError("bug"))
        _fill(queue, "/a")
        seen = []
        queue.subscribe(lambda evt, st: seen.append(evt["type"]))
        with pytest.raises(KeyError):
            asyncio.run(queue.sync_now())
        assert queue.syncing is False
        assert seen[-1] == SYNC_END
        assert queue.length == 1


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class TestSyncEvents:
    def test_event_sequence(self):
        queue, _ = _queue(200, 409, 500)
        ids = _fill(queue, "/a", "/b", "/c")
        seen = []
        queue.subscribe(lambda evt, st: seen.append(evt))
        asyncio.run(queue.sync_now())
        assert seen == [
            {"type": SYNC_START, "queued": 3},
            {"type": SYNC_PROGRESS, "id": ids[0], "outcome": DELIVERED, "remaining": 2},
            {"type": SYNC_PROGRESS, "id": ids[1], "outcome": DROP, "remaining": 1},
            {"type": SYNC_PROGRESS, "id": ids[2], "outcome": HALT, "remaining": 1},
            {"type": SYNC_END, "remaining": 1, "halted": True},
        ]

    def test_no_progress_on_network_error(self):
        queue, _ = _queue(ConnectionError("offline"))
        _fill(queue, "/a")
        seen = []
        queue.subscribe(lambda evt, st: seen.append(evt["type"]))
        asyncio.run(queue.sync_now())
        assert seen == [SYNC_START, SYNC_END]


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------

class TestScenarios:
    def test_reading_queued_offline_then_synced(self):
        queue, transport = _queue(online=False)
        queue.enqueue("POST", "/api/submitReading",
                      {"date": "2024-01-01", "ph": 7.4, "chlorine": 2, "salt": 3200})
        assert queue.get_status()["queued"] == 1

        queue.connectivity.set_online(True)
        before = int(time.time() * 1000)
        asyncio.run(queue.sync_now())
        status = queue.get_status()
        assert status["queued"] == 0
        assert before <= status["last_sync_at"] <= int(time.time() * 1000)
        assert transport.calls == ["/api/submitReading"]

    def test_meta_written_only_when_drained(self):
        clock = iter([1, 2, 3, 100]).__next__
        queue = OfflineQueue(QueueStore(memory_storage()), FakeTransport(500, 200, 200), clock=clock)
        _fill(queue, "/a", "/b")
        asyncio.run(queue.sync_now())
        assert queue.get_status()["last_sync_at"] is None
        asyncio.run(queue.sync_now())
        assert queue.get_status()["last_sync_at"] == 3
