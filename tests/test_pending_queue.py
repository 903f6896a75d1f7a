import asyncio

from notifier.pending_queue import PendingQueue

from conftest import Harness, make_order


def _enqueue(harness: Harness, *numbers: str) -> None:
    async def scenario() -> None:
        for number in numbers:
            await harness.pending_queue.enqueue(make_order(number))

    asyncio.run(scenario())


def test_enqueue_stores_snapshot_with_zero_attempts() -> None:
    harness = Harness()
    _enqueue(harness, "201")

    entry = harness.ledger.pending["201"]
    assert entry.attempts == 0
    assert entry.order() == make_order("201")
    assert len(harness.pending_queue) == 1


def test_enqueue_twice_keeps_one_entry() -> None:
    harness = Harness()
    _enqueue(harness, "202", "202")

    assert list(harness.ledger.pending) == ["202"]
    assert len(harness.pending_queue) == 1


def test_drain_delivers_oldest_first() -> None:
    harness = Harness()
    _enqueue(harness, "303", "301", "302")

    report = asyncio.run(harness.pending_queue.drain())

    assert report.delivered == 3
    numbers = [text.split("📦 Pedido: #")[1].split("\n")[0] for text in harness.messaging.sent]
    assert numbers == ["303", "301", "302"]
    assert harness.ledger.pending == {}


def test_entry_abandoned_after_five_failed_drains() -> None:
    harness = Harness()
    _enqueue(harness, "104")
    harness.messaging.failures = 100
    history = []

    async def scenario() -> None:
        for _ in range(6):
            harness.messaging.is_online = True
            await harness.pending_queue.drain()
            entry = harness.ledger.pending.get("104")
            history.append(entry.attempts if entry else None)

    asyncio.run(scenario())

    assert history == [1, 2, 3, 4, None, None]
    assert harness.messaging.attempts == 5
    assert len(harness.pending_queue) == 0
    assert any("removido da fila após 5 tentativas" in entry.message for entry in harness.ledger.logs)


def test_drain_skipped_while_messaging_unreachable() -> None:
    harness = Harness()
    _enqueue(harness, "401")
    harness.messaging.is_online = False
    harness.messaging.reachable = False

    report = asyncio.run(harness.pending_queue.drain())

    assert report is None
    assert harness.messaging.attempts == 0
    assert harness.ledger.pending["401"].attempts == 0


def test_drain_rechecks_messaging_when_marked_offline() -> None:
    harness = Harness()
    _enqueue(harness, "402")
    harness.messaging.is_online = False

    report = asyncio.run(harness.pending_queue.drain())

    assert report.delivered == 1


def test_one_broken_entry_does_not_stop_the_drain() -> None:
    harness = Harness()
    _enqueue(harness, "501", "502")
    original = harness.ledger.dequeue_pending

    async def flaky_dequeue(number: str) -> None:
        if number == "501":
            raise RuntimeError("disk full")
        await original(number)

    harness.ledger.dequeue_pending = flaky_dequeue

    report = asyncio.run(harness.pending_queue.drain())

    assert report.failed == 1
    assert report.delivered == 1
    assert "502" not in harness.ledger.pending


def test_concurrent_drain_is_dropped() -> None:
    harness = Harness()
    _enqueue(harness, "601")
    release = asyncio.Event()
    original = harness.ledger.list_pending

    async def slow_list():
        await release.wait()
        return await original()

    harness.ledger.list_pending = slow_list

    async def scenario():
        first = asyncio.create_task(harness.pending_queue.drain())
        while not harness.pending_queue.is_draining:
            await asyncio.sleep(0)
        second = await harness.pending_queue.drain()
        release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert second is None
    assert first.delivered == 1


def test_sync_loads_mirror_from_ledger() -> None:
    harness = Harness()
    _enqueue(harness, "701", "702")
    fresh = PendingQueue(ledger=harness.ledger, messaging=harness.messaging, system_log=harness.system_log)

    asyncio.run(fresh.sync())

    assert len(fresh) == 2


def test_undecodable_snapshot_is_abandoned_on_first_drain() -> None:
    harness = Harness()

    async def scenario():
        await harness.ledger.enqueue_pending("9", {"id": 9})
        await harness.pending_queue.sync()
        return await harness.pending_queue.drain()

    report = asyncio.run(scenario())

    assert report.abandoned == 1
    assert harness.ledger.pending == {}
    assert len(harness.pending_queue) == 0
    assert harness.messaging.attempts == 0
    assert any("dados do pedido ilegíveis" in entry.message for entry in harness.ledger.logs)


def test_unexpected_send_error_counts_as_attempt() -> None:
    harness = Harness()
    _enqueue(harness, "801")

    async def exploding_send(text: str) -> None:
        raise RuntimeError("encoder crashed")

    harness.messaging.send = exploding_send
    history = []

    async def scenario() -> None:
        for _ in range(5):
            await harness.pending_queue.drain()
            entry = harness.ledger.pending.get("801")
            history.append(entry.attempts if entry else None)

    asyncio.run(scenario())

    assert history == [1, 2, 3, 4, None]
