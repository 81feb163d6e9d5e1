"""Tests for election notifications."""

import asyncio

import pytest

from leaderrun.election import (
    ElectionCallbacks,
    ElectionConfig,
    InMemoryLockStore,
    LeaderElector,
    NewLeader,
    QueueEventSink,
    StartedLeading,
    StoppedLeading,
)


class TestElectionCallbacks:
    """Tests for ElectionCallbacks."""

    def test_multiple_subscribers(self) -> None:
        """Every subscriber receives the notification in order."""
        callbacks = ElectionCallbacks()
        received: list[str] = []
        callbacks.add_new_leader(lambda identity: received.append(f"first:{identity}"))
        callbacks.add_new_leader(lambda identity: received.append(f"second:{identity}"))

        callbacks.new_leader("a")

        assert received == ["first:a", "second:a"]

    def test_failing_handler_does_not_stop_others(self) -> None:
        """A raising handler is logged and the next one still runs."""
        callbacks = ElectionCallbacks()
        received: list[str] = []

        def broken() -> None:
            raise RuntimeError("boom")

        callbacks.add_started_leading(broken)
        callbacks.add_started_leading(lambda: received.append("started"))

        callbacks.started_leading()

        assert received == ["started"]

    def test_no_subscribers(self) -> None:
        """Notifications without subscribers are no-ops."""
        callbacks = ElectionCallbacks()

        callbacks.started_leading()
        callbacks.stopped_leading()
        callbacks.new_leader("a")


class TestQueueEventSink:
    """Tests for QueueEventSink."""

    @pytest.fixture
    def elector(self) -> LeaderElector:
        """Elector on a fresh in-memory store."""
        store = InMemoryLockStore()
        config = ElectionConfig(identity="a", retry_period=0.01, renew_deadline=1.0)
        return LeaderElector(config, store.lock("default", "jobs"))

    @pytest.mark.asyncio
    async def test_tagged_events(self, elector: LeaderElector) -> None:
        """Callbacks become tagged events in delivery order."""
        sink = QueueEventSink(elector)

        elector.callbacks.new_leader("a")
        elector.callbacks.started_leading()
        elector.callbacks.stopped_leading()

        assert sink.pending_count == 3
        first = await sink.get()
        assert isinstance(first, NewLeader)
        assert first.identity == "a"
        assert isinstance(sink.get_nowait(), StartedLeading)
        assert isinstance(sink.get_nowait(), StoppedLeading)

    @pytest.mark.asyncio
    async def test_consumer_task(self, elector: LeaderElector) -> None:
        """A consumer task sees the events of a real run."""
        sink = QueueEventSink(elector)
        seen: list[object] = []

        async def consume() -> None:
            async for event in sink:
                seen.append(event)
                if isinstance(event, StoppedLeading):
                    return

        consumer = asyncio.create_task(consume())
        await elector.start()
        await asyncio.sleep(0.05)
        await elector.stop()
        await asyncio.wait_for(consumer, timeout=1.0)

        assert [type(event) for event in seen] == [NewLeader, StartedLeading, StoppedLeading]

    @pytest.mark.asyncio
    async def test_full_queue_drops(self, elector: LeaderElector) -> None:
        """A bounded sink drops events instead of blocking the engine."""
        sink = QueueEventSink(elector, max_size=1)

        elector.callbacks.started_leading()
        elector.callbacks.stopped_leading()

        assert sink.pending_count == 1
        assert isinstance(sink.get_nowait(), StartedLeading)
