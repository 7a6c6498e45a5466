"""Unit tests for the event bus module."""

from __future__ import annotations

import json
from io import StringIO

import pytest

from tabpilot.monitoring.event_bus import (
    Event,
    EventBus,
    EventSink,
    EventType,
    InMemorySink,
    JsonlSink,
    LoggingSink,
)


class TestEvent:
    def test_create_event(self) -> None:
        event = Event(event_type=EventType.RUN_STARTED, session_id="abc123", data={"goal": "book a table"})
        assert event.event_type == EventType.RUN_STARTED
        assert event.session_id == "abc123"
        assert event.timestamp

    def test_event_to_jsonl(self) -> None:
        line = Event(event_type=EventType.LOG, data={"msg": "test"}).to_jsonl()
        assert "\n" not in line
        parsed = json.loads(line)
        assert parsed["event_type"] == "log"
        assert parsed["data"]["msg"] == "test"


class TestSinks:
    def test_builtin_sinks_satisfy_protocol(self) -> None:
        for sink in (InMemorySink(), LoggingSink(), JsonlSink(StringIO())):
            assert isinstance(sink, EventSink)

    @pytest.mark.anyio
    async def test_jsonl_sink_writes_lines(self) -> None:
        stream = StringIO()
        bus = EventBus()
        bus.add_sink(JsonlSink(stream))
        await bus.emit(EventType.RUN_STARTED, {"goal": "g"}, session_id="s1")
        await bus.emit(EventType.RUN_FINISHED, {"status": "completed"}, session_id="s1")
        lines = stream.getvalue().splitlines()
        assert [json.loads(line)["event_type"] for line in lines] == ["run_started", "run_finished"]

    @pytest.mark.anyio
    async def test_in_memory_sink_filters(self) -> None:
        sink = InMemorySink()
        bus = EventBus()
        bus.add_sink(sink)
        await bus.emit(EventType.LOG, {"a": 1})
        await bus.emit(EventType.RUNTIME_UPDATE, {"status": "idle"})
        assert sink.count == 2
        assert len(sink.of_type(EventType.LOG)) == 1
        sink.clear()
        assert sink.count == 0


class TestEventBus:
    @pytest.mark.anyio
    async def test_fan_out_and_remove(self) -> None:
        first, second = InMemorySink(), InMemorySink()
        bus = EventBus()
        bus.add_sink(first)
        bus.add_sink(second)
        await bus.emit(EventType.LOG, {"n": 1})
        bus.remove_sink(first)
        await bus.emit(EventType.LOG, {"n": 2})
        assert (first.count, second.count, bus.sink_count) == (1, 2, 1)

    @pytest.mark.anyio
    async def test_failing_sink_does_not_block_others(self) -> None:
        class Exploding:
            async def handle_event(self, event: Event) -> None:
                raise ConnectionError("gone")

        sink = InMemorySink()
        bus = EventBus()
        bus.add_sink(Exploding())
        bus.add_sink(sink)
        await bus.emit(EventType.LOG, {"x": 1})
        assert sink.count == 1

    @pytest.mark.anyio
    async def test_string_event_types(self) -> None:
        sink = InMemorySink()
        bus = EventBus()
        bus.add_sink(sink)
        await bus.emit("run_started")
        await bus.emit("something_else", {"k": "v"})
        assert [e.event_type for e in sink.events] == [EventType.RUN_STARTED, EventType.LOG]

    @pytest.mark.anyio
    async def test_snapshot_tracks_latest_runtime_update(self) -> None:
        bus = EventBus()
        assert bus.get_snapshot() == {}
        await bus.emit(EventType.RUNTIME_UPDATE, {"status": "running", "step": 1})
        await bus.emit(EventType.LOG, {"status": "ignored"})
        await bus.emit(EventType.RUNTIME_UPDATE, {"status": "running", "step": 2})
        snapshot = bus.get_snapshot()
        assert snapshot == {"status": "running", "step": 2}
        snapshot["step"] = 99
        assert bus.get_snapshot()["step"] == 2
