"""Tests for the streaming relay: terminal events, empty chunks, cancellation."""

import asyncio
import gc
import json

from chat_platform.exceptions import QuotaExceededError
from chat_platform.relay import StreamEvent, StreamRelay, format_sse, relay_sse, watch_disconnect


async def _fragments(items, error=None):
    for item in items:
        await asyncio.sleep(0)
        yield item
    if error is not None:
        raise error


async def _collect(relay):
    return [event async for event in relay.events()]


def test_chunks_then_single_done():
    events = asyncio.run(_collect(StreamRelay(_fragments(["a", "b", "c"]))))
    assert [e.kind for e in events] == ["chunk", "chunk", "chunk", "done"]
    assert "".join(e.delta for e in events) == "abc"


def test_empty_fragments_are_dropped():
    events = asyncio.run(_collect(StreamRelay(_fragments(["", "x", "", ""]))))
    assert [(e.kind, e.delta) for e in events] == [("chunk", "x"), ("done", "")]


def test_empty_source_emits_only_done():
    events = asyncio.run(_collect(StreamRelay(_fragments([]))))
    assert [e.kind for e in events] == ["done"]


def test_error_is_terminal_and_replaces_done():
    source = _fragments(["partial"], error=RuntimeError("upstream closed"))
    events = asyncio.run(_collect(StreamRelay(source)))
    assert [e.kind for e in events] == ["chunk", "error"]
    assert events[-1].message == "upstream closed"


def test_chat_error_message_is_used():
    source = _fragments([], error=QuotaExceededError())
    events = asyncio.run(_collect(StreamRelay(source)))
    assert events == [StreamEvent.error("upstream quota exceeded")]


def test_cancellation_stops_without_terminal_event():
    closed = []

    async def hanging():
        try:
            yield "first"
            await asyncio.Event().wait()
            yield "never"
        finally:
            closed.append(True)

    async def scenario():
        cancelled = asyncio.Event()
        relay = StreamRelay(hanging(), cancelled)
        events = []

        async def consume():
            async for event in relay.events():
                events.append(event)

        task = asyncio.ensure_future(consume())
        await asyncio.sleep(0.05)
        cancelled.set()
        await asyncio.wait_for(task, timeout=1)
        return events

    events = asyncio.run(scenario())
    assert [e.kind for e in events] == ["chunk"]
    assert closed == [True]


def test_already_cancelled_emits_nothing():
    async def scenario():
        cancelled = asyncio.Event()
        cancelled.set()
        return await _collect(StreamRelay(_fragments(["a"]), cancelled))

    assert asyncio.run(scenario()) == []


def test_payloads():
    assert StreamEvent.chunk("hi").payload() == {"type": "chunk", "delta": "hi"}
    assert StreamEvent.done().payload() == {"type": "done"}
    assert StreamEvent.error("bad").payload() == {"type": "error", "message": "bad"}


def test_format_sse():
    frame = format_sse(StreamEvent.chunk("héllo"))
    assert frame.startswith("event: chunk\ndata: ")
    assert frame.endswith("\n\n")
    data = frame.split("data: ", 1)[1].strip()
    assert json.loads(data) == {"type": "chunk", "delta": "héllo"}


def test_relay_sse_frames():
    async def collect():
        return [frame async for frame in relay_sse(StreamRelay(_fragments(["a"])))]

    frames = asyncio.run(collect())
    assert frames == [
        'event: chunk\ndata: {"type": "chunk", "delta": "a"}\n\n',
        'event: done\ndata: {"type": "done"}\n\n',
    ]


def test_failure_racing_cancellation_is_retrieved():
    async def scenario():
        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        cancelled = asyncio.Event()

        async def failing():
            cancelled.set()
            raise RuntimeError("late failure")
            yield "unreachable"

        events = await _collect(StreamRelay(failing(), cancelled))
        gc.collect()
        await asyncio.sleep(0)
        return events, reported

    events, reported = asyncio.run(scenario())
    assert events == []
    assert reported == []


# ── Client disconnects ───────────────────────────────────────

class DisconnectingRequest:
    """Stands in for a Starlette request that reports a disconnect after a few polls."""

    def __init__(self, polls_before_disconnect: int):
        self.polls = 0
        self.polls_before_disconnect = polls_before_disconnect

    async def is_disconnected(self) -> bool:
        self.polls += 1
        return self.polls > self.polls_before_disconnect


def test_watch_disconnect_sets_cancelled():
    async def scenario():
        cancelled = asyncio.Event()
        request = DisconnectingRequest(polls_before_disconnect=2)
        await asyncio.wait_for(watch_disconnect(request, cancelled, interval=0.01), timeout=1)
        return cancelled.is_set(), request.polls

    assert asyncio.run(scenario()) == (True, 3)


def test_watch_disconnect_returns_once_cancelled_elsewhere():
    async def scenario():
        cancelled = asyncio.Event()
        cancelled.set()
        request = DisconnectingRequest(polls_before_disconnect=100)
        await asyncio.wait_for(watch_disconnect(request, cancelled, interval=0.01), timeout=1)
        return request.polls

    assert asyncio.run(scenario()) == 0


def test_disconnect_stops_relay_mid_stream():
    closed = []

    async def hanging():
        try:
            yield "first"
            await asyncio.Event().wait()
        finally:
            closed.append(True)

    async def scenario():
        cancelled = asyncio.Event()
        relay = StreamRelay(hanging(), cancelled)
        watcher = asyncio.ensure_future(
            watch_disconnect(DisconnectingRequest(polls_before_disconnect=3), cancelled, interval=0.01)
        )
        frames = await asyncio.wait_for(_collect_frames(relay), timeout=1)
        await watcher
        return frames

    frames = asyncio.run(scenario())
    assert frames == ['event: chunk\ndata: {"type": "chunk", "delta": "first"}\n\n']
    assert closed == [True]


async def _collect_frames(relay):
    return [frame async for frame in relay_sse(relay)]
