"""Streaming relay: turns a backend's fragment stream into chunk/done/error events.

The relay waits on two things at once, the next fragment from the source and
the consumer's cancellation signal. Exactly one terminal event (``done`` or
``error``) is produced unless the consumer goes away first, in which case the
relay stops silently and closes the source.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Tuple

from .exceptions import ChatError

logger = logging.getLogger(__name__)

CHUNK = "chunk"
DONE = "done"
ERROR = "error"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@dataclass(frozen=True)
class StreamEvent:
    kind: str
    delta: str = ""
    message: str = ""

    @classmethod
    def chunk(cls, delta: str) -> "StreamEvent":
        return cls(CHUNK, delta=delta)

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls(DONE)

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(ERROR, message=message)

    def payload(self) -> dict:
        if self.kind == CHUNK:
            return {"type": CHUNK, "delta": self.delta}
        if self.kind == ERROR:
            return {"type": ERROR, "message": self.message}
        return {"type": DONE}


def format_sse(event: StreamEvent) -> str:
    return f"event: {event.kind}\ndata: {json.dumps(event.payload(), ensure_ascii=False)}\n\n"


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, ChatError):
        return exc.message
    return str(exc) or type(exc).__name__


async def _next_fragment(iterator) -> Tuple[bool, Optional[str]]:
    try:
        return False, await iterator.__anext__()
    except StopAsyncIteration:
        return True, None


class StreamRelay:
    def __init__(self, source: AsyncIterator[str], cancelled: Optional[asyncio.Event] = None):
        self._source = source
        self._cancelled = cancelled or asyncio.Event()

    async def events(self) -> AsyncIterator[StreamEvent]:
        iterator = self._source.__aiter__()
        cancel_wait = asyncio.ensure_future(self._cancelled.wait())
        pending = None
        try:
            while not self._cancelled.is_set():
                pending = asyncio.ensure_future(_next_fragment(iterator))
                await asyncio.wait({pending, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)

                if self._cancelled.is_set():
                    logger.info("Stream consumer went away, stopping relay")
                    return

                task, pending = pending, None
                try:
                    exhausted, fragment = task.result()
                except Exception as exc:
                    logger.warning("Stream source failed: %s", _error_text(exc))
                    yield StreamEvent.error(_error_text(exc))
                    return

                if exhausted:
                    yield StreamEvent.done()
                    return
                if fragment:
                    yield StreamEvent.chunk(fragment)
        finally:
            cancel_wait.cancel()
            if pending is not None:
                if not pending.done():
                    pending.cancel()
                    await asyncio.gather(pending, return_exceptions=True)
                elif not pending.cancelled():
                    # the source may have failed in the same wakeup as the cancellation
                    pending.exception()
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()


async def relay_sse(relay: StreamRelay) -> AsyncIterator[str]:
    async for event in relay.events():
        yield format_sse(event)


async def watch_disconnect(request, cancelled: asyncio.Event, interval: float = 0.5) -> None:
    """Set ``cancelled`` once the HTTP client disconnects."""
    while not cancelled.is_set():
        if await request.is_disconnected():
            cancelled.set()
            return
        await asyncio.sleep(interval)
