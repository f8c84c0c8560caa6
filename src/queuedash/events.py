"""Live event fan-out (SSE).

Every viewer gets its own `ViewerConnection` with its own subscriptions on every upstream
event source. Nothing is shared between viewers, so tearing one down never touches another.
Teardown is explicit: `ViewerConnection.close()` removes each registered handler exactly once
and is invoked by the response itself, whether the client went away or a write failed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence, Tuple

from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse

from .config import HEARTBEAT_INTERVAL_S

logger = logging.getLogger(__name__)

STREAM_EVENTS: Tuple[str, ...] = ("completed", "failed", "progress", "active", "waiting", "stalled", "removed")
PRIMING_FRAME = "\n"
HEARTBEAT_FRAME = ": heartbeat\n\n"
MAX_PENDING_FRAMES = 1000
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Disable proxy buffering (nginx) so frames are flushed as they are written.
    "X-Accel-Buffering": "no",
}


def format_event_frame(queue: str, event: str, payload: Any) -> str:
    envelope = {"queue": queue, "event": event, "payload": payload}
    try:
        data = json.dumps(jsonable_encoder(envelope), ensure_ascii=False)
    except (TypeError, ValueError):
        data = json.dumps(envelope, ensure_ascii=False, default=str)
    return f"data: {data}\n\n"


@dataclass(frozen=True)
class Subscription:
    source: Any
    event_name: str
    handler: Callable[..., None]


class ConnectionState(str, Enum):
    OPEN = "open"
    STREAMING = "streaming"
    CLOSED = "closed"


class ViewerConnection:
    """One live-event viewer: its subscriptions, its frame queue, its heartbeat cadence."""

    def __init__(
        self,
        *,
        sources: Sequence[Any],
        events: Sequence[str] = STREAM_EVENTS,
        heartbeat_interval_s: float = HEARTBEAT_INTERVAL_S,
        max_pending: int = MAX_PENDING_FRAMES,
    ) -> None:
        self.connection_id = uuid.uuid4().hex[:12]
        self._sources = tuple(sources)
        self._events = tuple(events)
        self._heartbeat_interval_s = float(heartbeat_interval_s)
        self._loop = asyncio.get_running_loop()
        self._frames: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=max(1, int(max_pending)))
        self.dropped = 0
        self._subscriptions: List[Subscription] = []
        self.state = ConnectionState.OPEN

    @property
    def subscriptions(self) -> Tuple[Subscription, ...]:
        return tuple(self._subscriptions)

    def subscribe(self) -> None:
        try:
            for source in self._sources:
                source_name = str(getattr(source, "name", "") or "")
                for event_name in self._events:
                    handler = self._make_handler(source_name, event_name)
                    source.on(event_name, handler)
                    self._subscriptions.append(Subscription(source=source, event_name=event_name, handler=handler))
        except Exception:
            self.close()
            raise
        logger.debug(
            "queuedash_sse_open connection=%s subscriptions=%s", self.connection_id, len(self._subscriptions)
        )

    def _make_handler(self, source_name: str, event_name: str) -> Callable[..., None]:
        def _handler(*args: Any) -> None:
            if self.state is ConnectionState.CLOSED:
                return
            if not args:
                payload = None
            elif len(args) == 1:
                payload = args[0]
            else:
                payload = list(args)
            self._push(format_event_frame(source_name, event_name, payload))

        return _handler

    def _push(self, frame: Optional[str]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._enqueue(frame)
            return
        # Event sources may fire on their own threads.
        try:
            self._loop.call_soon_threadsafe(self._enqueue, frame)
        except RuntimeError:
            logger.debug("queuedash_sse_drop connection=%s reason=loop_closed", self.connection_id)

    def _enqueue(self, frame: Optional[str]) -> None:
        if frame is None:
            # The end-of-stream marker must always fit; pending frames are moot once closed.
            while self._frames.full():
                self._frames.get_nowait()
            self._frames.put_nowait(None)
            return
        try:
            self._frames.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped += 1
            if self.dropped == 1:
                logger.warning("queuedash_sse_backlog connection=%s reason=viewer_too_slow", self.connection_id)

    async def stream(self) -> AsyncIterator[str]:
        try:
            yield PRIMING_FRAME
            if self.state is ConnectionState.OPEN:
                self.state = ConnectionState.STREAMING
            next_heartbeat = self._loop.time() + self._heartbeat_interval_s
            while self.state is ConnectionState.STREAMING:
                timeout = max(0.0, next_heartbeat - self._loop.time())
                try:
                    frame = await asyncio.wait_for(self._frames.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    next_heartbeat += self._heartbeat_interval_s
                    yield HEARTBEAT_FRAME
                    continue
                if frame is None:
                    break
                yield frame
        finally:
            self.close()

    def close(self) -> int:
        """Remove every handler this connection registered. Safe to call more than once."""
        if self.state is ConnectionState.CLOSED:
            return 0
        self.state = ConnectionState.CLOSED
        subs, self._subscriptions = self._subscriptions, []
        removed = 0
        for sub in subs:
            try:
                sub.source.remove_listener(sub.event_name, sub.handler)
                removed += 1
            except Exception:
                # Keep going: one misbehaving source must not leave the others' handlers behind.
                logger.exception(
                    "queuedash_sse_unsubscribe_failed connection=%s event=%s", self.connection_id, sub.event_name
                )
        self._push(None)
        logger.debug("queuedash_sse_closed connection=%s removed=%s", self.connection_id, removed)
        return removed


class EventMultiplexer:
    def __init__(
        self,
        sources: Sequence[Any] = (),
        *,
        events: Sequence[str] = STREAM_EVENTS,
        heartbeat_interval_s: float = HEARTBEAT_INTERVAL_S,
        max_pending: int = MAX_PENDING_FRAMES,
    ) -> None:
        if heartbeat_interval_s <= 0:
            raise ValueError("heartbeat_interval_s must be > 0")
        self.sources: Tuple[Any, ...] = tuple(sources)
        self.events: Tuple[str, ...] = tuple(events)
        self.heartbeat_interval_s = float(heartbeat_interval_s)
        self.max_pending = int(max_pending)

    def open(self) -> ViewerConnection:
        """Create a viewer connection with its subscriptions registered. Must run on the event loop."""
        conn = ViewerConnection(
            sources=self.sources,
            events=self.events,
            heartbeat_interval_s=self.heartbeat_interval_s,
            max_pending=self.max_pending,
        )
        conn.subscribe()
        return conn


class EventStreamResponse(StreamingResponse):
    """SSE response that always tears down its viewer connection once the ASGI call ends."""

    media_type = "text/event-stream"

    def __init__(self, connection: ViewerConnection) -> None:
        super().__init__(connection.stream(), media_type="text/event-stream", headers=dict(SSE_HEADERS))
        self.connection = connection

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.connection.close()
