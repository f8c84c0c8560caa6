from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List

import pytest

from queuedash import DashboardOptions
from queuedash.events import PRIMING_FRAME, STREAM_EVENTS

from queue_fakes import FakeEventSource, FakeQueue, make_app

pytestmark = pytest.mark.integration


def _scope(path: str) -> Dict[str, Any]:
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.3"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("ascii"),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver"), (b"accept", b"text/event-stream")],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }


def _drive(app: Any, path: str, on_body: Callable[[List[str]], bool]) -> List[Dict[str, Any]]:
    """Run one SSE request; the client disconnects as soon as `on_body(chunks)` returns True."""
    sent: List[Dict[str, Any]] = []

    async def main() -> None:
        disconnect = asyncio.Event()
        chunks: List[str] = []

        async def receive() -> Dict[str, Any]:
            await disconnect.wait()
            return {"type": "http.disconnect"}

        async def send(message: Dict[str, Any]) -> None:
            sent.append(message)
            if message["type"] != "http.response.body":
                return
            body = message.get("body", b"")
            if body:
                chunks.append(body.decode("utf-8"))
                if on_body(chunks):
                    disconnect.set()

        await asyncio.wait_for(app(_scope(path), receive, send), timeout=5)

    asyncio.run(main())
    return sent


def test_events_stream_headers_and_primer() -> None:
    src = FakeEventSource("q")
    app = make_app([FakeQueue("q")], DashboardOptions(queue_events=[src], heartbeat_interval_s=30))
    counts: List[int] = []

    def on_body(chunks: List[str]) -> bool:
        counts.append(src.listener_count())
        return True

    sent = _drive(app, "/dash/api/events", on_body)

    start = sent[0]
    assert start["type"] == "http.response.start"
    assert start["status"] == 200
    headers = {k.decode("latin-1").lower(): v.decode("latin-1") for k, v in start["headers"]}
    assert headers["content-type"].startswith("text/event-stream")
    assert headers["cache-control"] == "no-cache"
    assert headers["x-accel-buffering"] == "no"

    first_body = next(m for m in sent if m["type"] == "http.response.body" and m.get("body"))
    assert first_body["body"].decode("utf-8") == PRIMING_FRAME
    assert counts == [len(STREAM_EVENTS)]


def test_events_stream_forwards_engine_events() -> None:
    emails, reports = FakeEventSource("emails"), FakeEventSource("reports")
    app = make_app([], DashboardOptions(queue_events=[emails, reports], heartbeat_interval_s=30))

    def on_body(chunks: List[str]) -> bool:
        if len(chunks) == 1:
            reports.emit("failed", {"jobId": "3", "failedReason": "boom"})
            return False
        return True

    sent = _drive(app, "/dash/api/events", on_body)
    bodies = [m["body"].decode("utf-8") for m in sent if m["type"] == "http.response.body" and m.get("body")]
    assert bodies[0] == PRIMING_FRAME
    assert bodies[1].startswith("data: ")
    assert json.loads(bodies[1][len("data: ") :]) == {
        "queue": "reports",
        "event": "failed",
        "payload": {"jobId": "3", "failedReason": "boom"},
    }


def test_events_disconnect_removes_every_handler() -> None:
    sources = [FakeEventSource("a"), FakeEventSource("b"), FakeEventSource("c")]
    app = make_app([], DashboardOptions(queue_events=sources, heartbeat_interval_s=30))

    for _ in range(3):
        _drive(app, "/dash/api/events", lambda _chunks: True)
        assert [s.listener_count() for s in sources] == [0, 0, 0]


def test_events_without_sources_still_streams() -> None:
    app = make_app([FakeQueue("q")], DashboardOptions(heartbeat_interval_s=30))
    sent = _drive(app, "/dash/api/events", lambda _chunks: True)
    assert sent[0]["status"] == 200


@pytest.mark.parametrize("spec_version", ["2.3", "2.4"])
def test_events_write_error_removes_every_handler(spec_version: str) -> None:
    sources = [FakeEventSource("a"), FakeEventSource("b")]
    app = make_app([], DashboardOptions(queue_events=sources, heartbeat_interval_s=30))
    bodies: List[bytes] = []
    errors: List[BaseException] = []
    counts_while_open: List[List[int]] = []

    async def main() -> None:
        async def receive() -> Dict[str, Any]:
            await asyncio.Event().wait()
            return {"type": "http.disconnect"}

        async def send(message: Dict[str, Any]) -> None:
            if message["type"] != "http.response.body" or not message.get("body"):
                return
            if bodies:
                raise OSError("connection reset by peer")
            bodies.append(message["body"])
            counts_while_open.append([s.listener_count() for s in sources])
            sources[0].emit("completed", {"jobId": "1"})

        scope = _scope("/dash/api/events")
        scope["asgi"] = {"version": "3.0", "spec_version": spec_version}
        try:
            await asyncio.wait_for(app(scope, receive, send), timeout=5)
        except asyncio.TimeoutError:
            raise
        except Exception as e:
            errors.append(e)

    asyncio.run(main())
    assert bodies == [PRIMING_FRAME.encode("utf-8")]
    assert errors, "the failed write should end the request"
    assert counts_while_open == [[len(STREAM_EVENTS)] * 2]
    assert [s.listener_count() for s in sources] == [0, 0]
