"""Queue engine collaborator surface.

The gateway never owns queues: it observes and commands handles supplied by the caller.
Handle methods may be plain functions or coroutine functions; `call()` awaits whatever
comes back when it is awaitable.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Union, runtime_checkable

from fastapi.encoders import jsonable_encoder

from .errors import DashboardError, UpstreamError

logger = logging.getLogger(__name__)

MaybeAwaitable = Union[Any, Awaitable[Any]]


@runtime_checkable
class JobHandle(Protocol):
    id: Any

    def remove(self) -> MaybeAwaitable: ...

    def retry(self) -> MaybeAwaitable: ...

    def promote(self) -> MaybeAwaitable: ...

    def get_state(self) -> MaybeAwaitable: ...


@runtime_checkable
class QueueHandle(Protocol):
    name: str

    def get_job_counts(self) -> MaybeAwaitable: ...

    def is_paused(self) -> MaybeAwaitable: ...

    def get_jobs(self, state: str, start: int, end: int) -> MaybeAwaitable: ...

    def get_job(self, job_id: str) -> MaybeAwaitable: ...

    def get_job_logs(self, job_id: str) -> MaybeAwaitable: ...

    def get_workers(self) -> MaybeAwaitable: ...

    def get_repeatable_jobs(self) -> MaybeAwaitable: ...

    def get_dead_letter_jobs(self, start: int, end: int) -> MaybeAwaitable: ...

    def get_metrics(self, type: str) -> MaybeAwaitable: ...

    def search_jobs(self, filter: Dict[str, Any]) -> MaybeAwaitable: ...

    def pause(self) -> MaybeAwaitable: ...

    def resume(self) -> MaybeAwaitable: ...

    def obliterate(self, force: bool = ...) -> MaybeAwaitable: ...

    def drain(self, include_delayed: bool = ...) -> MaybeAwaitable: ...

    def retry_jobs(self, count: Optional[int] = ...) -> MaybeAwaitable: ...

    def clean(self, grace: int, limit: int, type: str) -> MaybeAwaitable: ...


@runtime_checkable
class EventSource(Protocol):
    name: str

    def on(self, event_name: str, handler: Callable[..., Any]) -> Any: ...

    def remove_listener(self, event_name: str, handler: Callable[..., Any]) -> Any: ...


async def resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def error_message(exc: BaseException) -> str:
    msg = str(exc).strip() if exc is not None else ""
    return msg or "Internal server error"


async def call(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Invoke one engine operation; any engine failure becomes an `UpstreamError`."""
    try:
        return await resolve(fn(*args, **kwargs))
    except DashboardError:
        raise
    except Exception as e:
        op = getattr(fn, "__name__", None) or repr(fn)
        logger.warning("queuedash_upstream_error op=%s error=%s", op, e)
        raise UpstreamError(error_message(e)) from e


def encode(build: Callable[[], Any]) -> Any:
    """Build a response body from engine data and make it JSON-safe.

    Engine objects are foreign: a serializer that chokes on one (undecodable bytes, slotted
    objects, raising properties) is reported as an upstream failure like any engine call.
    """
    try:
        return jsonable_encoder(build())
    except DashboardError:
        raise
    except Exception as e:
        logger.warning("queuedash_encode_error error=%s", e)
        raise UpstreamError(error_message(e)) from e


def count_of(result: Any) -> Any:
    """Engine metrics/clean results come as a number, `{count}`, `.count`, or a list of ids."""
    if isinstance(result, Mapping):
        return result.get("count")
    if isinstance(result, (list, tuple, set)):
        return len(result)
    count = getattr(result, "count", None)
    if count is not None and not callable(count):
        return count
    return result


def log_lines(result: Any) -> List[Any]:
    if result is None:
        return []
    if isinstance(result, Mapping):
        logs = result.get("logs")
        return list(logs) if isinstance(logs, (list, tuple)) else []
    logs = getattr(result, "logs", None)
    if isinstance(logs, (list, tuple)):
        return list(logs)
    if isinstance(result, (list, tuple)):
        return list(result)
    return []
