from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(s.value for s in cls)


class ActionTag(str, Enum):
    """Labels passed to the authorize callback, one per guarded mutation."""

    QUEUE_PAUSE = "queue:pause"
    QUEUE_RESUME = "queue:resume"
    QUEUE_OBLITERATE = "queue:obliterate"
    QUEUE_DRAIN = "queue:drain"
    QUEUE_RETRY_ALL = "queue:retryAll"
    QUEUE_CLEAN = "queue:clean"
    JOB_REMOVE = "job:remove"
    JOB_RETRY = "job:retry"
    JOB_PROMOTE = "job:promote"


_MISSING = object()


def _field(raw: Any, *names: str) -> Any:
    """Read the first present attribute/key among `names` (engine objects or plain dicts)."""
    for name in names:
        if isinstance(raw, Mapping):
            if name in raw:
                return raw[name]
        else:
            value = getattr(raw, name, _MISSING)
            if value is not _MISSING:
                return value
    return _MISSING


def _optional(raw: Any, *names: str) -> Optional[Any]:
    value = _field(raw, *names)
    return None if value is _MISSING else value


@dataclass(frozen=True)
class Job:
    """HTTP-safe snapshot of an engine job.

    Optional fields are `None` when the engine did not supply them; `to_dict()` omits them
    entirely so clients can tell "absent" apart from a real value.
    """

    id: str
    name: Optional[str]
    data: Any
    opts: Any
    progress: Any
    attempts_made: int
    timestamp: Optional[float] = None
    failed_reason: Optional[str] = None
    returnvalue: Any = None
    processed_on: Optional[float] = None
    finished_on: Optional[float] = None

    @classmethod
    def from_engine(cls, raw: Any) -> "Job":
        attempts = _optional(raw, "attempts_made", "attemptsMade")
        try:
            attempts_i = int(attempts) if attempts is not None and not isinstance(attempts, bool) else 0
        except (TypeError, ValueError):
            attempts_i = 0
        job_id = _optional(raw, "id")
        return cls(
            id=str(job_id) if job_id is not None else "",
            name=_optional(raw, "name"),
            data=_optional(raw, "data"),
            opts=_optional(raw, "opts"),
            progress=_optional(raw, "progress"),
            attempts_made=max(0, attempts_i),
            timestamp=_optional(raw, "timestamp"),
            failed_reason=_optional(raw, "failed_reason", "failedReason"),
            returnvalue=_optional(raw, "returnvalue", "return_value"),
            processed_on=_optional(raw, "processed_on", "processedOn"),
            finished_on=_optional(raw, "finished_on", "finishedOn"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "data": self.data,
            "opts": self.opts,
            "progress": self.progress,
            "attemptsMade": self.attempts_made,
            "timestamp": self.timestamp,
        }
        optional = {
            "failedReason": self.failed_reason,
            "returnvalue": self.returnvalue,
            "processedOn": self.processed_on,
            "finishedOn": self.finished_on,
        }
        out.update({k: v for k, v in optional.items() if v is not None})
        return out


def serialize_job(raw: Any, *, state: Optional[str] = None) -> Dict[str, Any]:
    out = Job.from_engine(raw).to_dict()
    if state is not None:
        out["state"] = str(state)
    return out


def created_at(item: Mapping[str, Any]) -> float:
    """Sort key for merged listings: creation timestamp, missing/invalid → 0."""
    ts = item.get("timestamp")
    if isinstance(ts, bool):
        return 0.0
    try:
        return float(ts) if ts is not None else 0.0
    except (TypeError, ValueError):
        return 0.0
