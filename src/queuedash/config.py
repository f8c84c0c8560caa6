from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple, Union

from starlette.requests import Request

HEARTBEAT_INTERVAL_S = 15.0

AuthorizeCallback = Callable[[Request, str], Union[bool, Awaitable[bool]]]


def _env(name: str, fallback: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is not None and str(v).strip():
        return str(v).strip()
    if fallback:
        v2 = os.getenv(fallback)
        if v2 is not None and str(v2).strip():
            return str(v2).strip()
    return None


def _env_flag(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    try:
        return float(raw) if raw is not None else float(default)
    except ValueError:
        return float(default)


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    try:
        return int(raw) if raw is not None else int(default)
    except ValueError:
        return int(default)


def normalize_base_path(raw: Optional[str]) -> str:
    p = str(raw or "").strip().rstrip("/")
    if p and not p.startswith("/"):
        p = "/" + p
    return p


@dataclass(frozen=True)
class DashboardOptions:
    """Options for `create_dashboard`.

    - read_only: reject every mutation with 403 before `authorize` is consulted.
    - authorize: `(request, action) -> bool` (sync or async), consulted for every mutation.
    - queue_events: event sources streamed on `/api/events`, in order.
    - base_path: where the dashboard is mounted; only used to render the page.
    """

    read_only: bool = False
    authorize: Optional[AuthorizeCallback] = None
    queue_events: Sequence[Any] = field(default_factory=tuple)
    base_path: str = ""
    heartbeat_interval_s: float = HEARTBEAT_INTERVAL_S


@dataclass(frozen=True)
class ServeConfig:
    """Process configuration for `queuedash serve` (env prefix `QUEUEDASH_`)."""

    host: str = "127.0.0.1"
    port: int = 3000
    base_path: str = "/dashboard"
    read_only: bool = False
    heartbeat_interval_s: float = HEARTBEAT_INTERVAL_S
    auth_tokens: Tuple[str, ...] = ()
    silence_poll_access_log: bool = True

    @classmethod
    def from_env(cls) -> "ServeConfig":
        tokens_raw = _env("QUEUEDASH_AUTH_TOKENS", "QUEUEDASH_AUTH_TOKEN") or ""
        tokens = tuple(t.strip() for t in tokens_raw.split(",") if t.strip())
        heartbeat = _env_float("QUEUEDASH_HEARTBEAT_S", HEARTBEAT_INTERVAL_S)
        return cls(
            host=_env("QUEUEDASH_HOST") or "127.0.0.1",
            port=_env_int("QUEUEDASH_PORT", 3000),
            base_path=normalize_base_path(_env("QUEUEDASH_BASE_PATH") or "/dashboard"),
            read_only=_env_flag("QUEUEDASH_READ_ONLY"),
            heartbeat_interval_s=heartbeat if heartbeat > 0 else HEARTBEAT_INTERVAL_S,
            auth_tokens=tokens,
            silence_poll_access_log=_env_flag("QUEUEDASH_SILENCE_POLL_ACCESS_LOG", True),
        )
