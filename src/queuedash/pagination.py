"""Request parameter validation shared by the listing and cleanup routes."""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import ValidationError
from .models import JobState

MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 20
DEFAULT_SEARCH_LIMIT = 50
DEFAULT_CLEAN_LIMIT = 100
MAX_CLEAN_LIMIT = 1000
CLEAN_TYPES = ("completed", "failed")

_DIGITS = re.compile(r"\s*\d+\s*")


def parse_int(raw: Any) -> Optional[int]:
    """Lenient integer parsing for query/body values; `None` when not a finite integer."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else None
    s = str(raw).strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        pass
    try:
        f = float(s)
    except ValueError:
        return None
    return int(f) if math.isfinite(f) else None


@dataclass(frozen=True)
class PageWindow:
    start: int
    end: int


def page_window(start: Any = None, end: Any = None) -> PageWindow:
    """Clamp a requested `[start, end)` window so that `0 <= start <= end <= start + MAX_PAGE_SIZE`."""
    s = max(0, parse_int(start) or 0)
    e = parse_int(end)
    if e is None:
        e = s + DEFAULT_PAGE_SIZE
    e = min(max(e, s), s + MAX_PAGE_SIZE)
    return PageWindow(start=s, end=e)


def parse_state(raw: Optional[str]) -> Optional[JobState]:
    if raw is None or raw == "":
        return None
    try:
        return JobState(str(raw))
    except ValueError:
        raise ValidationError(f"Invalid state: {raw}. Must be one of: {', '.join(JobState.values())}")


def search_filter(
    *,
    name: Optional[str] = None,
    state: Optional[str] = None,
    data: Optional[str] = None,
    limit: Any = None,
) -> Dict[str, Any]:
    """Build the engine search filter. Unknown states and undecodable `data` are dropped, not rejected."""
    out: Dict[str, Any] = {}
    if state and state in JobState.values():
        out["state"] = state
    if name:
        out["name"] = name
    if data:
        try:
            out["data"] = json.loads(data)
        except ValueError:
            pass
    n = parse_int(limit) or DEFAULT_SEARCH_LIMIT
    out["limit"] = min(max(n, 1), MAX_PAGE_SIZE)
    return out


@dataclass(frozen=True)
class CleanParams:
    grace: int
    limit: int
    type: str


def clean_params(*, grace: Any, limit: Any = None, type: Any = None) -> CleanParams:
    g = parse_int(grace)
    # Strings must be plain digits: "1.5" or "1e3" are not integers.
    if isinstance(grace, str) and not _DIGITS.fullmatch(grace):
        g = None
    if g is None or g < 0 or (isinstance(grace, float) and not grace.is_integer()):
        raise ValidationError("grace must be a non-negative integer (ms)")
    if type not in CLEAN_TYPES:
        raise ValidationError('type must be "completed" or "failed"')
    n = parse_int(limit) or DEFAULT_CLEAN_LIMIT
    return CleanParams(grace=g, limit=min(max(n, 1), MAX_CLEAN_LIMIT), type=str(type))
