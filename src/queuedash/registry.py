from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Iterator, Tuple

from .errors import NotFound


class QueueRegistry:
    """Immutable name → queue handle lookup, built once from the handles given to the dashboard."""

    def __init__(self, queues: Iterable[Any]) -> None:
        by_name: dict[str, Any] = {}
        for q in queues:
            name = str(getattr(q, "name", "") or "").strip()
            if not name:
                raise ValueError(f"Queue handle has no name: {q!r}")
            if name in by_name:
                raise ValueError(f"Duplicate queue name: {name}")
            by_name[name] = q
        self._by_name = MappingProxyType(by_name)
        self._order: Tuple[Any, ...] = tuple(by_name.values())

    def lookup(self, name: str) -> Any:
        q = self._by_name.get(str(name))
        if q is None:
            raise NotFound("Queue not found")
        return q

    def names(self) -> Tuple[str, ...]:
        return tuple(self._by_name.keys())

    def __iter__(self) -> Iterator[Any]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name
