from __future__ import annotations

from dataclasses import dataclass
from importlib import resources
from typing import Any, Iterable, Optional

from starlette.requests import Request

from .config import DashboardOptions, normalize_base_path
from .events import EventMultiplexer
from .registry import QueueRegistry
from .security import MutationGuard

_BASE_PATH_PLACEHOLDER = "__QUEUEDASH_BASE_PATH__"


def load_dashboard_page(*, base_path: str = "") -> str:
    html = resources.files("queuedash").joinpath("static/dashboard.html").read_text(encoding="utf-8")
    return html.replace(_BASE_PATH_PLACEHOLDER, normalize_base_path(base_path))


@dataclass(frozen=True)
class DashboardService:
    """Composition root of one dashboard: registry + guard + event fan-out + page asset."""

    options: DashboardOptions
    registry: QueueRegistry
    guard: MutationGuard
    multiplexer: EventMultiplexer
    page_html: str


def build_dashboard_service(queues: Iterable[Any], options: Optional[DashboardOptions] = None) -> DashboardService:
    opts = options or DashboardOptions()
    return DashboardService(
        options=opts,
        registry=QueueRegistry(queues),
        guard=MutationGuard(read_only=bool(opts.read_only), authorize=opts.authorize),
        multiplexer=EventMultiplexer(tuple(opts.queue_events or ()), heartbeat_interval_s=opts.heartbeat_interval_s),
        page_html=load_dashboard_page(base_path=opts.base_path),
    )


def get_dashboard_service(request: Request) -> DashboardService:
    return request.app.state.dashboard
