"""queuedash FastAPI application factory."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import DashboardOptions
from .errors import DashboardError
from .routes import actions_router, events_router, queues_router
from .service import build_dashboard_service, get_dashboard_service

logger = logging.getLogger(__name__)

_PAGE_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'unsafe-inline'; style-src 'unsafe-inline' 'self'; connect-src 'self'"
    ),
}


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=int(status_code), content={"error": str(message)})


async def _dashboard_error_handler(_request: Request, exc: DashboardError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


async def _http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error_response(exc.status_code, detail)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "queuedash_unhandled_error method=%s path=%s", request.method, request.url.path, exc_info=exc
    )
    return _error_response(500, "Internal server error")


async def _validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p not in {"body", "query", "path"})
    msg = str(first.get("msg") or "Invalid request")
    return _error_response(400, f"{loc}: {msg}" if loc else msg)


def create_dashboard(queues: Iterable[Any], options: Optional[DashboardOptions] = None) -> FastAPI:
    """Build the dashboard ASGI app for `queues`; mount it anywhere (`app.mount("/dashboard", ...)`).

    The queue set is fixed here: handles are registered once and never added later.
    """
    svc = build_dashboard_service(queues, options)

    app = FastAPI(
        title="queuedash",
        description="Dashboard API for monitoring and controlling job queues (REST + SSE).",
        version=__version__,
    )
    app.state.dashboard = svc

    app.add_exception_handler(DashboardError, _dashboard_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    async def dashboard_page(request: Request) -> HTMLResponse:
        return HTMLResponse(content=get_dashboard_service(request).page_html, headers=dict(_PAGE_HEADERS))

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy", "service": "queuedash"}

    app.include_router(queues_router, prefix="/api")
    app.include_router(actions_router, prefix="/api")
    app.include_router(events_router, prefix="/api")

    logger.info(
        "queuedash_dashboard queues=%s event_sources=%s read_only=%s authorize=%s",
        ",".join(svc.registry.names()),
        len(svc.multiplexer.sources),
        bool(svc.options.read_only),
        svc.options.authorize is not None,
    )
    return app
