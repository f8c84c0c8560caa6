from __future__ import annotations


class DashboardError(Exception):
    """Base class for failures that map to a `{"error": ...}` HTTP response."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = str(message or "Internal server error")
        super().__init__(self.message)


class NotFound(DashboardError):
    status_code = 404


class ValidationError(DashboardError):
    status_code = 400


class Forbidden(DashboardError):
    status_code = 403


class UpstreamError(DashboardError):
    """A queue engine call failed. The message is the engine's own text, nothing more."""

    status_code = 500
