"""queuedash: HTTP dashboard gateway (REST + SSE) over externally owned job queues."""

__version__ = "0.1.0"

from .app import create_dashboard  # noqa: E402
from .config import DashboardOptions  # noqa: E402
from .errors import DashboardError, Forbidden, NotFound, UpstreamError, ValidationError  # noqa: E402
from .models import ActionTag, Job, JobState  # noqa: E402
from .security import BearerTokenPolicy, load_auth_policy_from_env  # noqa: E402

__all__ = [
    "ActionTag",
    "BearerTokenPolicy",
    "DashboardError",
    "DashboardOptions",
    "Forbidden",
    "Job",
    "JobState",
    "NotFound",
    "UpstreamError",
    "ValidationError",
    "__version__",
    "create_dashboard",
    "load_auth_policy_from_env",
]
