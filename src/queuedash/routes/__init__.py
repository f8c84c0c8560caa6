from .actions import router as actions_router
from .events import router as events_router
from .queues import router as queues_router

__all__ = ["actions_router", "events_router", "queues_router"]
