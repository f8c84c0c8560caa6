from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from starlette.requests import Request

from ..config import AuthorizeCallback, _env
from ..engine import resolve
from ..errors import Forbidden
from ..models import ActionTag

logger = logging.getLogger(__name__)

READ_ONLY_MESSAGE = "Dashboard is in read-only mode"
UNAUTHORIZED_MESSAGE = "Unauthorized"


@dataclass(frozen=True)
class MutationGuard:
    """Decides whether a state-changing request may reach the queue engine.

    Order is fixed: the read-only flag wins over any authorize callback, so a permissive
    callback cannot re-enable mutations on a read-only dashboard.
    """

    read_only: bool = False
    authorize: Optional[AuthorizeCallback] = None

    async def check(self, request: Request, action: ActionTag) -> None:
        if self.read_only:
            logger.info("queuedash_denied reason=read_only action=%s", action.value)
            raise Forbidden(READ_ONLY_MESSAGE)
        if self.authorize is None:
            return
        try:
            allowed = await resolve(self.authorize(request, action.value))
        except Exception:
            # Fail closed: a broken policy must not open mutations.
            logger.exception("queuedash_authorize_failed action=%s", action.value)
            raise Forbidden(UNAUTHORIZED_MESSAGE)
        if not allowed:
            logger.info("queuedash_denied reason=unauthorized action=%s", action.value)
            raise Forbidden(UNAUTHORIZED_MESSAGE)


def _bearer_token(request: Request) -> str:
    auth = str(request.headers.get("authorization") or "").strip()
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return ""


@dataclass(frozen=True)
class BearerTokenPolicy:
    """Authorize callback accepting `Authorization: Bearer <token>` for any configured token.

    `actions`, when set, limits which mutations need a token; the others are allowed.
    """

    tokens: Tuple[str, ...]
    actions: Optional[Tuple[str, ...]] = None

    def __call__(self, request: Request, action: Any) -> bool:
        action_s = str(getattr(action, "value", action))
        if self.actions is not None and action_s not in self.actions:
            return True
        presented = _bearer_token(request)
        if not presented:
            return False
        return any(hmac.compare_digest(presented.encode("utf-8"), t.encode("utf-8")) for t in self.tokens if t)


def load_auth_policy_from_env() -> Optional[BearerTokenPolicy]:
    raw = _env("QUEUEDASH_AUTH_TOKENS", "QUEUEDASH_AUTH_TOKEN") or ""
    tokens = tuple(t.strip() for t in raw.split(",") if t.strip())
    if not tokens:
        return None
    return BearerTokenPolicy(tokens=tokens)
