"""
auth/policy.py -- Ownership authorization for board resources.

Every mutating route asks one question before touching the store: may the
caller act on a resource owned by owner_id? The answer is always owner-match
first, then an admin override that depends on the (resource, action) pair.

The override is deliberately NOT a single rule. The table below is the
whole policy:

  resource  action   admin override
  --------  -------  --------------
  message   edit     no   (owner only; an admin editing is rejected)
  message   delete   yes
  reply     delete   yes
  appeal    view     yes  (listing one user's appeals)

Pairs missing from the table are owner-only. Appeal deletion has no entry
and is not routed through authorize() at all -- any authenticated caller
may delete an appeal.

Decisions are computed per call from the claims in hand. Nothing is cached;
the claims themselves are the only state.

Layer rule: no imports from api/ or board/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from auth.models import Claims
from core.errors import AuthorizationError

logger = logging.getLogger("msgboard.auth.policy")


class Resource(str, Enum):
    message = "message"
    reply = "reply"
    appeal = "appeal"


class Action(str, Enum):
    edit = "edit"
    delete = "delete"
    view = "view"


ADMIN_OVERRIDE: dict[tuple[Resource, Action], bool] = {
    (Resource.message, Action.edit): False,
    (Resource.message, Action.delete): True,
    (Resource.reply, Action.delete): True,
    (Resource.appeal, Action.view): True,
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None


ALLOW = Decision(allowed=True)


def authorize(claims: Claims, owner_id: int, resource: Resource, action: Action) -> Decision:
    """Return Allow if the caller owns the resource or the table grants admin override."""
    if claims.user_id == owner_id:
        return ALLOW
    if claims.is_admin and ADMIN_OVERRIDE.get((resource, action), False):
        return ALLOW
    return Decision(allowed=False, reason="forbidden")


def require(claims: Claims, owner_id: int, resource: Resource, action: Action) -> None:
    """Raise AuthorizationError unless authorize() allows the action."""
    decision = authorize(claims, owner_id, resource, action)
    if not decision.allowed:
        logger.warning(
            "Denied %s on %s owned by user %s to user %s (role=%s)",
            action.value,
            resource.value,
            owner_id,
            claims.user_id,
            claims.role,
        )
        raise AuthorizationError(
            f"You do not have permission to {action.value} this {resource.value}.",
            code=decision.reason,
        )
