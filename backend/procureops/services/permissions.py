"""
Caller identity and permission checks.

Authentication happens upstream; this module only answers "may this actor
perform this action on this order". The service consults the checker before
touching the state machine, so a denial is reported as ForbiddenError rather
than as an invalid transition.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Protocol, runtime_checkable

from procureops.models.purchase_order import PurchaseOrder


# Actions
CREATE = "create"
VIEW = "view"
SUBMIT = "submit"
APPROVE = "approve"
REJECT = "reject"
RECEIVE = "receive"
CLOSE = "close"
ANNOTATE = "annotate"

ALL_ACTIONS: FrozenSet[str] = frozenset({
    CREATE, VIEW, SUBMIT, APPROVE, REJECT, RECEIVE, CLOSE, ANNOTATE,
})


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as asserted by the gateway."""
    user_id: str
    org_id: str
    role: str = "viewer"


@runtime_checkable
class PermissionChecker(Protocol):
    def can_perform(self, user: Actor, action: str, order: Optional[PurchaseOrder]) -> bool:
        ...


DEFAULT_ROLE_ACTIONS: Dict[str, FrozenSet[str]] = {
    "admin": ALL_ACTIONS,
    "manager": ALL_ACTIONS,
    "buyer": frozenset({CREATE, VIEW, SUBMIT, ANNOTATE}),
    "receiver": frozenset({VIEW, RECEIVE, ANNOTATE}),
    "viewer": frozenset({VIEW}),
}


class RolePermissionChecker:
    """
    Grants actions by role.

    Args:
        role_actions: role -> allowed actions (defaults to DEFAULT_ROLE_ACTIONS)
    """

    def __init__(self, role_actions: Optional[Dict[str, FrozenSet[str]]] = None):
        self.role_actions = role_actions or DEFAULT_ROLE_ACTIONS

    def can_perform(self, user: Actor, action: str, order: Optional[PurchaseOrder]) -> bool:
        if order is not None and order.org_id != user.org_id:
            return False
        return action in self.role_actions.get(user.role, frozenset())

