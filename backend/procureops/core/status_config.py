"""Purchase Order Status Configuration and Transition Rules

This module defines valid purchase order statuses and the allowed
transitions between them. Every status change goes through
``validate_purchase_order_transition`` so no other path can move an order.
"""
from enum import Enum
from typing import Dict, FrozenSet, List, Set


class PurchaseOrderStatus(str, Enum):
    """Valid status values for Purchase Orders"""
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PARTIALLY_RECEIVED = "PartiallyReceived"
    COMPLETED = "Completed"
    CLOSED = "Closed"


# Allowed transitions: current_status -> set of allowed next statuses
PURCHASE_ORDER_TRANSITIONS: Dict[str, Set[str]] = {
    PurchaseOrderStatus.DRAFT: {
        PurchaseOrderStatus.SUBMITTED,
        PurchaseOrderStatus.CLOSED,
    },
    PurchaseOrderStatus.SUBMITTED: {
        PurchaseOrderStatus.APPROVED,
        PurchaseOrderStatus.REJECTED,
        PurchaseOrderStatus.CLOSED,
    },
    PurchaseOrderStatus.APPROVED: {
        PurchaseOrderStatus.PARTIALLY_RECEIVED,
        PurchaseOrderStatus.COMPLETED,
        PurchaseOrderStatus.CLOSED,
    },
    PurchaseOrderStatus.PARTIALLY_RECEIVED: {
        PurchaseOrderStatus.PARTIALLY_RECEIVED,  # Another partial delivery
        PurchaseOrderStatus.COMPLETED,
        PurchaseOrderStatus.CLOSED,
    },
    PurchaseOrderStatus.REJECTED: set(),  # Terminal
    PurchaseOrderStatus.COMPLETED: set(),  # Terminal
    PurchaseOrderStatus.CLOSED: set(),  # Terminal
}

TERMINAL_STATUSES: FrozenSet[str] = frozenset(
    status.value for status, allowed in PURCHASE_ORDER_TRANSITIONS.items() if not allowed
)

RECEIVABLE_STATUSES: FrozenSet[str] = frozenset({
    PurchaseOrderStatus.APPROVED.value,
    PurchaseOrderStatus.PARTIALLY_RECEIVED.value,
})


def get_allowed_purchase_order_transitions(current_status: str) -> List[str]:
    """Get sorted list of allowed next statuses for a purchase order"""
    return sorted(s.value for s in PURCHASE_ORDER_TRANSITIONS.get(current_status, set()))


def is_valid_purchase_order_transition(current_status: str, new_status: str) -> bool:
    """Check if a purchase order status transition is valid.

    Unlike most status tables there is no implicit "no change" pass: the only
    self-transition is PartiallyReceived -> PartiallyReceived, listed explicitly.
    """
    allowed = PURCHASE_ORDER_TRANSITIONS.get(current_status, set())
    return new_status in allowed


def is_terminal_status(status: str) -> bool:
    return status in TERMINAL_STATUSES


class StatusTransitionError(Exception):
    """Raised when an invalid status transition is attempted"""
    def __init__(self, entity: str, current: str, requested: str, allowed: List[str]):
        self.entity = entity
        self.current = current
        self.requested = requested
        self.allowed = allowed
        super().__init__(
            f"Invalid {entity} status transition: '{current}' -> '{requested}'. "
            f"Allowed: {allowed if allowed else 'none (terminal state)'}"
        )


def validate_purchase_order_transition(current: str, new: str) -> None:
    """Validate and raise error if transition is invalid"""
    if not is_valid_purchase_order_transition(current, new):
        raise StatusTransitionError(
            "purchase order",
            current,
            new,
            get_allowed_purchase_order_transitions(current),
        )
