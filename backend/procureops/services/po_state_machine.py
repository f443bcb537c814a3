"""
Purchase Order State Machine

Validates and executes purchase order lifecycle transitions:

    Draft -> Submitted -> Approved | Rejected
    Approved -> PartiallyReceived | Completed
    PartiallyReceived -> PartiallyReceived | Completed
    Draft | Submitted | Approved | PartiallyReceived -> Closed  (administrative)

Works purely on the in-memory order; persisting the result is the caller's
job. Every transition bumps ``version`` and ``updated_at``. A caller that
supplies ``expected_version`` gets ConcurrencyConflictError when the order
has moved on; nothing is retried here.
"""
from datetime import datetime
from typing import Optional

from procureops.core.status_config import (
    PurchaseOrderStatus,
    RECEIVABLE_STATUSES,
    StatusTransitionError,
    get_allowed_purchase_order_transitions,
    is_terminal_status,
    validate_purchase_order_transition,
)
from procureops.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    ValidationError,
)
from procureops.logging_config import get_logger
from procureops.models.purchase_order import PurchaseOrder

logger = get_logger(__name__)

MAX_REASON_LENGTH = 500


class PurchaseOrderStateMachine:
    """
    Lifecycle transitions for purchase orders.

    Responsibilities:
    - Reject transitions the status table does not allow
    - Enforce per-transition preconditions (lines on submit, reason on reject)
    - Stamp audit fields, version and updated_at
    - Derive the post-receipt status from line quantities
    """

    # ========================================================================
    # GUARDS
    # ========================================================================

    def check_version(self, order: PurchaseOrder, expected_version: Optional[int]) -> None:
        """Raise ConcurrencyConflictError when the caller's version is stale."""
        if expected_version is not None and order.version != expected_version:
            raise ConcurrencyConflictError(
                f"Purchase order {order.po_number} is at version {order.version}, "
                f"request was based on version {expected_version}",
                expected_version=expected_version,
                current_version=order.version,
            )

    def _require_status(self, order: PurchaseOrder, action: str, *allowed: PurchaseOrderStatus) -> None:
        if order.status not in allowed:
            raise InvalidStateError(
                f"Cannot {action} purchase order {order.po_number} in '{order.status}' status",
                current_state=order.status,
                allowed_states=[s.value for s in allowed],
            )

    def _transition(self, order: PurchaseOrder, new_status: PurchaseOrderStatus) -> str:
        """Move to new_status, bumping version and updated_at. Returns the old status."""
        old_status = order.status
        try:
            validate_purchase_order_transition(old_status, new_status)
        except StatusTransitionError as e:
            raise InvalidStateError(
                str(e),
                current_state=old_status,
                allowed_states=get_allowed_purchase_order_transitions(old_status),
            ) from e

        order.status = new_status.value
        order.version = order.version + 1
        order.updated_at = datetime.utcnow()

        logger.info(
            f"PO {order.po_number}: {old_status} -> {new_status.value} (v{order.version})",
            extra={"po_number": order.po_number, "version": order.version},
        )
        return old_status

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def submit(
        self,
        order: PurchaseOrder,
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> PurchaseOrder:
        """
        Draft -> Submitted.

        Raises:
            InvalidStateError: Order is not a draft
            ValidationError: Order has no line with a positive quantity
        """
        self.check_version(order, expected_version)
        self._require_status(order, "submit", PurchaseOrderStatus.DRAFT)

        if not any(line.quantity_ordered and line.quantity_ordered > 0 for line in order.lines):
            raise ValidationError(
                f"Cannot submit purchase order {order.po_number} without any lines",
                field="lines",
            )

        self._transition(order, PurchaseOrderStatus.SUBMITTED)
        order.submitted_by = actor_id
        order.submitted_at = order.updated_at
        return order

    def approve(
        self,
        order: PurchaseOrder,
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> PurchaseOrder:
        """Submitted -> Approved, recording the approver."""
        self.check_version(order, expected_version)
        self._require_status(order, "approve", PurchaseOrderStatus.SUBMITTED)

        self._transition(order, PurchaseOrderStatus.APPROVED)
        order.approved_by = actor_id
        order.approved_at = order.updated_at
        return order

    def reject(
        self,
        order: PurchaseOrder,
        actor_id: str,
        reason: Optional[str],
        expected_version: Optional[int] = None,
    ) -> PurchaseOrder:
        """
        Submitted -> Rejected.

        Raises:
            ValidationError: Reason missing, blank, or too long
            InvalidStateError: Order is not awaiting approval
        """
        self.check_version(order, expected_version)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Rejection reason is required", field="reason")
        if len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(
                f"Rejection reason cannot exceed {MAX_REASON_LENGTH} characters",
                field="reason",
            )
        self._require_status(order, "reject", PurchaseOrderStatus.SUBMITTED)

        self._transition(order, PurchaseOrderStatus.REJECTED)
        order.rejected_by = actor_id
        order.rejected_at = order.updated_at
        order.rejection_reason = reason
        return order

    def close(
        self,
        order: PurchaseOrder,
        actor_id: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> PurchaseOrder:
        """Administrative close from any non-terminal status."""
        self.check_version(order, expected_version)
        if is_terminal_status(order.status):
            raise InvalidStateError(
                f"Purchase order {order.po_number} is already {order.status}",
                current_state=order.status,
            )
        reason = (reason or "").strip() or None
        if reason and len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(
                f"Close reason cannot exceed {MAX_REASON_LENGTH} characters",
                field="reason",
            )

        self._transition(order, PurchaseOrderStatus.CLOSED)
        order.closed_by = actor_id
        order.closed_at = order.updated_at
        order.close_reason = reason
        return order

    def ensure_receivable(self, order: PurchaseOrder) -> None:
        """Raise InvalidStateError unless the order can accept deliveries."""
        if order.status not in RECEIVABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot receive items on purchase order {order.po_number} in '{order.status}' status",
                current_state=order.status,
                allowed_states=sorted(RECEIVABLE_STATUSES),
            )

    def record_receipt(self, order: PurchaseOrder) -> PurchaseOrder:
        """
        Set the status implied by the line quantities after a receipt.

        Completed when every line is fully received, PartiallyReceived otherwise.
        """
        self.ensure_receivable(order)
        if order.is_fully_received:
            self._transition(order, PurchaseOrderStatus.COMPLETED)
            order.completed_at = order.updated_at
        else:
            self._transition(order, PurchaseOrderStatus.PARTIALLY_RECEIVED)
        order.last_received_at = order.updated_at
        return order
