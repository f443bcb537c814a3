"""
Event Service

Two kinds of events leave a purchase order transition:

- Audit events (``record_purchasing_event``) are rows in purchasing_events,
  written in the same transaction as the change they describe.
- Side-channel events go to an ``EventSink`` after the transaction commits.
  Delivery is best effort: a failing sink is logged and never undoes the
  committed order state.
"""
from datetime import date
from typing import Any, Dict, Optional, Protocol, runtime_checkable
from sqlalchemy.orm import Session

from procureops.models.purchasing_event import PurchasingEvent
from procureops.logging_config import get_logger

logger = get_logger(__name__)


# Side-channel event types
PO_CREATED = "purchase_order.created"
PO_SUBMITTED = "purchase_order.submitted"
PO_APPROVED = "purchase_order.approved"
PO_REJECTED = "purchase_order.rejected"
PO_CLOSED = "purchase_order.closed"
PO_RECEIVED = "purchase_order.received"
PO_COMPLETED = "purchase_order.completed"


def record_purchasing_event(
    db: Session,
    purchase_order_id: int,
    event_type: str,
    title: str,
    description: Optional[str] = None,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    order_version: Optional[int] = None,
    event_date: Optional[date] = None,
    user_id: Optional[str] = None,
    metadata_key: Optional[str] = None,
    metadata_value: Optional[str] = None,
) -> PurchasingEvent:
    """
    Record a purchasing event for a purchase order.

    Args:
        db: Database session
        purchase_order_id: ID of the purchase order
        event_type: Type of event (created, status_change, receipt, note_added)
        title: Short description of the event
        description: Detailed description (optional)
        old_value: Previous value for status changes
        new_value: New value for status changes
        order_version: Order version produced by the change
        event_date: When the event actually occurred (defaults to today)
        user_id: ID of user who triggered the event
        metadata_key: Additional context key
        metadata_value: Additional context value

    Returns:
        The created PurchasingEvent instance
    """
    event = PurchasingEvent(
        purchase_order_id=purchase_order_id,
        user_id=user_id,
        event_type=event_type,
        title=title,
        description=description,
        old_value=old_value,
        new_value=new_value,
        order_version=order_version,
        event_date=event_date or date.today(),
        metadata_key=metadata_key,
        metadata_value=metadata_value,
    )
    db.add(event)
    # Don't commit - let the calling function handle the transaction
    return event


@runtime_checkable
class EventSink(Protocol):
    """Receiver for post-commit purchase order events (notifications, webhooks)."""

    def publish(self, event_type: str, order_id: int, payload: Dict[str, Any]) -> None:
        ...


class LoggingEventSink:
    """Default sink: writes each event to the application log."""

    def publish(self, event_type: str, order_id: int, payload: Dict[str, Any]) -> None:
        logger.info(
            f"Event {event_type} for PO id {order_id}",
            extra={"event_type": event_type, "order_id": order_id, "payload": payload},
        )


def publish_safely(sink: EventSink, event_type: str, order_id: int, payload: Dict[str, Any]) -> bool:
    """
    Publish to the sink, logging rather than raising on failure.

    Only call after the order change is committed.

    Returns:
        True if the sink accepted the event
    """
    try:
        sink.publish(event_type, order_id, payload)
        return True
    except Exception as e:
        logger.warning(
            f"Event delivery failed for {event_type} on PO id {order_id}: {e}",
            extra={"event_type": event_type, "order_id": order_id},
            exc_info=True,
        )
        return False
