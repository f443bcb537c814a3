"""
Purchase Order Service

Orchestrates every purchase order operation for one database session:

    load fresh (org scoped) -> permission check -> state machine / reconciler
        -> OrderStore.save(order, loaded version) -> audit event -> commit

Any failure rolls the session back, so the order, its lines, the stock
ledger and the audit trail are written together or not at all. Conflicts
and unavailable storage are surfaced to the caller unchanged; nothing here
retries. Side-channel events are published only after the commit, and a
failing sink never undoes it.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from procureops.core.config import settings
from procureops.core.quantity_config import QUANTITY_SCALE, fits_scale, round_amount
from procureops.core.status_config import PurchaseOrderStatus
from procureops.exceptions import ForbiddenError, ValidationError
from procureops.logging_config import get_logger
from procureops.models.purchase_order import PurchaseOrder, PurchaseOrderLine
from procureops.models.purchasing_event import PurchasingEvent
from procureops.services import event_service, permissions
from procureops.services.event_service import (
    EventSink,
    LoggingEventSink,
    publish_safely,
    record_purchasing_event,
)
from procureops.services.order_store import OrderFilter, OrderStore, Page, persistence_guard
from procureops.services.permissions import Actor, PermissionChecker, RolePermissionChecker
from procureops.services.po_state_machine import PurchaseOrderStateMachine
from procureops.services.receiving import ReceiptResult, ReceivingReconciler
from procureops.services.stock_ledger import StockLedger

logger = get_logger(__name__)

MAX_NOTES_LENGTH = 1000


@dataclass
class NewLine:
    """One line of an order being created."""
    product_id: str
    quantity_ordered: Decimal
    unit_price: Decimal = Decimal("0")


def _field(item: Any, name: str, default=None):
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def _decimal(value, field_name: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", field=field_name, value=value)
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be a number", field=field_name, value=value)
    if not fits_scale(number):
        raise ValidationError(
            f"{field_name} cannot have more than {QUANTITY_SCALE} decimal places",
            field=field_name,
            value=value,
        )
    return number


def _calculate_totals(po: PurchaseOrder) -> None:
    """Recalculate PO totals from lines"""
    subtotal = sum((line.line_total for line in po.lines), Decimal("0"))
    po.subtotal = subtotal
    po.total_amount = subtotal


class PurchaseOrderService:
    """
    Purchase order operations on behalf of an authenticated actor.

    Args:
        db: Session owning the transaction for every call
        permission_checker: Defaults to RolePermissionChecker
        event_sink: Post-commit event receiver, defaults to LoggingEventSink
    """

    def __init__(
        self,
        db: Session,
        permission_checker: Optional[PermissionChecker] = None,
        event_sink: Optional[EventSink] = None,
        store: Optional[OrderStore] = None,
        ledger: Optional[StockLedger] = None,
        state_machine: Optional[PurchaseOrderStateMachine] = None,
    ):
        self.db = db
        self.permissions = permission_checker or RolePermissionChecker()
        self.events = event_sink or LoggingEventSink()
        self.store = store or OrderStore(db)
        self.ledger = ledger or StockLedger(db)
        self.state_machine = state_machine or PurchaseOrderStateMachine()
        self.reconciler = ReceivingReconciler(self.ledger, self.state_machine)

    # ========================================================================
    # PLUMBING
    # ========================================================================

    def _authorize(self, user: Actor, action: str, order: Optional[PurchaseOrder] = None) -> None:
        if not self.permissions.can_perform(user, action, order):
            logger.warning(
                f"User {user.user_id} ({user.role}) denied '{action}'",
                extra={"user_id": user.user_id, "action": action,
                       "po_number": order.po_number if order is not None else None},
            )
            raise ForbiddenError(
                f"User {user.user_id} may not {action} purchase orders",
                action=action,
                resource="purchase_order",
            )

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        """Commit on success, roll back on any exception."""
        try:
            yield
            with persistence_guard("Commit"):
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _publish(self, event_type: str, order: PurchaseOrder, **payload) -> None:
        payload.setdefault("po_number", order.po_number)
        payload.setdefault("status", order.status)
        payload.setdefault("version", order.version)
        publish_safely(self.events, event_type, order.id, payload)

    def _change_status(
        self,
        user: Actor,
        order_id: int,
        action: str,
        change: Callable[[PurchaseOrder], Any],
        title: str,
        event_type: str,
        description: Optional[str] = None,
    ) -> PurchaseOrder:
        """Load, authorize, apply one state machine transition and commit it."""
        with self._unit_of_work():
            order = self.store.load(order_id, user.org_id)
            self._authorize(user, action, order)
            read_version = order.version
            old_status = order.status

            change(order)
            self.store.save(order, read_version)

            record_purchasing_event(
                db=self.db,
                purchase_order_id=order.id,
                event_type="status_change",
                title=title,
                description=description,
                old_value=old_status,
                new_value=order.status,
                order_version=order.version,
                user_id=user.user_id,
            )

        logger.info(
            f"PO {order.po_number} {old_status} -> {order.status} by {user.user_id}",
            extra={"po_number": order.po_number, "user_id": user.user_id, "version": order.version},
        )
        self._publish(event_type, order, old_status=old_status, actor_id=user.user_id)
        return order

    # ========================================================================
    # CREATE
    # ========================================================================

    def _build_lines(self, lines: Iterable[Any]) -> List[PurchaseOrderLine]:
        lines = list(lines or [])
        if len(lines) > settings.MAX_PO_LINES:
            raise ValidationError(
                f"A purchase order cannot have more than {settings.MAX_PO_LINES} lines",
                field="lines",
            )

        built: List[PurchaseOrderLine] = []
        seen = set()
        now = datetime.utcnow()
        for i, data in enumerate(lines, start=1):
            idx = i - 1
            product_id = _field(data, "product_id")
            if not product_id or not str(product_id).strip():
                raise ValidationError(
                    f"Line {i}: product_id is required", field=f"lines[{idx}].product_id",
                )
            product_id = str(product_id).strip()
            if product_id in seen:
                raise ValidationError(
                    f"Line {i}: product {product_id} appears more than once",
                    field=f"lines[{idx}].product_id",
                    value=product_id,
                )
            seen.add(product_id)

            qty = _decimal(_field(data, "quantity_ordered"), f"lines[{idx}].quantity_ordered")
            if qty <= 0:
                raise ValidationError(
                    f"Line {i}: quantity must be greater than zero",
                    field=f"lines[{idx}].quantity_ordered",
                    value=qty,
                )
            price = _decimal(_field(data, "unit_price", 0) or 0, f"lines[{idx}].unit_price")
            if price < 0:
                raise ValidationError(
                    f"Line {i}: unit price cannot be negative",
                    field=f"lines[{idx}].unit_price",
                    value=price,
                )

            built.append(PurchaseOrderLine(
                line_number=i,
                product_id=product_id,
                quantity_ordered=qty,
                quantity_received=Decimal("0"),
                unit_price=price,
                line_total=round_amount(qty * price),
                created_at=now,
                updated_at=now,
            ))
        return built

    def create_order(
        self,
        user: Actor,
        supplier_id: str,
        warehouse_id: str,
        lines: Iterable[Any],
        expected_delivery_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> PurchaseOrder:
        """
        Create a Draft purchase order.

        Lines may be empty (a draft to fill in later); such an order cannot be
        submitted. Product ids must be unique within the order.

        Raises:
            ForbiddenError: Actor may not create orders
            ValidationError: Missing supplier/warehouse, bad line, notes too long
        """
        self._authorize(user, permissions.CREATE)

        if not supplier_id or not str(supplier_id).strip():
            raise ValidationError("supplier_id is required", field="supplier_id")
        if not warehouse_id or not str(warehouse_id).strip():
            raise ValidationError("warehouse_id is required", field="warehouse_id")
        if notes and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(
                f"Notes cannot exceed {MAX_NOTES_LENGTH} characters", field="notes",
            )
        built_lines = self._build_lines(lines)

        with self._unit_of_work():
            now = datetime.utcnow()
            po = PurchaseOrder(
                po_number=self.store.next_po_number(user.org_id),
                org_id=user.org_id,
                supplier_id=str(supplier_id).strip(),
                warehouse_id=str(warehouse_id).strip(),
                status=PurchaseOrderStatus.DRAFT.value,
                version=1,
                expected_delivery_date=expected_delivery_date,
                notes=notes,
                created_by=user.user_id,
                created_at=now,
                updated_at=now,
            )
            po.lines.extend(built_lines)
            _calculate_totals(po)
            self.store.add(po)

            record_purchasing_event(
                db=self.db,
                purchase_order_id=po.id,
                event_type="created",
                title="Purchase Order Created",
                description=f"Created for supplier {po.supplier_id} with {len(built_lines)} line(s)",
                new_value=po.status,
                order_version=po.version,
                user_id=user.user_id,
            )

        logger.info(
            f"Created PO {po.po_number} for supplier {po.supplier_id}",
            extra={"po_number": po.po_number, "org_id": po.org_id, "user_id": user.user_id},
        )
        self._publish(event_service.PO_CREATED, po, actor_id=user.user_id)
        return po

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def submit_order(self, user: Actor, order_id: int, expected_version: Optional[int] = None) -> PurchaseOrder:
        return self._change_status(
            user, order_id, permissions.SUBMIT,
            lambda po: self.state_machine.submit(po, user.user_id, expected_version),
            title="Submitted for Approval",
            event_type=event_service.PO_SUBMITTED,
        )

    def approve_order(self, user: Actor, order_id: int, expected_version: Optional[int] = None) -> PurchaseOrder:
        return self._change_status(
            user, order_id, permissions.APPROVE,
            lambda po: self.state_machine.approve(po, user.user_id, expected_version),
            title="Purchase Order Approved",
            event_type=event_service.PO_APPROVED,
        )

    def reject_order(
        self,
        user: Actor,
        order_id: int,
        reason: Optional[str],
        expected_version: Optional[int] = None,
    ) -> PurchaseOrder:
        return self._change_status(
            user, order_id, permissions.REJECT,
            lambda po: self.state_machine.reject(po, user.user_id, reason, expected_version),
            title="Purchase Order Rejected",
            event_type=event_service.PO_REJECTED,
            description=(reason or "").strip() or None,
        )

    def close_order(
        self,
        user: Actor,
        order_id: int,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> PurchaseOrder:
        """Administrative close. Stock already received stays in the ledger."""
        return self._change_status(
            user, order_id, permissions.CLOSE,
            lambda po: self.state_machine.close(po, user.user_id, reason, expected_version),
            title="Purchase Order Closed",
            event_type=event_service.PO_CLOSED,
            description=(reason or "").strip() or None,
        )

    # ========================================================================
    # RECEIVE
    # ========================================================================

    def receive_order(
        self,
        user: Actor,
        order_id: int,
        received_items: Iterable[Any],
        expected_version: Optional[int] = None,
    ) -> ReceiptResult:
        """
        Receive a delivery against the order and add it to warehouse stock.

        Raises:
            ForbiddenError, NotFoundError, InvalidStateError, ValidationError,
            UnknownLineItemError, OverReceiptError: nothing is written
            ConcurrencyConflictError: Another request changed the order first;
                reload and reapply
            LedgerError / PersistenceUnavailableError: nothing is written
        """
        with self._unit_of_work():
            order = self.store.load(order_id, user.org_id)
            self._authorize(user, permissions.RECEIVE, order)
            read_version = order.version
            old_status = order.status

            result = self.reconciler.receive(order, received_items, user.user_id, expected_version)
            self.store.save(order, read_version)

            summary = ", ".join(f"{d.product_id} x{d.received_now}" for d in result.deltas)
            record_purchasing_event(
                db=self.db,
                purchase_order_id=order.id,
                event_type="receipt" if order.status == PurchaseOrderStatus.COMPLETED else "partial_receipt",
                title="Items Received",
                description=summary,
                old_value=old_status,
                new_value=order.status,
                order_version=order.version,
                user_id=user.user_id,
                metadata_key="lines_received",
                metadata_value=str(len(result.deltas)),
            )

        logger.info(
            f"Received {len(result.deltas)} line(s) on PO {order.po_number} by {user.user_id}",
            extra={"po_number": order.po_number, "user_id": user.user_id, "status": order.status},
        )
        deltas = [d.to_dict() for d in result.deltas]
        self._publish(
            event_service.PO_RECEIVED, order,
            old_status=old_status, actor_id=user.user_id, deltas=deltas,
        )
        if order.status == PurchaseOrderStatus.COMPLETED:
            self._publish(event_service.PO_COMPLETED, order, actor_id=user.user_id)
        return result

    # ========================================================================
    # READS
    # ========================================================================

    def get_order(self, user: Actor, order_id: int) -> PurchaseOrder:
        order = self.store.load(order_id, user.org_id)
        self._authorize(user, permissions.VIEW, order)
        return order

    def list_orders(self, user: Actor, filters: Optional[OrderFilter] = None) -> Page[PurchaseOrder]:
        """Newest-first page of the actor's organization's orders."""
        self._authorize(user, permissions.VIEW)
        filters = filters or OrderFilter()
        if filters.page < 1:
            raise ValidationError("page must be at least 1", field="page", value=filters.page)
        if not 1 <= filters.limit <= settings.MAX_PAGE_LIMIT:
            raise ValidationError(
                f"limit must be between 1 and {settings.MAX_PAGE_LIMIT}",
                field="limit",
                value=filters.limit,
            )
        if filters.status and filters.status not in {s.value for s in PurchaseOrderStatus}:
            raise ValidationError(f"Unknown status '{filters.status}'", field="status")
        return self.store.query(user.org_id, filters)

    # ========================================================================
    # AUDIT TRAIL
    # ========================================================================

    def annotate_order(
        self,
        user: Actor,
        order_id: int,
        title: str,
        description: Optional[str] = None,
        event_date: Optional[date] = None,
        metadata_key: Optional[str] = None,
        metadata_value: Optional[str] = None,
    ) -> PurchasingEvent:
        """Append a note to the order's timeline. Allowed in every status."""
        if not title or not title.strip():
            raise ValidationError("Title is required", field="title")

        with self._unit_of_work():
            order = self.store.load(order_id, user.org_id)
            self._authorize(user, permissions.ANNOTATE, order)
            event = record_purchasing_event(
                db=self.db,
                purchase_order_id=order.id,
                event_type="note_added",
                title=title.strip(),
                description=description,
                order_version=order.version,
                event_date=event_date,
                user_id=user.user_id,
                metadata_key=metadata_key,
                metadata_value=metadata_value,
            )
            with persistence_guard("Annotation insert"):
                self.db.flush()

        return event

    def list_order_events(
        self,
        user: Actor,
        order_id: int,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[PurchasingEvent], int]:
        """Timeline for one order, most recent first. Returns (events, total)."""
        order = self.get_order(user, order_id)
        query = self.db.query(PurchasingEvent).filter(
            PurchasingEvent.purchase_order_id == order.id
        ).order_by(desc(PurchasingEvent.created_at), desc(PurchasingEvent.id))

        with persistence_guard("Event query"):
            total = query.count()
            events = query.offset(offset).limit(limit).all()
        return events, total

