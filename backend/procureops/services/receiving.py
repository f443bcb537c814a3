"""
Receiving Reconciler

Applies a delivery ({product_id, received_quantity} entries) to an approved
purchase order in two phases:

1. Validate every entry against the order lines. Nothing is touched yet, so a
   bad eighth line in a batch of ten leaves the order exactly as it was.
2. Apply, in product_id order: bump each line's quantity_received and
   increment the stock ledger for (product_id, order.warehouse_id), then
   derive the new status.

If the ledger fails part-way through phase 2 the in-memory line quantities
are put back and the error propagates; the caller rolls back the database
transaction, which discards the ledger increments already issued.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from procureops.core.quantity_config import QUANTITY_SCALE, fits_scale
from procureops.exceptions import (
    OverReceiptError,
    UnknownLineItemError,
    ValidationError,
)
from procureops.logging_config import get_logger
from procureops.models.purchase_order import PurchaseOrder, PurchaseOrderLine
from procureops.services.po_state_machine import PurchaseOrderStateMachine
from procureops.services.stock_ledger import StockLedger

logger = get_logger(__name__)


@dataclass
class ReceivedItem:
    product_id: str
    received_quantity: Decimal


@dataclass
class LineDelta:
    """What one receipt did to one line."""
    product_id: str
    line_number: int
    received_now: Decimal
    quantity_received: Decimal
    quantity_ordered: Decimal
    remaining: Decimal
    on_hand: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "line_number": self.line_number,
            "received_now": str(self.received_now),
            "quantity_received": str(self.quantity_received),
            "quantity_ordered": str(self.quantity_ordered),
            "remaining": str(self.remaining),
            "on_hand": str(self.on_hand) if self.on_hand is not None else None,
        }


@dataclass
class ReceiptResult:
    order: PurchaseOrder
    deltas: List[LineDelta] = field(default_factory=list)


def _field(item: Any, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _as_decimal(value) -> Decimal:
    return Decimal(str(value or 0))


class ReceivingReconciler:
    """
    Receives deliveries against purchase order lines.

    Args:
        ledger: Stock ledger bound to the same session as the order
        state_machine: Derives the post-receipt status
    """

    def __init__(self, ledger: StockLedger, state_machine: Optional[PurchaseOrderStateMachine] = None):
        self.ledger = ledger
        self.state_machine = state_machine or PurchaseOrderStateMachine()

    def receive(
        self,
        order: PurchaseOrder,
        received_items: Iterable[Any],
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> ReceiptResult:
        """
        Receive a batch of items, all or nothing.

        Entries may be ReceivedItem instances, pydantic models or dicts with
        ``product_id`` and ``received_quantity``. The same product appearing
        twice in one batch counts as one receipt of the summed quantity.

        Raises:
            ConcurrencyConflictError: expected_version is stale
            InvalidStateError: Order is not Approved or PartiallyReceived
            ValidationError: Empty batch, a quantity that is not > 0, or one
                with more decimal places than the columns store
            UnknownLineItemError: A product is not on the order
            OverReceiptError: A line would exceed its ordered quantity
            LedgerError / PersistenceUnavailableError: from the stock ledger
        """
        self.state_machine.check_version(order, expected_version)
        self.state_machine.ensure_receivable(order)

        planned = self._validate(order, list(received_items or []))
        deltas = self._apply(order, planned, actor_id)
        self.state_machine.record_receipt(order)

        logger.info(
            f"Received {len(deltas)} line(s) on PO {order.po_number}, status now {order.status}",
            extra={"po_number": order.po_number, "version": order.version},
        )
        return ReceiptResult(order=order, deltas=deltas)

    # ========================================================================
    # PHASE 1: VALIDATE
    # ========================================================================

    def _validate(self, order: PurchaseOrder, items: List[Any]) -> List[tuple]:
        if not items:
            raise ValidationError("At least one received item is required", field="received_items")

        totals: Dict[str, Decimal] = {}
        for idx, item in enumerate(items):
            product_id = _field(item, "product_id")
            if not product_id:
                raise ValidationError(
                    f"Item {idx}: product_id is required",
                    field=f"received_items[{idx}].product_id",
                )
            raw_qty = _field(item, "received_quantity")
            try:
                qty = Decimal(str(raw_qty))
            except (InvalidOperation, ValueError):
                qty = None
            if qty is None or not qty.is_finite() or qty <= 0:
                raise ValidationError(
                    f"Item {idx}: received quantity must be greater than zero",
                    field=f"received_items[{idx}].received_quantity",
                    value=raw_qty,
                )
            if not fits_scale(qty):
                raise ValidationError(
                    f"Item {idx}: received quantity cannot have more than {QUANTITY_SCALE} decimal places",
                    field=f"received_items[{idx}].received_quantity",
                    value=raw_qty,
                )
            totals[product_id] = totals.get(product_id, Decimal("0")) + qty

        planned = []
        for product_id, qty in totals.items():
            line = order.line_for_product(product_id)
            if line is None:
                raise UnknownLineItemError(product_id, po_number=order.po_number)

            already = _as_decimal(line.quantity_received)
            ordered = _as_decimal(line.quantity_ordered)
            if already + qty > ordered:
                raise OverReceiptError(
                    product_id,
                    line_number=line.line_number,
                    ordered=ordered,
                    already_received=already,
                    attempted=qty,
                )
            planned.append((line, qty))

        # Stock rows are locked in product order whatever order the delivery lists them in
        planned.sort(key=lambda entry: entry[0].product_id)
        return planned

    # ========================================================================
    # PHASE 2: APPLY
    # ========================================================================

    def _apply(self, order: PurchaseOrder, planned: List[tuple], actor_id: Optional[str]) -> List[LineDelta]:
        original = [line.quantity_received for line, _ in planned]
        deltas: List[LineDelta] = []

        try:
            for line, qty in planned:
                line.quantity_received = _as_decimal(line.quantity_received) + qty
                on_hand = self.ledger.increment(
                    line.product_id,
                    order.warehouse_id,
                    qty,
                    reference_type="purchase_order",
                    reference_id=order.id,
                    cost_per_unit=line.unit_price,
                    created_by=actor_id,
                    notes=f"Received on {order.po_number}",
                )
                deltas.append(self._delta(line, qty, on_hand))
        except Exception:
            self._restore(planned, original)
            logger.warning(
                f"Receipt on PO {order.po_number} aborted; line quantities restored",
                extra={"po_number": order.po_number},
            )
            raise

        return deltas

    @staticmethod
    def _restore(planned: List[tuple], original: List[Any]) -> None:
        for (line, _), quantity in zip(planned, original):
            line.quantity_received = quantity

    @staticmethod
    def _delta(line: PurchaseOrderLine, qty: Decimal, on_hand: Decimal) -> LineDelta:
        received = _as_decimal(line.quantity_received)
        ordered = _as_decimal(line.quantity_ordered)
        return LineDelta(
            product_id=line.product_id,
            line_number=line.line_number,
            received_now=qty,
            quantity_received=received,
            quantity_ordered=ordered,
            remaining=ordered - received,
            on_hand=on_hand,
        )
