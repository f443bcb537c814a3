"""
Test data factories for ProcureOps.

Provides functions to create test entities with sensible defaults.

Usage:
    from tests.factories import create_test_purchase_order

    def test_something(db_session):
        po = create_test_purchase_order(
            db_session,
            lines=[{"product_id": "P1", "quantity": 100}],
            status="Approved",
        )
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from procureops.models.inventory import StockLevel
from procureops.exceptions import LedgerError
from procureops.models.purchase_order import PurchaseOrder, PurchaseOrderLine
from procureops.services.permissions import Actor
from procureops.services.stock_ledger import StockLedger


# =============================================================================
# SEQUENCE MANAGEMENT
# =============================================================================

_sequences: Dict[str, int] = {}


def reset_sequences():
    """Reset all sequences. Call between tests for predictable numbers."""
    global _sequences
    _sequences = {}


def _next(name: str) -> int:
    """Get next sequence number for a given entity type."""
    _sequences[name] = _sequences.get(name, 0) + 1
    return _sequences[name]


def _code(prefix: str, name: str) -> str:
    """Generate a code like PO-TEST-0001."""
    return f"{prefix}-TEST-{_next(name):04d}"


# =============================================================================
# PURCHASE ORDER FACTORIES
# =============================================================================

def build_test_purchase_order(
    lines: Optional[List[Dict[str, Any]]] = None,
    status: str = "Draft",
    **overrides
) -> PurchaseOrder:
    """
    Build a purchase order in memory (not added to any session).

    Args:
        lines: List of {"product_id": str, "quantity": number,
            "unit_price": number, "received": number}
        status: Initial status
        **overrides: Additional field overrides

    Returns:
        Transient PurchaseOrder with lines
    """
    now = datetime.utcnow()
    po = PurchaseOrder(
        po_number=overrides.pop("po_number", _code("PO", "purchase_order")),
        org_id=overrides.pop("org_id", "org-1"),
        supplier_id=overrides.pop("supplier_id", "SUP-1"),
        warehouse_id=overrides.pop("warehouse_id", "WH-1"),
        status=status,
        version=overrides.pop("version", 1),
        created_by=overrides.pop("created_by", "admin-1"),
        created_at=overrides.pop("created_at", now),
        updated_at=now,
        **overrides
    )

    subtotal = Decimal("0")
    for i, line_data in enumerate(lines or [], 1):
        qty = Decimal(str(line_data.get("quantity", 1)))
        price = Decimal(str(line_data.get("unit_price", 10)))
        po.lines.append(PurchaseOrderLine(
            product_id=line_data["product_id"],
            line_number=i,
            quantity_ordered=qty,
            quantity_received=Decimal(str(line_data.get("received", 0))),
            unit_price=price,
            line_total=qty * price,
            created_at=now,
            updated_at=now,
        ))
        subtotal += qty * price

    po.subtotal = subtotal
    po.total_amount = subtotal
    return po


def create_test_purchase_order(
    db: Session,
    lines: Optional[List[Dict[str, Any]]] = None,
    status: str = "Draft",
    **overrides
) -> PurchaseOrder:
    """
    Create and commit a test purchase order.

    Committed so that a service call rolling back its own transaction
    does not take the fixture data with it.
    """
    po = build_test_purchase_order(lines=lines, status=status, **overrides)
    db.add(po)
    db.commit()
    db.refresh(po)
    return po


def create_two_line_order(db: Session, status: str = "Approved", **overrides) -> PurchaseOrder:
    """P1 x100 and P2 x50 - the canonical receiving scenario."""
    return create_test_purchase_order(
        db,
        lines=[
            {"product_id": "P1", "quantity": 100, "unit_price": "2.50"},
            {"product_id": "P2", "quantity": 50, "unit_price": "4.00"},
        ],
        status=status,
        **overrides
    )


# =============================================================================
# STOCK FACTORIES
# =============================================================================

def create_test_stock(
    db: Session,
    product_id: str,
    warehouse_id: str = "WH-1",
    quantity: Any = 0,
) -> StockLevel:
    """Seed a stock_levels row directly (tests only; the ledger never does this)."""
    now = datetime.utcnow()
    level = StockLevel(
        product_id=product_id,
        warehouse_id=warehouse_id,
        on_hand_quantity=Decimal(str(quantity)),
        created_at=now,
        updated_at=now,
    )
    db.add(level)
    db.commit()
    return level


# =============================================================================
# SERVICE COLLABORATORS
# =============================================================================

class RecordingEventSink:
    """Keeps published events in memory."""

    def __init__(self):
        self.events: List[Tuple[str, int, Dict[str, Any]]] = []

    def publish(self, event_type: str, order_id: int, payload: Dict[str, Any]) -> None:
        self.events.append((event_type, order_id, payload))

    def types(self) -> List[str]:
        return [event_type for event_type, _, _ in self.events]


class AllowAllPermissionChecker:
    """Grants everything inside the caller's org."""

    def can_perform(self, user: Actor, action: str, order: Optional[PurchaseOrder]) -> bool:
        return order is None or order.org_id == user.org_id


class RecordingLedger(StockLedger):
    """Stock ledger that remembers the order of its increments."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.incremented: List[str] = []

    def increment(self, product_id, warehouse_id, quantity, **kwargs):
        self.incremented.append(product_id)
        return super().increment(product_id, warehouse_id, quantity, **kwargs)


class FailingLedger(StockLedger):
    """Ledger that fails on the Nth increment"""

    def __init__(self, db: Session, fail_on: int):
        super().__init__(db)
        self.calls = 0
        self.fail_on = fail_on

    def increment(self, product_id, warehouse_id, quantity, **kwargs):
        self.calls += 1
        if self.calls == self.fail_on:
            raise LedgerError("Stock increment failed", product_id=product_id, warehouse_id=warehouse_id)
        return super().increment(product_id, warehouse_id, quantity, **kwargs)
