"""
Stock Ledger

On-hand quantity per (product, warehouse). Several modules move stock
(receiving here, sales and adjustments elsewhere), so every change is a
single in-database arithmetic statement:

- increment: INSERT ... ON CONFLICT DO UPDATE SET on_hand = on_hand + :qty
- decrement: UPDATE ... SET on_hand = on_hand - :qty WHERE on_hand >= :qty

Concurrent increments on the same key therefore serialize on the row lock in
the database instead of racing through a read-modify-write in Python.
Each mutation also journals an InventoryTransaction. Nothing is committed
here; the caller's transaction decides.
"""
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from procureops.core.quantity_config import QUANTITY_SCALE, fits_scale
from procureops.exceptions import (
    InsufficientStockError,
    LedgerError,
    ValidationError,
)
from procureops.logging_config import get_logger
from procureops.models.inventory import InventoryTransaction, StockLevel
from procureops.services.order_store import persistence_guard

logger = get_logger(__name__)

_stock = StockLevel.__table__

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _positive_quantity(quantity) -> Decimal:
    try:
        qty = Decimal(str(quantity))
    except (InvalidOperation, ValueError):
        raise ValidationError("Quantity must be a number", field="quantity", value=quantity)
    if not qty.is_finite() or qty <= 0:
        raise ValidationError("Quantity must be greater than zero", field="quantity", value=quantity)
    if not fits_scale(qty):
        raise ValidationError(
            f"Quantity cannot have more than {QUANTITY_SCALE} decimal places",
            field="quantity",
            value=quantity,
        )
    return qty


class StockLedger:
    """Atomic on-hand stock counters backed by the stock_levels table."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _ledger_errors(self, operation: str, product_id: str, warehouse_id: str) -> Iterator[None]:
        """Timeouts become PersistenceUnavailableError; other DB failures LedgerError."""
        try:
            with persistence_guard(operation):
                yield
        except SQLAlchemyError as e:
            logger.error(
                f"{operation} failed for {product_id}@{warehouse_id}: {e}",
                extra={"product_id": product_id, "warehouse_id": warehouse_id},
            )
            raise LedgerError(
                f"{operation} failed",
                product_id=product_id,
                warehouse_id=warehouse_id,
            ) from e

    def _upsert_insert(self):
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise LedgerError(f"Atomic stock upsert is not supported on '{dialect}'")
        return insert

    def on_hand(self, product_id: str, warehouse_id: str) -> Decimal:
        """Current on-hand quantity; zero when the key has never been stocked."""
        with persistence_guard("Stock read"):
            value = self.db.execute(
                select(_stock.c.on_hand_quantity).where(
                    _stock.c.product_id == product_id,
                    _stock.c.warehouse_id == warehouse_id,
                )
            ).scalar()
        return Decimal(str(value)) if value is not None else Decimal("0")

    def increment(
        self,
        product_id: str,
        warehouse_id: str,
        quantity,
        *,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        cost_per_unit: Optional[Decimal] = None,
        created_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Decimal:
        """
        Add quantity to on-hand stock, creating the row on first receipt.

        Returns:
            On-hand quantity after the increment (as seen by this transaction)

        Raises:
            ValidationError: quantity not > 0
            LedgerError: the database rejected the change
            PersistenceUnavailableError: database unreachable or timed out
        """
        qty = _positive_quantity(quantity)
        now = datetime.utcnow()
        insert = self._upsert_insert()

        stmt = insert(_stock).values(
            product_id=product_id,
            warehouse_id=warehouse_id,
            on_hand_quantity=qty,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["product_id", "warehouse_id"],
            set_={
                "on_hand_quantity": _stock.c.on_hand_quantity + stmt.excluded.on_hand_quantity,
                "updated_at": now,
            },
        )

        with self._ledger_errors("Stock increment", product_id, warehouse_id):
            self.db.execute(stmt)
            self._journal(
                "receipt", product_id, warehouse_id, qty,
                reference_type, reference_id, cost_per_unit, created_by, notes,
            )
        on_hand = self.on_hand(product_id, warehouse_id)

        logger.debug(
            f"Stock +{qty} {product_id}@{warehouse_id} -> {on_hand}",
            extra={"product_id": product_id, "warehouse_id": warehouse_id},
        )
        return on_hand

    def decrement(
        self,
        product_id: str,
        warehouse_id: str,
        quantity,
        *,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        created_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Decimal:
        """
        Remove quantity from on-hand stock; never goes below zero.

        Raises:
            ValidationError: quantity not > 0
            InsufficientStockError: not enough on hand (nothing changed)
            LedgerError: the database rejected the change
        """
        qty = _positive_quantity(quantity)

        stmt = (
            update(_stock)
            .where(
                _stock.c.product_id == product_id,
                _stock.c.warehouse_id == warehouse_id,
                _stock.c.on_hand_quantity >= qty,
            )
            .values(
                on_hand_quantity=_stock.c.on_hand_quantity - qty,
                updated_at=datetime.utcnow(),
            )
        )

        with self._ledger_errors("Stock decrement", product_id, warehouse_id):
            result = self.db.execute(stmt)

        if result.rowcount == 0:
            raise InsufficientStockError(
                product_id,
                warehouse_id=warehouse_id,
                requested=qty,
                available=self.on_hand(product_id, warehouse_id),
            )

        with self._ledger_errors("Stock decrement", product_id, warehouse_id):
            self._journal(
                "issue", product_id, warehouse_id, qty,
                reference_type, reference_id, None, created_by, notes,
            )
        return self.on_hand(product_id, warehouse_id)

    def _journal(
        self,
        transaction_type: str,
        product_id: str,
        warehouse_id: str,
        quantity: Decimal,
        reference_type: Optional[str],
        reference_id: Optional[int],
        cost_per_unit: Optional[Decimal],
        created_by: Optional[str],
        notes: Optional[str],
    ) -> InventoryTransaction:
        transaction = InventoryTransaction(
            product_id=product_id,
            warehouse_id=warehouse_id,
            transaction_type=transaction_type,
            reference_type=reference_type,
            reference_id=reference_id,
            quantity=quantity,
            cost_per_unit=cost_per_unit,
            notes=notes,
            created_by=created_by,
            created_at=datetime.utcnow(),
        )
        self.db.add(transaction)
        return transaction
