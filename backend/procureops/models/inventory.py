"""
Inventory models
"""
from sqlalchemy import (
    CheckConstraint, Column, Integer, String, Numeric, DateTime, Text, UniqueConstraint,
)
from datetime import datetime

from procureops.core.quantity_config import QUANTITY_PRECISION, QUANTITY_SCALE
from procureops.db.base import Base


class StockLevel(Base):
    """On-hand quantity for one product in one warehouse.

    Rows are only ever changed through in-database arithmetic
    (see services/stock_ledger.py), never by writing a value read earlier.
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_stock_levels_product_warehouse"),
        CheckConstraint("on_hand_quantity >= 0", name="ck_stock_levels_on_hand_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)

    product_id = Column(String(64), nullable=False, index=True)
    warehouse_id = Column(String(64), nullable=False, index=True)

    on_hand_quantity = Column(Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<StockLevel {self.product_id}@{self.warehouse_id}: {self.on_hand_quantity}>"


class InventoryTransaction(Base):
    """Inventory movement journal - one row per ledger mutation"""
    __tablename__ = "inventory_transactions"

    id = Column(Integer, primary_key=True, index=True)

    product_id = Column(String(64), nullable=False, index=True)
    warehouse_id = Column(String(64), nullable=False, index=True)

    # receipt, issue
    transaction_type = Column(String(50), nullable=False)

    # purchase_order, sales_order, adjustment
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True, index=True)

    # Always positive; direction comes from transaction_type
    quantity = Column(Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), nullable=False)
    cost_per_unit = Column(Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_by = Column(String(100), nullable=True)

    def __repr__(self):
        return f"<InventoryTransaction {self.transaction_type}: {self.quantity}>"
