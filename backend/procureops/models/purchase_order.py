"""
Purchase Order models for purchasing module
"""
from decimal import Decimal
from sqlalchemy import (
    CheckConstraint, Column, Integer, String, DateTime, Text, Numeric, ForeignKey, Date,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime

from procureops.core.quantity_config import QUANTITY_PRECISION, QUANTITY_SCALE
from procureops.db.base import Base


class PurchaseOrder(Base):
    """Purchase Order header model"""
    __tablename__ = "purchase_orders"
    __table_args__ = (
        UniqueConstraint("org_id", "po_number", name="uq_purchase_orders_org_po_number"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # PO Number - auto-generated per org (PO-2026-001)
    po_number = Column(String(50), nullable=False, index=True)

    # Owning organization; every query is scoped by it
    org_id = Column(String(64), nullable=False, index=True)

    # External references (opaque to this module)
    supplier_id = Column(String(64), nullable=False, index=True)
    warehouse_id = Column(String(64), nullable=False, index=True)

    # Status workflow: Draft -> Submitted -> Approved/Rejected
    #   Approved -> PartiallyReceived -> Completed, and Closed from any open state
    status = Column(String(50), default="Draft", nullable=False, index=True)

    # Optimistic concurrency counter, bumped by every transition
    version = Column(Integer, nullable=False, default=1)

    # Dates
    expected_delivery_date = Column(Date, nullable=True)
    last_received_at = Column(DateTime, nullable=True)

    # Financials (recomputed from lines, never edited directly)
    subtotal = Column(Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), default=0, nullable=False)
    total_amount = Column(Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), default=0, nullable=False)

    # Notes
    notes = Column(Text, nullable=True)

    # Audit
    created_by = Column(String(100), nullable=True)
    submitted_by = Column(String(100), nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_by = Column(String(100), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    closed_by = Column(String(100), nullable=True)
    closed_at = Column(DateTime, nullable=True)
    close_reason = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    lines = relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.line_number",
    )

    # The application sets the next version itself; SQLAlchemy still adds
    # "WHERE version = <loaded>" to every UPDATE and raises StaleDataError on a miss.
    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def line_for_product(self, product_id: str):
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    @property
    def is_fully_received(self) -> bool:
        return bool(self.lines) and all(line.is_fully_received for line in self.lines)

    def __repr__(self):
        return f"<PurchaseOrder {self.po_number}: {self.status} v{self.version}>"


class PurchaseOrderLine(Base):
    """Purchase Order line item model"""
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        UniqueConstraint("purchase_order_id", "product_id", name="uq_po_lines_order_product"),
        CheckConstraint("quantity_ordered > 0", name="ck_po_lines_quantity_ordered_positive"),
        CheckConstraint("unit_price >= 0", name="ck_po_lines_unit_price_non_negative"),
        CheckConstraint(
            "quantity_received >= 0 AND quantity_received <= quantity_ordered",
            name="ck_po_lines_quantity_received_bounds",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Parent PO
    purchase_order_id = Column(Integer, ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False)

    # Product reference (opaque id)
    product_id = Column(String(64), nullable=False)

    # Line number for ordering
    line_number = Column(Integer, nullable=False)

    # Quantities
    quantity_ordered = Column(Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), nullable=False)
    quantity_received = Column(Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), default=0, nullable=False)

    # Pricing
    unit_price = Column(Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), nullable=False)
    line_total = Column(Numeric(QUANTITY_PRECISION, QUANTITY_SCALE), nullable=False)  # quantity * unit_price

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    purchase_order = relationship("PurchaseOrder", back_populates="lines")

    @property
    def quantity_remaining(self) -> Decimal:
        return Decimal(str(self.quantity_ordered)) - Decimal(str(self.quantity_received or 0))

    @property
    def is_fully_received(self) -> bool:
        return self.quantity_remaining <= 0

    def __repr__(self):
        return f"<PurchaseOrderLine {self.line_number}: {self.quantity_received}/{self.quantity_ordered}>"
