"""
Purchasing Event Model

Tracks activity history for purchase orders - status changes, receipts, notes.
Provides the audit trail that stays writable after an order reaches a
terminal status.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Date
from sqlalchemy.orm import relationship
from datetime import datetime

from procureops.db.base import Base


class PurchasingEvent(Base):
    """Purchasing Event - Activity log entry for a purchase order"""
    __tablename__ = "purchasing_events"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Foreign Keys
    purchase_order_id = Column(
        Integer,
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id = Column(String(100), nullable=True, index=True)

    # Event Type
    # created, status_change, receipt, note_added
    event_type = Column(String(50), nullable=False, index=True)

    # Event Details
    title = Column(String(255), nullable=False)  # Short description
    description = Column(Text, nullable=True)  # Detailed description

    # For status changes
    old_value = Column(String(100), nullable=True)  # Previous status
    new_value = Column(String(100), nullable=True)  # New status

    # Order version the event produced (null for annotations)
    order_version = Column(Integer, nullable=True)

    # Event date - when the event actually occurred
    event_date = Column(Date, nullable=True, index=True)

    # Metadata (key=value for additional context)
    # Examples: lines_received=2, total_quantity=130
    metadata_key = Column(String(100), nullable=True)
    metadata_value = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    purchase_order = relationship("PurchaseOrder", backref="events")

    def __repr__(self):
        return f"<PurchasingEvent {self.event_type} for PO-{self.purchase_order_id}>"
