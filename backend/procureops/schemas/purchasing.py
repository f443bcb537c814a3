"""
Purchasing Pydantic Schemas

Covers:
- Purchase Orders
- PO Lines
- Status transitions
- Receiving
- Purchasing events (timeline)
- Stock levels
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from procureops.core.quantity_config import QUANTITY_SCALE


# ============================================================================
# Enums
# ============================================================================

class POStatus(str, Enum):
    """Purchase order status workflow"""
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PARTIALLY_RECEIVED = "PartiallyReceived"
    COMPLETED = "Completed"
    CLOSED = "Closed"


# ============================================================================
# Purchase Order Line Schemas
# ============================================================================

class POLineBase(BaseModel):
    """Base PO line fields"""
    product_id: str = Field(..., min_length=1, max_length=64, description="Product ID")
    quantity_ordered: Decimal = Field(..., gt=0, decimal_places=QUANTITY_SCALE, description="Quantity to order")
    unit_price: Decimal = Field(Decimal("0"), ge=0, decimal_places=QUANTITY_SCALE, description="Price per unit")


class POLineCreate(POLineBase):
    """Create a new PO line"""
    pass


class POLineResponse(POLineBase):
    """PO line response"""
    id: int
    line_number: int
    quantity_received: Decimal
    quantity_remaining: Decimal
    line_total: Decimal
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Purchase Order Schemas
# ============================================================================

class PurchaseOrderBase(BaseModel):
    """Base PO fields"""
    supplier_id: str = Field(..., min_length=1, max_length=64, description="Supplier ID")
    warehouse_id: str = Field(..., min_length=1, max_length=64, description="Receiving warehouse ID")
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)


class PurchaseOrderCreate(PurchaseOrderBase):
    """Create a new PO"""
    lines: List[POLineCreate] = Field(default_factory=list)


class PurchaseOrderListResponse(BaseModel):
    """PO list summary"""
    id: int
    po_number: str
    supplier_id: str
    warehouse_id: str
    status: str
    version: int
    expected_delivery_date: Optional[date] = None
    total_amount: Decimal
    line_count: int = 0
    created_at: datetime

    class Config:
        from_attributes = True


class PurchaseOrderResponse(PurchaseOrderBase):
    """Full PO details"""
    id: int
    po_number: str
    status: str
    version: int
    subtotal: Decimal
    total_amount: Decimal
    last_received_at: Optional[datetime] = None
    created_by: Optional[str] = None
    submitted_by: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    closed_by: Optional[str] = None
    closed_at: Optional[datetime] = None
    close_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    lines: List[POLineResponse] = []

    class Config:
        from_attributes = True


# ============================================================================
# Status Transitions
# ============================================================================

class POTransitionRequest(BaseModel):
    """Submit / approve a PO. expected_version guards against stale reads."""
    expected_version: Optional[int] = Field(None, ge=1)


class PORejectRequest(BaseModel):
    """Reject a submitted PO"""
    reason: str = Field(..., max_length=500)
    expected_version: Optional[int] = Field(None, ge=1)


class POCloseRequest(BaseModel):
    """Administratively close a PO"""
    reason: Optional[str] = Field(None, max_length=500)
    expected_version: Optional[int] = Field(None, ge=1)


# ============================================================================
# Receiving
# ============================================================================

class ReceiveLineItem(BaseModel):
    """Receive a quantity of one product"""
    product_id: str = Field(..., min_length=1, max_length=64)
    received_quantity: Decimal = Field(..., gt=0, decimal_places=QUANTITY_SCALE)


class ReceivePORequest(BaseModel):
    """Receive items from a PO"""
    received_items: List[ReceiveLineItem] = Field(..., min_length=1)
    expected_version: Optional[int] = Field(None, ge=1)


class ReceiveLineDelta(BaseModel):
    """What one receipt did to one line"""
    product_id: str
    line_number: int
    received_now: Decimal
    quantity_received: Decimal
    quantity_ordered: Decimal
    remaining: Decimal
    on_hand: Optional[Decimal] = None

    class Config:
        from_attributes = True


class ReceivePOResponse(BaseModel):
    """Result of receiving"""
    order: PurchaseOrderResponse
    deltas: List[ReceiveLineDelta] = []


# ============================================================================
# Purchasing Events
# ============================================================================

class PurchasingEventCreate(BaseModel):
    """Schema for adding a note to a PO timeline"""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    event_date: Optional[date] = None
    metadata_key: Optional[str] = Field(None, max_length=100)
    metadata_value: Optional[str] = Field(None, max_length=255)


class PurchasingEventResponse(BaseModel):
    """Schema for purchasing event response"""
    id: int
    purchase_order_id: int
    user_id: Optional[str] = None
    event_type: str
    title: str
    description: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    order_version: Optional[int] = None
    event_date: Optional[date] = None
    metadata_key: Optional[str] = None
    metadata_value: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PurchasingEventListResponse(BaseModel):
    """Schema for list of purchasing events"""
    items: List[PurchasingEventResponse]
    total: int


# ============================================================================
# Stock
# ============================================================================

class StockLevelResponse(BaseModel):
    """On-hand quantity for one product in one warehouse"""
    product_id: str
    warehouse_id: str
    on_hand_quantity: Decimal
