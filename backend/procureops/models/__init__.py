"""
Database models
"""
from procureops.models.purchase_order import PurchaseOrder, PurchaseOrderLine
from procureops.models.inventory import StockLevel, InventoryTransaction
from procureops.models.purchasing_event import PurchasingEvent

__all__ = [
    "PurchaseOrder",
    "PurchaseOrderLine",
    "StockLevel",
    "InventoryTransaction",
    "PurchasingEvent",
]
