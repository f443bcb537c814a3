"""
Stock Level API Endpoints

Read-only view of the stock ledger. Stock is added by receiving purchase
orders; other modules decrement it through StockLedger directly.
"""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from procureops.api.v1.deps import get_current_user
from procureops.db.session import get_db
from procureops.schemas.purchasing import StockLevelResponse
from procureops.services.permissions import Actor
from procureops.services.stock_ledger import StockLedger

router = APIRouter()


@router.get("/{warehouse_id}/{product_id}", response_model=StockLevelResponse)
async def get_stock_level(
    warehouse_id: str,
    product_id: str,
    current_user: Annotated[Actor, Depends(get_current_user)],
    db: Session = Depends(get_db),
):
    """On-hand quantity for a product in a warehouse (zero if never stocked)"""
    on_hand = StockLedger(db).on_hand(product_id, warehouse_id)
    return StockLevelResponse(
        product_id=product_id,
        warehouse_id=warehouse_id,
        on_hand_quantity=on_hand,
    )
