"""
API v1 Router - ProcureOps
"""
from fastapi import APIRouter
from procureops.api.v1.endpoints import (
    purchase_orders,
    stock,
)
from procureops.schemas.common import ErrorResponse

# Error envelope rendered by the exception handlers in procureops.main
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    403: {"model": ErrorResponse, "description": "Caller lacks permission"},
    404: {"model": ErrorResponse, "description": "Order not found in the caller's organization"},
    409: {"model": ErrorResponse, "description": "Invalid state or concurrent modification"},
    422: {"model": ErrorResponse, "description": "Business rule violated (unknown line, over-receipt)"},
    503: {"model": ErrorResponse, "description": "Database unavailable, retry later"},
}

router = APIRouter()

# Purchase Orders (lifecycle, receiving, timeline)
router.include_router(
    purchase_orders.router,
    prefix="/purchase-orders",
    tags=["purchase-orders"],
    responses=ERROR_RESPONSES,
)

# Stock levels (ledger reads)
router.include_router(
    stock.router,
    prefix="/stock-levels",
    tags=["stock"],
    responses={503: ERROR_RESPONSES[503]},
)
