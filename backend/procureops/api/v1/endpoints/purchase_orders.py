"""
Purchase Orders API Endpoints
"""
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from procureops.api.v1.deps import (
    get_current_user,
    get_pagination_params,
    get_purchase_order_service,
)
from procureops.logging_config import get_logger
from procureops.models.purchase_order import PurchaseOrder
from procureops.schemas.common import ListResponse, PaginationMeta, PaginationParams
from procureops.schemas.purchasing import (
    POCloseRequest,
    PORejectRequest,
    POStatus,
    POTransitionRequest,
    PurchaseOrderCreate,
    PurchaseOrderListResponse,
    PurchaseOrderResponse,
    PurchasingEventCreate,
    PurchasingEventListResponse,
    PurchasingEventResponse,
    ReceiveLineDelta,
    ReceivePORequest,
    ReceivePOResponse,
)
from procureops.services.order_store import OrderFilter
from procureops.services.permissions import Actor
from procureops.services.purchase_order_service import PurchaseOrderService

router = APIRouter()
logger = get_logger(__name__)

CurrentUser = Annotated[Actor, Depends(get_current_user)]
Service = Annotated[PurchaseOrderService, Depends(get_purchase_order_service)]


def _to_response(po: PurchaseOrder) -> PurchaseOrderResponse:
    return PurchaseOrderResponse.model_validate(po)


# ============================================================================
# Purchase Order CRUD
# ============================================================================

@router.get("/", response_model=ListResponse[PurchaseOrderListResponse])
async def list_purchase_orders(
    pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
    current_user: CurrentUser,
    service: Service,
    status: Optional[POStatus] = Query(None, description="Filter by status"),
    supplier_id: Optional[str] = Query(None, description="Filter by supplier ID"),
    warehouse_id: Optional[str] = Query(None, description="Filter by warehouse ID"),
    search: Optional[str] = Query(None, max_length=100, description="Search PO number and notes"),
    start_date: Optional[datetime] = Query(None, description="Created on or after"),
    end_date: Optional[datetime] = Query(None, description="Created on or before"),
):
    """
    List purchase orders with pagination, newest first

    - **status**: Filter by status
    - **supplier_id** / **warehouse_id**: Filter by external reference
    - **search**: Search by PO number or notes
    - **start_date** / **end_date**: Creation date range
    - **page**: Page number (default: 1)
    - **limit**: Records per page (default: 10, max: 100)
    """
    page = service.list_orders(
        current_user,
        OrderFilter(
            status=status.value if status else None,
            supplier_id=supplier_id,
            warehouse_id=warehouse_id,
            search=search,
            created_from=start_date,
            created_to=end_date,
            page=pagination.page,
            limit=pagination.limit,
        ),
    )

    result = []
    for po in page.items:
        result.append(PurchaseOrderListResponse(
            id=po.id,
            po_number=po.po_number,
            supplier_id=po.supplier_id,
            warehouse_id=po.warehouse_id,
            status=po.status,
            version=po.version,
            expected_delivery_date=po.expected_delivery_date,
            total_amount=po.total_amount,
            line_count=len(po.lines),
            created_at=po.created_at,
        ))

    return ListResponse(
        items=result,
        pagination=PaginationMeta(
            total=page.total,
            page=page.page,
            limit=page.limit,
            total_pages=page.total_pages,
            returned=len(result),
        )
    )


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order(po_id: int, current_user: CurrentUser, service: Service):
    """Get purchase order details by ID"""
    return _to_response(service.get_order(current_user, po_id))


@router.post("/", response_model=PurchaseOrderResponse, status_code=201)
async def create_purchase_order(
    request: PurchaseOrderCreate,
    current_user: CurrentUser,
    service: Service,
):
    """Create a new purchase order in Draft status"""
    po = service.create_order(
        current_user,
        supplier_id=request.supplier_id,
        warehouse_id=request.warehouse_id,
        lines=request.lines,
        expected_delivery_date=request.expected_delivery_date,
        notes=request.notes,
    )
    return _to_response(po)


# ============================================================================
# Status Transitions
# ============================================================================

@router.post("/{po_id}/submit", response_model=PurchaseOrderResponse)
async def submit_purchase_order(
    po_id: int,
    current_user: CurrentUser,
    service: Service,
    request: Optional[POTransitionRequest] = None,
):
    """Submit a draft purchase order for approval"""
    expected_version = request.expected_version if request else None
    return _to_response(service.submit_order(current_user, po_id, expected_version))


@router.post("/{po_id}/approve", response_model=PurchaseOrderResponse)
async def approve_purchase_order(
    po_id: int,
    current_user: CurrentUser,
    service: Service,
    request: Optional[POTransitionRequest] = None,
):
    """Approve a submitted purchase order"""
    expected_version = request.expected_version if request else None
    return _to_response(service.approve_order(current_user, po_id, expected_version))


@router.post("/{po_id}/reject", response_model=PurchaseOrderResponse)
async def reject_purchase_order(
    po_id: int,
    request: PORejectRequest,
    current_user: CurrentUser,
    service: Service,
):
    """Reject a submitted purchase order (reason required)"""
    return _to_response(
        service.reject_order(current_user, po_id, request.reason, request.expected_version)
    )


@router.post("/{po_id}/close", response_model=PurchaseOrderResponse)
async def close_purchase_order(
    po_id: int,
    current_user: CurrentUser,
    service: Service,
    request: Optional[POCloseRequest] = None,
):
    """
    Administratively close a purchase order from any non-terminal status.

    Stock already received against the order stays in the warehouse.
    """
    reason = request.reason if request else None
    expected_version = request.expected_version if request else None
    return _to_response(service.close_order(current_user, po_id, reason, expected_version))


# ============================================================================
# Receiving
# ============================================================================

@router.post("/{po_id}/receive", response_model=ReceivePOResponse)
async def receive_purchase_order(
    po_id: int,
    request: ReceivePORequest,
    current_user: CurrentUser,
    service: Service,
):
    """
    Receive items from a purchase order

    All items are validated before anything is applied: one unknown product
    or over-received line rejects the whole delivery. On success every line
    and the warehouse stock are updated together and the status becomes
    PartiallyReceived or Completed.
    """
    result = service.receive_order(
        current_user, po_id, request.received_items, request.expected_version
    )
    return ReceivePOResponse(
        order=_to_response(result.order),
        deltas=[ReceiveLineDelta.model_validate(d) for d in result.deltas],
    )


# ============================================================================
# Purchasing Events
# ============================================================================

@router.get("/{po_id}/events", response_model=PurchasingEventListResponse)
async def list_po_events(
    po_id: int,
    current_user: CurrentUser,
    service: Service,
    limit: int = Query(default=50, ge=1, le=200, description="Max events to return"),
    offset: int = Query(default=0, ge=0, description="Offset for pagination"),
):
    """
    List activity events for a purchase order

    Returns a timeline of all events (status changes, receipts, notes)
    ordered by most recent first.
    """
    events, total = service.list_order_events(current_user, po_id, limit=limit, offset=offset)
    return PurchasingEventListResponse(
        items=[PurchasingEventResponse.model_validate(e) for e in events],
        total=total,
    )


@router.post("/{po_id}/events", response_model=PurchasingEventResponse, status_code=201)
async def add_po_event(
    po_id: int,
    request: PurchasingEventCreate,
    current_user: CurrentUser,
    service: Service,
):
    """
    Add a note to a purchase order's timeline

    Notes can be added in any status, including Rejected, Completed and Closed.
    Status changes and receipts are recorded automatically by their endpoints.
    """
    event = service.annotate_order(
        current_user,
        po_id,
        title=request.title,
        description=request.description,
        event_date=request.event_date,
        metadata_key=request.metadata_key,
        metadata_value=request.metadata_value,
    )
    return PurchasingEventResponse.model_validate(event)
