"""
API Dependencies

Caller identity, pagination parameters and the per-request service.
"""
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from procureops.core.config import settings
from procureops.db.session import get_db
from procureops.schemas.common import PaginationParams
from procureops.services.event_service import EventSink, LoggingEventSink
from procureops.services.permissions import Actor, PermissionChecker, RolePermissionChecker
from procureops.services.purchase_order_service import PurchaseOrderService


async def get_current_user(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_org_id: Annotated[Optional[str], Header()] = None,
    x_user_role: Annotated[Optional[str], Header()] = None,
) -> Actor:
    """
    Dependency to get the caller from gateway-asserted headers.

    The upstream gateway authenticates the request and forwards
    ``X-User-Id``, ``X-Org-Id`` and ``X-User-Role``.

    Raises:
        HTTPException 401 if the user or organization header is missing
    """
    if not x_user_id or not x_org_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing caller identity headers",
        )
    return Actor(
        user_id=x_user_id.strip(),
        org_id=x_org_id.strip(),
        role=(x_user_role or "viewer").strip().lower(),
    )


def get_permission_checker() -> PermissionChecker:
    return RolePermissionChecker()


def get_event_sink() -> EventSink:
    return LoggingEventSink()


def get_purchase_order_service(
    db: Session = Depends(get_db),
    permission_checker: PermissionChecker = Depends(get_permission_checker),
    event_sink: EventSink = Depends(get_event_sink),
) -> PurchaseOrderService:
    return PurchaseOrderService(db, permission_checker=permission_checker, event_sink=event_sink)


def get_pagination_params(
    page: int = Query(
        default=1,
        ge=1,
        description="Page number (1-based)"
    ),
    limit: Optional[int] = Query(
        default=None,
        ge=1,
        description="Maximum number of records per page"
    ),
) -> PaginationParams:
    """
    Dependency for standardized pagination parameters.

    ``limit`` defaults to DEFAULT_PAGE_LIMIT and is clamped to MAX_PAGE_LIMIT.

    Example:
        @router.get("/purchase-orders")
        async def list_orders(
            pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
        ):
            ...
    """
    if limit is None:
        limit = settings.DEFAULT_PAGE_LIMIT
    return PaginationParams(page=page, limit=min(limit, settings.MAX_PAGE_LIMIT))
