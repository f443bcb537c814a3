"""
Order Store

Persistence for purchase order documents (header + lines):

- load(order_id, org_id): fresh copy scoped to one organization
- save(order, expected_version): optimistic write, rejects stale versions
- query(org_id, filters): filtered, paginated listing

The store flushes but never commits; the caller owns the transaction so an
order write and its ledger movements commit (or roll back) together.
"""
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, Iterator, List, Optional, TypeVar

from sqlalchemy import desc, inspect, or_
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from procureops.core.config import settings
from procureops.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    PersistenceUnavailableError,
)
from procureops.logging_config import get_logger
from procureops.models.purchase_order import PurchaseOrder

logger = get_logger(__name__)

T = TypeVar("T")


@contextmanager
def persistence_guard(operation: str) -> Iterator[None]:
    """Translate connection loss and timeouts into PersistenceUnavailableError."""
    try:
        yield
    except (OperationalError, PoolTimeoutError) as e:
        logger.error(f"{operation} failed: {e}", extra={"operation": operation})
        raise PersistenceUnavailableError(
            operation,
            retry_after=settings.DB_POOL_TIMEOUT,
            details={"reason": type(getattr(e, "orig", e) or e).__name__},
        ) from e


@dataclass
class OrderFilter:
    """Listing filters. ``page`` is 1-based."""
    status: Optional[str] = None
    supplier_id: Optional[str] = None
    warehouse_id: Optional[str] = None
    search: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    page: int = 1
    limit: int = field(default_factory=lambda: settings.DEFAULT_PAGE_LIMIT)


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def loaded_version(order: PurchaseOrder) -> int:
    """Version the order had when it was read, even after a transition bumped it."""
    history = inspect(order).attrs.version.history
    if history.deleted:
        return history.deleted[0]
    return order.version


class OrderStore:
    """SQLAlchemy-backed purchase order persistence."""

    def __init__(self, db: Session):
        self.db = db

    def load(self, order_id: int, org_id: str) -> PurchaseOrder:
        """
        Load an order with its lines, bypassing anything cached in the session.

        Orders from another organization are reported as not found.

        Raises:
            NotFoundError: No such order in this organization
            PersistenceUnavailableError: Store unreachable or timed out
        """
        with persistence_guard("Order load"):
            order = (
                self.db.query(PurchaseOrder)
                .options(selectinload(PurchaseOrder.lines))
                .populate_existing()
                .filter(PurchaseOrder.id == order_id, PurchaseOrder.org_id == org_id)
                .first()
            )
        if order is None:
            raise NotFoundError("Purchase order", order_id)
        return order

    def add(self, order: PurchaseOrder) -> PurchaseOrder:
        """
        Insert a new order.

        Raises:
            ConcurrencyConflictError: PO number taken by a concurrent insert
        """
        try:
            with persistence_guard("Order insert"):
                self.db.add(order)
                self.db.flush()
        except IntegrityError as e:
            raise ConcurrencyConflictError(
                f"Purchase order number {order.po_number} was taken concurrently",
                details={"po_number": order.po_number},
            ) from e
        return order

    def save(self, order: PurchaseOrder, expected_version: int) -> PurchaseOrder:
        """
        Write a modified order if the stored version still equals expected_version.

        Raises:
            ConcurrencyConflictError: Order was read at another version, or was
                changed by someone else since it was read
            PersistenceUnavailableError: Store unreachable or timed out
        """
        read_version = loaded_version(order)
        if read_version != expected_version:
            raise ConcurrencyConflictError(
                f"Purchase order {order.po_number} is at version {read_version}, "
                f"expected {expected_version}",
                expected_version=expected_version,
                current_version=read_version,
            )

        try:
            with persistence_guard("Order save"):
                self.db.flush()
        except StaleDataError as e:
            logger.info(
                f"Stale write rejected for PO {order.po_number} (read at v{expected_version})",
                extra={"po_number": order.po_number, "expected_version": expected_version},
            )
            raise ConcurrencyConflictError(
                f"Purchase order {order.po_number} was modified by another request",
                expected_version=expected_version,
            ) from e
        return order

    def query(self, org_id: str, filters: OrderFilter) -> Page[PurchaseOrder]:
        """Filtered, newest-first page of orders for one organization."""
        query = self.db.query(PurchaseOrder).filter(PurchaseOrder.org_id == org_id)

        if filters.status:
            query = query.filter(PurchaseOrder.status == filters.status)

        if filters.supplier_id:
            query = query.filter(PurchaseOrder.supplier_id == filters.supplier_id)

        if filters.warehouse_id:
            query = query.filter(PurchaseOrder.warehouse_id == filters.warehouse_id)

        if filters.created_from:
            query = query.filter(PurchaseOrder.created_at >= filters.created_from)

        if filters.created_to:
            query = query.filter(PurchaseOrder.created_at <= filters.created_to)

        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.filter(or_(
                PurchaseOrder.po_number.ilike(pattern),
                PurchaseOrder.notes.ilike(pattern),
            ))

        with persistence_guard("Order query"):
            total = query.count()
            items = (
                query.options(selectinload(PurchaseOrder.lines))
                .order_by(desc(PurchaseOrder.created_at), desc(PurchaseOrder.id))
                .offset((filters.page - 1) * filters.limit)
                .limit(filters.limit)
                .all()
            )

        return Page(items=items, total=total, page=filters.page, limit=filters.limit)

    def next_po_number(self, org_id: str) -> str:
        """Generate next PO number for the org (PO-2026-001, PO-2026-002, etc.)"""
        year = datetime.utcnow().year
        prefix = f"{settings.PO_NUMBER_PREFIX}-{year}-"
        with persistence_guard("PO number lookup"):
            last = (
                self.db.query(PurchaseOrder.po_number)
                .filter(
                    PurchaseOrder.org_id == org_id,
                    PurchaseOrder.po_number.like(f"{prefix}%"),
                )
                .order_by(desc(PurchaseOrder.id))
                .first()
            )

        if last:
            try:
                num = int(last[0][len(prefix):])
                return f"{prefix}{num + 1:03d}"
            except ValueError:
                pass
        return f"{prefix}001"
