"""
Common API Response Schemas

Provides standardized error responses and pagination models for consistent API behavior.
"""
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field


# ============================================================================
# Error Response Models
# ============================================================================

class ErrorResponse(BaseModel):
    """
    Standardized error response for all API errors.

    Error Codes:
        - VALIDATION_ERROR: Request validation failed (400)
        - AUTHENTICATION_ERROR: Caller identity headers missing (401)
        - FORBIDDEN: Caller lacks permission (403)
        - NOT_FOUND: Resource not found (404)
        - INVALID_STATE: Operation not allowed in the order's status (409)
        - CONCURRENCY_CONFLICT: Order changed since it was read (409, retryable)
        - UNKNOWN_LINE_ITEM: Received product is not on the order (422)
        - OVER_RECEIPT: Receipt exceeds the ordered quantity (422)
        - INSUFFICIENT_STOCK: Not enough stock on hand (422)
        - LEDGER_ERROR: Stock ledger rejected the change (500)
        - DATABASE_ERROR: Database operation failed (500)
        - INTERNAL_ERROR: Unexpected internal error (500)
        - PERSISTENCE_UNAVAILABLE: Database unreachable or timed out (503, retryable)

    Example:
        {
            "error": "OVER_RECEIPT",
            "message": "Cannot receive 101 of product P1 on line 1. Only 100 remaining.",
            "retryable": false,
            "details": {
                "product_id": "P1",
                "line_number": 1,
                "ordered": "100",
                "already_received": "0",
                "attempted": "101",
                "remaining": "100"
            },
            "timestamp": "2026-03-02T10:30:00Z"
        }
    """
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    retryable: bool = Field(False, description="Whether reloading and retrying may succeed")
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error context for debugging"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the error occurred (UTC)"
    )


# ============================================================================
# Pagination Models
# ============================================================================

class PaginationParams(BaseModel):
    """
    Page-based pagination parameters for list endpoints.

    ``page`` is 1-based; ``limit`` is capped by MAX_PAGE_LIMIT at the
    dependency that builds this object.
    """
    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    limit: int = Field(default=10, ge=1, description="Maximum number of records per page")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationMeta(BaseModel):
    """
    Pagination metadata included in list responses.

    Provides information about the current page and total records,
    making it easy for clients to implement pagination controls.
    """
    total: int = Field(..., description="Total number of records matching the query")
    page: int = Field(..., description="Current page (1-based)")
    limit: int = Field(..., description="Maximum records per page")
    total_pages: int = Field(..., description="Number of pages at this limit")
    returned: int = Field(..., description="Number of records in this response")

    class Config:
        json_schema_extra = {
            "example": {
                "total": 42,
                "page": 1,
                "limit": 10,
                "total_pages": 5,
                "returned": 10
            }
        }


# ============================================================================
# Generic Response Wrappers
# ============================================================================

T = TypeVar('T')


class ListResponse(BaseModel, Generic[T]):
    """
    Standardized list response wrapper with pagination.

    Example:
        {
            "items": [...],
            "pagination": {"total": 42, "page": 1, "limit": 10, "total_pages": 5, "returned": 10}
        }
    """
    items: List[T] = Field(..., description="List of items")
    pagination: PaginationMeta = Field(..., description="Pagination metadata")


class StatusResponse(BaseModel):
    """
    Status response for health checks and similar endpoints.
    """
    status: str = Field(..., description="Service status")
    version: Optional[str] = Field(None, description="Service version")
