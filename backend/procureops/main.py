"""
ProcureOps - Main FastAPI Application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime

from procureops.api.v1 import router as api_v1_router
from procureops.core.config import settings
from procureops.exceptions import ProcureOpsException
from procureops.logging_config import setup_logging, get_logger
from procureops.schemas.common import StatusResponse

# Setup structured logging
setup_logging()
logger = get_logger(__name__)


def init_database():
    """Create missing tables on startup (idempotent). Production uses alembic."""
    from procureops.db.session import engine
    from procureops.db.base import Base
    import procureops.models  # noqa: F401
    logger.info("Checking database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(
        "Starting ProcureOps API",
        extra={
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "debug": settings.DEBUG,
        }
    )
    if settings.AUTO_CREATE_TABLES:
        try:
            init_database()
        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {e}")
    yield
    logger.info("Shutting down ProcureOps API")


# Create FastAPI app
app = FastAPI(
    title="ProcureOps API",
    description="Purchase order lifecycle and receiving",
    version=settings.VERSION,
    lifespan=lifespan,
)


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


# ===================
# Exception Handlers
# ===================

@app.exception_handler(ProcureOpsException)
async def procureops_exception_handler(request: Request, exc: ProcureOpsException):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"ProcureOps Exception: {exc.error_code} - {exc.message}",
        extra={"error_code": exc.error_code, "details": exc.details, "path": request.url.path}
    )
    error_dict = exc.to_dict()
    error_dict["timestamp"] = _timestamp()
    headers = None
    retry_after = exc.details.get("retry_after_seconds")
    if retry_after:
        headers = {"Retry-After": str(retry_after)}
    return JSONResponse(status_code=exc.status_code, content=error_dict, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors.append({"field": field, "message": error["msg"], "type": error["type"]})
    logger.warning("Validation error on %s", request.url.path, extra={"errors": errors})
    return JSONResponse(
        status_code=400,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "retryable": False,
            "details": {"errors": errors},
            "timestamp": _timestamp(),
        },
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "DATABASE_ERROR",
            "message": "A database error occurred. Please try again.",
            "retryable": False,
            "timestamp": _timestamp(),
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.url.path}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
            "retryable": False,
            "timestamp": _timestamp(),
        },
    )


# Include API routes
app.include_router(api_v1_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": "ProcureOps API", "version": settings.VERSION, "status": "online"}


@app.get("/health", response_model=StatusResponse)
async def health_check():
    return StatusResponse(status="healthy", version=settings.VERSION)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("procureops.main:app", host="0.0.0.0", port=8001, reload=True)
