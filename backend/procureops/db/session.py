"""
Database session management
"""
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from procureops.core.config import settings
from procureops.logging_config import get_logger

logger = get_logger(__name__)


def build_engine_options(url: str) -> Dict[str, Any]:
    """
    Engine keyword arguments for the given database URL.

    PostgreSQL gets a bounded pool wait and a server-side statement timeout so
    no request blocks indefinitely; SQLite (tests, local tinkering) only needs
    cross-thread access.
    """
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        return {"connect_args": {"check_same_thread": False}}

    options: Dict[str, Any] = {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_size": settings.DB_POOL_SIZE,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
    }
    if backend == "postgresql" and settings.DB_STATEMENT_TIMEOUT_MS:
        options["connect_args"] = {
            "connect_timeout": settings.DB_POOL_TIMEOUT,
            "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
        }
    return options


connection_string = settings.database_url

# Log connection info (without password)
logger.info(f"Database connection: {make_url(connection_string).render_as_string(hide_password=True)}")

engine = create_engine(
    connection_string,
    echo=False,  # Set to True for SQL query logging
    **build_engine_options(connection_string),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency for getting database session

    Usage in FastAPI endpoints:
        @router.get("/purchase-orders")
        def list_orders(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
