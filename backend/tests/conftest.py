"""
Shared test fixtures for ProcureOps tests

Provides database setup, client creation, and caller identity fixtures
"""
import os

# Must be set before procureops is imported: settings and the engine are
# built at import time.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["LOG_FORMAT"] = "text"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from procureops.main import app
from procureops.db.base import Base
from procureops.db.session import get_db
from procureops.services.permissions import Actor
from procureops.services.purchase_order_service import PurchaseOrderService

from tests.factories import RecordingEventSink, reset_sequences


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    # Import all models to ensure they're registered with Base
    from procureops.models import (  # noqa: F401
        PurchaseOrder, PurchaseOrderLine, StockLevel, InventoryTransaction, PurchasingEvent,
    )

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)
    reset_sequences()

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


@pytest.fixture
def client(db_session):
    """Create a test client with database override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =============================================================================
# Callers
# =============================================================================

@pytest.fixture
def admin():
    return Actor(user_id="admin-1", org_id="org-1", role="admin")


@pytest.fixture
def buyer():
    return Actor(user_id="buyer-1", org_id="org-1", role="buyer")


@pytest.fixture
def receiver():
    return Actor(user_id="receiver-1", org_id="org-1", role="receiver")


@pytest.fixture
def viewer():
    return Actor(user_id="viewer-1", org_id="org-1", role="viewer")


@pytest.fixture
def outsider():
    """Admin of a different organization"""
    return Actor(user_id="admin-2", org_id="org-2", role="admin")


def headers_for(actor: Actor) -> dict:
    """Gateway identity headers for an actor"""
    return {"X-User-Id": actor.user_id, "X-Org-Id": actor.org_id, "X-User-Role": actor.role}


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def buyer_headers(buyer):
    return headers_for(buyer)


@pytest.fixture
def receiver_headers(receiver):
    return headers_for(receiver)


@pytest.fixture
def outsider_headers(outsider):
    return headers_for(outsider)


# =============================================================================
# Services
# =============================================================================

@pytest.fixture
def event_sink():
    return RecordingEventSink()


@pytest.fixture
def service(db_session, event_sink):
    """PurchaseOrderService with role-based permissions and a recording sink"""
    return PurchaseOrderService(db_session, event_sink=event_sink)
