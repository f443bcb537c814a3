"""
Unit Tests for the Purchase Order Service

Exercises the orchestration: permission checks, fresh loads, version checks,
transaction boundaries, audit events and post-commit event publishing.
"""
import pytest
from datetime import date, datetime
from decimal import Decimal

from procureops.exceptions import (
    ConcurrencyConflictError,
    ForbiddenError,
    InvalidStateError,
    LedgerError,
    NotFoundError,
    OverReceiptError,
    ValidationError,
)
from procureops.models.inventory import InventoryTransaction
from procureops.models.purchase_order import PurchaseOrder
from procureops.models.purchasing_event import PurchasingEvent
from procureops.services import event_service
from procureops.services.order_store import OrderFilter
from procureops.services.purchase_order_service import NewLine, PurchaseOrderService
from procureops.services.stock_ledger import StockLedger

from tests.factories import (
    AllowAllPermissionChecker,
    FailingLedger,
    create_test_purchase_order,
    create_two_line_order,
)


LINES = [
    NewLine("P1", Decimal("100"), Decimal("2.50")),
    NewLine("P2", Decimal("50"), Decimal("4.00")),
]


def _reload(db_session, po_id):
    db_session.expire_all()
    return db_session.get(PurchaseOrder, po_id)


class ExplodingSink:
    def publish(self, event_type, order_id, payload):
        raise ConnectionError("notification service down")


class TestCreateOrder:

    def test_create_draft(self, db_session, service, event_sink, buyer):
        po = service.create_order(
            buyer, "SUP-1", "WH-1", LINES,
            expected_delivery_date=date(2026, 4, 1), notes="Quarterly restock",
        )

        po = _reload(db_session, po.id)
        assert po.status == "Draft"
        assert po.version == 1
        assert po.org_id == "org-1"
        assert po.created_by == "buyer-1"
        assert po.po_number == f"PO-{datetime.utcnow().year}-001"
        assert po.subtotal == Decimal("450")
        assert po.total_amount == Decimal("450")
        assert [line.line_number for line in po.lines] == [1, 2]
        assert po.lines[0].line_total == Decimal("250")

        events = db_session.query(PurchasingEvent).filter_by(purchase_order_id=po.id).all()
        assert [e.event_type for e in events] == ["created"]
        assert event_sink.types() == [event_service.PO_CREATED]

    def test_create_accepts_dict_lines(self, service, buyer):
        po = service.create_order(buyer, "SUP-1", "WH-1", [
            {"product_id": "P1", "quantity_ordered": 3, "unit_price": "1.25"},
        ])
        assert po.total_amount == Decimal("3.75")

    def test_empty_draft_allowed(self, service, buyer):
        po = service.create_order(buyer, "SUP-1", "WH-1", [])
        assert po.status == "Draft"
        assert po.total_amount == Decimal("0")

    def test_po_numbers_increment(self, service, buyer):
        first = service.create_order(buyer, "SUP-1", "WH-1", LINES)
        second = service.create_order(buyer, "SUP-1", "WH-1", LINES)
        assert first.po_number.endswith("-001")
        assert second.po_number.endswith("-002")

    @pytest.mark.parametrize("lines,field", [
        ([NewLine("P1", Decimal("0"), Decimal("1"))], "lines[0].quantity_ordered"),
        ([NewLine("P1", Decimal("1"), Decimal("-1"))], "lines[0].unit_price"),
        ([NewLine("", Decimal("1"), Decimal("1"))], "lines[0].product_id"),
        ([NewLine("P1", Decimal("1")), NewLine("P1", Decimal("2"))], "lines[1].product_id"),
        ([NewLine("P1", Decimal("1.00001"), Decimal("1"))], "lines[0].quantity_ordered"),
        ([NewLine("P1", Decimal("1"), Decimal("2.123456"))], "lines[0].unit_price"),
    ])
    def test_invalid_lines(self, db_session, service, buyer, lines, field):
        with pytest.raises(ValidationError) as exc_info:
            service.create_order(buyer, "SUP-1", "WH-1", lines)

        assert exc_info.value.details["field"] == field
        assert db_session.query(PurchaseOrder).count() == 0

    def test_line_total_rounded_to_stored_scale(self, db_session, service, buyer):
        po = service.create_order(buyer, "SUP-1", "WH-1", [NewLine("P1", Decimal("1.0001"), Decimal("1.0001"))])

        po = _reload(db_session, po.id)
        assert po.lines[0].line_total == Decimal("1.0002")
        assert po.total_amount == Decimal("1.0002")

    def test_missing_supplier(self, service, buyer):
        with pytest.raises(ValidationError):
            service.create_order(buyer, " ", "WH-1", LINES)

    def test_notes_too_long(self, service, buyer):
        with pytest.raises(ValidationError):
            service.create_order(buyer, "SUP-1", "WH-1", LINES, notes="x" * 1001)

    def test_receiver_cannot_create(self, db_session, service, receiver):
        with pytest.raises(ForbiddenError) as exc_info:
            service.create_order(receiver, "SUP-1", "WH-1", LINES)

        assert exc_info.value.status_code == 403
        assert db_session.query(PurchaseOrder).count() == 0


class TestLifecycle:

    def test_full_lifecycle(self, db_session, service, event_sink, buyer, admin, receiver):
        po = service.create_order(buyer, "SUP-1", "WH-1", LINES)
        service.submit_order(buyer, po.id)
        service.approve_order(admin, po.id)

        result = service.receive_order(receiver, po.id, [
            {"product_id": "P1", "received_quantity": 80},
            {"product_id": "P2", "received_quantity": 50},
        ])
        assert result.order.status == "PartiallyReceived"

        result = service.receive_order(receiver, po.id, [{"product_id": "P1", "received_quantity": 20}])

        po = _reload(db_session, po.id)
        assert po.status == "Completed"
        assert po.version == 5
        assert po.submitted_by == "buyer-1"
        assert po.approved_by == "admin-1"
        assert po.completed_at is not None

        ledger = StockLedger(db_session)
        assert ledger.on_hand("P1", "WH-1") == Decimal("100")
        assert ledger.on_hand("P2", "WH-1") == Decimal("50")

        assert event_sink.types() == [
            event_service.PO_CREATED,
            event_service.PO_SUBMITTED,
            event_service.PO_APPROVED,
            event_service.PO_RECEIVED,
            event_service.PO_RECEIVED,
            event_service.PO_COMPLETED,
        ]
        received_payload = event_sink.events[3][2]
        assert received_payload["old_status"] == "Approved"
        assert [d["product_id"] for d in received_payload["deltas"]] == ["P1", "P2"]

        audit = (
            db_session.query(PurchasingEvent)
            .filter_by(purchase_order_id=po.id)
            .order_by(PurchasingEvent.id)
            .all()
        )
        assert [e.event_type for e in audit] == [
            "created", "status_change", "status_change", "partial_receipt", "receipt",
        ]
        assert [e.order_version for e in audit] == [1, 2, 3, 4, 5]

    def test_reject(self, db_session, service, admin):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], status="Submitted")

        service.reject_order(admin, po.id, "Wrong supplier")

        po = _reload(db_session, po.id)
        assert po.status == "Rejected"
        assert po.rejection_reason == "Wrong supplier"

    def test_reject_without_reason(self, db_session, service, admin):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], status="Submitted")

        with pytest.raises(ValidationError):
            service.reject_order(admin, po.id, "")

        assert _reload(db_session, po.id).status == "Submitted"

    def test_approve_draft_is_invalid_state(self, db_session, service, admin):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}])

        with pytest.raises(InvalidStateError):
            service.approve_order(admin, po.id)

        assert _reload(db_session, po.id).version == 1

    def test_close_keeps_received_stock(self, db_session, service, admin, receiver):
        po = create_two_line_order(db_session)
        service.receive_order(receiver, po.id, [{"product_id": "P1", "received_quantity": 30}])

        service.close_order(admin, po.id, "Supplier cannot deliver the rest")

        po = _reload(db_session, po.id)
        assert po.status == "Closed"
        assert po.close_reason == "Supplier cannot deliver the rest"
        assert StockLedger(db_session).on_hand("P1", "WH-1") == Decimal("30")

        with pytest.raises(InvalidStateError):
            service.receive_order(receiver, po.id, [{"product_id": "P1", "received_quantity": 1}])


class TestReceiveAtomicity:

    def test_over_receipt_writes_nothing(self, db_session, service, event_sink, receiver):
        po = create_two_line_order(db_session)

        with pytest.raises(OverReceiptError):
            service.receive_order(receiver, po.id, [
                {"product_id": "P1", "received_quantity": 10},
                {"product_id": "P1", "received_quantity": 91},
            ])

        po = _reload(db_session, po.id)
        assert po.status == "Approved"
        assert po.version == 1
        assert all(line.quantity_received == 0 for line in po.lines)
        assert StockLedger(db_session).on_hand("P1", "WH-1") == Decimal("0")
        assert db_session.query(PurchasingEvent).count() == 0
        assert event_sink.events == []

    def test_ledger_failure_rolls_back_whole_receipt(self, db_session, event_sink, receiver):
        po = create_two_line_order(db_session)
        service = PurchaseOrderService(
            db_session, event_sink=event_sink, ledger=FailingLedger(db_session, fail_on=2),
        )

        with pytest.raises(LedgerError):
            service.receive_order(receiver, po.id, [
                {"product_id": "P1", "received_quantity": 10},
                {"product_id": "P2", "received_quantity": 10},
            ])

        po = _reload(db_session, po.id)
        assert po.status == "Approved"
        assert po.version == 1
        assert all(line.quantity_received == 0 for line in po.lines)
        assert StockLedger(db_session).on_hand("P1", "WH-1") == Decimal("0")
        assert db_session.query(InventoryTransaction).count() == 0
        assert db_session.query(PurchasingEvent).count() == 0
        assert event_sink.events == []

    def test_too_precise_receipt_leaves_order_receivable(self, db_session, service, event_sink, receiver):
        po = create_two_line_order(db_session)

        with pytest.raises(ValidationError):
            service.receive_order(receiver, po.id, [
                {"product_id": "P1", "received_quantity": "99.99999"},
                {"product_id": "P2", "received_quantity": 50},
            ])

        assert _reload(db_session, po.id).status == "Approved"
        assert event_sink.events == []

        result = service.receive_order(receiver, po.id, [
            {"product_id": "P1", "received_quantity": 100},
            {"product_id": "P2", "received_quantity": 50},
        ])

        assert result.order.status == "Completed"
        po = _reload(db_session, po.id)
        assert po.status == "Completed"
        assert all(line.quantity_received == line.quantity_ordered for line in po.lines)


class TestPermissions:

    def test_buyer_cannot_approve(self, db_session, service, event_sink, buyer):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], status="Submitted")

        with pytest.raises(ForbiddenError) as exc_info:
            service.approve_order(buyer, po.id)

        assert exc_info.value.details["action"] == "approve"
        assert _reload(db_session, po.id).status == "Submitted"
        assert event_sink.events == []

    def test_viewer_cannot_receive(self, db_session, service, viewer):
        po = create_two_line_order(db_session)
        with pytest.raises(ForbiddenError):
            service.receive_order(viewer, po.id, [{"product_id": "P1", "received_quantity": 1}])

    def test_denied_before_state_is_checked(self, db_session, service, buyer):
        # Order is not Submitted either; permission is reported first
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], status="Completed")
        with pytest.raises(ForbiddenError):
            service.approve_order(buyer, po.id)

    def test_other_org_gets_not_found(self, db_session, service, outsider):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], status="Submitted")

        with pytest.raises(NotFoundError):
            service.get_order(outsider, po.id)
        with pytest.raises(NotFoundError):
            service.approve_order(outsider, po.id)

    def test_custom_checker(self, db_session, viewer):
        service = PurchaseOrderService(db_session, permission_checker=AllowAllPermissionChecker())
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}])

        service.submit_order(viewer, po.id)

        assert _reload(db_session, po.id).status == "Submitted"


class TestConcurrency:

    def test_stale_expected_version(self, db_session, service, event_sink, admin):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], status="Submitted", version=4)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            service.approve_order(admin, po.id, expected_version=3)

        assert exc_info.value.retryable is True
        po = _reload(db_session, po.id)
        assert po.status == "Submitted"
        assert po.version == 4
        assert event_sink.events == []

    def test_current_expected_version(self, db_session, service, admin):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], status="Submitted", version=4)

        service.approve_order(admin, po.id, expected_version=4)

        assert _reload(db_session, po.id).version == 5


class TestEventDelivery:

    def test_sink_failure_keeps_commit(self, db_session, buyer, caplog):
        service = PurchaseOrderService(db_session, event_sink=ExplodingSink())
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}])

        returned = service.submit_order(buyer, po.id)

        assert returned.status == "Submitted"
        assert _reload(db_session, po.id).status == "Submitted"
        assert "Event delivery failed" in caplog.text


class TestReads:

    def test_list_scoped_to_org(self, db_session, service, viewer):
        create_test_purchase_order(db_session, lines=[{"product_id": "P1"}])
        create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], status="Approved")
        create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], org_id="org-2")

        page = service.list_orders(viewer)
        assert page.total == 2

        page = service.list_orders(viewer, OrderFilter(status="Approved"))
        assert page.total == 1

    @pytest.mark.parametrize("filters", [
        OrderFilter(page=0),
        OrderFilter(limit=0),
        OrderFilter(limit=101),
        OrderFilter(status="Shipped"),
    ])
    def test_list_rejects_bad_filters(self, service, viewer, filters):
        with pytest.raises(ValidationError):
            service.list_orders(viewer, filters)


class TestAnnotations:

    def test_annotate_terminal_order(self, db_session, service, receiver):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}], status="Closed", version=3)

        event = service.annotate_order(receiver, po.id, "Supplier called", description="Refund issued")

        assert event.event_type == "note_added"
        assert event.user_id == "receiver-1"
        po = _reload(db_session, po.id)
        assert po.status == "Closed"
        assert po.version == 3

        events, total = service.list_order_events(receiver, po.id)
        assert total == 1
        assert events[0].title == "Supplier called"

    def test_annotation_needs_title(self, db_session, service, receiver):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}])
        with pytest.raises(ValidationError):
            service.annotate_order(receiver, po.id, "  ")

    def test_viewer_cannot_annotate(self, db_session, service, viewer):
        po = create_test_purchase_order(db_session, lines=[{"product_id": "P1"}])
        with pytest.raises(ForbiddenError):
            service.annotate_order(viewer, po.id, "Note")
