"""
Unit Tests for logging configuration
"""
import io
import json
import logging
from decimal import Decimal

import pytest

from procureops.exceptions import OverReceiptError
from procureops.logging_config import get_logger, reset_logging, setup_logging


@pytest.fixture
def log_stream():
    """Reconfigure procureops logging onto a buffer, restore afterwards"""
    reset_logging()
    stream = io.StringIO()
    yield stream
    reset_logging()
    setup_logging()


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestJSONLogging:

    def test_extra_fields_become_keys(self, log_stream):
        setup_logging(level="INFO", fmt="json", stream=log_stream)

        get_logger("procureops.services.receiving").info(
            "Received 2 line(s)",
            extra={"po_number": "PO-2026-001", "on_hand": Decimal("12.5")},
        )

        [entry] = _lines(log_stream)
        assert entry["level"] == "INFO"
        assert entry["logger"] == "procureops.services.receiving"
        assert entry["message"] == "Received 2 line(s)"
        assert entry["po_number"] == "PO-2026-001"
        assert entry["on_hand"] == "12.5"

    def test_exception_carries_error_code(self, log_stream):
        setup_logging(level="INFO", fmt="json", stream=log_stream)
        logger = get_logger(__name__)

        try:
            raise OverReceiptError(
                "P1", line_number=1, ordered=Decimal("100"),
                already_received=Decimal("0"), attempted=Decimal("101"),
            )
        except OverReceiptError:
            logger.warning("Receipt rejected", exc_info=True)

        [entry] = _lines(log_stream)
        assert entry["exc_type"] == "OverReceiptError"
        assert entry["error_code"] == "OVER_RECEIPT"
        assert "Traceback" in entry["traceback"]

    def test_level_filters(self, log_stream):
        setup_logging(level="WARNING", fmt="json", stream=log_stream)

        get_logger("procureops.test").info("quiet")
        get_logger("procureops.test").warning("loud")

        assert [e["message"] for e in _lines(log_stream)] == ["loud"]


class TestSetup:

    def test_setup_is_idempotent(self, log_stream):
        setup_logging(fmt="text", stream=log_stream)
        setup_logging(fmt="text", stream=log_stream)

        assert len(logging.getLogger("procureops").handlers) == 1

    def test_text_format(self, log_stream):
        setup_logging(level="INFO", fmt="text", stream=log_stream)

        get_logger("procureops.test").info("PO PO-2026-001 Draft -> Submitted")

        assert "INFO" in log_stream.getvalue()
        assert "procureops.test: PO PO-2026-001 Draft -> Submitted" in log_stream.getvalue()

    def test_foreign_names_are_nested(self):
        assert get_logger("scripts.backfill").name == "procureops.scripts.backfill"
        assert get_logger("procureops.main").name == "procureops.main"
