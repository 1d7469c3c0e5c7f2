"""Tests for structured JSON logging (tax_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from tax_kernel.domain.values import RateKind, TaxCategory
from tax_kernel.exceptions import NegativeAmountError, NoApplicableJurisdictionsError
from tax_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def stream():
    buffer = StringIO()
    configure_logging(handler=logging.StreamHandler(buffer))
    return buffer


def _records(buffer: StringIO) -> list[dict]:
    return [json.loads(line) for line in buffer.getvalue().splitlines() if line]


class TestStructuredFormatter:

    def test_envelope(self, stream):
        get_logger("engines.rates").info("rates_selected")

        (record,) = _records(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "rates_selected"
        assert record["logger"] == "tax_kernel.engines.rates"
        assert record["ts"].endswith("+00:00")

    def test_amounts_keep_their_digits(self, stream):
        get_logger("test").info("item_taxed", extra={
            "subtotal": Decimal("50.00"),
            "tax_amount": Decimal("3.62500"),
            "line_count": 2,
        })

        (record,) = _records(stream)
        assert record["subtotal"] == "50.00"
        assert record["tax_amount"] == "3.62500"
        assert record["line_count"] == 2

    def test_enums_and_ids(self, stream):
        rate_id = uuid4()
        get_logger("test").info("rate_applied", extra={
            "rate_id": rate_id,
            "kind": RateKind.COMPOUND,
            "category": TaxCategory.FOOD,
        })

        (record,) = _records(stream)
        assert record["rate_id"] == str(rate_id)
        assert record["kind"] == "compound"
        assert record["category"] == "food"

    def test_calculation_context_merged(self, stream):
        with LogContext.bind(order_id="ORD-9", customer_id="C-7"):
            get_logger("test").info("tax_calculation_started")
        get_logger("test").info("after")

        inside, after = _records(stream)
        assert inside["order_id"] == "ORD-9"
        assert inside["customer_id"] == "C-7"
        assert "order_id" not in after

    def test_plain_exception(self, stream):
        try:
            raise OSError("store down")
        except OSError:
            get_logger("test").error("tax_repository_failed", exc_info=True)

        (record,) = _records(stream)
        assert record["exc_type"] == "OSError"
        assert record["exc_message"] == "store down"
        assert "exc_code" not in record
        assert "traceback" in record

    def test_kernel_exception_fields(self, stream):
        try:
            raise NoApplicableJurisdictionsError("ZZ")
        except NoApplicableJurisdictionsError:
            get_logger("test").warning("not_serviceable", exc_info=True)

        (record,) = _records(stream)
        assert record["exc_code"] == "NO_APPLICABLE_JURISDICTIONS"
        assert record["exc_country"] == "ZZ"

    def test_kernel_exception_decimal_field(self, stream):
        try:
            raise NegativeAmountError("subtotal", Decimal("-2.50"), item_id="line-1")
        except NegativeAmountError:
            get_logger("test").error("rejected", exc_info=True)

        (record,) = _records(stream)
        assert record["exc_code"] == "NEGATIVE_AMOUNT"
        assert record["exc_item_id"] == "line-1"

    def test_below_level_dropped(self, stream):
        logger = get_logger("test")
        logger.debug("item_exempt")
        logger.info("tax_estimated")

        assert [r["message"] for r in _records(stream)] == ["tax_estimated"]

    def test_formatter_usable_standalone(self):
        record = logging.LogRecord("tax_kernel.x", logging.INFO, __file__, 1, "msg", (), None)

        assert json.loads(StructuredFormatter().format(record))["message"] == "msg"


class TestLogContext:

    def test_set_and_clear(self):
        LogContext.set(order_id="ORD-1", customer_id=None)
        assert LogContext.get_all() == {"order_id": "ORD-1"}

        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_outer_value(self):
        LogContext.set(order_id="outer")
        with LogContext.bind(order_id="inner", customer_id="C-1"):
            assert LogContext.get_all() == {"order_id": "inner", "customer_id": "C-1"}
        assert LogContext.get_all() == {"order_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(order_id="ORD-1"):
                raise RuntimeError("abort")

        assert LogContext.get_all() == {}

    def test_actor_id_stringified(self):
        actor = uuid4()
        with LogContext.bind(actor_id=actor):
            assert LogContext.get_all()["actor_id"] == str(actor)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="trace_id"):
            LogContext.set(trace_id="t")


class TestConfigureLogging:

    def test_idempotent(self):
        first = logging.StreamHandler(StringIO())
        second = logging.StreamHandler(StringIO())

        configure_logging(handler=first)
        configure_logging(handler=second)

        handlers = logging.getLogger("tax_kernel").handlers
        assert first in handlers
        assert second not in handlers

    def test_reset_allows_reconfiguration(self):
        first = logging.StreamHandler(StringIO())
        configure_logging(handler=first)

        reset_logging()
        second = logging.StreamHandler(StringIO())
        configure_logging(handler=second)

        handlers = logging.getLogger("tax_kernel").handlers
        assert first not in handlers
        assert second in handlers

    def test_level_name_from_config(self):
        buffer = StringIO()
        configure_logging(handler=logging.StreamHandler(buffer), level="WARNING")

        get_logger("test").info("dropped")
        get_logger("test").warning("kept")

        assert [r["message"] for r in _records(buffer)] == ["kept"]

    def test_does_not_propagate(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))

        assert logging.getLogger("tax_kernel").propagate is False
