"""Tests for the structured logging system (stock_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from stock_kernel.domain.values import Location, LocationType, TransactionType
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's config."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


@pytest.fixture
def log_stream() -> StringIO:
    """Kernel logging configured at INFO into an in-memory stream."""
    handler, stream = _make_handler()
    configure_logging(handler=handler)
    return stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self, log_stream):
        get_logger("test").info("hello")

        record = _parse_log(log_stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "stock_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self, log_stream):
        entry_id = uuid4()
        get_logger("test").info(
            "movement_appended",
            extra={
                "entry_id": entry_id,
                "quantity_out": Decimal("4000.000000000"),
                "transaction_type": TransactionType.ISSUE,
            },
        )

        record = _parse_log(log_stream)
        assert record["entry_id"] == str(entry_id)
        assert record["quantity_out"] == "4000.000000000"
        assert record["transaction_type"] == "ISSUE"

    def test_dataclass_extra_serialized(self, log_stream):
        location = Location(LocationType.BRANCH, uuid4())
        get_logger("test").info("located", extra={"location": location})

        record = _parse_log(log_stream)
        assert record["location"] == {
            "location_type": "BRANCH",
            "location_id": str(location.location_id),
        }

    def test_context_fields_included(self, log_stream):
        LogContext.set(correlation_id="abc-123", issue_id="iss-9")
        get_logger("test").info("test_msg")

        record = _parse_log(log_stream)
        assert record["correlation_id"] == "abc-123"
        assert record["issue_id"] == "iss-9"

    def test_context_wins_over_extra(self, log_stream):
        LogContext.set(issue_id="from-context")
        get_logger("test").info("dup", extra={"issue_id": "from-extra"})

        assert _parse_log(log_stream)["issue_id"] == "from-context"

    def test_exception_fields(self, log_stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(log_stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self, log_stream):
        """Stock kernel exceptions carry a .code attribute and structured fields."""
        try:
            raise InsufficientStockError("item-1", "COMPANY:hq", "4000", "3000")
        except InsufficientStockError:
            get_logger("test").error("issue_failed", exc_info=True)

        record = _parse_log(log_stream)
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_item_id"] == "item-1"
        assert record["exc_available_quantity"] == "3000"

    def test_no_context_fields_when_empty(self, log_stream):
        get_logger("test").info("bare_message")

        record = _parse_log(log_stream)
        assert "correlation_id" not in record
        assert "actor_id" not in record

    def test_valid_json_every_line(self, log_stream):
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(log_stream)
        # INFO is the default level, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        assert "transaction_id" not in LogContext.get_all()
        with LogContext.bind(transaction_id="temp"):
            assert LogContext.get_all()["transaction_id"] == "temp"
        assert "transaction_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(correlation_id="c", shoe_size="44"):
            assert LogContext.get_all() == {"correlation_id": "c"}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(issue_id="inside"):
                raise RuntimeError("fail")
        assert "issue_id" not in LogContext.get_all()

    def test_set_rejects_unknown_fields(self):
        with pytest.raises(TypeError, match="shoe_size"):
            LogContext.set(shoe_size="44")

    def test_set_stringifies_values(self):
        actor = uuid4()
        LogContext.set(actor_id=actor)
        assert LogContext.get_all() == {"actor_id": str(actor)}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            transaction_id="t",
            issue_id="i",
            session_id="s",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["session_id"] == "s"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        assert len(logging.getLogger("stock_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.approval").name == "stock_kernel.services.approval"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "stock_kernel.deep.nested.module"
