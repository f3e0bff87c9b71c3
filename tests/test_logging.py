"""Tests for the structured logging system (approval_kernel/logging_config.py)."""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import Tier
from approval_kernel.exceptions import UnauthorizedApproverError
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    """Parse all JSON log lines from a stream."""
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "approval_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("decided", extra={"version": 2, "status": "approved"})

        record = _parse_log(stream)
        assert record["version"] == 2
        assert record["status"] == "approved"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(actor_id="mgr-1", branch_id="branch-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["actor_id"] == "mgr-1"
        assert record["branch_id"] == "branch-1"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(request_id="from-context"):
            get_logger("test").info("dup", extra={"request_id": "from-extra"})

        assert _parse_log(stream)["request_id"] == "from-context"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Approval kernel exceptions carry a .code attribute."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise UnauthorizedApproverError("req-1", "mgr-1", "manager", "director")
        except UnauthorizedApproverError:
            get_logger("test").error("denied", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "UNAUTHORIZED_APPROVER"
        assert record["exc_type"] == "UnauthorizedApproverError"
        assert record["exc_actor_tier"] == "manager"
        assert record["exc_required_tier"] == "director"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        for field in LogContext.FIELDS:
            assert field not in record

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        get_logger("test").info(
            "typed",
            extra={"request_uuid": uid, "amount": Decimal("2500.00"), "tier": Tier.DIRECTOR, "at": at},
        )

        record = _parse_log(stream)
        assert record["request_uuid"] == str(uid)
        assert record["amount"] == "2500.00"
        assert record["tier"] == "director"
        assert record["at"] == at.isoformat()
        assert record["at"] == "2024-01-01T00:00:00+00:00"

    def test_unknown_values_fall_back_to_str(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        class _Opaque:
            def __str__(self):
                return "opaque-value"

        get_logger("test").info("opaque", extra={"thing": _Opaque()})
        assert _parse_log(stream)["thing"] == "opaque-value"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped.
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(request_id="x", actor_id="y")
        assert LogContext.get_all() == {"request_id": "x", "actor_id": "y"}

    def test_set_ignores_none(self):
        LogContext.set(branch_id="b")
        LogContext.set(branch_id=None, actor_id="a")
        assert LogContext.get_all() == {"branch_id": "b", "actor_id": "a"}

    def test_clear(self):
        LogContext.set(request_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(request_id="outer")
        with LogContext.bind(request_id="inner"):
            assert LogContext.get_all()["request_id"] == "inner"
        assert LogContext.get_all()["request_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        with LogContext.bind(actor_id="temp"):
            assert LogContext.get_all()["actor_id"] == "temp"
        assert "actor_id" not in LogContext.get_all()

    def test_nested_bind_layers_fields(self):
        with LogContext.bind(request_id="r", actor_id="a"):
            with LogContext.bind(branch_id="b"):
                assert LogContext.get_all() == {
                    "request_id": "r",
                    "actor_id": "a",
                    "branch_id": "b",
                }
            assert "branch_id" not in LogContext.get_all()

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            LogContext.bind(correlation_id="c")
        with pytest.raises(ValueError):
            LogContext.set(trace_id="t")
        assert LogContext.get_all() == {}

    def test_fields(self):
        assert LogContext.FIELDS == ("request_id", "actor_id", "branch_id")


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        handlers = logging.getLogger("approval_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers

    def test_get_logger_returns_child(self):
        logger = get_logger("services.approval_service")
        assert logger.name == "approval_kernel.services.approval_service"

    def test_logger_hierarchy(self):
        """Child loggers inherit the approval_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "approval_kernel.deep.nested.module"
