"""
Unit tests for structured logging and audit events.
"""

import json
import logging
from types import SimpleNamespace

import pytest

from middleware.request_id import request_id_var
from telemetry.service import (
    JSONFormatter,
    TelemetryService,
    get_telemetry_service,
    initialize_telemetry,
)


def _record(message="Session store connected", **attrs):
    record = logging.LogRecord(
        name="session.redis_store",
        level=logging.INFO,
        pathname=__file__,
        lineno=42,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_formats_core_fields(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Session store connected"
        assert data["logger"] == "session.redis_store"
        assert data["line"] == 42
        assert data["timestamp"].endswith("Z")

    def test_includes_request_id_from_context(self):
        token = request_id_var.set("req-42")
        try:
            data = json.loads(JSONFormatter().format(_record()))
        finally:
            request_id_var.reset(token)

        assert data["request_id"] == "req-42"

    def test_merges_extra_data(self):
        record = _record(extra_data={"session_count": 3, "key_prefix": "session_"})

        data = json.loads(JSONFormatter().format(record))

        assert data["session_count"] == 3
        assert data["key_prefix"] == "session_"

    def test_includes_exception(self):
        try:
            raise RuntimeError("redis went away")
        except RuntimeError:
            import sys
            record = _record(exc_info=sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: redis went away" in data["exception"]


class TestTelemetryService:
    @pytest.fixture(autouse=True)
    def _restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_configures_root_logger(self):
        TelemetryService(SimpleNamespace(log_level="DEBUG"))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_audit_event(self, caplog):
        service = TelemetryService(SimpleNamespace(log_level="INFO"))
        logging.getLogger().addHandler(caplog.handler)

        service.log_audit_event(
            event_type="session_admin",
            resource_type="session",
            resource_id="ABC",
            action="delete",
            details={"ids": ["ABC"]},
        )

        record = caplog.records[-1]
        assert record.getMessage() == "Audit: session_admin - delete on session"
        assert record.extra_data == {
            "audit_event": True,
            "event_type": "session_admin",
            "resource_type": "session",
            "resource_id": "ABC",
            "action": "delete",
            "details": {"ids": ["ABC"]},
        }

    def test_initialize_sets_global_service(self):
        service = initialize_telemetry(SimpleNamespace(log_level="WARNING"))

        assert get_telemetry_service() is service
