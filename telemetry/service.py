"""
Structured logging for the session store service.

All log records leave the process as one JSON object per line on stdout,
tagged with the id of the request that produced them. Administrative
session operations (listing, out-of-band updates, deletes by id) are
additionally written as audit events.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Optional, Dict

from middleware.request_id import request_id_var

AUDIT_LOGGER_NAME = "telemetry.audit"


class JSONFormatter(logging.Formatter):
    """
    Log formatter emitting one JSON object per record.

    Every entry carries timestamp, level, message, logger and request_id,
    plus the source location. A dict passed as ``extra={"extra_data": ...}``
    is merged into the entry.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": request_id_var.get(""),
            "module": record.module,
            "line": record.lineno,
        }
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


class TelemetryService:
    """
    Configures JSON logging and records audit events.

    Attributes:
        settings: Application settings providing ``log_level``
    """

    def __init__(self, settings: Optional[Any] = None):
        self.settings = settings
        self.log_level = getattr(settings, "log_level", None) or "INFO"
        self._audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Replace the root handlers with a single JSON handler on stdout."""
        level = getattr(logging, self.log_level.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(level)
        stdout_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(stdout_handler)

        logging.getLogger("telemetry").info(
            "Telemetry service initialized",
            extra={"extra_data": {"log_level": self.log_level}},
        )

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def log_audit_event(
        self,
        event_type: str,
        resource_type: str,
        resource_id: Optional[str],
        action: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log an audit event for an administrative operation.

        Args:
            event_type: Kind of event, e.g. "session_admin"
            resource_type: Type of the resource acted upon
            resource_id: Id of the resource, None for bulk operations
            action: What was done, e.g. "list", "update", "delete"
            details: Extra context such as the ids deleted
        """
        audit_data: Dict[str, Any] = {
            "audit_event": True,
            "event_type": event_type,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "action": action,
        }
        if details:
            audit_data["details"] = details

        self._audit_logger.info(
            f"Audit: {event_type} - {action} on {resource_type}",
            extra={"extra_data": audit_data},
        )


_telemetry_service: Optional[TelemetryService] = None


def get_telemetry_service() -> Optional[TelemetryService]:
    """Return the service set up by initialize_telemetry(), if any."""
    return _telemetry_service


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """Set up logging from ``settings`` and register the global service."""
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service
