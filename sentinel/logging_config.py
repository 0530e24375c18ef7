"""
Logging configuration for Sentinel.

Provides structured JSON logging for audit trails and debugging.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional

# Correlation id for the scan session being processed
session_id_var: ContextVar[str] = ContextVar('session_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems like ELK, Splunk, or CloudWatch.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        session_id = session_id_var.get()
        if session_id:
            log_data["session_id"] = session_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for checkpoint audit events.

    One method per auditable event: scans, verdicts, manual reviews,
    invitations, incidents and security-relevant failures.
    """

    def __init__(self, name: str = "sentinel.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            **kwargs
        }
        session_id = session_id_var.get()
        if session_id and "session_id" not in extra:
            extra["session_id"] = session_id

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def scan_started(
        self,
        session_id: str,
        station_id: str,
        subject_id: str,
        tier: str,
        modality: str
    ) -> None:
        self._log(
            logging.INFO,
            "SCAN_STARTED",
            session_id=session_id,
            station_id=station_id,
            subject_id=subject_id,
            tier=tier,
            modality=modality,
            message=f"{modality} scan at {station_id} for {tier}"
        )

    def verdict_issued(
        self,
        session_id: str,
        subject_id: str,
        tier: str,
        outcome: str,
        reason: str
    ) -> None:
        """Log a terminal verdict."""
        level = logging.INFO if outcome == "ALLOW" else logging.WARNING
        self._log(
            level,
            "VERDICT_ISSUED",
            session_id=session_id,
            subject_id=subject_id,
            tier=tier,
            outcome=outcome,
            reason=reason,
            message=f"{outcome}: {reason}"
        )

    def review_queued(self, session_id: str, subject_id: str, tier: str) -> None:
        self._log(
            logging.INFO,
            "REVIEW_QUEUED",
            session_id=session_id,
            subject_id=subject_id,
            tier=tier,
            message=f"Manual clearance required for {subject_id} at {tier}"
        )

    def review_resolved(
        self,
        session_id: str,
        subject_id: str,
        tier: str,
        decision: str,
        operator: str
    ) -> None:
        level = logging.INFO if decision == "ALLOWED" else logging.WARNING
        self._log(
            level,
            "REVIEW_RESOLVED",
            session_id=session_id,
            subject_id=subject_id,
            tier=tier,
            decision=decision,
            operator=operator,
            message=f"{tier} clearance {decision.lower()} by {operator}"
        )

    def invitation_registered(self, subject_id: str, host: Optional[str] = None) -> None:
        self._log(
            logging.INFO,
            "INVITATION_REGISTERED",
            subject_id=subject_id,
            host=host,
            message=f"Invitation registered for {subject_id}"
        )

    def incident_recorded(
        self,
        incident_id: str,
        subject_ref: str,
        tier: str,
        reason: str
    ) -> None:
        self._log(
            logging.WARNING,
            "INCIDENT_RECORDED",
            incident_id=incident_id,
            subject_ref=subject_ref,
            tier=tier,
            reason=reason,
            message=f"Scan at [{tier}]. {reason}."
        )

    def session_cancelled(self, session_id: str, station_id: str, state: str) -> None:
        self._log(
            logging.INFO,
            "SESSION_CANCELLED",
            session_id=session_id,
            station_id=station_id,
            state=state,
            message=f"Session cancelled at {station_id} while {state}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


@contextmanager
def session_context(session_id: str):
    """Bind a scan session id to every log line emitted inside the block."""
    token = session_id_var.set(session_id)
    try:
        yield session_id
    finally:
        session_id_var.reset(token)


# Global audit logger instance
audit_log = AuditLogger()
