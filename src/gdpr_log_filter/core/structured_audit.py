"""
Audit logger with structured operation context.

Wraps any audit callable (including a RateLimitedAuditLogger). The wrapped
callable still receives plain ``(path, original, masked)`` calls; the
structured context goes to structlog as ``masking_audit_context`` events
carrying the path and the context, never the values.
"""

import time
from typing import Any, Optional

import structlog

from ..models.audit_context import STATUS_FAILED, AuditContext, ErrorContext
from .audit import AuditLogger, emit_audit

logger = structlog.get_logger(__name__)

MASKING_FAILED = "[MASKING_FAILED]"


class StructuredAuditLogger:
    """
    Audit logger that attaches AuditContext to each entry.

    Args:
        audit_logger: Base audit callable
        include_timestamp: Add ``timestamp`` metadata to each context
        include_duration: Add ``duration_ms`` metadata when the context has one
        correlation_id: Stamped on every context that has none; generated if None
        context_logger: structlog logger for context events
    """

    def __init__(
        self,
        audit_logger: AuditLogger,
        include_timestamp: bool = True,
        include_duration: bool = True,
        correlation_id: Optional[str] = None,
        context_logger: Optional[Any] = None,
    ) -> None:
        self.wrapped_logger = audit_logger
        self.include_timestamp = include_timestamp
        self.include_duration = include_duration
        self.correlation_id = correlation_id or AuditContext.generate_correlation_id()
        self.context_logger = context_logger if context_logger is not None else logger

    @classmethod
    def wrap(cls, audit_logger: AuditLogger) -> "StructuredAuditLogger":
        return cls(audit_logger)

    def __call__(self, path: str, original: Any, masked: Any) -> None:
        self.log(path, original, masked)

    def log(self, path: str, original: Any, masked: Any, context: Optional[AuditContext] = None) -> None:
        """Forward an entry to the wrapped logger, then record its context."""
        emit_audit(self.wrapped_logger, path, original, masked)
        if context is None:
            return

        metadata = {}
        if self.include_timestamp:
            metadata["timestamp"] = time.time()
        if self.include_duration and context.duration_ms > 0:
            metadata["duration_ms"] = context.duration_ms
        if metadata:
            context = context.with_metadata(metadata)
        if context.correlation_id is None:
            context = context.with_correlation_id(self.correlation_id)

        self.log_context(path, context)

    def log_success(
        self, path: str, original: Any, masked: Any, operation_type: str, duration_ms: float = 0.0
    ) -> None:
        self.log(path, original, masked, AuditContext.success(operation_type, duration_ms, {"path": path}))

    def log_failure(
        self,
        path: str,
        original: Any,
        operation_type: str,
        error: ErrorContext,
        attempt_number: int = 1,
    ) -> None:
        """Record a failed operation; the masked value is the MASKING_FAILED marker."""
        context = AuditContext.failed(operation_type, error, attempt_number, metadata={"path": path})
        self.log(path, original, MASKING_FAILED, context)

    def log_recovery(
        self,
        path: str,
        original: Any,
        masked: Any,
        operation_type: str,
        attempt_number: int,
        total_duration_ms: float = 0.0,
    ) -> None:
        context = AuditContext.recovered(operation_type, attempt_number, total_duration_ms, {"path": path})
        self.log(path, original, masked, context)

    def log_skipped(self, path: str, value: Any, operation_type: str, reason: str) -> None:
        self.log(path, value, value, AuditContext.skipped(operation_type, reason, {"path": path}))

    @staticmethod
    def start_timer() -> float:
        return time.perf_counter()

    @staticmethod
    def elapsed(start: float) -> float:
        """Milliseconds since ``start``."""
        return (time.perf_counter() - start) * 1000.0

    def log_context(self, path: str, context: AuditContext) -> None:
        log = self.context_logger.warning if context.status == STATUS_FAILED else self.context_logger.info
        log("masking_audit_context", path=path, **context.to_dict())

    def with_wrapped_logger(self, audit_logger: AuditLogger) -> "StructuredAuditLogger":
        """Copy sharing settings and correlation id but forwarding to another logger."""
        return type(self)(
            audit_logger,
            include_timestamp=self.include_timestamp,
            include_duration=self.include_duration,
            correlation_id=self.correlation_id,
            context_logger=self.context_logger,
        )
