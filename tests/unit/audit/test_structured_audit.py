"""
Tests for structured audit contexts and StructuredAuditLogger.
"""

from typing import Any, Callable, Dict, List
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from gdpr_log_filter import AuditContext, ErrorContext, StructuredAuditLogger
from gdpr_log_filter.core.audit import RateLimitedAuditLogger
from gdpr_log_filter.core.structured_audit import MASKING_FAILED
from gdpr_log_filter.models.audit_context import (
    OP_CALLBACK,
    OP_REGEX,
    STATUS_FAILED,
    STATUS_RECOVERED,
    STATUS_SKIPPED,
    STATUS_SUCCESS,
)


class TestAuditContext:
    """Test AuditContext factories and serialization."""

    def test_success(self) -> None:
        context = AuditContext.success(OP_REGEX, 1.23456, {"path": "user.email"})

        assert context.status == STATUS_SUCCESS
        assert context.is_success
        assert context.to_dict() == {
            "operation_type": "regex",
            "status": "success",
            "attempt_number": 1,
            "duration_ms": 1.235,
            "metadata": {"path": "user.email"},
        }

    def test_failed_carries_error(self) -> None:
        error = ErrorContext.create("ValueError", "bad input")
        context = AuditContext.failed(OP_CALLBACK, error, attempt_number=3)

        assert context.status == STATUS_FAILED
        assert not context.is_success
        assert context.to_dict()["error"] == {"error_type": "ValueError", "message": "bad input", "code": 0}
        assert context.to_dict()["attempt_number"] == 3

    def test_recovered_counts_as_success(self) -> None:
        context = AuditContext.recovered(OP_CALLBACK, attempt_number=2)
        assert context.status == STATUS_RECOVERED
        assert context.is_success

    def test_skipped_reason(self) -> None:
        context = AuditContext.skipped("conditional", "level_rule", {"path": "x"})
        assert context.status == STATUS_SKIPPED
        assert context.metadata == {"path": "x", "skip_reason": "level_rule"}

    def test_with_helpers_return_copies(self) -> None:
        context = AuditContext.success(OP_REGEX, metadata={"a": 1})
        updated = context.with_correlation_id("abc").with_metadata({"b": 2})

        assert context.correlation_id is None
        assert context.metadata == {"a": 1}
        assert updated.correlation_id == "abc"
        assert updated.metadata == {"a": 1, "b": 2}

    def test_correlation_id_format(self) -> None:
        first = AuditContext.generate_correlation_id()
        assert len(first) == 16
        int(first, 16)
        assert first != AuditContext.generate_correlation_id()

    @pytest.mark.parametrize("field, value", [("attempt_number", 0), ("duration_ms", -1.0)])
    def test_invalid_values_rejected(self, field: str, value: Any) -> None:
        with pytest.raises(ValidationError):
            AuditContext(operation_type=OP_REGEX, **{field: value})

    def test_frozen(self) -> None:
        context = AuditContext.success(OP_REGEX)
        with pytest.raises(ValidationError):
            context.status = STATUS_FAILED  # type: ignore[misc]


class TestErrorContext:
    """Test exception capture."""

    def raise_and_capture(self, include_sensitive: bool) -> ErrorContext:
        try:
            raise ConnectionError("connect failed password=hunter2")
        except ConnectionError as e:
            return ErrorContext.from_exception(e, include_sensitive=include_sensitive)

    def test_message_sanitized_by_default(self) -> None:
        error = self.raise_and_capture(include_sensitive=False)

        assert error.error_type == "ConnectionError"
        assert "hunter2" not in error.message
        assert error.file is None
        assert error.line is None
        assert error.metadata == {}

    def test_sensitive_details_on_request(self) -> None:
        error = self.raise_and_capture(include_sensitive=True)

        assert "hunter2" in error.message
        assert error.file is not None and error.file.endswith("test_structured_audit.py")
        assert isinstance(error.line, int)
        assert 1 <= len(error.metadata["trace"]) <= 5

    def test_errno_becomes_code(self) -> None:
        error = ErrorContext.from_exception(OSError(13, "Permission denied"))
        assert error.code == 13

    def test_create_sanitizes(self) -> None:
        assert "abc123" not in ErrorContext.create("Auth", "token=abc123").message


@pytest.fixture
def context_logger() -> MagicMock:
    return MagicMock()


@pytest.fixture
def structured(
    audit_logger: Callable[[str, Any, Any], None], context_logger: MagicMock
) -> StructuredAuditLogger:
    return StructuredAuditLogger(audit_logger, correlation_id="corr-1", context_logger=context_logger)


class TestStructuredAuditLogger:
    """Test forwarding and context events."""

    def test_plain_call_forwards_only(
        self,
        structured: StructuredAuditLogger,
        audit_events: List[Dict[str, Any]],
        context_logger: MagicMock,
    ) -> None:
        structured("user.ssn", "123-45-6789", "[SSN]")

        assert audit_events == [{"path": "user.ssn", "original": "123-45-6789", "masked": "[SSN]"}]
        context_logger.info.assert_not_called()

    def test_context_event(
        self, structured: StructuredAuditLogger, context_logger: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("time.time", lambda: 1700000000.0)
        structured.log_success("user.email", "a@example.com", "[EMAIL]", OP_REGEX, duration_ms=2.5)

        context_logger.info.assert_called_once()
        args, kwargs = context_logger.info.call_args
        assert args == ("masking_audit_context",)
        assert kwargs["path"] == "user.email"
        assert kwargs["operation_type"] == "regex"
        assert kwargs["correlation_id"] == "corr-1"
        assert kwargs["metadata"] == {"path": "user.email", "timestamp": 1700000000.0, "duration_ms": 2.5}

    def test_values_never_reach_context_event(
        self, structured: StructuredAuditLogger, context_logger: MagicMock
    ) -> None:
        structured.log_success("user.email", "a@example.com", "[EMAIL]", OP_REGEX)
        logged = repr(context_logger.info.call_args)
        assert "a@example.com" not in logged
        assert "[EMAIL]" not in logged

    def test_optional_metadata_disabled(
        self, audit_logger: Callable[[str, Any, Any], None], context_logger: MagicMock
    ) -> None:
        structured = StructuredAuditLogger(
            audit_logger, include_timestamp=False, include_duration=False, context_logger=context_logger
        )
        structured.log_success("id", 1, "x", OP_REGEX, duration_ms=4.0)

        kwargs = context_logger.info.call_args.kwargs
        assert kwargs["metadata"] == {"path": "id"}
        assert kwargs["correlation_id"] == structured.correlation_id

    def test_existing_correlation_id_kept(
        self, structured: StructuredAuditLogger, context_logger: MagicMock
    ) -> None:
        context = AuditContext.success(OP_REGEX).with_correlation_id("upstream")
        structured.log("id", 1, "x", context)
        assert context_logger.info.call_args.kwargs["correlation_id"] == "upstream"

    def test_failure_uses_marker_and_warning(
        self,
        structured: StructuredAuditLogger,
        audit_events: List[Dict[str, Any]],
        context_logger: MagicMock,
    ) -> None:
        error = ErrorContext.create("ValueError", "bad")
        structured.log_failure("user.token", "secret", OP_CALLBACK, error, attempt_number=2)

        assert audit_events[0]["masked"] == MASKING_FAILED
        context_logger.warning.assert_called_once()
        kwargs = context_logger.warning.call_args.kwargs
        assert kwargs["status"] == "failed"
        assert kwargs["attempt_number"] == 2
        assert kwargs["error"]["error_type"] == "ValueError"

    def test_skipped_passes_value_through(
        self,
        structured: StructuredAuditLogger,
        audit_events: List[Dict[str, Any]],
        context_logger: MagicMock,
    ) -> None:
        structured.log_skipped("user.name", "John", "conditional", "level_rule")

        assert audit_events[0]["original"] == audit_events[0]["masked"] == "John"
        assert context_logger.info.call_args.kwargs["metadata"]["skip_reason"] == "level_rule"

    def test_recovery(self, structured: StructuredAuditLogger, context_logger: MagicMock) -> None:
        structured.log_recovery("id", 1, "x", OP_CALLBACK, attempt_number=2)
        assert context_logger.info.call_args.kwargs["status"] == "recovered"

    def test_broken_wrapped_logger_contained(self, context_logger: MagicMock) -> None:
        def broken(path: str, original: Any, masked: Any) -> None:
            raise IOError("sink down")

        structured = StructuredAuditLogger(broken, context_logger=context_logger)
        structured.log_success("id", 1, "x", OP_REGEX)
        context_logger.info.assert_called_once()

    def test_timer(self) -> None:
        start = StructuredAuditLogger.start_timer()
        assert StructuredAuditLogger.elapsed(start) >= 0.0

    def test_with_wrapped_logger(self, structured: StructuredAuditLogger, context_logger: MagicMock) -> None:
        limited = RateLimitedAuditLogger.create(lambda p, o, m: None, "testing")
        copy = structured.with_wrapped_logger(limited)

        assert copy.wrapped_logger is limited
        assert copy.correlation_id == "corr-1"
        assert copy.context_logger is context_logger
        assert structured.wrapped_logger is not limited

    def test_wrap(self, audit_logger: Callable[[str, Any, Any], None]) -> None:
        assert StructuredAuditLogger.wrap(audit_logger).wrapped_logger is audit_logger
