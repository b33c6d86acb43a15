"""
Tests for the rate-limited audit logger and AuditLoggerFactory.
"""

import json
from typing import Any, Callable, Dict, List
from unittest.mock import MagicMock, patch

import pytest

from gdpr_log_filter.core.audit import (
    RATE_LIMIT_PRESETS,
    AuditLoggerFactory,
    RateLimitedAuditLogger,
    classify_operation,
    emit_audit,
)
from gdpr_log_filter.core.exceptions import InvalidRateLimitConfigurationError
from gdpr_log_filter.core.metrics import MaskingMetrics
from gdpr_log_filter.core.rate_limit import RateLimitStore


@pytest.fixture
def store() -> RateLimitStore:
    return RateLimitStore()


class TestClassifyOperation:
    """Test bucket assignment for audit paths."""

    @pytest.mark.parametrize(
        "path, bucket",
        [
            ("json_masked", "json_operations"),
            ("json_encode_error", "json_operations"),
            ("conditional_skip", "conditional_operations"),
            ("conditional_error", "conditional_operations"),
            ("preg_replace_error", "regex_operations"),
            ("regex_lookup", "regex_operations"),
            ("user.email_callback_error", "error_operations"),
            ("user.email", "general_operations"),
            ("max_depth_reached", "general_operations"),
        ],
    )
    def test_buckets(self, path: str, bucket: str) -> None:
        assert classify_operation(path) == bucket


class TestRateLimitedAuditLogger:
    """Test forwarding, suppression and the synthetic warning event."""

    def test_flood_emits_single_warning(
        self,
        store: RateLimitStore,
        audit_events: List[Dict[str, Any]],
        audit_logger: Callable[[str, Any, Any], None],
    ) -> None:
        """Test 2 events pass, the 3rd becomes one rate_limit_exceeded event and later ones vanish."""
        limited = RateLimitedAuditLogger(audit_logger, max_requests_per_minute=2, window_seconds=60, store=store)

        with patch("time.time", return_value=1000):
            for i in range(5):
                limited("user.email", f"orig{i}", "***")

        assert [e["path"] for e in audit_events] == ["user.email", "user.email", "rate_limit_exceeded"]

        warning = audit_events[2]
        assert warning["original"] == "user.email"
        prefix = "Audit logging rate limit exceeded for operation type: audit:general_operations. Stats: "
        assert warning["masked"].startswith(prefix)
        stats = json.loads(warning["masked"][len(prefix):])
        assert stats == {"current_requests": 2, "remaining_requests": 0, "time_until_reset": 60}

    def test_warning_repeats_in_next_window(
        self,
        store: RateLimitStore,
        audit_events: List[Dict[str, Any]],
        audit_logger: Callable[[str, Any, Any], None],
    ) -> None:
        limited = RateLimitedAuditLogger(audit_logger, max_requests_per_minute=1, window_seconds=60, store=store)

        with patch("time.time") as mock_time:
            mock_time.return_value = 1000
            limited("a", 1, 2)
            limited("a", 1, 2)
            limited("a", 1, 2)

            mock_time.return_value = 1061
            limited("a", 1, 2)
            limited("a", 1, 2)

        assert [e["path"] for e in audit_events] == ["a", "rate_limit_exceeded", "a", "rate_limit_exceeded"]

    def test_buckets_are_independent(
        self,
        store: RateLimitStore,
        audit_events: List[Dict[str, Any]],
        audit_logger: Callable[[str, Any, Any], None],
    ) -> None:
        """Test a flooded bucket does not starve the others."""
        limited = RateLimitedAuditLogger(audit_logger, max_requests_per_minute=1, window_seconds=60, store=store)

        limited("user.email", "a", "b")
        limited("user.phone", "a", "b")
        limited("json_masked", "{}", "{}")
        limited("conditional_skip", "rule", "skipped")

        paths = [e["path"] for e in audit_events]
        assert paths == ["user.email", "rate_limit_exceeded", "json_masked", "conditional_skip"]

    def test_stats_only_for_used_buckets(
        self, store: RateLimitStore, audit_logger: Callable[[str, Any, Any], None]
    ) -> None:
        limited = RateLimitedAuditLogger(audit_logger, max_requests_per_minute=10, window_seconds=60, store=store)
        limited("json_masked", "x", "y")
        limited("json_masked", "x", "y")

        stats = limited.get_rate_limit_stats()
        assert list(stats) == ["audit:json_operations"]
        assert stats["audit:json_operations"]["current_requests"] == 2
        assert stats["audit:json_operations"]["remaining_requests"] == 8

    def test_is_operation_allowed_consumes(
        self, store: RateLimitStore, audit_logger: Callable[[str, Any, Any], None]
    ) -> None:
        limited = RateLimitedAuditLogger(audit_logger, max_requests_per_minute=1, window_seconds=60, store=store)
        assert limited.is_operation_allowed("user.email") is True
        assert limited.is_operation_allowed("user.name") is False

    def test_clear_rate_limit_data(
        self,
        store: RateLimitStore,
        audit_events: List[Dict[str, Any]],
        audit_logger: Callable[[str, Any, Any], None],
    ) -> None:
        limited = RateLimitedAuditLogger(audit_logger, max_requests_per_minute=1, window_seconds=60, store=store)
        limited("a", 1, 2)
        limited.clear_rate_limit_data()
        limited("a", 1, 2)
        assert [e["path"] for e in audit_events] == ["a", "a"]

    def test_non_callable_base_discards(self, store: RateLimitStore) -> None:
        limited = RateLimitedAuditLogger("not callable", store=store)
        assert limited.base_logger is None
        limited("user.email", "a", "b")

    def test_failing_base_is_contained(self, store: RateLimitStore) -> None:
        """Test an exception in the wrapped callback never escapes."""
        base = MagicMock(side_effect=RuntimeError("disk full"))
        limited = RateLimitedAuditLogger(base, store=store)
        limited("user.email", "a", "b")
        base.assert_called_once_with("user.email", "a", "b")

    def test_drops_are_counted(self, store: RateLimitStore, audit_logger: Callable[[str, Any, Any], None]) -> None:
        metrics = MaskingMetrics()
        limited = RateLimitedAuditLogger(
            audit_logger, max_requests_per_minute=1, window_seconds=60, store=store, metrics=metrics
        )
        for _ in range(4):
            limited("json_masked", "x", "y")

        assert metrics.get_sample_value(
            "gdpr_audit_events_dropped_total", {"bucket": "json_operations"}
        ) == 3.0


class TestPresets:
    """Test named rate limit profiles."""

    @pytest.mark.parametrize(
        "profile, limit",
        [("strict", 50), ("default", 100), ("relaxed", 200), ("testing", 1000)],
    )
    def test_profiles(self, store: RateLimitStore, profile: str, limit: int) -> None:
        limited = RateLimitedAuditLogger.create(lambda *a: None, profile, store=store)
        assert limited.rate_limiter.max_requests == limit
        assert limited.rate_limiter.window_seconds == 60
        assert RATE_LIMIT_PRESETS[profile] == (limit, 60)

    def test_unknown_profile(self) -> None:
        with pytest.raises(InvalidRateLimitConfigurationError):
            RateLimitedAuditLogger.create(lambda *a: None, "aggressive")

    def test_strict_profile_caps_at_fifty(self, store: RateLimitStore) -> None:
        received: List[str] = []
        limited = RateLimitedAuditLogger.create(lambda p, o, m: received.append(p), "strict", store=store)

        with patch("time.time", return_value=5000):
            for _ in range(60):
                limited("user.email", "a", "b")

        assert received.count("user.email") == 50
        assert received.count("rate_limit_exceeded") == 1


class TestEmitAudit:
    """Test best-effort invocation."""

    def test_none_logger(self) -> None:
        emit_audit(None, "path", 1, 2)

    def test_exception_is_swallowed_and_logged(self) -> None:
        def broken(path: str, original: Any, masked: Any) -> None:
            raise ValueError("boom")

        with patch("gdpr_log_filter.core.audit.logger") as mock_logger:
            emit_audit(broken, "user.email", "a", "b")

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["error_code"] == "audit_logging_failed"


class TestAuditLoggerFactory:
    """Test the logger builders."""

    def test_array_logger(self) -> None:
        storage: List[Dict[str, Any]] = []
        log = AuditLoggerFactory().create_array_logger(storage)

        with patch("time.time", return_value=1234):
            log("user.email", "john@example.com", "[EMAIL]")

        assert storage == [
            {"path": "user.email", "original": "john@example.com", "masked": "[EMAIL]", "timestamp": 1234}
        ]

    def test_rate_limited_array_logger(self) -> None:
        storage: List[Dict[str, Any]] = []
        log = AuditLoggerFactory.array_logger(storage, rate_limited=True)

        assert isinstance(log, RateLimitedAuditLogger)
        assert log.rate_limiter.max_requests == 1000
        log("a", 1, 2)
        assert len(storage) == 1

    def test_null_logger(self) -> None:
        assert AuditLoggerFactory().create_null_logger()("a", 1, 2) is None

    def test_callback_logger(self) -> None:
        callback = MagicMock(return_value="ignored")
        log = AuditLoggerFactory().create_callback_logger(callback)
        assert log("a", 1, 2) is None
        callback.assert_called_once_with("a", 1, 2)

    def test_rate_limited_classmethod(self) -> None:
        log = AuditLoggerFactory.rate_limited(lambda *a: None, "relaxed")
        assert log.rate_limiter.max_requests == 200

    def test_structlog_logger_hides_values(self) -> None:
        """Test only the path and masked type reach the log stream."""
        bound = MagicMock()
        log = AuditLoggerFactory().create_structlog_logger(bound)
        log("user.ssn", "123-45-6789", "[SSN]")

        bound.info.assert_called_once_with("masking_audit", path="user.ssn", masked_type="str")
