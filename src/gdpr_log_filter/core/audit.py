"""
Audit trail plumbing.

An audit logger is any callable ``(path, original, masked) -> None``. Calls
go through ``emit_audit`` so a failing callback can never abort masking.
``RateLimitedAuditLogger`` protects the callback from floods by grouping
paths into operation buckets with independent sliding-window limits.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..models.audit_event import RATE_LIMIT_EXCEEDED, AuditEvent
from .exceptions import AuditLoggingError, InvalidRateLimitConfigurationError
from .rate_limit import RateLimiter, RateLimitStore
from .sanitizer import sanitize_error_message

logger = structlog.get_logger(__name__)

AuditLogger = Callable[[str, Any, Any], None]

# profile -> (max requests, window seconds)
RATE_LIMIT_PRESETS: Dict[str, tuple] = {
    "strict": (50, 60),
    "default": (100, 60),
    "relaxed": (200, 60),
    "testing": (1000, 60),
}

OPERATION_BUCKETS = (
    "json_operations",
    "conditional_operations",
    "regex_operations",
    "error_operations",
    "general_operations",
)


def emit_audit(audit_logger: Optional[AuditLogger], path: str, original: Any, masked: Any) -> None:
    """
    Invoke an audit callback on a best-effort basis.

    Errors raised by the callback are logged and discarded.
    """
    if audit_logger is None:
        return
    try:
        audit_logger(path, original, masked)
    except Exception as e:
        error = AuditLoggingError(path, sanitize_error_message(str(e)))
        logger.warning(
            "Audit logger failed",
            path=path,
            error_code=error.error_code,
            error=str(error),
            error_type=type(e).__name__,
        )


def classify_operation(path: str) -> str:
    """Map an audit path onto its rate-limit bucket."""
    if "json_" in path:
        return "json_operations"
    if "conditional_" in path:
        return "conditional_operations"
    if "regex_" in path or "preg_replace_" in path:
        return "regex_operations"
    if "error" in path:
        return "error_operations"
    return "general_operations"


class RateLimitedAuditLogger:
    """
    Rate-limited wrapper around an audit logger.

    Each operation bucket gets ``max_requests_per_minute`` events per window.
    The first event dropped in a window is replaced by one synthetic
    ``rate_limit_exceeded`` event; further drops in that window are silent.
    """

    def __init__(
        self,
        base_logger: Any,
        max_requests_per_minute: int = 100,
        window_seconds: int = 60,
        store: Optional[RateLimitStore] = None,
        metrics: Optional[Any] = None,
    ) -> None:
        self.base_logger = base_logger if callable(base_logger) else None
        self.rate_limiter = RateLimiter(max_requests_per_minute, window_seconds, store=store)
        self.warning_limiter = RateLimiter(1, window_seconds, store=self.rate_limiter.store)
        self.metrics = metrics

        if self.base_logger is None:
            logger.debug("Non-callable base audit logger; events will be discarded")

    @staticmethod
    def _key(path: str) -> str:
        return "audit:" + classify_operation(path)

    def __call__(self, path: str, original: Any, masked: Any) -> None:
        key = self._key(path)

        if self.rate_limiter.is_allowed(key):
            emit_audit(self.base_logger, path, original, masked)
            return

        if self.metrics is not None:
            self.metrics.record_audit_drop(classify_operation(path))
        self._rate_limit_exceeded(path, key)

    def _rate_limit_exceeded(self, path: str, key: str) -> None:
        if not self.warning_limiter.is_allowed("warning:" + key):
            return

        stats = self.rate_limiter.get_stats(key)
        logger.warning("Audit logging rate limit exceeded", bucket=key, **stats)
        emit_audit(
            self.base_logger,
            RATE_LIMIT_EXCEEDED,
            path,
            f"Audit logging rate limit exceeded for operation type: {key}. Stats: {json.dumps(stats)}",
        )

    def is_operation_allowed(self, path: str) -> bool:
        """Consume one slot from the bucket ``path`` belongs to and report the outcome."""
        return self.rate_limiter.is_allowed(self._key(path))

    def get_rate_limit_stats(self) -> Dict[str, Dict[str, int]]:
        """Get stats for every bucket that has recorded events in the current window."""
        stats = {}
        for bucket in OPERATION_BUCKETS:
            key = "audit:" + bucket
            bucket_stats = self.rate_limiter.get_stats(key)
            if bucket_stats["current_requests"] > 0:
                stats[key] = bucket_stats
        return stats

    def clear_rate_limit_data(self) -> None:
        self.rate_limiter.clear_all()

    @classmethod
    def create(
        cls,
        base_logger: Any,
        profile: str = "default",
        store: Optional[RateLimitStore] = None,
        metrics: Optional[Any] = None,
    ) -> "RateLimitedAuditLogger":
        """
        Build a logger from a named preset.

        Args:
            base_logger: Audit callable to wrap
            profile: One of strict, default, relaxed, testing

        Raises:
            InvalidRateLimitConfigurationError: For unknown profile names
        """
        if profile not in RATE_LIMIT_PRESETS:
            raise InvalidRateLimitConfigurationError.for_parameter(
                "profile", profile, f"must be one of {sorted(RATE_LIMIT_PRESETS)}"
            )
        max_requests, window = RATE_LIMIT_PRESETS[profile]
        return cls(base_logger, max_requests, window, store=store, metrics=metrics)


class AuditLoggerFactory:
    """Builders for common audit logger shapes."""

    def create_rate_limited(self, base_logger: AuditLogger, profile: str = "default") -> RateLimitedAuditLogger:
        return RateLimitedAuditLogger.create(base_logger, profile)

    def create_array_logger(self, storage: List[Dict[str, Any]], rate_limited: bool = False) -> AuditLogger:
        """
        Create a logger that appends event dicts to ``storage``.

        Args:
            storage: List receiving ``{"path", "original", "masked", "timestamp"}`` dicts
            rate_limited: Wrap with the ``testing`` preset
        """

        def array_logger(path: str, original: Any, masked: Any) -> None:
            storage.append(AuditEvent(path=path, original=original, masked=masked).to_dict())

        if rate_limited:
            return self.create_rate_limited(array_logger, "testing")
        return array_logger

    def create_null_logger(self) -> AuditLogger:
        def null_logger(path: str, original: Any, masked: Any) -> None:
            return None

        return null_logger

    def create_callback_logger(self, callback: Callable[[str, Any, Any], Any]) -> AuditLogger:
        def callback_logger(path: str, original: Any, masked: Any) -> None:
            callback(path, original, masked)

        return callback_logger

    def create_structlog_logger(self, bound_logger: Optional[Any] = None) -> AuditLogger:
        """
        Create a logger that emits ``masking_audit`` events through structlog.

        Only the path and the masked value's type are logged; values never
        reach the log stream.
        """
        target = bound_logger if bound_logger is not None else structlog.get_logger("gdpr_log_filter.audit")

        def structlog_logger(path: str, original: Any, masked: Any) -> None:
            target.info("masking_audit", path=path, masked_type=type(masked).__name__)

        return structlog_logger

    @classmethod
    def rate_limited(cls, base_logger: AuditLogger, profile: str = "default") -> RateLimitedAuditLogger:
        return cls().create_rate_limited(base_logger, profile)

    @classmethod
    def array_logger(cls, storage: List[Dict[str, Any]], rate_limited: bool = False) -> AuditLogger:
        return cls().create_array_logger(storage, rate_limited)
