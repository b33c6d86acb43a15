"""
Custom exceptions for the GDPR log filter.

Configuration-time errors are raised to the caller and are fatal to
construction. Per-record errors (rule failures, unmaskable values, audit
callback failures) are created for structured logging and then contained.
"""

from typing import Any, Dict, Optional


class GdprFilterException(Exception):
    """Base exception for the GDPR log filter."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(GdprFilterException):
    """Raised when the masking configuration is invalid."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "invalid_configuration",
    ) -> None:
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
        )

    @classmethod
    def for_parameter(cls, parameter: str, value: Any, reason: str) -> "ConfigurationError":
        """Build an error naming the offending parameter."""
        return cls(
            f"Invalid configuration for '{parameter}': {reason}",
            details={"parameter": parameter, "value": repr(value)[:100], "reason": reason},
        )


class PatternValidationError(ConfigurationError):
    """Raised when a regex pattern is malformed or potentially unsafe."""

    def __init__(self, pattern: str, reason: str = "Pattern failed validation or is potentially unsafe") -> None:
        super().__init__(
            message=f"Invalid regex pattern '{pattern}': {reason}",
            details={"pattern": pattern, "reason": reason},
            error_code="invalid_pattern",
        )
        self.pattern = pattern


class InvalidRateLimitConfigurationError(ConfigurationError):
    """Raised when rate limiter bounds or keys are invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            details=details,
            error_code="invalid_rate_limit_configuration",
        )

    @classmethod
    def for_parameter(cls, parameter: str, value: Any, reason: str) -> "InvalidRateLimitConfigurationError":
        return cls(
            f"Invalid rate limit parameter '{parameter}' ({value!r}): {reason}",
            details={"parameter": parameter, "value": value, "reason": reason},
        )


class RuleExecutionError(GdprFilterException):
    """Raised when a conditional rule predicate fails."""

    def __init__(self, rule_name: str, message: str) -> None:
        super().__init__(
            message=f"Conditional rule '{rule_name}' failed: {message}",
            error_code="rule_execution_failed",
            details={"rule_name": rule_name},
        )
        self.rule_name = rule_name


class MaskingOperationFailedError(GdprFilterException):
    """Raised when a single value cannot be stringified or encoded."""

    def __init__(self, operation: str, value_type: str, reason: str) -> None:
        super().__init__(
            message=f"Masking operation '{operation}' failed for {value_type}: {reason}",
            error_code="masking_operation_failed",
            details={"operation": operation, "value_type": value_type},
        )
        self.operation = operation


class AuditLoggingError(GdprFilterException):
    """Raised when the caller-supplied audit callback fails."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(
            message=f"Audit logging failed for '{path}': {message}",
            error_code="audit_logging_failed",
            details={"path": path},
        )
        self.path = path
