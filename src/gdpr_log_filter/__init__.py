"""
GDPR log filter - masking engine for structured log records.

Redacts personal and otherwise sensitive data from a record's message and
context before it reaches a log sink, with a rate-limited audit trail of
every redaction.
"""

__version__ = "0.1.0"

from .models import (
    AuditContext,
    AuditEvent,
    ErrorContext,
    MaskingConfig,
    callback,
    regex_mask,
    remove,
    replace,
    use_processor_patterns,
)
from .core.audit import AuditLoggerFactory, RateLimitedAuditLogger
from .core.conditions import (
    ConditionalRuleEvaluator,
    channel_based_rule,
    context_field_rule,
    context_value_rule,
    level_based_rule,
)
from .core.defaults import default_patterns
from .core.exceptions import (
    AuditLoggingError,
    ConfigurationError,
    GdprFilterException,
    InvalidRateLimitConfigurationError,
    MaskingOperationFailedError,
    PatternValidationError,
    RuleExecutionError,
)
from .core.orchestrator import MaskedRecord, MaskingOrchestrator
from .core.patterns import PatternValidator
from .core.rate_limit import RateLimiter
from .core.recovery import FailureMode, FallbackMaskStrategy
from .core.serialized import SerializedDataProcessor
from .core.structured_audit import StructuredAuditLogger

__all__ = [
    "AuditContext",
    "AuditEvent",
    "AuditLoggerFactory",
    "AuditLoggingError",
    "ConditionalRuleEvaluator",
    "ConfigurationError",
    "ErrorContext",
    "FailureMode",
    "FallbackMaskStrategy",
    "GdprFilterException",
    "InvalidRateLimitConfigurationError",
    "MaskedRecord",
    "MaskingConfig",
    "MaskingOperationFailedError",
    "MaskingOrchestrator",
    "PatternValidationError",
    "PatternValidator",
    "RateLimitedAuditLogger",
    "RateLimiter",
    "RuleExecutionError",
    "SerializedDataProcessor",
    "StructuredAuditLogger",
    "callback",
    "channel_based_rule",
    "context_field_rule",
    "context_value_rule",
    "default_patterns",
    "level_based_rule",
    "regex_mask",
    "remove",
    "replace",
    "use_processor_patterns",
]
