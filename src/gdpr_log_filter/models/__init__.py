"""
Pydantic data models package.

Contains the validated configuration and event models:
- Field-path mask variants
- Aggregate masking configuration
- Audit events and structured audit context
"""

from .audit_context import AuditContext, ErrorContext
from .audit_event import AuditEvent
from .field_mask import (
    Callback,
    FieldMaskConfig,
    RegexMask,
    Remove,
    Replace,
    UseProcessorPatterns,
    callback,
    parse_field_mask_config,
    regex_mask,
    remove,
    replace,
    use_processor_patterns,
)
from .masking_config import MaskingConfig

__all__ = [
    # Audit
    "AuditContext",
    "AuditEvent",
    "ErrorContext",

    # Field masks
    "Callback",
    "FieldMaskConfig",
    "RegexMask",
    "Remove",
    "Replace",
    "UseProcessorPatterns",
    "callback",
    "parse_field_mask_config",
    "regex_mask",
    "remove",
    "replace",
    "use_processor_patterns",

    # Configuration
    "MaskingConfig",
]
