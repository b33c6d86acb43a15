"""
Failure-mode policies for values that cannot be masked.
"""

from enum import Enum
from typing import Any, Dict, Optional

from . import defaults
from .data_types import ValueKind, classify

# Tag used by with_mappings() for each kind
_KIND_TAGS = {
    ValueKind.NULL: "NULL",
    ValueKind.BOOL: "boolean",
    ValueKind.INT: "integer",
    ValueKind.FLOAT: "double",
    ValueKind.STR: "string",
    ValueKind.LIST: "array",
    ValueKind.MAP: "array",
    ValueKind.OBJECT: "object",
    ValueKind.RESOURCE: "resource",
}


class FailureMode(str, Enum):
    """What to emit in place of a value that could not be masked."""

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"
    FAIL_SAFE = "fail_safe"

    @property
    def description(self) -> str:
        return {
            FailureMode.FAIL_OPEN: "Return original value on failure (risky)",
            FailureMode.FAIL_CLOSED: "Return fully redacted value on failure (strict)",
            FailureMode.FAIL_SAFE: "Apply conservative fallback mask on failure (balanced)",
        }[self]

    @classmethod
    def recommended(cls) -> "FailureMode":
        return cls.FAIL_SAFE


class FallbackMaskStrategy:
    """
    Computes fallback values for the failure modes.

    Args:
        custom_fallbacks: Per-tag overrides (``string``, ``integer``, ...) plus
            an optional ``closed`` entry used by fail_closed
        default_fallback: Used by fail_safe when type preservation is off
        preserve_type: Emit type-specific masks in fail_safe mode
    """

    def __init__(
        self,
        custom_fallbacks: Optional[Dict[str, Any]] = None,
        default_fallback: str = defaults.MASK_MASKED,
        preserve_type: bool = True,
    ) -> None:
        self.custom_fallbacks = dict(custom_fallbacks or {})
        self.default_fallback = default_fallback
        self.preserve_type = preserve_type

    @classmethod
    def default(cls) -> "FallbackMaskStrategy":
        return cls()

    @classmethod
    def strict(cls, mask: str = defaults.MASK_REDACTED) -> "FallbackMaskStrategy":
        return cls(default_fallback=mask, preserve_type=False)

    @classmethod
    def with_mappings(cls, mappings: Dict[str, Any]) -> "FallbackMaskStrategy":
        return cls(custom_fallbacks=mappings)

    def get_fallback(self, original: Any, mode: FailureMode = FailureMode.FAIL_SAFE) -> Any:
        if mode is FailureMode.FAIL_OPEN:
            return original
        if mode is FailureMode.FAIL_CLOSED:
            return self.custom_fallbacks.get("closed", defaults.MASK_REDACTED)
        return self._safe_fallback(original)

    def _safe_fallback(self, original: Any) -> Any:
        kind = classify(original)
        tag = _KIND_TAGS[kind]
        if tag in self.custom_fallbacks:
            return self.custom_fallbacks[tag]

        if not self.preserve_type:
            return self.default_fallback

        if kind is ValueKind.STR:
            if len(original) <= 10:
                return defaults.MASK_STRING
            return f"{defaults.MASK_STRING} ({len(original)} chars)"
        if kind is ValueKind.INT:
            return defaults.MASK_INT
        if kind is ValueKind.FLOAT:
            return defaults.MASK_FLOAT
        if kind is ValueKind.BOOL:
            return defaults.MASK_BOOL
        if kind is ValueKind.NULL:
            return defaults.MASK_NULL
        if kind in (ValueKind.LIST, ValueKind.MAP):
            if not original:
                return defaults.MASK_ARRAY
            return f"{defaults.MASK_ARRAY} ({len(original)} items)"
        if kind is ValueKind.OBJECT:
            return f"{defaults.MASK_OBJECT} ({type(original).__name__})"
        return defaults.MASK_RESOURCE

    def get_configuration(self) -> Dict[str, Any]:
        return {
            "custom_fallbacks": dict(self.custom_fallbacks),
            "default_fallback": self.default_fallback,
            "preserve_type": self.preserve_type,
        }
