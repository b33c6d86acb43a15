"""
Masking of JSON documents embedded in log messages.

Every balanced ``{...}`` or ``[...]`` substring that parses as JSON is
decoded, masked through a recursive-mask callable and re-encoded compactly.
Text outside those substrings is copied through untouched.
"""

import json
from typing import Any, Callable, Optional, Tuple

import structlog

from ..models.audit_event import JSON_ENCODE_ERROR, JSON_MASKED
from .audit import AuditLogger, emit_audit
from .data_types import same_value
from .exceptions import MaskingOperationFailedError
from .sanitizer import sanitize_error_message

logger = structlog.get_logger(__name__)

RecursiveMaskFn = Callable[[Any, int], Any]

_CLOSERS = {"{": "}", "[": "]"}


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant {name}")


def extract_balanced_structure(message: str, start: int) -> Optional[str]:
    """
    Get the shortest balanced substring starting at ``message[start]``.

    Only the opening character and its closer are counted. Quotes toggle
    string state and backslash escapes are honored inside strings.

    Returns:
        The substring, or None when the structure never closes
    """
    opener = message[start]
    closer = _CLOSERS[opener]
    level = 0
    in_string = False
    escaped = False

    for i in range(start, len(message)):
        char = message[i]
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == opener:
            level += 1
        elif char == closer:
            level -= 1
            if level == 0:
                return message[start:i + 1]

    return None


def restore_empty_objects(original: Any, masked: Any) -> Any:
    """
    Turn empty lists back into empty dicts where the source had ``{}``.

    Walks both trees in parallel, so only positions that were empty
    objects in the original are affected.
    """
    if isinstance(original, dict):
        if not original and isinstance(masked, list) and not masked:
            return {}
        if isinstance(masked, dict):
            return {
                key: restore_empty_objects(original[key], value) if key in original else value
                for key, value in masked.items()
            }
        return masked
    if isinstance(original, list) and isinstance(masked, list):
        restored = [restore_empty_objects(o, m) for o, m in zip(original, masked)]
        restored.extend(masked[len(original):])
        return restored
    return masked


def encode_json(value: Any) -> str:
    """
    Compact, unescaped-unicode encoding.

    Raises:
        MaskingOperationFailedError: When the value cannot be encoded
    """
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise MaskingOperationFailedError("json_encode", type(value).__name__, str(e)) from e


class JsonMasker:
    """
    Finds and masks embedded JSON in a message.

    Args:
        recursive_mask_fn: Called as ``fn(decoded, 0)`` for each decoded document
        audit_logger: Optional audit callable
    """

    def __init__(self, recursive_mask_fn: RecursiveMaskFn, audit_logger: Optional[AuditLogger] = None) -> None:
        self.recursive_mask_fn = recursive_mask_fn
        self.audit_logger = audit_logger

    def set_audit_logger(self, audit_logger: Optional[AuditLogger]) -> None:
        self.audit_logger = audit_logger

    def process_message(self, message: str) -> str:
        parts = []
        i = 0
        length = len(message)

        while i < length:
            char = message[i]
            if char in _CLOSERS:
                candidate = extract_balanced_structure(message, i)
                if candidate is not None:
                    parts.append(self.process_candidate(candidate))
                    i += len(candidate)
                    continue
            parts.append(char)
            i += 1

        return "".join(parts)

    def _decode(self, candidate: str) -> Tuple[bool, Any]:
        try:
            return True, json.loads(candidate, parse_constant=_reject_constant)
        except (ValueError, RecursionError):
            return False, None

    def process_candidate(self, candidate: str) -> str:
        """Mask one balanced candidate; invalid or too deeply nested JSON comes back unchanged."""
        ok, decoded = self._decode(candidate)
        if not ok or not isinstance(decoded, (dict, list)):
            return candidate

        try:
            masked = self.recursive_mask_fn(decoded, 0)
            if same_value(masked, decoded):
                return candidate
            masked = restore_empty_objects(decoded, masked)
            encoded = encode_json(masked)
        except RecursionError:
            logger.warning("Embedded JSON too deeply nested to mask", length=len(candidate))
            return candidate
        except MaskingOperationFailedError as e:
            logger.warning("Failed to re-encode masked JSON", error_code=e.error_code, error=str(e))
            emit_audit(self.audit_logger, JSON_ENCODE_ERROR, candidate, sanitize_error_message(str(e)))
            return candidate

        if encoded != candidate:
            emit_audit(self.audit_logger, JSON_MASKED, candidate, encoded)
        return encoded
