"""
Type-tag based masking.

Values are classified into a closed set of kinds and each kind can carry a
mask token in the configuration. Tokens are literal replacements with a few
sentinels: ``preserve`` keeps the value, ``recursive`` (arrays only) walks
the container, and numeric or boolean literals are coerced back to the
value's own type.
"""

import io
import re
import socket
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from ..models.audit_event import MAX_DEPTH_REACHED
from . import defaults
from .audit import AuditLogger, emit_audit

logger = structlog.get_logger(__name__)

PRESERVE = "preserve"
RECURSIVE = "recursive"

RecursiveMaskFn = Callable[[Any, int], Any]
LeafFn = Callable[[Any], Any]

_NUMERIC = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


class ValueKind(str, Enum):
    """Runtime kinds a context value can have."""

    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STR = "str"
    LIST = "list"
    MAP = "map"
    OBJECT = "object"
    RESOURCE = "resource"


# Configuration tag -> kinds it covers
TAG_KINDS: Dict[str, Tuple[ValueKind, ...]] = {
    "NULL": (ValueKind.NULL,),
    "null": (ValueKind.NULL,),
    "boolean": (ValueKind.BOOL,),
    "bool": (ValueKind.BOOL,),
    "integer": (ValueKind.INT,),
    "int": (ValueKind.INT,),
    "double": (ValueKind.FLOAT,),
    "float": (ValueKind.FLOAT,),
    "string": (ValueKind.STR,),
    "str": (ValueKind.STR,),
    "array": (ValueKind.LIST, ValueKind.MAP),
    "object": (ValueKind.OBJECT,),
    "resource": (ValueKind.RESOURCE,),
}


def classify(value: Any) -> ValueKind:
    """Classify a value. ``bool`` is checked before ``int``."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int):
        return ValueKind.INT
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, str):
        return ValueKind.STR
    if isinstance(value, (list, tuple)):
        return ValueKind.LIST
    if isinstance(value, dict):
        return ValueKind.MAP
    if isinstance(value, (io.IOBase, socket.socket)):
        return ValueKind.RESOURCE
    return ValueKind.OBJECT


def same_value(a: Any, b: Any) -> bool:
    """
    Strict equality that also compares types.

    Plain ``==`` treats ``1``, ``1.0`` and ``True`` as equal, which would hide
    a mask that only changed the value's type.
    """
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(same_value(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)):
        return len(a) == len(b) and all(same_value(x, y) for x, y in zip(a, b))
    return bool(a == b)


def is_numeric_token(token: str) -> bool:
    return bool(_NUMERIC.match(token))


def to_int(token: str) -> int:
    try:
        return int(token)
    except ValueError:
        return int(float(token))


def join_path(current_path: str, key: Any) -> str:
    return str(key) if current_path == "" else f"{current_path}.{key}"


class DataTypeMasker:
    """
    Masks values by their runtime kind.

    Args:
        data_type_masks: Mapping of type tag (see TAG_KINDS) to mask token
        audit_logger: Optional audit callable
        max_depth: Depth bound for apply_to_context walks
    """

    def __init__(
        self,
        data_type_masks: Optional[Dict[str, str]] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_depth: int = 100,
    ) -> None:
        self.data_type_masks = dict(data_type_masks or {})
        self.audit_logger = audit_logger
        self.max_depth = max_depth

        self._masks: Dict[ValueKind, str] = {}
        for tag, token in self.data_type_masks.items():
            for kind in TAG_KINDS.get(tag, ()):
                self._masks[kind] = token

    @staticmethod
    def get_default_masks() -> Dict[str, str]:
        """Get the default token for every type tag."""
        return {
            "integer": defaults.MASK_INT,
            "double": defaults.MASK_FLOAT,
            "string": defaults.MASK_STRING,
            "boolean": defaults.MASK_BOOL,
            "NULL": defaults.MASK_NULL,
            "array": defaults.MASK_ARRAY,
            "object": defaults.MASK_OBJECT,
            "resource": defaults.MASK_RESOURCE,
        }

    def set_audit_logger(self, audit_logger: Optional[AuditLogger]) -> None:
        self.audit_logger = audit_logger

    def has_mask(self, value: Any) -> bool:
        return classify(value) in self._masks

    def is_recursive(self, value: Any) -> bool:
        """True when ``value`` is a container whose configured token is ``recursive``."""
        kind = classify(value)
        return kind in (ValueKind.LIST, ValueKind.MAP) and self._masks.get(kind) == RECURSIVE

    def apply_masking(self, value: Any, recursive_mask_fn: Optional[RecursiveMaskFn] = None) -> Any:
        """
        Mask a single value according to its kind.

        Args:
            value: Value to mask
            recursive_mask_fn: Called as ``fn(value, 0)`` for ``recursive`` arrays

        Returns:
            The masked value, or ``value`` itself when its kind has no token
        """
        kind = classify(value)
        token = self._masks.get(kind)
        if token is None or token == PRESERVE:
            return value

        if kind is ValueKind.INT:
            return to_int(token) if is_numeric_token(token) else token
        if kind is ValueKind.FLOAT:
            return float(token) if is_numeric_token(token) else token
        if kind is ValueKind.BOOL:
            if token == "true":
                return True
            if token == "false":
                return False
            return token
        if kind in (ValueKind.LIST, ValueKind.MAP):
            if token == RECURSIVE:
                return recursive_mask_fn(value, 0) if recursive_mask_fn is not None else value
            return [token]
        if kind is ValueKind.OBJECT:
            return {"masked": token, "original_class": type(value).__name__}
        return token

    def apply_to_context(
        self,
        context: Any,
        processed_paths: Iterable[str] = (),
        current_path: str = "",
        recursive_mask_fn: Optional[RecursiveMaskFn] = None,
        leaf_fn: Optional[LeafFn] = None,
        depth: int = 0,
    ) -> Any:
        """
        Walk a context tree and mask every leaf not already processed.

        Containers are always descended into. Leaves go through ``leaf_fn``
        when given, otherwise through apply_masking. An audit event is emitted
        at the leaf's dotted path when the value changes.

        Args:
            context: Dict or list to walk
            processed_paths: Paths finalized by field-path or callback masking
            current_path: Dotted path of ``context`` itself
            recursive_mask_fn: Passed through to apply_masking
            leaf_fn: Leaf transformation
            depth: Current depth

        Returns:
            A new tree; ``context`` is not modified
        """
        processed = processed_paths if isinstance(processed_paths, (set, frozenset)) else set(processed_paths)

        if depth >= self.max_depth:
            emit_audit(self.audit_logger, MAX_DEPTH_REACHED, depth, f"Recursion depth limit ({self.max_depth}) reached")
            return context

        if isinstance(context, dict):
            result: Any = {}
            for key, value in context.items():
                result[key] = self._process_field(
                    value, join_path(current_path, key), processed, recursive_mask_fn, leaf_fn, depth
                )
            return result

        if isinstance(context, (list, tuple)):
            items: List[Any] = [
                self._process_field(value, join_path(current_path, index), processed, recursive_mask_fn, leaf_fn, depth)
                for index, value in enumerate(context)
            ]
            return items if isinstance(context, list) else tuple(items)

        return context

    def _process_field(
        self,
        value: Any,
        field_path: str,
        processed: set,
        recursive_mask_fn: Optional[RecursiveMaskFn],
        leaf_fn: Optional[LeafFn],
        depth: int,
    ) -> Any:
        if field_path in processed:
            return value

        if isinstance(value, (dict, list, tuple)):
            return self.apply_to_context(value, processed, field_path, recursive_mask_fn, leaf_fn, depth + 1)

        masked = leaf_fn(value) if leaf_fn is not None else self.apply_masking(value, recursive_mask_fn)
        if not same_value(masked, value):
            logger.debug("Value masked by type", path=field_path, kind=classify(value).value)
            emit_audit(self.audit_logger, field_path, value, masked)
        return masked
