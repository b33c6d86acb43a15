"""
Field-path and custom-callback masking of context trees.
"""

import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from ..models.field_mask import FieldMaskConfig, RegexMask, Remove, Replace, UseProcessorPatterns
from .accessor import DotAccessor
from .audit import AuditLogger, emit_audit
from .data_types import ValueKind, classify, same_value
from .exceptions import MaskingOperationFailedError
from .patterns import PatternValidator, translate_replacement
from .recovery import FailureMode, FallbackMaskStrategy
from .sanitizer import sanitize_error_message

logger = structlog.get_logger(__name__)

StringProcessor = Callable[[str], str]
RecursiveMaskFn = Callable[[Any, int], Any]


def stringify(value: Any) -> str:
    """
    String form of a scalar for pattern masking.

    Raises:
        MaskingOperationFailedError: For values with no meaningful string form
    """
    kind = classify(value)
    if kind is ValueKind.STR:
        return value
    if kind is ValueKind.NULL:
        return ""
    if kind is ValueKind.BOOL:
        return "1" if value else ""
    if kind in (ValueKind.INT, ValueKind.FLOAT):
        return str(value)
    if kind is ValueKind.OBJECT and type(value).__str__ is not object.__str__:
        return str(value)
    raise MaskingOperationFailedError("stringify", type(value).__name__, "value cannot be converted to a string")


def _is_list_element(accessor: DotAccessor, path: str) -> bool:
    parent_path, _, last = path.rpartition(".")
    parent = accessor.get(parent_path) if parent_path else accessor.all()
    return isinstance(parent, (list, tuple)) and last.isdigit()


def _path_sort_key(path: str) -> Tuple[Tuple[int, Any], ...]:
    return tuple((0, int(segment)) if segment.isdigit() else (1, segment) for segment in path.split("."))


def _shift_after_removal(paths: List[str], removed: str) -> List[str]:
    """Renumber paths under the list that lost element ``removed``; drop paths inside it."""
    parent_path, _, last = removed.rpartition(".")
    prefix = parent_path.split(".") if parent_path else []
    index = int(last)
    depth = len(prefix)

    shifted = []
    for path in paths:
        segments = path.split(".")
        if len(segments) <= depth or segments[:depth] != prefix or not segments[depth].isdigit():
            shifted.append(path)
            continue
        position = int(segments[depth])
        if position == index:
            continue
        if position > index:
            segments[depth] = str(position - 1)
        shifted.append(".".join(segments))
    return shifted


class ContextProcessor:
    """
    Applies field-path configs and custom callbacks to a context tree.

    Args:
        field_paths: Dotted path -> field mask config
        custom_callbacks: Dotted path -> callable(value) -> value
        audit_logger: Optional audit callable
        regex_processor: The message pattern chain
        recursive_mask_fn: Used for container values under mask_regex
        pattern_validator: Compiles RegexMask patterns
        failure_mode: Policy for values that cannot be masked
        fallback_strategy: Computes failure-mode fallbacks
        metrics: Optional MaskingMetrics
    """

    def __init__(
        self,
        field_paths: Dict[str, FieldMaskConfig],
        custom_callbacks: Dict[str, Callable[[Any], Any]],
        audit_logger: Optional[AuditLogger],
        regex_processor: StringProcessor,
        recursive_mask_fn: Optional[RecursiveMaskFn] = None,
        pattern_validator: Optional[PatternValidator] = None,
        failure_mode: FailureMode = FailureMode.FAIL_OPEN,
        fallback_strategy: Optional[FallbackMaskStrategy] = None,
        metrics: Optional[Any] = None,
    ) -> None:
        self.field_paths = dict(field_paths)
        self.custom_callbacks = dict(custom_callbacks)
        self.audit_logger = audit_logger
        self.regex_processor = regex_processor
        self.recursive_mask_fn = recursive_mask_fn
        self.pattern_validator = pattern_validator or PatternValidator.default()
        self.failure_mode = failure_mode
        self.fallback_strategy = fallback_strategy or FallbackMaskStrategy.default()
        self.metrics = metrics

    def set_audit_logger(self, audit_logger: Optional[AuditLogger]) -> None:
        self.audit_logger = audit_logger

    def _audit(self, path: str, original: Any, masked: Any) -> None:
        if not same_value(original, masked):
            emit_audit(self.audit_logger, path, original, masked)

    def _record_error(self, kind: str) -> None:
        if self.metrics is not None:
            self.metrics.record_error(kind)

    def fallback(self, value: Any) -> Any:
        return self.fallback_strategy.get_fallback(value, self.failure_mode)

    def mask_field_paths(self, accessor: DotAccessor) -> List[str]:
        """
        Apply every configured field path present in the tree.

        Paths with a custom callback are left to process_custom_callbacks.
        Removals of list elements run last, highest index first, and the
        returned paths are renumbered to match the shortened lists.

        Returns:
            Paths that were processed
        """
        processed = []
        list_removals = []
        for path, config in self.field_paths.items():
            if path in self.custom_callbacks or not accessor.has(path):
                continue

            value = accessor.get(path)
            if isinstance(config, Remove):
                if _is_list_element(accessor, path):
                    list_removals.append(path)
                    continue
                accessor.delete(path)
                emit_audit(self.audit_logger, path, value, None)
                processed.append(path)
                continue

            masked = self.mask_value(path, value, config)
            if not same_value(masked, value):
                accessor.set(path, masked)
                self._audit(path, value, masked)
            processed.append(path)

        for path in sorted(list_removals, key=_path_sort_key, reverse=True):
            value = accessor.get(path)
            accessor.delete(path)
            emit_audit(self.audit_logger, path, value, None)
            processed = _shift_after_removal(processed, path)

        return processed

    def mask_value(self, path: str, value: Any, config: FieldMaskConfig) -> Any:
        """Compute the masked value for one field; never raises for bad values."""
        if isinstance(config, Replace):
            return config.replacement

        try:
            if isinstance(config, UseProcessorPatterns):
                return self._mask_with_patterns(value)
            if isinstance(config, RegexMask):
                compiled = self.pattern_validator.compile(config.pattern)
                return compiled.sub(translate_replacement(config.replacement), stringify(value))
        except re.error as e:
            self._record_error("regex")
            logger.warning("Field regex failed", path=path, error=sanitize_error_message(str(e)))
            return self.fallback(value)
        except MaskingOperationFailedError as e:
            self._record_error("unmaskable_value")
            logger.warning("Field value could not be masked", path=path, error_code=e.error_code, error=str(e))
            return self.fallback(value)

        return value

    def _mask_with_patterns(self, value: Any) -> Any:
        if isinstance(value, (dict, list, tuple)):
            if self.recursive_mask_fn is None:
                return value
            return self.recursive_mask_fn(value, 0)

        text = stringify(value)
        masked = self.regex_processor(text)
        return value if masked == text else masked

    def process_custom_callbacks(self, accessor: DotAccessor) -> List[str]:
        """
        Run custom callbacks for every registered path present in the tree.

        A callback that raises is audited as ``<path>_callback_error`` and the
        value is replaced according to the failure mode.

        Returns:
            Paths that were processed
        """
        processed = []
        for path, func in self.custom_callbacks.items():
            if not accessor.has(path):
                continue

            value = accessor.get(path)
            try:
                masked = func(value)
            except Exception as e:
                self._record_error("callback")
                sanitized = sanitize_error_message(str(e))
                logger.warning("Custom callback failed", path=path, error_type=type(e).__name__)
                emit_audit(self.audit_logger, f"{path}_callback_error", value, f"Callback failed: {sanitized}")
                masked = self.fallback(value)

            if not same_value(masked, value):
                accessor.set(path, masked)
                self._audit(path, value, masked)
            processed.append(path)

        return processed
