"""
Depth-bounded recursive masking of context trees.
"""

from itertools import islice
from typing import Any, Callable, Iterator, List, Optional

import structlog

from ..models.audit_event import MAX_DEPTH_REACHED
from .audit import AuditLogger, emit_audit
from .data_types import DataTypeMasker, same_value

logger = structlog.get_logger(__name__)

StringProcessor = Callable[[str], str]


def _chunks(iterable: Any, size: int) -> Iterator[List[Any]]:
    iterator = iter(iterable)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk


class RecursiveProcessor:
    """
    Walks nested dicts and lists, masking every value it reaches.

    Strings go through the pattern chain first and fall back to type masking
    only when no pattern changed them. Containers get type masking first and
    are descended into when it left them unchanged. Returns new containers;
    the input is never modified.

    Args:
        regex_processor: String -> masked string (the message pattern chain)
        data_type_masker: Type-tag masker
        audit_logger: Optional audit callable
        max_depth: Containers at this depth or deeper are returned unmodified
        chunk_size: Containers larger than this are walked in slices
    """

    def __init__(
        self,
        regex_processor: StringProcessor,
        data_type_masker: DataTypeMasker,
        audit_logger: Optional[AuditLogger] = None,
        max_depth: int = 100,
        chunk_size: int = 1000,
    ) -> None:
        self.regex_processor = regex_processor
        self.data_type_masker = data_type_masker
        self.audit_logger = audit_logger
        self.max_depth = max_depth
        self.chunk_size = chunk_size

    def set_audit_logger(self, audit_logger: Optional[AuditLogger]) -> None:
        self.audit_logger = audit_logger

    def recursive_mask(self, data: Any, current_depth: int = 0) -> Any:
        if isinstance(data, str):
            return self.regex_processor(data)
        if isinstance(data, (dict, list, tuple)):
            return self.process_container(data, current_depth)
        return self.data_type_masker.apply_masking(data, self.recursive_mask)

    def process_container(self, data: Any, current_depth: int) -> Any:
        if current_depth >= self.max_depth:
            logger.debug("Recursion depth limit reached", max_depth=self.max_depth)
            emit_audit(
                self.audit_logger,
                MAX_DEPTH_REACHED,
                current_depth,
                f"Recursion depth limit ({self.max_depth}) reached",
            )
            return data

        if not data:
            return data

        if isinstance(data, dict):
            if len(data) > self.chunk_size:
                result = {}
                for chunk in _chunks(data.items(), self.chunk_size):
                    for key, value in chunk:
                        result[key] = self.process_value(value, current_depth)
                return result
            return {key: self.process_value(value, current_depth) for key, value in data.items()}

        if len(data) > self.chunk_size:
            items: List[Any] = []
            for chunk in _chunks(data, self.chunk_size):
                items.extend(self.process_value(value, current_depth) for value in chunk)
        else:
            items = [self.process_value(value, current_depth) for value in data]
        return items if isinstance(data, list) else tuple(items)

    def process_value(self, value: Any, current_depth: int) -> Any:
        if isinstance(value, str):
            return self.process_string_value(value)
        if isinstance(value, (dict, list, tuple)):
            return self.process_container_value(value, current_depth)
        return self.data_type_masker.apply_masking(value, self.recursive_mask)

    def process_string_value(self, value: str) -> Any:
        masked = self.regex_processor(value)
        if masked != value:
            return masked
        return self.data_type_masker.apply_masking(value, self.recursive_mask)

    def process_container_value(self, value: Any, current_depth: int) -> Any:
        if self.data_type_masker.is_recursive(value):
            return self.recursive_mask(value, current_depth + 1)

        masked = self.data_type_masker.apply_masking(value, self.recursive_mask)
        if not same_value(masked, value):
            return masked
        return self.recursive_mask(value, current_depth + 1)

    def process_leaf(self, value: Any) -> Any:
        """Mask a non-container value the same way process_value would."""
        if isinstance(value, str):
            return self.process_string_value(value)
        return self.data_type_masker.apply_masking(value, self.recursive_mask)
