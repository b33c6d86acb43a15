"""
Masking orchestrator.

Validates configuration eagerly and runs one record through the pipeline:

1. conditional rules (a failing rule leaves the record untouched)
2. message: pattern chain, then embedded JSON, then (when enabled) values
   inside repr/pprint dumps
3. context: field paths, then custom callbacks, then recursive and
   type-based masking of every path not already handled
"""

import re
import time
from functools import partial
from typing import Any, List, NamedTuple, Optional, Tuple

import structlog

from ..config import get_settings
from ..models import audit_context
from ..models.audit_context import AuditContext, ErrorContext
from ..models.audit_event import (
    CONDITIONAL_ERROR,
    CONDITIONAL_SKIP,
    JSON_ENCODE_ERROR,
    JSON_MASKED,
    PREG_REPLACE_BATCH_ERROR,
    PREG_REPLACE_ERROR,
    SYNTHETIC_PATHS,
)
from ..models.field_mask import RegexMask
from ..models.masking_config import MaskingConfig
from .accessor import DotAccessor
from .audit import AuditLogger, RateLimitedAuditLogger, emit_audit
from .conditions import ConditionalRuleEvaluator, RuleOutcome
from .context import ContextProcessor
from .data_types import DataTypeMasker
from .json_masker import JsonMasker
from .metrics import MaskingMetrics
from .patterns import PatternValidator, translate_replacement
from .recovery import FailureMode, FallbackMaskStrategy
from .recursive import RecursiveProcessor
from .sanitizer import sanitize_error_message
from .serialized import SerializedDataProcessor
from .structured_audit import StructuredAuditLogger

logger = structlog.get_logger(__name__)

_ERROR_KINDS = {
    CONDITIONAL_ERROR: "rule",
    JSON_ENCODE_ERROR: "json_encode",
    PREG_REPLACE_ERROR: "regex",
    PREG_REPLACE_BATCH_ERROR: "regex",
}

_OPERATION_TYPES = {
    "message": audit_context.OP_REGEX,
    "json": audit_context.OP_JSON,
    "serialized": audit_context.OP_SERIALIZED,
    "field_path": audit_context.OP_FIELD_PATH,
    "callback": audit_context.OP_CALLBACK,
    "context": audit_context.OP_DATA_TYPE,
    "rule": audit_context.OP_CONDITIONAL,
}


class MaskedRecord(NamedTuple):
    message: str
    context: Any


class MaskingOrchestrator:
    """
    Masks log records according to a MaskingConfig.

    Args:
        config: Validated masking configuration
        pattern_validator: Validator and compiled-pattern cache (shared default if None)
        metrics: Optional MaskingMetrics
        fallback_strategy: Fallback values for the configured failure mode

    Raises:
        PatternValidationError: If any configured pattern is invalid or unsafe
    """

    def __init__(
        self,
        config: MaskingConfig,
        pattern_validator: Optional[PatternValidator] = None,
        metrics: Optional[MaskingMetrics] = None,
        fallback_strategy: Optional[FallbackMaskStrategy] = None,
    ) -> None:
        self.config = config
        self.pattern_validator = pattern_validator or PatternValidator.default()
        self.metrics = metrics
        self.failure_mode = FailureMode(config.failure_mode)

        self.pattern_validator.validate_all(config.patterns)
        self.pattern_validator.validate_all(
            entry.pattern for entry in config.field_paths.values() if isinstance(entry, RegexMask)
        )
        self._patterns: List[Tuple[str, "re.Pattern[str]", str]] = [
            (regex, self.pattern_validator.compile(regex), translate_replacement(replacement))
            for regex, replacement in config.patterns.items()
        ]

        self.audit_logger: Optional[AuditLogger] = None
        self._audit_hook: Optional[AuditLogger] = None

        settings = get_settings()
        self.data_type_masker = DataTypeMasker(config.data_type_masks, max_depth=config.max_depth)
        self.recursive_processor = RecursiveProcessor(
            self.mask_message,
            self.data_type_masker,
            max_depth=config.max_depth,
            chunk_size=settings.chunk_size,
        )
        self.json_masker = JsonMasker(self.recursive_processor.recursive_mask)
        self.context_processor = ContextProcessor(
            config.field_paths,
            config.custom_callbacks,
            None,
            self.mask_message,
            recursive_mask_fn=self.recursive_processor.recursive_mask,
            pattern_validator=self.pattern_validator,
            failure_mode=self.failure_mode,
            fallback_strategy=fallback_strategy,
            metrics=metrics,
        )
        self.rule_evaluator = ConditionalRuleEvaluator()
        self.serialized_processor = SerializedDataProcessor(self._apply_patterns)

        self.set_audit_logger(config.audit_logger)

        logger.info(
            "Masking orchestrator initialized",
            patterns=len(self._patterns),
            field_paths=len(config.field_paths),
            custom_callbacks=len(config.custom_callbacks),
            data_type_masks=len(config.data_type_masks),
            conditional_rules=len(config.conditional_rules),
            max_depth=config.max_depth,
            failure_mode=self.failure_mode.value,
        )

    @classmethod
    def create(
        cls,
        pattern_validator: Optional[PatternValidator] = None,
        metrics: Optional[MaskingMetrics] = None,
        **kwargs: Any,
    ) -> "MaskingOrchestrator":
        """Build the config from keyword arguments and construct an orchestrator."""
        return cls(MaskingConfig(**kwargs), pattern_validator=pattern_validator, metrics=metrics)

    def set_audit_logger(self, audit_logger: Optional[AuditLogger]) -> None:
        """Swap the audit logger on this orchestrator and every sub-processor."""
        profile = self.config.audit_rate_limit_profile
        if audit_logger is not None and profile is not None:
            if isinstance(audit_logger, StructuredAuditLogger):
                if not isinstance(audit_logger.wrapped_logger, RateLimitedAuditLogger):
                    audit_logger = audit_logger.with_wrapped_logger(
                        RateLimitedAuditLogger.create(audit_logger.wrapped_logger, profile, metrics=self.metrics)
                    )
            elif not isinstance(audit_logger, RateLimitedAuditLogger):
                audit_logger = RateLimitedAuditLogger.create(audit_logger, profile, metrics=self.metrics)
        self.audit_logger = audit_logger

        enabled = audit_logger is not None or self.metrics is not None
        self._audit_hook = partial(self._dispatch, "message") if enabled else None
        self.data_type_masker.set_audit_logger(partial(self._dispatch, "context") if enabled else None)
        self.recursive_processor.set_audit_logger(partial(self._dispatch, "context") if enabled else None)
        self.json_masker.set_audit_logger(partial(self._dispatch, "json") if enabled else None)
        self.serialized_processor.set_audit_logger(partial(self._dispatch, "serialized") if enabled else None)
        self.context_processor.set_audit_logger(partial(self._dispatch, "field_path") if enabled else None)
        self.rule_evaluator.set_audit_logger(partial(self._dispatch, "rule") if enabled else None)

    def _dispatch(self, component: str, path: str, original: Any, masked: Any) -> None:
        if component == "field_path" and (
            path in self.context_processor.custom_callbacks or path.endswith("_callback_error")
        ):
            component = "callback"

        if self.metrics is not None:
            if path in _ERROR_KINDS:
                self.metrics.record_error(_ERROR_KINDS[path])
            elif path == JSON_MASKED:
                self.metrics.record_masked("json")
            elif path not in SYNTHETIC_PATHS and not path.endswith("_callback_error"):
                self.metrics.record_masked(component)

        if isinstance(self.audit_logger, StructuredAuditLogger):
            self.audit_logger.log(path, original, masked, self._audit_context(component, path, masked))
        elif self.audit_logger is not None:
            self.audit_logger(path, original, masked)

    @staticmethod
    def _audit_context(component: str, path: str, masked: Any) -> AuditContext:
        operation = _OPERATION_TYPES[component]
        if path in _ERROR_KINDS or path.endswith("_callback_error"):
            error = ErrorContext.create(path, str(masked))
            return AuditContext.failed(operation, error, metadata={"path": path})
        if path == CONDITIONAL_SKIP:
            return AuditContext.skipped(operation, str(masked), {"path": path})
        return AuditContext.success(operation, metadata={"path": path})

    def process(self, message: str, context: Any, level: Any = "INFO", channel: str = "app") -> MaskedRecord:
        """
        Mask one record.

        Returns:
            The masked record; the input context is never modified
        """
        start = time.perf_counter()

        if self.config.conditional_rules:
            results = self.rule_evaluator.evaluate(message, context, level, channel, self.config.conditional_rules)
            failed = [result for result in results if result.outcome is RuleOutcome.FAIL]
            if failed:
                if self.metrics is not None:
                    self.metrics.record_skip(failed[0].rule_name)
                return MaskedRecord(message, context)

        masked_message = self.mask_message(message)
        masked_context = self.process_context(context)

        if self.metrics is not None:
            if masked_message != message:
                self.metrics.record_masked("message")
            self.metrics.record_processed(time.perf_counter() - start)

        return MaskedRecord(masked_message, masked_context)

    def __call__(self, message: str, context: Any, level: Any = "INFO", channel: str = "app") -> MaskedRecord:
        return self.process(message, context, level, channel)

    def mask_message(self, message: str) -> str:
        """
        Apply the pattern chain, embedded-JSON masking and, with
        ``mask_serialized``, the repr-dump pass.

        A result of ``""`` or ``"0"`` is treated as an over-greedy match and
        the original message is returned instead.
        """
        if not isinstance(message, str) or message == "":
            return message

        result = self._apply_patterns(message)
        result = self.json_masker.process_message(result)
        if self.config.mask_serialized:
            result = self.serialized_processor.process(result)

        if result == "" or result == "0":
            return message
        return result

    def _apply_patterns(self, text: str) -> str:
        result = text
        for regex, compiled, replacement in self._patterns:
            try:
                new_result, count = compiled.subn(replacement, result)
            except re.error as e:
                sanitized = sanitize_error_message(str(e))
                logger.warning("Pattern replacement failed, skipping pattern", error=sanitized)
                emit_audit(self._audit_hook, PREG_REPLACE_ERROR, regex, f"Error: {sanitized}")
                continue
            if count > 0:
                result = new_result
        return result

    def mask_message_batch(self, value: str) -> str:
        """
        Apply every pattern in a single pass.

        Any replacement error aborts the pass and returns ``value`` unchanged.
        """
        if not isinstance(value, str) or value == "":
            return value
        result = value
        try:
            for _, compiled, replacement in self._patterns:
                result = compiled.sub(replacement, result)
        except re.error as e:
            sanitized = sanitize_error_message(str(e))
            logger.warning("Batch pattern replacement failed", error=sanitized)
            emit_audit(self._audit_hook, PREG_REPLACE_BATCH_ERROR, value, f"Error: {sanitized}")
            return value
        return result

    def recursive_mask(self, value: Any, depth: int = 0) -> Any:
        return self.recursive_processor.recursive_mask(value, depth)

    def process_context(self, context: Any) -> Any:
        """
        Mask a context tree; returns a new tree.

        A tree too deep for the interpreter's stack is replaced according to
        the failure mode instead of raising.
        """
        if not isinstance(context, (dict, list, tuple)):
            return context

        try:
            return self._mask_context(context)
        except RecursionError:
            logger.warning("Context too deeply nested to mask", max_depth=self.config.max_depth)
            if self.metrics is not None:
                self.metrics.record_error("recursion")
            return self.context_processor.fallback(context)

    def _mask_context(self, context: Any) -> Any:
        if not self.config.field_paths and not self.config.custom_callbacks:
            return self.recursive_processor.recursive_mask(context, 0)

        accessor = DotAccessor(context)
        processed: List[str] = []
        if self.config.field_paths:
            processed.extend(self.context_processor.mask_field_paths(accessor))
        if self.config.custom_callbacks:
            processed.extend(self.context_processor.process_custom_callbacks(accessor))

        return self.data_type_masker.apply_to_context(
            accessor.all(),
            set(processed),
            "",
            self.recursive_processor.recursive_mask,
            leaf_fn=self.recursive_processor.process_leaf,
        )

    def get_context_processor(self) -> ContextProcessor:
        return self.context_processor

    def get_recursive_processor(self) -> RecursiveProcessor:
        return self.recursive_processor

    def get_json_masker(self) -> JsonMasker:
        return self.json_masker

    def get_data_type_masker(self) -> DataTypeMasker:
        return self.data_type_masker

    def get_rule_evaluator(self) -> ConditionalRuleEvaluator:
        return self.rule_evaluator

    def get_serialized_processor(self) -> SerializedDataProcessor:
        return self.serialized_processor

