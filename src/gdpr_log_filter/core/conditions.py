"""
Conditional rules gating whether a record is masked at all.

A rule is a named predicate ``(message, context, level, channel) -> bool``.
All rules must pass for masking to run. A rule that raises abstains: it is
audited and logged, and evaluation continues with the remaining rules.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import structlog

from ..models.audit_event import CONDITIONAL_ERROR, CONDITIONAL_SKIP
from .accessor import DotAccessor
from .audit import AuditLogger, emit_audit
from .data_types import same_value
from .exceptions import RuleExecutionError
from .sanitizer import sanitize_error_message

logger = structlog.get_logger(__name__)

ConditionalRule = Callable[[str, Any, Any, str], bool]


class RuleOutcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    ABSTAIN = "abstain"


@dataclass(frozen=True)
class RuleResult:
    """Outcome of one rule; ``reason`` is set for abstentions."""

    rule_name: str
    outcome: RuleOutcome
    reason: Optional[str] = None


def level_name(level: Union[int, str, None]) -> str:
    """Normalize a level (name or stdlib number) to an upper-case name."""
    if isinstance(level, int) and not isinstance(level, bool):
        return str(logging.getLevelName(level)).upper()
    return str(level).upper()


class ConditionalRuleEvaluator:
    """AND-gate over named rules."""

    def __init__(self, audit_logger: Optional[AuditLogger] = None) -> None:
        self.audit_logger = audit_logger

    def set_audit_logger(self, audit_logger: Optional[AuditLogger]) -> None:
        self.audit_logger = audit_logger

    def evaluate(
        self,
        message: str,
        context: Any,
        level: Any,
        channel: str,
        rules: Dict[str, ConditionalRule],
    ) -> List[RuleResult]:
        """
        Run rules in order until one fails.

        Returns:
            One result per evaluated rule; a FAIL result is always last
        """
        results = []
        for rule_name, rule in rules.items():
            try:
                passed = bool(rule(message, context, level, channel))
            except Exception as e:
                sanitized = sanitize_error_message(str(e))
                error = RuleExecutionError(rule_name, sanitized)
                logger.warning(
                    "Conditional rule raised, treating as abstention",
                    rule_name=rule_name,
                    error_code=error.error_code,
                    error=str(error),
                )
                emit_audit(self.audit_logger, CONDITIONAL_ERROR, rule_name, f"Rule error: {sanitized}")
                results.append(RuleResult(rule_name, RuleOutcome.ABSTAIN, sanitized))
                continue

            if not passed:
                logger.debug("Masking skipped by conditional rule", rule_name=rule_name)
                emit_audit(self.audit_logger, CONDITIONAL_SKIP, rule_name, "Masking skipped due to conditional rule")
                results.append(RuleResult(rule_name, RuleOutcome.FAIL))
                break

            results.append(RuleResult(rule_name, RuleOutcome.PASS))

        return results

    def should_mask(
        self,
        message: str,
        context: Any,
        level: Any,
        channel: str,
        rules: Dict[str, ConditionalRule],
    ) -> bool:
        if not rules:
            return True
        results = self.evaluate(message, context, level, channel, rules)
        return not any(result.outcome is RuleOutcome.FAIL for result in results)


def level_based_rule(levels: Iterable[Union[int, str]]) -> ConditionalRule:
    """Pass only for records whose level is in ``levels`` (names compared case-insensitively)."""
    allowed = {level_name(level) for level in levels}

    def rule(message: str, context: Any, level: Any, channel: str) -> bool:
        return level_name(level) in allowed

    return rule


def channel_based_rule(channels: Iterable[str]) -> ConditionalRule:
    allowed = set(channels)

    def rule(message: str, context: Any, level: Any, channel: str) -> bool:
        return channel in allowed

    return rule


def context_field_rule(path: str) -> ConditionalRule:
    """Pass only when the context has a value at ``path``."""

    def rule(message: str, context: Any, level: Any, channel: str) -> bool:
        return DotAccessor(context).has(path)

    return rule


def context_value_rule(path: str, expected: Any) -> ConditionalRule:
    """Pass only when the context value at ``path`` equals ``expected`` (type included)."""

    def rule(message: str, context: Any, level: Any, channel: str) -> bool:
        accessor = DotAccessor(context)
        return accessor.has(path) and same_value(accessor.get(path), expected)

    return rule
