"""
Tests for field-path and custom-callback masking.
"""

import re
from typing import Any, Callable, Dict, List, Optional

import pytest

from gdpr_log_filter.core.accessor import DotAccessor
from gdpr_log_filter.core.context import ContextProcessor, stringify
from gdpr_log_filter.core.exceptions import MaskingOperationFailedError
from gdpr_log_filter.core.metrics import MaskingMetrics
from gdpr_log_filter.core.recovery import FailureMode
from gdpr_log_filter.models.field_mask import regex_mask, remove, replace, use_processor_patterns

EMAIL = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


def mask_emails(text: str) -> str:
    return EMAIL.sub("[EMAIL]", text)


def build(
    audit_logger: Optional[Callable[[str, Any, Any], None]] = None,
    field_paths: Optional[Dict[str, Any]] = None,
    custom_callbacks: Optional[Dict[str, Callable[[Any], Any]]] = None,
    **kwargs: Any,
) -> ContextProcessor:
    return ContextProcessor(field_paths or {}, custom_callbacks or {}, audit_logger, mask_emails, **kwargs)


class Opaque:
    pass


class TestStringify:
    @pytest.mark.parametrize(
        "value, expected",
        [("x", "x"), (None, ""), (True, "1"), (False, ""), (12, "12"), (1.5, "1.5")],
    )
    def test_scalars(self, value: Any, expected: str) -> None:
        assert stringify(value) == expected

    def test_unstringable(self) -> None:
        with pytest.raises(MaskingOperationFailedError):
            stringify(Opaque())
        with pytest.raises(MaskingOperationFailedError):
            stringify([1])


class TestFieldPaths:
    """Test each field mask variant."""

    def test_remove(
        self,
        audit_events: List[Dict[str, Any]],
        audit_logger: Callable[[str, Any, Any], None],
    ) -> None:
        accessor = DotAccessor({"user": {"ssn": "123-45-6789", "name": "John"}})
        processor = build(audit_logger, {"user.ssn": remove()})

        processed = processor.mask_field_paths(accessor)

        assert accessor.all() == {"user": {"name": "John"}}
        assert processed == ["user.ssn"]
        assert audit_events == [{"path": "user.ssn", "original": "123-45-6789", "masked": None}]

    def test_remove_list_elements_highest_index_first(
        self,
        audit_events: List[Dict[str, Any]],
        audit_logger: Callable[[str, Any, Any], None],
    ) -> None:
        """Test list removals hit the configured elements and renumber processed paths."""
        accessor = DotAccessor({"items": ["a", "b", {"id": "c"}, "d"], "name": "x"})
        processor = build(
            audit_logger,
            {"items.0": remove(), "items.2.id": replace("[ID]"), "items.1": remove(), "name": remove()},
        )

        processed = processor.mask_field_paths(accessor)

        assert accessor.all() == {"items": [{"id": "[ID]"}, "d"]}
        assert processed == ["items.0.id", "name"]
        assert [event["path"] for event in audit_events] == ["items.2.id", "name", "items.1", "items.0"]
        assert audit_events[2]["original"] == "b"
        assert audit_events[3]["original"] == "a"

    def test_remove_drops_processed_paths_inside_removed_element(self) -> None:
        accessor = DotAccessor([{"secret": "s"}, {"secret": "t"}])
        processor = build(None, {"0.secret": replace("***"), "1.secret": replace("***"), "0": remove()})

        processed = processor.mask_field_paths(accessor)

        assert accessor.all() == [{"secret": "***"}]
        assert processed == ["0.secret"]

    def test_replace(self, audit_events: List[Dict[str, Any]], audit_logger: Callable[[str, Any, Any], None]) -> None:
        accessor = DotAccessor({"user": {"phone": "+358 40 123"}})
        build(audit_logger, {"user.phone": replace("[PHONE]")}).mask_field_paths(accessor)

        assert accessor.all() == {"user": {"phone": "[PHONE]"}}
        assert audit_events[0]["masked"] == "[PHONE]"

    def test_use_processor_patterns(self) -> None:
        accessor = DotAccessor({"contact": "mail john@example.com", "id": 5})
        processor = build(field_paths={"contact": use_processor_patterns(), "id": use_processor_patterns()})

        processed = processor.mask_field_paths(accessor)

        assert accessor.all() == {"contact": "mail [EMAIL]", "id": 5}
        assert processed == ["contact", "id"]

    def test_use_processor_patterns_on_container(self) -> None:
        accessor = DotAccessor({"emails": ["a@example.com"]})
        processor = build(
            field_paths={"emails": use_processor_patterns()},
            recursive_mask_fn=lambda value, depth: [mask_emails(v) for v in value],
        )
        processor.mask_field_paths(accessor)
        assert accessor.all() == {"emails": ["[EMAIL]"]}

    def test_regex_mask(self) -> None:
        accessor = DotAccessor({"card": "4111111111111111"})
        processor = build(field_paths={"card": regex_mask(r"/\d{12}(\d{4})/", "****$1")})
        processor.mask_field_paths(accessor)
        assert accessor.all() == {"card": "****1111"}

    def test_regex_mask_stringifies_numbers(self) -> None:
        accessor = DotAccessor({"pin": 1234})
        build(field_paths={"pin": regex_mask(r"/\d/", "*")}).mask_field_paths(accessor)
        assert accessor.all() == {"pin": "****"}

    def test_missing_path_skipped(self, audit_events: List[Dict[str, Any]], audit_logger: Callable[[str, Any, Any], None]) -> None:
        accessor = DotAccessor({"a": 1})
        processed = build(audit_logger, {"user.email": replace("x")}).mask_field_paths(accessor)
        assert processed == []
        assert accessor.all() == {"a": 1}
        assert audit_events == []

    def test_unchanged_value_not_audited(
        self, audit_events: List[Dict[str, Any]], audit_logger: Callable[[str, Any, Any], None]
    ) -> None:
        accessor = DotAccessor({"note": "nothing here"})
        processed = build(audit_logger, {"note": use_processor_patterns()}).mask_field_paths(accessor)
        assert processed == ["note"]
        assert audit_events == []

    def test_callback_path_skipped(self) -> None:
        """Test a path with a callback is left to the callback."""
        accessor = DotAccessor({"email": "john@example.com"})
        processor = build(
            field_paths={"email": replace("[X]")},
            custom_callbacks={"email": lambda value: "cb"},
        )
        assert processor.mask_field_paths(accessor) == []
        assert processor.process_custom_callbacks(accessor) == ["email"]
        assert accessor.all() == {"email": "cb"}


class TestFailureModes:
    """Test values that cannot be masked."""

    @pytest.mark.parametrize(
        "mode, expected",
        [
            (FailureMode.FAIL_OPEN, "OPAQUE"),
            (FailureMode.FAIL_CLOSED, "***REDACTED***"),
            (FailureMode.FAIL_SAFE, "***OBJECT*** (Opaque)"),
        ],
    )
    def test_unstringable_value(self, mode: FailureMode, expected: str) -> None:
        opaque = Opaque()
        accessor = DotAccessor({"obj": opaque})
        metrics = MaskingMetrics()
        processor = build(field_paths={"obj": regex_mask(r"/x/", "y")}, failure_mode=mode, metrics=metrics)

        processor.mask_field_paths(accessor)

        result = accessor.all()["obj"]
        assert (result is opaque) if expected == "OPAQUE" else (result == expected)
        assert metrics.get_sample_value("gdpr_masking_errors_total", {"kind": "unmaskable_value"}) == 1.0


class TestCustomCallbacks:
    """Test user callbacks."""

    def test_callback_applied_and_audited(
        self, audit_events: List[Dict[str, Any]], audit_logger: Callable[[str, Any, Any], None]
    ) -> None:
        accessor = DotAccessor({"user": {"id": 42}})
        processor = build(audit_logger, custom_callbacks={"user.id": lambda value: f"user-{value % 10}"})

        assert processor.process_custom_callbacks(accessor) == ["user.id"]
        assert accessor.all() == {"user": {"id": "user-2"}}
        assert audit_events == [{"path": "user.id", "original": 42, "masked": "user-2"}]

    def test_failing_callback(
        self, audit_events: List[Dict[str, Any]], audit_logger: Callable[[str, Any, Any], None]
    ) -> None:
        """Test a raising callback is audited and falls back per failure mode."""

        def broken(value: Any) -> Any:
            raise RuntimeError("lookup failed password=hunter2")

        accessor = DotAccessor({"token": "abcdefghijklmnop"})
        processor = build(audit_logger, custom_callbacks={"token": broken}, failure_mode=FailureMode.FAIL_SAFE)

        processor.process_custom_callbacks(accessor)

        assert accessor.all() == {"token": "***STRING*** (16 chars)"}
        error_event = audit_events[0]
        assert error_event["path"] == "token_callback_error"
        assert error_event["masked"] == "Callback failed: lookup failed password=***"
        assert audit_events[1]["path"] == "token"

    def test_failing_callback_fail_open(self) -> None:
        def broken(value: Any) -> Any:
            raise ValueError("nope")

        accessor = DotAccessor({"token": "keep"})
        build(custom_callbacks={"token": broken}).process_custom_callbacks(accessor)
        assert accessor.all() == {"token": "keep"}

    def test_missing_callback_path(self) -> None:
        accessor = DotAccessor({"a": 1})
        assert build(custom_callbacks={"b": lambda v: v}).process_custom_callbacks(accessor) == []
